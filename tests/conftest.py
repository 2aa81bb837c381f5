"""
Test Suite Configuration
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List

import pytest

from ecom_analytics.config import Settings
from ecom_analytics.config.settings import AnalyticsSettings
from ecom_analytics.store.models import (
    Customer,
    EntityType,
    Order,
    Payment,
)
from ecom_analytics.store.snapshot import CanonicalStore


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
        analytics=AnalyticsSettings(max_workers=2),
    )


@pytest.fixture
def as_of() -> datetime:
    return datetime(2018, 10, 1)


def _rows(columns: List[str], *values: tuple) -> List[Dict[str, str]]:
    return [dict(zip(columns, v)) for v in values]


@pytest.fixture
def raw_records() -> Dict[EntityType, List[Dict[str, str]]]:
    """
    Small Olist-shaped raw dataset.

    Expected after load: 3 rejected rows (customer, order item, payment),
    one duplicate order item and one duplicate review removed, one
    geolocation row per zip with usable coordinates.
    """
    return {
        EntityType.CUSTOMER: _rows(
            ["customer_id", "customer_unique_id", "customer_zip_code_prefix", "customer_city", "customer_state"],
            ("c1", "u1", "01001", " sao paulo ", "sp"),
            ("c2", "u2", "20000", "rio de janeiro", "RJ"),
            ("c3", "u3", "abc", "", "MG"),
            ("", "u4", "30000", "belo horizonte", "MG"),
        ),
        EntityType.ORDER: _rows(
            [
                "order_id", "customer_id", "order_status", "order_purchase_timestamp",
                "order_approved_at", "order_delivered_carrier_date",
                "order_delivered_customer_date", "order_estimated_delivery_date",
            ],
            ("o1", "c1", "delivered", "2018-01-10 10:00:00", "2018-01-10 11:00:00",
             "2018-01-11 08:00:00", "2018-01-15 09:00:00", "2018-01-25 00:00:00"),
            ("o2", "c1", "delivered", "2018-02-05 12:00:00", "2018-02-05 13:00:00",
             "2018-02-07 08:00:00", "2018-02-17 08:00:00", "2018-02-25 00:00:00"),
            ("o3", "c2", "delivered", "2018-02-20 23:00:00", "2018-02-21 09:00:00",
             "2018-02-22 08:00:00", "2018-03-01 01:00:00", "2018-03-10 00:00:00"),
            ("o4", "c2", "shipped", "2018-03-03 10:00:00", "2018-03-03 10:30:00",
             "2018-03-05 08:00:00", None, "2018-03-20 00:00:00"),
            ("o5", "c9", "canceled", "", None, None, None, None),
        ),
        EntityType.PRODUCT: _rows(
            [
                "product_id", "product_category_name", "product_name_lenght",
                "product_description_lenght", "product_photos_qty", "product_weight_g",
                "product_length_cm", "product_height_cm", "product_width_cm",
            ],
            ("p1", "brinquedos", "40", "300", "2", "500", "20", "10", "15"),
            ("p2", "cama_mesa_banho", "35", "250", "1", "0", "30", "5", "30"),
            ("p3", "", "", "", "", "", "", "", ""),
        ),
        EntityType.SELLER: _rows(
            ["seller_id", "seller_zip_code_prefix", "seller_city", "seller_state"],
            ("s1", "13000", "campinas", "SP"),
            ("s2", "x", "sao paulo 2", "sp"),
        ),
        EntityType.CATEGORY_TRANSLATION: _rows(
            ["product_category_name", "product_category_name_english"],
            ("brinquedos", "toys"),
            ("cama_mesa_banho", "bed_bath_table"),
        ),
        EntityType.GEOLOCATION: _rows(
            ["geolocation_zip_code_prefix", "geolocation_lat", "geolocation_lng", "geolocation_city", "geolocation_state"],
            ("01001", "-23.55", "-46.63", "sao paulo", "SP"),
            ("01001", "-23.56", "-46.64", "Sao Paulo", "sp"),
            ("01001", "", "", "aaa", "SP"),
            ("99999", "", "", "nowhere", "XX"),
        ),
        EntityType.ORDER_ITEM: _rows(
            ["order_id", "order_item_id", "product_id", "seller_id", "shipping_limit_date", "price", "freight_value"],
            ("o1", "1", "p1", "s1", "2018-01-12 10:00:00", "100.00", "10.00"),
            ("o1", "1", "p1", "s1", "2018-01-12 10:00:00", "100.00", "10.00"),
            ("o1", "2", "p2", "s2", "2018-01-12 10:00:00", "50.00", ""),
            ("o2", "1", "p1", "s1", "2018-02-07 12:00:00", "-50.00", "5.00"),
            ("o3", "1", "p1", "s1", "2018-02-22 23:00:00", "80.00", "20.00"),
            ("o4", "1", "p3", "s2", "2018-03-05 10:00:00", "30.00", "5.00"),
            ("o5", "1", "p1", "s1", "", "10", "1"),
            ("o6", "", "p1", "s1", "2018-04-01 10:00:00", "10", "1"),
        ),
        EntityType.PAYMENT: _rows(
            ["order_id", "payment_sequential", "payment_type", "payment_installments", "payment_value"],
            ("o1", "1", "Credit Card", "3", "160.00"),
            ("o2", "1", "boleto", "1", "5.00"),
            ("o3", "1", "voucher", "1", "100.00"),
            ("o4", "1", "debit card", "1", "abc"),
            ("", "1", "boleto", "1", "10.00"),
        ),
        EntityType.REVIEW: _rows(
            ["review_id", "order_id", "review_score", "review_creation_date", "review_answer_timestamp"],
            ("r1", "o1", "5", "2018-01-16 00:00:00", "2018-01-20 10:00:00"),
            ("r1", "o1", "4", "2018-01-16 00:00:00", "2018-01-25 10:00:00"),
            ("r2", "o2", "2", "2018-02-18 00:00:00", "2018-02-20 00:00:00"),
            ("r3", "o3", "x", "2018-03-02 00:00:00", "2018-03-03 00:00:00"),
        ),
    }


@pytest.fixture
def rfm_snapshot():
    """Canonical snapshot with three customers, one of them without orders"""
    customers = [
        Customer("c1", "u1", 1001, "SAO PAULO", "SP"),
        Customer("c2", "u2", 20000, "RIO DE JANEIRO", "RJ"),
        Customer("c3", "u3", -1, "N/A", "MG"),
    ]
    orders = [
        Order("o1", "c1", "delivered", datetime(2018, 1, 10, 10, 0)),
        Order("o2", "c1", "delivered", datetime(2018, 3, 1, 18, 0)),
        Order("o3", "c2", "delivered", datetime(2018, 9, 25, 9, 0), order_estimated_delivery_date=date(2018, 10, 5)),
    ]
    payments = [
        Payment("o1", 1, "credit_card", 1, Decimal("600.00")),
        Payment("o2", 1, "credit_card", 1, Decimal("300.00")),
        Payment("o2", 2, "voucher", 1, Decimal("200.00")),
        Payment("o3", 1, "boleto", 1, Decimal("-1.00")),
    ]
    return CanonicalStore().publish({
        EntityType.CUSTOMER: customers,
        EntityType.ORDER: orders,
        EntityType.PAYMENT: payments,
    })
