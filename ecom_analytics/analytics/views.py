"""
Analytical Views

Polars projections of a canonical snapshot for the analytics phase.
Sentinels are turned back into nulls, and dimension lookups are left joins,
so a fact whose dimension row is missing keeps null attributes instead of
disappearing.
"""

from typing import Any, Iterable, List

import polars as pl

from ecom_analytics.store.models import (
    EntityType,
    MISSING_DATE,
    MISSING_DATETIME,
    MISSING_NUMBER,
    MISSING_TEXT,
)
from ecom_analytics.store.snapshot import CanonicalSnapshot


def nullif(column: str, sentinel: Any) -> pl.Expr:
    """Null where the column equals its sentinel"""
    return (
        pl.when(pl.col(column) == pl.lit(sentinel))
        .then(None)
        .otherwise(pl.col(column))
        .alias(column)
    )


def _nullif_all(columns: Iterable[str], sentinel: Any) -> List[pl.Expr]:
    return [nullif(c, sentinel) for c in columns]


# =============================================================================
# DIMENSIONS
# =============================================================================

def customers_view(snapshot: CanonicalSnapshot) -> pl.DataFrame:
    return snapshot.frame(EntityType.CUSTOMER).with_columns(
        nullif("customer_zip_code_prefix", MISSING_NUMBER),
        *_nullif_all(["customer_unique_id", "customer_city", "customer_state"], MISSING_TEXT),
    )


def sellers_view(snapshot: CanonicalSnapshot) -> pl.DataFrame:
    return snapshot.frame(EntityType.SELLER).with_columns(
        nullif("seller_zip_code_prefix", MISSING_NUMBER),
        *_nullif_all(["seller_city", "seller_state"], MISSING_TEXT),
    )


def products_view(snapshot: CanonicalSnapshot) -> pl.DataFrame:
    """Products with the English category name attached"""
    translations = snapshot.frame(EntityType.CATEGORY_TRANSLATION).with_columns(
        nullif("product_category_name_english", MISSING_TEXT),
    )
    return (
        snapshot.frame(EntityType.PRODUCT)
        .with_columns(
            nullif("product_category_name", MISSING_TEXT),
            *_nullif_all(
                ["product_name_length", "product_description_length", "product_photos_qty"],
                MISSING_NUMBER,
            ),
            *_nullif_all(
                ["product_weight_g", "product_length_cm", "product_height_cm", "product_width_cm"],
                float(MISSING_NUMBER),
            ),
        )
        .join(translations, on="product_category_name", how="left")
    )


def orders_view(snapshot: CanonicalSnapshot) -> pl.DataFrame:
    """Orders with sentinel timestamps nulled and shipping_days derived"""
    orders = snapshot.frame(EntityType.ORDER).with_columns(
        *_nullif_all(["customer_id", "order_status"], MISSING_TEXT),
        *_nullif_all(
            [
                "order_purchase_timestamp",
                "order_approved_at",
                "order_delivered_carrier_date",
                "order_delivered_customer_date",
            ],
            MISSING_DATETIME,
        ),
        nullif("order_estimated_delivery_date", MISSING_DATE),
    )
    # Calendar-day difference; null until delivered
    return orders.with_columns(
        (
            pl.col("order_delivered_customer_date").dt.date()
            - pl.col("order_purchase_timestamp").dt.date()
        )
        .dt.total_days()
        .alias("shipping_days")
    )


# =============================================================================
# FACTS
# =============================================================================

def reviews_view(snapshot: CanonicalSnapshot) -> pl.DataFrame:
    return snapshot.frame(EntityType.REVIEW).with_columns(
        nullif("order_id", MISSING_TEXT),
        nullif("review_score", MISSING_NUMBER),
        nullif("review_creation_date", MISSING_DATE),
        nullif("review_answer_timestamp", MISSING_DATETIME),
    )


def order_review_scores(snapshot: CanonicalSnapshot) -> pl.DataFrame:
    """One row per reviewed order with its mean review score"""
    return (
        reviews_view(snapshot)
        .filter(pl.col("order_id").is_not_null())
        .group_by("order_id")
        .agg(pl.col("review_score").mean().alias("review_score"))
    )


def payments_view(snapshot: CanonicalSnapshot) -> pl.DataFrame:
    """Payments with the paying customer's location"""
    orders = orders_view(snapshot).select(["order_id", "customer_id"])
    customers = customers_view(snapshot).select(["customer_id", "customer_city", "customer_state"])
    return (
        snapshot.frame(EntityType.PAYMENT)
        .with_columns(
            nullif("payment_type", MISSING_TEXT),
            nullif("payment_installments", MISSING_NUMBER),
            nullif("payment_value", float(MISSING_NUMBER)),
        )
        .join(orders, on="order_id", how="left")
        .join(customers, on="customer_id", how="left")
    )


def order_payment_totals(snapshot: CanonicalSnapshot) -> pl.DataFrame:
    """Summed payment value per order; null when no payment value is known"""
    return (
        payments_view(snapshot)
        .group_by("order_id")
        .agg(
            pl.col("payment_value").sum().alias("payment_total"),
            pl.col("payment_value").is_not_null().sum().alias("payment_count"),
        )
        .with_columns(
            pl.when(pl.col("payment_count") > 0)
            .then(pl.col("payment_total"))
            .otherwise(None)
            .alias("payment_total")
        )
        .drop("payment_count")
    )


def order_items_view(snapshot: CanonicalSnapshot) -> pl.DataFrame:
    """
    The central fact frame: one row per order item with product, seller,
    order, customer and per-order review attributes attached.

    Columns added to the canonical order item:
        product_category_name, product_category_name_english,
        seller_city, seller_state, customer_id, order_purchase_timestamp,
        order_delivered_customer_date, customer_city, customer_state,
        item_total_value, shipping_days, review_score
    """
    products = products_view(snapshot).select(
        ["product_id", "product_category_name", "product_category_name_english"]
    )
    sellers = sellers_view(snapshot).select(["seller_id", "seller_city", "seller_state"])
    orders = orders_view(snapshot).select(
        [
            "order_id",
            "customer_id",
            "order_purchase_timestamp",
            "order_delivered_customer_date",
            "shipping_days",
        ]
    )
    customers = customers_view(snapshot).select(["customer_id", "customer_city", "customer_state"])

    return (
        snapshot.frame(EntityType.ORDER_ITEM)
        .with_columns(
            *_nullif_all(["product_id", "seller_id"], MISSING_TEXT),
            *_nullif_all(["price", "freight_value"], float(MISSING_NUMBER)),
            nullif("shipping_limit_date", MISSING_DATETIME),
        )
        .with_columns(
            (pl.col("price").fill_null(0.0) + pl.col("freight_value").fill_null(0.0))
            .alias("item_total_value")
        )
        .join(products, on="product_id", how="left")
        .join(sellers, on="seller_id", how="left")
        .join(orders, on="order_id", how="left")
        .join(customers, on="customer_id", how="left")
        .join(order_review_scores(snapshot), on="order_id", how="left")
    )
