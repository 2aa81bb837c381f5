"""
Canonical Record Models

Strongly typed, sentinel-normalized records for every warehouse entity.
NOT NULL columns always hold a value or the documented sentinel; nullable
columns are annotated Optional.
"""

from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Type, Union, get_args, get_origin, get_type_hints

import polars as pl


# Sentinels
MISSING_TEXT = "N/A"
MISSING_NUMBER = -1
MISSING_DECIMAL = Decimal("-1.00")
MISSING_DATETIME = datetime(1900, 1, 1)
MISSING_DATE = date(1900, 1, 1)


class EntityType(str, Enum):
    """Raw and canonical entity types"""
    CUSTOMER = "customer"
    ORDER = "order"
    PRODUCT = "product"
    SELLER = "seller"
    CATEGORY_TRANSLATION = "category_translation"
    GEOLOCATION = "geolocation"
    ORDER_ITEM = "order_item"
    PAYMENT = "payment"
    REVIEW = "review"


_POLARS_TYPES = {
    str: pl.Utf8,
    int: pl.Int64,
    float: pl.Float64,
    Decimal: pl.Float64,
    datetime: pl.Datetime("us"),
    date: pl.Date,
}


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) is Union:
        args = [a for a in get_args(annotation) if a is not type(None)]
        return args[0]
    return annotation


class CanonicalRecord:
    """Shared behaviour for canonical dataclasses"""

    entity_type: ClassVar[EntityType]
    table_name: ClassVar[str]
    key_fields: ClassVar[Tuple[str, ...]]

    @property
    def key(self) -> Tuple[Any, ...]:
        return tuple(getattr(self, name) for name in self.key_fields)

    def sort_key(self) -> Tuple[Any, ...]:
        """Total ordering over every field, nulls last"""
        parts = []
        for f in fields(self):
            value = getattr(self, f.name)
            parts.append((1, "") if value is None else (0, value))
        return tuple(parts)

    def to_row(self) -> Dict[str, Any]:
        """Flat dict for DataFrame construction (decimals become floats)"""
        row = {}
        for f in fields(self):
            value = getattr(self, f.name)
            row[f.name] = float(value) if isinstance(value, Decimal) else value
        return row

    @classmethod
    def polars_schema(cls) -> Dict[str, pl.DataType]:
        hints = get_type_hints(cls)
        return {
            f.name: _POLARS_TYPES[_unwrap_optional(hints[f.name])]
            for f in fields(cls)
        }

    @classmethod
    def not_null_columns(cls) -> Tuple[str, ...]:
        hints = get_type_hints(cls)
        return tuple(
            f.name for f in fields(cls)
            if get_origin(hints[f.name]) is not Union
        )


# =============================================================================
# DIMENSIONS
# =============================================================================

@dataclass(frozen=True)
class Customer(CanonicalRecord):
    entity_type: ClassVar[EntityType] = EntityType.CUSTOMER
    table_name: ClassVar[str] = "customers"
    key_fields: ClassVar[Tuple[str, ...]] = ("customer_id",)

    customer_id: str
    customer_unique_id: str
    customer_zip_code_prefix: int
    customer_city: str
    customer_state: str


@dataclass(frozen=True)
class Order(CanonicalRecord):
    entity_type: ClassVar[EntityType] = EntityType.ORDER
    table_name: ClassVar[str] = "orders"
    key_fields: ClassVar[Tuple[str, ...]] = ("order_id",)

    order_id: str
    customer_id: str
    order_status: str
    order_purchase_timestamp: datetime
    order_approved_at: Optional[datetime] = None
    order_delivered_carrier_date: Optional[datetime] = None
    order_delivered_customer_date: Optional[datetime] = None
    order_estimated_delivery_date: Optional[date] = None


@dataclass(frozen=True)
class Product(CanonicalRecord):
    entity_type: ClassVar[EntityType] = EntityType.PRODUCT
    table_name: ClassVar[str] = "products"
    key_fields: ClassVar[Tuple[str, ...]] = ("product_id",)

    product_id: str
    product_category_name: str
    product_name_length: int
    product_description_length: int
    product_photos_qty: int
    product_weight_g: Decimal
    product_length_cm: Decimal
    product_height_cm: Decimal
    product_width_cm: Decimal


@dataclass(frozen=True)
class Seller(CanonicalRecord):
    entity_type: ClassVar[EntityType] = EntityType.SELLER
    table_name: ClassVar[str] = "sellers"
    key_fields: ClassVar[Tuple[str, ...]] = ("seller_id",)

    seller_id: str
    seller_zip_code_prefix: int
    seller_city: str
    seller_state: str


@dataclass(frozen=True)
class CategoryTranslation(CanonicalRecord):
    entity_type: ClassVar[EntityType] = EntityType.CATEGORY_TRANSLATION
    table_name: ClassVar[str] = "category_translations"
    key_fields: ClassVar[Tuple[str, ...]] = ("product_category_name",)

    product_category_name: str
    product_category_name_english: str


@dataclass(frozen=True)
class Geolocation(CanonicalRecord):
    entity_type: ClassVar[EntityType] = EntityType.GEOLOCATION
    table_name: ClassVar[str] = "geolocations"
    key_fields: ClassVar[Tuple[str, ...]] = (
        "geolocation_zip_code_prefix",
        "geolocation_lat",
        "geolocation_lng",
    )

    geolocation_zip_code_prefix: str
    geolocation_lat: float
    geolocation_lng: float
    geolocation_city: str
    geolocation_state: str


# =============================================================================
# FACTS
# =============================================================================

@dataclass(frozen=True)
class OrderItem(CanonicalRecord):
    entity_type: ClassVar[EntityType] = EntityType.ORDER_ITEM
    table_name: ClassVar[str] = "order_items"
    key_fields: ClassVar[Tuple[str, ...]] = ("order_id", "order_item_id")

    order_id: str
    order_item_id: int
    product_id: str
    seller_id: str
    shipping_limit_date: datetime
    price: Decimal
    freight_value: Decimal


@dataclass(frozen=True)
class Payment(CanonicalRecord):
    entity_type: ClassVar[EntityType] = EntityType.PAYMENT
    table_name: ClassVar[str] = "payments"
    key_fields: ClassVar[Tuple[str, ...]] = ("order_id", "payment_sequential")

    order_id: str
    payment_sequential: int
    payment_type: str
    payment_installments: int
    payment_value: Decimal


@dataclass(frozen=True)
class Review(CanonicalRecord):
    entity_type: ClassVar[EntityType] = EntityType.REVIEW
    table_name: ClassVar[str] = "reviews"
    key_fields: ClassVar[Tuple[str, ...]] = ("review_id",)

    review_id: str
    order_id: str
    review_score: int
    review_creation_date: date
    review_answer_timestamp: datetime


RECORD_TYPES: Dict[EntityType, Type[CanonicalRecord]] = {
    cls.entity_type: cls
    for cls in (
        Customer,
        Order,
        Product,
        Seller,
        CategoryTranslation,
        Geolocation,
        OrderItem,
        Payment,
        Review,
    )
}
