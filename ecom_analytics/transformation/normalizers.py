"""
Record Normalization Module

Per-entity transformation of one raw record into one canonical record.
A record is rejected only when one of its key fields is missing; every other
field falls back to its sentinel through the FieldCoercer.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union
import re

import structlog

from ecom_analytics.store.models import (
    CanonicalRecord,
    CategoryTranslation,
    Customer,
    EntityType,
    MISSING_TEXT,
    Order,
    OrderItem,
    Payment,
    Product,
    Review,
    Seller,
)
from .coercers import CoercionAudit, FallbackReason, FieldCoercer

logger = structlog.get_logger(__name__)

RawRecord = Mapping[str, Optional[str]]

_DIGITS = re.compile(r"[0-9]")
_WHITESPACE = re.compile(r"\s+")

LATITUDE_LIMIT = Decimal("90")
LONGITUDE_LIMIT = Decimal("180")

# Key fields whose absence rejects the row
REQUIRED_KEYS: Dict[EntityType, Tuple[str, ...]] = {
    EntityType.CUSTOMER: ("customer_id",),
    EntityType.ORDER: ("order_id",),
    EntityType.PRODUCT: ("product_id",),
    EntityType.SELLER: ("seller_id",),
    EntityType.CATEGORY_TRANSLATION: ("product_category_name",),
    EntityType.GEOLOCATION: ("geolocation_zip_code_prefix",),
    EntityType.ORDER_ITEM: ("order_id", "order_item_id"),
    EntityType.PAYMENT: ("order_id", "payment_sequential"),
    EntityType.REVIEW: ("review_id",),
}


@dataclass(frozen=True)
class RejectedRow:
    """A raw record dropped for a missing key field"""
    entity_type: EntityType
    missing_fields: Tuple[str, ...]
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def reason(self) -> str:
        return f"missing required key(s): {', '.join(self.missing_fields)}"


@dataclass(frozen=True)
class RawGeolocation:
    """
    Geolocation row after field coercion, before coordinate averaging.

    Coordinates stay exact decimals (or None) until the deduplicator averages
    them per zip prefix.
    """
    geolocation_zip_code_prefix: str
    lat: Any
    lng: Any
    geolocation_city: str
    geolocation_state: str


NormalizeResult = Union[CanonicalRecord, RawGeolocation, RejectedRow]


class Normalizer:
    """
    Production normalizer for raw warehouse records.

    Example:
        normalizer = Normalizer()
        result = normalizer.normalize(EntityType.ORDER, {"order_id": " o1 ", ...})
        if isinstance(result, RejectedRow):
            ...
    """

    def __init__(
        self,
        coercer: Optional[FieldCoercer] = None,
        audit: Optional[CoercionAudit] = None,
    ):
        self.audit = audit if audit is not None else CoercionAudit()
        if coercer is None:
            coercer = FieldCoercer(audit=self.audit)
        elif coercer.audit is None:
            coercer.audit = self.audit
        self.coercer = coercer
        self._handlers: Dict[EntityType, Callable[[RawRecord], NormalizeResult]] = {
            EntityType.CUSTOMER: self._normalize_customer,
            EntityType.ORDER: self._normalize_order,
            EntityType.PRODUCT: self._normalize_product,
            EntityType.SELLER: self._normalize_seller,
            EntityType.CATEGORY_TRANSLATION: self._normalize_category_translation,
            EntityType.GEOLOCATION: self._normalize_geolocation,
            EntityType.ORDER_ITEM: self._normalize_order_item,
            EntityType.PAYMENT: self._normalize_payment,
            EntityType.REVIEW: self._normalize_review,
        }

    def normalize(self, entity_type: EntityType, raw: RawRecord) -> NormalizeResult:
        """Normalize one raw record or reject it"""
        entity_type = EntityType(entity_type)
        missing = self._missing_keys(entity_type, raw)
        if missing:
            return RejectedRow(entity_type=entity_type, missing_fields=missing, raw=dict(raw))
        return self._handlers[entity_type](raw)

    def _missing_keys(self, entity_type: EntityType, raw: RawRecord) -> Tuple[str, ...]:
        missing = []
        for name in REQUIRED_KEYS[entity_type]:
            value = raw.get(name)
            if self.coercer.to_key(value) is None:
                missing.append(name)
            elif name in ("order_item_id", "payment_sequential"):
                # Integer part of a composite key; unparseable counts as missing
                if self.coercer.to_int(value, default=None, field=name) is None:
                    missing.append(name)
        return tuple(missing)

    # -------------------------------------------------------------------------
    # Dimensions
    # -------------------------------------------------------------------------

    def _normalize_customer(self, raw: RawRecord) -> Customer:
        c = self.coercer
        return Customer(
            customer_id=c.to_key(raw.get("customer_id")),
            customer_unique_id=c.to_text(raw.get("customer_unique_id"), field="customer_unique_id"),
            customer_zip_code_prefix=c.to_int(raw.get("customer_zip_code_prefix"), field="customer_zip_code_prefix"),
            customer_city=c.to_text(raw.get("customer_city"), upper=True, field="customer_city"),
            customer_state=c.to_text(raw.get("customer_state"), upper=True, field="customer_state"),
        )

    def _normalize_order(self, raw: RawRecord) -> Order:
        c = self.coercer
        return Order(
            order_id=c.to_key(raw.get("order_id")),
            customer_id=c.to_text(raw.get("customer_id"), field="order_customer_id"),
            order_status=c.to_text(raw.get("order_status"), field="order_status"),
            order_purchase_timestamp=c.to_datetime(
                raw.get("order_purchase_timestamp"), field="order_purchase_timestamp"
            ),
            order_approved_at=c.to_datetime(
                raw.get("order_approved_at"), default=None, field="order_approved_at"
            ),
            order_delivered_carrier_date=c.to_datetime(
                raw.get("order_delivered_carrier_date"), default=None, field="order_delivered_carrier_date"
            ),
            order_delivered_customer_date=c.to_datetime(
                raw.get("order_delivered_customer_date"), default=None, field="order_delivered_customer_date"
            ),
            order_estimated_delivery_date=c.to_date(
                raw.get("order_estimated_delivery_date"), default=None, field="order_estimated_delivery_date"
            ),
        )

    def _normalize_product(self, raw: RawRecord) -> Product:
        c = self.coercer

        def measurement(name: str):
            return c.to_decimal(raw.get(name), reject_non_positive=True, field=name)

        return Product(
            product_id=c.to_key(raw.get("product_id")),
            product_category_name=c.to_text(raw.get("product_category_name"), field="product_category_name"),
            product_name_length=c.to_int(
                raw.get("product_name_length", raw.get("product_name_lenght")), field="product_name_length"
            ),
            product_description_length=c.to_int(
                raw.get("product_description_length", raw.get("product_description_lenght")),
                field="product_description_length",
            ),
            product_photos_qty=c.to_int(raw.get("product_photos_qty"), field="product_photos_qty"),
            product_weight_g=measurement("product_weight_g"),
            product_length_cm=measurement("product_length_cm"),
            product_height_cm=measurement("product_height_cm"),
            product_width_cm=measurement("product_width_cm"),
        )

    def _normalize_seller(self, raw: RawRecord) -> Seller:
        c = self.coercer
        city = c.to_text(raw.get("seller_city"), upper=True, field="seller_city")
        if city != MISSING_TEXT and _DIGITS.search(city):
            city = c.fallback(MISSING_TEXT, "seller_city", FallbackReason.INVALID_TEXT)
        return Seller(
            seller_id=c.to_key(raw.get("seller_id")),
            seller_zip_code_prefix=c.to_int(raw.get("seller_zip_code_prefix"), field="seller_zip_code_prefix"),
            seller_city=city,
            seller_state=c.to_text(raw.get("seller_state"), upper=True, field="seller_state"),
        )

    def _normalize_category_translation(self, raw: RawRecord) -> CategoryTranslation:
        c = self.coercer
        return CategoryTranslation(
            product_category_name=c.to_key(raw.get("product_category_name")),
            product_category_name_english=c.to_text(
                raw.get("product_category_name_english"), field="product_category_name_english"
            ),
        )

    def _coordinate(self, raw: RawRecord, name: str, limit: Decimal) -> Optional[Decimal]:
        """Exact coordinate; impossible values are dropped from the zip average"""
        value = self.coercer.to_exact_decimal(raw.get(name), field=name)
        if value is not None and abs(value) > limit:
            return self.coercer.fallback(None, name, FallbackReason.OUT_OF_RANGE)
        return value

    def _normalize_geolocation(self, raw: RawRecord) -> RawGeolocation:
        c = self.coercer
        return RawGeolocation(
            geolocation_zip_code_prefix=c.to_key(raw.get("geolocation_zip_code_prefix")),
            lat=self._coordinate(raw, "geolocation_lat", LATITUDE_LIMIT),
            lng=self._coordinate(raw, "geolocation_lng", LONGITUDE_LIMIT),
            geolocation_city=c.to_text(raw.get("geolocation_city"), upper=True, field="geolocation_city"),
            geolocation_state=c.to_text(raw.get("geolocation_state"), upper=True, field="geolocation_state"),
        )

    # -------------------------------------------------------------------------
    # Facts
    # -------------------------------------------------------------------------

    def _normalize_order_item(self, raw: RawRecord) -> OrderItem:
        c = self.coercer
        return OrderItem(
            order_id=c.to_key(raw.get("order_id")),
            order_item_id=c.to_int(raw.get("order_item_id"), field="order_item_id"),
            product_id=c.to_text(raw.get("product_id"), field="order_item_product_id"),
            seller_id=c.to_text(raw.get("seller_id"), field="order_item_seller_id"),
            shipping_limit_date=c.to_datetime(raw.get("shipping_limit_date"), field="shipping_limit_date"),
            price=c.to_decimal(raw.get("price"), reject_non_positive=True, field="price"),
            # Zero freight is a legitimate value; missing or negative freight is zero
            freight_value=c.to_decimal(
                raw.get("freight_value"), default=c.to_decimal("0"), reject_negative=True, field="freight_value"
            ),
        )

    def _normalize_payment(self, raw: RawRecord) -> Payment:
        c = self.coercer
        payment_type = c.to_text(raw.get("payment_type"), lower=True, field="payment_type")
        if payment_type != MISSING_TEXT:
            payment_type = _WHITESPACE.sub("_", payment_type)
        return Payment(
            order_id=c.to_key(raw.get("order_id")),
            payment_sequential=c.to_int(raw.get("payment_sequential"), field="payment_sequential"),
            payment_type=payment_type,
            payment_installments=c.to_int(raw.get("payment_installments"), field="payment_installments"),
            payment_value=c.to_decimal(raw.get("payment_value"), field="payment_value"),
        )

    def _normalize_review(self, raw: RawRecord) -> Review:
        c = self.coercer
        return Review(
            review_id=c.to_key(raw.get("review_id")),
            order_id=c.to_text(raw.get("order_id"), field="review_order_id"),
            review_score=c.to_int(raw.get("review_score"), field="review_score"),
            review_creation_date=c.to_date(raw.get("review_creation_date"), field="review_creation_date"),
            review_answer_timestamp=c.to_datetime(
                raw.get("review_answer_timestamp"), field="review_answer_timestamp"
            ),
        )


def normalize_record(entity_type: EntityType, raw: RawRecord) -> NormalizeResult:
    """Convenience function to normalize a single raw record"""
    return Normalizer().normalize(entity_type, raw)
