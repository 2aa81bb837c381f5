"""
Canonical Store Module
"""
from .models import (
    CanonicalRecord,
    CategoryTranslation,
    Customer,
    EntityType,
    Geolocation,
    Order,
    OrderItem,
    Payment,
    Product,
    RECORD_TYPES,
    Review,
    Seller,
)
from .snapshot import CanonicalSnapshot, CanonicalStore, CanonicalTable

__all__ = [
    "CanonicalRecord",
    "CategoryTranslation",
    "Customer",
    "EntityType",
    "Geolocation",
    "Order",
    "OrderItem",
    "Payment",
    "Product",
    "RECORD_TYPES",
    "Review",
    "Seller",
    "CanonicalSnapshot",
    "CanonicalStore",
    "CanonicalTable",
]
