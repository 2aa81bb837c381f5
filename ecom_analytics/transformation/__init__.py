"""
Data Transformation Module
"""
from .coercers import CoercionAudit, FieldCoercer, coerce
from .deduplicators import Deduplicator, dedup_reviews
from .normalizers import Normalizer, RejectedRow, normalize_record
from .transformers import ETLTransformer, LoadReport

__all__ = [
    "CoercionAudit",
    "FieldCoercer",
    "coerce",
    "Deduplicator",
    "dedup_reviews",
    "Normalizer",
    "RejectedRow",
    "normalize_record",
    "ETLTransformer",
    "LoadReport",
]
