"""
Field Coercion Module

Converts single raw string fields into typed values. Handles:
- Whitespace trimming and case normalization
- Integer / decimal / float parsing with sentinel fallback
- Multi-format timestamp parsing
- Range rejection for physical measurements and prices

Coercion never raises for malformed input. Every fallback is reported to an
optional CoercionAudit so a defaulted field can be told apart from a real
sentinel at the source.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence, Tuple
import math
import re

import structlog

from ecom_analytics.store.models import (
    MISSING_DATE,
    MISSING_DATETIME,
    MISSING_DECIMAL,
    MISSING_NUMBER,
    MISSING_TEXT,
)

logger = structlog.get_logger(__name__)

DEFAULT_DATETIME_FORMATS: Tuple[str, ...] = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
)

_CURRENCY_CHARS = re.compile(r"[$€£¥R\s]")
# A comma is accepted only as a thousands separator: "1,234.5" but not "12,50"
_GROUPED_NUMBER = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d*)?$")
_TWO_PLACES = Decimal("0.01")

# Storage bounds of the canonical columns: DECIMAL(10,2) and INT
DECIMAL_LIMIT = Decimal("100000000")
INT_MIN, INT_MAX = -(2 ** 31), 2 ** 31 - 1


class FallbackReason:
    MISSING = "missing"
    UNPARSEABLE = "unparseable"
    NON_POSITIVE = "non_positive"
    NEGATIVE = "negative"
    INVALID_TEXT = "invalid_text"
    OUT_OF_RANGE = "out_of_range"


@dataclass
class CoercionAudit:
    """Counts of fields resolved to a default, keyed by (field, reason)"""
    counts: Counter = field(default_factory=Counter)

    def record(self, field_name: Optional[str], reason: str) -> None:
        self.counts[(field_name or "<anonymous>", reason)] += 1

    def merge(self, other: "CoercionAudit") -> None:
        self.counts.update(other.counts)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def by_field(self) -> Dict[str, Dict[str, int]]:
        summary: Dict[str, Dict[str, int]] = {}
        for (field_name, reason), count in sorted(self.counts.items()):
            summary.setdefault(field_name, {})[reason] = count
        return summary


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class FieldCoercer:
    """
    Typed coercion of raw string fields with policy defaults.

    Example:
        coercer = FieldCoercer(audit=CoercionAudit())
        price = coercer.to_decimal(" 19.90 ", reject_non_positive=True, field="price")
    """

    def __init__(
        self,
        datetime_formats: Optional[Sequence[str]] = None,
        audit: Optional[CoercionAudit] = None,
    ):
        self.datetime_formats: List[str] = list(datetime_formats or DEFAULT_DATETIME_FORMATS)
        self.audit = audit

    def fallback(self, default: Any, field_name: Optional[str], reason: str) -> Any:
        if self.audit is not None:
            self.audit.record(field_name, reason)
        return default

    # -------------------------------------------------------------------------
    # Text
    # -------------------------------------------------------------------------

    def to_text(
        self,
        value: Any,
        default: Optional[str] = MISSING_TEXT,
        upper: bool = False,
        lower: bool = False,
        field: Optional[str] = None,
    ) -> Optional[str]:
        """Trim, optionally change case; blank becomes the default"""
        if _blank(value):
            return self.fallback(default, field, FallbackReason.MISSING)

        text = str(value).strip()
        if upper:
            text = text.upper()
        elif lower:
            text = text.lower()
        return text

    def to_key(self, value: Any) -> Optional[str]:
        """Trimmed key field; None means the row must be rejected"""
        if _blank(value):
            return None
        return str(value).strip()

    # -------------------------------------------------------------------------
    # Numbers
    # -------------------------------------------------------------------------

    def _parse_decimal(self, value: Any) -> Optional[Decimal]:
        if isinstance(value, Decimal):
            parsed = value
        elif isinstance(value, (int, float)):
            parsed = Decimal(str(value))
        else:
            cleaned = _CURRENCY_CHARS.sub("", str(value))
            if "," in cleaned:
                if not _GROUPED_NUMBER.match(cleaned):
                    return None
                cleaned = cleaned.replace(",", "")
            try:
                parsed = Decimal(cleaned)
            except InvalidOperation:
                return None
        if not parsed.is_finite():
            return None
        return parsed

    def to_int(
        self,
        value: Any,
        default: Optional[int] = MISSING_NUMBER,
        field: Optional[str] = None,
    ) -> Optional[int]:
        """Integer field; accepts integral decimals such as "3.0" """
        if _blank(value):
            return self.fallback(default, field, FallbackReason.MISSING)

        parsed = self._parse_decimal(value)
        if parsed is None or not INT_MIN <= parsed <= INT_MAX:
            return self.fallback(default, field, FallbackReason.UNPARSEABLE)
        if parsed != parsed.to_integral_value():
            return self.fallback(default, field, FallbackReason.UNPARSEABLE)
        return int(parsed)

    def to_decimal(
        self,
        value: Any,
        default: Optional[Decimal] = MISSING_DECIMAL,
        reject_non_positive: bool = False,
        reject_negative: bool = False,
        field: Optional[str] = None,
    ) -> Optional[Decimal]:
        """Two-place decimal within DECIMAL(10,2); optionally reject values <= 0 or < 0"""
        if _blank(value):
            return self.fallback(default, field, FallbackReason.MISSING)

        parsed = self._parse_decimal(value)
        if parsed is None or abs(parsed) >= DECIMAL_LIMIT:
            return self.fallback(default, field, FallbackReason.UNPARSEABLE)
        if reject_non_positive and parsed <= 0:
            return self.fallback(default, field, FallbackReason.NON_POSITIVE)
        if reject_negative and parsed < 0:
            return self.fallback(default, field, FallbackReason.NEGATIVE)
        rounded = parsed.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
        if abs(rounded) >= DECIMAL_LIMIT:
            return self.fallback(default, field, FallbackReason.UNPARSEABLE)
        return rounded

    def to_float(
        self,
        value: Any,
        default: Optional[float] = float(MISSING_NUMBER),
        reject_non_positive: bool = False,
        field: Optional[str] = None,
    ) -> Optional[float]:
        """Unrounded float field"""
        parsed = self.to_exact_decimal(value, field=field)
        if parsed is None:
            return default
        if reject_non_positive and parsed <= 0:
            return self.fallback(default, field, FallbackReason.NON_POSITIVE)
        result = float(parsed)
        if math.isinf(result):
            return self.fallback(default, field, FallbackReason.UNPARSEABLE)
        return result

    def to_exact_decimal(self, value: Any, field: Optional[str] = None) -> Optional[Decimal]:
        """Unrounded decimal or None; used where averaging follows"""
        if _blank(value):
            return self.fallback(None, field, FallbackReason.MISSING)
        parsed = self._parse_decimal(value)
        if parsed is None:
            return self.fallback(None, field, FallbackReason.UNPARSEABLE)
        return parsed

    # -------------------------------------------------------------------------
    # Dates
    # -------------------------------------------------------------------------

    def _parse_datetime(self, value: Any) -> Optional[datetime]:
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)

        text = str(value).strip()
        for fmt in self.datetime_formats:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue

        # Fractional seconds are dropped rather than configured per format
        if "." in text:
            return self._parse_datetime(text.split(".", 1)[0])
        return None

    def to_datetime(
        self,
        value: Any,
        default: Optional[datetime] = MISSING_DATETIME,
        field: Optional[str] = None,
    ) -> Optional[datetime]:
        """Timestamp field; pass default=None for optional columns"""
        if _blank(value):
            return self.fallback(default, field, FallbackReason.MISSING)

        parsed = self._parse_datetime(value)
        if parsed is None:
            return self.fallback(default, field, FallbackReason.UNPARSEABLE)
        return parsed

    def to_date(
        self,
        value: Any,
        default: Optional[date] = MISSING_DATE,
        field: Optional[str] = None,
    ) -> Optional[date]:
        """Calendar date field; time components are discarded"""
        if _blank(value):
            return self.fallback(default, field, FallbackReason.MISSING)

        parsed = self._parse_datetime(value)
        if parsed is None:
            return self.fallback(default, field, FallbackReason.UNPARSEABLE)
        return parsed.date()


_default_coercer = FieldCoercer()


def coerce(value: Any, target_type: str, **policy: Any) -> Any:
    """
    Convenience function to coerce one raw value.

    Args:
        value: Raw field value
        target_type: "int", "decimal", "float", "datetime", "date" or "text"
        **policy: Keyword policy passed to the matching FieldCoercer method

    Returns:
        Coerced value or the policy default
    """
    handlers = {
        "int": _default_coercer.to_int,
        "decimal": _default_coercer.to_decimal,
        "float": _default_coercer.to_float,
        "datetime": _default_coercer.to_datetime,
        "date": _default_coercer.to_date,
        "text": _default_coercer.to_text,
    }
    if target_type not in handlers:
        raise ValueError(f"Unknown target type: {target_type}")
    return handlers[target_type](value, **policy)
