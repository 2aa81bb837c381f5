"""
Tier Classification Module

Maps numeric metrics onto categorical tier labels.

Fixed-threshold rules compare against constant bounds. Relative rules are
two-pass: the batch mean is reduced first, then every row is mapped through
a fixed rule whose bounds are multiples of that mean. A null value always
falls through to the last tier.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Literal, Optional, Sequence, Tuple
import math

import numpy as np
import polars as pl
import structlog

from ecom_analytics.config.settings import TierSettings

logger = structlog.get_logger(__name__)

Direction = Literal["ge", "le"]


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


@dataclass(frozen=True)
class FixedThresholdRule:
    """
    Ordered (bound, label) pairs checked first to last.

    With direction "ge" a value matches when value >= bound (higher is
    better); with "le" when value <= bound (lower is better).
    """
    name: str
    thresholds: Tuple[Tuple[float, str], ...]
    default: str
    direction: Direction = "ge"

    def classify(self, value: Any) -> str:
        if _is_missing(value):
            return self.default
        for bound, label in self.thresholds:
            if self.direction == "ge" and value >= bound:
                return label
            if self.direction == "le" and value <= bound:
                return label
        return self.default

    @property
    def labels(self) -> List[str]:
        return [label for _, label in self.thresholds] + [self.default]


@dataclass(frozen=True)
class RelativeThresholdRule:
    """Thresholds expressed as multiples of the batch mean"""
    name: str
    multipliers: Tuple[Tuple[float, str], ...]
    default: str
    direction: Direction = "ge"

    def fit(self, values: Iterable[Any]) -> FixedThresholdRule:
        """Reduce the batch to its mean and close a fixed rule over it"""
        present = [float(v) for v in values if not _is_missing(v)]
        if not present:
            # No statistics: every value is null, so everything is the last tier
            return FixedThresholdRule(self.name, (), self.default, self.direction)

        mean = float(np.mean(np.asarray(present, dtype=float)))
        thresholds = tuple((mean * m, label) for m, label in self.multipliers)
        logger.debug("Fitted relative tier rule", rule=self.name, batch_mean=mean)
        return FixedThresholdRule(self.name, thresholds, self.default, self.direction)


class TierClassifier:
    """
    Standard tier rule sets, built from TierSettings.

    Example:
        classifier = TierClassifier()
        classifier.classify(4.6, classifier.review)            # "Excellent"
        df = classifier.classify_column(df, "total_revenue", classifier.relative_revenue, "revenue_tier")
    """

    def __init__(self, settings: Optional[TierSettings] = None):
        s = settings or TierSettings()
        self.settings = s

        # Fixed
        self.shipping = FixedThresholdRule(
            "shipping",
            ((s.shipping_fast_days, "Fast"), (s.shipping_moderate_days, "Moderate")),
            "Slow",
            "le",
        )
        self.review = FixedThresholdRule(
            "review",
            ((s.review_excellent, "Excellent"), (s.review_good, "Good")),
            "Poor",
        )
        self.category_shipping = FixedThresholdRule(
            "category_shipping",
            (
                (s.category_shipping_fast_days, "Fast Shipping"),
                (s.category_shipping_moderate_days, "Moderate Shipping"),
            ),
            "Slow Shipping",
            "le",
        )
        self.price = FixedThresholdRule(
            "price",
            ((s.price_cheap, "Cheap"), (s.price_moderate, "Moderate")),
            "Expensive",
            "le",
        )

        # RFM
        self.monetary = FixedThresholdRule(
            "monetary", ((s.monetary_high, "High"), (s.monetary_medium, "Medium")), "Low"
        )
        self.frequency = FixedThresholdRule(
            "frequency", ((s.frequency_high, "High"), (s.frequency_medium, "Medium")), "Low"
        )
        self.recency = FixedThresholdRule(
            "recency",
            ((s.recency_high_days, "High"), (s.recency_medium_days, "Medium")),
            "Low",
            "le",
        )

        # Relative to the batch mean
        self.relative_revenue = self._relative("revenue", "Revenue")
        self.relative_volume = self._relative("volume", "Volume")
        self.relative_satisfaction = RelativeThresholdRule(
            "satisfaction",
            (
                (s.satisfaction_excellent_multiplier, "Excellent Satisfaction"),
                (s.relative_moderate_multiplier, "Good Satisfaction"),
            ),
            "Low Satisfaction",
        )
        self.relative_shipping = RelativeThresholdRule(
            "shipping_speed",
            (
                (s.shipping_fast_multiplier, "Fast Shipping"),
                (s.relative_moderate_multiplier, "Moderate Shipping"),
            ),
            "Slow Shipping",
            "le",
        )

    def _relative(self, name: str, suffix: str) -> RelativeThresholdRule:
        return RelativeThresholdRule(
            name,
            (
                (self.settings.relative_high_multiplier, f"High {suffix}"),
                (self.settings.relative_moderate_multiplier, f"Moderate {suffix}"),
            ),
            f"Low {suffix}",
        )

    def classify(self, value: Any, rule: FixedThresholdRule) -> str:
        return rule.classify(value)

    def classify_all(self, values: Sequence[Any], rule: Any) -> List[str]:
        """Classify a batch; relative rules are fitted to this batch first"""
        values = list(values)
        if isinstance(rule, RelativeThresholdRule):
            rule = rule.fit(values)
        return [rule.classify(v) for v in values]

    def classify_column(
        self,
        df: pl.DataFrame,
        column: str,
        rule: Any,
        alias: str,
    ) -> pl.DataFrame:
        """Append a tier label column computed from one metric column"""
        labels = self.classify_all(df[column].to_list(), rule)
        return df.with_columns(pl.Series(alias, labels, dtype=pl.Utf8))
