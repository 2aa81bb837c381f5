"""
Alert Generation Module

Alerts are a filtered projection of trend output:
- RevenueDrop: revenue delta against the previous period is negative
- SlowShippingAlert: rolling average shipping days strictly above the threshold
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


class AlertType(str, Enum):
    """Types of alerts raised on trend records"""
    REVENUE_DROP = "RevenueDrop"
    SLOW_SHIPPING = "SlowShippingAlert"


@dataclass(frozen=True)
class Alert:
    """Single alert for one key and period"""
    alert_type: AlertType
    key: Dict[str, Any]
    year: int
    month: int
    value: float
    threshold: float
    message: str
    details: Dict[str, Any] = field(default_factory=dict, compare=False)


class AlertGenerator:
    """
    Revenue-drop and slow-shipping alerts over trend frames.

    Expects the revenue trend columns with no prefix (delta,
    prev_period_value) and the shipping trend columns with the "shipping_"
    prefix (shipping_rolling_avg), as produced by TrendAnalyzer.analyze.

    Example:
        generator = AlertGenerator(shipping_threshold=10.0)
        alerts = generator.generate_alerts(trends, key_columns=["seller_id"])
    """

    def __init__(
        self,
        shipping_threshold: float = 10.0,
        delta_column: str = "delta",
        shipping_rolling_column: str = "shipping_rolling_avg",
    ):
        self.shipping_threshold = shipping_threshold
        self.delta_column = delta_column
        self.shipping_rolling_column = shipping_rolling_column

    def _revenue_alert(self, row: Dict[str, Any], key: Dict[str, Any]) -> Optional[Alert]:
        delta = row.get(self.delta_column)
        if delta is None or not delta < 0:
            return None
        return Alert(
            alert_type=AlertType.REVENUE_DROP,
            key=key,
            year=row["year"],
            month=row["month"],
            value=float(delta),
            threshold=0.0,
            message=f"Revenue dropped by {abs(delta):.2f} in {row['year']}-{row['month']:02d}",
            details={
                "total_revenue": row.get("total_revenue"),
                "prev_period_value": row.get("prev_period_value"),
            },
        )

    def _shipping_alert(self, row: Dict[str, Any], key: Dict[str, Any]) -> Optional[Alert]:
        rolling = row.get(self.shipping_rolling_column)
        if rolling is None or not rolling > self.shipping_threshold:
            return None
        return Alert(
            alert_type=AlertType.SLOW_SHIPPING,
            key=key,
            year=row["year"],
            month=row["month"],
            value=float(rolling),
            threshold=self.shipping_threshold,
            message=(
                f"Rolling shipping average {rolling:.2f} days exceeds "
                f"{self.shipping_threshold:g} in {row['year']}-{row['month']:02d}"
            ),
            details={"avg_shipping_days": row.get("avg_shipping_days")},
        )

    def generate_alerts(self, trends: pl.DataFrame, key_columns: Sequence[str]) -> List[Alert]:
        """
        Scan trend records and emit alerts.

        Args:
            trends: Trend frame with key columns, year, month and trend columns
            key_columns: Columns identifying the alerted entity

        Returns:
            Alerts in trend row order, revenue before shipping within a period
        """
        alerts: List[Alert] = []
        for row in trends.iter_rows(named=True):
            key = {c: row[c] for c in key_columns}
            for check in (self._revenue_alert, self._shipping_alert):
                alert = check(row, key)
                if alert is not None:
                    alerts.append(alert)

        revenue_drops = sum(1 for a in alerts if a.alert_type == AlertType.REVENUE_DROP)
        if alerts:
            logger.warning(
                f"Generated {len(alerts)} alerts",
                revenue_drops=revenue_drops,
                slow_shipping=len(alerts) - revenue_drops,
            )
        else:
            logger.info("No alerts generated", periods_checked=len(trends))
        return alerts

    def alert_frame(self, trends: pl.DataFrame) -> pl.DataFrame:
        """
        Tabular projection: trend rows with at least one alert, with
        revenue_alert and shipping_alert label columns.
        """
        delta = pl.col(self.delta_column)
        rolling = pl.col(self.shipping_rolling_column)
        return (
            trends.with_columns(
                pl.when(delta < 0)
                .then(pl.lit(AlertType.REVENUE_DROP.value))
                .otherwise(None)
                .alias("revenue_alert"),
                pl.when(rolling > self.shipping_threshold)
                .then(pl.lit(AlertType.SLOW_SHIPPING.value))
                .otherwise(None)
                .alias("shipping_alert"),
            )
            .filter(pl.col("revenue_alert").is_not_null() | pl.col("shipping_alert").is_not_null())
        )


def generate_alerts(
    trends: pl.DataFrame,
    key_columns: Sequence[str],
    shipping_threshold: float = 10.0,
) -> List[Alert]:
    """Convenience function for alert generation with default columns"""
    return AlertGenerator(shipping_threshold=shipping_threshold).generate_alerts(trends, key_columns)
