"""
Trend Analysis Module

Month-over-month signals for metric snapshots, computed as an explicit fold
over each key's periods in (year, month) order:
- prev_period_value: value of the preceding period for the same key
- delta: current - previous
- growth_pct: delta / previous * 100
- rolling_avg: mean over the current and up to window-1 preceding periods
"""

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Literal, Optional, Sequence, Tuple

import polars as pl
import structlog

from ecom_analytics.errors import DuplicatePeriodError, GrowthDivisionError

logger = structlog.get_logger(__name__)

TREND_COLUMNS = ("prev_period_value", "delta", "growth_pct", "rolling_avg")


@dataclass(frozen=True)
class TrendPoint:
    """Trend signals for one period of one key"""
    value: Optional[float]
    prev_period_value: Optional[float]
    delta: Optional[float]
    growth_pct: Optional[float]
    rolling_avg: Optional[float]


class TrendAnalyzer:
    """
    Previous-period, growth and rolling-window analysis per key.

    Example:
        analyzer = TrendAnalyzer(window=3)
        trends = analyzer.analyze(monthly, key_columns=["seller_id"], value_column="total_revenue")
    """

    def __init__(self, window: int = 3, zero_policy: Literal["null", "raise"] = "null"):
        if window < 1:
            raise ValueError("Rolling window must be at least 1 period")
        if zero_policy not in ("null", "raise"):
            raise ValueError(f"Unknown zero growth policy: {zero_policy}")
        self.window = window
        self.zero_policy = zero_policy

    def _growth(self, delta: Optional[float], prev: Optional[float]) -> Optional[float]:
        if delta is None or prev is None:
            return None
        if prev == 0:
            if self.zero_policy == "raise":
                raise GrowthDivisionError(
                    "Growth percentage undefined for a zero previous-period value",
                    details={"delta": delta},
                )
            return None
        return delta / prev * 100

    def fold(self, values: Sequence[Optional[float]]) -> List[TrendPoint]:
        """
        Fold one key's period values, already in chronological order.

        The first period has no previous value. Nulls are skipped by the
        rolling average; a window of only nulls averages to None.
        """
        buffer: Deque[Optional[float]] = deque(maxlen=self.window)
        prev: Optional[float] = None
        points = []

        for value in values:
            value = None if value is None else float(value)
            buffer.append(value)

            delta = None if (value is None or prev is None) else value - prev
            present = [v for v in buffer if v is not None]
            rolling = sum(present) / len(present) if present else None

            points.append(TrendPoint(
                value=value,
                prev_period_value=prev,
                delta=delta,
                growth_pct=self._growth(delta, prev),
                rolling_avg=rolling,
            ))
            prev = value

        return points

    def analyze(
        self,
        snapshots: pl.DataFrame,
        key_columns: Sequence[str],
        value_column: str,
        prefix: str = "",
    ) -> pl.DataFrame:
        """
        Append trend columns to metric snapshots.

        Rows are partitioned by key and ordered by (year, month) here; input
        order does not matter. A (key, year, month) seen twice raises
        DuplicatePeriodError.

        Args:
            snapshots: Frame with key columns, year, month and the value column
            key_columns: Partition key columns
            value_column: Metric to analyze
            prefix: Prepended to the trend column names, so several metrics of
                one frame can be analyzed in turn

        Returns:
            Snapshots sorted by key, year, month with trend columns appended
        """
        keys = list(key_columns)
        ordered = snapshots.sort(keys + ["year", "month"])

        partitions: Dict[Tuple, List[int]] = {}
        seen = set()
        for index, row in enumerate(ordered.select(keys + ["year", "month"]).iter_rows()):
            key, period = row[:-2], row[-2:]
            if (key, period) in seen:
                raise DuplicatePeriodError(
                    f"Duplicate period {period[0]}-{period[1]:02d} for key {key}",
                    details={"key": key, "year": period[0], "month": period[1]},
                )
            seen.add((key, period))
            partitions.setdefault(key, []).append(index)

        values = ordered[value_column].to_list()
        columns: Dict[str, List[Optional[float]]] = {c: [None] * len(ordered) for c in TREND_COLUMNS}
        for indices in partitions.values():
            points = self.fold([values[i] for i in indices])
            for i, point in zip(indices, points):
                for c in TREND_COLUMNS:
                    columns[c][i] = getattr(point, c)

        logger.debug(
            "Analyzed trends",
            value_column=value_column,
            partitions=len(partitions),
            periods=len(ordered),
        )
        return ordered.with_columns([
            pl.Series(f"{prefix}{c}", columns[c], dtype=pl.Float64) for c in TREND_COLUMNS
        ])
