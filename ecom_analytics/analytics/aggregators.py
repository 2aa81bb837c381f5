"""
Metric Aggregation Module

Groups the order-item fact frame by dimension keys and calendar month and
computes the standard metric snapshot:
- total_orders: distinct orders (multi-item orders count once)
- total_revenue: sum of price + freight, nulls as zero
- avg_review_score / avg_shipping_days: means over distinct orders, nulls excluded
"""

from enum import Enum
from typing import List, Optional, Sequence

import polars as pl
import structlog

logger = structlog.get_logger(__name__)

UNKNOWN = "unknown"


class Metric(str, Enum):
    """Metrics available in a snapshot"""
    TOTAL_ORDERS = "total_orders"
    TOTAL_REVENUE = "total_revenue"
    AVG_REVIEW_SCORE = "avg_review_score"
    AVG_SHIPPING_DAYS = "avg_shipping_days"


DEFAULT_METRICS = (
    Metric.TOTAL_ORDERS,
    Metric.TOTAL_REVENUE,
    Metric.AVG_REVIEW_SCORE,
    Metric.AVG_SHIPPING_DAYS,
)

# Order-level attributes averaged once per order rather than once per item
_ORDER_LEVEL = {
    Metric.AVG_REVIEW_SCORE: "review_score",
    Metric.AVG_SHIPPING_DAYS: "shipping_days",
}


class MetricAggregator:
    """
    Aggregate order-item facts into per-period metric snapshots.

    Example:
        aggregator = MetricAggregator()
        monthly = aggregator.aggregate(facts, group_by=["product_category_name_english"])
    """

    def __init__(self, unknown_label: str = UNKNOWN):
        self.unknown_label = unknown_label

    def aggregate(
        self,
        facts: pl.DataFrame,
        group_by: Sequence[str],
        time_column: Optional[str] = "order_purchase_timestamp",
        metrics: Optional[Sequence[Metric]] = None,
    ) -> pl.DataFrame:
        """
        Aggregate facts by dimension key(s) and (year, month).

        Args:
            facts: Order-item fact frame (see analytics.views.order_items_view)
            group_by: Dimension columns; a null dimension becomes "unknown"
            time_column: Bucketing timestamp; rows where it is null are
                excluded. None aggregates over all time.
            metrics: Metrics to compute (default: all)

        Returns:
            One row per (key..., year, month), ordered by key, year, month
        """
        metrics = [Metric(m) for m in (metrics or DEFAULT_METRICS)]
        keys: List[str] = list(group_by)

        df = facts.with_columns([
            pl.col(c).cast(pl.Utf8).fill_null(self.unknown_label).alias(c) for c in keys
        ])

        if time_column is not None:
            input_rows = len(df)
            df = df.filter(pl.col(time_column).is_not_null()).with_columns(
                pl.col(time_column).dt.year().cast(pl.Int32).alias("year"),
                pl.col(time_column).dt.month().cast(pl.Int32).alias("month"),
            )
            keys = keys + ["year", "month"]
            excluded = input_rows - len(df)
            if excluded:
                logger.debug("Excluded facts without bucketing timestamp", excluded=excluded)

        item_aggs = []
        if Metric.TOTAL_ORDERS in metrics:
            item_aggs.append(
                pl.col("order_id").drop_nulls().n_unique().cast(pl.Int64).alias(Metric.TOTAL_ORDERS.value)
            )
        if Metric.TOTAL_REVENUE in metrics:
            item_aggs.append(
                pl.col("item_total_value").fill_null(0.0).sum().alias(Metric.TOTAL_REVENUE.value)
            )

        if item_aggs:
            result = df.group_by(keys).agg(item_aggs)
        else:
            result = df.select(keys).unique()

        order_metrics = [m for m in metrics if m in _ORDER_LEVEL]
        if order_metrics:
            per_order = df.unique(subset=keys + ["order_id"], keep="first", maintain_order=True)
            order_aggs = per_order.group_by(keys).agg([
                pl.col(_ORDER_LEVEL[m]).cast(pl.Float64).mean().alias(m.value) for m in order_metrics
            ])
            result = result.join(order_aggs, on=keys, how="left")

        result = result.select(keys + [m.value for m in metrics]).sort(keys)

        logger.info(
            "Aggregated metric snapshots",
            group_by=list(group_by),
            bucketed=time_column is not None,
            rows=len(result),
        )
        return result
