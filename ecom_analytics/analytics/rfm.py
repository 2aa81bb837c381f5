"""
RFM Segmentation Module

Recency / Frequency / Monetary metrics per customer, relative to an as-of
instant, with fixed-threshold tiers.
"""

from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

import polars as pl
import structlog

from ecom_analytics.store.snapshot import CanonicalSnapshot
from .tiers import TierClassifier
from .views import customers_view, order_payment_totals, orders_view

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CustomerRFM:
    customer_id: str
    recency_days: Optional[int]
    frequency: int
    monetary: Optional[float]
    customer_lifetime_days: Optional[int]
    monetary_tier: str
    frequency_tier: str
    recency_tier: str


RFM_SCHEMA = {
    "customer_id": pl.Utf8,
    "recency_days": pl.Int64,
    "frequency": pl.Int64,
    "monetary": pl.Float64,
    "customer_lifetime_days": pl.Int64,
    "monetary_tier": pl.Utf8,
    "frequency_tier": pl.Utf8,
    "recency_tier": pl.Utf8,
}


def _as_day(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def _days_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    """Whole calendar days from start to end"""
    if start is None or end is None:
        return None
    return (_as_day(end) - _as_day(start)).days


class RFMCalculator:
    """
    Per-customer RFM bound to one canonical snapshot.

    Example:
        rfm = RFMCalculator(snapshot)
        one = rfm.compute_rfm("c1", as_of=datetime(2018, 10, 1))
        table = rfm.compute_all(as_of=datetime(2018, 10, 1))
    """

    def __init__(self, snapshot: CanonicalSnapshot, classifier: Optional[TierClassifier] = None):
        self.snapshot = snapshot
        self.classifier = classifier or TierClassifier()
        self._aggregates: Optional[Dict[str, Dict[str, Any]]] = None

    def _customer_aggregates(self) -> Dict[str, Dict[str, Any]]:
        """first/last purchase, order count and payment total per customer"""
        if self._aggregates is not None:
            return self._aggregates

        orders = orders_view(self.snapshot).select(
            ["order_id", "customer_id", "order_purchase_timestamp"]
        )
        frame = (
            customers_view(self.snapshot)
            .select("customer_id")
            .join(orders, on="customer_id", how="left")
            .join(order_payment_totals(self.snapshot), on="order_id", how="left")
            .group_by("customer_id")
            .agg(
                pl.col("order_purchase_timestamp").min().alias("first_purchase"),
                pl.col("order_purchase_timestamp").max().alias("last_purchase"),
                pl.col("order_id").drop_nulls().n_unique().cast(pl.Int64).alias("frequency"),
                pl.col("payment_total").sum().alias("monetary"),
                pl.col("payment_total").is_not_null().sum().alias("paid_orders"),
            )
        )

        self._aggregates = {
            row["customer_id"]: row for row in frame.iter_rows(named=True)
        }
        return self._aggregates

    def _to_rfm(self, customer_id: str, row: Optional[Dict[str, Any]], as_of: datetime) -> CustomerRFM:
        if row is None:
            row = {"first_purchase": None, "last_purchase": None, "frequency": 0, "paid_orders": 0}

        monetary = row.get("monetary") if row["paid_orders"] else None
        recency = _days_between(row["last_purchase"], as_of)
        c = self.classifier
        return CustomerRFM(
            customer_id=customer_id,
            recency_days=recency,
            frequency=row["frequency"],
            monetary=monetary,
            customer_lifetime_days=_days_between(row["first_purchase"], row["last_purchase"]),
            monetary_tier=c.classify(monetary, c.monetary),
            frequency_tier=c.classify(row["frequency"], c.frequency),
            recency_tier=c.classify(recency, c.recency),
        )

    def compute_rfm(self, customer_id: str, as_of: datetime) -> CustomerRFM:
        """RFM for one customer; unknown or order-less customers get null aggregates"""
        row = self._customer_aggregates().get(customer_id)
        return self._to_rfm(customer_id, row, as_of)

    def compute_all(self, as_of: datetime) -> pl.DataFrame:
        """RFM for every customer, highest monetary first"""
        aggregates = self._customer_aggregates()
        records: List[Dict[str, Any]] = [
            asdict(self._to_rfm(customer_id, row, as_of))
            for customer_id, row in aggregates.items()
        ]
        df = pl.DataFrame(records, schema=RFM_SCHEMA).sort(
            ["monetary", "customer_id"],
            descending=[True, False],
            nulls_last=True,
        )
        logger.info(
            "Computed customer RFM",
            customers=len(df),
            as_of=as_of.isoformat(),
        )
        return df
