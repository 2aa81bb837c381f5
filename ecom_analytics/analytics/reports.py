"""
Analytical Reports

Business-facing reports bound to one canonical snapshot:
- category_finance / low_revenue_high_volume_categories / category_performance
- city_performance / city_category_performance / city_top_categories
- seller_performance / seller_category_insights
- monthly_category_trends
- monthly_category_alerts / seller_monthly_alerts
- customer_rfm
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import polars as pl
import structlog

from ecom_analytics.config import get_settings
from ecom_analytics.config.settings import Settings
from ecom_analytics.store.snapshot import CanonicalSnapshot
from .aggregators import Metric, MetricAggregator
from .alerts import Alert, AlertGenerator
from .rfm import RFMCalculator
from .tiers import TierClassifier
from .trends import TrendAnalyzer
from .views import order_items_view, order_payment_totals, products_view, sellers_view

logger = structlog.get_logger(__name__)

CATEGORY = "product_category_name_english"


@dataclass
class ReportSet:
    """All reports of one analytics run"""
    snapshot_version: int
    frames: Dict[str, pl.DataFrame] = field(default_factory=dict)
    alerts: List[Alert] = field(default_factory=list)


class ReportBuilder:
    """
    Builds every analytical report from one snapshot.

    Example:
        builder = ReportBuilder(snapshot)
        reports = builder.build_all(as_of=datetime(2018, 10, 1))
        reports.frames["seller_performance"]
    """

    def __init__(self, snapshot: CanonicalSnapshot, settings: Optional[Settings] = None):
        self.snapshot = snapshot
        self.settings = settings or get_settings()
        self.classifier = TierClassifier(self.settings.tiers)
        self.aggregator = MetricAggregator()
        self.analyzer = TrendAnalyzer(
            window=self.settings.analytics.rolling_window,
            zero_policy=self.settings.analytics.zero_growth_policy,
        )
        self.alert_generator = AlertGenerator(
            shipping_threshold=self.settings.analytics.shipping_alert_threshold,
        )
        self._facts: Optional[pl.DataFrame] = None

    @property
    def facts(self) -> pl.DataFrame:
        if self._facts is None:
            self._facts = order_items_view(self.snapshot)
        return self._facts

    # -------------------------------------------------------------------------
    # Category
    # -------------------------------------------------------------------------

    def category_finance(self) -> pl.DataFrame:
        """Orders, revenue and average price per category with relative tiers"""
        priced = self.facts.filter(pl.col("price").is_not_null())
        df = self.aggregator.aggregate(
            priced,
            group_by=[CATEGORY],
            time_column=None,
            metrics=[Metric.TOTAL_ORDERS, Metric.TOTAL_REVENUE],
        )
        avg_price = (
            priced.with_columns(pl.col(CATEGORY).fill_null(self.aggregator.unknown_label))
            .group_by(CATEGORY)
            .agg(pl.col("price").mean().round(2).alias("avg_price"))
        )
        df = df.join(avg_price, on=CATEGORY, how="left")

        c = self.classifier
        df = c.classify_column(df, "total_revenue", c.relative_revenue, "revenue_tier")
        df = c.classify_column(df, "total_orders", c.relative_volume, "volume_tier")
        return df.sort(["total_revenue", CATEGORY], descending=[True, False])

    def low_revenue_volume_categories(self, finance: Optional[pl.DataFrame] = None) -> pl.DataFrame:
        """Categories in the lowest revenue tier that still sell at moderate or high volume"""
        df = finance if finance is not None else self.category_finance()
        c = self.classifier
        busy = [label for _, label in c.relative_volume.multipliers]
        return df.filter(
            (pl.col("revenue_tier") == c.relative_revenue.default)
            & pl.col("volume_tier").is_in(busy)
        ).sort(["total_orders", CATEGORY], descending=[True, False])

    def category_performance(self) -> pl.DataFrame:
        """Per-category product count, satisfaction, shipping and price tiers"""
        facts = self.facts

        score_by_product = (
            facts.filter(pl.col("product_id").is_not_null())
            .unique(subset=["product_id", "order_id"])
            .group_by("product_id")
            .agg(pl.col("review_score").mean().alias("product_avg_score"))
        )
        product_details = (
            facts.filter(pl.col("shipping_days").is_not_null() & pl.col("product_id").is_not_null())
            .group_by("product_id")
            .agg(
                pl.col("shipping_days").cast(pl.Float64).mean().alias("avg_shipping_days"),
                pl.col("price").mean().alias("avg_product_price"),
                pl.col("order_id").count().alias("product_orders"),
            )
        )

        df = (
            products_view(self.snapshot)
            .select(["product_id", CATEGORY])
            .with_columns(pl.col(CATEGORY).fill_null(self.aggregator.unknown_label))
            .join(score_by_product, on="product_id", how="left")
            .join(product_details, on="product_id", how="left")
            .group_by(CATEGORY)
            .agg(
                pl.col("product_id").count().cast(pl.Int64).alias("product_count"),
                pl.col("product_avg_score").mean().round(2).alias("category_avg_score"),
                pl.col("avg_shipping_days").mean().round(2).alias("category_avg_shipping_days"),
                pl.col("avg_product_price").mean().round(2).alias("category_avg_product_price"),
                pl.col("product_orders").fill_null(0).sum().cast(pl.Int64).alias("category_order_count"),
            )
            .with_columns(
                (pl.col("category_order_count") / pl.col("product_count"))
                .round(2)
                .alias("orders_per_product")
            )
        )

        c = self.classifier
        df = c.classify_column(df, "category_avg_shipping_days", c.category_shipping, "shipping_performance_tier")
        df = c.classify_column(df, "category_avg_product_price", c.price, "price_tier")
        return df.sort(["category_avg_score", CATEGORY], descending=[True, False], nulls_last=True)

    def monthly_category_trends(self) -> pl.DataFrame:
        """Monthly category metrics with revenue and order growth"""
        keys = [CATEGORY]
        monthly = self.aggregator.aggregate(self.facts, group_by=keys)
        trends = self.analyzer.analyze(monthly, keys, Metric.TOTAL_REVENUE.value, prefix="revenue_")
        return self.analyzer.analyze(trends, keys, Metric.TOTAL_ORDERS.value, prefix="orders_")

    # -------------------------------------------------------------------------
    # Geography
    # -------------------------------------------------------------------------

    def _payment_revenue(self, facts: pl.DataFrame, keys: Sequence[str]) -> pl.DataFrame:
        """Payment revenue and average order value over the distinct orders of each group"""
        keys = list(keys)
        return (
            facts.select(keys + ["order_id"])
            .unique()
            .join(order_payment_totals(self.snapshot), on="order_id", how="left")
            .group_by(keys)
            .agg(
                pl.col("payment_total").sum().round(2).alias("total_revenue"),
                pl.col("payment_total").mean().round(2).alias("avg_order_value"),
            )
        )

    def city_performance(self) -> pl.DataFrame:
        """Per customer city: volume, payment revenue, satisfaction, shipping, ranks and tiers"""
        keys = ["customer_city", "customer_state"]
        facts = self.facts.filter(pl.col("customer_city").is_not_null())

        df = self.aggregator.aggregate(
            facts,
            group_by=keys,
            time_column=None,
            metrics=[Metric.TOTAL_ORDERS, Metric.AVG_REVIEW_SCORE, Metric.AVG_SHIPPING_DAYS],
        )

        by_city = facts.with_columns([pl.col(k).fill_null(self.aggregator.unknown_label) for k in keys])
        breadth = by_city.group_by(keys).agg(
            pl.col("product_id").drop_nulls().n_unique().cast(pl.Int64).alias("total_products"),
            pl.col(CATEGORY).drop_nulls().n_unique().cast(pl.Int64).alias("distinct_categories"),
        )

        df = (
            df.join(breadth, on=keys, how="left")
            .join(self._payment_revenue(by_city, keys), on=keys, how="left")
            .with_columns(
                pl.col("avg_review_score").round(2),
                pl.col("avg_shipping_days").round(2),
            )
            .with_columns(
                pl.col("total_revenue").rank(method="min", descending=True).alias("revenue_rank"),
                pl.col("avg_review_score").rank(method="min", descending=True).alias("satisfaction_rank"),
                pl.col("avg_shipping_days").rank(method="min").alias("shipping_efficiency_rank"),
            )
        )

        c = self.classifier
        df = c.classify_column(df, "total_revenue", c.relative_revenue, "revenue_tier")
        df = c.classify_column(df, "avg_review_score", c.relative_satisfaction, "satisfaction_tier")
        df = c.classify_column(df, "avg_shipping_days", c.relative_shipping, "shipping_tier")
        return df.sort(["total_revenue"] + keys, descending=[True, False, False], nulls_last=True)

    def city_category_performance(self) -> pl.DataFrame:
        """
        Per customer city and product category: volume, payment revenue,
        satisfaction and shipping, ranked within the city.

        Relative tiers are fitted over all city-category rows. Facts without
        a customer city or a category are left out.
        """
        city = ["customer_city", "customer_state"]
        keys = city + [CATEGORY]
        facts = self.facts.filter(pl.col("customer_city").is_not_null() & pl.col(CATEGORY).is_not_null())

        df = self.aggregator.aggregate(
            facts,
            group_by=keys,
            time_column=None,
            metrics=[Metric.TOTAL_ORDERS, Metric.AVG_REVIEW_SCORE, Metric.AVG_SHIPPING_DAYS],
        )

        by_group = facts.with_columns([pl.col(k).fill_null(self.aggregator.unknown_label) for k in keys])
        products = by_group.group_by(keys).agg(
            pl.col("product_id").drop_nulls().n_unique().cast(pl.Int64).alias("unique_products"),
        )

        df = (
            df.join(products, on=keys, how="left")
            .join(self._payment_revenue(by_group, keys), on=keys, how="left")
            .with_columns(
                pl.col("avg_review_score").round(2),
                pl.col("avg_shipping_days").round(2),
            )
            .with_columns(
                pl.col("total_revenue")
                .rank(method="min", descending=True)
                .over(city)
                .alias("category_revenue_rank"),
                pl.col("avg_review_score")
                .rank(method="min", descending=True)
                .over(city)
                .alias("category_satisfaction_rank"),
            )
        )

        c = self.classifier
        df = c.classify_column(df, "total_revenue", c.relative_revenue, "revenue_tier")
        df = c.classify_column(df, "avg_review_score", c.relative_satisfaction, "satisfaction_tier")
        df = c.classify_column(df, "avg_shipping_days", c.relative_shipping, "shipping_tier")
        return df.sort(["total_revenue"] + keys, descending=[True, False, False, False], nulls_last=True)

    def city_top_categories(self, city_categories: Optional[pl.DataFrame] = None) -> pl.DataFrame:
        """The highest-revenue category of every city; ties keep every leader"""
        df = city_categories if city_categories is not None else self.city_category_performance()
        return df.filter(pl.col("category_revenue_rank") == 1).sort(
            ["total_revenue", "customer_city", "customer_state"],
            descending=[True, False, False],
            nulls_last=True,
        )

    # -------------------------------------------------------------------------
    # Seller
    # -------------------------------------------------------------------------

    def seller_category_insights(self) -> pl.DataFrame:
        """Per category and seller: products sold, orders, price, shipping and review with tiers"""
        keys = [CATEGORY, "seller_id"]
        facts = self.facts.filter(pl.col("seller_id").is_not_null())

        df = self.aggregator.aggregate(
            facts,
            group_by=keys,
            time_column=None,
            metrics=[Metric.TOTAL_ORDERS, Metric.AVG_REVIEW_SCORE, Metric.AVG_SHIPPING_DAYS],
        )
        products = (
            facts.with_columns(pl.col(CATEGORY).fill_null(self.aggregator.unknown_label))
            .group_by(keys)
            .agg(
                pl.col("product_id").drop_nulls().n_unique().cast(pl.Int64).alias("products_sold"),
                pl.col("price").mean().round(2).alias("avg_product_price"),
            )
        )
        sellers = sellers_view(self.snapshot).select(["seller_id", "seller_city", "seller_state"])

        df = (
            df.join(products, on=keys, how="left")
            .join(sellers, on="seller_id", how="left")
            .with_columns(
                pl.col("avg_review_score").round(2),
                pl.col("avg_shipping_days").round(2),
            )
            .select(keys + [
                "seller_city",
                "seller_state",
                "products_sold",
                "total_orders",
                "avg_product_price",
                "avg_shipping_days",
                "avg_review_score",
            ])
        )

        c = self.classifier
        df = c.classify_column(df, "avg_shipping_days", c.shipping, "shipping_tier")
        df = c.classify_column(df, "avg_review_score", c.review, "satisfaction_tier")
        return df.sort([CATEGORY, "avg_review_score", "seller_id"], descending=[False, True, False], nulls_last=True)

    def seller_performance(self) -> pl.DataFrame:
        """Every seller's orders, revenue, shipping and review with tiers"""
        metrics = self.aggregator.aggregate(
            self.facts.filter(pl.col("seller_id").is_not_null()),
            group_by=["seller_id"],
            time_column=None,
        )
        df = (
            sellers_view(self.snapshot)
            .select(["seller_id", "seller_city", "seller_state"])
            .join(metrics, on="seller_id", how="left")
            .with_columns(
                pl.col("total_orders").fill_null(0),
                pl.col("total_revenue").fill_null(0.0),
            )
        )

        c = self.classifier
        df = c.classify_column(df, "total_revenue", c.relative_revenue, "revenue_tier")
        df = c.classify_column(df, "total_orders", c.relative_volume, "volume_tier")
        df = c.classify_column(df, "avg_shipping_days", c.shipping, "shipping_tier")
        df = c.classify_column(df, "avg_review_score", c.review, "review_tier")
        return df.sort(["total_revenue", "seller_id"], descending=[True, False])

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------

    def _alert_trends(self, facts: pl.DataFrame, keys: Sequence[str]) -> pl.DataFrame:
        monthly = self.aggregator.aggregate(
            facts,
            group_by=keys,
            metrics=[Metric.TOTAL_ORDERS, Metric.TOTAL_REVENUE, Metric.AVG_SHIPPING_DAYS],
        )
        trends = self.analyzer.analyze(monthly, keys, Metric.TOTAL_REVENUE.value)
        return self.analyzer.analyze(trends, keys, Metric.AVG_SHIPPING_DAYS.value, prefix="shipping_")

    def monthly_category_alerts(self) -> Tuple[pl.DataFrame, List[Alert]]:
        keys = [CATEGORY]
        trends = self._alert_trends(self.facts, keys)
        alerts = self.alert_generator.generate_alerts(trends, keys)
        frame = self.alert_generator.alert_frame(trends).sort(["year", "month", CATEGORY])
        return frame, alerts

    def seller_monthly_alerts(self) -> Tuple[pl.DataFrame, List[Alert]]:
        keys = ["seller_id"]
        facts = self.facts.filter(pl.col("seller_id").is_not_null())
        trends = self._alert_trends(facts, keys)
        alerts = self.alert_generator.generate_alerts(trends, keys)
        sellers = sellers_view(self.snapshot).select(["seller_id", "seller_city", "seller_state"])
        frame = (
            self.alert_generator.alert_frame(trends)
            .join(sellers, on="seller_id", how="left")
            .sort(["seller_id", "year", "month"])
        )
        return frame, alerts

    # -------------------------------------------------------------------------
    # Customer
    # -------------------------------------------------------------------------

    def customer_rfm(self, as_of: datetime) -> pl.DataFrame:
        return RFMCalculator(self.snapshot, self.classifier).compute_all(as_of)

    def build_reports(self, as_of: datetime) -> Dict[str, pl.DataFrame]:
        """Every analytical report except the alert reports"""
        finance = self.category_finance()
        city_categories = self.city_category_performance()
        return {
            "category_finance": finance,
            "low_revenue_high_volume_categories": self.low_revenue_volume_categories(finance),
            "category_performance": self.category_performance(),
            "city_performance": self.city_performance(),
            "city_category_performance": city_categories,
            "city_top_categories": self.city_top_categories(city_categories),
            "seller_performance": self.seller_performance(),
            "seller_category_insights": self.seller_category_insights(),
            "monthly_category_trends": self.monthly_category_trends(),
            "customer_rfm": self.customer_rfm(as_of),
        }

    def build_alerts(self) -> Tuple[Dict[str, pl.DataFrame], List[Alert]]:
        """Both alert reports and the alerts they raise, categories first"""
        category_frame, category_alerts = self.monthly_category_alerts()
        seller_frame, seller_alerts = self.seller_monthly_alerts()
        frames = {
            "monthly_category_alerts": category_frame,
            "seller_monthly_alerts": seller_frame,
        }
        return frames, category_alerts + seller_alerts

    def build_all(self, as_of: datetime) -> ReportSet:
        """Build every report; alerts of both alert reports are collected"""
        reports = ReportSet(snapshot_version=self.snapshot.version)
        reports.frames.update(self.build_reports(as_of))
        alert_frames, reports.alerts = self.build_alerts()
        reports.frames.update(alert_frames)

        logger.info(
            "Built analytical reports",
            snapshot_version=self.snapshot.version,
            reports={name: len(df) for name, df in reports.frames.items()},
            alerts=len(reports.alerts),
        )
        return reports
