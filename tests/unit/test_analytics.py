"""
Unit Tests - Analytics
"""
from datetime import datetime

import polars as pl
import pytest

from ecom_analytics.analytics import (
    AlertGenerator,
    AlertType,
    FixedThresholdRule,
    Metric,
    MetricAggregator,
    RFMCalculator,
    TierClassifier,
    TrendAnalyzer,
    generate_alerts,
)
from ecom_analytics.config.settings import TierSettings
from ecom_analytics.errors import DuplicatePeriodError, GrowthDivisionError


@pytest.fixture
def sample_facts_df() -> pl.DataFrame:
    """Order-item facts: a two-item order, an unreviewed order, a null category and an undated order"""
    return pl.DataFrame({
        "order_id": ["o1", "o1", "o2", "o3", "o4"],
        "product_category_name_english": ["toys", "toys", "toys", None, "toys"],
        "order_purchase_timestamp": [
            datetime(2018, 1, 10),
            datetime(2018, 1, 10),
            datetime(2018, 1, 20),
            datetime(2018, 2, 1),
            None,
        ],
        "item_total_value": [60.0, 40.0, 100.0, 10.0, 999.0],
        "review_score": [4.0, 4.0, 2.0, None, 5.0],
        "shipping_days": [5, 5, None, 3, 1],
    })


def _monthly(values, key="toys", key_column="product_category_name_english", value_column="total_revenue"):
    periods = [(2018, m + 1) for m in range(len(values))]
    return pl.DataFrame({
        key_column: [key] * len(values),
        "year": [y for y, _ in periods],
        "month": [m for _, m in periods],
        value_column: values,
    })


class TestMetricAggregator:
    """Tests for MetricAggregator"""

    def test_monthly_snapshot(self, sample_facts_df):
        """Test distinct orders, revenue and order-level means"""
        result = MetricAggregator().aggregate(sample_facts_df, group_by=["product_category_name_english"])

        assert result.columns == [
            "product_category_name_english", "year", "month",
            "total_orders", "total_revenue", "avg_review_score", "avg_shipping_days",
        ]
        toys = result.row(0, named=True)
        assert toys["product_category_name_english"] == "toys"
        assert (toys["year"], toys["month"]) == (2018, 1)
        assert toys["total_orders"] == 2
        assert toys["total_revenue"] == pytest.approx(200.0)
        assert toys["avg_review_score"] == pytest.approx(3.0)
        assert toys["avg_shipping_days"] == pytest.approx(5.0)

    def test_null_dimension_is_unknown(self, sample_facts_df):
        """Test facts with a missing dimension are grouped under 'unknown'"""
        result = MetricAggregator().aggregate(sample_facts_df, group_by=["product_category_name_english"])

        unknown = result.filter(pl.col("product_category_name_english") == "unknown").row(0, named=True)
        assert unknown["month"] == 2
        assert unknown["total_orders"] == 1
        assert unknown["avg_review_score"] is None

    def test_undated_facts_excluded(self, sample_facts_df):
        """Test facts without a purchase timestamp are not bucketed"""
        result = MetricAggregator().aggregate(sample_facts_df, group_by=["product_category_name_english"])
        assert result["total_revenue"].sum() == pytest.approx(210.0)

    def test_all_time_aggregation(self, sample_facts_df):
        """Test aggregation without time bucketing keeps undated facts"""
        result = MetricAggregator().aggregate(
            sample_facts_df,
            group_by=["product_category_name_english"],
            time_column=None,
            metrics=[Metric.TOTAL_ORDERS, Metric.TOTAL_REVENUE],
        )

        assert result.columns == ["product_category_name_english", "total_orders", "total_revenue"]
        toys = result.filter(pl.col("product_category_name_english") == "toys").row(0, named=True)
        assert toys["total_orders"] == 3
        assert toys["total_revenue"] == pytest.approx(1199.0)


class TestTrendAnalyzer:
    """Tests for TrendAnalyzer"""

    def test_first_period_has_no_previous(self):
        """Test the first period of a key has null previous value and growth"""
        result = TrendAnalyzer().analyze(_monthly([1000.0]), ["product_category_name_english"], "total_revenue")

        row = result.row(0, named=True)
        assert row["prev_period_value"] is None
        assert row["delta"] is None
        assert row["growth_pct"] is None
        assert row["rolling_avg"] == pytest.approx(1000.0)

    def test_revenue_drop(self):
        """Test delta and growth for 1000 -> 800"""
        result = TrendAnalyzer().analyze(_monthly([1000.0, 800.0]), ["product_category_name_english"], "total_revenue")

        row = result.row(1, named=True)
        assert row["prev_period_value"] == pytest.approx(1000.0)
        assert row["delta"] == pytest.approx(-200.0)
        assert row["growth_pct"] == pytest.approx(-20.0)
        assert row["rolling_avg"] == pytest.approx(900.0)

    def test_rolling_window(self):
        """Test the rolling average covers at most the window"""
        result = TrendAnalyzer(window=3).analyze(
            _monthly([10.0, 20.0, 30.0, 40.0]), ["product_category_name_english"], "total_revenue"
        )
        assert result["rolling_avg"].to_list() == pytest.approx([10.0, 15.0, 20.0, 30.0])

    def test_ordering_crosses_year_boundary(self):
        """Test periods are ordered by year then month regardless of input order"""
        df = pl.DataFrame({
            "seller_id": ["s1", "s1", "s1"],
            "year": [2018, 2017, 2018],
            "month": [2, 12, 1],
            "total_revenue": [30.0, 10.0, 20.0],
        })

        result = TrendAnalyzer().analyze(df, ["seller_id"], "total_revenue")

        assert result.select(["year", "month"]).rows() == [(2017, 12), (2018, 1), (2018, 2)]
        assert result["prev_period_value"].to_list() == [None, 10.0, 20.0]

    def test_partitions_are_independent(self):
        """Test each key has its own first period"""
        df = pl.concat([_monthly([5.0, 6.0], key="a"), _monthly([7.0], key="b")])
        result = TrendAnalyzer().analyze(df, ["product_category_name_english"], "total_revenue")

        b = result.filter(pl.col("product_category_name_english") == "b").row(0, named=True)
        assert b["prev_period_value"] is None

    def test_zero_previous_policy(self):
        """Test growth against zero is null by default and raises when configured"""
        df = _monthly([0.0, 50.0])

        result = TrendAnalyzer().analyze(df, ["product_category_name_english"], "total_revenue")
        assert result["growth_pct"].to_list() == [None, None]
        assert result["delta"].to_list() == [None, 50.0]

        with pytest.raises(GrowthDivisionError):
            TrendAnalyzer(zero_policy="raise").analyze(df, ["product_category_name_english"], "total_revenue")

    def test_duplicate_period(self):
        """Test a repeated (key, year, month) is rejected"""
        df = pl.concat([_monthly([1.0]), _monthly([2.0])])
        with pytest.raises(DuplicatePeriodError):
            TrendAnalyzer().analyze(df, ["product_category_name_english"], "total_revenue")

    def test_null_values_skipped_by_rolling_average(self):
        """Test nulls break the delta but not the rolling average"""
        points = TrendAnalyzer().fold([4.0, None, 8.0])
        assert [p.delta for p in points] == [None, None, None]
        assert [p.rolling_avg for p in points] == [4.0, 4.0, 6.0]

    def test_prefix(self):
        """Test prefixed trend columns"""
        result = TrendAnalyzer().analyze(_monthly([1.0, 2.0]), ["product_category_name_english"], "total_revenue", prefix="revenue_")
        assert "revenue_delta" in result.columns
        assert "delta" not in result.columns

    def test_invalid_configuration(self):
        """Test invalid window and policy"""
        with pytest.raises(ValueError):
            TrendAnalyzer(window=0)
        with pytest.raises(ValueError):
            TrendAnalyzer(zero_policy="zero")


class TestTierClassifier:
    """Tests for TierClassifier"""

    def test_shipping_tiers(self):
        """Test fixed shipping boundaries are inclusive"""
        c = TierClassifier()
        assert c.classify(5, c.shipping) == "Fast"
        assert c.classify(5.01, c.shipping) == "Moderate"
        assert c.classify(10, c.shipping) == "Moderate"
        assert c.classify(11, c.shipping) == "Slow"

    def test_null_falls_to_last_tier(self):
        """Test null values take the last tier"""
        c = TierClassifier()
        assert c.classify(None, c.shipping) == "Slow"
        assert c.classify(None, c.review) == "Poor"
        assert c.classify(float("nan"), c.monetary) == "Low"

    def test_review_and_price_tiers(self):
        """Test review and price tiers"""
        c = TierClassifier()
        assert c.classify(4.5, c.review) == "Excellent"
        assert c.classify(3.5, c.review) == "Good"
        assert c.classify(3.49, c.review) == "Poor"
        assert c.classify(70, c.price) == "Cheap"
        assert c.classify(70.5, c.price) == "Moderate"
        assert c.classify(200, c.price) == "Expensive"

    def test_category_shipping_has_no_gaps(self):
        """Test fractional days between bounds still get a tier"""
        c = TierClassifier()
        assert c.classify(7.5, c.category_shipping) == "Moderate Shipping"
        assert c.classify(10.5, c.category_shipping) == "Slow Shipping"

    def test_relative_tiers(self):
        """Test tiers relative to the batch mean"""
        c = TierClassifier()
        labels = c.classify_all([100.0, 200.0, 300.0, None], c.relative_revenue)
        assert labels == ["Low Revenue", "Moderate Revenue", "High Revenue", "Low Revenue"]

    def test_relative_shipping_lower_is_better(self):
        """Test relative shipping compares downwards"""
        c = TierClassifier()
        labels = c.classify_all([9.0, 10.0, 11.0], c.relative_shipping)
        assert labels == ["Fast Shipping", "Moderate Shipping", "Slow Shipping"]

    def test_relative_all_null(self):
        """Test a batch with no values is all last tier"""
        c = TierClassifier()
        assert c.classify_all([None, None], c.relative_volume) == ["Low Volume", "Low Volume"]

    def test_classify_column(self):
        """Test tier column appended to a frame"""
        c = TierClassifier()
        df = pl.DataFrame({"avg_review_score": [4.8, 3.9, None]})
        result = c.classify_column(df, "avg_review_score", c.review, "review_tier")
        assert result["review_tier"].to_list() == ["Excellent", "Good", "Poor"]

    def test_settings_override(self):
        """Test thresholds come from settings"""
        c = TierClassifier(TierSettings(shipping_fast_days=2))
        assert c.classify(3, c.shipping) == "Moderate"

    def test_custom_rule(self):
        """Test a hand-built rule"""
        rule = FixedThresholdRule("size", ((100, "Big"),), "Small")
        assert rule.classify(150) == "Big"
        assert rule.labels == ["Big", "Small"]


class TestRFMCalculator:
    """Tests for RFMCalculator"""

    def test_customer_rfm(self, rfm_snapshot, as_of):
        """Test recency, frequency, monetary and lifetime for a repeat customer"""
        rfm = RFMCalculator(rfm_snapshot).compute_rfm("c1", as_of)

        assert rfm.frequency == 2
        assert rfm.monetary == pytest.approx(1100.0)
        assert rfm.recency_days == 214
        assert rfm.customer_lifetime_days == 50
        assert (rfm.monetary_tier, rfm.frequency_tier, rfm.recency_tier) == ("High", "Low", "Low")

    def test_unknown_payment_value(self, rfm_snapshot, as_of):
        """Test orders with only sentinel payments leave monetary null"""
        rfm = RFMCalculator(rfm_snapshot).compute_rfm("c2", as_of)

        assert rfm.frequency == 1
        assert rfm.monetary is None
        assert rfm.recency_days == 6
        assert rfm.customer_lifetime_days == 0
        assert (rfm.monetary_tier, rfm.recency_tier) == ("Low", "High")

    def test_customer_without_orders(self, rfm_snapshot, as_of):
        """Test customers with no orders get zero frequency and null aggregates"""
        calculator = RFMCalculator(rfm_snapshot)

        for customer_id in ("c3", "missing"):
            rfm = calculator.compute_rfm(customer_id, as_of)
            assert rfm.frequency == 0
            assert rfm.recency_days is None
            assert rfm.monetary is None
            assert rfm.customer_lifetime_days is None
            assert rfm.recency_tier == "Low"

    def test_compute_all(self, rfm_snapshot, as_of):
        """Test every customer is listed, highest monetary first"""
        df = RFMCalculator(rfm_snapshot).compute_all(as_of)

        assert df["customer_id"].to_list() == ["c1", "c2", "c3"]
        assert df.schema["recency_days"] == pl.Int64
        assert df["frequency"].to_list() == [2, 1, 0]


class TestAlertGenerator:
    """Tests for AlertGenerator"""

    def _trends(self, revenue, shipping):
        df = _monthly(revenue, key="s1", key_column="seller_id").with_columns(
            pl.Series("avg_shipping_days", shipping, dtype=pl.Float64)
        )
        analyzer = TrendAnalyzer(window=3)
        df = analyzer.analyze(df, ["seller_id"], "total_revenue")
        return analyzer.analyze(df, ["seller_id"], "avg_shipping_days", prefix="shipping_")

    def test_revenue_drop(self):
        """Test a negative delta raises RevenueDrop"""
        alerts = generate_alerts(self._trends([1000.0, 800.0], [1.0, 1.0]), ["seller_id"])

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.alert_type == AlertType.REVENUE_DROP
        assert alert.key == {"seller_id": "s1"}
        assert (alert.year, alert.month) == (2018, 2)
        assert alert.value == pytest.approx(-200.0)

    def test_slow_shipping(self):
        """Test rolling shipping above the threshold alerts"""
        alerts = AlertGenerator(shipping_threshold=10.0).generate_alerts(
            self._trends([1.0, 1.0, 1.0], [12.0, 12.0, 12.0]), ["seller_id"]
        )

        assert [a.alert_type for a in alerts] == [AlertType.SLOW_SHIPPING] * 3
        assert alerts[-1].value == pytest.approx(12.0)

    def test_threshold_is_strict(self):
        """Test a rolling average exactly at the threshold does not alert"""
        alerts = generate_alerts(self._trends([1.0, 1.0, 1.0], [10.0, 10.0, 10.0]), ["seller_id"])
        assert alerts == []

    def test_first_period_never_drops(self):
        """Test no RevenueDrop without a previous period"""
        assert generate_alerts(self._trends([5.0], [1.0]), ["seller_id"]) == []

    def test_alert_frame(self):
        """Test the tabular projection keeps only alerted rows"""
        trends = self._trends([1000.0, 800.0, 900.0], [9.0, 12.0, 12.0])
        frame = AlertGenerator().alert_frame(trends)

        assert frame.select(["month", "revenue_alert", "shipping_alert"]).rows() == [
            (2, "RevenueDrop", "SlowShippingAlert"),
            (3, None, "SlowShippingAlert"),
        ]
