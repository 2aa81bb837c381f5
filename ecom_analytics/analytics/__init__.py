"""
Analytics Module
"""
from .aggregators import Metric, MetricAggregator
from .alerts import Alert, AlertGenerator, AlertType, generate_alerts
from .reports import ReportBuilder, ReportSet
from .rfm import CustomerRFM, RFMCalculator
from .tiers import FixedThresholdRule, RelativeThresholdRule, TierClassifier
from .trends import TrendAnalyzer, TrendPoint

__all__ = [
    "Metric",
    "MetricAggregator",
    "Alert",
    "AlertGenerator",
    "AlertType",
    "generate_alerts",
    "ReportBuilder",
    "ReportSet",
    "CustomerRFM",
    "RFMCalculator",
    "FixedThresholdRule",
    "RelativeThresholdRule",
    "TierClassifier",
    "TrendAnalyzer",
    "TrendPoint",
]
