"""
Error Taxonomy

Row-level anomalies (rejected rows, coercion fallbacks) are absorbed by the
load phase and only counted. The exceptions below are phase-level and
propagate to the caller.
"""

from typing import Any, Dict, Optional


class AnalyticsError(Exception):
    """Base class for all pipeline errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class GrowthDivisionError(AnalyticsError, ZeroDivisionError):
    """Growth percentage requested against a zero previous-period value"""


class DuplicatePeriodError(AnalyticsError):
    """The same (key, year, month) appeared twice in a trend series"""


class SnapshotNotFoundError(AnalyticsError, KeyError):
    """No canonical snapshot with the requested version"""


class BatchAbortError(AnalyticsError):
    """A pipeline phase failed; its output must not be consumed"""

    def __init__(self, phase: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Phase '{phase}' aborted: {message}", details)
        self.phase = phase
