"""Per-query performance counters for database access layers."""

from .calibration import LatencyCalibrator
from .counters import PerformanceCounters
from .logging_utils import configure_logging
from .models import MetricsRecord
from .normalizer import normalize_query
from .store import MetricsStore

__all__ = [
    "LatencyCalibrator",
    "MetricsRecord",
    "MetricsStore",
    "PerformanceCounters",
    "configure_logging",
    "normalize_query",
]
