"""Per-query performance counters fed by database driver lifecycle hooks."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Mapping

from .calibration import LatencyCalibrator
from .models import MetricsRecord
from .normalizer import Normalizer, normalize_query
from .store import MetricsStore

LOGGER = logging.getLogger(__name__)


class PerformanceCounters:
    """Aggregate success/error counts, durations and row counts per query shape.

    Construct one instance and hand it to every adapter and endpoint that needs
    it. ``on_query`` and the completion hooks are not correlated by any request
    id, so :attr:`running_queries_count` is a best-effort concurrency gauge that
    floors at 0 instead of going negative.
    """

    def __init__(self, normalizer: Normalizer | None = None) -> None:
        self._normalize: Normalizer = normalizer or normalize_query
        self._store = MetricsStore()
        self._calibrator = LatencyCalibrator()
        self._running_queries = 0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    def set_latency(self, milliseconds: int, reset: bool = False) -> None:
        """Lower the calibrated latency to ``milliseconds`` (or overwrite it with ``reset``).

        Run a trivial query such as ``SELECT 1`` periodically and pass its
        duration here; the smallest value seen is deducted from every
        subsequent query duration.
        """

        with self._lock:
            self._calibrator.set_latency(milliseconds, reset)

    def on_query(self) -> None:
        """Increment the running queries count."""

        with self._lock:
            self._running_queries += 1

    def on_result(
        self,
        query: str,
        duration_ms: int = 0,
        fetched_rows: int = 0,
        affected_rows: int = 0,
        changed_rows: int = 0,
    ) -> None:
        key = self._normalize(query)
        with self._lock:
            adjusted = self._calibrator.adjust(duration_ms)
            self._running_queries = max(0, self._running_queries - 1)
            self._store.get_or_create(key).record_success(
                adjusted,
                fetched_rows=fetched_rows,
                affected_rows=affected_rows,
                changed_rows=changed_rows,
            )

    def on_error(self, query: str, duration_ms: int = 0, error: Any = None) -> None:
        # ``error`` only routes the call here; it is neither stored nor inspected.
        key = self._normalize(query)
        with self._lock:
            adjusted = self._calibrator.adjust(duration_ms)
            self._running_queries = max(0, self._running_queries - 1)
            self._store.get_or_create(key).record_error(adjusted)

    def clear(self) -> None:
        """Drop all query metrics; the running count and calibration are kept."""

        with self._lock:
            dropped = len(self._store)
            self._store.clear()
        LOGGER.info("Cleared metrics for %d queries", dropped)

    # ------------------------------------------------------------------
    @property
    def metrics(self) -> Mapping[str, MetricsRecord]:
        return self._store.view(self._lock)

    def metrics_as_object(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {query: record.as_record() for query, record in self._store.items()}

    @property
    def running_queries_count(self) -> int:
        return self._running_queries

    @property
    def latency_milliseconds(self) -> int | None:
        return self._calibrator.latency_milliseconds


__all__ = ["PerformanceCounters"]
