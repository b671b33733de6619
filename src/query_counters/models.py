"""Dataclasses shared by the counter engine, adapters and HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass(slots=True)
class MetricsRecord:
    """Aggregated statistics for one canonical query."""

    success_count: int = 0
    error_count: int = 0
    success_milliseconds_total: int = 0
    error_milliseconds_total: int = 0
    fetched_rows: int = 0
    affected_rows: int = 0
    changed_rows: int = 0

    @property
    def success_milliseconds_average(self) -> int:
        if not self.success_count:
            return 0
        return self.success_milliseconds_total // self.success_count

    @property
    def error_milliseconds_average(self) -> int:
        if not self.error_count:
            return 0
        return self.error_milliseconds_total // self.error_count

    def record_success(
        self,
        duration_ms: int,
        fetched_rows: int = 0,
        affected_rows: int = 0,
        changed_rows: int = 0,
    ) -> None:
        self.success_count += 1
        self.success_milliseconds_total += duration_ms
        self.fetched_rows += fetched_rows
        self.affected_rows += affected_rows
        self.changed_rows += changed_rows

    def record_error(self, duration_ms: int) -> None:
        self.error_count += 1
        self.error_milliseconds_total += duration_ms

    def as_record(self) -> Dict[str, int]:
        """Serialize into the JSON payload consumed by dashboards."""

        return {
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "successMillisecondsTotal": self.success_milliseconds_total,
            "errorMillisecondsTotal": self.error_milliseconds_total,
            "successMillisecondsAverage": self.success_milliseconds_average,
            "errorMillisecondsAverage": self.error_milliseconds_average,
            "fetchedRows": self.fetched_rows,
            "affectedRows": self.affected_rows,
            "changedRows": self.changed_rows,
        }


__all__ = ["MetricsRecord"]
