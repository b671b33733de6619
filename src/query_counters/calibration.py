"""Fixed round-trip latency baseline subtracted from observed durations."""

from __future__ import annotations


class LatencyCalibrator:
    """Remember the smallest observed round-trip overhead.

    Periodic cheap ``SELECT 1`` round trips converge on the floor: larger samples
    reflect transient noise rather than the fixed network overhead.
    """

    def __init__(self) -> None:
        self._latency_ms: int | None = None

    @property
    def latency_milliseconds(self) -> int | None:
        return self._latency_ms

    def set_latency(self, milliseconds: int, reset: bool = False) -> None:
        if self._latency_ms is None or reset:
            self._latency_ms = milliseconds
        else:
            self._latency_ms = min(self._latency_ms, milliseconds)

    def offset(self) -> int:
        """Latency to subtract, 0 while uncalibrated."""

        return self._latency_ms if self._latency_ms is not None else 0

    def adjust(self, duration_ms: int) -> int:
        return max(0, duration_ms - self.offset())


__all__ = ["LatencyCalibrator"]
