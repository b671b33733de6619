"""Simple configuration loader for query counters."""

from __future__ import annotations

import os
from functools import lru_cache

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_bool(name: str, default: str) -> bool:
    raw = os.getenv(name, default).strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


class Settings:
    """Runtime configuration derived from environment variables."""

    def __init__(self) -> None:
        # Logging
        self.log_format: str = os.getenv("QUERY_COUNTERS_LOG_FORMAT", "plain").lower()
        self.log_level: str = os.getenv("QUERY_COUNTERS_LOG_LEVEL", "INFO").upper()

        # Normalization: collapse IN (...) / VALUES (...) lists to one element
        self.reduce_lists: bool = _env_bool("QUERY_COUNTERS_REDUCE_LISTS", "true")

        # Adapter behaviour
        self.slow_query_ms: int = int(os.getenv("QUERY_COUNTERS_SLOW_QUERY_MS", "1000"))
        self.calibration_samples: int = int(os.getenv("QUERY_COUNTERS_CALIBRATION_SAMPLES", "3"))

        # HTTP surface
        self.metrics_prefix: str = os.getenv("QUERY_COUNTERS_METRICS_PREFIX", "/metrics")

    def dict(self) -> dict[str, object]:
        return self.__dict__.copy()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings"]
