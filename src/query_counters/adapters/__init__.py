"""Driver adapters feeding query lifecycle hooks into an observer."""

from .asyncpg_adapter import AsyncpgAdapter, InstrumentedConnection, measure_latency
from .base import DispatchRecorder, DriverAdapter, QueryObserver, RowCounts, parse_command_status
from .psycopg_adapter import InstrumentedPsycopgConnection, PsycopgAdapter, measure_latency_sync

__all__ = [
    "AsyncpgAdapter",
    "DispatchRecorder",
    "DriverAdapter",
    "InstrumentedConnection",
    "InstrumentedPsycopgConnection",
    "PsycopgAdapter",
    "QueryObserver",
    "RowCounts",
    "measure_latency",
    "measure_latency_sync",
    "parse_command_status",
]
