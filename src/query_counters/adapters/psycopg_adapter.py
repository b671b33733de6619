"""Instrumentation for psycopg (3.x) synchronous connections."""

from __future__ import annotations

import logging
import time
from typing import Any, Iterable

import psycopg

from ..config import get_settings
from .base import DriverAdapter, RowCounts, elapsed_ms, query_text, row_counts

LOGGER = logging.getLogger(__name__)

SUPPORTED_CONNECTION_TYPES: tuple[type, ...] = (psycopg.Connection,)


def _cursor_row_counts(cursor: Any) -> RowCounts:
    rowcount = getattr(cursor, "rowcount", -1)
    # A result set (including ``... RETURNING``) counts as fetched rows whatever the tag.
    if getattr(cursor, "description", None) is not None:
        return row_counts("SELECT", rowcount)
    status = (getattr(cursor, "statusmessage", None) or "").split()
    return row_counts(status[0] if status else None, rowcount)


class InstrumentedCursor:
    """psycopg cursor proxy reporting ``execute``/``executemany`` calls."""

    def __init__(self, cursor: Any, connection: "InstrumentedPsycopgConnection") -> None:
        self._cursor = cursor
        self._connection = connection

    @property
    def raw_cursor(self) -> Any:
        return self._cursor

    def __getattr__(self, name: str) -> Any:
        return getattr(self._cursor, name)

    def __iter__(self):
        return iter(self._cursor)

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> "InstrumentedCursor":
        self._cursor.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._cursor.__exit__(exc_type, exc_val, exc_tb)

    # psycopg cursor API ------------------------------------------------------
    def execute(self, query: Any, params: Any = None, **kwargs: Any) -> "InstrumentedCursor":
        self._dispatch(query, self._cursor.execute, query, params, **kwargs)
        return self

    def executemany(self, query: Any, params_seq: Iterable[Any], **kwargs: Any) -> None:
        self._dispatch(query, self._cursor.executemany, query, params_seq, **kwargs)

    def _dispatch(self, query: Any, method: Any, *args: Any, **kwargs: Any) -> None:
        text = query_text(query, self._connection.raw_connection)
        recorder = self._connection.adapter.recorder
        started = recorder.started()
        try:
            method(*args, **kwargs)
        except BaseException as exc:
            recorder.failed(text, started, exc)
            raise
        recorder.succeeded(text, started, _cursor_row_counts(self._cursor))


class InstrumentedPsycopgConnection:
    """psycopg connection proxy whose cursors report to an observer."""

    def __init__(self, connection: Any, adapter: "PsycopgAdapter") -> None:
        self._connection = connection
        self._adapter = adapter

    @property
    def raw_connection(self) -> Any:
        return self._connection

    @property
    def adapter(self) -> "PsycopgAdapter":
        return self._adapter

    def __getattr__(self, name: str) -> Any:
        return getattr(self._connection, name)

    def __enter__(self) -> "InstrumentedPsycopgConnection":
        self._connection.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._connection.__exit__(exc_type, exc_val, exc_tb)

    def cursor(self, *args: Any, **kwargs: Any) -> InstrumentedCursor:
        return InstrumentedCursor(self._connection.cursor(*args, **kwargs), self)

    def execute(self, query: Any, params: Any = None, **kwargs: Any) -> InstrumentedCursor:
        return self.cursor().execute(query, params, **kwargs)


class PsycopgAdapter(DriverAdapter):
    """Wraps psycopg connections so their queries feed a :class:`QueryObserver`."""

    driver_name = "psycopg"

    def attach(self, connection: Any) -> InstrumentedPsycopgConnection:
        """Return an instrumented view of ``connection``; no-op when already instrumented."""

        if isinstance(connection, InstrumentedPsycopgConnection):
            return connection
        if not isinstance(connection, SUPPORTED_CONNECTION_TYPES):
            raise TypeError(
                f"Cannot instrument {type(connection).__name__}; expected a psycopg Connection"
            )
        self._check_registered()
        return InstrumentedPsycopgConnection(connection, self)

    def connect(self, dsn: str, **kwargs: Any) -> InstrumentedPsycopgConnection:
        """Open a psycopg connection and instrument it."""

        return self.attach(psycopg.connect(dsn, **kwargs))


def measure_latency_sync(
    connection: Any,
    counters: Any,
    *,
    samples: int | None = None,
    reset: bool = False,
) -> int | None:
    """Blocking counterpart of :func:`query_counters.adapters.asyncpg_adapter.measure_latency`."""

    if isinstance(connection, InstrumentedPsycopgConnection):
        connection = connection.raw_connection
    samples = samples if samples is not None else get_settings().calibration_samples

    with connection.cursor() as cur:
        for index in range(samples):
            started = time.perf_counter()
            cur.execute("SELECT 1")
            cur.fetchone()
            counters.set_latency(elapsed_ms(started), reset=reset and index == 0)

    LOGGER.info("Calibrated query latency to %s ms over %d samples", counters.latency_milliseconds, samples)
    return counters.latency_milliseconds


__all__ = [
    "InstrumentedCursor",
    "InstrumentedPsycopgConnection",
    "PsycopgAdapter",
    "SUPPORTED_CONNECTION_TYPES",
    "measure_latency_sync",
]
