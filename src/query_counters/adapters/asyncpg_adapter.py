"""Instrumentation for asyncpg connections.

Usage:
    counters = PerformanceCounters()
    adapter = AsyncpgAdapter(counters)

    async with adapter.acquire(pool) as conn:
        rows = await conn.fetch("SELECT * FROM documents WHERE id = $1", doc_id)
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, List

import asyncpg
from asyncpg.pool import Pool, PoolConnectionProxy

from ..config import get_settings
from .base import DriverAdapter, RowCounts, elapsed_ms, parse_command_status

LOGGER = logging.getLogger(__name__)

SUPPORTED_CONNECTION_TYPES: tuple[type, ...] = (asyncpg.Connection, PoolConnectionProxy)


class InstrumentedConnection:
    """asyncpg connection proxy reporting every query to an observer."""

    def __init__(self, connection: Any, adapter: "AsyncpgAdapter") -> None:
        self._connection = connection
        self._adapter = adapter

    @property
    def raw_connection(self) -> Any:
        return self._connection

    @property
    def adapter(self) -> "AsyncpgAdapter":
        return self._adapter

    def __getattr__(self, name: str) -> Any:
        return getattr(self._connection, name)

    # ------------------------------------------------------------------
    async def execute(self, query: str, *args: Any, **kwargs: Any) -> str:
        recorder = self._adapter.recorder
        started = recorder.started()
        try:
            status = await self._connection.execute(query, *args, **kwargs)
        except BaseException as exc:
            recorder.failed(query, started, exc)
            raise
        recorder.succeeded(query, started, parse_command_status(status))
        return status

    async def executemany(self, command: str, args: Iterable[Any], **kwargs: Any) -> None:
        recorder = self._adapter.recorder
        started = recorder.started()
        try:
            result = await self._connection.executemany(command, args, **kwargs)
        except BaseException as exc:
            recorder.failed(command, started, exc)
            raise
        # asyncpg does not report row counts for executemany
        recorder.succeeded(command, started)
        return result

    async def fetch(self, query: str, *args: Any, **kwargs: Any) -> List[Any]:
        recorder = self._adapter.recorder
        started = recorder.started()
        try:
            rows = await self._connection.fetch(query, *args, **kwargs)
        except BaseException as exc:
            recorder.failed(query, started, exc)
            raise
        recorder.succeeded(query, started, RowCounts(fetched_rows=len(rows)))
        return rows

    async def fetchrow(self, query: str, *args: Any, **kwargs: Any) -> Any:
        recorder = self._adapter.recorder
        started = recorder.started()
        try:
            row = await self._connection.fetchrow(query, *args, **kwargs)
        except BaseException as exc:
            recorder.failed(query, started, exc)
            raise
        recorder.succeeded(query, started, RowCounts(fetched_rows=0 if row is None else 1))
        return row

    async def fetchval(self, query: str, *args: Any, **kwargs: Any) -> Any:
        recorder = self._adapter.recorder
        started = recorder.started()
        try:
            value = await self._connection.fetchval(query, *args, **kwargs)
        except BaseException as exc:
            recorder.failed(query, started, exc)
            raise
        recorder.succeeded(query, started, RowCounts(fetched_rows=0 if value is None else 1))
        return value


class AsyncpgAdapter(DriverAdapter):
    """Wraps asyncpg connections so their queries feed a :class:`QueryObserver`."""

    driver_name = "asyncpg"

    def attach(self, connection: Any) -> InstrumentedConnection:
        """Return an instrumented view of ``connection``.

        Already-instrumented connections are returned unchanged so each query
        is reported once.

        Raises:
            TypeError: If ``connection`` is not an asyncpg connection
        """
        if isinstance(connection, InstrumentedConnection):
            return connection
        if not isinstance(connection, SUPPORTED_CONNECTION_TYPES):
            raise TypeError(
                f"Cannot instrument {type(connection).__name__}; "
                "expected an asyncpg Connection or pool connection"
            )
        self._check_registered()
        return InstrumentedConnection(connection, self)

    @asynccontextmanager
    async def acquire(self, pool: Pool) -> AsyncIterator[InstrumentedConnection]:
        """
        Acquire an instrumented connection from ``pool``.

        Usage:
            async with adapter.acquire(pool) as conn:
                result = await conn.fetchrow("SELECT * FROM ...")
        """
        async with pool.acquire() as connection:
            yield self.attach(connection)


async def measure_latency(
    connection: Any,
    counters: Any,
    *,
    samples: int | None = None,
    reset: bool = False,
) -> int | None:
    """
    Calibrate ``counters`` with ``SELECT 1`` round-trips.

    Samples run on the raw connection and are not counted as query metrics.

    Args:
        connection: asyncpg connection (instrumented or not)
        counters: Object exposing ``set_latency`` (usually PerformanceCounters)
        samples: Number of round trips (defaults to QUERY_COUNTERS_CALIBRATION_SAMPLES)
        reset: Overwrite the current calibration with the first sample

    Returns:
        The calibrated latency in milliseconds
    """
    if isinstance(connection, InstrumentedConnection):
        connection = connection.raw_connection
    samples = samples if samples is not None else get_settings().calibration_samples

    for index in range(samples):
        started = time.perf_counter()
        await connection.fetchval("SELECT 1")
        counters.set_latency(elapsed_ms(started), reset=reset and index == 0)

    LOGGER.info("Calibrated query latency to %s ms over %d samples", counters.latency_milliseconds, samples)
    return counters.latency_milliseconds


__all__ = ["AsyncpgAdapter", "InstrumentedConnection", "SUPPORTED_CONNECTION_TYPES", "measure_latency"]
