"""Tests covering asyncpg instrumentation with an in-memory fake connection."""

from __future__ import annotations

import asyncio
import unittest
from contextlib import asynccontextmanager
from unittest import mock

from query_counters import PerformanceCounters
from query_counters.adapters import asyncpg_adapter
from query_counters.adapters.asyncpg_adapter import AsyncpgAdapter, InstrumentedConnection, measure_latency


class _QueryFailed(Exception):
    pass


class _FakeAsyncpgConnection:
    """Minimal asyncpg connection used for testing."""

    def __init__(self, *, status: str = "SELECT 0", rows=None, error: BaseException | None = None) -> None:
        self.status = status
        self.rows = rows if rows is not None else []
        self.error = error
        self.calls: list[tuple[str, str, tuple]] = []

    def _record(self, method: str, query: str, args: tuple) -> None:
        self.calls.append((method, query, args))
        if self.error is not None:
            raise self.error

    async def execute(self, query: str, *args, timeout=None) -> str:  # noqa: ARG002
        self._record("execute", query, args)
        return self.status

    async def executemany(self, command: str, args, *, timeout=None) -> None:  # noqa: ARG002
        self._record("executemany", command, tuple(args))

    async def fetch(self, query: str, *args, timeout=None):  # noqa: ARG002
        self._record("fetch", query, args)
        return list(self.rows)

    async def fetchrow(self, query: str, *args, timeout=None):  # noqa: ARG002
        self._record("fetchrow", query, args)
        return self.rows[0] if self.rows else None

    async def fetchval(self, query: str, *args, column=0, timeout=None):  # noqa: ARG002
        self._record("fetchval", query, args)
        return 1

    def is_closed(self) -> bool:
        return False


class _FakePool:
    def __init__(self, connection: _FakeAsyncpgConnection) -> None:
        self.connection = connection

    @asynccontextmanager
    async def acquire(self):
        yield self.connection


class AsyncpgAdapterTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        patcher = mock.patch.object(
            asyncpg_adapter, "SUPPORTED_CONNECTION_TYPES", (_FakeAsyncpgConnection,)
        )
        patcher.start()
        self.addCleanup(patcher.stop)
        self.counters = PerformanceCounters()
        self.adapter = AsyncpgAdapter(self.counters)

    async def test_fetch_records_fetched_rows(self) -> None:
        conn = self.adapter.attach(_FakeAsyncpgConnection(rows=[{"id": 1}, {"id": 2}, {"id": 3}]))

        rows = await conn.fetch("SELECT * FROM documents WHERE source = $1", "guideline")

        self.assertEqual(len(rows), 3)
        record = self.counters.metrics["SELECT * FROM documents WHERE source = ?"]
        self.assertEqual(record.success_count, 1)
        self.assertEqual(record.fetched_rows, 3)
        self.assertEqual(self.counters.running_queries_count, 0)

    async def test_execute_parses_command_status(self) -> None:
        conn = self.adapter.attach(_FakeAsyncpgConnection(status="UPDATE 4"))
        status = await conn.execute("UPDATE sessions SET metadata = $2 WHERE id = $1", "a", "{}")

        self.assertEqual(status, "UPDATE 4")
        record = self.counters.metrics["UPDATE sessions SET metadata = ? WHERE id = ?"]
        self.assertEqual(record.affected_rows, 4)
        self.assertEqual(record.changed_rows, 4)

    async def test_fetchrow_and_fetchval_count_single_rows(self) -> None:
        conn = self.adapter.attach(_FakeAsyncpgConnection(rows=[]))
        self.assertIsNone(await conn.fetchrow("SELECT * FROM t WHERE id = 1"))
        self.assertEqual(await conn.fetchval("SELECT COUNT(*) FROM t"), 1)

        self.assertEqual(self.counters.metrics["SELECT * FROM t WHERE id = ?"].fetched_rows, 0)
        self.assertEqual(self.counters.metrics["SELECT COUNT(*) FROM t"].fetched_rows, 1)

    async def test_executemany_counts_one_success(self) -> None:
        conn = self.adapter.attach(_FakeAsyncpgConnection())
        await conn.executemany("INSERT INTO t (a) VALUES ($1)", [(1,), (2,)])

        record = self.counters.metrics["INSERT INTO t (a) VALUES (?)"]
        self.assertEqual(record.success_count, 1)
        self.assertEqual(record.affected_rows, 0)

    async def test_driver_error_is_recorded_and_reraised(self) -> None:
        error = _QueryFailed("relation does not exist")
        conn = self.adapter.attach(_FakeAsyncpgConnection(error=error))

        with self.assertRaises(_QueryFailed) as ctx:
            await conn.fetch("SELECT * FROM missing WHERE id = 7")

        self.assertIs(ctx.exception, error)
        record = self.counters.metrics["SELECT * FROM missing WHERE id = ?"]
        self.assertEqual(record.error_count, 1)
        self.assertEqual(record.success_count, 0)
        self.assertEqual(self.counters.running_queries_count, 0)

    async def test_cancelled_query_still_completes_dispatch(self) -> None:
        conn = self.adapter.attach(_FakeAsyncpgConnection(error=asyncio.CancelledError()))

        with self.assertRaises(asyncio.CancelledError):
            await conn.execute("DELETE FROM t WHERE id = 1")

        self.assertEqual(self.counters.running_queries_count, 0)
        self.assertEqual(self.counters.metrics["DELETE FROM t WHERE id = ?"].error_count, 1)

    async def test_unwrapped_attributes_are_delegated(self) -> None:
        conn = self.adapter.attach(_FakeAsyncpgConnection())
        self.assertFalse(conn.is_closed())

    async def test_acquire_yields_instrumented_connection(self) -> None:
        pool = _FakePool(_FakeAsyncpgConnection(rows=[{"id": 1}]))
        async with self.adapter.acquire(pool) as conn:
            self.assertIsInstance(conn, InstrumentedConnection)
            await conn.fetch("SELECT id FROM t")

        self.assertEqual(self.counters.metrics["SELECT id FROM t"].fetched_rows, 1)

    async def test_measure_latency_uses_raw_connection(self) -> None:
        raw = _FakeAsyncpgConnection()
        conn = self.adapter.attach(raw)

        with mock.patch.object(asyncpg_adapter, "elapsed_ms", side_effect=[9, 4, 6]):
            latency = await measure_latency(conn, self.counters, samples=3)

        self.assertEqual(latency, 4)
        self.assertEqual([call[1] for call in raw.calls], ["SELECT 1"] * 3)
        self.assertEqual(len(self.counters.metrics), 0)

    async def test_measure_latency_reset_overrides_previous_value(self) -> None:
        self.counters.set_latency(1)
        with mock.patch.object(asyncpg_adapter, "elapsed_ms", side_effect=[8, 12]):
            latency = await measure_latency(_FakeAsyncpgConnection(), self.counters, samples=2, reset=True)

        self.assertEqual(latency, 8)


class AsyncpgAttachTests(unittest.TestCase):
    def setUp(self) -> None:
        patcher = mock.patch.object(
            asyncpg_adapter, "SUPPORTED_CONNECTION_TYPES", (_FakeAsyncpgConnection,)
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_rejects_unknown_connection_type(self) -> None:
        adapter = AsyncpgAdapter(PerformanceCounters())
        with self.assertRaises(TypeError) as ctx:
            adapter.attach(object())
        self.assertIn("object", str(ctx.exception))

    def test_double_attach_is_a_no_op(self) -> None:
        adapter = AsyncpgAdapter(PerformanceCounters())
        conn = adapter.attach(_FakeAsyncpgConnection())
        self.assertIs(adapter.attach(conn), conn)
        self.assertIs(AsyncpgAdapter(PerformanceCounters()).attach(conn), conn)

    def test_attach_requires_registered_observer(self) -> None:
        with self.assertRaises(RuntimeError):
            AsyncpgAdapter().attach(_FakeAsyncpgConnection())

    def test_register_is_idempotent_for_same_observer(self) -> None:
        counters = PerformanceCounters()
        adapter = AsyncpgAdapter(counters)
        adapter.register(counters)

        with self.assertRaises(RuntimeError):
            adapter.register(PerformanceCounters())

    def test_register_rejects_non_observer(self) -> None:
        with self.assertRaises(TypeError):
            AsyncpgAdapter(object())


if __name__ == "__main__":
    unittest.main()
