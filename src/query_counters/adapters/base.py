"""Observer contract and shared bookkeeping for driver adapters."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from ..config import get_settings
from ..logging_utils import log_event

LOGGER = logging.getLogger(__name__)

_ROW_COMMANDS = {"SELECT", "FETCH", "MOVE"}
_WRITE_COMMANDS = {"INSERT", "UPDATE", "DELETE", "MERGE", "COPY"}


@runtime_checkable
class QueryObserver(Protocol):
    """Anything that accepts query lifecycle callbacks."""

    def on_query(self) -> None: ...

    def on_result(
        self,
        query: str,
        duration_ms: int = 0,
        fetched_rows: int = 0,
        affected_rows: int = 0,
        changed_rows: int = 0,
    ) -> None: ...

    def on_error(self, query: str, duration_ms: int = 0, error: Any = None) -> None: ...

    def clear(self) -> None: ...


@dataclass(slots=True, frozen=True)
class RowCounts:
    fetched_rows: int = 0
    affected_rows: int = 0
    changed_rows: int = 0


def row_counts(command: str | None, count: int | None) -> RowCounts:
    """Classify ``count`` rows by the SQL command that produced them."""

    if not command or count is None or count < 0:
        return RowCounts()
    command = command.upper()
    if command in _ROW_COMMANDS:
        return RowCounts(fetched_rows=count)
    if command == "UPDATE":
        return RowCounts(affected_rows=count, changed_rows=count)
    if command in _WRITE_COMMANDS:
        return RowCounts(affected_rows=count)
    return RowCounts()


def parse_command_status(status: str | None) -> RowCounts:
    """Translate a PostgreSQL command tag such as ``"INSERT 0 3"`` into row counts."""

    parts = (status or "").split()
    if not parts:
        return RowCounts()
    try:
        count = int(parts[-1])
    except ValueError:
        return RowCounts()
    return row_counts(parts[0], count)


def ensure_observer(observer: Any) -> QueryObserver:
    if not isinstance(observer, QueryObserver):
        raise TypeError(
            f"{type(observer).__name__} does not implement on_query/on_result/on_error/clear"
        )
    return observer


def elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class DispatchRecorder:
    """Reports one dispatch to the registered observer.

    Exactly one of :meth:`succeeded` / :meth:`failed` must follow each
    :meth:`started`; the caller re-raises driver errors after :meth:`failed`.
    """

    def __init__(self, observer: QueryObserver, *, slow_query_ms: int | None = None) -> None:
        self._observer = observer
        self._slow_query_ms = slow_query_ms if slow_query_ms is not None else get_settings().slow_query_ms

    @property
    def observer(self) -> QueryObserver:
        return self._observer

    def started(self) -> float:
        self._observer.on_query()
        return time.perf_counter()

    def succeeded(self, query: str, started: float, counts: RowCounts | None = None) -> None:
        duration = elapsed_ms(started)
        counts = counts or RowCounts()
        self._observer.on_result(
            query,
            duration,
            fetched_rows=counts.fetched_rows,
            affected_rows=counts.affected_rows,
            changed_rows=counts.changed_rows,
        )
        self._warn_if_slow(query, duration)

    def failed(self, query: str, started: float, error: BaseException) -> None:
        duration = elapsed_ms(started)
        self._observer.on_error(query, duration, error)
        self._warn_if_slow(query, duration)

    def _warn_if_slow(self, query: str, duration: int) -> None:
        if duration > self._slow_query_ms:
            log_event(
                "slow_query",
                {"query": query, "duration_ms": duration, "threshold_ms": self._slow_query_ms},
                level=logging.WARNING,
            )


class DriverAdapter:
    """Base class holding the one-time observer registration.

    Subclasses validate connection types and wrap them so every dispatch goes
    through a :class:`DispatchRecorder`.
    """

    driver_name = "database"

    def __init__(self, observer: Any = None, *, slow_query_ms: int | None = None) -> None:
        self._recorder: DispatchRecorder | None = None
        self._slow_query_ms = slow_query_ms
        if observer is not None:
            self.register(observer)

    def register(self, observer: Any) -> None:
        observer = ensure_observer(observer)
        if self._recorder is not None:
            if self._recorder.observer is observer:
                return
            raise RuntimeError(
                f"{type(self).__name__} is already registered to another observer"
            )
        self._recorder = DispatchRecorder(observer, slow_query_ms=self._slow_query_ms)
        LOGGER.debug("Registered %s with %s adapter", type(observer).__name__, self.driver_name)

    @property
    def recorder(self) -> DispatchRecorder:
        self._check_registered()
        return self._recorder

    def _check_registered(self) -> None:
        if self._recorder is None:
            raise RuntimeError(f"No observer registered with {type(self).__name__}")


def query_text(query: Any, context: Any = None) -> str:
    """Best-effort plain text for ``query`` (str, bytes or composed SQL objects)."""

    if isinstance(query, str):
        return query
    if isinstance(query, (bytes, bytearray)):
        return bytes(query).decode("utf-8", errors="replace")
    as_string = getattr(query, "as_string", None)
    if callable(as_string):
        try:
            return as_string(context)
        except Exception as exc:
            LOGGER.debug("Unable to render composed query (%s); using repr", exc)
    return str(query)


__all__ = [
    "DispatchRecorder",
    "DriverAdapter",
    "QueryObserver",
    "RowCounts",
    "elapsed_ms",
    "ensure_observer",
    "parse_command_status",
    "query_text",
    "row_counts",
]
