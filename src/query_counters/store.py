"""In-memory mapping from canonical query key to its metrics record."""

from __future__ import annotations

import dataclasses
import threading
from contextlib import nullcontext
from typing import Any, Dict, ItemsView, Iterator, Mapping

from .models import MetricsRecord


class MetricsView(Mapping[str, MetricsRecord]):
    """Live read-only mapping that hands out copies of the stored records.

    Keys and values track the store as it changes, but each lookup returns a
    detached :class:`MetricsRecord`, so callers cannot alter the counters.
    """

    def __init__(self, records: Dict[str, MetricsRecord], lock: Any = None) -> None:
        self._records = records
        self._lock = lock if lock is not None else nullcontext()

    def __getitem__(self, key: str) -> MetricsRecord:
        with self._lock:
            return dataclasses.replace(self._records[key])

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            keys = list(self._records)
        return iter(keys)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self.items())!r})"


class MetricsStore:
    """Get-or-create container without eviction.

    The number of keys is bounded by the application's query vocabulary once
    literals are stripped, so nothing is ever dropped until :meth:`clear`.
    """

    def __init__(self) -> None:
        self._records: Dict[str, MetricsRecord] = {}

    def get_or_create(self, key: str) -> MetricsRecord:
        record = self._records.get(key)
        if record is None:
            record = MetricsRecord()
            self._records[key] = record
        return record

    def get(self, key: str) -> MetricsRecord | None:
        return self._records.get(key)

    def clear(self) -> None:
        self._records.clear()

    def view(self, lock: threading.Lock | None = None) -> Mapping[str, MetricsRecord]:
        """Live read-only view; ``lock`` guards each read when writers run concurrently."""

        return MetricsView(self._records, lock)

    def items(self) -> ItemsView[str, MetricsRecord]:
        return self._records.items()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)


__all__ = ["MetricsStore", "MetricsView"]
