"""MemoryStore: the default store when nothing is configured.

Keeps every table in a process-local dict. State disappears when the process
exits, which is exactly what tests and one-off CLI runs want: caching and
quota still behave correctly for the lifetime of the process.
"""

from __future__ import annotations

import copy
import threading

from codegrade_store.base import BaseStore, Record, matches, stamp


class MemoryStore(BaseStore):
    """Thread-safe in-memory record store.

    Records are deep-copied on the way in and out so callers can never mutate
    stored state through a returned reference.
    """

    def __init__(self):
        self._tables: dict[str, list[Record]] = {}
        self._lock = threading.Lock()

    def get(self, table: str, filters: Record) -> Record | None:
        with self._lock:
            for record in self._tables.get(table, []):
                if matches(record, filters):
                    return copy.deepcopy(record)
        return None

    def list(
        self,
        table: str,
        filters: Record | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._tables.get(table, []) if matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)))
        if limit is not None:
            rows = rows[:limit]
        return rows

    def insert(self, table: str, record: Record) -> Record:
        stamped = stamp(record)
        with self._lock:
            self._tables.setdefault(table, []).append(copy.deepcopy(stamped))
        return stamped

    def upsert(self, table: str, record: Record, keys: list[str]) -> Record:
        key_filter = {k: record.get(k) for k in keys}
        with self._lock:
            rows = self._tables.setdefault(table, [])
            for i, existing in enumerate(rows):
                if matches(existing, key_filter):
                    merged = {**existing, **record}
                    rows[i] = copy.deepcopy(merged)
                    return merged
            stamped = stamp(record)
            rows.append(copy.deepcopy(stamped))
            return stamped

    def delete(self, table: str, filters: Record) -> int:
        with self._lock:
            rows = self._tables.get(table, [])
            kept = [r for r in rows if not matches(r, filters)]
            self._tables[table] = kept
            return len(rows) - len(kept)
