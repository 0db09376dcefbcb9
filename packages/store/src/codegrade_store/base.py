"""Abstract record store interface.

The review core persists cached reviews, quota windows and finished review
records through this interface only. It is deliberately a small CRUD surface
over named tables of dict records so any backend (in-memory, SQLite, a hosted
Postgres) can implement it without the core knowing which one is in use.

Filters are plain dicts of field → value equality matches. A key ending in
``__gte`` or ``__lte`` compares the named field with >= / <= instead, which is
enough for the rolling-window counts the quota guard needs.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

Record = dict[str, Any]


def matches(record: Record, filters: Record | None) -> bool:
    """Return True if record satisfies every filter clause."""
    if not filters:
        return True
    for key, expected in filters.items():
        if key.endswith("__gte"):
            value = record.get(key[: -len("__gte")])
            if value is None or value < expected:
                return False
        elif key.endswith("__lte"):
            value = record.get(key[: -len("__lte")])
            if value is None or value > expected:
                return False
        elif record.get(key) != expected:
            return False
    return True


def stamp(record: Record) -> Record:
    """Return a copy of record with ``id`` and ``created_at`` filled in if missing."""
    stamped = dict(record)
    stamped.setdefault("id", uuid.uuid4().hex)
    stamped.setdefault("created_at", datetime.now(timezone.utc).isoformat())
    return stamped


class BaseStore(ABC):
    """Pluggable persistence layer for review state.

    Implementations must be safe to share between threads of one process:
    the quota guard and review cache call into the same store from
    concurrent review requests.
    """

    @abstractmethod
    def get(self, table: str, filters: Record) -> Record | None:
        """Return the first record matching filters, or None."""

    @abstractmethod
    def list(
        self,
        table: str,
        filters: Record | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        """Return matching records, optionally sorted ascending by a field."""

    @abstractmethod
    def insert(self, table: str, record: Record) -> Record:
        """Insert a record and return it with ``id`` and ``created_at`` populated."""

    @abstractmethod
    def upsert(self, table: str, record: Record, keys: list[str]) -> Record:
        """Replace the record whose ``keys`` fields match, or insert it."""

    @abstractmethod
    def delete(self, table: str, filters: Record) -> int:
        """Delete matching records and return how many were removed."""

    def count(self, table: str, filters: Record | None = None) -> int:
        return len(self.list(table, filters))

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
