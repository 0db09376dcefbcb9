"""Review cache keyed by content fingerprint or pull request head commit.

Entries are written once and never mutated. A changed file or a new head
commit produces a new key, which is how stale reviews are superseded.

Writes are insert-if-absent without a lock spanning the provider call: two
concurrent misses for the same key may both call the provider, and the
second put() is simply dropped.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from codegrade_core.utils.code import content_fingerprint
from codegrade_store.models import REVIEW_CACHE_TABLE

if TYPE_CHECKING:
    from codegrade_store.base import BaseStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheKey:
    value: str

    @classmethod
    def for_content(cls, source_text: str, model_id: str) -> CacheKey:
        return cls(f"file:{model_id}:{content_fingerprint(source_text)}")

    @classmethod
    def for_pull_request(cls, repo: str, pr_number: int, head_commit_id: str) -> CacheKey:
        return cls(f"pr:{repo}#{pr_number}@{head_commit_id}")


class ReviewCache(ABC):
    @abstractmethod
    def get(self, key: CacheKey) -> dict | None:
        """Return the cached payload for key, or None."""

    @abstractmethod
    def put(self, key: CacheKey, payload: dict) -> bool:
        """Store payload unless key is already present. Return True if stored."""


class MemoryReviewCache(ReviewCache):
    def __init__(self):
        self._entries: dict[str, dict] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> dict | None:
        with self._lock:
            payload = self._entries.get(key.value)
        return dict(payload) if payload is not None else None

    def put(self, key: CacheKey, payload: dict) -> bool:
        with self._lock:
            if key.value in self._entries:
                return False
            self._entries[key.value] = dict(payload)
            return True


class StoreReviewCache(ReviewCache):
    """Cache backed by the record store, so entries survive restarts with SQLite."""

    def __init__(self, store: BaseStore, table: str = REVIEW_CACHE_TABLE):
        self.store = store
        self.table = table

    def get(self, key: CacheKey) -> dict | None:
        row = self.store.get(self.table, {"key": key.value})
        return row["payload"] if row else None

    def put(self, key: CacheKey, payload: dict) -> bool:
        if self.store.get(self.table, {"key": key.value}) is not None:
            logger.debug("Cache entry %s already present; keeping the first one.", key.value)
            return False
        self.store.insert(self.table, {"key": key.value, "payload": payload})
        return True
