"""Per-user daily budget for expensive review operations.

A quota window opens on a user's first call in a scope and lasts 24 hours;
the count only ever goes up until the window expires and a new one opens on
the next call. Windows live in the record store table ``quota_windows``.

check() is a read-only pre-flight used before cache lookups, so a user who is
over budget is rejected fast. acquire() is the atomic increment-and-compare
taken only on the path that is about to call a provider; a cache hit never
reaches it and therefore never consumes quota.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from codegrade_core.errors import QuotaExceeded
from codegrade_store.models import QUOTA_TABLE

if TYPE_CHECKING:
    from codegrade_store.base import BaseStore

logger = logging.getLogger(__name__)

WINDOW = timedelta(hours=24)


@dataclass
class QuotaWindow:
    user_id: str
    scope: str
    window_start: datetime
    call_count: int

    def expires_at(self, window: timedelta = WINDOW) -> datetime:
        return self.window_start + window


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuotaGuard:
    def __init__(
        self,
        store: BaseStore,
        limits: dict[str, int | None],
        window: timedelta = WINDOW,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.limits = dict(limits)
        self.window = window
        self.clock = clock
        self._lock = threading.Lock()

    def _current(self, user_id: str, scope: str, now: datetime) -> QuotaWindow:
        row = self.store.get(QUOTA_TABLE, {"user_id": user_id, "scope": scope})
        if row:
            start = datetime.fromisoformat(row["window_start"])
            if now - start < self.window:
                return QuotaWindow(user_id, scope, start, int(row["call_count"]))
        return QuotaWindow(user_id, scope, now, 0)

    def _reject(self, current: QuotaWindow, limit: int, now: datetime) -> QuotaExceeded:
        retry_after = max(0.0, (current.expires_at(self.window) - now).total_seconds())
        logger.info("Quota exhausted for %s (%s): %d/%d", current.user_id, current.scope, current.call_count, limit)
        return QuotaExceeded(
            f"Daily limit reached ({current.call_count}/{limit} {current.scope} reviews today). "
            "Upgrade for unlimited reviews or try again later.",
            limit=limit,
            used=current.call_count,
            retry_after=retry_after,
        )

    def usage(self, user_id: str, scope: str) -> QuotaWindow:
        return self._current(user_id, scope, self.clock())

    def check(self, user_id: str, scope: str) -> QuotaWindow:
        """Raise QuotaExceeded if the user has no budget left; consume nothing."""
        limit = self.limits.get(scope)
        now = self.clock()
        current = self._current(user_id, scope, now)
        if limit is not None and current.call_count >= limit:
            raise self._reject(current, limit, now)
        return current

    def acquire(self, user_id: str, scope: str) -> QuotaWindow:
        """Atomically count one expensive operation, or raise QuotaExceeded."""
        limit = self.limits.get(scope)
        with self._lock:
            now = self.clock()
            current = self._current(user_id, scope, now)
            if limit is not None and current.call_count >= limit:
                raise self._reject(current, limit, now)
            current.call_count += 1
            self.store.upsert(
                QUOTA_TABLE,
                {
                    "user_id": user_id,
                    "scope": scope,
                    "window_start": current.window_start.isoformat(),
                    "call_count": current.call_count,
                },
                keys=["user_id", "scope"],
            )
        return current
