"""SQLiteStore: local file-based store for CLI use and CI caching.

The review cache and daily quota windows survive process restarts, so they
carry over between CLI invocations or between CI jobs sharing the file.

Schema:
  records: one row per stored document. Every logical table of the record
           store lives in this one physical table, keyed by ``tbl``; the
           document itself is JSON. Filtering happens in Python after the
           indexed ``tbl`` lookup, which is plenty for single-process review
           volumes and keeps the schema independent of record shapes.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading

from codegrade_store.base import BaseStore, Record, matches, stamp

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    rowid       INTEGER PRIMARY KEY AUTOINCREMENT,
    tbl         TEXT NOT NULL,
    id          TEXT NOT NULL,
    created_at  TEXT,
    data        TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_records_tbl ON records (tbl);
CREATE UNIQUE INDEX IF NOT EXISTS idx_records_id ON records (tbl, id);
"""


class SQLiteStore(BaseStore):
    """Stores records in a local SQLite database file.

    The database file path defaults to `.codegrade.db` in the current working
    directory. Configure via .codegrade.yml: `store_path: /path/to/codegrade.db`.
    """

    def __init__(self, db_path: str = ".codegrade.db"):
        # One connection shared across threads; every access goes through _lock.
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()
        self._lock = threading.Lock()

    def _rows(self, table: str) -> list[sqlite3.Row]:
        return self._conn.execute("SELECT rowid, data FROM records WHERE tbl=? ORDER BY rowid", (table,)).fetchall()

    def get(self, table: str, filters: Record) -> Record | None:
        with self._lock:
            for row in self._rows(table):
                record = json.loads(row["data"])
                if matches(record, filters):
                    return record
        return None

    def list(
        self,
        table: str,
        filters: Record | None = None,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        with self._lock:
            records = [json.loads(row["data"]) for row in self._rows(table)]
        records = [r for r in records if matches(r, filters)]
        if order_by:
            records.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)))
        if limit is not None:
            records = records[:limit]
        return records

    def insert(self, table: str, record: Record) -> Record:
        stamped = stamp(record)
        with self._lock:
            self._conn.execute(
                "INSERT INTO records (tbl, id, created_at, data) VALUES (?, ?, ?, ?)",
                (table, stamped["id"], stamped["created_at"], json.dumps(stamped)),
            )
            self._conn.commit()
        return stamped

    def upsert(self, table: str, record: Record, keys: list[str]) -> Record:
        key_filter = {k: record.get(k) for k in keys}
        with self._lock:
            for row in self._rows(table):
                existing = json.loads(row["data"])
                if matches(existing, key_filter):
                    merged = {**existing, **record}
                    self._conn.execute(
                        "UPDATE records SET data=? WHERE rowid=?",
                        (json.dumps(merged), row["rowid"]),
                    )
                    self._conn.commit()
                    return merged
            stamped = stamp(record)
            self._conn.execute(
                "INSERT INTO records (tbl, id, created_at, data) VALUES (?, ?, ?, ?)",
                (table, stamped["id"], stamped["created_at"], json.dumps(stamped)),
            )
            self._conn.commit()
            return stamped

    def delete(self, table: str, filters: Record) -> int:
        with self._lock:
            doomed = [row["rowid"] for row in self._rows(table) if matches(json.loads(row["data"]), filters)]
            for rowid in doomed:
                self._conn.execute("DELETE FROM records WHERE rowid=?", (rowid,))
            self._conn.commit()
        if doomed:
            logger.debug("Deleted %d record(s) from %s", len(doomed), table)
        return len(doomed)

    def close(self) -> None:
        self._conn.close()
