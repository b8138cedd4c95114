"""
Persistent conversation history using SQLite.

One row per ``(user_id, session_id)`` holds the *whole* conversation as a
JSON document (``{"messages": [...]}``) together with its module bucket,
an optional title and free-form metadata (last mode, language, topic …).
Every save replaces the document, there are no partial updates.

The database lives at ``Asset/mentra.db`` inside the project root.
"""

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .paths import asset_path

log = logging.getLogger("mentra")

DB_PATH = asset_path("mentra.db")


@dataclass
class HistoryRecord:
    """A stored conversation (or other module output) for one user."""

    user_id: str
    session_id: str
    module_type: str
    content: dict = field(default_factory=dict)
    title: str | None = None
    metadata: dict = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""


class HistoryStore:
    """Manages persistent storage of history records in SQLite."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = db_path or DB_PATH
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection = sqlite3.connect(
            self._db_path, check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _create_tables(self) -> None:
        cur = self._conn.cursor()
        cur.executescript("""
            CREATE TABLE IF NOT EXISTS history (
                user_id     TEXT NOT NULL,
                session_id  TEXT NOT NULL,
                module_type TEXT NOT NULL DEFAULT 'chat',
                content     TEXT NOT NULL,
                title       TEXT,
                metadata    TEXT NOT NULL DEFAULT '{}',
                created_at  TEXT NOT NULL,
                updated_at  TEXT NOT NULL,
                PRIMARY KEY (user_id, session_id)
            );

            CREATE INDEX IF NOT EXISTS idx_history_user_module
                ON history(user_id, module_type, updated_at);
        """)
        self._conn.commit()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(
        self,
        user_id: str,
        session_id: str,
        module_type: str,
        content: dict,
        title: str | None = None,
        metadata: dict | None = None,
    ) -> None:
        """Insert or replace the record for ``(user_id, session_id)``.

        When *title* is ``None`` an existing title is kept; a record created
        without one stays untitled until a later save supplies it.
        """
        now = datetime.now(timezone.utc).isoformat()
        content_str = json.dumps(content, ensure_ascii=False)
        meta_str = json.dumps(metadata or {}, ensure_ascii=False)
        with self._lock:
            self._conn.execute(
                "INSERT INTO history"
                " (user_id, session_id, module_type, content, title,"
                "  metadata, created_at, updated_at)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
                " ON CONFLICT(user_id, session_id) DO UPDATE SET"
                "  module_type=excluded.module_type,"
                "  content=excluded.content,"
                "  title=COALESCE(excluded.title, history.title),"
                "  metadata=excluded.metadata,"
                "  updated_at=excluded.updated_at",
                (user_id, session_id, module_type, content_str, title,
                 meta_str, now, now),
            )
            self._conn.commit()
        log.debug("[HISTORY] Saved %s/%s (%s, title=%r)",
                  user_id, session_id, module_type, title)

    def delete(self, user_id: str, session_id: str) -> bool:
        """Delete one record.  Returns *True* when a row was removed."""
        with self._lock:
            cur = self._conn.execute(
                "DELETE FROM history WHERE user_id=? AND session_id=?",
                (user_id, session_id),
            )
            self._conn.commit()
        return cur.rowcount > 0

    def delete_many(self, user_id: str, session_ids) -> bool:
        """Delete several records.  *True* only if every id was removed."""
        ids = list(session_ids)
        removed = 0
        with self._lock:
            for sid in ids:
                cur = self._conn.execute(
                    "DELETE FROM history WHERE user_id=? AND session_id=?",
                    (user_id, sid),
                )
                removed += cur.rowcount
            self._conn.commit()
        return removed == len(ids)

    def delete_all_by_module(self, user_id: str, module_type: str) -> bool:
        """Delete every record of *module_type* for *user_id*."""
        with self._lock:
            self._conn.execute(
                "DELETE FROM history WHERE user_id=? AND module_type=?",
                (user_id, module_type),
            )
            self._conn.commit()
        return True

    def delete_all(self, user_id: str) -> bool:
        with self._lock:
            self._conn.execute(
                "DELETE FROM history WHERE user_id=?", (user_id,),
            )
            self._conn.commit()
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_session(self, user_id: str, session_id: str) -> HistoryRecord | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT user_id, session_id, module_type, content, title,"
                " metadata, created_at, updated_at"
                " FROM history WHERE user_id=? AND session_id=?",
                (user_id, session_id),
            ).fetchone()
        return self._to_record(row) if row else None

    def list_all(self, user_id: str, module_type: str | None = None) -> list[HistoryRecord]:
        """Return records for *user_id*, newest first, optionally filtered."""
        sql = (
            "SELECT user_id, session_id, module_type, content, title,"
            " metadata, created_at, updated_at FROM history WHERE user_id=?"
        )
        params: tuple = (user_id,)
        if module_type:
            sql += " AND module_type=?"
            params += (module_type,)
        sql += " ORDER BY updated_at DESC"
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [self._to_record(r) for r in rows]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_json(raw: str, what: str) -> dict:
        try:
            value = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            log.warning("[HISTORY] Stored %s is not valid JSON; ignoring it.", what)
            return {}
        return value if isinstance(value, dict) else {}

    def _to_record(self, row) -> HistoryRecord:
        return HistoryRecord(
            user_id=row[0],
            session_id=row[1],
            module_type=row[2],
            content=self._parse_json(row[3], "content"),
            title=row[4],
            metadata=self._parse_json(row[5], "metadata"),
            created_at=row[6],
            updated_at=row[7],
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()
