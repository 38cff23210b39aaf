from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from pathlib import Path
from typing import Any

import structlog

from portwatch.errors import ResultSinkError
from portwatch.models import CheckResult
from portwatch.sinks.base import AGENT_NAME


logger = structlog.get_logger(__name__)

SCHEMA_VERSION = 1


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, sort_keys=True)


def _connect(path: str) -> sqlite3.Connection:
    p = str(path or "").strip()
    if not p:
        raise ValueError("Missing db_path")
    if p != ":memory:":
        Path(p).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(p, timeout=30, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 5000;")
    # WAL lets readers (dashboards, sqlite3 CLI) look at the log while we write.
    try:
        conn.execute("PRAGMA journal_mode = WAL;")
    except sqlite3.DatabaseError:
        pass
    return conn


def _ensure_schema_conn(conn: sqlite3.Connection) -> None:
    conn.execute("CREATE TABLE IF NOT EXISTS schema_meta (k TEXT PRIMARY KEY, v TEXT NOT NULL);")
    row = conn.execute("SELECT v FROM schema_meta WHERE k='version'").fetchone()
    cur = int(row["v"]) if row and row["v"] else 0
    if cur >= SCHEMA_VERSION:
        return
    if cur == 0:
        _apply_v1(conn)
        conn.execute("INSERT OR REPLACE INTO schema_meta (k, v) VALUES ('version', ?)", (str(SCHEMA_VERSION),))
        return
    raise RuntimeError(f"Unsupported schema version upgrade path cur={cur} target={SCHEMA_VERSION}")


def _apply_v1(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS status_log (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          event_time TEXT NOT NULL,
          agent_name TEXT NOT NULL,
          target TEXT NOT NULL,
          status_ok INTEGER NOT NULL,
          object_data TEXT
        );
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_status_log_target_time ON status_log(target, event_time);")


class SqliteResultSink:
    """Stores each check result as one row of ``status_log``.

    sqlite3 calls run in a worker thread; a lock serializes them so concurrent
    appends never interleave.
    """

    def __init__(self, db_path: str, agent_name: str = AGENT_NAME):
        self.db_path = db_path
        self.agent_name = agent_name
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = _connect(self.db_path)
            _ensure_schema_conn(conn)
            self._conn = conn
        return self._conn

    def _insert(self, result: CheckResult) -> int:
        with self._lock:
            conn = self._connection()
            cur = conn.execute(
                "INSERT INTO status_log (event_time, agent_name, target, status_ok, object_data) VALUES (?, ?, ?, ?, ?)",
                (
                    result.probed_at.isoformat(),
                    self.agent_name,
                    result.target,
                    1 if result.ok else 0,
                    _json_dumps(result.to_dict()),
                ),
            )
            return int(cur.lastrowid)

    async def append(self, result: CheckResult) -> int:
        try:
            return await asyncio.to_thread(self._insert, result)
        except (sqlite3.Error, OSError, ValueError) as e:
            raise ResultSinkError(f"failed to store result for {result.target}: {e}") from e

    def fetch_recent(self, limit: int = 50) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._connection().execute(
                "SELECT id, event_time, agent_name, target, status_ok, object_data FROM status_log ORDER BY id DESC LIMIT ?",
                (int(limit),),
            ).fetchall()
        out: list[dict[str, Any]] = []
        for r in rows:
            out.append(
                {
                    "id": int(r["id"]),
                    "event_time": r["event_time"],
                    "agent_name": r["agent_name"],
                    "target": r["target"],
                    "status_ok": bool(r["status_ok"]),
                    "object_data": json.loads(r["object_data"]) if r["object_data"] else None,
                }
            )
        return out

    def _close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    async def close(self) -> None:
        await asyncio.to_thread(self._close)
        logger.debug("Closed result database", db_path=self.db_path)
