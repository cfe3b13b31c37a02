from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from .settings import settings


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (a bind mount created before the
    file existed, for example) the DB file is placed inside it.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "smr.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              namespace TEXT,
              cluster TEXT,
              message TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS passes (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              namespace TEXT NOT NULL,
              cluster TEXT NOT NULL,
              phase TEXT NOT NULL, -- complete|in_progress|failed|error
              reason TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            CREATE INDEX IF NOT EXISTS idx_passes_cluster ON passes(namespace, cluster);
            """
        )


def log_event(level: str, message: str, cluster: str | None = None, namespace: str | None = None) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, namespace, cluster, message) VALUES (?, ?, ?, ?, ?)",
            (utc_now(), level.upper(), namespace, cluster, message),
        )


@dataclass(frozen=True)
class PassRow:
    id: int
    ts: str
    namespace: str
    cluster: str
    phase: str
    reason: str


def _rows_to_dataclass(rows: Iterable[sqlite3.Row], cls: Any) -> list[Any]:
    out: list[Any] = []
    for r in rows:
        out.append(cls(**dict(r)))
    return out


def record_pass(namespace: str, cluster: str, phase: str, reason: str = "") -> None:
    with connect() as conn:
        conn.execute(
            "INSERT INTO passes (ts, namespace, cluster, phase, reason) VALUES (?, ?, ?, ?, ?)",
            (utc_now(), namespace, cluster, phase, reason),
        )


def list_passes(namespace: str, cluster: str, limit: int = 20) -> list[PassRow]:
    with connect() as conn:
        rows = conn.execute(
            "SELECT * FROM passes WHERE namespace=? AND cluster=? ORDER BY id DESC LIMIT ?",
            (namespace, cluster, limit),
        ).fetchall()
        return _rows_to_dataclass(rows, PassRow)


def latest_events(limit: int = 100, cluster: str | None = None) -> list[dict[str, Any]]:
    with connect() as conn:
        if cluster:
            rows = conn.execute(
                "SELECT * FROM events WHERE cluster=? ORDER BY id DESC LIMIT ?", (cluster, limit)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
