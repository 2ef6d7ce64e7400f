"""SQLite connection and schema migrations for homegate."""

from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Set

MEMORY = ":memory:"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def default_migrations_dir() -> Path:
    return Path(__file__).resolve().parent / "migrations"


def connect(db_path: str) -> sqlite3.Connection:
    if db_path != MEMORY:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _applied_versions(conn: sqlite3.Connection) -> Set[str]:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_migrations ("
        "version TEXT PRIMARY KEY, applied_at TEXT NOT NULL)"
    )
    return {row[0] for row in conn.execute("SELECT version FROM schema_migrations")}


def pending_migrations(conn: sqlite3.Connection, migrations_dir: Optional[str] = None) -> List[Path]:
    """Migration files not yet recorded, in file-name order."""
    directory = Path(migrations_dir) if migrations_dir else default_migrations_dir()
    done = _applied_versions(conn)
    return [p for p in sorted(directory.glob("*.sql")) if p.is_file() and p.name not in done]


def apply_migrations(conn: sqlite3.Connection, migrations_dir: Optional[str] = None) -> List[str]:
    applied: List[str] = []
    for file_path in pending_migrations(conn, migrations_dir):
        # executescript commits on its own; the version row gets its own transaction.
        conn.executescript(file_path.read_text(encoding="utf-8"))
        with conn:
            conn.execute(
                "INSERT INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                (file_path.name, utc_now_iso()),
            )
        logging.info("applied migration %s", file_path.name)
        applied.append(file_path.name)
    return applied


def init_db(db_path: str, migrations_dir: Optional[str] = None) -> sqlite3.Connection:
    conn = connect(os.fspath(db_path))
    apply_migrations(conn, migrations_dir)
    return conn
