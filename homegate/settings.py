"""Runtime settings and paths."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


def repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def data_dir() -> Path:
    root = repo_root()
    return Path(os.getenv("HOMEGATE_DATA_DIR", str(root / "data")))


def db_path() -> Path:
    return Path(os.getenv("HOMEGATE_DB_PATH", str(data_dir() / "homegate.db")))


def activity_path() -> Path:
    return Path(os.getenv("HOMEGATE_ACTIVITY_PATH", str(data_dir() / "activity.jsonl")))


def session_path() -> Path:
    return Path(os.getenv("HOMEGATE_SESSION_PATH", str(data_dir() / "session.json")))


def layout_path() -> Optional[Path]:
    value = os.getenv("HOMEGATE_LAYOUT_PATH", "").strip()
    return Path(value) if value else None


def api_base() -> str:
    return os.getenv("HOMEGATE_API_BASE", "").strip()


def api_timeout_seconds() -> float:
    value = os.getenv("HOMEGATE_API_TIMEOUT", "5")
    try:
        return max(1.0, float(value))
    except ValueError:
        return 5.0


def device_secret() -> Optional[str]:
    value = os.getenv("HOMEGATE_DEVICE_SECRET", "").strip()
    return value or None


def activity_recent_limit() -> int:
    value = os.getenv("HOMEGATE_ACTIVITY_RECENT", "20")
    try:
        return max(1, int(value))
    except ValueError:
        return 20


def log_level() -> str:
    value = os.getenv("HOMEGATE_LOG_LEVEL", "WARNING").strip().upper()
    if value in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        return value
    return "WARNING"
