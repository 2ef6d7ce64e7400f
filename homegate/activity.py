"""Append-only activity log of attempted door and device actions."""

from __future__ import annotations

import json
import os
import sqlite3
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import store
from .db import utc_now_iso


@dataclass(frozen=True)
class ActivityEvent:
    ts: str
    type: str
    success: bool
    door: Optional[str] = None
    device: Optional[str] = None
    member_id: Optional[str] = None
    reason: Optional[str] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActivityEvent":
        return cls(
            ts=str(data.get("ts") or utc_now_iso()),
            type=str(data.get("type") or "unknown"),
            success=bool(data.get("success")),
            door=data.get("door"),
            device=data.get("device"),
            member_id=data.get("member_id"),
            reason=data.get("reason"),
            source=data.get("source"),
        )


def new_event(event_type: str, success: bool, **fields: Any) -> ActivityEvent:
    return ActivityEvent(ts=utc_now_iso(), type=event_type, success=success, **fields)


def append_jsonl(path: str, entry: Dict[str, Any]) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(entry, ensure_ascii=True) + "\n")
        f.flush()
        os.fsync(f.fileno())


def read_jsonl(path: str) -> List[Dict[str, Any]]:
    file_path = Path(path)
    if not file_path.exists():
        return []
    entries: List[Dict[str, Any]] = []
    for line in file_path.read_text(encoding="utf-8", errors="ignore").splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except ValueError:
            continue
        if isinstance(entry, dict):
            entries.append(entry)
    return entries


class ActivityLog:
    """In-memory event history, optionally mirrored to a JSONL file and SQLite.

    Events are never pruned; callers cap what they render with ``recent``.
    """

    def __init__(self, path: Optional[str] = None, conn: Optional[sqlite3.Connection] = None) -> None:
        self.path = path
        self.conn = conn
        self._events: List[ActivityEvent] = []

    @classmethod
    def load(cls, path: Optional[str] = None, conn: Optional[sqlite3.Connection] = None) -> "ActivityLog":
        log = cls(path=path, conn=conn)
        if path:
            rows = read_jsonl(path)
        elif conn is not None:
            rows = store.list_activity_events(conn)
        else:
            rows = []
        log._events = [ActivityEvent.from_dict(row) for row in rows]
        return log

    def append(self, event: ActivityEvent) -> ActivityEvent:
        self._events.append(event)
        entry = event.to_dict()
        if self.path:
            append_jsonl(self.path, entry)
        if self.conn is not None:
            payload = {k: v for k, v in entry.items() if k not in ("ts", "type", "success")}
            store.insert_activity_event(self.conn, event.type, event.success, payload, event.ts)
        return event

    def recent(self, n: int) -> List[ActivityEvent]:
        """Last ``n`` events, newest first."""
        if n <= 0:
            return []
        return list(reversed(self._events[-n:]))

    def all(self) -> List[ActivityEvent]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)
