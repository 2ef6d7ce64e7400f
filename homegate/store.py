"""Database helpers for homegate."""

from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, Iterable, List, Optional

from .db import utc_now_iso


def _member_row(row: sqlite3.Row) -> Dict[str, Any]:
    try:
        policies = json.loads(row["policies_json"]) if row["policies_json"] else None
    except ValueError:
        policies = None
    return {
        "id": row["id"],
        "name": row["name"],
        "email": row["email"] or None,
        "role": row["role"],
        "relation": row["relation"] or "",
        "pin": row["pin"],
        "preferredLogin": row["preferred_login"],
        "template": row["template"] or None,
        "policies": policies,
        "registeredAt": row["registered_at"],
    }


def upsert_member(conn: sqlite3.Connection, member: Dict[str, Any]) -> None:
    conn.execute(
        """
        INSERT INTO members (
            id, name, email, role, relation, pin, preferred_login, policies_json, template, registered_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            name = excluded.name,
            email = excluded.email,
            role = excluded.role,
            relation = excluded.relation,
            pin = excluded.pin,
            preferred_login = excluded.preferred_login,
            policies_json = excluded.policies_json,
            template = excluded.template,
            registered_at = excluded.registered_at
        """,
        (
            str(member["id"]),
            member.get("name") or "",
            member.get("email") or None,
            member.get("role") or "member",
            member.get("relation") or "",
            member.get("pin") or "",
            member.get("preferredLogin") or "pin",
            json.dumps(member.get("policies") or {}, ensure_ascii=True, sort_keys=True),
            member.get("template") or None,
            member.get("registeredAt") or utc_now_iso(),
        ),
    )
    conn.commit()


def get_member(conn: sqlite3.Connection, member_id: str) -> Optional[Dict[str, Any]]:
    row = conn.execute("SELECT * FROM members WHERE id = ?", (str(member_id),)).fetchone()
    return _member_row(row) if row else None


def list_members(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    rows = conn.execute("SELECT * FROM members ORDER BY registered_at ASC, id ASC").fetchall()
    return [_member_row(row) for row in rows]


def count_members(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT COUNT(*) FROM members").fetchone()
    return int(row[0])


def find_member_by_pin(conn: sqlite3.Connection, pin: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        "SELECT * FROM members WHERE pin = ? AND pin != '' ORDER BY registered_at ASC LIMIT 1",
        (pin,),
    ).fetchone()
    return _member_row(row) if row else None


def find_member_by_email(conn: sqlite3.Connection, email: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        "SELECT * FROM members WHERE lower(email) = lower(?) LIMIT 1", (email,)
    ).fetchone()
    return _member_row(row) if row else None


def members_with_templates(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    rows = conn.execute(
        "SELECT * FROM members WHERE template IS NOT NULL AND template != ''"
    ).fetchall()
    return [_member_row(row) for row in rows]


def delete_member(conn: sqlite3.Connection, member_id: str) -> bool:
    cur = conn.execute("DELETE FROM members WHERE id = ?", (str(member_id),))
    conn.commit()
    return cur.rowcount > 0


def seed_doors(conn: sqlite3.Connection, doors: Iterable[str], locked: bool = True) -> None:
    conn.executemany(
        "INSERT OR IGNORE INTO door_state (door, locked) VALUES (?, ?)",
        [(door, 1 if locked else 0) for door in doors],
    )
    conn.commit()


def get_doors(conn: sqlite3.Connection) -> Dict[str, bool]:
    rows = conn.execute("SELECT door, locked FROM door_state ORDER BY door ASC").fetchall()
    return {row["door"]: bool(row["locked"]) for row in rows}


def get_door(conn: sqlite3.Connection, door: str) -> Optional[bool]:
    row = conn.execute("SELECT locked FROM door_state WHERE door = ?", (door,)).fetchone()
    return bool(row["locked"]) if row else None


def set_door(conn: sqlite3.Connection, door: str, locked: bool) -> None:
    conn.execute(
        "UPDATE door_state SET locked = ? WHERE door = ?", (1 if locked else 0, door)
    )
    conn.commit()


def set_all_doors(conn: sqlite3.Connection, locked: bool) -> None:
    conn.execute("UPDATE door_state SET locked = ?", (1 if locked else 0,))
    conn.commit()


def set_device_state(
    conn: sqlite3.Connection, device_id: str, value: float, ts: Optional[str] = None
) -> Dict[str, Any]:
    ts = ts or utc_now_iso()
    conn.execute(
        """
        INSERT INTO device_state (device_id, value, recorded_at)
        VALUES (?, ?, ?)
        ON CONFLICT(device_id) DO UPDATE SET value = excluded.value, recorded_at = excluded.recorded_at
        """,
        (device_id, float(value), ts),
    )
    conn.commit()
    return {"deviceId": device_id, "value": value, "recordedAt": ts}


def get_device_states(
    conn: sqlite3.Connection, ids: Optional[Iterable[str]] = None
) -> Dict[str, Dict[str, Any]]:
    ids = list(ids or [])
    if ids:
        placeholders = ",".join("?" for _ in ids)
        rows = conn.execute(
            f"SELECT * FROM device_state WHERE device_id IN ({placeholders})", ids
        ).fetchall()
    else:
        rows = conn.execute("SELECT * FROM device_state").fetchall()
    return {
        row["device_id"]: {
            "deviceId": row["device_id"],
            "value": row["value"],
            "recordedAt": row["recorded_at"],
        }
        for row in rows
    }


def insert_activity_event(
    conn: sqlite3.Connection, event_type: str, success: bool, payload: Dict[str, Any], ts: str
) -> int:
    cur = conn.execute(
        "INSERT INTO activity_events (ts, type, success, payload_json) VALUES (?, ?, ?, ?)",
        (ts, event_type, 1 if success else 0, json.dumps(payload, ensure_ascii=True)),
    )
    conn.commit()
    return int(cur.lastrowid)


def list_activity_events(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    rows = conn.execute("SELECT * FROM activity_events ORDER BY id ASC").fetchall()
    events = []
    for row in rows:
        payload = json.loads(row["payload_json"])
        payload.update({"ts": row["ts"], "type": row["type"], "success": bool(row["success"])})
        events.append(payload)
    return events
