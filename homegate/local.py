"""In-process backend over the local SQLite store."""

from __future__ import annotations

import json
import math
import secrets
import sqlite3
import uuid
from typing import Any, Dict, Iterable, List, Optional

from . import store
from .db import utc_now_iso
from .layout import HomeLayout
from .policy import default_policy, merge_policy, normalize_policy, normalize_role


FACE_DISTANCE_THRESHOLD = 0.12

MEMBER_FIELDS = ("name", "email", "role", "relation", "pin", "preferredLogin", "template")


def _template_vector(data: Any) -> Optional[List[float]]:
    if not isinstance(data, dict):
        return None
    vec = data.get("vec", data.get("v"))
    if not isinstance(vec, list) or not vec:
        return None
    try:
        return [float(x) for x in vec]
    except (TypeError, ValueError):
        return None


def templates_match(first: Optional[str], second: Optional[str]) -> bool:
    """Compare two opaque face templates.

    Hash templates must be identical, landmark vectors must be within
    ``FACE_DISTANCE_THRESHOLD`` RMS distance, anything else is compared as text.
    """
    if not first or not second:
        return False
    try:
        a = json.loads(first)
        b = json.loads(second)
    except ValueError:
        return first == second
    if isinstance(a, dict) and isinstance(b, dict) and a.get("hash") and b.get("hash"):
        return a["hash"] == b["hash"]
    va = _template_vector(a)
    vb = _template_vector(b)
    if va is not None and vb is not None:
        if len(va) != len(vb):
            return False
        dist = math.sqrt(sum((x - y) ** 2 for x, y in zip(va, vb)) / len(va))
        return dist < FACE_DISTANCE_THRESHOLD
    return first == second


class LocalBackend:
    name = "local"

    def __init__(self, conn: sqlite3.Connection, layout: Optional[HomeLayout] = None) -> None:
        self.conn = conn
        self.layout = layout or HomeLayout()
        store.seed_doors(conn, self.layout.doors)

    # doors

    def get_doors(self) -> Dict[str, Any]:
        return {"ok": True, "doors": store.get_doors(self.conn)}

    def toggle_door(self, door: str) -> Dict[str, Any]:
        current = store.get_door(self.conn, door)
        if current is None:
            return {"ok": False, "error": "unknown_door"}
        store.set_door(self.conn, door, not current)
        return {"ok": True, "door": door, "locked": not current}

    def set_door(self, door: str, locked: bool) -> Dict[str, Any]:
        current = store.get_door(self.conn, door)
        if current is None:
            return {"ok": False, "error": "unknown_door"}
        if current != locked:
            store.set_door(self.conn, door, locked)
        return {"ok": True, "door": door, "locked": locked, "changed": current != locked}

    def lock_all_doors(self) -> Dict[str, Any]:
        store.set_all_doors(self.conn, True)
        return {"ok": True, "locked": True}

    def unlock_all_doors(self) -> Dict[str, Any]:
        store.set_all_doors(self.conn, False)
        return {"ok": True, "locked": False}

    # devices

    def _known_device(self, device_id: str) -> bool:
        known = self.layout.all_device_ids()
        return not known or device_id in known

    def set_device_state(self, device_id: str, value: Any) -> Dict[str, Any]:
        if not self._known_device(device_id):
            return {"ok": False, "error": "unknown_device"}
        if isinstance(value, bool):
            value = 1 if value else 0
        try:
            numeric = float(value)
        except (TypeError, ValueError):
            return {"ok": False, "error": "invalid_value"}
        state = store.set_device_state(self.conn, device_id, numeric)
        state["value"] = value
        return {"ok": True, **state}

    def get_device_state(self, device_id: str) -> Dict[str, Any]:
        if not self._known_device(device_id):
            return {"ok": False, "error": "unknown_device"}
        state = store.get_device_states(self.conn, [device_id]).get(device_id)
        if state is None:
            return {"ok": True, "deviceId": device_id, "value": 0, "recordedAt": None}
        return {"ok": True, **state}

    def get_device_states(self, ids: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        ids = list(ids or [])
        stored = store.get_device_states(self.conn, ids)
        states: Dict[str, Dict[str, Any]] = {}
        for device_id in ids or sorted(stored):
            state = stored.get(device_id)
            value = 1 if state and state["value"] else 0
            states[device_id] = {
                "deviceId": device_id,
                "value": value,
                "recordedAt": state["recordedAt"] if state else None,
            }
        return {"ok": True, "states": states}

    # members

    def _new_member(self, fields: Dict[str, Any], role: str, relation: str) -> Dict[str, Any]:
        member = {key: fields.get(key) for key in MEMBER_FIELDS}
        member.update(
            {
                "id": str(fields.get("id") or uuid.uuid4().hex),
                "role": role,
                "relation": relation,
                "preferredLogin": fields.get("preferredLogin") or "pin",
                "policies": normalize_policy(fields.get("policies"), role).to_dict(),
                "registeredAt": utc_now_iso(),
            }
        )
        return member

    def list_members(self) -> Dict[str, Any]:
        return {"ok": True, "members": store.list_members(self.conn)}

    def register_member(self, fields: Dict[str, Any], template: Optional[str] = None) -> Dict[str, Any]:
        if not fields.get("name") or not fields.get("pin"):
            return {"ok": False, "error": "missing_fields"}
        if template:
            for existing in store.members_with_templates(self.conn):
                if templates_match(template, existing["template"]):
                    return {"ok": False, "error": "duplicate_face", "duplicate": True}
        if store.count_members(self.conn) == 0:
            role, relation = "parent", "owner"
            fields = dict(fields, policies=default_policy("parent").to_dict())
        else:
            role = normalize_role(fields.get("role"))
            relation = fields.get("relation") or ""
        member = self._new_member(dict(fields, template=template), role, relation)
        store.upsert_member(self.conn, member)
        return {"ok": True, "member": member}

    def add_member(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        if not fields.get("name") or not fields.get("pin"):
            return {"ok": False, "error": "missing_fields"}
        role = normalize_role(fields.get("role"))
        member = self._new_member(fields, role, fields.get("relation") or "member")
        store.upsert_member(self.conn, member)
        return {"ok": True, "member": member}

    def update_member(self, member_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        current = store.get_member(self.conn, member_id)
        if current is None:
            return {"ok": False, "error": "member_not_found"}
        updated = dict(current)
        for key in MEMBER_FIELDS:
            if key in updates:
                updated[key] = updates[key]
        updated["role"] = normalize_role(updated.get("role"))
        base = normalize_policy(current.get("policies"), updated["role"])
        try:
            updated["policies"] = merge_policy(base, updates.get("policies")).to_dict()
        except ValueError as exc:
            return {"ok": False, "error": f"invalid_policies:{exc}"}
        store.upsert_member(self.conn, updated)
        return {"ok": True, "member": updated}

    def delete_member(self, member_id: str) -> Dict[str, Any]:
        if not store.delete_member(self.conn, member_id):
            return {"ok": False, "error": "member_not_found"}
        return {"ok": True, "deleted": str(member_id)}

    # admin

    def admin_login(self, email: str, pin: str) -> Dict[str, Any]:
        member = store.find_member_by_email(self.conn, email) if email else None
        if member is None or member.get("pin") != pin:
            return {"ok": False, "error": "invalid_credentials"}
        if member.get("role") != "admin":
            return {"ok": False, "error": "not_admin"}
        return {"ok": True, "member": member, "token": secrets.token_hex(16)}

    def admin_list_users(self) -> Dict[str, Any]:
        return self.list_members()

    def admin_create_user(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self.add_member(fields)

    def admin_update_user(self, member_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return self.update_member(member_id, updates)

    def admin_delete_user(self, member_id: str) -> Dict[str, Any]:
        return self.delete_member(member_id)

    # auth

    def auth_pin(self, pin: str) -> Dict[str, Any]:
        member = store.find_member_by_pin(self.conn, pin) if pin else None
        if member is None:
            return {"ok": False, "error": "invalid_pin"}
        return {"ok": True, "member": member}

    def auth_face(self, template: str) -> Dict[str, Any]:
        for member in store.members_with_templates(self.conn):
            if templates_match(template, member["template"]):
                return {"ok": True, "member": member}
        return {"ok": False, "error": "face_not_recognized"}
