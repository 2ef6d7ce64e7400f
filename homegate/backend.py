"""Remote-first, local-fallback dispatch over the two execution backends."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from .errors import BackendUnavailable


OPERATIONS = (
    "get_doors",
    "toggle_door",
    "set_door",
    "lock_all_doors",
    "unlock_all_doors",
    "set_device_state",
    "get_device_state",
    "get_device_states",
    "list_members",
    "register_member",
    "add_member",
    "update_member",
    "delete_member",
    "admin_login",
    "admin_list_users",
    "admin_create_user",
    "admin_update_user",
    "admin_delete_user",
    "auth_pin",
    "auth_face",
)


def _tag(result: Dict[str, Any], source: str) -> Dict[str, Any]:
    tagged = dict(result)
    tagged["source"] = source
    return tagged


def call_with_fallback(primary: Any, fallback: Any, op: str, *args: Any) -> Dict[str, Any]:
    """Run ``op`` on ``primary`` when it is enabled; on any failure run it once on ``fallback``.

    A primary success is returned as-is. The fallback result is authoritative
    when the primary was skipped or failed.
    """
    if op not in OPERATIONS:
        raise ValueError(f"unsupported backend operation: {op}")

    remote_error: Optional[str] = None
    if primary is not None and getattr(primary, "enabled", True):
        result = getattr(primary, op)(*args)
        if result.get("ok"):
            return _tag(result, getattr(primary, "name", "remote"))
        remote_error = str(result.get("error") or "unknown_error")
        unavailable = BackendUnavailable(f"{op} failed remotely", {"error": remote_error})
        logging.warning("%s (%s: %s); using local backend", unavailable, unavailable.code, remote_error)

    result = _tag(getattr(fallback, op)(*args), getattr(fallback, "name", "local"))
    if remote_error is not None:
        result["fallback"] = True
        result["remote_error"] = remote_error
    return result


class DualBackend:
    """Exposes every backend operation with remote preference and local fallback."""

    def __init__(self, local: Any, remote: Any = None) -> None:
        self.local = local
        self.remote = remote

    @property
    def remote_enabled(self) -> bool:
        return self.remote is not None and bool(getattr(self.remote, "enabled", True))

    def set_token(self, token: Optional[str]) -> None:
        if self.remote is not None and hasattr(self.remote, "set_token"):
            self.remote.set_token(token)

    def call(self, op: str, *args: Any) -> Dict[str, Any]:
        return call_with_fallback(self.remote, self.local, op, *args)

    def get_doors(self) -> Dict[str, Any]:
        return self.call("get_doors")

    def toggle_door(self, door: str) -> Dict[str, Any]:
        return self.call("toggle_door", door)

    def set_door(self, door: str, locked: bool) -> Dict[str, Any]:
        return self.call("set_door", door, locked)

    def lock_all_doors(self) -> Dict[str, Any]:
        return self.call("lock_all_doors")

    def unlock_all_doors(self) -> Dict[str, Any]:
        return self.call("unlock_all_doors")

    def set_device_state(self, device_id: str, value: Any) -> Dict[str, Any]:
        return self.call("set_device_state", device_id, value)

    def get_device_state(self, device_id: str) -> Dict[str, Any]:
        return self.call("get_device_state", device_id)

    def get_device_states(self, ids: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        return self.call("get_device_states", ids)

    def list_members(self) -> Dict[str, Any]:
        return self.call("list_members")

    def register_member(self, fields: Dict[str, Any], template: Optional[str] = None) -> Dict[str, Any]:
        return self.call("register_member", fields, template)

    def add_member(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self.call("add_member", fields)

    def update_member(self, member_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return self.call("update_member", member_id, updates)

    def delete_member(self, member_id: str) -> Dict[str, Any]:
        return self.call("delete_member", member_id)

    def admin_login(self, email: str, pin: str) -> Dict[str, Any]:
        return self.call("admin_login", email, pin)

    def admin_list_users(self) -> Dict[str, Any]:
        return self.call("admin_list_users")

    def admin_create_user(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self.call("admin_create_user", fields)

    def admin_update_user(self, member_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return self.call("admin_update_user", member_id, updates)

    def admin_delete_user(self, member_id: str) -> Dict[str, Any]:
        return self.call("admin_delete_user", member_id)

    def auth_pin(self, pin: str) -> Dict[str, Any]:
        return self.call("auth_pin", pin)

    def auth_face(self, template: str) -> Dict[str, Any]:
        return self.call("auth_face", template)
