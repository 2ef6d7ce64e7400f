"""Policy-gated execution of resolved actions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .activity import ActivityLog, new_event
from .backend import DualBackend
from .errors import ERRORS_BY_CODE, BackendRejected, ParseAmbiguous, PolicyDenied
from .household import Member
from .intent import Action, door_label, resolve_command, room_label
from .layout import HomeLayout
from .policy import AREA_DENIED, CAPABILITY_DENIED, UNSUPPORTED_DEVICE_AREA, Decision, authorize


EVENT_TYPES = {
    "device.set": "device",
    "door.lock": "lock",
    "door.unlock": "unlock",
    "door.lock_all": "lockAll",
    "door.unlock_all": "unlockAll",
}


@dataclass(frozen=True)
class Outcome:
    action: Action
    ok: bool
    message: str
    error: Optional[str] = None
    decision: Optional[Decision] = None
    result: Optional[Dict[str, Any]] = None

    def raise_for_error(self) -> None:
        if self.error is None:
            return
        cls = ERRORS_BY_CODE[self.error]
        if cls is PolicyDenied:
            raise PolicyDenied(self.message, (self.decision.reason if self.decision else None) or "")
        raise cls(self.message, dict(self.result or {}))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "message": self.message,
            "error": self.error,
            "action": self.action.to_dict(),
            "decision": self.decision.to_dict() if self.decision else None,
            "result": self.result,
        }


def denial_message(action: Action, decision: Decision) -> str:
    if action.kind == "device.set":
        target = f"the {action.device} in the {room_label(action.room)}"
        if action.room == "all":
            target = f"all {action.device} devices"
        if decision.reason == UNSUPPORTED_DEVICE_AREA:
            return f"The {action.device} cannot be controlled per room."
        return f"You are not allowed to control {target} ({decision.reason})."
    if action.kind in ("door.lock_all", "door.unlock_all"):
        verb = "lock" if action.kind == "door.lock_all" else "unlock"
        return f"You are not allowed to {verb} all doors ({decision.reason})."
    verb = "unlock" if action.is_unlock else "lock"
    if decision.reason == AREA_DENIED:
        return f"You are not allowed to {verb} the {door_label(action.door)} door ({decision.reason})."
    return f"You are not allowed to {verb} doors ({decision.reason})."


def _execute_device(action: Action, backend: DualBackend, layout: HomeLayout) -> Dict[str, Any]:
    device_ids = layout.device_ids(action.room, action.device or "")
    if not device_ids:
        return {"ok": False, "error": "no_devices", "devices": []}
    value = 1 if action.value == "on" else 0
    results: List[Dict[str, Any]] = [backend.set_device_state(device_id, value) for device_id in device_ids]
    switched = [device_id for device_id, r in zip(device_ids, results) if r.get("ok")]
    failed = [device_id for device_id, r in zip(device_ids, results) if not r.get("ok")]
    sources = sorted({str(r.get("source")) for r in results if r.get("source")})
    summary: Dict[str, Any] = {
        "ok": not failed,
        "devices": device_ids,
        "switched": switched,
        "failed": failed,
        "source": ",".join(sources) or None,
    }
    if failed:
        # Devices already switched stay switched; the reason lists both sides.
        first_error = next(str(r.get("error") or "device_update_failed") for r in results if not r.get("ok"))
        summary["error"] = (
            f"{first_error} failed={','.join(failed)} switched={','.join(switched) or '-'}"
        )
    return summary


def execute_action(action: Action, backend: DualBackend, layout: Optional[HomeLayout] = None) -> Dict[str, Any]:
    """Run an authorized action on the backend and return its result dict."""
    layout = layout or HomeLayout()
    if action.kind == "device.set":
        return _execute_device(action, backend, layout)
    if action.kind in ("door.lock", "door.unlock"):
        return backend.set_door(action.door, action.kind == "door.lock")
    if action.kind == "door.lock_all":
        return backend.lock_all_doors()
    if action.kind == "door.unlock_all":
        return backend.unlock_all_doors()
    raise ValueError(f"unsupported action kind: {action.kind}")


def _target_fields(action: Action) -> Dict[str, Any]:
    if action.kind == "device.set":
        return {"device": f"{action.room or 'mainhall'}:{action.device}"}
    return {"door": action.door or "*"}


def _deny(member: Member, action: Action, decision: Decision, log: ActivityLog, message: str) -> Outcome:
    logging.info("denied %s for member %s: %s", action.kind, member.id, decision.reason)
    log.append(
        new_event("denied", False, member_id=member.id, reason=decision.reason, **_target_fields(action))
    )
    return Outcome(action=action, ok=False, message=message, error=PolicyDenied.code, decision=decision)


def run_action(
    member: Member,
    action: Action,
    backend: DualBackend,
    log: ActivityLog,
    layout: Optional[HomeLayout] = None,
) -> Outcome:
    """Authorize ``action`` for ``member``, execute it if allowed, and log one event."""
    layout = layout or HomeLayout()
    if action.kind == "none":
        error = None if action.success else ParseAmbiguous.code
        return Outcome(action=action, ok=action.success, message=action.confirmation, error=error)

    decision = authorize(member.policies, action, layout)
    if not decision.allowed:
        return _deny(member, action, decision, log, denial_message(action, decision))

    result = execute_action(action, backend, layout)
    ok = bool(result.get("ok"))
    log.append(
        new_event(
            EVENT_TYPES[action.kind],
            ok,
            member_id=member.id,
            reason=None if ok else str(result.get("error") or "failed"),
            source=result.get("source"),
            **_target_fields(action),
        )
    )
    if not ok:
        logging.warning("%s failed on every backend: %s", action.kind, result.get("error"))
        return Outcome(
            action=action,
            ok=False,
            message=f"Could not complete the request ({result.get('error')}).",
            error=BackendRejected.code,
            decision=decision,
            result=result,
        )
    return Outcome(action=action, ok=True, message=action.confirmation, decision=decision, result=result)


def run_text(
    member: Member,
    text: str,
    backend: DualBackend,
    log: ActivityLog,
    layout: Optional[HomeLayout] = None,
) -> Outcome:
    """Resolve free text and run the resulting action. Voice use needs ``controls.voice``."""
    action = resolve_command(text)
    if action.kind != "none" and not member.policies.control("voice"):
        decision = Decision(allowed=False, reason=CAPABILITY_DENIED)
        return _deny(member, action, decision, log, "Voice control is disabled for your account.")
    return run_action(member, action, backend, log, layout)
