"""Member policies: role defaults, copy-on-write edits, and authorization."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from .intent import Action
from .layout import HomeLayout


ROLES = ("admin", "parent", "member", "child")

CONTROL_KEYS = ("devices", "doors", "unlockDoors", "voice", "power")

AREA_CAPABILITIES: Dict[str, Tuple[str, ...]] = {
    "hall": ("light", "ac", "door"),
    "kitchen": ("light", "ac", "door"),
    "bedroom": ("light", "ac", "door"),
    "bathroom": ("light", "ac", "door"),
    "main": ("door",),
}

DEVICE_SUBCAPABILITIES: Dict[str, str] = {
    "light": "light",
    "light-a": "light",
    "light-b": "light",
    "fan": "ac",
    "ac": "ac",
}

CAPABILITY_DENIED = "capability-denied"
AREA_DENIED = "area-denied"
UNSUPPORTED_DEVICE_AREA = "unsupported-device-area"


@dataclass(frozen=True)
class Policy:
    controls: Dict[str, bool] = field(default_factory=dict)
    areas: Dict[str, Dict[str, bool]] = field(default_factory=dict)

    def control(self, key: str) -> bool:
        return self.controls.get(key) is True

    def area(self, area: str, capability: str) -> Optional[bool]:
        perms = self.areas.get(area)
        if perms is None or capability not in perms:
            return None
        return perms[capability] is True

    def to_dict(self) -> Dict[str, Any]:
        return {"controls": dict(self.controls), "areas": copy.deepcopy(self.areas)}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"allowed": self.allowed, "reason": self.reason}


def normalize_role(role: Optional[str]) -> str:
    return role if role in ROLES else "member"


def default_policy(role: Optional[str]) -> Policy:
    role = normalize_role(role)
    privileged = role in ("admin", "parent")
    controls = {
        "devices": True,
        "doors": True,
        "unlockDoors": privileged,
        "voice": True,
        "power": True,
    }
    areas = {
        area: {capability: privileged for capability in capabilities}
        for area, capabilities in AREA_CAPABILITIES.items()
    }
    return Policy(controls=controls, areas=areas)


def normalize_policy(data: Optional[Mapping[str, Any]], role: Optional[str]) -> Policy:
    """Materialize role defaults for every missing key; extra keys are kept."""
    base = default_policy(role)
    if isinstance(data, Policy):
        data = data.to_dict()
    if not isinstance(data, Mapping):
        return base

    controls = dict(base.controls)
    raw_controls = data.get("controls")
    if isinstance(raw_controls, Mapping):
        for key, value in raw_controls.items():
            controls[str(key)] = bool(value)

    areas = copy.deepcopy(base.areas)
    raw_areas = data.get("areas")
    if isinstance(raw_areas, Mapping):
        for area, perms in raw_areas.items():
            if not isinstance(perms, Mapping):
                continue
            target = areas.setdefault(str(area), {})
            for capability, value in perms.items():
                target[str(capability)] = bool(value)

    return Policy(controls=controls, areas=areas)


def merge_policy(base: Policy, updates: Optional[Mapping[str, Any]]) -> Policy:
    """Return a new Policy with ``updates`` merged over ``base`` (areas merged per area)."""
    if isinstance(updates, Policy):
        updates = updates.to_dict()
    if not updates:
        return Policy(controls=dict(base.controls), areas=copy.deepcopy(base.areas))

    controls = dict(base.controls)
    raw_controls = updates.get("controls")
    if isinstance(raw_controls, Mapping):
        for key, value in raw_controls.items():
            controls[str(key)] = bool(value)

    areas = copy.deepcopy(base.areas)
    raw_areas = updates.get("areas")
    if isinstance(raw_areas, Mapping):
        for area, perms in raw_areas.items():
            if not isinstance(perms, Mapping):
                raise ValueError(f"areas.{area} must be a mapping")
            merged = dict(areas.get(str(area), {}))
            for capability, value in perms.items():
                merged[str(capability)] = bool(value)
            areas[str(area)] = merged

    return Policy(controls=controls, areas=areas)


def _parse_path(path: str) -> Tuple[str, ...]:
    parts = tuple(part for part in path.split(".") if part)
    if len(parts) == 2 and parts[0] == "controls":
        return parts
    if len(parts) == 3 and parts[0] == "areas":
        return parts
    raise ValueError(f"policy path must be controls.<key> or areas.<area>.<key>: {path}")


def policy_value(policy: Policy, path: str, role: Optional[str] = None) -> bool:
    parts = _parse_path(path)
    defaults = default_policy(role)
    if parts[0] == "controls":
        if parts[1] in policy.controls:
            return policy.controls[parts[1]] is True
        return defaults.controls.get(parts[1], False)
    current = policy.area(parts[1], parts[2])
    if current is not None:
        return current
    return defaults.areas.get(parts[1], {}).get(parts[2], False)


def toggle_policy(policy: Policy, path: str, role: Optional[str] = None) -> Policy:
    """Flip one boolean, e.g. ``controls.doors`` or ``areas.kitchen.light``."""
    parts = _parse_path(path)
    flipped = not policy_value(policy, path, role)
    policy = normalize_policy(policy, role)
    if parts[0] == "controls":
        return merge_policy(policy, {"controls": {parts[1]: flipped}})
    return merge_policy(policy, {"areas": {parts[1]: {parts[2]: flipped}}})


def _deny(reason: str) -> Decision:
    return Decision(allowed=False, reason=reason)


def _authorize_door(policy: Policy, action: Action, layout: HomeLayout) -> Decision:
    if not policy.control("doors"):
        return _deny(CAPABILITY_DENIED)
    if action.is_unlock and not policy.control("unlockDoors"):
        return _deny(CAPABILITY_DENIED)
    if action.kind in ("door.lock_all", "door.unlock_all") or action.door == "all":
        return Decision(allowed=True)
    area = layout.area_for_door(action.door)
    if area is not None and policy.area(area, "door") is False:
        return _deny(AREA_DENIED)
    return Decision(allowed=True)


def _authorize_device(policy: Policy, action: Action, layout: HomeLayout) -> Decision:
    if not policy.control("devices"):
        return _deny(CAPABILITY_DENIED)
    if action.room == "all":
        return Decision(allowed=True)
    area = layout.area_for_room(action.room)
    if area is None:
        return Decision(allowed=True)
    capability = DEVICE_SUBCAPABILITIES.get(action.device or "")
    if capability is None:
        return _deny(UNSUPPORTED_DEVICE_AREA)
    if policy.area(area, capability) is not True:
        return _deny(AREA_DENIED)
    return Decision(allowed=True)


def authorize(policy: Policy, action: Action, layout: Optional[HomeLayout] = None) -> Decision:
    """Decide whether ``policy`` permits ``action``. Pure; never touches backend state."""
    layout = layout or HomeLayout()
    if action.kind == "none":
        return Decision(allowed=True)
    if action.is_door:
        return _authorize_door(policy, action, layout)
    if action.kind == "device.set":
        return _authorize_device(policy, action, layout)
    return _deny(CAPABILITY_DENIED)


def policy_summary(policy: Policy) -> Dict[str, Any]:
    granted_areas = {
        area: sorted(cap for cap, allowed in perms.items() if allowed)
        for area, perms in policy.areas.items()
    }
    return {
        "controls": sorted(key for key, allowed in policy.controls.items() if allowed),
        "areas": {area: caps for area, caps in granted_areas.items() if caps},
    }
