"""Home layout: doors, areas and the physical devices behind each room."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


DEFAULT_DOORS: List[str] = [
    "mainhall",
    "front",
    "back",
    "garage",
    "kitchen",
    "bathroom",
    "bedroom1",
    "bedroom2",
]

DEFAULT_ROOM_AREAS: Dict[str, str] = {
    "mainhall": "hall",
    "hall": "hall",
    "bedroom1": "bedroom",
    "bedroom2": "bedroom",
    "room1": "bedroom",
    "kitchen": "kitchen",
    "bathroom": "bathroom",
}

DEFAULT_DOOR_AREAS: Dict[str, str] = {
    "mainhall": "main",
    "main": "main",
    "front": "main",
    "hall": "hall",
    "back": "kitchen",
    "kitchen": "kitchen",
    "bathroom": "bathroom",
    "bedroom1": "bedroom",
    "bedroom2": "bedroom",
    "room1": "bedroom",
}

DEFAULT_ROOM_DEVICES: Dict[str, Dict[str, List[str]]] = {
    "mainhall": {
        "light": ["mainhall-light-1", "mainhall-light-2"],
        "light-a": ["mainhall-light-1"],
        "light-b": ["mainhall-light-2"],
        "fan": ["mainhall-fan-1"],
        "ac": ["mainhall-ac-1"],
    },
    "bedroom1": {
        "light": ["bedroom1-light-1"],
        "fan": ["bedroom1-fan-1"],
        "ac": ["bedroom1-ac-1"],
    },
    "bedroom2": {
        "light": ["bedroom2-light-1"],
        "fan": ["bedroom2-fan-1"],
        "ac": ["bedroom2-ac-1"],
    },
    "kitchen": {
        "light": ["kitchen-light-1"],
        "fan": [],
        "ac": [],
    },
}


@dataclass(frozen=True)
class HomeLayout:
    doors: List[str] = field(default_factory=lambda: list(DEFAULT_DOORS))
    room_areas: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ROOM_AREAS))
    door_areas: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_DOOR_AREAS))
    room_devices: Dict[str, Dict[str, List[str]]] = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_ROOM_DEVICES)
    )

    def area_for_room(self, room: Optional[str]) -> Optional[str]:
        if not room:
            return None
        return self.room_areas.get(room)

    def area_for_door(self, door: Optional[str]) -> Optional[str]:
        if not door:
            return None
        return self.door_areas.get(door)

    def device_ids(self, room: Optional[str], device: str) -> List[str]:
        """Physical device ids for a device kind in a room; ``all`` spans every room."""
        if room == "all":
            ids: List[str] = []
            for kinds in self.room_devices.values():
                for device_id in kinds.get(device, []):
                    if device_id not in ids:
                        ids.append(device_id)
            return ids
        return list(self.room_devices.get(room or "", {}).get(device, []))

    def all_device_ids(self) -> List[str]:
        ids: List[str] = []
        for kinds in self.room_devices.values():
            for items in kinds.values():
                for device_id in items:
                    if device_id not in ids:
                        ids.append(device_id)
        return ids


def _string_map(data: Any, label: str) -> Dict[str, str]:
    if not isinstance(data, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in data.items()
    ):
        raise ValueError(f"{label} must be a mapping of strings")
    return dict(data)


def _room_devices(data: Any) -> Dict[str, Dict[str, List[str]]]:
    if not isinstance(data, dict):
        raise ValueError("room_devices must be a mapping")
    out: Dict[str, Dict[str, List[str]]] = {}
    for room, kinds in data.items():
        if not isinstance(kinds, dict):
            raise ValueError(f"room_devices.{room} must be a mapping")
        out[str(room)] = {}
        for kind, ids in kinds.items():
            if not isinstance(ids, list) or not all(isinstance(x, str) for x in ids):
                raise ValueError(f"room_devices.{room}.{kind} must be a list of strings")
            out[str(room)][str(kind)] = list(ids)
    return out


def load_layout(path: Optional[str]) -> HomeLayout:
    """Load a layout YAML file; missing tables keep their defaults."""
    if not path or not Path(path).exists():
        return HomeLayout()
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("layout must be a mapping")
    if data.get("version") != 1:
        raise ValueError("layout version must be 1")

    layout = HomeLayout()
    kwargs: Dict[str, Any] = {}
    doors = data.get("doors")
    if doors is not None:
        if not isinstance(doors, list) or not all(isinstance(d, str) for d in doors):
            raise ValueError("doors must be a list of strings")
        kwargs["doors"] = list(doors)
    if "room_areas" in data:
        kwargs["room_areas"] = _string_map(data["room_areas"], "room_areas")
    if "door_areas" in data:
        kwargs["door_areas"] = _string_map(data["door_areas"], "door_areas")
    if "room_devices" in data:
        kwargs["room_devices"] = _room_devices(data["room_devices"])
    if not kwargs:
        return layout
    return HomeLayout(
        doors=kwargs.get("doors", layout.doors),
        room_areas=kwargs.get("room_areas", layout.room_areas),
        door_areas=kwargs.get("door_areas", layout.door_areas),
        room_devices=kwargs.get("room_devices", layout.room_devices),
    )
