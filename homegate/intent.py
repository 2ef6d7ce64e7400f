"""Turn free-text household commands into canonical actions."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

from . import lexicon


ACTION_KINDS = (
    "device.set",
    "door.lock",
    "door.unlock",
    "door.lock_all",
    "door.unlock_all",
    "none",
)

GREETING_REPLY = (
    "Hello! I'm your smart home assistant. You can ask me to control lights, fans, AC, or doors."
)
HELP_REPLY = (
    "I can control your lights, fans, air conditioning, and door locks. "
    "Try saying 'turn on all lights' or 'lock the bedroom door'."
)
CLARIFY_REPLY = (
    "I'm not sure what you'd like me to do. Try saying 'turn on all lights', "
    "'lock the kitchen door', or 'turn off bedroom fan'."
)


@dataclass(frozen=True)
class Action:
    kind: str
    room: Optional[str] = None
    device: Optional[str] = None
    door: Optional[str] = None
    value: Optional[str] = None
    confirmation: str = ""
    success: bool = True

    def __post_init__(self) -> None:
        if self.kind not in ACTION_KINDS:
            raise ValueError(f"unsupported action kind: {self.kind}")
        if self.kind == "device.set":
            if not self.device or self.value not in ("on", "off"):
                raise ValueError("device.set requires device and an on/off value")
        if self.kind in ("door.lock", "door.unlock") and not self.door:
            raise ValueError(f"{self.kind} requires a door")
        if self.kind == "none" and any(
            field is not None for field in (self.room, self.device, self.door, self.value)
        ):
            raise ValueError("none actions carry no entities")

    @property
    def is_door(self) -> bool:
        return self.kind.startswith("door.")

    @property
    def is_unlock(self) -> bool:
        return self.kind in ("door.unlock", "door.unlock_all")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_text(text: Optional[str]) -> str:
    return (text or "").lower().strip()


def _find_key(text: str, table: Dict[str, List[str]], keys: Optional[Iterable[str]] = None) -> Optional[str]:
    normalized = normalize_text(text)
    allowed = set(keys) if keys is not None else None
    for key, phrases in table.items():
        if allowed is not None and key not in allowed:
            continue
        for phrase in phrases:
            if phrase in normalized:
                return key
    return None


def _contains_any(text: str, phrases: Iterable[str]) -> bool:
    return any(phrase in text for phrase in phrases)


def extract_action(text: str, allowed: Optional[Iterable[str]] = None) -> Optional[str]:
    """Return the first action verb found, optionally limited to ``allowed`` verbs."""
    return _find_key(text, lexicon.ACTION_KEYWORDS, allowed)


def extract_device(text: str) -> Optional[str]:
    return _find_key(text, lexicon.DEVICE_KEYWORDS)


def extract_room(text: str) -> Optional[str]:
    return _find_key(text, lexicon.ROOM_KEYWORDS)


def extract_door(text: str) -> Optional[str]:
    normalized = normalize_text(text)
    if _contains_any(normalized, lexicon.ALL_DOOR_PHRASES):
        return lexicon.ALL
    return _find_key(normalized, lexicon.DOOR_KEYWORDS)


def room_label(room: Optional[str]) -> str:
    room = room or lexicon.DEFAULT_ROOM
    return lexicon.ROOM_DISPLAY_NAMES.get(room, room)


def door_label(door: Optional[str]) -> str:
    door = door or lexicon.DEFAULT_DOOR
    return lexicon.ROOM_DISPLAY_NAMES.get(door, door)


def device_label(device: str) -> str:
    if device in lexicon.LIGHT_VARIANTS.values():
        return "light " + device.split("-", 1)[1].upper()
    return device


def confirmation_for(
    kind: str,
    room: Optional[str] = None,
    device: Optional[str] = None,
    value: Optional[str] = None,
    door: Optional[str] = None,
) -> str:
    if kind == "device.set":
        if room == lexicon.ALL:
            noun = lexicon.DEVICE_PLURALS.get(device or "", f"{device}s")
            return f"Turning {value} all {noun} in your home."
        if device in lexicon.LIGHT_VARIANTS.values():
            return f"Turning {value} {room_label(room)} {device_label(device)}."
        return f"Turning {value} the {device} in {room_label(room)}."
    if kind == "door.lock":
        if door == lexicon.ALL:
            return "Locking all doors."
        return f"Locking the {door_label(door)} door."
    if kind == "door.unlock":
        if door == lexicon.ALL:
            return "Unlocking all doors."
        return f"Unlocking the {door_label(door)} door."
    if kind == "door.lock_all":
        return "Locking all doors for you."
    if kind == "door.unlock_all":
        return "Unlocking all doors for you."
    return CLARIFY_REPLY


def device_action(device: str, value: str, room: Optional[str] = None) -> Action:
    room = room or lexicon.DEFAULT_ROOM
    return Action(
        kind="device.set",
        room=room,
        device=device,
        value=value,
        confirmation=confirmation_for("device.set", room, device, value),
    )


def door_action(door: str, locked: bool) -> Action:
    if door == lexicon.ALL:
        return all_doors_action(locked)
    kind = "door.lock" if locked else "door.unlock"
    return Action(kind=kind, door=door, confirmation=confirmation_for(kind, door=door))


def all_doors_action(locked: bool) -> Action:
    kind = "door.lock_all" if locked else "door.unlock_all"
    return Action(kind=kind, confirmation=confirmation_for(kind))


def no_action(confirmation: str, success: bool) -> Action:
    return Action(kind="none", confirmation=confirmation, success=success)


def _resolve_door(normalized: str) -> Optional[Action]:
    verb = extract_action(normalized, lexicon.DOOR_VERBS)
    if verb is None:
        return None
    door = extract_door(normalized)
    if door == lexicon.ALL:
        return all_doors_action(verb == "lock")
    return door_action(door or lexicon.DEFAULT_DOOR, verb == "lock")


def _resolve_light_variant(normalized: str, verb: Optional[str]) -> Optional[Action]:
    if verb is None:
        return None
    for phrase, device in lexicon.LIGHT_VARIANTS.items():
        if re.search(re.escape(phrase) + r"(?=$|[\s.,!?])", normalized):
            return device_action(device, verb, lexicon.DEFAULT_ROOM)
    return None


def resolve_command(text: str) -> Action:
    """Map any input to an Action; unrecognized text yields an unsuccessful ``none``."""
    normalized = normalize_text(text)

    if _contains_any(normalized, lexicon.GREETING_PHRASES):
        return no_action(GREETING_REPLY, True)
    if _contains_any(normalized, lexicon.HELP_PHRASES):
        return no_action(HELP_REPLY, True)

    if _contains_any(normalized, lexicon.DOOR_VOCABULARY):
        door = _resolve_door(normalized)
        if door is not None:
            return door

    verb = extract_action(normalized, lexicon.DEVICE_VERBS)

    # "light a" also matches the generic "light" keyword; the variant is more specific.
    # The marker must end a word so "light and fan" stays a plain light.
    variant = _resolve_light_variant(normalized, verb)
    if variant is not None:
        return variant

    device = extract_device(normalized)
    if device and verb:
        return device_action(device, verb, extract_room(normalized))

    return no_action(CLARIFY_REPLY, False)
