"""Phrase tables for command interpretation.

Order matters: extractors scan each table top to bottom and the first phrase
found in the text wins.
"""

from __future__ import annotations

from typing import Dict, List


DEVICE_KEYWORDS: Dict[str, List[str]] = {
    "light": ["light", "lights", "lamp", "lamps", "lighting"],
    "fan": ["fan", "fans", "ventilation"],
    "ac": ["ac", "air conditioner", "air conditioning", "cooling", "aircon"],
}

ROOM_KEYWORDS: Dict[str, List[str]] = {
    "mainhall": ["main hall", "hall", "living room", "main", "mainhall"],
    "bedroom1": ["bedroom 1", "bedroom one", "first bedroom", "room 1", "bedroom1"],
    "bedroom2": ["bedroom 2", "bedroom two", "second bedroom", "room 2", "bedroom2"],
    "kitchen": ["kitchen"],
    "all": ["all", "every", "everywhere", "entire", "whole house", "whole home", "all rooms"],
}

DOOR_KEYWORDS: Dict[str, List[str]] = {
    "mainhall": ["main hall door", "hall door", "main door", "front door", "mainhall"],
    "bedroom1": ["bedroom 1 door", "bedroom one door", "first bedroom door", "bedroom1"],
    "bedroom2": ["bedroom 2 door", "bedroom two door", "second bedroom door", "bedroom2"],
    "kitchen": ["kitchen door"],
}

ALL_DOOR_PHRASES: List[str] = ["all door", "every door"]

# "unlock" sits above "lock" since every "unlock" also contains "lock".
ACTION_KEYWORDS: Dict[str, List[str]] = {
    "on": ["on", "turn on", "switch on", "activate", "enable", "start"],
    "off": ["off", "turn off", "switch off", "deactivate", "disable", "stop"],
    "unlock": ["unlock", "open", "unsecure"],
    "lock": ["lock", "secure", "close"],
}

DEVICE_VERBS = ("on", "off")
DOOR_VERBS = ("lock", "unlock")

DOOR_VOCABULARY: List[str] = ["door", "lock", "unlock"]

GREETING_PHRASES: List[str] = ["hello", "hi ", "hey"]
HELP_PHRASES: List[str] = ["help", "what can you do"]

LIGHT_VARIANTS: Dict[str, str] = {
    "light a": "light-a",
    "light b": "light-b",
}

ALL = "all"
DEFAULT_ROOM = "mainhall"
DEFAULT_DOOR = "mainhall"

ROOM_DISPLAY_NAMES: Dict[str, str] = {
    "mainhall": "main hall",
    "bedroom1": "bedroom 1",
    "bedroom2": "bedroom 2",
    "kitchen": "kitchen",
}

DEVICE_PLURALS: Dict[str, str] = {
    "light": "lights",
    "fan": "fans",
    "ac": "air conditioners",
}
