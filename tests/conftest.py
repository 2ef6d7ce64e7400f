from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

ROOT = str(Path(__file__).resolve().parents[1])
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from homegate.activity import ActivityLog  # noqa: E402
from homegate.backend import OPERATIONS  # noqa: E402
from homegate.db import init_db  # noqa: E402
from homegate.household import Member  # noqa: E402
from homegate.layout import HomeLayout  # noqa: E402
from homegate.local import LocalBackend  # noqa: E402
from homegate.policy import default_policy  # noqa: E402


class FailingRemote:
    """Remote adapter whose every operation fails at the transport level."""

    name = "remote"
    enabled = True

    def __init__(self) -> None:
        self.calls: List[str] = []

    def __getattr__(self, op: str) -> Any:
        if op not in OPERATIONS:
            raise AttributeError(op)

        def call(*args: Any) -> Dict[str, Any]:
            self.calls.append(op)
            return {"ok": False, "error": "url_error"}

        return call


class RecordingBackend:
    """Stands in for DualBackend and records every operation it receives."""

    def __init__(self) -> None:
        self.calls: List[str] = []

    def set_token(self, token: Any) -> None:
        self.calls.append("set_token")

    def __getattr__(self, op: str) -> Any:
        if op not in OPERATIONS:
            raise AttributeError(op)

        def call(*args: Any) -> Dict[str, Any]:
            self.calls.append(op)
            return {"ok": True}

        return call


@pytest.fixture
def conn():
    conn = init_db(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def layout():
    return HomeLayout()


@pytest.fixture
def local(conn, layout):
    return LocalBackend(conn, layout)


@pytest.fixture
def failing_remote():
    return FailingRemote()


@pytest.fixture
def log():
    return ActivityLog()


def make_member(role: str = "member", member_id: str = "m1", **overrides: Any) -> Member:
    fields: Dict[str, Any] = {
        "id": member_id,
        "name": overrides.pop("name", f"{role}-{member_id}"),
        "role": role,
        "pin": overrides.pop("pin", "1234"),
        "policies": default_policy(role),
    }
    fields.update(overrides)
    return Member(**fields)


@pytest.fixture
def parent():
    return make_member("parent", "p1")


@pytest.fixture
def kid():
    return make_member("member", "k1")
