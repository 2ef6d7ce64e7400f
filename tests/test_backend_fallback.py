import logging

import pytest

from homegate import act, household
from homegate.backend import DualBackend, call_with_fallback
from homegate.intent import all_doors_action, device_action, door_action
from homegate.remote import RemoteBackend
from homegate.session import AdminSession, Session


MUTATING_ACTIONS = [
    device_action("light", "on", "mainhall"),
    device_action("ac", "off", "all"),
    door_action("kitchen", False),
    door_action("bedroom1", True),
    all_doors_action(True),
    all_doors_action(False),
]


class OkRemote:
    name = "remote"
    enabled = True

    def get_doors(self):
        return {"ok": True, "doors": {"front": False}}

    def set_door(self, door, locked):
        return {"ok": True, "door": door, "locked": locked, "changed": True}


@pytest.mark.parametrize("action", MUTATING_ACTIONS, ids=lambda a: a.kind)
def test_failing_remote_falls_back_to_local(action, local, failing_remote, log, parent, layout):
    backend = DualBackend(local, failing_remote)
    outcome = act.run_action(parent, action, backend, log, layout)

    assert outcome.ok is True
    assert outcome.error is None
    assert failing_remote.calls
    assert len(log) == 1
    event = log.all()[0]
    assert event.success is True
    assert event.source == "local"


def test_fallback_result_carries_remote_error(local, failing_remote, caplog):
    with caplog.at_level(logging.WARNING):
        result = call_with_fallback(failing_remote, local, "set_door", "kitchen", False)
    assert result["ok"] is True
    assert result["source"] == "local"
    assert result["fallback"] is True
    assert result["remote_error"] == "url_error"
    assert failing_remote.calls == ["set_door"]
    assert local.get_doors()["doors"]["kitchen"] is False
    assert "backend-unavailable" in caplog.text


def test_remote_success_is_returned_as_is(local):
    result = call_with_fallback(OkRemote(), local, "get_doors")
    assert result == {"ok": True, "doors": {"front": False}, "source": "remote"}

    result = call_with_fallback(OkRemote(), local, "set_door", "kitchen", False)
    assert result["source"] == "remote"
    assert "fallback" not in result
    assert local.get_doors()["doors"]["kitchen"] is True


def test_unconfigured_remote_is_skipped(local):
    backend = DualBackend(local, RemoteBackend(""))
    assert backend.remote_enabled is False
    result = backend.lock_all_doors()
    assert result["ok"] is True
    assert result["source"] == "local"
    assert "fallback" not in result


def test_both_backends_rejecting_is_logged_as_failure(local, failing_remote, log, parent):
    backend = DualBackend(local, failing_remote)
    outcome = act.run_action(parent, door_action("attic", True), backend, log)

    assert outcome.ok is False
    assert outcome.error == "backend-rejected"
    assert len(log) == 1
    assert log.all()[0].success is False
    assert log.all()[0].reason == "unknown_door"


def test_unknown_operation_is_rejected(local):
    with pytest.raises(ValueError):
        call_with_fallback(None, local, "drop_everything")


class RecordingDualBackend(DualBackend):
    def __init__(self, local, remote):
        super().__init__(local, remote)
        self.results = []

    def call(self, op, *args):
        result = super().call(op, *args)
        self.results.append((op, result))
        return result


MEMBER_OPERATIONS = [
    ("add_member", lambda b, s: household.add_member(b, s, "Sam", "3333")),
    ("register_member", lambda b, s: household.register_member(b, s, "Sam", "3333", role="child")),
    ("update_member", lambda b, s: household.update_member(b, s, "kid-1", {"name": "Kiddo"})),
    ("update_member", lambda b, s: household.toggle_member_policy(b, s, "kid-1", "controls.doors")),
    ("admin_create_user", lambda b, s: household.admin_create_user(b, s, "Pat", "5555")),
    ("admin_update_user", lambda b, s: household.admin_change_role(b, s, "kid-1", "parent")),
    ("admin_delete_user", lambda b, s: household.admin_delete_user(b, s, "kid-1")),
]


@pytest.mark.parametrize(
    "op,call",
    MEMBER_OPERATIONS,
    ids=[
        "add_member",
        "register_member",
        "update_member",
        "toggle_member_policy",
        "admin_create_user",
        "admin_change_role",
        "admin_delete_user",
    ],
)
def test_member_operations_fall_back_to_local(op, call, local, failing_remote):
    local.add_member({"id": "kid-1", "name": "Kid", "pin": "2222", "role": "child", "relation": "son"})
    backend = RecordingDualBackend(local, failing_remote)
    session = Session(admin=AdminSession(id="admin-1", name="Ada", token="tok"))

    call(backend, session)

    results = [result for name, result in backend.results if name == op]
    assert results
    result = results[-1]
    assert result["ok"] is True
    assert result["source"] == "local"
    assert result["fallback"] is True
    assert result["remote_error"] == "url_error"
    assert op in failing_remote.calls
