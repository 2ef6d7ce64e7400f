import json

import pytest

from homegate import household
from homegate.backend import DualBackend
from homegate.errors import BackendRejected, PolicyDenied
from homegate.household import Member
from homegate.remote import RemoteBackend
from homegate.session import AdminSession, Session

from conftest import RecordingBackend


@pytest.fixture
def backend(local):
    return DualBackend(local)


@pytest.fixture
def owner_session(backend):
    session = Session()
    household.register_member(backend, session, "Owner", "1111")
    household.login_pin(backend, session, "1111")
    return session


def _seed_admin(backend, owner_session):
    return household.add_member(backend, owner_session, "Ada", "9999", role="admin", email="ada@example.com")


@pytest.mark.parametrize(
    "name,pin,role",
    [("", "1234", "member"), ("Sam", "12", "member"), ("Sam", "12ab", "member"), ("Sam", "1234", "owner")],
)
def test_new_member_validation(backend, owner_session, name, pin, role):
    with pytest.raises(ValueError):
        household.add_member(backend, owner_session, name, pin, role=role)


def test_member_without_id_is_rejected():
    with pytest.raises(ValueError):
        Member.from_dict({"name": "Ghost"})
    with pytest.raises(ValueError):
        Member.from_dict({"id": " ", "name": "Ghost"})


def test_first_registration_becomes_parent_owner(backend):
    session = Session()
    first = household.register_member(backend, session, "Owner", "1111", role="child")
    second = household.register_member(backend, session, "Sam", "2222", role="child", relation="son")
    assert (first.role, first.relation) == ("parent", "owner")
    assert first.is_owner is True
    assert first.policies.control("unlockDoors") is True
    assert (second.role, second.relation) == ("child", "son")
    assert second.is_owner is False
    assert second.policies.control("unlockDoors") is False


def test_privileged_self_registration_needs_an_owner(backend, owner_session):
    with pytest.raises(PolicyDenied) as excinfo:
        household.register_member(backend, Session(), "Eve", "3333", role="parent")
    assert excinfo.value.reason == household.OWNER_REQUIRED

    spouse = household.register_member(backend, owner_session, "Lee", "3333", role="parent", relation="wife")
    assert (spouse.role, spouse.relation) == ("parent", "wife")


def test_relation_is_constrained_by_role(backend, owner_session):
    member = household.add_member(backend, owner_session, "Gran", "4321", role="member", relation="wife")
    assert member.relation == "member"


def test_duplicate_face_is_rejected(backend):
    template = json.dumps({"vec": [0.1, 0.2, 0.3]})
    near = json.dumps({"vec": [0.11, 0.2, 0.3]})
    household.register_member(backend, Session(), "Owner", "1111", template=template)
    with pytest.raises(BackendRejected) as excinfo:
        household.register_member(backend, Session(), "Twin", "2222", template=near)
    assert excinfo.value.details["error"] == "duplicate_face"


def test_toggle_member_policy_writes_back_whole_policy(backend, owner_session):
    kid = household.add_member(backend, owner_session, "Kid", "2222", role="child", relation="daughter")

    updated = household.toggle_member_policy(backend, owner_session, kid.id, "areas.kitchen.light")
    assert updated.policies.area("kitchen", "light") is True
    assert updated.policies.area("kitchen", "ac") is False

    reloaded = household.get_member(backend, kid.id)
    assert reloaded.policies == updated.policies

    again = household.toggle_member_policy(backend, owner_session, kid.id, "areas.kitchen.light")
    assert again.policies.area("kitchen", "light") is False


def test_toggle_unknown_member(backend, owner_session):
    with pytest.raises(BackendRejected):
        household.toggle_member_policy(backend, owner_session, "missing", "controls.doors")


@pytest.mark.parametrize(
    "call",
    [
        lambda b, s: household.add_member(b, s, "Kid", "2222"),
        lambda b, s: household.update_member(b, s, "k1", {"name": "Kiddo"}),
        lambda b, s: household.toggle_member_policy(b, s, "k1", "controls.doors"),
        lambda b, s: household.delete_member(b, s, "k1"),
    ],
    ids=["add", "update", "toggle", "delete"],
)
def test_family_edits_without_sign_in_never_reach_the_backend(call):
    backend = RecordingBackend()
    with pytest.raises(PolicyDenied) as excinfo:
        call(backend, Session())
    assert excinfo.value.reason == household.OWNER_REQUIRED
    assert backend.calls == []


def test_non_owner_cannot_manage_family(backend, owner_session):
    kid = household.add_member(backend, owner_session, "Kid", "2222", role="child", relation="son")
    owner_id = owner_session.member_id
    kid_session = Session()
    household.login_pin(backend, kid_session, "2222")

    with pytest.raises(PolicyDenied) as excinfo:
        household.toggle_member_policy(backend, kid_session, kid.id, "controls.doors")
    assert excinfo.value.reason == household.OWNER_REQUIRED
    with pytest.raises(PolicyDenied):
        household.add_member(backend, kid_session, "Friend", "3333")
    with pytest.raises(PolicyDenied):
        household.delete_member(backend, kid_session, owner_id)

    assert household.get_member(backend, kid.id).policies.control("doors") is True
    assert household.get_member(backend, owner_id) is not None


def test_owner_deletes_others_but_not_themself(backend, owner_session):
    kid = household.add_member(backend, owner_session, "Kid", "2222", role="child")

    with pytest.raises(PolicyDenied) as excinfo:
        household.delete_member(backend, owner_session, owner_session.member_id)
    assert excinfo.value.reason == household.SELF_DELETE

    household.delete_member(backend, owner_session, kid.id)
    assert household.get_member(backend, kid.id) is None


def test_admin_session_can_manage_family_without_member_sign_in(backend, owner_session):
    admin = _seed_admin(backend, owner_session)
    session = Session()
    household.admin_login(backend, session, "ada@example.com", "9999")

    kid = household.add_member(backend, session, "Kid", "2222", role="child")
    household.delete_member(backend, session, kid.id)
    assert household.get_member(backend, kid.id) is None
    assert session.admin.id == admin.id


def test_current_member_sees_policy_edits(backend, owner_session):
    kid = household.add_member(backend, owner_session, "Kid", "2222", role="member")
    kid_session = Session()
    household.login_pin(backend, kid_session, "2222")
    assert household.current_member(backend, kid_session).policies.control("doors") is True

    household.toggle_member_policy(backend, owner_session, kid.id, "controls.doors")
    assert household.current_member(backend, kid_session).policies.control("doors") is False


def test_deleted_member_is_signed_out(backend, owner_session):
    kid = household.add_member(backend, owner_session, "Kid", "2222")
    kid_session = Session()
    household.login_pin(backend, kid_session, "2222")

    household.delete_member(backend, owner_session, kid.id)
    with pytest.raises(PolicyDenied) as excinfo:
        household.current_member(backend, kid_session)
    assert excinfo.value.reason == household.SIGNED_OUT
    assert kid_session.member_id is None


def test_current_member_requires_sign_in(backend):
    with pytest.raises(PolicyDenied) as excinfo:
        household.current_member(backend, Session())
    assert excinfo.value.reason == household.SIGNED_OUT


def test_remote_member_without_id_falls_back_to_local(backend, local, owner_session, monkeypatch):
    remote = RemoteBackend("http://homegate.invalid")
    monkeypatch.setattr(remote, "_request", lambda *args, **kwargs: {"ok": True, "data": {}})
    dual = DualBackend(local, remote)

    member = household.add_member(dual, owner_session, "Kid", "2222")
    assert member.id not in ("", "None")
    assert household.get_member(backend, member.id).name == "Kid"


def test_member_payload_without_id_is_a_rejection():
    backend = RecordingBackend()
    backend.add_member = lambda fields: {"ok": True, "member": {}}
    with pytest.raises(BackendRejected) as excinfo:
        household.add_member(backend, Session(admin=AdminSession(id="a1", name="Ada")), "Kid", "2222")
    assert excinfo.value.details["error"] == "unexpected_payload"


def test_pin_and_face_login(backend):
    template = json.dumps({"hash": "abc"})
    owner = household.register_member(backend, Session(), "Owner", "1111", template=template)
    session = Session()

    assert household.login_pin(backend, session, "1111").id == owner.id
    assert session.member_id == owner.id
    assert household.login_face(backend, session, template).name == "Owner"

    with pytest.raises(BackendRejected):
        household.login_pin(backend, session, "0000")
    with pytest.raises(BackendRejected):
        household.login_face(backend, session, json.dumps({"hash": "zzz"}))


def test_admin_flow(backend, owner_session):
    admin = _seed_admin(backend, owner_session)
    session = Session()

    with pytest.raises(PolicyDenied):
        household.admin_list_users(backend, session)

    household.admin_login(backend, session, "ADA@example.com", "9999")
    assert session.admin.id == admin.id
    assert session.admin.token

    created = household.admin_create_user(backend, session, "Pat", "5555")
    assert (created.role, created.relation) == ("parent", "owner")

    changed = household.admin_change_role(backend, session, created.id, "member")
    assert changed.role == "member"
    assert changed.policies.control("unlockDoors") is True

    household.admin_delete_user(backend, session, created.id)
    assert created.id not in [m.id for m in household.admin_list_users(backend, session)]

    household.admin_logout(backend, session)
    assert session.admin is None


def test_admin_login_requires_admin_role(backend):
    household.register_member(backend, Session(), "Owner", "1111", email="owner@example.com")
    with pytest.raises(BackendRejected) as excinfo:
        household.admin_login(backend, Session(), "owner@example.com", "1111")
    assert excinfo.value.details["error"] == "not_admin"


def test_admin_cannot_delete_themself_before_any_backend_call():
    backend = RecordingBackend()
    session = Session(admin=AdminSession(id="a1", name="Ada", token="t"))

    with pytest.raises(PolicyDenied) as excinfo:
        household.admin_delete_user(backend, session, "a1")
    assert excinfo.value.reason == "self-delete"
    assert backend.calls == []

    household.admin_delete_user(backend, session, "someone-else")
    assert backend.calls == ["admin_delete_user"]
