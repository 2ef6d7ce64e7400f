"""Household members: registration, policy edits, admin management and sign-in.

Family edits need a signed-in owner (a parent, an admin member, or the
``owner`` relation) or an admin session. Every access check runs before the
mutating backend call.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .backend import DualBackend
from .errors import BackendRejected, PolicyDenied
from .policy import Policy, ROLES, normalize_policy, normalize_role, toggle_policy
from .session import AdminSession, Session


RELATIONS_BY_ROLE: Dict[str, List[str]] = {
    "admin": ["admin"],
    "parent": ["owner", "wife", "husband", "father", "mother"],
    "member": ["member", "sibling", "grandparent", "guest", "other"],
    "child": ["son", "daughter"],
}

# Roles anyone may pick when registering themself.
SELF_SERVICE_ROLES = ("member", "child")

PIN_RE = re.compile(r"^\d{4,6}$")

ADMIN_REQUIRED = "admin-required"
OWNER_REQUIRED = "owner-required"
SELF_DELETE = "self-delete"
SIGNED_OUT = "signed-out"


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    role: str = "member"
    relation: str = ""
    pin: str = ""
    email: Optional[str] = None
    template: Optional[str] = None
    registered_at: Optional[str] = None
    policies: Policy = field(default_factory=Policy)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Member":
        member_id = data.get("id")
        if member_id is None or str(member_id).strip() == "":
            raise ValueError("member id is required")
        role = normalize_role(data.get("role"))
        return cls(
            id=str(member_id),
            name=str(data.get("name") or ""),
            role=role,
            relation=str(data.get("relation") or ""),
            pin=str(data.get("pin") or ""),
            email=data.get("email") or None,
            template=data.get("template") or data.get("faceTemplate") or None,
            registered_at=data.get("registeredAt") or data.get("registered_at"),
            policies=normalize_policy(data.get("policies"), role),
        )

    @property
    def is_owner(self) -> bool:
        return self.role in ("admin", "parent") or self.relation == "owner"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "relation": self.relation,
            "registeredAt": self.registered_at,
            "policies": self.policies.to_dict(),
        }


def relation_for(role: str, relation: Optional[str]) -> str:
    options = RELATIONS_BY_ROLE.get(role, RELATIONS_BY_ROLE["member"])
    if relation in options:
        return relation
    return options[0]


def validate_new_member(name: Optional[str], pin: Optional[str], role: Optional[str] = "member") -> None:
    if not name or not name.strip():
        raise ValueError("name is required")
    if not pin or not PIN_RE.match(pin.strip()):
        raise ValueError("pin must be 4-6 digits")
    if role not in ROLES:
        raise ValueError(f"role must be one of: {', '.join(ROLES)}")


def _require(result: Dict[str, Any], what: str) -> Dict[str, Any]:
    if result.get("ok"):
        return result
    error = str(result.get("error") or "unknown_error")
    logging.warning("%s rejected: %s", what, error)
    raise BackendRejected(f"{what} failed: {error}", {"error": error, "source": result.get("source")})


def _member_from(result: Dict[str, Any], what: str) -> Member:
    payload = result.get("member")
    if not isinstance(payload, dict) or payload.get("id") is None:
        logging.warning("%s returned no member", what)
        raise BackendRejected(f"{what} failed: unexpected_payload", {"error": "unexpected_payload"})
    return Member.from_dict(payload)


def list_members(backend: DualBackend) -> List[Member]:
    result = _require(backend.list_members(), "list members")
    return [Member.from_dict(item) for item in result.get("members", [])]


def get_member(backend: DualBackend, member_id: str) -> Optional[Member]:
    for member in list_members(backend):
        if member.id == str(member_id):
            return member
    return None


def current_member(backend: DualBackend, session: Session) -> Member:
    """Reload the signed-in member; a member deleted since sign-in is signed out."""
    if session.member_id is None:
        raise PolicyDenied("sign in first", SIGNED_OUT)
    member = get_member(backend, session.member_id)
    if member is None:
        logging.info("signed-in member %s no longer exists; signing out", session.member_id)
        session.sign_out()
        raise PolicyDenied("your account no longer exists; sign in again", SIGNED_OUT)
    return member


def _require_owner(backend: DualBackend, session: Session) -> None:
    if session.admin is not None:
        return
    if session.member_id is None:
        raise PolicyDenied("family management needs an owner or admin sign-in", OWNER_REQUIRED)
    if not current_member(backend, session).is_owner:
        raise PolicyDenied("only the household owner can manage family members", OWNER_REQUIRED)


def _require_admin(session: Session) -> None:
    if session.admin is None:
        raise PolicyDenied("admin sign-in required", ADMIN_REQUIRED)


def add_member(
    backend: DualBackend,
    session: Session,
    name: str,
    pin: str,
    role: str = "member",
    relation: Optional[str] = None,
    email: Optional[str] = None,
) -> Member:
    validate_new_member(name, pin, role)
    _require_owner(backend, session)
    fields = {
        "name": name.strip(),
        "pin": pin.strip(),
        "role": role,
        "relation": relation_for(role, relation),
        "email": email or None,
    }
    return _member_from(_require(backend.add_member(fields), "add member"), "add member")


def register_member(
    backend: DualBackend,
    session: Session,
    name: str,
    pin: str,
    template: Optional[str] = None,
    role: str = "member",
    relation: Optional[str] = None,
    email: Optional[str] = None,
) -> Member:
    """Self-registration. The first member becomes the owner; privileged roles need an owner."""
    validate_new_member(name, pin, role)
    if role not in SELF_SERVICE_ROLES:
        _require_owner(backend, session)
    fields = {
        "name": name.strip(),
        "pin": pin.strip(),
        "role": role,
        "relation": relation_for(role, relation),
        "email": email or None,
        "preferredLogin": "pin",
    }
    result = _require(backend.register_member(fields, template), "register member")
    return _member_from(result, "register member")


def update_member(backend: DualBackend, session: Session, member_id: str, updates: Dict[str, Any]) -> Member:
    _require_owner(backend, session)
    result = _require(backend.update_member(member_id, updates), "update member")
    return _member_from(result, "update member")


def toggle_member_policy(backend: DualBackend, session: Session, member_id: str, path: str) -> Member:
    """Flip one policy switch and write the whole policy back (last write wins)."""
    _require_owner(backend, session)
    member = get_member(backend, member_id)
    if member is None:
        raise BackendRejected(f"member {member_id} not found", {"error": "member_not_found"})
    updated = toggle_policy(member.policies, path, member.role)
    result = _require(backend.update_member(member.id, {"policies": updated.to_dict()}), "update member")
    return _member_from(result, "update member")


def delete_member(backend: DualBackend, session: Session, member_id: str) -> None:
    _require_owner(backend, session)
    if str(session.member_id) == str(member_id):
        raise PolicyDenied("you cannot delete your own account", SELF_DELETE)
    _require(backend.delete_member(member_id), "delete member")


def admin_login(backend: DualBackend, session: Session, email: str, pin: str) -> Member:
    result = _require(backend.admin_login(email, pin), "admin login")
    member = _member_from(result, "admin login")
    token = result.get("token")
    backend.set_token(token)
    session.set_admin(AdminSession(id=member.id, name=member.name, email=member.email, token=token))
    return member


def admin_logout(backend: DualBackend, session: Session) -> None:
    backend.set_token(None)
    session.clear_admin()


def admin_list_users(backend: DualBackend, session: Session) -> List[Member]:
    _require_admin(session)
    result = _require(backend.admin_list_users(), "list users")
    return [Member.from_dict(item) for item in result.get("members", [])]


def admin_create_user(
    backend: DualBackend,
    session: Session,
    name: str,
    pin: str,
    role: str = "parent",
    email: Optional[str] = None,
) -> Member:
    _require_admin(session)
    validate_new_member(name, pin, role)
    fields = {
        "name": name.strip(),
        "pin": pin.strip(),
        "role": role,
        "relation": "owner" if role == "parent" else "",
        "email": email or None,
    }
    return _member_from(_require(backend.admin_create_user(fields), "create user"), "create user")


def admin_change_role(backend: DualBackend, session: Session, member_id: str, role: str) -> Member:
    _require_admin(session)
    if role not in ROLES:
        raise ValueError(f"role must be one of: {', '.join(ROLES)}")
    result = _require(backend.admin_update_user(member_id, {"role": role}), "update user")
    return _member_from(result, "update user")


def admin_delete_user(backend: DualBackend, session: Session, member_id: str) -> None:
    """Delete a member; the signed-in admin can never delete themself."""
    _require_admin(session)
    if str(session.admin.id) == str(member_id):
        raise PolicyDenied("you cannot delete the signed-in admin", SELF_DELETE)
    _require(backend.admin_delete_user(member_id), "delete user")


def login_pin(backend: DualBackend, session: Session, pin: str) -> Member:
    member = _member_from(_require(backend.auth_pin(pin), "pin login"), "pin login")
    session.sign_in(member)
    return member


def login_face(backend: DualBackend, session: Session, template: str) -> Member:
    member = _member_from(_require(backend.auth_face(template), "face login"), "face login")
    session.sign_in(member)
    return member
