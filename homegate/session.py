"""The signed-in member and admin session, with explicit load/save.

Only the member id is kept; callers reload the member through the backend
so policy edits and deletions apply to the next command.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .household import Member


@dataclass
class AdminSession:
    id: str
    name: str
    email: Optional[str] = None
    token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email, "token": self.token}


@dataclass
class Session:
    member_id: Optional[str] = None
    admin: Optional[AdminSession] = None

    def sign_in(self, member: "Member") -> None:
        self.member_id = member.id

    def sign_out(self) -> None:
        self.member_id = None
        self.admin = None

    def set_admin(self, admin: AdminSession) -> None:
        self.admin = admin

    def clear_admin(self) -> None:
        self.admin = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "member_id": self.member_id,
            "admin": self.admin.to_dict() if self.admin else None,
        }


def _admin_from(data: Any) -> Optional[AdminSession]:
    if not isinstance(data, dict) or data.get("id") is None:
        return None
    return AdminSession(
        id=str(data["id"]),
        name=str(data.get("name") or ""),
        email=data.get("email"),
        token=data.get("token"),
    )


def load_session(path: str) -> Session:
    file_path = Path(path)
    if not file_path.exists():
        return Session()
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except ValueError:
        return Session()
    if not isinstance(data, dict):
        return Session()
    member_id = data.get("member_id")
    return Session(
        member_id=str(member_id) if member_id else None,
        admin=_admin_from(data.get("admin")),
    )


def save_session(session: Session, path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(session.to_dict(), f, ensure_ascii=True, indent=2)
    os.replace(tmp_path, path)
