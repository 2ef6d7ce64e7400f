"""HTTP/JSON client for the household service."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen


def normalize_base(base_url: Optional[str]) -> str:
    if not base_url:
        return ""
    return base_url.strip().rstrip("/")


def _error_text(exc: HTTPError) -> str:
    try:
        body = json.loads(exc.read().decode("utf-8") or "{}")
    except Exception:
        return f"http_{exc.code}"
    if isinstance(body, dict) and isinstance(body.get("error"), str) and body["error"]:
        return f"http_{exc.code}:{body['error']}"
    return f"http_{exc.code}"


def _has_id(member: Any) -> bool:
    return isinstance(member, dict) and member.get("id") not in (None, "")


class RemoteBackend:
    name = "remote"

    def __init__(
        self,
        base_url: Optional[str],
        token: Optional[str] = None,
        device_secret: Optional[str] = None,
        timeout: float = 5.0,
    ) -> None:
        self.base_url = normalize_base(base_url)
        self.token = token
        self.device_secret = device_secret
        self.timeout = float(timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def set_token(self, token: Optional[str]) -> None:
        self.token = token or None

    def _url(self, path: str) -> str:
        cleaned = path if path.startswith("/") else f"/{path}"
        return self.base_url + cleaned

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        admin: bool = False,
    ) -> Dict[str, Any]:
        if not self.enabled:
            return {"ok": False, "error": "remote_disabled"}
        req = Request(self._url(path), method=method)
        req.add_header("Content-Type", "application/json")
        for key, value in (headers or {}).items():
            req.add_header(key, value)
        if admin and self.token:
            req.add_header("Authorization", f"Bearer {self.token}")
        data = None
        if payload is not None:
            data = json.dumps(payload, ensure_ascii=True).encode("utf-8")
        try:
            with urlopen(req, data=data, timeout=self.timeout) as resp:
                raw = resp.read().decode("utf-8")
            decoded = json.loads(raw) if raw.strip() else {}
            return {"ok": True, "data": decoded}
        except HTTPError as exc:
            return {"ok": False, "error": _error_text(exc)}
        except URLError:
            return {"ok": False, "error": "url_error"}
        except (ValueError, UnicodeDecodeError):
            return {"ok": False, "error": "unexpected_payload"}
        except Exception as exc:
            return {"ok": False, "error": f"unknown_error:{type(exc).__name__}"}

    # doors

    def get_doors(self) -> Dict[str, Any]:
        result = self._request("GET", "/door")
        if not result["ok"]:
            return result
        data = result["data"]
        if not isinstance(data, dict):
            return {"ok": False, "error": "unexpected_payload"}
        return {"ok": True, "doors": {str(k): bool(v) for k, v in data.items()}}

    def toggle_door(self, door: str) -> Dict[str, Any]:
        result = self._request("POST", "/door/toggle", {"door": door})
        if not result["ok"]:
            return result
        data = result["data"]
        if not isinstance(data, dict) or "locked" not in data:
            return {"ok": False, "error": "unexpected_payload"}
        return {"ok": True, "door": door, "locked": bool(data["locked"])}

    def set_door(self, door: str, locked: bool) -> Dict[str, Any]:
        """Bring one door to the desired state, toggling only when it differs."""
        doors = self.get_doors()
        if not doors["ok"]:
            return doors
        if door not in doors["doors"]:
            return {"ok": False, "error": "unknown_door"}
        if doors["doors"][door] == locked:
            return {"ok": True, "door": door, "locked": locked, "changed": False}
        toggled = self.toggle_door(door)
        if not toggled["ok"]:
            return toggled
        if toggled["locked"] != locked:
            return {"ok": False, "error": "door_state_unconfirmed"}
        return {"ok": True, "door": door, "locked": locked, "changed": True}

    def lock_all_doors(self) -> Dict[str, Any]:
        result = self._request("POST", "/door/lock_all", {})
        if not result["ok"]:
            return result
        return {"ok": True, "locked": True}

    def unlock_all_doors(self) -> Dict[str, Any]:
        result = self._request("POST", "/door/unlock_all", {})
        if not result["ok"]:
            return result
        return {"ok": True, "locked": False}

    # devices

    def _secret_headers(self) -> Dict[str, str]:
        return {"x-device-secret": self.device_secret} if self.device_secret else {}

    def set_device_state(self, device_id: str, value: Any) -> Dict[str, Any]:
        if isinstance(value, bool):
            value = 1 if value else 0
        result = self._request(
            "POST",
            f"/devices/{quote(device_id, safe='')}/state",
            {"value": value},
            headers=self._secret_headers(),
        )
        if not result["ok"]:
            return result
        data = result["data"] if isinstance(result["data"], dict) else {}
        return {
            "ok": True,
            "deviceId": data.get("deviceId", device_id),
            "value": data.get("value", value),
            "recordedAt": data.get("recordedAt"),
        }

    def get_device_state(self, device_id: str) -> Dict[str, Any]:
        result = self._request("GET", f"/devices/{quote(device_id, safe='')}/state")
        if not result["ok"]:
            return result
        data = result["data"]
        if not isinstance(data, dict):
            return {"ok": False, "error": "unexpected_payload"}
        return {
            "ok": True,
            "deviceId": data.get("deviceId", device_id),
            "value": data.get("value"),
            "recordedAt": data.get("recordedAt"),
        }

    def get_device_states(self, ids: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        path = "/devices/state"
        ids = list(ids or [])
        if ids:
            path += "?" + urlencode({"ids": ",".join(ids)})
        result = self._request("GET", path)
        if not result["ok"]:
            return result
        data = result["data"] if isinstance(result["data"], dict) else {}
        raw = data.get("states") or {}
        if not isinstance(raw, dict):
            return {"ok": False, "error": "unexpected_payload"}
        states: Dict[str, Dict[str, Any]] = {}
        for device_id, value in raw.items():
            value = value if isinstance(value, dict) else {"value": value}
            try:
                numeric = 1 if float(value.get("value") or 0) else 0
            except (TypeError, ValueError):
                numeric = 0
            states[str(device_id)] = {
                "deviceId": str(device_id),
                "value": numeric,
                "recordedAt": value.get("recordedAt"),
            }
        return {"ok": True, "states": states}

    # members

    def _member_result(self, result: Dict[str, Any]) -> Dict[str, Any]:
        if not result["ok"]:
            return result
        data = result["data"]
        if isinstance(data, dict):
            for candidate in (data.get("member"), data.get("user"), data):
                if _has_id(candidate):
                    return {"ok": True, "member": candidate}
        return {"ok": False, "error": "unexpected_payload"}

    def _member_list(self, result: Dict[str, Any], key: str) -> Dict[str, Any]:
        if not result["ok"]:
            return result
        data = result["data"]
        if isinstance(data, dict):
            data = data.get(key, data.get("members"))
        if not isinstance(data, list):
            return {"ok": False, "error": "unexpected_payload"}
        return {"ok": True, "members": [m for m in data if _has_id(m)]}

    def list_members(self) -> Dict[str, Any]:
        return self._member_list(self._request("GET", "/members"), "members")

    def register_member(self, fields: Dict[str, Any], template: Optional[str] = None) -> Dict[str, Any]:
        payload = dict(fields)
        payload["template"] = template
        result = self._request("POST", "/register", payload)
        if not result["ok"] and result["error"].startswith("http_409"):
            return {"ok": False, "error": "duplicate_face", "duplicate": True}
        return self._member_result(result)

    def add_member(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._member_result(self._request("POST", "/members", dict(fields)))

    def update_member(self, member_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return self._member_result(
            self._request("PATCH", f"/members/{quote(str(member_id), safe='')}", dict(updates))
        )

    def delete_member(self, member_id: str) -> Dict[str, Any]:
        result = self._request("DELETE", f"/members/{quote(str(member_id), safe='')}")
        if not result["ok"]:
            return result
        return {"ok": True, "deleted": str(member_id)}

    # admin

    def admin_login(self, email: str, pin: str) -> Dict[str, Any]:
        result = self._request("POST", "/admin/login", {"email": email, "pin": pin})
        if not result["ok"]:
            return result
        data = result["data"] if isinstance(result["data"], dict) else {}
        if not data.get("success") or not _has_id(data.get("user")):
            return {"ok": False, "error": data.get("error") or "admin_login_failed"}
        self.set_token(data.get("token"))
        return {"ok": True, "member": data["user"], "token": data.get("token")}

    def admin_list_users(self) -> Dict[str, Any]:
        return self._member_list(self._request("GET", "/admin/users", admin=True), "users")

    def admin_create_user(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self._member_result(self._request("POST", "/admin/users", dict(fields), admin=True))

    def admin_update_user(self, member_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return self._member_result(
            self._request(
                "PATCH",
                f"/admin/users/{quote(str(member_id), safe='')}",
                dict(updates),
                admin=True,
            )
        )

    def admin_delete_user(self, member_id: str) -> Dict[str, Any]:
        result = self._request(
            "DELETE", f"/admin/users/{quote(str(member_id), safe='')}", admin=True
        )
        if not result["ok"]:
            return result
        return {"ok": True, "deleted": str(member_id)}

    # auth

    def _auth_result(self, result: Dict[str, Any], failure: str) -> Dict[str, Any]:
        if not result["ok"]:
            return result
        data = result["data"] if isinstance(result["data"], dict) else {}
        if data.get("success") is False or not _has_id(data.get("user")):
            return {"ok": False, "error": data.get("error") or failure}
        return {"ok": True, "member": data["user"]}

    def auth_pin(self, pin: str) -> Dict[str, Any]:
        return self._auth_result(self._request("POST", "/auth/pin", {"pin": pin}), "invalid_pin")

    def auth_face(self, template: str) -> Dict[str, Any]:
        return self._auth_result(
            self._request("POST", "/auth/face", {"template": template}), "face_not_recognized"
        )
