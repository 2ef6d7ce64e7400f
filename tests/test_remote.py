import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest

from homegate.remote import RemoteBackend


class _Household:
    def __init__(self):
        self.doors = {"front": True, "back": False}
        self.requests = []


def _handler(state):
    class Handler(BaseHTTPRequestHandler):
        def log_message(self, *args):
            pass

        def _reply(self, status, body):
            raw = json.dumps(body).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(raw)))
            self.end_headers()
            self.wfile.write(raw)

        def _record(self):
            length = int(self.headers.get("Content-Length") or 0)
            body = json.loads(self.rfile.read(length) or b"null") if length else None
            state.requests.append((self.command, self.path, self.headers, body))
            return body

        def do_GET(self):
            self._record()
            if self.path == "/door":
                return self._reply(200, state.doors)
            if self.path.startswith("/devices/state"):
                return self._reply(200, {"states": {"fan-1": {"value": 1, "recordedAt": "t"}}})
            if self.path == "/admin/users":
                if self.headers.get("Authorization") != "Bearer tok-1":
                    return self._reply(401, {"error": "unauthorized"})
                return self._reply(200, {"users": [{"id": "a1", "name": "Ada", "role": "admin"}]})
            return self._reply(404, {"error": "not found"})

        def do_POST(self):
            body = self._record()
            if self.path == "/door/toggle":
                door = body["door"]
                state.doors[door] = not state.doors[door]
                return self._reply(200, {"locked": state.doors[door]})
            if self.path == "/door/lock_all":
                return self._reply(500, {"error": "relay offline"})
            if self.path.startswith("/devices/"):
                return self._reply(200, {"deviceId": "fan-1", "value": body["value"], "recordedAt": "t"})
            if self.path == "/admin/login":
                return self._reply(200, {"success": True, "user": {"id": "a1", "name": "Ada"}, "token": "tok-1"})
            if self.path == "/auth/pin":
                return self._reply(200, {"success": False, "error": "invalid_pin"})
            if self.path == "/register":
                return self._reply(409, {"error": "duplicate"})
            return self._reply(404, {"error": "not found"})

    return Handler


@pytest.fixture
def server():
    state = _Household()
    httpd = HTTPServer(("127.0.0.1", 0), _handler(state))
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    state.base = f"http://127.0.0.1:{httpd.server_address[1]}/"
    yield state
    httpd.shutdown()
    httpd.server_close()


def test_disabled_without_base_url():
    remote = RemoteBackend(None)
    assert remote.enabled is False
    assert remote.get_doors() == {"ok": False, "error": "remote_disabled"}


def test_get_doors_and_set_door_toggles_only_when_needed(server):
    remote = RemoteBackend(server.base)
    assert remote.get_doors() == {"ok": True, "doors": {"front": True, "back": False}}

    unchanged = remote.set_door("front", True)
    assert unchanged["changed"] is False

    changed = remote.set_door("back", True)
    assert changed == {"ok": True, "door": "back", "locked": True, "changed": True}
    toggles = [r for r in server.requests if r[1] == "/door/toggle"]
    assert len(toggles) == 1
    assert toggles[0][3] == {"door": "back"}

    assert remote.set_door("attic", True)["error"] == "unknown_door"


def test_http_error_carries_status_and_message(server):
    result = RemoteBackend(server.base).lock_all_doors()
    assert result == {"ok": False, "error": "http_500:relay offline"}


def test_device_state_sends_secret_header(server):
    remote = RemoteBackend(server.base, device_secret="s3cret")
    result = remote.set_device_state("fan-1", True)
    assert result["ok"] is True
    assert result["value"] == 1
    method, path, headers, body = server.requests[-1]
    assert (method, path, body) == ("POST", "/devices/fan-1/state", {"value": 1})
    assert headers.get("x-device-secret") == "s3cret"

    states = remote.get_device_states(["fan-1", "ac-1"])
    assert states["states"]["fan-1"]["value"] == 1
    assert server.requests[-1][1] == "/devices/state?ids=fan-1%2Cac-1"


def test_admin_token_is_sent_as_bearer(server):
    remote = RemoteBackend(server.base)
    assert remote.admin_list_users()["error"] == "http_401:unauthorized"

    login = remote.admin_login("ada@example.com", "9999")
    assert login["token"] == "tok-1"
    users = remote.admin_list_users()
    assert users == {"ok": True, "members": [{"id": "a1", "name": "Ada", "role": "admin"}]}


def test_application_failures(server):
    remote = RemoteBackend(server.base)
    assert remote.auth_pin("0000") == {"ok": False, "error": "invalid_pin"}
    assert remote.register_member({"name": "Twin", "pin": "1234"}, "tmpl")["error"] == "duplicate_face"


def test_unreachable_host_is_url_error():
    remote = RemoteBackend("http://127.0.0.1:9", timeout=1)
    assert remote.get_doors()["error"] == "url_error"


@pytest.mark.parametrize("data", [{}, None, {"member": {"name": "Ghost"}}, {"user": {"id": ""}}, []])
def test_member_payload_without_id_is_unexpected(monkeypatch, data):
    remote = RemoteBackend("http://homegate.invalid")
    monkeypatch.setattr(remote, "_request", lambda *args, **kwargs: {"ok": True, "data": data})

    assert remote.add_member({"name": "Ghost", "pin": "1234"}) == {"ok": False, "error": "unexpected_payload"}
    assert remote.auth_pin("1234")["ok"] is False
    assert remote.admin_login("ghost@example.com", "1234")["ok"] is False


def test_member_list_drops_entries_without_id(monkeypatch):
    remote = RemoteBackend("http://homegate.invalid")
    members = [{"id": "m1", "name": "Sam"}, {"name": "Ghost"}, {"id": None}]
    monkeypatch.setattr(remote, "_request", lambda *args, **kwargs: {"ok": True, "data": {"members": members}})

    assert remote.list_members() == {"ok": True, "members": [{"id": "m1", "name": "Sam"}]}
