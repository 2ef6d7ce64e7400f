import json

from homegate.household import Member
from homegate.session import AdminSession, Session, load_session, save_session


def test_save_and_load_round_trip(tmp_path):
    path = str(tmp_path / "state" / "session.json")
    session = Session(
        member_id="k1",
        admin=AdminSession(id="a1", name="Ada", email="ada@example.com", token="tok"),
    )
    save_session(session, path)

    loaded = load_session(path)
    assert loaded.member_id == "k1"
    assert loaded.admin == session.admin


def test_session_file_keeps_no_member_secrets(tmp_path):
    path = tmp_path / "session.json"
    session = Session()
    session.sign_in(Member(id="k1", name="Kid", pin="2468", template="face-kid"))
    save_session(session, str(path))

    raw = path.read_text(encoding="utf-8")
    assert json.loads(raw) == {"member_id": "k1", "admin": None}
    assert "2468" not in raw
    assert "face-kid" not in raw


def test_missing_or_corrupt_file_gives_empty_session(tmp_path):
    assert load_session(str(tmp_path / "none.json")) == Session()
    corrupt = tmp_path / "session.json"
    corrupt.write_text("{not json", encoding="utf-8")
    assert load_session(str(corrupt)) == Session()


def test_sign_out_clears_admin():
    session = Session(admin=AdminSession(id="a1", name="Ada"))
    session.sign_in(Member(id="a1", name="Ada", role="admin"))
    session.sign_out()
    assert session.member_id is None
    assert session.admin is None
