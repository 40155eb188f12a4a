import json
from datetime import datetime, timedelta, timezone

from src.models.cdm import Session
from src.transport.session_manager import SessionManager, SessionStore


def test_cookie_merge_last_write_wins():
    """Merging A then B keeps one entry per name, B wins, A's others survive."""
    manager = SessionManager()
    manager.update_cookies(["csrftoken=a1", "sessionid=s1", "lang=en"])
    manager.update_cookies(["sessionid=s2", "dash=d1"])

    cookies = manager.get_cookies()
    names = [c.split("=", 1)[0] for c in cookies]

    assert len(names) == len(set(names))
    assert set(cookies) == {"csrftoken=a1", "sessionid=s2", "lang=en", "dash=d1"}


def test_cookie_merge_stays_bounded():
    """Repeated updates with the same names never grow the cookie list."""
    manager = SessionManager()
    for i in range(500):
        manager.update_cookies([f"sessionid=s{i}", f"csrftoken=c{i}"])

    assert manager.get_cookies() == ["sessionid=s499", "csrftoken=c499"]


def test_cookie_merge_ignores_nameless_and_keeps_values_with_equals():
    manager = SessionManager()
    manager.update_cookies(["=orphan", "token=abc==", ""])

    assert manager.get_cookies() == ["token=abc=="]


def test_token_merge_overlays():
    manager = SessionManager()
    manager.update_tokens({"csrf": "old", "other": "keep"})
    manager.update_tokens({"csrf": "new", "extra": "added"})

    assert manager.get_tokens() == {"csrf": "new", "other": "keep", "extra": "added"}


def test_expiry():
    manager = SessionManager()
    now = datetime(2025, 12, 22, 12, 0, tzinfo=timezone.utc)

    # No expiry set: never expired
    assert manager.is_expired(now) is False

    manager.set_expiry(now + timedelta(minutes=5))
    assert manager.is_expired(now) is False
    assert manager.is_expired(now + timedelta(minutes=5)) is True
    assert manager.is_expired(now + timedelta(minutes=6)) is True


def test_get_session_returns_copy():
    manager = SessionManager()
    manager.update_cookies(["sessionid=s1"])

    snapshot = manager.get_session()
    snapshot.cookies.append("injected=1")

    assert manager.get_cookies() == ["sessionid=s1"]


def test_clear_session():
    manager = SessionManager()
    manager.update_cookies(["sessionid=s1"])
    manager.update_tokens({"csrf": "t"})
    manager.clear_session()

    assert manager.get_cookies() == []
    assert manager.get_tokens() == {}


def test_store_round_trip(tmp_path):
    """A saved session reloads with the same cookies, tokens and expiry verdict."""
    store = SessionStore(tmp_path)
    expires_at = datetime(2025, 12, 22, 18, 30, 15, tzinfo=timezone.utc)
    original = Session(
        cookies=["csrftoken=c1", "sessionid=s1"],
        tokens={"csrf": "t1"},
        expires_at=expires_at,
    )

    assert store.save("wellsky", original) is True
    reloaded = store.load("wellsky")

    assert reloaded is not None
    assert set(reloaded.cookies) == set(original.cookies)
    assert reloaded.tokens == original.tokens
    assert reloaded.expires_at == expires_at

    for instant in (expires_at - timedelta(seconds=1), expires_at):
        before, after = SessionManager(), SessionManager()
        before.set_session(original)
        after.set_session(reloaded)
        assert before.is_expired(instant) == after.is_expired(instant)


def test_store_file_format(tmp_path):
    store = SessionStore(tmp_path)
    store.save("wellsky", Session(
        cookies=["sessionid=s1"],
        tokens={"csrf": "t1"},
        expires_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    ))

    data = json.loads((tmp_path / ".session-wellsky.json").read_text())
    assert data["cookies"] == ["sessionid=s1"]
    assert data["tokens"] == {"csrf": "t1"}
    assert data["expiresAt"].startswith("2025-01-01T00:00:00")


def test_store_without_expiry_omits_field(tmp_path):
    store = SessionStore(tmp_path)
    store.save("wellsky", Session(cookies=["a=1"]))

    data = json.loads(store.path_for("wellsky").read_text())
    assert "expiresAt" not in data
    assert store.load("wellsky").expires_at is None


def test_store_corrupt_files_are_no_session(tmp_path):
    """Unreadable session files mean 'log in again', never a crash."""
    store = SessionStore(tmp_path)
    path = store.path_for("wellsky")

    assert store.load("wellsky") is None

    for content in ("", "{not json", "[1, 2]", '{"cookies": "not-a-list"}', '{"expiresAt": "yesterday"}'):
        path.write_text(content)
        assert store.load("wellsky") is None

    path.write_text("[" * 100000)
    assert store.load("wellsky") is None


def test_store_clear(tmp_path):
    store = SessionStore(tmp_path)
    store.save("wellsky", Session(cookies=["a=1"]))
    store.clear("wellsky")
    store.clear("wellsky")

    assert not store.path_for("wellsky").exists()
