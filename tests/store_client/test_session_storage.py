"""Tests for the persisted session file."""
import os
import stat
from pathlib import Path

from schemas.session import AuthSession
from store_client.auth import SessionStorage


def _mode(path: Path) -> int:
    return stat.S_IMODE(path.stat().st_mode)


def test__save__creates_owner_only_file(tmp_path: Path) -> None:
    storage = SessionStorage(tmp_path / "nested" / "session.json")

    storage.save(AuthSession(access_token="t1", refresh_token="r1"))

    assert _mode(storage.path) == 0o600
    assert storage.load().access_token == "t1"
    assert not (tmp_path / "nested" / "session.json.tmp").exists()


def test__save__replaces_world_readable_file(tmp_path: Path) -> None:
    """Test that overwriting a loosely permissioned file leaves it owner-only."""
    path = tmp_path / "session.json"
    path.write_text("{}")
    os.chmod(path, 0o644)

    SessionStorage(path).save(AuthSession(access_token="t2"))

    assert _mode(path) == 0o600
    assert SessionStorage(path).load().access_token == "t2"


def test__load__missing_or_corrupt_is_signed_out(tmp_path: Path) -> None:
    path = tmp_path / "session.json"
    assert SessionStorage(path).load() is None

    path.write_text("not json")

    assert SessionStorage(path).load() is None


def test__clear__removes_file_and_tolerates_absence(tmp_path: Path) -> None:
    storage = SessionStorage(tmp_path / "session.json")
    storage.save(AuthSession(access_token="t"))

    storage.clear()
    storage.clear()

    assert not storage.path.exists()
