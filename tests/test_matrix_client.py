# tests/test_matrix_client.py

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from checklist_engine.connectors import matrix_client
from checklist_engine.connectors.matrix_client import NotifierSession, create_matrix_client, session_path


def _settings(tmp_path: Path, **kw) -> SimpleNamespace:
    base = dict(
        app_name="checklist",
        matrix_homeserver="https://matrix.example.org",
        matrix_user_id="@notifier:example.org",
        matrix_password="",
        matrix_store_path=tmp_path / "matrix_store",
    )
    base.update(kw)
    return SimpleNamespace(**base)


def test_session_save_and_load(tmp_path: Path) -> None:
    path = tmp_path / "store" / "session.json"
    session = NotifierSession("https://matrix.example.org", "@notifier:example.org", "DEV1", "tok")

    session.save(path)

    assert NotifierSession.load(path) == session
    assert not path.with_suffix(".tmp").exists()


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2]",
        json.dumps({"user_id": "@notifier:example.org", "device_id": "DEV1"}),
    ],
)
def test_unusable_session_file_is_ignored(tmp_path: Path, raw: str) -> None:
    path = tmp_path / "session.json"
    path.write_text(raw, "utf-8")
    assert NotifierSession.load(path) is None
    assert NotifierSession.load(tmp_path / "missing.json") is None


def test_session_belongs_to_configured_account() -> None:
    session = NotifierSession("https://matrix.example.org/", "@notifier:example.org", "DEV1", "tok")
    assert session.belongs_to("https://matrix.example.org", "@notifier:example.org")
    assert not session.belongs_to("https://matrix.example.org", "@other:example.org")
    assert not session.belongs_to("https://other.example.org", "@notifier:example.org")
    assert NotifierSession("", "@notifier:example.org", "DEV1", "tok").belongs_to(
        "https://other.example.org", "@notifier:example.org"
    )


@pytest.mark.asyncio
async def test_stored_session_is_restored(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    NotifierSession("https://matrix.example.org", "@notifier:example.org", "DEV1", "tok").save(
        session_path(settings)
    )

    client = await create_matrix_client(settings)

    assert client is not None
    try:
        assert client.access_token == "tok"
        assert client.device_id == "DEV1"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_foreign_session_without_password_gives_no_client(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    NotifierSession("https://matrix.example.org", "@someone:example.org", "DEV1", "tok").save(
        session_path(settings)
    )

    assert await create_matrix_client(settings) is None


@pytest.mark.asyncio
async def test_password_login_writes_session(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings = _settings(tmp_path, matrix_password="secret")
    calls: list[str] = []

    async def fake_login(client, homeserver, password, device_name):
        calls.append(device_name)
        return NotifierSession(homeserver, "@notifier:example.org", "DEV2", "fresh")

    monkeypatch.setattr(matrix_client, "_password_login", fake_login)

    client = await create_matrix_client(settings)

    assert client is not None
    await client.close()
    assert calls == ["checklist notifier"]
    saved = NotifierSession.load(session_path(settings))
    assert saved is not None
    assert (saved.device_id, saved.access_token) == ("DEV2", "fresh")


@pytest.mark.asyncio
async def test_missing_homeserver_gives_no_client(tmp_path: Path) -> None:
    assert await create_matrix_client(_settings(tmp_path, matrix_homeserver="")) is None
