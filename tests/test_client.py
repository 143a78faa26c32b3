"""End-to-end tests for tapertrack.client against the reference server."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest

from tapertrack.app import app, get_user_store
from tapertrack.client import TaperTrackClient
from tapertrack.core.config import Settings
from tapertrack.core.controller import Screen
from tapertrack.data.user_store import UserStore
from tapertrack.integrations.reminders import Notifier
from tapertrack.sync.engine import SyncStatus
from tapertrack.sync.http_backend import HttpSyncBackend


@pytest.fixture
def user_store(tmp_path: Path) -> Iterator[UserStore]:
    store = UserStore(tmp_path / "server")
    app.dependency_overrides[get_user_store] = lambda: store
    yield store
    app.dependency_overrides.clear()


def _config(tmp_path: Path, device: str) -> Settings:
    return Settings(
        api_base_url="http://test",
        local_storage_path=tmp_path / device,
        sync_debounce_seconds=0.05,
        request_timeout_seconds=2.0,
        reminder_poll_seconds=60.0,
    )


def _client(tmp_path: Path, device: str = "phone") -> TaperTrackClient:
    backend = HttpSyncBackend("http://test", transport=httpx.ASGITransport(app=app))
    return TaperTrackClient(_config(tmp_path, device), backend=backend, notifier=AsyncMock(spec=Notifier))


@pytest.mark.asyncio
async def test_register_edit_and_sync(tmp_path: Path, user_store: UserStore) -> None:
    async with _client(tmp_path) as client:
        assert client.controller.screen == Screen.AUTH
        result = await client.controller.register("alice", "secret1")
        assert result.ok
        assert client.controller.screen == Screen.READY
        client.controller.update_entry(mood_level=8, daily_note="first day")
    assert client.engine.status == SyncStatus.SUCCESS

    principal = user_store.resolve(result.session.token)  # type: ignore[union-attr]
    assert principal is not None
    document = user_store.load_document(principal.user_id)
    assert document is not None
    assert document["logs"][0]["dailyNote"] == "first day"


@pytest.mark.asyncio
async def test_restart_resumes_session_and_local_data(tmp_path: Path, user_store: UserStore) -> None:
    async with _client(tmp_path) as client:
        await client.controller.register("alice", "secret1")
        client.controller.set_pin("1234")
        client.controller.update_entry(mood_level=3)

    async with _client(tmp_path) as client:
        assert client.controller.screen == Screen.LOCKED
        assert client.controller.unlock("1234")
        assert client.controller.current_entry.mood_level == 3


@pytest.mark.asyncio
async def test_second_device_gets_remote_document(tmp_path: Path, user_store: UserStore) -> None:
    async with _client(tmp_path, "phone") as phone:
        await phone.controller.register("alice", "secret1")
        phone.controller.update_entry(mood_level=9)
        phone.controller.set_pin("1234")

    async with _client(tmp_path, "tablet") as tablet:
        await tablet.controller.login("alice", "secret1")
        assert tablet.controller.screen == Screen.READY
        assert tablet.controller.current_entry.mood_level == 9
        assert tablet.store.state.settings.pin_code is None


@pytest.mark.asyncio
async def test_revoked_token_returns_to_auth(tmp_path: Path, user_store: UserStore) -> None:
    async with _client(tmp_path) as client:
        result = await client.controller.register("alice", "secret1")
        user_store.revoke(result.session.token)  # type: ignore[union-attr]
        client.controller.update_entry(mood_level=4)
        await client.engine.flush()
        assert client.controller.screen == Screen.AUTH
        assert client.store.entries() == []
        assert client.storage.load_session() is None
