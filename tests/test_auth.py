"""Tests for tapertrack.sync.auth."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from tapertrack.data.local_storage import LocalStorage
from tapertrack.data.schemas import Session
from tapertrack.sync.auth import OWNER_KEY, AuthFailure, AuthSession
from tapertrack.sync.backend import BackendUnavailableError, CredentialsRejectedError

if TYPE_CHECKING:
    from conftest import FakeBackend


class TestRegister:
    @pytest.mark.asyncio
    async def test_invalid_request_makes_no_network_call(self, auth: AuthSession, backend: FakeBackend) -> None:
        result = await auth.register("ab", "short")
        assert not result.ok
        assert result.failure == AuthFailure.REJECTED
        assert "Password must be at least 6 characters" in result.error
        assert backend.auth_calls == []
        assert auth.current() is None

    @pytest.mark.asyncio
    async def test_success_persists_session(
        self, auth: AuthSession, backend: FakeBackend, storage: LocalStorage
    ) -> None:
        result = await auth.register("alice", "secret1")
        assert result.ok
        assert result.session == Session(token="token-alice", username="alice")
        assert auth.current() == result.session
        assert storage.load_session() == result.session
        assert storage.get(OWNER_KEY) == "alice"
        assert backend.auth_calls == [("register", "alice", "secret1")]

    @pytest.mark.asyncio
    async def test_taken_username_is_rejected(self, auth: AuthSession, backend: FakeBackend) -> None:
        backend.auth_error = CredentialsRejectedError("Username already taken")
        result = await auth.register("alice", "secret1")
        assert result.error == "Username already taken"
        assert result.failure == AuthFailure.REJECTED


class TestAcquire:
    @pytest.mark.asyncio
    async def test_requires_credentials(self, auth: AuthSession, backend: FakeBackend) -> None:
        result = await auth.acquire("", "")
        assert result.failure == AuthFailure.REJECTED
        assert backend.auth_calls == []

    @pytest.mark.asyncio
    async def test_wrong_password(self, auth: AuthSession) -> None:
        result = await auth.acquire("alice", "wrong-password")
        assert result.error == "Invalid credentials"
        assert result.failure == AuthFailure.REJECTED

    @pytest.mark.asyncio
    async def test_network_failure_is_distinct(self, auth: AuthSession, backend: FakeBackend) -> None:
        backend.auth_error = BackendUnavailableError("connection refused")
        result = await auth.acquire("alice", "secret1")
        assert result.failure == AuthFailure.NETWORK
        assert result.error == "Cannot reach the server. Check your connection."

    @pytest.mark.asyncio
    async def test_failure_keeps_existing_session(self, auth: AuthSession) -> None:
        first = await auth.acquire("alice", "secret1")
        await auth.acquire("alice", "wrong-password")
        assert auth.current() == first.session

    @pytest.mark.asyncio
    async def test_user_changed(self, auth: AuthSession) -> None:
        assert (await auth.acquire("alice", "secret1")).user_changed is False
        assert (await auth.acquire("alice", "secret1")).user_changed is False
        assert (await auth.acquire("bob", "secret1")).user_changed is True

    @pytest.mark.asyncio
    async def test_session_change_listeners(self, auth: AuthSession) -> None:
        changed = MagicMock()
        auth.on_session_changed(changed)
        await auth.acquire("alice", "wrong-password")
        changed.assert_not_called()
        first = await auth.acquire("alice", "secret1")
        changed.assert_called_once_with(first.session, False)
        second = await auth.acquire("bob", "secret1")
        changed.assert_called_with(second.session, True)

    @pytest.mark.asyncio
    async def test_owner_survives_restart(self, storage: LocalStorage, backend: FakeBackend) -> None:
        await AuthSession(backend, storage).acquire("alice", "secret1")
        result = await AuthSession(backend, storage).acquire("bob", "secret1")
        assert result.user_changed is True


class TestRestoreAndInvalidate:
    @pytest.mark.asyncio
    async def test_restore(self, storage: LocalStorage, backend: FakeBackend) -> None:
        await AuthSession(backend, storage).acquire("alice", "secret1")
        restored = AuthSession(backend, storage)
        assert restored.current() is None
        assert restored.restore() == Session(token="token-alice", username="alice")

    @pytest.mark.asyncio
    async def test_invalidate_clears_and_notifies(self, auth: AuthSession, storage: LocalStorage) -> None:
        listener = MagicMock()
        auth.on_invalidated(listener)
        await auth.acquire("alice", "secret1")
        auth.invalidate()
        assert auth.current() is None
        assert storage.load_session() is None
        listener.assert_called_once_with()

    def test_works_without_storage(self, backend: FakeBackend) -> None:
        auth = AuthSession(backend)
        assert auth.restore() is None
        auth.invalidate()
        assert auth.current() is None
