"""Shared fixtures: an in-memory backend and wired client components."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from tapertrack.data.local_storage import LocalStorage
from tapertrack.data.log_store import LogStore
from tapertrack.data.schemas import AppState, Session
from tapertrack.sync.auth import AuthSession
from tapertrack.sync.backend import (
    BackendUnavailableError,
    CredentialsRejectedError,
    SyncBackend,
)
from tapertrack.sync.engine import SyncEngine

DEBOUNCE = 0.05


class FakeBackend(SyncBackend):
    """Records calls and serves one document per username from memory.

    Set ``load_error`` / ``save_error`` to make the next calls raise, or
    ``save_gate`` to hold saves open until the test releases them.
    """

    def __init__(self) -> None:
        self.documents: dict[str, AppState] = {}
        self.saved: list[AppState] = []
        self.load_calls = 0
        self.auth_calls: list[tuple[str, str, str]] = []
        self.load_error: Exception | None = None
        self.save_error: Exception | None = None
        self.auth_error: Exception | None = None
        self.load_gate: asyncio.Event | None = None
        self.save_gate: asyncio.Event | None = None
        self.save_started = asyncio.Event()

    def _session(self, username: str) -> Session:
        return Session(token=f"token-{username}", username=username)

    async def register(self, username: str, password: str) -> Session:
        self.auth_calls.append(("register", username, password))
        if self.auth_error is not None:
            raise self.auth_error
        return self._session(username)

    async def login(self, username: str, password: str) -> Session:
        self.auth_calls.append(("login", username, password))
        if self.auth_error is not None:
            raise self.auth_error
        if password == "wrong-password":
            raise CredentialsRejectedError("Invalid credentials")
        return self._session(username)

    async def load(self, session: Session) -> AppState | None:
        self.load_calls += 1
        if self.load_gate is not None:
            await self.load_gate.wait()
        if self.load_error is not None:
            raise self.load_error
        return self.documents.get(session.username)

    async def save(self, session: Session, state: AppState) -> None:
        self.save_started.set()
        if self.save_gate is not None:
            await self.save_gate.wait()
        self.saved.append(state)
        if self.save_error is not None:
            raise self.save_error
        self.documents[session.username] = state

    async def ping(self, session: Session | None = None) -> bool:
        if self.load_error is not None:
            raise BackendUnavailableError("offline")
        return session is not None


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    return LocalStorage(tmp_path / "local")


@pytest.fixture
def store(storage: LocalStorage) -> LogStore:
    return LogStore(storage)


@pytest.fixture
def auth(backend: FakeBackend, storage: LocalStorage) -> AuthSession:
    return AuthSession(backend, storage)


@pytest.fixture
def engine(store: LogStore, backend: FakeBackend, auth: AuthSession) -> SyncEngine:
    return SyncEngine(store, backend, auth, debounce_seconds=DEBOUNCE, timeout_seconds=1.0)


