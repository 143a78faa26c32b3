"""Bearer-token lifecycle: acquisition, persistence and invalidation."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

from tapertrack.data.local_storage import LocalStorage, LocalStorageError
from tapertrack.data.schemas import Session, validate_credentials
from tapertrack.sync.backend import BackendUnavailableError, CredentialsRejectedError, SyncBackend

logger = logging.getLogger(__name__)

InvalidationListener = Callable[[], None]
SessionChangeListener = Callable[[Session, bool], None]

OWNER_KEY = "owner"


class AuthFailure(StrEnum):
    """Why an acquire/register attempt did not yield a session."""

    REJECTED = "rejected"  # bad credentials, taken username, weak password
    NETWORK = "network"  # backend unreachable or misbehaving


@dataclass(frozen=True)
class AuthResult:
    """Outcome of login/registration. Exactly one of ``session`` / ``error`` is set."""

    session: Session | None = None
    error: str = ""
    failure: AuthFailure | None = None
    user_changed: bool = False  # a different user than the one whose data is held locally

    @property
    def ok(self) -> bool:
        return self.session is not None


class AuthSession:
    """Holds the current credential and owns its persistence.

    Credential problems come back as AuthResult messages; they never raise
    and never touch an already-established session.
    """

    def __init__(self, backend: SyncBackend, storage: LocalStorage | None = None) -> None:
        self._backend = backend
        self._storage = storage
        self._session: Session | None = None
        self._owner: str | None = storage.get(OWNER_KEY) if storage is not None else None
        self._listeners: list[InvalidationListener] = []
        self._change_listeners: list[SessionChangeListener] = []

    def current(self) -> Session | None:
        return self._session

    def on_invalidated(self, listener: InvalidationListener) -> None:
        self._listeners.append(listener)

    def on_session_changed(self, listener: SessionChangeListener) -> None:
        """Called with (new session, user_changed) after every successful acquire or register."""
        self._change_listeners.append(listener)

    def restore(self) -> Session | None:
        """Adopt a session persisted by a previous run, if any."""
        if self._storage is not None:
            self._session = self._storage.load_session()
        if self._session is not None:
            logger.info("Restored session for %s", self._session.username)
        return self._session

    async def acquire(self, username: str, password: str) -> AuthResult:
        if not username or not password:
            return AuthResult(error="Username and password are required", failure=AuthFailure.REJECTED)
        return await self._authenticate(self._backend.login, username, password)

    async def register(self, username: str, password: str) -> AuthResult:
        report = validate_credentials(username, password)
        if not report.ok:
            return AuthResult(error="; ".join(report.errors), failure=AuthFailure.REJECTED)
        return await self._authenticate(self._backend.register, username, password)

    async def _authenticate(
        self,
        call: Callable[[str, str], Awaitable[Session]],
        username: str,
        password: str,
    ) -> AuthResult:
        try:
            session = await call(username, password)
        except CredentialsRejectedError as exc:
            logger.info("Authentication rejected for %s: %s", username, exc.message)
            return AuthResult(error=exc.message, failure=AuthFailure.REJECTED)
        except BackendUnavailableError as exc:
            logger.warning("Authentication unavailable: %s", exc)
            return AuthResult(error="Cannot reach the server. Check your connection.", failure=AuthFailure.NETWORK)

        user_changed = self._owner is not None and self._owner != session.username
        self._session = session
        self._owner = session.username
        if self._storage is not None:
            try:
                self._storage.set(OWNER_KEY, session.username)
                self._storage.save_session(session)
            except LocalStorageError as exc:
                logger.error("Session will not survive a restart: %s", exc)
        logger.info("Authenticated as %s", session.username)
        for listener in list(self._change_listeners):
            listener(session, user_changed)
        return AuthResult(session=session, user_changed=user_changed)

    def invalidate(self) -> None:
        """Drop the credential locally and tell listeners re-authentication is needed."""
        had_session = self._session is not None
        self._session = None
        if self._storage is not None:
            try:
                self._storage.clear_session()
            except LocalStorageError as exc:
                logger.error("Could not remove stored session: %s", exc)
        if had_session:
            logger.warning("Session invalidated")
        for listener in list(self._listeners):
            listener()
