"""Abstract remote backend that stores one AppState document per user."""

from __future__ import annotations

from abc import ABC, abstractmethod

from tapertrack.data.schemas import AppState, Session


class BackendError(Exception):
    """Base class for sync backend failures."""


class UnauthorizedError(BackendError):
    """The bearer token was rejected. The session must be dropped, never retried."""


class BackendUnavailableError(BackendError):
    """Network failure, timeout, server error or malformed response."""


class CredentialsRejectedError(BackendError):
    """Login or registration refused: bad credentials, taken username or weak password."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SyncBackend(ABC):
    """Remote persistence contract.

    Implementations: HttpSyncBackend. Every method may raise
    BackendUnavailableError; the authenticated ones may raise
    UnauthorizedError.
    """

    @abstractmethod
    async def register(self, username: str, password: str) -> Session:
        """Create an account and return its first session. Raises CredentialsRejectedError."""

    @abstractmethod
    async def login(self, username: str, password: str) -> Session:
        """Exchange credentials for a session. Raises CredentialsRejectedError."""

    @abstractmethod
    async def load(self, session: Session) -> AppState | None:
        """Fetch the stored document, or None if the user has never saved."""

    @abstractmethod
    async def save(self, session: Session, state: AppState) -> None:
        """Replace the stored document with ``state``."""

    @abstractmethod
    async def ping(self, session: Session | None = None) -> bool:
        """Connectivity check. Returns whether ``session`` is still accepted (False without one)."""

    async def close(self) -> None:  # noqa: B027
        """Release transport resources (no-op default)."""
