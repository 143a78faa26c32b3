"""Sync package: backend contract, HTTP client, auth session and sync engine."""

from tapertrack.sync.auth import AuthFailure, AuthResult, AuthSession
from tapertrack.sync.backend import (
    BackendError,
    BackendUnavailableError,
    CredentialsRejectedError,
    SyncBackend,
    UnauthorizedError,
)
from tapertrack.sync.engine import LoadResult, SyncEngine, SyncStatus
from tapertrack.sync.http_backend import HttpSyncBackend

__all__ = [
    "AuthFailure",
    "AuthResult",
    "AuthSession",
    "BackendError",
    "BackendUnavailableError",
    "CredentialsRejectedError",
    "HttpSyncBackend",
    "LoadResult",
    "SyncBackend",
    "SyncEngine",
    "SyncStatus",
    "UnauthorizedError",
]
