"""SyncBackend over the JSON HTTP protocol served by ``tapertrack.app``."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from tapertrack.core.config import Settings
from tapertrack.data.schemas import AppState, Session
from tapertrack.sync.backend import (
    BackendUnavailableError,
    CredentialsRejectedError,
    SyncBackend,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)


def _json_body(resp: httpx.Response) -> dict[str, Any]:
    """Decode a JSON object body; anything else is a malformed response."""
    try:
        body = resp.json()
    except ValueError as exc:
        msg = f"Non-JSON response from {resp.request.url} (HTTP {resp.status_code})"
        raise BackendUnavailableError(msg) from exc
    if not isinstance(body, dict):
        msg = f"Unexpected response shape from {resp.request.url}"
        raise BackendUnavailableError(msg)
    return body


def _error_text(body: dict[str, Any], fallback: str) -> str:
    return str(body.get("error") or body.get("detail") or fallback)


class HttpSyncBackend(SyncBackend):
    """httpx-based client with a bounded per-request timeout.

    Pass ``transport`` to route requests somewhere other than the network
    (an ASGI app or a mock in tests).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, config: Settings) -> HttpSyncBackend:
        return cls(config.api_base_url, timeout=config.request_timeout_seconds)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, session: Session | None = None, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {session.token}"} if session is not None else {}
        try:
            return await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            msg = f"{method} {url} timed out"
            raise BackendUnavailableError(msg) from exc
        except httpx.HTTPError as exc:
            msg = f"{method} {url} failed: {exc}"
            raise BackendUnavailableError(msg) from exc

    def _raise_for_auth(self, resp: httpx.Response) -> None:
        if resp.status_code in (401, 403):
            raise UnauthorizedError(f"Token rejected (HTTP {resp.status_code})")

    async def _authenticate(self, path: str, username: str, password: str) -> Session:
        resp = await self._request("POST", path, json={"username": username, "password": password})
        if resp.status_code >= 500:
            msg = f"Server error on {path} (HTTP {resp.status_code})"
            raise BackendUnavailableError(msg)
        body = _json_body(resp)
        if resp.status_code >= 400:
            raise CredentialsRejectedError(_error_text(body, "Request rejected"))
        try:
            return Session.model_validate(body)
        except ValidationError as exc:
            msg = f"Malformed session in response to {path}"
            raise BackendUnavailableError(msg) from exc

    async def register(self, username: str, password: str) -> Session:
        return await self._authenticate("/register", username, password)

    async def login(self, username: str, password: str) -> Session:
        return await self._authenticate("/login", username, password)

    async def load(self, session: Session) -> AppState | None:
        resp = await self._request("GET", "/data", session=session)
        self._raise_for_auth(resp)
        body = _json_body(resp)
        if resp.status_code >= 400:
            msg = f"Load failed (HTTP {resp.status_code}): {_error_text(body, 'unknown error')}"
            raise BackendUnavailableError(msg)
        data = body.get("data")
        if body.get("status") == "empty" or data is None:
            return None
        try:
            return AppState.model_validate(data)
        except ValidationError as exc:
            msg = "Malformed document returned by load"
            raise BackendUnavailableError(msg) from exc

    async def save(self, session: Session, state: AppState) -> None:
        resp = await self._request("POST", "/data", session=session, json=state.for_remote())
        self._raise_for_auth(resp)
        body = _json_body(resp)
        if resp.status_code >= 400 or body.get("status") != "success":
            msg = f"Save failed (HTTP {resp.status_code}): {_error_text(body, 'unknown error')}"
            raise BackendUnavailableError(msg)

    async def ping(self, session: Session | None = None) -> bool:
        resp = await self._request("GET", "/health", session=session)
        body = _json_body(resp)
        if resp.status_code >= 400 or body.get("status") != "ok":
            msg = f"Health check failed (HTTP {resp.status_code})"
            raise BackendUnavailableError(msg)
        return bool(body.get("authenticated", False))
