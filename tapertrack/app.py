"""FastAPI sync server: accounts plus one JSON document per user."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from tapertrack.core.config import settings
from tapertrack.data.schemas import AppState
from tapertrack.data.user_store import Principal, RegistrationError, UsernameTakenError, UserStore

logger = logging.getLogger(__name__)

_user_store: UserStore | None = None


def get_user_store() -> UserStore:
    """Dependency returning the process-wide store, created on first use."""
    global _user_store  # noqa: PLW0603
    if _user_store is None:
        _user_store = UserStore.from_settings(settings)
    return _user_store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Configure logging and open the user store alongside the server."""
    logging.basicConfig(level=settings.log_level)
    store = get_user_store()
    logger.info("Sync server storing data under %s", store.root)
    yield


app = FastAPI(title="TaperTrack Sync", version="0.1.0", lifespan=lifespan)

_bearer_scheme = HTTPBearer(auto_error=False)


class Credentials(BaseModel):
    """Body for /register and /login."""

    username: str
    password: str


class SessionResponse(BaseModel):
    """Token issued by /register and /login."""

    token: str
    username: str


class HealthResponse(BaseModel):
    """Response for the /health endpoint."""

    status: str
    authenticated: bool


@app.exception_handler(StarletteHTTPException)
async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def _validation_error(_request: Request, _exc: RequestValidationError) -> JSONResponse:
    return JSONResponse({"error": "Invalid request body"}, status_code=422)


async def _current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),  # noqa: B008
    store: UserStore = Depends(get_user_store),  # noqa: B008
) -> Principal:
    """Resolve the Bearer token to a user, or 401."""
    principal = store.resolve(credentials.credentials) if credentials is not None else None
    if principal is None:
        raise HTTPException(status_code=401, detail="Unauthorized", headers={"WWW-Authenticate": "Bearer"})
    return principal


@app.get("/health", response_model=HealthResponse)
async def health(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),  # noqa: B008
    store: UserStore = Depends(get_user_store),  # noqa: B008
) -> HealthResponse:
    """Connectivity and credential check. No side effects."""
    authenticated = credentials is not None and store.resolve(credentials.credentials) is not None
    return HealthResponse(status="ok", authenticated=authenticated)


@app.post("/register", response_model=SessionResponse)
async def register(body: Credentials, store: UserStore = Depends(get_user_store)) -> SessionResponse:  # noqa: B008
    """Create an account and return its first token."""
    try:
        session = store.register(body.username, body.password)
    except UsernameTakenError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except RegistrationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return SessionResponse(token=session.token, username=session.username)


@app.post("/login", response_model=SessionResponse)
async def login(body: Credentials, store: UserStore = Depends(get_user_store)) -> SessionResponse:  # noqa: B008
    """Exchange credentials for a token."""
    session = store.login(body.username, body.password)
    if session is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return SessionResponse(token=session.token, username=session.username)


@app.get("/data")
async def load_data(
    user: Principal = Depends(_current_user),  # noqa: B008
    store: UserStore = Depends(get_user_store),  # noqa: B008
) -> dict[str, Any]:
    """Return the caller's document, or an empty marker for a new user."""
    document = store.load_document(user.user_id)
    if document is None:
        return {"status": "empty", "data": None}
    return {"status": "success", "data": document}


@app.post("/data")
async def save_data(
    request: Request,
    user: Principal = Depends(_current_user),  # noqa: B008
    store: UserStore = Depends(get_user_store),  # noqa: B008
) -> dict[str, Any]:
    """Replace the caller's document. The local PIN is never stored server-side."""
    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="No data received") from exc
    try:
        state = AppState.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail="Malformed document") from exc
    store.save_document(user.user_id, state.for_remote())
    logger.info("Saved document for user %s (%d entries)", user.username, len(state.logs))
    return {"status": "success"}
