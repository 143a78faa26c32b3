"""File-backed accounts, bearer tokens and per-user documents for the sync server."""

from __future__ import annotations

import json
import logging
import os
import secrets
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import bcrypt

from tapertrack.core.config import Settings
from tapertrack.data.audit import write_audit_entry
from tapertrack.data.schemas import MAX_PASSWORD_BYTES, Session, validate_credentials

logger = logging.getLogger(__name__)

DOCUMENT_KEY = "main_backup"
_TOKEN_BYTES = 32


class RegistrationError(ValueError):
    """Registration refused; ``str(exc)`` is safe to show to the user."""


class UsernameTakenError(RegistrationError):
    """Another account already uses this username."""


@dataclass(frozen=True)
class Principal:
    """The user a bearer token resolves to."""

    user_id: str
    username: str


def _hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def _check_password(password: str, hashed: str) -> bool:
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(encoded, hashed.encode("utf-8"))


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    os.replace(tmp, path)


class UserStore:
    """Users, tokens and one JSON document per user id, all under ``root``.

    Each document is stored under the fixed key ``main_backup`` and replaced
    whole on every save.
    """

    def __init__(self, root: Path, token_ttl: timedelta = timedelta(days=30), audit_path: Path | None = None) -> None:
        self.root = root
        self.token_ttl = token_ttl
        self._audit_file = audit_path / "server.jsonl" if audit_path is not None else None

    @classmethod
    def from_settings(cls, config: Settings) -> UserStore:
        return cls(config.server_data_path, timedelta(days=config.token_ttl_days), config.server_audit_path)

    @property
    def _users_file(self) -> Path:
        return self.root / "users.json"

    @property
    def _tokens_file(self) -> Path:
        return self.root / "tokens.json"

    def _document_file(self, user_id: str) -> Path:
        return self.root / "documents" / f"{user_id}.json"

    def _audit(self, action: str, **fields: Any) -> None:
        if self._audit_file is not None:
            write_audit_entry(self._audit_file, action, **fields)

    # --- accounts ---

    def register(self, username: str, password: str) -> Session:
        report = validate_credentials(username, password)
        if not report.ok:
            raise RegistrationError("; ".join(report.errors))
        users: dict[str, dict[str, str]] = _read_json(self._users_file, {})
        if username.lower() in (u.lower() for u in users):
            msg = "Username already taken"
            raise UsernameTakenError(msg)

        user_id = uuid.uuid4().hex
        users[username] = {
            "id": user_id,
            "hash": _hash_password(password),
            "created_at": datetime.now(UTC).isoformat(),
        }
        _write_json(self._users_file, users)
        self._audit("register", user_id=user_id)
        logger.info("Registered user %s", username)
        return self._issue_token(user_id, username)

    def login(self, username: str, password: str) -> Session | None:
        users: dict[str, dict[str, str]] = _read_json(self._users_file, {})
        record = users.get(username)
        if record is None:
            self._audit("login_failed")
            return None
        if not _check_password(password, record["hash"]):
            self._audit("login_failed", user_id=record["id"])
            return None
        self._audit("login", user_id=record["id"])
        return self._issue_token(record["id"], username)

    # --- tokens ---

    def _issue_token(self, user_id: str, username: str) -> Session:
        tokens: dict[str, dict[str, str]] = _read_json(self._tokens_file, {})
        now = datetime.now(UTC)
        tokens = {t: v for t, v in tokens.items() if datetime.fromisoformat(v["expires_at"]) > now}
        token = secrets.token_urlsafe(_TOKEN_BYTES)
        tokens[token] = {
            "user_id": user_id,
            "username": username,
            "expires_at": (now + self.token_ttl).isoformat(),
        }
        _write_json(self._tokens_file, tokens)
        return Session(token=token, username=username)

    def resolve(self, token: str) -> Principal | None:
        """User behind a live token; None for unknown or expired tokens."""
        tokens: dict[str, dict[str, str]] = _read_json(self._tokens_file, {})
        record = tokens.get(token)
        if record is None:
            return None
        if datetime.fromisoformat(record["expires_at"]) <= datetime.now(UTC):
            del tokens[token]
            _write_json(self._tokens_file, tokens)
            return None
        return Principal(user_id=record["user_id"], username=record["username"])

    def revoke(self, token: str) -> None:
        tokens: dict[str, dict[str, str]] = _read_json(self._tokens_file, {})
        if tokens.pop(token, None) is not None:
            _write_json(self._tokens_file, tokens)

    # --- documents ---

    def load_document(self, user_id: str) -> dict[str, Any] | None:
        stored: dict[str, Any] = _read_json(self._document_file(user_id), {})
        return stored.get(DOCUMENT_KEY)

    def save_document(self, user_id: str, document: dict[str, Any]) -> None:
        _write_json(self._document_file(user_id), {DOCUMENT_KEY: document})
        self._audit("save", user_id=user_id, logs=len(document.get("logs", [])))
