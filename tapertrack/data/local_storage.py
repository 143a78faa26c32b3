"""Local durable key-value storage: one JSON file per key, optionally age-encrypted."""

from __future__ import annotations

import contextlib
import logging
import os
import re
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tapertrack.core.config import Settings
from tapertrack.data.encryption import decode_value, encode_value
from tapertrack.data.schemas import AppState, Session, UserSettings

logger = logging.getLogger(__name__)

STATE_KEY = "state"
SESSION_KEY = "session"
SETTINGS_KEY = "settings"

_SAFE_KEY_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


class LocalStorageError(OSError):
    """A local write failed; data written since the last success may not survive a restart."""


class LocalStorage:
    """Synchronous file-backed store that survives process restarts.

    Writes go to a temporary file first and are swapped in with ``os.replace``
    so a crash mid-write leaves the previous value intact.
    """

    def __init__(self, root: Path, recipient_key: str = "", identity_key: str = "") -> None:
        self.root = root
        self._recipient = recipient_key
        self._identity = identity_key

    @classmethod
    def from_settings(cls, config: Settings) -> LocalStorage:
        return cls(config.local_storage_path, config.age_recipient, config.age_identity)

    @property
    def encrypted(self) -> bool:
        return bool(self._recipient)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY_RE.match(key):
            msg = f"Invalid storage key: {key!r}"
            raise ValueError(msg)
        suffix = ".age" if self.encrypted else ".json"
        return self.root / f"{key}{suffix}"

    def get(self, key: str) -> Any | None:
        """Return the stored value, or None if absent or unreadable."""
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return decode_value(path.read_bytes(), self._identity)
        except Exception as exc:
            logger.warning("Ignoring unreadable local value %s: %s", path, exc)
            return None

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(encode_value(value, self._recipient))
            os.replace(tmp, path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp.unlink()
            msg = f"Failed to write local {key!r} to {path}: {exc}"
            raise LocalStorageError(msg) from exc

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            msg = f"Failed to delete local {key!r}: {exc}"
            raise LocalStorageError(msg) from exc

    # --- typed accessors ---

    def load_state(self) -> AppState | None:
        """Last-known aggregate, with the separately stored settings (and PIN) applied."""
        raw = self.get(STATE_KEY)
        if raw is None:
            return None
        try:
            state = AppState.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Discarding malformed local state: %s", exc)
            return None
        local_settings = self.load_settings()
        if local_settings is not None:
            state = state.model_copy(update={"settings": local_settings})
        return state

    def save_state(self, state: AppState) -> None:
        self.set(STATE_KEY, state.to_json_dict())
        self.save_settings(state.settings)

    def load_settings(self) -> UserSettings | None:
        raw = self.get(SETTINGS_KEY)
        if raw is None:
            return None
        try:
            return UserSettings.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Discarding malformed local settings: %s", exc)
            return None

    def save_settings(self, user_settings: UserSettings) -> None:
        self.set(SETTINGS_KEY, user_settings.to_json_dict())

    def load_session(self) -> Session | None:
        raw = self.get(SESSION_KEY)
        if raw is None:
            return None
        try:
            return Session.model_validate(raw)
        except ValidationError:
            logger.warning("Discarding malformed stored session")
            return None

    def save_session(self, session: Session) -> None:
        self.set(SESSION_KEY, session.to_json_dict())

    def clear_session(self) -> None:
        self.delete(SESSION_KEY)
