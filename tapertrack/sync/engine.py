"""Debounced, single-flight synchronization between the LogStore and a SyncBackend."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from enum import StrEnum

from tapertrack.core.config import Settings
from tapertrack.data.local_storage import LocalStorageError
from tapertrack.data.log_store import LogStore
from tapertrack.data.schemas import AppState, Session
from tapertrack.sync.auth import AuthSession
from tapertrack.sync.backend import BackendError, SyncBackend, UnauthorizedError

logger = logging.getLogger(__name__)


class SyncStatus(StrEnum):
    """Sync indicator shown to the user."""

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class LoadResult(StrEnum):
    """What happened when the remote document was fetched for a session."""

    LOADED = "loaded"  # remote document replaced local state
    NOT_FOUND = "not_found"  # new user, local state kept
    FAILED = "failed"  # transient failure, local state kept
    UNAUTHORIZED = "unauthorized"  # session invalidated
    STALE = "stale"  # session changed while loading, response dropped
    NO_SESSION = "no_session"


StatusListener = Callable[[SyncStatus], None]


def _same_session(a: Session | None, b: Session | None) -> bool:
    return a is not None and b is not None and a.token == b.token


class SyncEngine:
    """Pushes the whole aggregate to the backend after edits settle.

    Trailing debounce: every store change restarts the timer, and a save is
    only built once no change has arrived for ``debounce_seconds``. There is
    no max-wait, so a continuous stream of edits postpones the save until it
    pauses.

    Single flight: at most one save is outstanding. A debounce that fires
    while a save is in flight only sets ``_resend_pending``; the in-flight
    task then sends one more save carrying whatever the store holds at that
    moment. Failures never escape; they become ``SyncStatus.ERROR`` and the
    next edit is the only retry.

    Saves are only sent for a session that ``start_session`` has settled
    (loaded, found empty, or failed to load). Any new session, same user or
    not, cancels the pending timer and closes that gate until its own load
    finishes.
    """

    def __init__(
        self,
        store: LogStore,
        backend: SyncBackend,
        auth: AuthSession,
        debounce_seconds: float = 2.0,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._store = store
        self._backend = backend
        self._auth = auth
        self.debounce_seconds = debounce_seconds
        self.timeout_seconds = timeout_seconds

        self._status = SyncStatus.IDLE
        self._status_listeners: list[StatusListener] = []
        self._timer: asyncio.Task[None] | None = None
        self._in_flight: asyncio.Task[None] | None = None
        self._resend_pending = False
        self._dirty = False
        self._ready_token: str | None = None
        self.save_count = 0

        self._unsubscribe = store.subscribe(self._on_store_changed)
        auth.on_invalidated(self._on_session_invalidated)
        auth.on_session_changed(self._on_session_changed)

    @classmethod
    def from_settings(cls, store: LogStore, backend: SyncBackend, auth: AuthSession, config: Settings) -> SyncEngine:
        return cls(
            store,
            backend,
            auth,
            debounce_seconds=config.sync_debounce_seconds,
            timeout_seconds=config.request_timeout_seconds,
        )

    # --- observable state ---

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def dirty(self) -> bool:
        """True while local changes exist that the backend has not acknowledged."""
        return self._dirty

    @property
    def saving(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def on_status(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def _set_status(self, status: SyncStatus) -> None:
        if status == self._status:
            return
        logger.debug("Sync status %s -> %s", self._status, status)
        self._status = status
        for listener in list(self._status_listeners):
            listener(status)

    # --- session load ---

    async def start_session(self) -> LoadResult:
        """Fetch the remote document for the current session and apply it (remote wins)."""
        session = self._auth.current()
        if session is None:
            return LoadResult.NO_SESSION

        self._set_status(SyncStatus.SYNCING)
        try:
            remote = await asyncio.wait_for(self._backend.load(session), self.timeout_seconds)
        except UnauthorizedError:
            logger.warning("Load rejected: token no longer valid")
            self._drop_session(session)
            return LoadResult.UNAUTHORIZED
        except (BackendError, TimeoutError) as exc:
            logger.error("Load failed: %s", exc)
            self._load_failed(session)
            return LoadResult.FAILED
        except Exception:
            logger.exception("Unexpected error while loading remote data")
            self._load_failed(session)
            return LoadResult.FAILED

        if not _same_session(self._auth.current(), session):
            logger.info("Discarding load response for a session that is no longer active")
            return LoadResult.STALE

        if remote is None:
            logger.info("No remote document yet for %s", session.username)
            self._set_status(SyncStatus.IDLE)
            self._ready_token = session.token
            if self._dirty:
                self.notify_changed()
            return LoadResult.NOT_FOUND

        self._apply_remote(remote)
        self._ready_token = session.token
        self._set_status(SyncStatus.SUCCESS)
        return LoadResult.LOADED

    def _load_failed(self, session: Session) -> None:
        # Local data stays authoritative after a failed load.
        if _same_session(self._auth.current(), session):
            self._ready_token = session.token
            self._set_status(SyncStatus.ERROR)

    def _apply_remote(self, remote: AppState) -> None:
        if self._dirty:
            logger.warning("Remote document replaces local changes that were never acknowledged")
        local = self._store.state.settings
        merged_settings = remote.settings.model_copy(
            update={"is_pin_enabled": local.is_pin_enabled, "pin_code": local.pin_code}
        )
        try:
            self._store.load_state(remote.model_copy(update={"settings": merged_settings}))
        except LocalStorageError as exc:
            logger.error("Remote data applied in memory only: %s", exc)
        self._dirty = False

    # --- debounce and save ---

    def _on_store_changed(self, _state: AppState) -> None:
        self._dirty = True
        self.notify_changed()

    def _ready_session(self) -> Session | None:
        """The current session, once start_session has settled it. None before that."""
        session = self._auth.current()
        if session is None or session.token != self._ready_token:
            return None
        return session

    def notify_changed(self) -> None:
        """(Re)start the debounce timer."""
        if self._ready_session() is None:
            logger.debug("No loaded session, change kept locally only")
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, sync deferred until the next change or flush")
            return
        self._cancel_timer()
        self._timer = loop.create_task(self._debounce())

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _debounce(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._timer = None
        self._fire()

    def _fire(self) -> None:
        if self.saving:
            self._resend_pending = True
            return
        self._in_flight = asyncio.get_running_loop().create_task(self._save_until_settled())

    async def _save_until_settled(self) -> None:
        while True:
            self._resend_pending = False
            await self._save_once()
            if not self._resend_pending:
                return

    async def _save_once(self) -> None:
        session = self._ready_session()
        if session is None:
            return
        snapshot = self._store.state
        self._set_status(SyncStatus.SYNCING)
        self.save_count += 1
        try:
            await asyncio.wait_for(self._backend.save(session, snapshot), self.timeout_seconds)
        except UnauthorizedError:
            logger.warning("Save rejected: token no longer valid")
            self._drop_session(session)
            return
        except (BackendError, TimeoutError) as exc:
            logger.error("Save failed: %s", exc)
            self._set_status(SyncStatus.ERROR)
            return
        except Exception:
            logger.exception("Unexpected error while saving")
            self._set_status(SyncStatus.ERROR)
            return

        if not _same_session(self._ready_session(), session):
            return
        if snapshot is self._store.state:
            self._dirty = False
        self._set_status(SyncStatus.SUCCESS)

    def _drop_session(self, session: Session) -> None:
        self._resend_pending = False
        if _same_session(self._auth.current(), session):
            self._auth.invalidate()
        else:
            self._set_status(SyncStatus.IDLE)

    def _on_session_invalidated(self) -> None:
        self._cancel_timer()
        self._resend_pending = False
        self._ready_token = None
        self._dirty = False
        self._set_status(SyncStatus.IDLE)

    def _on_session_changed(self, _session: Session, user_changed: bool) -> None:
        self._cancel_timer()
        self._resend_pending = False
        self._ready_token = None
        if user_changed:
            self._dirty = False
        self._set_status(SyncStatus.IDLE)

    # --- lifecycle ---

    async def flush(self) -> None:
        """Send any debounced change now and wait until no save is outstanding."""
        if self._timer is not None:
            self._cancel_timer()
            if self._ready_session() is not None:
                self._fire()
        elif self._dirty and self._ready_session() is not None and not self.saving:
            self._fire()
        while self._in_flight is not None and not self._in_flight.done():
            await asyncio.shield(self._in_flight)

    async def close(self) -> None:
        """Stop reacting to changes. An in-flight save is awaited, never cancelled."""
        self._unsubscribe()
        self._cancel_timer()
        if self._in_flight is not None:
            with contextlib.suppress(Exception):
                await self._in_flight
