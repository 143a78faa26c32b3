"""Composition root: builds and wires the client-side components."""

from __future__ import annotations

import logging
from types import TracebackType

from tapertrack.core.config import Settings, settings
from tapertrack.core.controller import AppController, Screen
from tapertrack.data.local_storage import LocalStorage
from tapertrack.data.log_store import LogStore
from tapertrack.integrations.reminders import Notifier, ReminderScheduler
from tapertrack.sync.auth import AuthSession
from tapertrack.sync.backend import SyncBackend
from tapertrack.sync.engine import SyncEngine
from tapertrack.sync.http_backend import HttpSyncBackend

logger = logging.getLogger(__name__)


class TaperTrackClient:
    """Owns one instance of every client component for the lifetime of the app.

    Usage::

        async with TaperTrackClient() as client:
            await client.controller.login("alice", "secret1")
            client.controller.update_entry(mood_level=7)
    """

    def __init__(
        self,
        config: Settings | None = None,
        backend: SyncBackend | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        cfg = config or settings
        self.config = cfg
        self.storage = LocalStorage.from_settings(cfg)
        self.store = LogStore(self.storage, self.storage.load_state())
        self.backend = backend or HttpSyncBackend.from_settings(cfg)
        self.auth = AuthSession(self.backend, self.storage)
        self.engine = SyncEngine.from_settings(self.store, self.backend, self.auth, cfg)
        self.controller = AppController(self.store, self.auth, self.engine)
        self.reminders = ReminderScheduler.from_settings(self.store, cfg, notifier)

    async def start(self) -> Screen:
        """Paint from local state, resume any stored session, start reminders."""
        logging.basicConfig(level=self.config.log_level)
        screen = await self.controller.start()
        await self.reminders.start()
        logger.info("Client started on screen %s", screen)
        return screen

    async def stop(self) -> None:
        """Push outstanding edits, then release resources."""
        await self.reminders.stop()
        await self.engine.flush()
        await self.engine.close()
        await self.backend.close()

    async def __aenter__(self) -> TaperTrackClient:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()
