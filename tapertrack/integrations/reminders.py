"""Async daily reminder to log wellness and medication."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import date, datetime
from zoneinfo import ZoneInfo

from tapertrack.core.config import Settings
from tapertrack.data.log_store import LogStore

logger = logging.getLogger(__name__)

REMINDER_TITLE = "TaperTrack Reminder"
REMINDER_BODY = "Time to log your daily wellness and medication."


class Notifier(ABC):
    """Delivers a reminder somewhere the user will see it."""

    @abstractmethod
    async def notify(self, title: str, body: str) -> None:
        """Send one notification."""


class LogNotifier(Notifier):
    """Writes reminders to the log. Used when no other channel is configured."""

    async def notify(self, title: str, body: str) -> None:
        logger.info("%s: %s", title, body)


class ReminderScheduler:
    """Fires one reminder per day at the user's configured time.

    Settings are read from the store on every tick, so enabling, disabling or
    moving the reminder takes effect without a restart. Delivery is
    fire-and-forget: failures are logged and never stop the loop.
    """

    def __init__(
        self,
        store: LogStore,
        notifier: Notifier | None = None,
        poll_seconds: float = 10.0,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._notifier = notifier or LogNotifier()
        self._poll_seconds = poll_seconds
        self._now = now or (lambda: datetime.now().astimezone())
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._last_fired: date | None = None

    @classmethod
    def from_settings(cls, store: LogStore, config: Settings, notifier: Notifier | None = None) -> ReminderScheduler:
        tz = ZoneInfo(config.timezone)
        return cls(store, notifier, config.reminder_poll_seconds, now=lambda: datetime.now(tz))

    async def start(self) -> None:
        """Start the reminder loop."""
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Reminder loop started")

    async def stop(self) -> None:
        """Stop the reminder loop."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Reminder loop stopped")

    def is_due(self, now: datetime) -> bool:
        s = self._store.state.settings
        if not s.notifications_enabled or self._last_fired == now.date():
            return False
        return now.strftime("%H:%M") == s.notification_time

    async def tick(self) -> bool:
        """Check once and notify if due. Returns True if a reminder went out."""
        now = self._now()
        if not self.is_due(now):
            return False
        self._last_fired = now.date()
        try:
            await self._notifier.notify(REMINDER_TITLE, REMINDER_BODY)
        except Exception:
            logger.exception("Reminder delivery failed")
        return True

    async def _loop(self) -> None:
        while self._running:
            await self.tick()
            await asyncio.sleep(self._poll_seconds)
