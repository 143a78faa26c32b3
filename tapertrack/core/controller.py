"""Screen routing, date navigation and the user-action surface over LogStore."""

from __future__ import annotations

import hmac
import logging
from collections.abc import Callable
from datetime import date, timedelta
from enum import StrEnum
from typing import Any

from tapertrack.data import analytics
from tapertrack.data.log_store import LogStore
from tapertrack.data.schemas import (
    PIN_RE,
    TRACKING_FACTORS,
    DailyLogEntry,
    TaperStep,
    UserSettings,
    completion_key,
    default_taper_schedule,
    make_step,
)
from tapertrack.sync.auth import AuthResult, AuthSession
from tapertrack.sync.engine import LoadResult, SyncEngine, SyncStatus

logger = logging.getLogger(__name__)

_ENTRY_FIELDS = frozenset(DailyLogEntry.model_fields) - {"date"}
_STEP_FIELDS = frozenset(TaperStep.model_fields)


class Screen(StrEnum):
    """Top-level screen the UI should render."""

    AUTH = "auth"
    LOADING = "loading"
    LOCKED = "locked"
    READY = "ready"


class ViewState(StrEnum):
    """Tab within the ready screen."""

    TODAY = "today"
    TAPER = "taper"
    HISTORY = "history"


class PinLock:
    """Local screen lock checked only against the locally stored code.

    Knows nothing about sessions or sync; it gates what the UI shows.
    """

    def __init__(self, store: LogStore) -> None:
        self._store = store
        self._engaged = False

    @property
    def enabled(self) -> bool:
        s = self._store.state.settings
        return s.is_pin_enabled and bool(s.pin_code)

    @property
    def locked(self) -> bool:
        return self._engaged and self.enabled

    def engage(self) -> None:
        self._engaged = self.enabled

    def unlock(self, code: str) -> bool:
        pin = self._store.state.settings.pin_code
        if not self.enabled or pin is None:
            self._engaged = False
            return True
        if hmac.compare_digest(code.encode(), pin.encode()):
            self._engaged = False
            return True
        logger.info("Wrong unlock code entered")
        return False


class AppController:
    """Orchestrates routing and is the only caller of LogStore mutations from user actions."""

    def __init__(
        self,
        store: LogStore,
        auth: AuthSession,
        engine: SyncEngine,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.auth = auth
        self.engine = engine
        self.pin_lock = PinLock(store)
        self.view = ViewState.TODAY
        self._today = today
        self.selected_date = today().isoformat()
        self._loaded = False
        auth.on_invalidated(self._on_session_invalidated)

    # --- routing ---

    @property
    def screen(self) -> Screen:
        if self.auth.current() is None:
            return Screen.AUTH
        if not self._loaded:
            return Screen.LOADING
        if self.pin_lock.locked:
            return Screen.LOCKED
        return Screen.READY

    @property
    def sync_status(self) -> SyncStatus:
        return self.engine.status

    async def start(self) -> Screen:
        """App start: resume a stored session if there is one."""
        if self.auth.current() is None:
            self.auth.restore()
        if self.auth.current() is not None:
            await self._load()
        return self.screen

    async def login(self, username: str, password: str) -> AuthResult:
        return await self._after_auth(await self.auth.acquire(username, password))

    async def register(self, username: str, password: str) -> AuthResult:
        return await self._after_auth(await self.auth.register(username, password))

    async def _after_auth(self, result: AuthResult) -> AuthResult:
        if not result.ok:
            return result
        if result.user_changed:
            logger.info("Different user signed in, dropping the previous user's data from memory")
            self.store.clear()
        elif self.store.cleared and self.store.restore():
            logger.info("Same user signed in again, local data restored")
        await self._load()
        return result

    def logout(self) -> None:
        self.auth.invalidate()

    async def _load(self) -> None:
        self._loaded = False
        result = await self.engine.start_session()
        if result in (LoadResult.LOADED, LoadResult.NOT_FOUND, LoadResult.FAILED):
            self._loaded = True
            self.pin_lock.engage()
        logger.info("Session load finished: %s -> %s", result, self.screen)

    def _on_session_invalidated(self) -> None:
        self._loaded = False
        self.store.clear()
        self.view = ViewState.TODAY

    def unlock(self, code: str) -> bool:
        return self.pin_lock.unlock(code)

    def lock(self) -> None:
        self.pin_lock.engage()

    # --- navigation ---

    def select_view(self, view: ViewState) -> None:
        self.view = ViewState(view)

    def select_date(self, day: str) -> None:
        parsed = date.fromisoformat(day)
        if parsed > self._today():
            msg = f"Cannot log a future date: {day}"
            raise ValueError(msg)
        self.selected_date = parsed.isoformat()

    def change_date(self, days: int) -> str:
        """Move the selected date, never past today."""
        target = date.fromisoformat(self.selected_date) + timedelta(days=days)
        self.selected_date = min(target, self._today()).isoformat()
        return self.selected_date

    @property
    def current_entry(self) -> DailyLogEntry:
        return self.store.get_entry(self.selected_date)

    # --- daily log edits ---

    def _write(self, entry: DailyLogEntry, changes: dict[str, Any]) -> DailyLogEntry:
        unknown = set(changes) - _ENTRY_FIELDS
        if unknown:
            msg = f"Unknown entry fields: {sorted(unknown)}"
            raise ValueError(msg)
        updated = DailyLogEntry.model_validate({**entry.model_dump(), **changes})
        self.store.upsert_entry(updated)
        return updated

    def update_entry(self, **changes: Any) -> DailyLogEntry:
        """Copy the selected day's entry and apply the named field changes."""
        entry = self.current_entry
        if entry.is_complete:
            logger.info("Ignoring edit to completed day %s", entry.date)
            return entry
        return self._write(entry, changes)

    def toggle_item(self, slot_id: str, item: str) -> DailyLogEntry:
        entry = self.current_entry
        key = completion_key(slot_id, item)
        completed = dict(entry.completed_items)
        completed[key] = not completed.get(key, False)
        return self.update_entry(completed_items=completed)

    def toggle_factor(self, factor: str) -> DailyLogEntry:
        if factor not in TRACKING_FACTORS:
            msg = f"Unknown factor: {factor}"
            raise ValueError(msg)
        factors = list(self.current_entry.factors)
        if factor in factors:
            factors.remove(factor)
        else:
            factors.append(factor)
        return self.update_entry(factors=factors)

    def set_blood_pressure(
        self,
        period: str,
        systolic: int | None,
        diastolic: int | None,
        pulse: int | None,
        irregular: bool = False,
    ) -> DailyLogEntry:
        if period not in ("morning", "night"):
            msg = f"period must be 'morning' or 'night', got {period!r}"
            raise ValueError(msg)
        return self.update_entry(
            **{
                f"bp_{period}_sys": systolic,
                f"bp_{period}_dia": diastolic,
                f"bp_{period}_pulse": pulse,
                f"bp_{period}_irregular": irregular,
            }
        )

    def toggle_complete(self) -> DailyLogEntry:
        entry = self.current_entry
        return self._write(entry, {"is_complete": not entry.is_complete})

    # --- taper schedule ---

    def add_step(self, step: TaperStep | None = None) -> list[TaperStep]:
        steps = [*self.store.state.schedule, step or make_step()]
        self.store.replace_schedule(steps)
        return steps

    def update_step(self, index: int, **changes: Any) -> list[TaperStep]:
        unknown = set(changes) - _STEP_FIELDS
        if unknown:
            msg = f"Unknown step fields: {sorted(unknown)}"
            raise ValueError(msg)
        steps = list(self.store.state.schedule)
        steps[index] = TaperStep.model_validate({**steps[index].model_dump(), **changes})
        self.store.replace_schedule(steps)
        return steps

    def remove_step(self, index: int) -> list[TaperStep]:
        steps = list(self.store.state.schedule)
        del steps[index]
        self.store.replace_schedule(steps)
        return steps

    def move_step(self, index: int, new_index: int) -> list[TaperStep]:
        steps = list(self.store.state.schedule)
        steps.insert(new_index, steps.pop(index))
        self.store.replace_schedule(steps)
        return steps

    def reset_schedule(self) -> None:
        """Restore the built-in taper and clear the start date."""
        self.store.replace_schedule(default_taper_schedule())
        self.store.set_start_date(None)

    def set_start_date(self, day: str | None) -> None:
        self.store.set_start_date(day)

    # --- settings and stock ---

    def set_pin(self, code: str) -> None:
        if not PIN_RE.match(code):
            msg = "PIN must be exactly 4 digits"
            raise ValueError(msg)
        current = self.store.state.settings
        self.store.replace_settings(current.model_copy(update={"is_pin_enabled": True, "pin_code": code}))

    def disable_pin(self) -> None:
        current = self.store.state.settings
        self.store.replace_settings(current.without_pin())
        self.pin_lock.engage()

    def set_notifications(self, enabled: bool, time_of_day: str | None = None) -> None:
        current = self.store.state.settings
        update: dict[str, Any] = {"notifications_enabled": enabled}
        if time_of_day is not None:
            update["notification_time"] = time_of_day
        self.store.replace_settings(UserSettings.model_validate({**current.model_dump(), **update}))

    def record_refill(self, amount_mg: float) -> None:
        if amount_mg <= 0:
            msg = "Refill amount must be positive"
            raise ValueError(msg)
        inv = self.store.state.inventory
        self.store.replace_inventory(
            inv.model_copy(update={"total_mg": inv.total_mg + amount_mg, "last_refill_date": self._today().isoformat()})
        )

    # --- analytics ---

    def summary(self) -> analytics.Summary | None:
        return analytics.summarize(self.store.entries())

    def series(self, granularity: analytics.Granularity = analytics.Granularity.DAILY) -> list[analytics.SeriesPoint]:
        return analytics.build_series(self.store.entries(), granularity)

    def export_csv(self) -> str:
        return analytics.export_csv(self.store.entries())

    def days_of_stock(self) -> int:
        return analytics.days_remaining(self.store.state.inventory, self.current_entry.l_dose)

    def current_step(self) -> TaperStep | None:
        state = self.store.state
        index = analytics.current_step_index(state.schedule, state.start_date, date.fromisoformat(self.selected_date))
        return None if index is None else state.schedule[index]
