"""In-memory owner of the AppState aggregate, with write-through to local storage."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date

from tapertrack.data.local_storage import LocalStorage, LocalStorageError
from tapertrack.data.schemas import (
    AppState,
    DailyLogEntry,
    Inventory,
    TaperStep,
    UserSettings,
    make_default_entry,
    starting_dose,
)

logger = logging.getLogger(__name__)

ChangeListener = Callable[[AppState], None]


def _check_date(value: str) -> str:
    """Validate a YYYY-MM-DD key; raises ValueError otherwise."""
    date.fromisoformat(value)
    if len(value) != 10:
        msg = f"Expected YYYY-MM-DD, got {value!r}"
        raise ValueError(msg)
    return value


class LogStore:
    """Single source of truth for the UI.

    Every mutation replaces the aggregate snapshot, writes it to local storage
    synchronously and then notifies subscribers (the sync engine). Snapshots
    are immutable, so a reference handed out earlier never changes under the
    holder.
    """

    def __init__(self, storage: LocalStorage | None = None, state: AppState | None = None) -> None:
        self._storage = storage
        self._state = state if state is not None else AppState()
        self._listeners: list[ChangeListener] = []
        self._cleared = False

    @property
    def state(self) -> AppState:
        return self._state

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # --- reads ---

    def entries(self) -> list[DailyLogEntry]:
        """All stored entries, oldest first."""
        return sorted(self._state.logs, key=lambda e: e.date)

    def has_entry(self, day: str) -> bool:
        return any(e.date == day for e in self._state.logs)

    def get_entry(self, day: str) -> DailyLogEntry:
        """Stored entry for ``day``, or a carry-forward projection that is not persisted.

        The projection copies dose fields from the latest entry strictly before
        ``day`` and resets everything else to neutral defaults. Without any
        prior entry the taper schedule's starting dose is used.
        """
        _check_date(day)
        previous: DailyLogEntry | None = None
        for entry in self._state.logs:
            if entry.date == day:
                return entry
            if entry.date < day and (previous is None or entry.date > previous.date):
                previous = entry

        if previous is not None:
            return make_default_entry(day, l_dose=previous.l_dose, b_dose=previous.b_dose)
        return make_default_entry(day, l_dose=starting_dose(self._state.schedule))

    # --- mutations ---

    def upsert_entry(self, entry: DailyLogEntry) -> None:
        """Replace the entry with the same date, or append it."""
        logs = list(self._state.logs)
        for i, existing in enumerate(logs):
            if existing.date == entry.date:
                if existing == entry:
                    return
                logs[i] = entry
                break
        else:
            logs.append(entry)
        self._commit(self._state.model_copy(update={"logs": logs}))

    def replace_schedule(self, steps: list[TaperStep]) -> None:
        self._commit(self._state.model_copy(update={"schedule": list(steps)}))

    def set_start_date(self, day: str | None) -> None:
        if day:
            _check_date(day)
        self._commit(self._state.model_copy(update={"start_date": day or None}))

    def replace_settings(self, user_settings: UserSettings) -> None:
        self._commit(self._state.model_copy(update={"settings": user_settings}))

    def replace_inventory(self, inventory: Inventory) -> None:
        self._commit(self._state.model_copy(update={"inventory": inventory}))

    def load_state(self, state: AppState) -> None:
        """Swap in a whole aggregate (remote overwrite) without notifying."""
        self._state = state
        self._cleared = False
        self._persist()

    @property
    def cleared(self) -> bool:
        """True between clear() and the next write, load or restore."""
        return self._cleared

    def clear(self) -> None:
        """Drop in-memory health data, keeping local settings. Local storage is left as it was."""
        self._state = AppState(settings=self._state.settings)
        self._cleared = True

    def restore(self) -> bool:
        """Reload the last durable aggregate without notifying. False when nothing is stored."""
        if self._storage is None:
            return False
        state = self._storage.load_state()
        if state is None:
            return False
        self._state = state
        self._cleared = False
        return True

    def _persist(self) -> None:
        if self._storage is not None:
            self._storage.save_state(self._state)

    def _commit(self, new_state: AppState) -> None:
        self._state = new_state
        self._cleared = False
        failure: LocalStorageError | None = None
        try:
            self._persist()
        except LocalStorageError as exc:
            logger.error("Local save failed, changes are in memory only: %s", exc)
            failure = exc
        for listener in list(self._listeners):
            listener(new_state)
        if failure is not None:
            raise failure
