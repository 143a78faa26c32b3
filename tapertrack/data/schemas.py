"""Data shapes for daily logs, the taper schedule, settings and the synced aggregate."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DATE_FORMAT = "%Y-%m-%d"

USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{1,50}$")
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_BYTES = 72
PIN_RE = re.compile(r"^\d{4}$")

# Neutral values a fresh day starts from. Doses are carried forward separately.
DEFAULT_SLEEP_HRS = 7.0
DEFAULT_NAP_MINUTES = 0
DEFAULT_MOOD = 5
DEFAULT_ANXIETY = 5
DEFAULT_DEPRESSION = 1
DEFAULT_BRAIN_ZAPS = 0
DEFAULT_SMOKING = 5
DEFAULT_ENERGY = 5
DEFAULT_NOTIFICATION_TIME = "09:00"


class _Document(BaseModel):
    """Base for everything stored in the synced JSON document (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json_dict(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True)


class DailyLogEntry(_Document):
    """One day of medication adherence, vitals and wellness ratings."""

    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    completed_items: dict[str, bool] = Field(default_factory=dict)

    l_dose: float = 5.0  # taper medication, mg
    b_dose: str = ""  # secondary medication, free text

    sleep_hrs: float = Field(default=DEFAULT_SLEEP_HRS, ge=0, le=24)
    nap_minutes: int = Field(default=DEFAULT_NAP_MINUTES, ge=0)
    anxiety_level: int = Field(default=DEFAULT_ANXIETY, ge=1, le=10)
    mood_level: int = Field(default=DEFAULT_MOOD, ge=1, le=10)
    depression_level: int = Field(default=DEFAULT_DEPRESSION, ge=1, le=10)
    brain_zap_level: int = Field(default=DEFAULT_BRAIN_ZAPS, ge=0, le=3)  # 0=none .. 3=severe
    smoking_level: int = Field(default=DEFAULT_SMOKING, ge=1, le=10)
    energy_level: int = Field(default=DEFAULT_ENERGY, ge=1, le=10)
    factors: list[str] = Field(default_factory=list)

    bp_morning_sys: int | None = None
    bp_morning_dia: int | None = None
    bp_morning_pulse: int | None = None
    bp_morning_irregular: bool = False
    bp_night_sys: int | None = None
    bp_night_dia: int | None = None
    bp_night_pulse: int | None = None
    bp_night_irregular: bool = False

    daily_note: str = ""
    is_complete: bool = False


class TaperStep(_Document):
    """One dose-reduction phase. ``dose`` may be a textual placeholder such as "Below 2.0"."""

    weeks: str
    dose: float | str
    notes: str = ""
    is_critical: bool = False
    is_completed: bool = False


class UserSettings(_Document):
    """Per-user preferences. The PIN is local-only and never sent to the backend."""

    is_pin_enabled: bool = False
    pin_code: str | None = None
    notifications_enabled: bool = False
    notification_time: str = Field(default=DEFAULT_NOTIFICATION_TIME, pattern=r"^\d{2}:\d{2}$")

    def without_pin(self) -> UserSettings:
        return self.model_copy(update={"is_pin_enabled": False, "pin_code": None})


class Inventory(_Document):
    """Medication stock on hand."""

    total_mg: float = Field(default=0.0, ge=0)
    last_refill_date: str | None = None


class AppState(_Document):
    """The synced aggregate: persisted and transmitted as one document, never partially."""

    logs: list[DailyLogEntry] = Field(default_factory=list)
    schedule: list[TaperStep] = Field(default_factory=lambda: default_taper_schedule())
    start_date: str | None = None
    settings: UserSettings = Field(default_factory=UserSettings)
    inventory: Inventory = Field(default_factory=Inventory)

    def for_remote(self) -> dict[str, object]:
        """Serialize for the backend with the local PIN stripped."""
        return self.model_copy(update={"settings": self.settings.without_pin()}).to_json_dict()


class Session(_Document):
    """Bearer credential plus display username."""

    token: str
    username: str


@dataclass(frozen=True)
class ScheduleSlot:
    """A fixed time-of-day slot in the daily medication routine."""

    slot_id: str
    time: str
    label: str
    items: tuple[str, ...]
    notes: tuple[str, ...] = ()
    requires_bp: bool = False
    conditional: bool = False  # only taken if needed

    def item_keys(self) -> list[str]:
        return [completion_key(self.slot_id, item) for item in self.items]


@dataclass
class ValidationReport:
    """Outcome of local credential validation."""

    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


DAILY_SCHEDULE: tuple[ScheduleSlot, ...] = (
    ScheduleSlot(
        slot_id="morning_0800",
        time="08:00",
        label="Morning",
        items=(
            "Lexapro (current taper dose)",
            "Benzo (full daily dose)",
            "Omega 3-6-9",
            "Vitamin D3",
            "Vitamin C",
        ),
        notes=("Take with breakfast and water", "Avoid caffeine spikes", "Do not skip or delay doses"),
        requires_bp=True,
    ),
    ScheduleSlot(
        slot_id="midday_1200",
        time="12:00",
        label="Midday",
        items=("B-Complex", "Zinc"),
        notes=("Take every other day", "Normal meals and hydration"),
    ),
    ScheduleSlot(
        slot_id="afternoon_1500",
        time="15:00",
        label="Afternoon",
        items=("L-theanine (low dose)",),
        notes=("Only if anxiety increases", "Do not stack doses", "Avoid if sedated"),
        conditional=True,
    ),
    ScheduleSlot(
        slot_id="evening_2000",
        time="20:00",
        label="Evening",
        items=("Magnesium glycinate",),
        notes=("2-3 hrs before bed", "Avoid alcohol", "Reduce if daytime sedation occurs"),
    ),
    ScheduleSlot(
        slot_id="night_bedtime",
        time="Night",
        label="Bedtime",
        items=("Nothing",),
        notes=("Screens dimmed", "Same bedtime nightly"),
        requires_bp=True,
    ),
)

TRACKING_FACTORS: tuple[str, ...] = (
    "caffeine",
    "alcohol",
    "exercise",
    "social",
    "stress",
    "screen_time",
    "meditation",
    "heavy_meal",
)


def completion_key(slot_id: str, item: str) -> str:
    """Key into ``DailyLogEntry.completed_items`` for one item in a slot."""
    return f"{slot_id}-{item}"


def default_taper_schedule() -> list[TaperStep]:
    """The built-in ten-phase taper, two weeks per phase."""
    return [
        TaperStep(weeks="1-2", dose=5.0, notes="Baseline: Ensure you are stable here first."),
        TaperStep(weeks="3-4", dose=4.5, notes="~10% reduction. Hold until stable."),
        TaperStep(weeks="5-6", dose=4.0, notes="Hold until stable."),
        TaperStep(weeks="7-8", dose=3.6, notes="Hold until stable."),
        TaperStep(weeks="9-10", dose=3.2, notes="Hold until stable."),
        TaperStep(weeks="11-12", dose=2.9, notes="Hold until stable."),
        TaperStep(weeks="13-14", dose=2.6, notes="Hold until stable."),
        TaperStep(weeks="15-16", dose=2.3, notes="Hold until stable."),
        TaperStep(weeks="17-18", dose=2.0, notes="Critical Zone: Reductions feel heavier here.", is_critical=True),
        TaperStep(weeks="19+", dose="Below 2.0", notes="Reduce by 0.1 mg or 0.2 mg every 2-4 weeks."),
    ]


def starting_dose(schedule: list[TaperStep], fallback: float = 5.0) -> float:
    """First numeric dose in the schedule, or ``fallback`` if none is numeric."""
    for step in schedule:
        if isinstance(step.dose, int | float):
            return float(step.dose)
    return fallback


def make_default_entry(date: str, l_dose: float, b_dose: str = "") -> DailyLogEntry:
    """Create a fresh entry with neutral ratings and the given doses."""
    return DailyLogEntry(
        date=date,
        completed_items={},
        l_dose=l_dose,
        b_dose=b_dose,
        sleep_hrs=DEFAULT_SLEEP_HRS,
        nap_minutes=DEFAULT_NAP_MINUTES,
        anxiety_level=DEFAULT_ANXIETY,
        mood_level=DEFAULT_MOOD,
        depression_level=DEFAULT_DEPRESSION,
        brain_zap_level=DEFAULT_BRAIN_ZAPS,
        smoking_level=DEFAULT_SMOKING,
        energy_level=DEFAULT_ENERGY,
        factors=[],
        daily_note="",
        is_complete=False,
    )


def make_step(weeks: str = "New Phase", dose: float | str = 0, notes: str = "Add notes here...") -> TaperStep:
    """Create a user-added taper step."""
    return TaperStep(weeks=weeks, dose=dose, notes=notes)


def validate_credentials(username: str, password: str) -> ValidationReport:
    """Check registration constraints shared by client and server."""
    report = ValidationReport()
    if not USERNAME_RE.match(username):
        report.errors.append("Username must be 1-50 characters: letters, digits or underscore")
    if len(password) < MIN_PASSWORD_LENGTH:
        report.errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        report.errors.append(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return report
