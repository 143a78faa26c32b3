"""Summaries, aggregated series and CSV export over logged days."""

from __future__ import annotations

import csv
import io
import logging
import math
from collections.abc import Iterable
from datetime import date, timedelta
from enum import StrEnum
from typing import TypedDict

from tapertrack.data.schemas import DAILY_SCHEDULE, DailyLogEntry, Inventory, ScheduleSlot, TaperStep

logger = logging.getLogger(__name__)

SUMMARY_WINDOW_DAYS = 7
WEEKS_PER_STEP = 2

CSV_HEADERS = [
    "Date",
    "Dose (mg)",
    "Sleep (hrs)",
    "Anxiety (1-10)",
    "Mood (1-10)",
    "Depression (1-10)",
    "Notes",
]

_SERIES_FIELDS = ("anxiety_level", "mood_level", "depression_level", "sleep_hrs", "l_dose")


class Granularity(StrEnum):
    """Bucket size for chart series."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Summary(TypedDict):
    """Headline numbers over the most recent logged days."""

    current_dose: float
    avg_sleep: float
    avg_anxiety: float
    avg_mood: float
    days_logged: int


class SeriesPoint(TypedDict):
    """One chart point; for weekly/monthly buckets, values are one-decimal averages."""

    date: str
    anxiety_level: float
    mood_level: float
    depression_level: float
    sleep_hrs: float
    l_dose: float


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def summarize(entries: Iterable[DailyLogEntry]) -> Summary | None:
    """Current dose plus averages over the last seven logged days. None when nothing is logged."""
    ordered = sorted(entries, key=lambda e: e.date)
    if not ordered:
        return None
    window = ordered[-SUMMARY_WINDOW_DAYS:]
    return Summary(
        current_dose=ordered[-1].l_dose,
        avg_sleep=_mean([e.sleep_hrs for e in window]),
        avg_anxiety=_mean([float(e.anxiety_level) for e in window]),
        avg_mood=_mean([float(e.mood_level) for e in window]),
        days_logged=len(ordered),
    )


def _bucket_key(day: str, granularity: Granularity) -> str:
    parsed = date.fromisoformat(day)
    if granularity == Granularity.WEEKLY:
        return (parsed - timedelta(days=parsed.weekday())).isoformat()
    if granularity == Granularity.MONTHLY:
        return parsed.replace(day=1).isoformat()
    return day


def build_series(entries: Iterable[DailyLogEntry], granularity: Granularity = Granularity.DAILY) -> list[SeriesPoint]:
    """Chart series, oldest first. Weekly buckets are keyed by Monday, monthly by the 1st."""
    groups: dict[str, list[DailyLogEntry]] = {}
    for entry in sorted(entries, key=lambda e: e.date):
        groups.setdefault(_bucket_key(entry.date, granularity), []).append(entry)

    series: list[SeriesPoint] = []
    for key in sorted(groups):
        group = groups[key]
        values = {f: _mean([float(getattr(e, f)) for e in group]) for f in _SERIES_FIELDS}
        if granularity != Granularity.DAILY:
            values = {f: round(v, 1) for f, v in values.items()}
        series.append(
            SeriesPoint(
                date=key,
                anxiety_level=values["anxiety_level"],
                mood_level=values["mood_level"],
                depression_level=values["depression_level"],
                sleep_hrs=values["sleep_hrs"],
                l_dose=values["l_dose"],
            )
        )
    return series


def export_csv(entries: Iterable[DailyLogEntry]) -> str:
    """Render entries as CSV, oldest first."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for e in sorted(entries, key=lambda e: e.date):
        writer.writerow(
            [e.date, e.l_dose, e.sleep_hrs, e.anxiety_level, e.mood_level, e.depression_level, e.daily_note]
        )
    return buf.getvalue()


def adherence(entry: DailyLogEntry, slots: Iterable[ScheduleSlot] = DAILY_SCHEDULE) -> float:
    """Fraction of non-conditional schedule items ticked off for the day."""
    keys = [key for slot in slots if not slot.conditional for key in slot.item_keys()]
    if not keys:
        return 0.0
    done = sum(1 for key in keys if entry.completed_items.get(key))
    return done / len(keys)


def current_step_index(schedule: list[TaperStep], start_date: str | None, today: date) -> int | None:
    """Index of the taper step active on ``today``; the last step is open-ended."""
    if not schedule or not start_date:
        return None
    elapsed = (today - date.fromisoformat(start_date)).days
    if elapsed < 0:
        return None
    return min(elapsed // (WEEKS_PER_STEP * 7), len(schedule) - 1)


def days_remaining(inventory: Inventory, daily_dose: float) -> int:
    """Whole days the current stock covers at ``daily_dose``; 0 when the dose is not positive."""
    if daily_dose <= 0:
        return 0
    return math.floor(inventory.total_mg / daily_dose)
