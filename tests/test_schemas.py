"""Tests for tapertrack.data.schemas."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from tapertrack.data.schemas import (
    DAILY_SCHEDULE,
    AppState,
    DailyLogEntry,
    TaperStep,
    UserSettings,
    completion_key,
    default_taper_schedule,
    make_default_entry,
    make_step,
    starting_dose,
    validate_credentials,
)


class TestDailyLogEntry:
    def test_wire_keys_are_camel_case(self) -> None:
        entry = DailyLogEntry(date="2024-03-01", l_dose=4.5, bp_morning_sys=120)
        data = entry.to_json_dict()
        assert data["lDose"] == 4.5
        assert data["bpMorningSys"] == 120
        assert data["completedItems"] == {}
        assert "l_dose" not in data

    def test_parses_wire_format(self) -> None:
        entry = DailyLogEntry.model_validate({"date": "2024-03-01", "lDose": 3.2, "bDose": "0.5mg", "isComplete": True})
        assert entry.l_dose == 3.2
        assert entry.b_dose == "0.5mg"
        assert entry.is_complete is True

    def test_rejects_bad_date(self) -> None:
        with pytest.raises(ValidationError):
            DailyLogEntry(date="01/03/2024")

    def test_rejects_out_of_range_rating(self) -> None:
        with pytest.raises(ValidationError):
            DailyLogEntry(date="2024-03-01", mood_level=11)
        with pytest.raises(ValidationError):
            DailyLogEntry(date="2024-03-01", brain_zap_level=4)

    def test_is_immutable(self) -> None:
        entry = DailyLogEntry(date="2024-03-01")
        with pytest.raises(ValidationError):
            entry.mood_level = 9  # type: ignore[misc]


class TestMakeDefaultEntry:
    def test_neutral_values(self) -> None:
        entry = make_default_entry("2024-03-05", l_dose=4.0, b_dose="1mg")
        assert entry.date == "2024-03-05"
        assert entry.l_dose == 4.0
        assert entry.b_dose == "1mg"
        assert entry.sleep_hrs == 7.0
        assert entry.mood_level == 5
        assert entry.anxiety_level == 5
        assert entry.depression_level == 1
        assert entry.brain_zap_level == 0
        assert entry.completed_items == {}
        assert entry.is_complete is False


class TestTaperSchedule:
    def test_default_schedule(self) -> None:
        steps = default_taper_schedule()
        assert len(steps) == 10
        assert steps[0].dose == 5.0
        assert steps[-1].dose == "Below 2.0"
        assert [s.weeks for s in steps if s.is_critical] == ["17-18"]

    def test_starting_dose_skips_text_doses(self) -> None:
        steps = [TaperStep(weeks="1-2", dose="Hold"), TaperStep(weeks="3-4", dose=4.5)]
        assert starting_dose(steps) == 4.5

    def test_starting_dose_fallback(self) -> None:
        assert starting_dose([]) == 5.0
        assert starting_dose([TaperStep(weeks="1+", dose="Below 2.0")], fallback=1.0) == 1.0

    def test_make_step_defaults(self) -> None:
        step = make_step()
        assert step.weeks == "New Phase"
        assert step.dose == 0
        assert step.is_completed is False

    def test_completion_keys(self) -> None:
        morning = DAILY_SCHEDULE[0]
        assert completion_key("morning_0800", "Zinc") == "morning_0800-Zinc"
        assert morning.item_keys()[0] == "morning_0800-Lexapro (current taper dose)"
        assert [s.slot_id for s in DAILY_SCHEDULE if s.conditional] == ["afternoon_1500"]


class TestAppState:
    def test_defaults(self) -> None:
        state = AppState()
        assert state.logs == []
        assert len(state.schedule) == 10
        assert state.start_date is None
        assert state.settings.is_pin_enabled is False

    def test_for_remote_strips_pin(self) -> None:
        state = AppState(settings=UserSettings(is_pin_enabled=True, pin_code="1234", notifications_enabled=True))
        remote = state.for_remote()
        assert remote["settings"]["pinCode"] is None
        assert remote["settings"]["isPinEnabled"] is False
        assert remote["settings"]["notificationsEnabled"] is True
        assert state.settings.pin_code == "1234"

    def test_document_roundtrip_through_wire_format(self) -> None:
        state = AppState(logs=[DailyLogEntry(date="2024-03-01", factors=["caffeine"])], start_date="2024-03-01")
        assert AppState.model_validate(state.to_json_dict()) == state


class TestValidateCredentials:
    def test_valid(self) -> None:
        assert validate_credentials("alice_01", "secret1").ok

    def test_short_password(self) -> None:
        report = validate_credentials("alice", "short")
        assert not report.ok
        assert report.errors == ["Password must be at least 6 characters"]

    def test_bad_username(self) -> None:
        for username in ("", "has space", "x" * 51, "dash-name"):
            report = validate_credentials(username, "secret1")
            assert not report.ok, username

    def test_both_invalid(self) -> None:
        assert len(validate_credentials("bad name", "123").errors) == 2

    def test_password_byte_limit(self) -> None:
        assert validate_credentials("alice", "é" * 36).ok
        report = validate_credentials("alice", "é" * 37)
        assert report.errors == ["Password must be at most 72 bytes"]
