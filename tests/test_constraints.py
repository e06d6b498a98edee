"""Tests for interval, escalation, semester and schedule validation rules."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from odin.domain.constraints import (
    InvalidIntervalError,
    InvalidTemplateConfigurationError,
    validate_escalation,
    validate_interval_bounds,
    validate_schedule_hours,
    validate_semester,
)
from odin.domain.models import TimeInterval


SEMESTER_REGEX = r"^\d{4}\.[12]$"


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, 10, hour, minute, tzinfo=timezone.utc)


# --- intervals ---

def test_valid_interval_passes() -> None:
    validate_interval_bounds(_at(9), _at(10))


def test_interval_with_equal_bounds_raises() -> None:
    with pytest.raises(InvalidIntervalError):
        validate_interval_bounds(_at(9), _at(9))


def test_reversed_interval_raises() -> None:
    with pytest.raises(InvalidIntervalError):
        TimeInterval(_at(10), _at(9))


def test_naive_interval_raises() -> None:
    with pytest.raises(InvalidIntervalError):
        TimeInterval(datetime(2025, 3, 10, 9), datetime(2025, 3, 10, 10))


def test_invalid_interval_is_a_value_error() -> None:
    """Callers that only know ValueError still catch it."""
    with pytest.raises(ValueError):
        TimeInterval(_at(10), _at(10))


# --- escalation ---

def test_flat_template_ignores_missing_escalation() -> None:
    validate_escalation("Presença", False, None, None)


def test_scalable_template_without_value_raises() -> None:
    with pytest.raises(InvalidTemplateConfigurationError):
        validate_escalation("Atraso", True, None, 7)


def test_scalable_template_without_streak_days_raises() -> None:
    with pytest.raises(InvalidTemplateConfigurationError):
        validate_escalation("Atraso", True, -5, None)


def test_scalable_template_with_zero_streak_days_raises() -> None:
    with pytest.raises(InvalidTemplateConfigurationError):
        validate_escalation("Atraso", True, -5, 0)


def test_scalable_template_with_negative_escalation_passes() -> None:
    validate_escalation("Atraso", True, -5, 7)


# --- semesters ---

def test_semester_name_must_follow_year_dot_half() -> None:
    validate_semester("2025.2", date(2025, 7, 1), date(2025, 12, 31), SEMESTER_REGEX)
    with pytest.raises(ValueError):
        validate_semester("2025.3", date(2025, 7, 1), date(2025, 12, 31), SEMESTER_REGEX)
    with pytest.raises(ValueError):
        validate_semester("25.1", date(2025, 1, 1), date(2025, 6, 30), SEMESTER_REGEX)


def test_semester_end_before_start_raises() -> None:
    with pytest.raises(ValueError):
        validate_semester("2025.1", date(2025, 6, 30), date(2025, 1, 1), SEMESTER_REGEX)


def test_single_day_semester_passes() -> None:
    """Exact boundary: starts_on == ends_on is allowed."""
    validate_semester("2025.1", date(2025, 1, 1), date(2025, 1, 1), SEMESTER_REGEX)


# --- schedule hours ---

def test_schedule_hours_default_window_passes() -> None:
    validate_schedule_hours(7, 22)


def test_schedule_hours_full_day_passes() -> None:
    validate_schedule_hours(0, 24)


def test_schedule_hours_reversed_raises() -> None:
    with pytest.raises(ValueError):
        validate_schedule_hours(22, 7)


def test_schedule_hours_out_of_range_raises() -> None:
    with pytest.raises(ValueError):
        validate_schedule_hours(-1, 10)
    with pytest.raises(ValueError):
        validate_schedule_hours(8, 25)
