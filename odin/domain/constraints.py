"""Domain-level validation rules shared by entities and services."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional


class InvalidIntervalError(ValueError):
    """Raised when a time range is empty, reversed or timezone-naive."""


class InvalidTemplateConfigurationError(ValueError):
    """Raised when a scalable tag template lacks usable escalation settings."""


def validate_interval_bounds(start: datetime, end: datetime) -> None:
    if start.tzinfo is None or end.tzinfo is None:
        raise InvalidIntervalError("interval bounds must be timezone-aware")
    if start >= end:
        raise InvalidIntervalError("interval start must be before its end")


def validate_escalation(
    template_name: str,
    is_scalable: bool,
    escalation_value: Optional[int],
    escalation_streak_days: Optional[int],
) -> None:
    """Only scalable templates are checked; flat templates ignore escalation fields."""
    if not is_scalable:
        return
    if escalation_value is None:
        raise InvalidTemplateConfigurationError(
            f"Scalable template '{template_name}' has no escalation_value"
        )
    if escalation_streak_days is None or escalation_streak_days <= 0:
        raise InvalidTemplateConfigurationError(
            f"Scalable template '{template_name}' needs escalation_streak_days > 0"
        )


def validate_semester(name: str, starts_on: date, ends_on: date, name_regex: str) -> None:
    if re.fullmatch(name_regex, name) is None:
        raise ValueError("semester name must follow YYYY.S (e.g. 2025.1 or 2025.2)")
    if starts_on > ends_on:
        raise ValueError("semester starts_on must not be after ends_on")


def validate_schedule_hours(day_start_hour: int, day_end_hour: int) -> None:
    if not 0 <= day_start_hour <= 23:
        raise ValueError("schedule_day_start_hour must be between 0 and 23")
    if not 1 <= day_end_hour <= 24:
        raise ValueError("schedule_day_end_hour must be between 1 and 24")
    if day_start_hour >= day_end_hour:
        raise ValueError("schedule_day_start_hour must be before schedule_day_end_hour")
