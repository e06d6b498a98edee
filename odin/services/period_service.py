"""Scoring periods ("versions") and semesters with single-active activation."""

from __future__ import annotations

from datetime import date
from typing import Optional

from odin.domain.constraints import validate_semester
from odin.domain.models import ScoringPeriod, Semester
from odin.repository.data_repository import DataRepository
from odin.utils.config import Settings, get_settings
from odin.utils.logger import get_logger


logger = get_logger(__name__)

_PERIODS_TABLE = "ScoringPeriods"
_SEMESTERS_TABLE = "Semesters"


class PeriodError(Exception):
    """Base period failure."""


class PeriodValidationError(PeriodError):
    """Raised when period or semester inputs are invalid."""


class PeriodNotFoundError(PeriodError):
    """Raised when a period or semester id does not exist."""


class NoActivePeriodError(PeriodError):
    """Raised when an operation needs an active period and none is active."""


class PeriodService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def create_scoring_period(self, name: str) -> ScoringPeriod:
        clean_name = name.strip()
        if not clean_name:
            raise PeriodValidationError("scoring period name must not be blank")
        if self._repository.scoring_period_name_exists(clean_name):
            raise PeriodValidationError(f"scoring period '{clean_name}' already exists")
        period = self._repository.create_scoring_period(clean_name)
        logger.info("Created scoring period %s (%s)", period.period_id, period.name)
        return period

    def create_semester(self, name: str, starts_on: date, ends_on: date) -> Semester:
        clean_name = name.strip()
        try:
            validate_semester(clean_name, starts_on, ends_on, self._settings.semester_name_regex)
        except ValueError as exc:
            raise PeriodValidationError(str(exc)) from exc
        if self._repository.semester_name_exists(clean_name):
            raise PeriodValidationError(f"semester '{clean_name}' already exists")
        semester = self._repository.create_semester(clean_name, starts_on, ends_on)
        logger.info("Created semester %s (%s)", semester.semester_id, semester.name)
        return semester

    def list_scoring_periods(self) -> list[ScoringPeriod]:
        return self._repository.list_scoring_periods()

    def list_semesters(self) -> list[Semester]:
        return self._repository.list_semesters()

    def get_semester(self, semester_id: int) -> Semester:
        semester = self._repository.get_semester(semester_id)
        if semester is None:
            raise PeriodNotFoundError(f"Semester {semester_id} not found")
        return semester

    def get_scoring_period(self, period_id: int) -> ScoringPeriod:
        period = self._repository.get_scoring_period(period_id)
        if period is None:
            raise PeriodNotFoundError(f"Scoring period {period_id} not found")
        return period

    def activate_scoring_period(self, period_id: int) -> ScoringPeriod:
        if not self._repository.activate_exclusively(_PERIODS_TABLE, period_id):
            raise PeriodNotFoundError(f"Scoring period {period_id} not found")
        logger.info("Scoring period %s is now the active version", period_id)
        return self.get_scoring_period(period_id)

    def activate_semester(self, semester_id: int) -> Semester:
        if not self._repository.activate_exclusively(_SEMESTERS_TABLE, semester_id):
            raise PeriodNotFoundError(f"Semester {semester_id} not found")
        logger.info("Semester %s is now active", semester_id)
        return self.get_semester(semester_id)

    def deactivate_scoring_period(self, period_id: int) -> ScoringPeriod:
        if not self._repository.deactivate(_PERIODS_TABLE, period_id):
            raise PeriodNotFoundError(f"Scoring period {period_id} not found")
        return self.get_scoring_period(period_id)

    def deactivate_semester(self, semester_id: int) -> Semester:
        if not self._repository.deactivate(_SEMESTERS_TABLE, semester_id):
            raise PeriodNotFoundError(f"Semester {semester_id} not found")
        return self.get_semester(semester_id)

    def get_active_scoring_period(self) -> ScoringPeriod:
        active = self._repository.list_active_scoring_periods()
        if not active:
            raise NoActivePeriodError("No scoring period is active")
        if len(active) > 1:
            logger.warning("%s scoring periods are active; using the newest", len(active))
        return active[-1]

    def get_active_semester(self) -> Semester:
        active = self._repository.list_active_semesters()
        if not active:
            raise NoActivePeriodError("No semester is active")
        if len(active) > 1:
            logger.warning("%s semesters are active; using the newest", len(active))
        return active[-1]
