from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest

from odin.repository.data_repository import DataRepository
from odin.services.period_service import (
    NoActivePeriodError,
    PeriodNotFoundError,
    PeriodService,
    PeriodValidationError,
)
from odin.utils.config import get_settings


def _build_service(tmp_path) -> PeriodService:
    get_settings.cache_clear()
    settings = replace(get_settings(), database_path=tmp_path / "periods.db", seed_demo_data=False)
    repository = DataRepository(settings)
    repository.initialize_database()
    return PeriodService(repository=repository, settings=settings)


def test_no_active_period_is_reported(tmp_path) -> None:
    service = _build_service(tmp_path)
    service.create_scoring_period("Versão 2025")

    with pytest.raises(NoActivePeriodError):
        service.get_active_scoring_period()
    with pytest.raises(NoActivePeriodError):
        service.get_active_semester()


def test_activating_a_period_deactivates_the_others(tmp_path) -> None:
    service = _build_service(tmp_path)
    first = service.create_scoring_period("Versão 2024")
    second = service.create_scoring_period("Versão 2025")

    service.activate_scoring_period(first.period_id)
    service.activate_scoring_period(second.period_id)

    active = [period for period in service.list_scoring_periods() if period.is_active]
    assert [period.period_id for period in active] == [second.period_id]
    assert service.get_active_scoring_period().period_id == second.period_id


def test_activating_a_semester_is_exclusive(tmp_path) -> None:
    service = _build_service(tmp_path)
    first = service.create_semester("2024.2", date(2024, 7, 1), date(2024, 12, 31))
    second = service.create_semester("2025.1", date(2025, 1, 1), date(2025, 6, 30))

    service.activate_semester(second.semester_id)
    service.activate_semester(first.semester_id)

    assert service.get_active_semester().name == "2024.2"
    assert not service.get_semester(second.semester_id).is_active


def test_deactivated_semester_leaves_nothing_active(tmp_path) -> None:
    service = _build_service(tmp_path)
    semester = service.create_semester("2025.1", date(2025, 1, 1), date(2025, 6, 30))
    service.activate_semester(semester.semester_id)

    service.deactivate_semester(semester.semester_id)

    with pytest.raises(NoActivePeriodError):
        service.get_active_semester()


def test_unknown_ids_are_not_found(tmp_path) -> None:
    service = _build_service(tmp_path)

    with pytest.raises(PeriodNotFoundError):
        service.activate_scoring_period(42)
    with pytest.raises(PeriodNotFoundError):
        service.activate_semester(42)


@pytest.mark.parametrize(
    ("name", "starts_on", "ends_on"),
    [
        ("2025.3", date(2025, 1, 1), date(2025, 6, 30)),
        ("semestre", date(2025, 1, 1), date(2025, 6, 30)),
        ("2025.1", date(2025, 6, 30), date(2025, 1, 1)),
    ],
)
def test_invalid_semesters_are_rejected(tmp_path, name, starts_on, ends_on) -> None:
    service = _build_service(tmp_path)

    with pytest.raises(PeriodValidationError):
        service.create_semester(name, starts_on, ends_on)


def test_duplicate_names_are_rejected(tmp_path) -> None:
    service = _build_service(tmp_path)
    service.create_scoring_period("Versão 2025")
    service.create_semester("2025.1", date(2025, 1, 1), date(2025, 6, 30))

    with pytest.raises(PeriodValidationError):
        service.create_scoring_period(" Versão 2025 ")
    with pytest.raises(PeriodValidationError):
        service.create_semester("2025.1", date(2025, 1, 2), date(2025, 6, 30))
