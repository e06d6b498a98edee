from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from odin.domain.constraints import InvalidTemplateConfigurationError
from odin.domain.models import ScoreTarget, Semester, Tag, TagTemplate, TargetKind
from odin.services.scoring_service import (
    PartialSnapshotFailureError,
    aggregate_ranking,
    compute_tag_value,
    record_snapshots,
    streak_length,
    take_snapshot,
)


DAY_ZERO = datetime(2025, 3, 3, 19, 0, tzinfo=timezone.utc)


def _day(offset: int) -> datetime:
    return DAY_ZERO + timedelta(days=offset)


def _template(**overrides) -> TagTemplate:
    defaults = {
        "template_id": 1,
        "name": "Post no blog",
        "base_value": 10,
        "is_scalable": True,
        "escalation_value": 5,
        "escalation_streak_days": 7,
    }
    defaults.update(overrides)
    return TagTemplate(**defaults)


def _tag(tag_id: int, performed_at: datetime, target_id: str = "1", value: int = 10) -> Tag:
    return Tag(
        tag_id=tag_id,
        template_id=1,
        target_id=target_id,
        value=value,
        date_performed=performed_at,
    )


def _target(target_id: str, seq: int, kind: TargetKind = TargetKind.MEMBER) -> ScoreTarget:
    return ScoreTarget(target_id=target_id, display_name=f"Target {target_id}", kind=kind, registration_seq=seq)


def test_flat_template_returns_base_value_regardless_of_history() -> None:
    template = _template(is_scalable=False, base_value=25, escalation_value=None, escalation_streak_days=None)

    assert compute_tag_value(template, [_tag(1, _day(0)), _tag(2, _day(1))], _day(2)) == 25


def test_flat_template_ignores_broken_escalation_fields() -> None:
    template = _template(is_scalable=False, escalation_streak_days=0)

    assert compute_tag_value(template, [_tag(1, _day(0))], _day(1)) == 10


def test_first_occurrence_of_scalable_template_has_no_bonus() -> None:
    assert compute_tag_value(_template(), [], _day(0)) == 10


def test_second_occurrence_within_window_earns_one_bonus() -> None:
    assert compute_tag_value(_template(), [_tag(1, _day(0))], _day(5)) == 15


def test_gap_longer_than_window_resets_the_streak() -> None:
    assert compute_tag_value(_template(), [_tag(1, _day(0))], _day(10)) == 10


def test_streak_continuity_over_three_occurrences() -> None:
    history = [_tag(1, _day(0)), _tag(2, _day(3))]

    assert compute_tag_value(_template(), history, _day(6)) == 10 + 5 * 2
    assert compute_tag_value(_template(), history, _day(20)) == 10


def test_gap_inside_history_only_counts_the_latest_chain() -> None:
    history = [_tag(1, _day(0)), _tag(2, _day(15)), _tag(3, _day(18))]

    assert streak_length(history, _day(20), 7) == 2
    assert compute_tag_value(_template(), history, _day(20)) == 20


def test_gap_of_exactly_the_window_still_continues() -> None:
    assert compute_tag_value(_template(), [_tag(1, _day(0))], _day(7)) == 15


def test_occurrences_after_the_event_are_ignored() -> None:
    history = [_tag(1, _day(0)), _tag(2, _day(30))]

    assert compute_tag_value(_template(), history, _day(2)) == 15


def test_negative_escalation_models_a_penalty_streak() -> None:
    lateness = _template(name="Atraso", base_value=-5, escalation_value=-5, escalation_streak_days=7)
    history = [_tag(1, _day(0)), _tag(2, _day(7))]

    assert compute_tag_value(lateness, history, _day(14)) == -15


@pytest.mark.parametrize(
    "overrides",
    [
        {"escalation_streak_days": None},
        {"escalation_streak_days": 0},
        {"escalation_streak_days": -3},
        {"escalation_value": None},
    ],
)
def test_malformed_scalable_template_raises(overrides) -> None:
    with pytest.raises(InvalidTemplateConfigurationError):
        compute_tag_value(_template(**overrides), [], _day(0))


def test_ranking_breaks_ties_by_registration_order() -> None:
    first = _target("1", 1)
    second = _target("2", 2)
    tags = {
        "1": [_tag(1, _day(0), "1", 30)],
        "2": [_tag(2, _day(0), "2", 10), _tag(3, _day(1), "2", 20)],
    }

    ranking = aggregate_ranking([second, first], tags)

    assert [entry.target.target_id for entry in ranking] == ["1", "2"]
    assert [entry.position for entry in ranking] == [1, 2]
    assert [entry.total_points for entry in ranking] == [30, 30]
    assert [entry.tag_count for entry in ranking] == [1, 2]


def test_ranking_is_deterministic_for_identical_inputs() -> None:
    targets = [
        _target("enterprise", 0, TargetKind.ENTERPRISE),
        _target("3", 3),
        _target("1", 1),
        _target("2", 2),
    ]
    tags = {
        "1": [_tag(1, _day(0), "1", 5)],
        "2": [_tag(2, _day(0), "2", 40)],
        "3": [_tag(3, _day(0), "3", 5)],
    }

    first_run = aggregate_ranking(targets, tags)
    second_run = aggregate_ranking(list(reversed(targets)), tags)

    assert first_run == second_run
    assert [entry.target.target_id for entry in first_run] == ["2", "1", "3", "enterprise"]


def test_targets_without_tags_rank_with_zero() -> None:
    ranking = aggregate_ranking([_target("1", 1)], {})

    assert ranking[0].total_points == 0
    assert ranking[0].tag_count == 0


def test_snapshot_values_do_not_follow_later_total_changes() -> None:
    semester = Semester(
        semester_id=4,
        name="2025.1",
        starts_on=date(2025, 1, 1),
        ends_on=date(2025, 6, 30),
        is_active=True,
    )
    totals = {"1": 120, "enterprise": 300}

    snapshots = take_snapshot(semester, [_target("enterprise", 0), _target("1", 1), _target("2", 2)], totals, _day(0))
    totals["1"] = 0
    totals["2"] = 999

    assert [(snapshot.target_id, snapshot.total_points) for snapshot in snapshots] == [
        ("enterprise", 300),
        ("1", 120),
        ("2", 0),
    ]
    assert all(snapshot.semester_name == "2025.1" for snapshot in snapshots)
    assert all(snapshot.taken_at == _day(0) for snapshot in snapshots)


def test_record_snapshots_reports_partial_failures() -> None:
    semester = Semester(3, "2024.2", date(2024, 7, 1), date(2024, 12, 31), True)
    snapshots = take_snapshot(semester, [_target("1", 1), _target("2", 2), _target("3", 3)], {}, _day(0))
    persisted = []

    def persist(snapshot) -> None:
        if snapshot.target_id == "2":
            raise RuntimeError("disk full")
        persisted.append(snapshot.target_id)

    with pytest.raises(PartialSnapshotFailureError) as exc_info:
        record_snapshots(snapshots, persist)

    assert persisted == ["1", "3"]
    assert exc_info.value.written == ["1", "3"]
    assert exc_info.value.failed == {"2": "disk full"}


def test_record_snapshots_returns_everything_written() -> None:
    semester = Semester(3, "2024.2", date(2024, 7, 1), date(2024, 12, 31), True)
    snapshots = take_snapshot(semester, [_target("1", 1)], {"1": 8}, _day(0))
    store = []

    written = record_snapshots(snapshots, store.append)

    assert written == list(snapshots)
    assert store == list(snapshots)
