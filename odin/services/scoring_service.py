"""JR Points escalation, ranking and semester snapshots.

Pure computations: callers load tag history and totals, pass the active
period explicitly, and persist whatever comes back.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, Mapping, Sequence

from odin.domain.constraints import validate_escalation
from odin.domain.models import RankingEntry, ScoreTarget, Semester, Snapshot, Tag, TagTemplate


class PartialSnapshotFailureError(Exception):
    """Raised when some snapshots of a batch could not be written."""

    def __init__(self, written: list[str], failed: dict[str, str]) -> None:
        self.written = written
        self.failed = failed
        super().__init__(
            f"{len(failed)} snapshot(s) failed ({', '.join(sorted(failed))}); "
            f"{len(written)} written"
        )


def streak_length(
    prior_occurrences: Sequence[Tag],
    performed_at: datetime,
    streak_days: int,
) -> int:
    """Count the occurrences chained to ``performed_at`` by gaps of at most ``streak_days``.

    ``prior_occurrences`` must be in chronological order. Occurrences dated
    after ``performed_at`` belong to a later event and are skipped.
    """
    eligible = [tag for tag in prior_occurrences if tag.date_performed <= performed_at]
    chained = 0
    cursor = performed_at
    for occurrence in reversed(eligible):
        if (cursor - occurrence.date_performed).days > streak_days:
            break
        chained += 1
        cursor = occurrence.date_performed
    return chained


def compute_tag_value(
    template: TagTemplate,
    prior_occurrences: Sequence[Tag],
    performed_at: datetime,
) -> int:
    validate_escalation(
        template.name,
        template.is_scalable,
        template.escalation_value,
        template.escalation_streak_days,
    )
    if not template.is_scalable:
        return template.base_value

    chained = streak_length(prior_occurrences, performed_at, int(template.escalation_streak_days))
    return template.base_value + int(template.escalation_value) * chained


def aggregate_ranking(
    targets: Iterable[ScoreTarget],
    tags_by_target: Mapping[str, Sequence[Tag]],
) -> list[RankingEntry]:
    """Sort by total descending; ties go to the earlier registration."""
    totals = []
    for target in targets:
        tags = tags_by_target.get(target.target_id, ())
        totals.append((target, sum(tag.value for tag in tags), len(tags)))

    totals.sort(key=lambda row: (-row[1], row[0].registration_seq, row[0].target_id))
    return [
        RankingEntry(position=index, target=target, total_points=total, tag_count=count)
        for index, (target, total, count) in enumerate(totals, start=1)
    ]


def take_snapshot(
    semester: Semester,
    targets: Iterable[ScoreTarget],
    current_totals: Mapping[str, int],
    taken_at: datetime,
) -> tuple[Snapshot, ...]:
    """Freeze one total per target.

    The caller resets live totals only after these snapshots are committed,
    and should do both inside one transaction.
    """
    return tuple(
        Snapshot(
            semester_id=semester.semester_id,
            semester_name=semester.name,
            target_id=target.target_id,
            total_points=int(current_totals.get(target.target_id, 0)),
            taken_at=taken_at,
        )
        for target in targets
    )


def record_snapshots(
    snapshots: Iterable[Snapshot],
    persist: Callable[[Snapshot], object],
) -> list[Snapshot]:
    """Write every snapshot; report failures together without undoing the successes."""
    written: list[Snapshot] = []
    failed: dict[str, str] = {}
    for snapshot in snapshots:
        try:
            persist(snapshot)
        except Exception as exc:
            failed[snapshot.target_id] = str(exc)
            continue
        written.append(snapshot)

    if failed:
        raise PartialSnapshotFailureError(
            written=[snapshot.target_id for snapshot in written],
            failed=failed,
        )
    return written
