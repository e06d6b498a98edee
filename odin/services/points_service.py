"""JR Points orchestration: awarding tags, rankings, solicitations and semester close."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from odin.domain.constraints import validate_escalation
from odin.domain.models import (
    RankingEntry,
    ScoreTarget,
    ScoringPeriod,
    Semester,
    Snapshot,
    Solicitation,
    SolicitationStatus,
    Tag,
    TagTemplate,
)
from odin.repository.data_repository import DataRepository, StaleWriteError
from odin.services.member_service import MemberService
from odin.services.scoring_service import (
    aggregate_ranking,
    compute_tag_value,
    record_snapshots,
    take_snapshot,
)
from odin.utils.config import Settings, get_settings
from odin.utils.logger import get_logger


logger = get_logger(__name__)


class PointsError(Exception):
    """Base points failure."""


class PointsValidationError(PointsError):
    """Raised when points inputs are invalid."""


class TemplateNotFoundError(PointsError):
    """Raised when a tag template id does not exist."""


class TagNotFoundError(PointsError):
    """Raised when a tag id does not exist."""


class SolicitationNotFoundError(PointsError):
    """Raised when a solicitation id does not exist."""


class SnapshotAlreadyExistsError(PointsError):
    """Raised when a semester was already closed."""


class SnapshotNotFoundError(PointsError):
    """Raised when rolling back a semester that has no snapshots."""


class StaleTagHistoryError(PointsError):
    """Raised when a target's tag history kept changing until retries ran out."""


@dataclass(frozen=True)
class TargetHistory:
    target: ScoreTarget
    live_total: int
    tags: list[Tag]
    snapshots: list[Snapshot]


class PointsService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        member_service: Optional[MemberService] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._member_service = member_service or MemberService(
            repository=self._repository,
            settings=self._settings,
        )

    # --- templates ---

    def create_template(
        self,
        name: str,
        base_value: int,
        period_id: int,
        is_scalable: bool = False,
        escalation_value: Optional[int] = None,
        escalation_streak_days: Optional[int] = None,
        areas: Sequence[str] = (),
        description: str = "",
    ) -> TagTemplate:
        clean_name = name.strip()
        if not clean_name:
            raise PointsValidationError("template name must not be blank")
        validate_escalation(clean_name, is_scalable, escalation_value, escalation_streak_days)
        if self._repository.get_scoring_period(period_id) is None:
            raise PointsValidationError(f"Scoring period {period_id} not found")
        if clean_name in self._repository.template_names(period_id):
            raise PointsValidationError(
                f"template '{clean_name}' already exists in scoring period {period_id}"
            )

        template = self._repository.create_template(
            name=clean_name,
            base_value=int(base_value),
            is_scalable=is_scalable,
            escalation_value=escalation_value if is_scalable else None,
            escalation_streak_days=escalation_streak_days if is_scalable else None,
            areas=tuple(area.strip().upper() for area in areas if area.strip()),
            period_id=period_id,
            description=description.strip(),
        )
        logger.info("Created tag template %s (%s) in period %s", template.template_id, clean_name, period_id)
        return template

    def list_templates(self, period_id: Optional[int] = None) -> list[TagTemplate]:
        return self._repository.list_templates(period_id)

    def get_template(self, template_id: int) -> TagTemplate:
        template = self._repository.get_template(template_id)
        if template is None:
            raise TemplateNotFoundError(f"Tag template {template_id} not found")
        return template

    # --- tags ---

    def preview_streak_values(
        self,
        target_ids: Sequence[str],
        template_ids: Sequence[int],
        performed_at: datetime,
        period: ScoringPeriod,
    ) -> dict[str, int]:
        """Value each target/template pair would earn, keyed ``"{target}-{template}"``."""
        self._require_aware(performed_at)
        self._resolve_targets(target_ids)
        templates = self._resolve_templates(template_ids, period)
        preview: dict[str, int] = {}
        for target_id in target_ids:
            for template in templates:
                history = self._repository.list_tag_history(target_id, template.template_id)
                preview[f"{target_id}-{template.template_id}"] = compute_tag_value(
                    template, history, performed_at
                )
        return preview

    def award_tags(
        self,
        target_ids: Sequence[str],
        template_ids: Sequence[int],
        performed_at: datetime,
        assigner_id: Optional[int],
        period: ScoringPeriod,
        semester: Semester,
        description: str = "",
    ) -> list[Tag]:
        return self._award(
            target_ids=target_ids,
            template_ids=template_ids,
            performed_at=performed_at,
            assigner_id=assigner_id,
            period=period,
            semester=semester,
            description=description,
        )

    def _award(
        self,
        target_ids: Sequence[str],
        template_ids: Sequence[int],
        performed_at: datetime,
        assigner_id: Optional[int],
        period: ScoringPeriod,
        semester: Semester,
        description: str,
        solicitation_id: Optional[int] = None,
        reviewer_notes: str = "",
    ) -> list[Tag]:
        """Value and store every target/template pair in one all-or-nothing commit."""
        self._require_aware(performed_at)
        targets = list(dict.fromkeys(target_ids))
        self._resolve_targets(targets)
        templates = self._resolve_templates(list(dict.fromkeys(template_ids)), period)

        attempts = self._settings.tag_commit_retries + 1
        for attempt in range(1, attempts + 1):
            if solicitation_id is not None:
                self._require_pending(solicitation_id)
            drafts: list[Tag] = []
            last_seen: list[Optional[int]] = []
            for target_id in targets:
                for template in templates:
                    history = self._repository.list_tag_history(target_id, template.template_id)
                    last_seen.append(max((tag.tag_id for tag in history), default=None))
                    drafts.append(
                        Tag(
                            tag_id=0,
                            template_id=template.template_id,
                            target_id=target_id,
                            value=compute_tag_value(template, history, performed_at),
                            date_performed=performed_at,
                            description=description.strip(),
                            assigner_id=assigner_id,
                            period_id=period.period_id,
                            semester_id=semester.semester_id,
                        )
                    )
            try:
                created = self._repository.commit_tags(
                    drafts,
                    last_seen,
                    solicitation_id=solicitation_id,
                    reviewer_notes=reviewer_notes,
                )
            except StaleWriteError as exc:
                logger.warning("Tag batch not committed (attempt %s/%s): %s", attempt, attempts, exc)
                continue
            logger.info(
                "Awarded %s tag(s) to %s target(s) in semester %s",
                len(created),
                len(targets),
                semester.name,
            )
            return created

        raise StaleTagHistoryError("Tag history kept changing; no tags were awarded")

    def revoke_tag(self, tag_id: int) -> Tag:
        tag = self._repository.get_tag(tag_id)
        if tag is None:
            raise TagNotFoundError(f"Tag {tag_id} not found")
        if tag.snapshot_semester_id is not None:
            raise PointsValidationError(
                f"Tag {tag_id} belongs to a closed semester and cannot be revoked"
            )
        removed = self._repository.delete_live_tag(tag_id)
        if removed is None:
            raise TagNotFoundError(f"Tag {tag_id} not found")
        logger.info("Revoked tag %s (%s points from %s)", tag_id, removed.value, removed.target_id)
        return removed

    # --- ranking and history ---

    def ranking(self) -> list[RankingEntry]:
        tags_by_target: dict[str, list[Tag]] = defaultdict(list)
        for tag in self._repository.list_live_tags():
            tags_by_target[tag.target_id].append(tag)
        return aggregate_ranking(self._member_service.score_targets(), tags_by_target)

    def target_history(self, target_id: str) -> TargetHistory:
        target = self._resolve_targets([target_id])[0]
        tags = self._repository.list_tags_for_target(target_id)
        return TargetHistory(
            target=target,
            live_total=sum(tag.value for tag in tags if tag.snapshot_semester_id is None),
            tags=tags,
            snapshots=self._repository.list_snapshots(target_id=target_id),
        )

    def list_snapshots(self, semester_id: Optional[int] = None) -> list[Snapshot]:
        return self._repository.list_snapshots(semester_id=semester_id)

    # --- semester close ---

    def close_semester(self, semester: Semester, taken_at: Optional[datetime] = None) -> list[Snapshot]:
        """Freeze every target's total, zero the live totals and archive the live tags atomically."""
        moment = taken_at or datetime.now(timezone.utc)
        self._require_aware(moment)

        # totals are read under the same write lock that archives the tags they count
        with self._repository.transaction() as tx:
            if tx.snapshot_exists(semester.semester_id):
                raise SnapshotAlreadyExistsError(f"Semester {semester.name} was already closed")
            snapshots = take_snapshot(
                semester,
                self._member_service.score_targets(tx.approved_members()),
                tx.live_totals(),
                moment,
            )
            written = record_snapshots(snapshots, tx.insert_snapshot)
            tx.reset_live_totals()
            archived = tx.archive_live_tags(semester.semester_id)
        logger.info(
            "Closed semester %s: %s snapshot(s), %s tag(s) archived",
            semester.name,
            len(written),
            archived,
        )
        return written

    def rollback_snapshot(self, semester: Semester) -> list[Snapshot]:
        with self._repository.transaction() as tx:
            removed = tx.delete_snapshots(semester.semester_id)
            if not removed:
                raise SnapshotNotFoundError(f"Semester {semester.name} has no snapshots")
            tx.restore_totals(removed)
            restored = tx.unarchive_tags(semester.semester_id)
        logger.warning(
            "Rolled back semester %s: %s snapshot(s) removed, %s tag(s) restored",
            semester.name,
            len(removed),
            restored,
        )
        return removed

    # --- solicitations ---

    def submit_solicitation(
        self,
        requester_id: int,
        target_ids: Sequence[str],
        template_ids: Sequence[int],
        performed_at: datetime,
        description: str = "",
        is_for_enterprise: bool = False,
    ) -> Solicitation:
        self._require_aware(performed_at)
        self._member_service.require_approved(requester_id)
        targets = [self._settings.enterprise_target_id] if is_for_enterprise else list(target_ids)
        if not targets:
            raise PointsValidationError("a solicitation needs at least one target")
        if not template_ids:
            raise PointsValidationError("a solicitation needs at least one template")
        self._resolve_targets(targets)
        for template_id in template_ids:
            self.get_template(template_id)

        solicitation = self._repository.create_solicitation(
            requester_id=requester_id,
            target_ids=targets,
            template_ids=list(template_ids),
            date_performed=performed_at,
            description=description.strip(),
            is_for_enterprise=is_for_enterprise,
        )
        logger.info("Solicitation %s submitted by member %s", solicitation.solicitation_id, requester_id)
        return solicitation

    def list_solicitations(self, status: Optional[SolicitationStatus] = None) -> list[Solicitation]:
        return self._repository.list_solicitations(status)

    def get_solicitation(self, solicitation_id: int) -> Solicitation:
        solicitation = self._repository.get_solicitation(solicitation_id)
        if solicitation is None:
            raise SolicitationNotFoundError(f"Solicitation {solicitation_id} not found")
        return solicitation

    def approve_solicitation(
        self,
        solicitation_id: int,
        period: ScoringPeriod,
        semester: Semester,
        reviewer_id: Optional[int] = None,
        notes: str = "",
    ) -> list[Tag]:
        """Award the requested tags and mark the solicitation approved in the same commit."""
        solicitation = self._require_pending(solicitation_id)
        tags = self._award(
            target_ids=solicitation.target_ids,
            template_ids=solicitation.template_ids,
            performed_at=solicitation.date_performed,
            assigner_id=reviewer_id,
            period=period,
            semester=semester,
            description=solicitation.description,
            solicitation_id=solicitation_id,
            reviewer_notes=notes.strip(),
        )
        logger.info("Solicitation %s approved with %s tag(s)", solicitation_id, len(tags))
        return tags

    def reject_solicitation(self, solicitation_id: int, notes: str = "") -> Solicitation:
        self._require_pending(solicitation_id)
        self._repository.set_solicitation_status(
            solicitation_id, SolicitationStatus.REJECTED, notes.strip()
        )
        logger.info("Solicitation %s rejected", solicitation_id)
        return self.get_solicitation(solicitation_id)

    # --- internals ---

    def _require_pending(self, solicitation_id: int) -> Solicitation:
        solicitation = self.get_solicitation(solicitation_id)
        if solicitation.status is not SolicitationStatus.PENDING:
            raise PointsValidationError(
                f"Solicitation {solicitation_id} was already {solicitation.status.value.lower()}"
            )
        return solicitation

    @staticmethod
    def _require_aware(moment: datetime) -> None:
        if moment.tzinfo is None:
            raise PointsValidationError("date_performed must be timezone-aware")

    def _resolve_targets(self, target_ids: Sequence[str]) -> list[ScoreTarget]:
        if not target_ids:
            raise PointsValidationError("at least one target is required")
        known = {target.target_id: target for target in self._member_service.score_targets()}
        unknown = [target_id for target_id in target_ids if target_id not in known]
        if unknown:
            raise PointsValidationError(
                f"unknown or unapproved target(s): {', '.join(unknown)}"
            )
        return [known[target_id] for target_id in target_ids]

    def _resolve_templates(
        self,
        template_ids: Sequence[int],
        period: ScoringPeriod,
    ) -> list[TagTemplate]:
        if not template_ids:
            raise PointsValidationError("at least one template is required")
        templates = []
        for template_id in template_ids:
            template = self.get_template(template_id)
            if template.period_id != period.period_id:
                raise PointsValidationError(
                    f"Template '{template.name}' does not belong to the active version {period.name}"
                )
            templates.append(template)
        return templates
