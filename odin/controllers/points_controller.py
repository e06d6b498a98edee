"""Controller layer for JR Points: templates, tags, ranking, solicitations and snapshots."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field, field_validator

from odin.controllers.dependencies import (
    get_period_service,
    get_points_service,
    get_template_import_service,
    require_director,
)
from odin.domain.constraints import InvalidTemplateConfigurationError
from odin.domain.models import (
    RankingEntry,
    Snapshot,
    Solicitation,
    SolicitationStatus,
    Tag,
    TagTemplate,
    TargetKind,
)
from odin.services.member_service import MemberError, MemberNotFoundError
from odin.services.period_service import (
    NoActivePeriodError,
    PeriodError,
    PeriodNotFoundError,
    PeriodService,
)
from odin.services.points_service import (
    PointsError,
    PointsService,
    SnapshotAlreadyExistsError,
    SnapshotNotFoundError,
    SolicitationNotFoundError,
    StaleTagHistoryError,
    TagNotFoundError,
    TemplateNotFoundError,
)
from odin.services.scoring_service import PartialSnapshotFailureError
from odin.services.template_import_service import (
    TemplateImportError,
    TemplateImportService,
    ranking_csv,
)
from odin.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["points"])

_HANDLED_ERRORS = (
    PointsError,
    PeriodError,
    MemberError,
    InvalidTemplateConfigurationError,
    PartialSnapshotFailureError,
    TemplateImportError,
)


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError("date_performed must include a UTC offset")
    return value


class TemplateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    base_value: int
    period_id: Optional[int] = Field(default=None, gt=0)
    is_scalable: bool = False
    escalation_value: Optional[int] = None
    escalation_streak_days: Optional[int] = None
    areas: list[str] = Field(default_factory=list)
    description: str = ""


class TemplateResponse(BaseModel):
    template_id: int
    name: str
    base_value: int
    is_scalable: bool
    escalation_value: Optional[int]
    escalation_streak_days: Optional[int]
    areas: list[str]
    description: str
    period_id: Optional[int]

    @classmethod
    def from_domain(cls, template: TagTemplate) -> "TemplateResponse":
        return cls(
            template_id=template.template_id,
            name=template.name,
            base_value=template.base_value,
            is_scalable=template.is_scalable,
            escalation_value=template.escalation_value,
            escalation_streak_days=template.escalation_streak_days,
            areas=list(template.areas),
            description=template.description,
            period_id=template.period_id,
        )


class TemplateImportRequest(BaseModel):
    csv_text: str = Field(min_length=1)
    period_id: Optional[int] = Field(default=None, gt=0)


class TemplateImportResponse(BaseModel):
    created: list[TemplateResponse]
    skipped: list[str]
    errors: dict[int, str]


class TagBatchRequest(BaseModel):
    target_ids: list[str] = Field(min_length=1)
    template_ids: list[int] = Field(min_length=1)
    date_performed: datetime
    assigner_id: Optional[int] = Field(default=None, gt=0)
    description: str = ""

    @field_validator("date_performed")
    @classmethod
    def validate_timezone(cls, value: datetime) -> datetime:
        return _require_aware(value)

    @field_validator("target_ids")
    @classmethod
    def validate_targets(cls, value: list[str]) -> list[str]:
        cleaned = [target.strip() for target in value]
        if any(not target for target in cleaned):
            raise ValueError("target_ids must not contain blank values")
        return list(dict.fromkeys(cleaned))


class PreviewResponse(BaseModel):
    values: dict[str, int]


class TagResponse(BaseModel):
    tag_id: int
    template_id: int
    target_id: str
    value: int
    date_performed: datetime
    description: str
    assigner_id: Optional[int]
    semester_id: Optional[int]
    archived: bool

    @classmethod
    def from_domain(cls, tag: Tag) -> "TagResponse":
        return cls(
            tag_id=tag.tag_id,
            template_id=tag.template_id,
            target_id=tag.target_id,
            value=tag.value,
            date_performed=tag.date_performed,
            description=tag.description,
            assigner_id=tag.assigner_id,
            semester_id=tag.semester_id,
            archived=tag.snapshot_semester_id is not None,
        )


class RankingRow(BaseModel):
    position: int = Field(ge=1)
    target_id: str
    name: str
    kind: TargetKind
    total_points: int
    tag_count: int = Field(ge=0)

    @classmethod
    def from_domain(cls, entry: RankingEntry) -> "RankingRow":
        return cls(
            position=entry.position,
            target_id=entry.target.target_id,
            name=entry.target.display_name,
            kind=entry.target.kind,
            total_points=entry.total_points,
            tag_count=entry.tag_count,
        )


class SnapshotResponse(BaseModel):
    semester_id: int
    semester_name: str
    target_id: str
    total_points: int
    taken_at: datetime

    @classmethod
    def from_domain(cls, snapshot: Snapshot) -> "SnapshotResponse":
        return cls(
            semester_id=snapshot.semester_id,
            semester_name=snapshot.semester_name,
            target_id=snapshot.target_id,
            total_points=snapshot.total_points,
            taken_at=snapshot.taken_at,
        )


class TargetHistoryResponse(BaseModel):
    target_id: str
    name: str
    kind: TargetKind
    live_total: int
    tags: list[TagResponse]
    snapshots: list[SnapshotResponse]


class SolicitationRequest(BaseModel):
    requester_id: int = Field(gt=0)
    target_ids: list[str] = Field(default_factory=list)
    template_ids: list[int] = Field(min_length=1)
    date_performed: datetime
    description: str = ""
    is_for_enterprise: bool = False

    @field_validator("date_performed")
    @classmethod
    def validate_timezone(cls, value: datetime) -> datetime:
        return _require_aware(value)


class SolicitationResponse(BaseModel):
    solicitation_id: int
    requester_id: int
    target_ids: list[str]
    template_ids: list[int]
    date_performed: datetime
    description: str
    is_for_enterprise: bool
    status: SolicitationStatus
    reviewer_notes: str

    @classmethod
    def from_domain(cls, solicitation: Solicitation) -> "SolicitationResponse":
        return cls(
            solicitation_id=solicitation.solicitation_id,
            requester_id=solicitation.requester_id,
            target_ids=list(solicitation.target_ids),
            template_ids=list(solicitation.template_ids),
            date_performed=solicitation.date_performed,
            description=solicitation.description,
            is_for_enterprise=solicitation.is_for_enterprise,
            status=solicitation.status,
            reviewer_notes=solicitation.reviewer_notes,
        )


class SolicitationReviewRequest(BaseModel):
    approve: bool
    reviewer_id: Optional[int] = Field(default=None, gt=0)
    notes: str = ""


class SolicitationReviewResponse(BaseModel):
    solicitation: SolicitationResponse
    tags: list[TagResponse]


class SnapshotRequest(BaseModel):
    taken_at: Optional[datetime] = None

    @field_validator("taken_at")
    @classmethod
    def validate_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            raise ValueError("taken_at must include a UTC offset")
        return value


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(
        exc,
        (
            TemplateNotFoundError,
            TagNotFoundError,
            SolicitationNotFoundError,
            SnapshotNotFoundError,
            PeriodNotFoundError,
            MemberNotFoundError,
        ),
    ):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (SnapshotAlreadyExistsError, NoActivePeriodError, StaleTagHistoryError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, PartialSnapshotFailureError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": str(exc), "written": exc.written, "failed": exc.failed},
        )
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))


def _fallback(exc: Exception, action: str) -> HTTPException:
    logger.exception("Unexpected failure while trying to %s", action)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


@router.get("/tag-templates", response_model=list[TemplateResponse], status_code=status.HTTP_200_OK)
async def list_templates(
    period_id: Optional[int] = Query(default=None, gt=0),
    points_service: PointsService = Depends(get_points_service),
) -> list[TemplateResponse]:
    try:
        return [TemplateResponse.from_domain(template) for template in points_service.list_templates(period_id)]
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "list tag templates") from exc


@router.post(
    "/tag-templates",
    response_model=TemplateResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_director)],
)
async def create_template(
    payload: TemplateRequest,
    points_service: PointsService = Depends(get_points_service),
    period_service: PeriodService = Depends(get_period_service),
) -> TemplateResponse:
    try:
        period_id = payload.period_id or period_service.get_active_scoring_period().period_id
        template = points_service.create_template(
            name=payload.name,
            base_value=payload.base_value,
            period_id=period_id,
            is_scalable=payload.is_scalable,
            escalation_value=payload.escalation_value,
            escalation_streak_days=payload.escalation_streak_days,
            areas=payload.areas,
            description=payload.description,
        )
        return TemplateResponse.from_domain(template)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "create tag template") from exc


@router.post(
    "/tag-templates/import",
    response_model=TemplateImportResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_director)],
)
async def import_templates(
    payload: TemplateImportRequest,
    import_service: TemplateImportService = Depends(get_template_import_service),
    period_service: PeriodService = Depends(get_period_service),
) -> TemplateImportResponse:
    try:
        period_id = payload.period_id or period_service.get_active_scoring_period().period_id
        report = import_service.import_csv(payload.csv_text, period_id)
        return TemplateImportResponse(
            created=[TemplateResponse.from_domain(template) for template in report.created],
            skipped=report.skipped,
            errors=report.errors,
        )
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "import tag templates") from exc


@router.post("/tags/preview", response_model=PreviewResponse, status_code=status.HTTP_200_OK)
async def preview_tags(
    payload: TagBatchRequest,
    points_service: PointsService = Depends(get_points_service),
    period_service: PeriodService = Depends(get_period_service),
) -> PreviewResponse:
    try:
        values = points_service.preview_streak_values(
            target_ids=payload.target_ids,
            template_ids=payload.template_ids,
            performed_at=payload.date_performed,
            period=period_service.get_active_scoring_period(),
        )
        return PreviewResponse(values=values)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "preview tag values") from exc


@router.post(
    "/tags",
    response_model=list[TagResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_director)],
)
async def award_tags(
    payload: TagBatchRequest,
    points_service: PointsService = Depends(get_points_service),
    period_service: PeriodService = Depends(get_period_service),
) -> list[TagResponse]:
    try:
        tags = points_service.award_tags(
            target_ids=payload.target_ids,
            template_ids=payload.template_ids,
            performed_at=payload.date_performed,
            assigner_id=payload.assigner_id,
            period=period_service.get_active_scoring_period(),
            semester=period_service.get_active_semester(),
            description=payload.description,
        )
        return [TagResponse.from_domain(tag) for tag in tags]
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "award tags") from exc


@router.delete(
    "/tags/{tag_id}",
    response_model=TagResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_director)],
)
async def revoke_tag(
    tag_id: int,
    points_service: PointsService = Depends(get_points_service),
) -> TagResponse:
    try:
        return TagResponse.from_domain(points_service.revoke_tag(tag_id))
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "revoke tag") from exc


@router.get("/ranking", response_model=list[RankingRow], status_code=status.HTTP_200_OK)
async def ranking(
    points_service: PointsService = Depends(get_points_service),
) -> list[RankingRow]:
    try:
        return [RankingRow.from_domain(entry) for entry in points_service.ranking()]
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "compute ranking") from exc


@router.get("/ranking.csv", response_class=PlainTextResponse, status_code=status.HTTP_200_OK)
async def ranking_export(
    points_service: PointsService = Depends(get_points_service),
) -> PlainTextResponse:
    try:
        return PlainTextResponse(
            content=ranking_csv(points_service.ranking()),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="ranking.csv"'},
        )
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "export ranking") from exc


@router.get(
    "/targets/{target_id}/history",
    response_model=TargetHistoryResponse,
    status_code=status.HTTP_200_OK,
)
async def target_history(
    target_id: str,
    points_service: PointsService = Depends(get_points_service),
) -> TargetHistoryResponse:
    try:
        history = points_service.target_history(target_id)
        return TargetHistoryResponse(
            target_id=history.target.target_id,
            name=history.target.display_name,
            kind=history.target.kind,
            live_total=history.live_total,
            tags=[TagResponse.from_domain(tag) for tag in history.tags],
            snapshots=[SnapshotResponse.from_domain(snapshot) for snapshot in history.snapshots],
        )
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "load target history") from exc


@router.post(
    "/solicitations",
    response_model=SolicitationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_solicitation(
    payload: SolicitationRequest,
    points_service: PointsService = Depends(get_points_service),
) -> SolicitationResponse:
    try:
        solicitation = points_service.submit_solicitation(
            requester_id=payload.requester_id,
            target_ids=payload.target_ids,
            template_ids=payload.template_ids,
            performed_at=payload.date_performed,
            description=payload.description,
            is_for_enterprise=payload.is_for_enterprise,
        )
        return SolicitationResponse.from_domain(solicitation)
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "submit solicitation") from exc


@router.get(
    "/solicitations",
    response_model=list[SolicitationResponse],
    status_code=status.HTTP_200_OK,
)
async def list_solicitations(
    solicitation_status: Optional[SolicitationStatus] = Query(default=None, alias="status"),
    points_service: PointsService = Depends(get_points_service),
) -> list[SolicitationResponse]:
    try:
        return [
            SolicitationResponse.from_domain(solicitation)
            for solicitation in points_service.list_solicitations(solicitation_status)
        ]
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "list solicitations") from exc


@router.post(
    "/solicitations/{solicitation_id}/review",
    response_model=SolicitationReviewResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_director)],
)
async def review_solicitation(
    solicitation_id: int,
    payload: SolicitationReviewRequest,
    points_service: PointsService = Depends(get_points_service),
    period_service: PeriodService = Depends(get_period_service),
) -> SolicitationReviewResponse:
    try:
        tags: list[Tag] = []
        if payload.approve:
            tags = points_service.approve_solicitation(
                solicitation_id,
                period=period_service.get_active_scoring_period(),
                semester=period_service.get_active_semester(),
                reviewer_id=payload.reviewer_id,
                notes=payload.notes,
            )
            solicitation = points_service.get_solicitation(solicitation_id)
        else:
            solicitation = points_service.reject_solicitation(solicitation_id, payload.notes)
        return SolicitationReviewResponse(
            solicitation=SolicitationResponse.from_domain(solicitation),
            tags=[TagResponse.from_domain(tag) for tag in tags],
        )
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "review solicitation") from exc


@router.get(
    "/semesters/{semester_id}/snapshot",
    response_model=list[SnapshotResponse],
    status_code=status.HTTP_200_OK,
)
async def list_semester_snapshots(
    semester_id: int,
    points_service: PointsService = Depends(get_points_service),
) -> list[SnapshotResponse]:
    try:
        return [SnapshotResponse.from_domain(snapshot) for snapshot in points_service.list_snapshots(semester_id)]
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "list snapshots") from exc


@router.post(
    "/semesters/{semester_id}/snapshot",
    response_model=list[SnapshotResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_director)],
)
async def close_semester(
    semester_id: int,
    payload: Optional[SnapshotRequest] = None,
    points_service: PointsService = Depends(get_points_service),
    period_service: PeriodService = Depends(get_period_service),
) -> list[SnapshotResponse]:
    try:
        snapshots = points_service.close_semester(
            period_service.get_semester(semester_id),
            taken_at=None if payload is None else payload.taken_at,
        )
        return [SnapshotResponse.from_domain(snapshot) for snapshot in snapshots]
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "close semester") from exc


@router.delete(
    "/semesters/{semester_id}/snapshot",
    response_model=list[SnapshotResponse],
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_director)],
)
async def rollback_snapshot(
    semester_id: int,
    points_service: PointsService = Depends(get_points_service),
    period_service: PeriodService = Depends(get_period_service),
) -> list[SnapshotResponse]:
    try:
        removed = points_service.rollback_snapshot(period_service.get_semester(semester_id))
        return [SnapshotResponse.from_domain(snapshot) for snapshot in removed]
    except _HANDLED_ERRORS as exc:
        raise _http_error(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        raise _fallback(exc, "roll back semester snapshot") from exc
