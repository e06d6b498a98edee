"""CSV import of tag templates and CSV export of rankings using pandas."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Optional, Sequence

import pandas as pd

from odin.domain.constraints import InvalidTemplateConfigurationError
from odin.domain.models import RankingEntry, TagTemplate
from odin.services.points_service import PointsService, PointsValidationError
from odin.utils.logger import get_logger


logger = get_logger(__name__)

REQUIRED_COLUMNS = ("name", "base_value")
OPTIONAL_COLUMNS = (
    "description",
    "is_scalable",
    "escalation_value",
    "escalation_streak_days",
    "areas",
)
RANKING_COLUMNS = ["position", "target_id", "name", "kind", "total_points", "tag_count"]
_TRUE_VALUES = {"1", "true", "yes", "sim", "s", "y"}
_FALSE_VALUES = {"", "0", "false", "no", "nao", "não", "n"}


class TemplateImportError(Exception):
    """Raised when an import file cannot be read at all."""


@dataclass
class ImportReport:
    created: list[TagTemplate] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)


def _parse_bool(raw: str, row_number: int) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"row {row_number}: is_scalable '{raw}' is not a boolean")


def _parse_int(raw: str, column: str, row_number: int) -> Optional[int]:
    value = raw.strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"row {row_number}: {column} '{raw}' is not an integer") from exc


def read_template_frame(csv_text: str) -> pd.DataFrame:
    if not csv_text.strip():
        raise TemplateImportError("import file is empty")
    try:
        frame = pd.read_csv(io.StringIO(csv_text), dtype=str, keep_default_na=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise TemplateImportError(f"could not parse CSV: {exc}") from exc

    frame.columns = [str(column).strip().lower() for column in frame.columns]
    missing = [column for column in REQUIRED_COLUMNS if column not in frame.columns]
    if missing:
        raise TemplateImportError(f"missing required column(s): {', '.join(missing)}")
    for column in OPTIONAL_COLUMNS:
        if column not in frame.columns:
            frame[column] = ""
    return frame


class TemplateImportService:
    def __init__(self, points_service: PointsService) -> None:
        self._points_service = points_service

    def import_csv(self, csv_text: str, period_id: int) -> ImportReport:
        """Create one template per row; rows naming an existing template are skipped."""
        frame = read_template_frame(csv_text)
        existing = {template.name for template in self._points_service.list_templates(period_id)}
        report = ImportReport()

        for offset, row in enumerate(frame.to_dict(orient="records")):
            # header is line 1
            row_number = offset + 2
            name = str(row["name"]).strip()
            if name in existing:
                report.skipped.append(name)
                continue
            try:
                base_value = _parse_int(str(row["base_value"]), "base_value", row_number)
                if base_value is None:
                    raise ValueError(f"row {row_number}: base_value is required")
                template = self._points_service.create_template(
                    name=name,
                    base_value=base_value,
                    period_id=period_id,
                    is_scalable=_parse_bool(str(row["is_scalable"]), row_number),
                    escalation_value=_parse_int(
                        str(row["escalation_value"]), "escalation_value", row_number
                    ),
                    escalation_streak_days=_parse_int(
                        str(row["escalation_streak_days"]), "escalation_streak_days", row_number
                    ),
                    areas=str(row["areas"]).split(","),
                    description=str(row["description"]),
                )
            except (ValueError, PointsValidationError, InvalidTemplateConfigurationError) as exc:
                report.errors[row_number] = str(exc)
                continue
            existing.add(name)
            report.created.append(template)

        logger.info(
            "Template import into period %s: %s created, %s skipped, %s failed",
            period_id,
            len(report.created),
            len(report.skipped),
            len(report.errors),
        )
        return report


def ranking_frame(entries: Sequence[RankingEntry]) -> pd.DataFrame:
    rows = [
        {
            "position": entry.position,
            "target_id": entry.target.target_id,
            "name": entry.target.display_name,
            "kind": entry.target.kind.value,
            "total_points": entry.total_points,
            "tag_count": entry.tag_count,
        }
        for entry in entries
    ]
    return pd.DataFrame(rows, columns=RANKING_COLUMNS)


def ranking_csv(entries: Sequence[RankingEntry]) -> str:
    return ranking_frame(entries).to_csv(index=False)
