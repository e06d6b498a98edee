"""Runtime settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    director_token: str | None
    session_ttl_minutes: int
    timezone: str
    schedule_day_start_hour: int
    schedule_day_end_hour: int
    booking_commit_retries: int
    tag_commit_retries: int
    enterprise_target_id: str
    enterprise_display_name: str
    external_resource_id: int
    external_resource_name: str
    unrestricted_item_areas: tuple[str, ...]
    semester_name_regex: str
    seed_demo_data: bool


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; call ``get_settings.cache_clear()`` to reload."""
    return Settings(
        app_name=_env_str("ODIN_APP_NAME", "Plataforma Odin"),
        app_version=_env_str("ODIN_APP_VERSION", "1.0.0"),
        log_level=_env_str("ODIN_LOG_LEVEL", "INFO"),
        database_path=Path(_env_str("ODIN_DATABASE_PATH", "data/odin.db")),
        director_token=os.getenv("ODIN_DIRECTOR_TOKEN") or None,
        session_ttl_minutes=_env_int("ODIN_SESSION_TTL_MINUTES", 480),
        timezone=_env_str("ODIN_TIMEZONE", "America/Sao_Paulo"),
        schedule_day_start_hour=_env_int("ODIN_SCHEDULE_DAY_START_HOUR", 7),
        schedule_day_end_hour=_env_int("ODIN_SCHEDULE_DAY_END_HOUR", 22),
        booking_commit_retries=_env_int("ODIN_BOOKING_COMMIT_RETRIES", 2),
        tag_commit_retries=_env_int("ODIN_TAG_COMMIT_RETRIES", 2),
        enterprise_target_id="enterprise",
        enterprise_display_name=_env_str("ODIN_ENTERPRISE_NAME", "Empresa"),
        external_resource_id=0,
        external_resource_name=_env_str("ODIN_EXTERNAL_RESOURCE_NAME", "Salas EAUFBA"),
        unrestricted_item_areas=("GERAL", "DIRETORIA"),
        semester_name_regex=r"^\d{4}\.[12]$",
        seed_demo_data=_env_bool("ODIN_SEED_DEMO_DATA", True),
    )
