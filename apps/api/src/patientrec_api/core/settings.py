from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./patientrec.db"
    secret_key: str = "change-me"

    # Operator API security
    operator_api_key: str = ""

    # Tracing (OTEL_EXPORTER_OTLP_* env names map onto these fields)
    tracing_enabled: bool = True
    tracing_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None

    # Backup scheduler
    backup_scheduler_enabled: bool = True
    backup_scheduler_timezone: str = "UTC"
    backup_misfire_grace_seconds: int = 300
    backup_drain_timeout_seconds: float = 30.0
    backup_job_seed_path: str | None = None

    # Backup artifacts and retention
    backup_storage_path: str = "backups"
    backup_retention_batch_limit: int = Field(default=1000, ge=1)
    backup_purge_expired_history: bool = True
    backup_excluded_tables: list[str] = Field(default_factory=list)

    @field_validator("backup_excluded_tables", mode="before")
    @classmethod
    def _parse_table_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
