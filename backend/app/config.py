import json
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:8080",
    "http://127.0.0.1:8080",
]


class Settings(BaseSettings):
    database_url: str
    auto_create_tables: bool = False
    allowed_origins: list[str] = DEFAULT_ALLOWED_ORIGINS

    supabase_url: str | None = None
    supabase_service_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("supabase_service_key", "supabase_service_role_key", "service_role_key"),
    )
    storage_url: str | None = None
    storage_timeout_seconds: float = 30.0

    # "remote" asks the auth service who the token belongs to, "jwt" verifies it locally.
    identity_mode: Literal["remote", "jwt"] = "remote"
    supabase_jwt_secret: str | None = None
    supabase_jwt_audience: str = "authenticated"

    delete_batch_size: int = 10
    delete_job_fetch_limit: int = 100
    delete_max_attempts: int = 3
    delete_retry_base_ms: int = 500
    delete_batch_pause_ms: int = 200
    direct_delete_max_attempts: int = 1
    dry_run: bool = False
    deletion_reclaim_after_seconds: int | None = None
    worker_poll_interval_seconds: float = 60.0

    geocoder_url: str = "https://nominatim.openstreetmap.org/search"
    geocoder_user_agent: str = "TribeVibe/1.0 (contact@tribevibe.example)"
    geocoder_timeout_seconds: float = 10.0

    # `allowed_origins` supports comma-separated strings or JSON lists; disable pydantic-settings JSON decoding
    # so our validator can handle both formats.
    model_config = SettingsConfigDict(
        env_file=".topsecret",
        extra="ignore",
        case_sensitive=False,
        enable_decoding=False,
        env_ignore_empty=True,
    )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value):
        if value is None or value == "":
            return list(DEFAULT_ALLOWED_ORIGINS)

        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return [origin for origin in parsed if origin]
            except json.JSONDecodeError:
                pass

            parsed = [origin.strip() for origin in value.split(",")]
            return [origin for origin in parsed if origin]

        if isinstance(value, (list, tuple)):
            return [origin for origin in value if origin]

        raise ValueError("allowed_origins must be a list or comma-separated string")

    @field_validator("delete_batch_size", "delete_job_fetch_limit", "delete_max_attempts", "direct_delete_max_attempts")
    @classmethod
    def require_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("delete_retry_base_ms", "delete_batch_pause_ms")
    @classmethod
    def require_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("supabase_url", "storage_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, value: str | None) -> str | None:
        return value.rstrip("/") if value else value

    @property
    def resolved_storage_url(self) -> str | None:
        return self.storage_url or self.supabase_url


settings = Settings()
