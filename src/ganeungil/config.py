"""Application configuration and settings management."""

from pathlib import Path
from typing import Annotated, Any, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _env_items(value: Any) -> list[str]:
    """Items of a list-valued setting given as a sequence, a JSON array or "a,b,c"."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value]
    text = str(value).strip()
    if text.startswith("["):
        return [str(item).strip() for item in json.loads(text)]
    return [item.strip() for item in text.split(",") if item.strip()]


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="GNG_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "가는길에 Matching API"
    api_prefix: str = "/api"
    timezone: str = Field(default="Asia/Seoul", description="Timezone used to resolve the settlement period.")
    stations_file: Path = Field(
        default=Path("data/stations.csv"),
        description="Subway station reference data used when the store holds none.",
    )
    travel_times_file: Path = Field(
        default=Path("data/travel_times.csv"),
        description="Inter-station travel times used when the store holds none.",
    )

    # Matching
    matching_timeout_seconds: float = Field(default=30.0, gt=0, description="Carrier acceptance window.")
    max_match_retries: int = Field(default=3, ge=0, description="Re-matching attempts after the first one.")
    search_detour_limits: Annotated[tuple[int, ...], NoDecode] = Field(
        default=(10, 20, 30, 45),
        description="Maximum detour minutes accepted per search widening level.",
    )
    candidate_cache_ttl_seconds: float = Field(default=10.0, ge=0.0)
    reference_cache_ttl_seconds: float = Field(default=300.0, ge=0.0)

    # Backing store
    store_max_retries: int = Field(default=3, ge=0)
    store_backoff_seconds: float = Field(default=0.5, ge=0.0)

    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Push sender endpoint that receives matching events (optional).",
    )
    frontend_allowed_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(
            "http://localhost:8081",
            "http://127.0.0.1:8081",
            "http://localhost:19006",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )
    supabase_documents_table: str = Field(default="documents")
    supabase_batch_function: str = Field(
        default="apply_document_batch",
        description="Postgres function applying a list of document writes in one transaction.",
    )

    @field_validator("stations_file", "travel_times_file", mode="before")
    @classmethod
    def _resolve_reference_file(cls, value: Any) -> Path:
        return Path(str(value)).expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _origins_from_env(cls, value: Any) -> tuple[str, ...]:
        return tuple(_env_items(value))

    @field_validator("search_detour_limits", mode="before")
    @classmethod
    def _detour_limits_from_env(cls, value: Any) -> tuple[int, ...]:
        try:
            return tuple(int(item) for item in _env_items(value))
        except ValueError as exc:
            raise ValueError(f"search_detour_limits must be whole minutes, got {value!r}") from exc


settings = Settings()
