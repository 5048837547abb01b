"""
Settings for the captações ingestion service.

Read from the environment or a .env file through pydantic-settings; a
missing Supabase URL/key fails at import time.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration; field names map to upper-case env vars."""

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # STORE
    # ===================
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_key: str = Field(..., description="Anon key, used when no service key is set")
    supabase_service_key: Optional[str] = Field(
        None,
        description="Service role key; required to insert into the captações table"
    )
    captacoes_table: str = Field(
        "dados_captacoes",
        description="Destination table for captação rows"
    )
    upload_history_table: str = Field(
        "upload_history",
        description="File hashes of previous uploads"
    )
    store_page_size: int = Field(
        1000, ge=1, le=1000,
        description="Rows per page when reading stored rows for the duplicate check; Supabase returns at most 1000"
    )

    # ===================
    # UPLOAD PIPELINE
    # ===================
    ingestion_chunk_size: int = Field(
        500, ge=1, le=5000,
        description="Rows per insert call"
    )
    batch_yield_seconds: float = Field(
        0.05, ge=0, le=5,
        description="Pause after each insert call"
    )
    duplicate_sample_size: int = Field(
        10, ge=0, le=100,
        description="Duplicate rows described in the pre-commit summary"
    )
    result_display_limit: int = Field(
        50, ge=1, le=1000,
        description="Max errors or samples returned in one API response"
    )
    session_ttl_minutes: int = Field(
        30, ge=1, le=1440,
        description="Idle minutes before an open upload is discarded"
    )

    # ===================
    # SERVER
    # ===================
    environment: str = Field(
        "development",
        pattern="^(development|staging|production)$"
    )
    debug: bool = Field(True, description="Expose /docs and error details")
    log_level: str = Field(
        "INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$"
    )
    api_host: str = "0.0.0.0"
    api_port: int = Field(8000, ge=1000, le=65535)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Settings loaded once per process.

    Call get_settings.cache_clear() to reload.
    """
    return Settings()


settings = get_settings()
