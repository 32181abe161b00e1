"""RiskVision configuration loaded from environment variables."""

from __future__ import annotations

import json
from pydantic_settings import BaseSettings
from pydantic import Field, AliasChoices


DEFAULT_JWT_SECRET = "change-me-in-production-riskvision"


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./riskvision.db",
        alias="DATABASE_URL",
    )
    auto_create_schema: bool = Field(default=True, alias="AUTO_CREATE_SCHEMA")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    cors_origins: str = Field(default='["http://localhost:5173"]', alias="CORS_ORIGINS")
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="text", alias="LOG_FORMAT")
    rate_limit_default: str = Field(default="100/minute", alias="RATE_LIMIT_DEFAULT")
    strict_startup_validation: bool = Field(default=False, alias="STRICT_STARTUP_VALIDATION")

    # Supabase Auth (external identity provider)
    supabase_url: str = Field(default="", alias="SUPABASE_URL")
    supabase_anon_key: str = Field(default="", alias="SUPABASE_ANON_KEY")
    supabase_jwt_secret: str = Field(default="", alias="SUPABASE_JWT_SECRET")

    # Local JWT (used when Supabase is not configured)
    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET, alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_expire_minutes: int = Field(default=60 * 24, alias="JWT_EXPIRE_MINUTES")

    # LLM defaults (per-user configuration overrides these)
    llm_provider: str = Field(default="riskvision", alias="LLM_PROVIDER")
    llm_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("LLM_API_KEY", "DEEPSEEK_API_KEY"),
    )
    llm_model: str = Field(default="deepseek-chat", alias="LLM_MODEL")
    llm_temperature: float = Field(default=0.7, alias="LLM_TEMPERATURE")
    llm_timeout_seconds: float = Field(default=120.0, alias="LLM_TIMEOUT_SECONDS")

    # Risk generation
    generation_default_count: int = Field(default=20, alias="GENERATION_DEFAULT_COUNT")
    generation_max_count: int = Field(default=50, alias="GENERATION_MAX_COUNT")

    # Risk matrix rendering
    matrix_size: int = Field(default=500, alias="MATRIX_SIZE")
    matrix_point_radius: float = Field(default=8.0, alias="MATRIX_POINT_RADIUS")

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in {"production", "prod"}

    @property
    def supabase_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    @property
    def cors_origins_list(self) -> list[str]:
        raw = (self.cors_origins or "").strip()
        if not raw:
            return []

        # Supports JSON list format and comma-separated format.
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, list):
                    return [str(origin).strip() for origin in parsed if str(origin).strip()]
            except json.JSONDecodeError:
                pass

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
