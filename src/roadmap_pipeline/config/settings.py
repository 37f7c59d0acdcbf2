"""
Configuration with Pydantic Settings.

Every section can be overridden from the environment with the ``ROADMAP_``
prefix and ``__`` as the nested delimiter, e.g.
``ROADMAP_GENERATION__API_KEY=sk-...`` or ``ROADMAP_STORAGE__BACKEND=sql``.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GenerationConfig(BaseModel):
    """Configuration for the external generative service."""

    base_url: str = Field("https://openrouter.ai/api/v1", description="Chat completions base URL")
    model: str = Field("moonshotai/kimi-k2")
    api_key: str | None = Field(None, description="Bearer token for the provider")
    timeout: float = Field(30.0, gt=0, description="Total request timeout in seconds")
    connect_timeout: float = Field(5.0, gt=0)
    max_retries: int = Field(2, ge=0, description="Extra attempts after the first one")
    temperature: float = Field(0.4, ge=0.0, le=2.0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")


class PipelineConfig(BaseModel):
    """Retry back-off for retryable stages. A multiplier of 0 retries immediately."""

    retry_backoff_multiplier: float = Field(0.5, ge=0.0)
    retry_backoff_max: float = Field(4.0, ge=0.0)


class StorageConfig(BaseModel):
    """Configuration for the assessment store."""

    backend: Literal["local", "sql"] = Field("local")
    root: Path = Field(Path("./data/assessments"))
    database_url: str = Field("sqlite:///./data/assessments.db")
    persist_fallback_scores: bool = Field(
        True, description="Persist scores when the plan had to be replaced by the fallback"
    )


class ObservabilityConfig(BaseModel):
    log_level: str = Field("INFO")
    service_name: str = Field("roadmap-pipeline")
    service_version: str = Field("1.0.0")
    enable_tracing: bool = Field(False)
    otlp_endpoint: str | None = Field(None)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class APIConfig(BaseModel):
    host: str = Field("0.0.0.0")
    port: int = Field(8000, gt=0, le=65535)
    reload: bool = Field(False)
    enable_cors: bool = Field(True)
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="ROADMAP_", env_nested_delimiter="__", case_sensitive=False, extra="ignore"
    )

    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    environment: str = Field(
        "development", description="Environment: development, staging, production"
    )
    debug: bool = Field(False)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
