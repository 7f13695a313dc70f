"""
Configuration for the exam CLI.

Uses Pydantic Settings for environment variable management with .env file support.
Nested API settings use a double underscore, e.g. EXAM_API__BASE_URL.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiConfig(BaseModel):
    """Connection to the exam (selector/grader) service."""

    base_url: str = "http://localhost:4000"
    timeout_seconds: float = 30.0
    retry_attempts: int = 3

    # Endpoints
    start_endpoint: str = "/api/exam/start"
    submit_endpoint: str = "/api/exam/submit"
    adaptive_endpoint: str = "/api/exam/adaptive"
    history_endpoint: str = "/api/history"
    status_endpoint: str = "/api/status"
    exams_endpoint: str = "/api/exams"


class ExamSettings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="EXAM_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api: ApiConfig = Field(default_factory=ApiConfig)

    data_dir: Path = Field(
        default=Path.home() / ".exam",
        description="Directory holding the persisted session record",
    )
    state_key: str = Field(
        default="exam_state",
        description="Name of the session record",
    )
    log_level: str = Field(
        default="WARNING",
        description="loguru level for the stderr sink",
    )
    random_seed: int | None = Field(
        default=None,
        description="Seed for question/choice shuffling (unset = fresh each round)",
    )

    @property
    def state_dir(self) -> Path:
        return self.data_dir / "state"


@lru_cache(maxsize=1)
def get_settings() -> ExamSettings:
    """Get cached settings instance."""
    return ExamSettings()
