"""Pydantic configuration models for the resolution coach."""

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

VALID_LLM_PROVIDERS = {"auto", "claude"}


class LLMConfig(BaseModel):
    """LLM provider configuration."""

    provider: str = "auto"
    model: Optional[str] = None  # None = use provider default
    api_key: Optional[str] = None
    max_tokens: int = 1024
    max_tool_iterations: int = 10

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        if v not in VALID_LLM_PROVIDERS:
            raise ValueError(f"Invalid LLM provider: {v}. Must be one of {VALID_LLM_PROVIDERS}")
        return v

    @field_validator("max_tool_iterations")
    @classmethod
    def validate_iterations(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_tool_iterations must be >= 1, got {v}")
        return v


class StoreConfig(BaseModel):
    """Record store configuration."""

    backend: Literal["redis", "memory"] = "redis"
    url: str = "redis://localhost:6379/0"
    conversation_ttl_seconds: int = 86400
    socket_timeout: float = 5.0


class CoachConfig(BaseModel):
    """Coaching behaviour."""

    user_name: str = "the user"
    max_active_resolutions: int = 5

    @field_validator("max_active_resolutions")
    @classmethod
    def validate_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_active_resolutions must be >= 1, got {v}")
        return v


class NudgeConfig(BaseModel):
    """Proactive check-in thresholds."""

    max_per_session: int = 1
    gentle_days: int = 7
    moderate_days: int = 3
    persistent_days: int = 1

    def threshold_days(self) -> dict[str, int]:
        return {
            "gentle": self.gentle_days,
            "moderate": self.moderate_days,
            "persistent": self.persistent_days,
        }


class RetryConfig(BaseModel):
    """Retry/backoff configuration."""

    max_attempts: int = 3
    min_wait: float = 2.0
    llm_max_wait: float = 30.0


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_output: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class ResolutionCoachConfig(BaseModel):
    """Main configuration model."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    coach: CoachConfig = Field(default_factory=CoachConfig)
    nudges: NudgeConfig = Field(default_factory=NudgeConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def expand_env_vars(self):
        """Expand ${VAR} patterns in secrets and URLs."""
        if self.llm.api_key:
            key = self.llm.api_key
            if key.startswith("${") and key.endswith("}"):
                self.llm.api_key = os.getenv(key[2:-1], "")
        url = self.store.url
        if url.startswith("${") and url.endswith("}"):
            self.store.url = os.getenv(url[2:-1], "")
        return self

    def to_dict(self) -> dict:
        return self.model_dump(mode="python")
