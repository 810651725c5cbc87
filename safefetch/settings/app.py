"""Client settings powered by Pydantic BaseSettings."""

import logging
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from safefetch.fetch.config import SafeFetchConfig
from safefetch.fetch.constants import DEFAULT_BASE_DELAY_MS, DEFAULT_RETRIES
from safefetch.fetch.models import RetryPolicy


class SafeFetchSettings(BaseSettings):
    """Environment configuration for the default client and the CLI.

    Every field is read from a ``SAFE_FETCH_``-prefixed variable, e.g.
    ``SAFE_FETCH_TIMEOUT_MS=5000``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SAFE_FETCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = ""
    timeout_ms: Annotated[int, Field(gt=0)] | None = None
    total_timeout_ms: Annotated[int, Field(gt=0)] | None = None
    retries: Annotated[int, Field(ge=0, le=100)] = DEFAULT_RETRIES
    base_delay_ms: Annotated[int, Field(ge=0)] = DEFAULT_BASE_DELAY_MS
    max_delay_ms: Annotated[int, Field(ge=0)] | None = None
    log_level: str = "WARNING"
    log_json: bool = False

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        """Accept standard logging level names only."""
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            msg = f"Unknown log level: {v}"
            raise ValueError(msg)
        return level

    @property
    def log_level_value(self) -> int:
        """Numeric logging level."""
        return logging.getLevelNamesMapping()[self.log_level]

    def to_config(self) -> SafeFetchConfig:
        """Build client defaults from these settings."""
        return SafeFetchConfig(
            base_url=self.base_url,
            timeout_ms=self.timeout_ms,
            total_timeout_ms=self.total_timeout_ms,
            retries=RetryPolicy(
                retries=self.retries,
                base_delay_ms=self.base_delay_ms,
                max_delay_ms=self.max_delay_ms,
            ),
        )


def get_settings() -> SafeFetchSettings:
    """Get a settings instance."""
    return SafeFetchSettings()
