"""Application settings powered by Pydantic BaseSettings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from databinder.fetch.constants import (
    DEFAULT_ATTEMPT_TIMEOUT_MS,
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_JITTER_FACTOR,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_RETRIES,
)
from databinder.fetch.models import RetryPolicy


class AppSettings(BaseSettings):
    """Centralized environment configuration.

    Every field reads ``DATABINDER_<FIELD>`` from the environment or ``.env``.
    """

    model_config = SettingsConfigDict(
        env_prefix="DATABINDER_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"
    json_logs: bool = True
    default_batch_size: int = Field(default=100, ge=1)
    default_timeout_ms: int | None = Field(default=None, ge=1)

    retry_max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0, le=20)
    retry_base_delay_ms: int = Field(default=DEFAULT_BASE_DELAY_MS, ge=0)
    retry_max_delay_ms: int = Field(default=DEFAULT_MAX_DELAY_MS, ge=0)
    retry_exponential: bool = True
    retry_jitter_factor: float = Field(default=DEFAULT_JITTER_FACTOR, ge=0.0, le=1.0)
    retry_attempt_timeout_ms: int | None = Field(
        default=DEFAULT_ATTEMPT_TIMEOUT_MS, ge=1
    )

    def retry_policy(self) -> RetryPolicy:
        """Build the default retry policy from these settings."""
        return RetryPolicy(
            max_retries=self.retry_max_retries,
            base_delay_ms=self.retry_base_delay_ms,
            max_delay_ms=self.retry_max_delay_ms,
            exponential=self.retry_exponential,
            jitter_factor=self.retry_jitter_factor,
            attempt_timeout_ms=self.retry_attempt_timeout_ms,
        )


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
