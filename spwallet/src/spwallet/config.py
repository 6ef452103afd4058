"""
Configuration management using pydantic-settings.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from spwallet.constants import (
    DEFAULT_INDEXER_URL,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_MAX_BLOCKS,
    DEFAULT_MAX_RATE_LIMIT_RETRIES,
    DEFAULT_RATE_LIMIT_BACKOFF,
    DEFAULT_REQUEST_DELAY,
    DEFAULT_REQUEST_TIMEOUT,
)

Network = Literal["mainnet", "testnet", "signet", "regtest"]


class ScanConfig(BaseModel):
    """Pacing and retry settings for a scan against the indexer."""

    max_blocks: int = Field(
        default=DEFAULT_MAX_BLOCKS, ge=1, description="Blocks visited by a backward scan"
    )
    request_timeout: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT,
        gt=0,
        description="Seconds to wait for one indexer response before giving up on a height",
    )
    request_delay: float = Field(
        default=DEFAULT_REQUEST_DELAY,
        ge=0,
        description="Pause between successful height fetches to stay under rate limits",
    )
    rate_limit_backoff: float = Field(
        default=DEFAULT_RATE_LIMIT_BACKOFF,
        ge=0,
        description="Initial pause after a 429 response, doubled on each further 429",
    )
    max_backoff: float = Field(default=DEFAULT_MAX_BACKOFF, ge=0)
    max_rate_limit_retries: int = Field(
        default=DEFAULT_MAX_RATE_LIMIT_RETRIES,
        ge=0,
        description="Retries of a rate-limited height before it is skipped",
    )

    model_config = {"frozen": True}

    def backoff_for(self, attempt: int) -> float:
        """Backoff delay before retry number `attempt` (1-based)."""
        delay = self.rate_limit_backoff * (2 ** max(0, attempt - 1))
        return min(delay, self.max_backoff)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SP_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    network: Network = "mainnet"

    indexer_url: str = DEFAULT_INDEXER_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    request_delay: float = DEFAULT_REQUEST_DELAY
    rate_limit_backoff: float = DEFAULT_RATE_LIMIT_BACKOFF
    max_backoff: float = DEFAULT_MAX_BACKOFF
    max_rate_limit_retries: int = DEFAULT_MAX_RATE_LIMIT_RETRIES
    max_blocks: int = DEFAULT_MAX_BLOCKS

    log_level: str = "INFO"

    @field_validator("indexer_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def scan_config(self) -> ScanConfig:
        return ScanConfig(
            max_blocks=self.max_blocks,
            request_timeout=self.request_timeout,
            request_delay=self.request_delay,
            rate_limit_backoff=self.rate_limit_backoff,
            max_backoff=self.max_backoff,
            max_rate_limit_retries=self.max_rate_limit_retries,
        )


def get_settings(**overrides: Any) -> Settings:
    """Load settings from the environment, with explicit overrides taking precedence."""
    return Settings(**overrides)
