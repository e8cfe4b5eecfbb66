"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Richlist Tracker application, loading and validating environment
variables at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

DEFAULT_CHAIN = "mainchain"
DEFAULT_RICHLIST_URL = "https://ela.elastos.io/api/v1/richlist?page=1&pageSize=50"


def _parse_pairs(v: object, *, name: str) -> dict[str, str]:
    """Parse ``key=value`` pairs from a comma-separated string or a mapping."""
    if v is None:
        return {}
    if isinstance(v, dict):
        return {str(k).strip(): str(val).strip() for k, val in v.items()}
    if isinstance(v, str):
        pairs: dict[str, str] = {}
        for part in v.split(","):
            part = part.strip()
            if not part:
                continue
            if "=" not in part:
                raise ValueError(f"{name} entries must look like chain=value, got {part!r}")
            key, value = part.split("=", 1)
            pairs[key.strip()] = value.strip()
        return pairs
    raise TypeError(f"Invalid {name} type")


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL (or sqlite+aiosqlite) connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError(
                "DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string"
            )
        return v


class ChainSettings(BaseSettings):
    """Which chains are tracked and where their ranked lists come from."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    chains: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(DEFAULT_CHAIN,),
        alias="CHAINS",
        description="Chain identifiers to snapshot (comma-separated)",
    )
    source_urls: Annotated[dict[str, str], NoDecode] = Field(
        default_factory=lambda: {DEFAULT_CHAIN: DEFAULT_RICHLIST_URL},
        alias="RICHLIST_SOURCE_URLS",
        description="Ranked-list endpoint per chain (chain=url, comma-separated)",
    )
    offset_seconds: Annotated[dict[str, int], NoDecode] = Field(
        default_factory=dict,
        alias="CHAIN_OFFSET_SECONDS",
        description="Delay after each slot boundary per chain (chain=seconds, comma-separated)",
    )

    @field_validator("chains", mode="before")
    @classmethod
    def _parse_chains(cls, v: object) -> tuple[str, ...]:
        if isinstance(v, str):
            parts = tuple(p.strip() for p in v.split(",") if p.strip())
        elif isinstance(v, (list, tuple)):
            parts = tuple(str(x).strip() for x in v if str(x).strip())
        else:
            raise TypeError("Invalid CHAINS type")
        if not parts:
            raise ValueError("CHAINS must name at least one chain")
        return parts

    @field_validator("source_urls", mode="before")
    @classmethod
    def _parse_source_urls(cls, v: object) -> dict[str, str]:
        urls = _parse_pairs(v, name="RICHLIST_SOURCE_URLS")
        for chain, url in urls.items():
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"Source URL for chain {chain!r} must be an HTTP(S) endpoint")
        return urls

    @field_validator("offset_seconds", mode="before")
    @classmethod
    def _parse_offsets(cls, v: object) -> dict[str, int]:
        offsets = {chain: int(raw) for chain, raw in _parse_pairs(v, name="CHAIN_OFFSET_SECONDS").items()}
        for chain, seconds in offsets.items():
            if seconds < 0:
                raise ValueError(f"Offset for chain {chain!r} must be >= 0")
        return offsets

    def source_url_for(self, chain: str) -> str:
        """Return the configured ranked-list URL for ``chain``."""
        try:
            return self.source_urls[chain]
        except KeyError:
            raise ValueError(f"No RICHLIST_SOURCE_URLS entry for chain {chain!r}") from None

    def offset_for(self, chain: str) -> int:
        return self.offset_seconds.get(chain, 0)


class FetchSettings(BaseSettings):
    """Bounded retry policy for ranked-list fetches."""

    model_config = SettingsConfigDict(env_prefix="FETCH_", extra="ignore")

    timeout_seconds: float = Field(
        default=15.0,
        alias="FETCH_TIMEOUT_SECONDS",
        gt=0.0,
        le=300.0,
        description="Timeout for a single fetch attempt (seconds)",
    )
    max_attempts: int = Field(
        default=3,
        alias="FETCH_MAX_ATTEMPTS",
        ge=1,
        le=10,
        description="Attempts per fetch before the failure reaches the scheduler",
    )
    retry_delay_seconds: float = Field(
        default=5.0,
        alias="FETCH_RETRY_DELAY_SECONDS",
        ge=0.0,
        le=300.0,
        description="Fixed delay between fetch attempts (seconds)",
    )


class SchedulerSettings(BaseSettings):
    """Snapshot cadence and failure backoff policy."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_", extra="ignore")

    slot_minutes: int = Field(
        default=5,
        alias="SCHEDULER_SLOT_MINUTES",
        ge=1,
        le=60,
        description="Snapshot time-slot size (minutes)",
    )
    failure_threshold: int = Field(
        default=3,
        alias="SCHEDULER_FAILURE_THRESHOLD",
        ge=1,
        le=100,
        description="Consecutive failures before scheduled attempts back off",
    )
    backoff_base_minutes: float = Field(
        default=15.0,
        alias="SCHEDULER_BACKOFF_BASE_MINUTES",
        gt=0.0,
        le=24 * 60,
        description="Cooldown applied when the failure threshold is first reached",
    )
    backoff_max_minutes: float = Field(
        default=120.0,
        alias="SCHEDULER_BACKOFF_MAX_MINUTES",
        gt=0.0,
        le=7 * 24 * 60,
        description="Upper bound on the cooldown",
    )
    backoff_step_failures: int = Field(
        default=3,
        alias="SCHEDULER_BACKOFF_STEP_FAILURES",
        ge=1,
        le=100,
        description="Extra failures needed to double the cooldown",
    )


class AnalyticsSettings(BaseSettings):
    """Windows and thresholds for the statistics engine."""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_", extra="ignore")

    history_window: int = Field(
        default=30,
        alias="ANALYTICS_HISTORY_WINDOW",
        ge=1,
        le=1000,
        description="Prior observations loaded per address when analyzing a snapshot",
    )
    volatility_window: int = Field(
        default=30,
        alias="ANALYTICS_VOLATILITY_WINDOW",
        ge=2,
        le=1000,
        description="Rank observations used for rank volatility",
    )
    trend_window: int = Field(
        default=15,
        alias="ANALYTICS_TREND_WINDOW",
        ge=3,
        le=1000,
        description="Balance observations used for trend classification",
    )
    trend_slope_pct: float = Field(
        default=0.05,
        alias="ANALYTICS_TREND_SLOPE_PCT",
        ge=0.0,
        le=100.0,
        description="Slope (% of mean balance per step) separating holding from a trend",
    )
    erratic_slope_pct: float = Field(
        default=0.1,
        alias="ANALYTICS_ERRATIC_SLOPE_PCT",
        ge=0.0,
        le=100.0,
        description="Slope (% of mean balance per step) above which a poor fit is erratic",
    )
    erratic_max_r_squared: float = Field(
        default=0.3,
        alias="ANALYTICS_ERRATIC_MAX_R_SQUARED",
        ge=0.0,
        le=1.0,
        description="Fits with R^2 below this are considered noisy",
    )
    dormancy_min_gap: int = Field(
        default=144,
        alias="ANALYTICS_DORMANCY_MIN_GAP",
        ge=1,
        le=1_000_000,
        description="Consecutive missed snapshots that count as dormancy",
    )
    ghost_max_appearances: int = Field(
        default=3,
        alias="ANALYTICS_GHOST_MAX_APPEARANCES",
        ge=1,
        le=1000,
        description="Maximum total appearances for a ghost wallet",
    )
    correlation_top_n: int = Field(
        default=20,
        alias="ANALYTICS_CORRELATION_TOP_N",
        ge=2,
        le=500,
        description="Top-ranked addresses considered for pairwise correlation",
    )
    correlation_window: int = Field(
        default=288,
        alias="ANALYTICS_CORRELATION_WINDOW",
        ge=5,
        le=100_000,
        description="Most recent snapshots used to build balance-change series",
    )
    correlation_period: str = Field(
        default="24h",
        alias="ANALYTICS_CORRELATION_PERIOD",
        min_length=1,
        max_length=16,
        description="Period label stored with computed correlations",
    )
    correlation_interval_seconds: int = Field(
        default=3600,
        alias="ANALYTICS_CORRELATION_INTERVAL_SECONDS",
        ge=60,
        le=7 * 86_400,
        description="How often to recompute wallet correlations",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from richlist_tracker.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.chain.chains)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    chain: ChainSettings = Field(
        default_factory=lambda: ChainSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    fetch: FetchSettings = Field(
        default_factory=lambda: FetchSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scheduler: SchedulerSettings = Field(
        default_factory=lambda: SchedulerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    analytics: AnalyticsSettings = Field(
        default_factory=lambda: AnalyticsSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "chains": ",".join(self.chain.chains),
            "sources": {chain: url for chain, url in self.chain.source_urls.items()},
            "fetch": {
                "timeout_seconds": str(self.fetch.timeout_seconds),
                "max_attempts": str(self.fetch.max_attempts),
                "retry_delay_seconds": str(self.fetch.retry_delay_seconds),
            },
            "scheduler": {
                "slot_minutes": str(self.scheduler.slot_minutes),
                "failure_threshold": str(self.scheduler.failure_threshold),
                "backoff_max_minutes": str(self.scheduler.backoff_max_minutes),
            },
            "analytics": {
                "dormancy_min_gap": str(self.analytics.dormancy_min_gap),
                "ghost_max_appearances": str(self.analytics.ghost_max_appearances),
                "correlation_period": self.analytics.correlation_period,
            },
            "log_level": self.log_level,
        }

    def validate_requirements(self) -> None:
        """Refuse to run when a tracked chain has no ranked-list source."""
        for chain in self.chain.chains:
            self.chain.source_url_for(chain)

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
