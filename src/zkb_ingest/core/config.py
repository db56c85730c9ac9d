"""
zkb-ingest Centralized Configuration

Provides validated, type-safe access to all environment variables using Pydantic Settings.

Usage:
    from zkb_ingest.core.config import get_settings

    settings = get_settings()
    store = SQLiteKillmailStore(db_path=settings.killmail_db_path)

Data Paths:
    All data is stored in {instance_root}/cache/ unless ZKB_DATABASE is set:
    - cache/killmails.db: Killmail store

Environment Variables:
    ZKB_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    ZKB_DEBUG: Legacy debug flag (enables DEBUG level if set)
    ZKB_LOG_JSON: Output logs as JSON
    ZKB_DATABASE: Explicit path to the SQLite database
    ZKB_NO_RETRY: Disable HTTP retry logic
    ZKB_REDISQ_QUEUE_ID: Persistent RedisQ queue identifier
    ZKB_WORKERS: Number of concurrent pipeline workers
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import ESI_BASE_URL, REDISQ_URL, USER_AGENT, ZKB_HISTORY_URL


def _find_project_root() -> Path | None:
    """
    Find the project root by searching upward for pyproject.toml.

    Returns:
        Project root directory, or None if not found
    """
    current = Path(__file__).resolve().parent
    for _ in range(10):  # Limit search depth
        if (current / "pyproject.toml").exists():
            return current
        parent = current.parent
        if parent == current:
            break  # Reached filesystem root
        current = parent
    return None


def _find_project_env_file() -> Path | None:
    """Return the project's .env file if one exists next to pyproject.toml."""
    root = _find_project_root()
    if root is None:
        return None
    env_file = root / ".env"
    return env_file if env_file.exists() else None


def _find_instance_root() -> Path:
    """
    Find the instance root directory.

    Resolution order:
    1. ZKB_INSTANCE_ROOT environment variable (explicit override)
    2. Project root (directory containing pyproject.toml)
    3. Current working directory (fallback)
    """
    import os

    override = os.environ.get("ZKB_INSTANCE_ROOT")
    if override:
        return Path(override)

    return _find_project_root() or Path.cwd()


# Resolve paths at module load time
_ENV_FILE = _find_project_env_file()
_INSTANCE_ROOT = _find_instance_root()


class ZkbSettings(BaseSettings):
    """
    Ingestion configuration settings with validation.

    Environment variables are automatically loaded with the ZKB_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="ZKB_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level for ingestion components",
    )

    debug: bool = Field(
        default=False,
        description="Legacy debug flag (enables DEBUG level if set)",
    )

    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format for machine parsing",
    )

    # =========================================================================
    # Storage
    # =========================================================================

    instance_root: Path = Field(
        default=_INSTANCE_ROOT,
        description="Instance root directory (project root containing pyproject.toml)",
    )

    database: Optional[Path] = Field(
        default=None,
        description="Explicit killmail database path (overrides instance_root/cache)",
    )

    # =========================================================================
    # Event Sources
    # =========================================================================

    redisq_url: str = Field(
        default=REDISQ_URL,
        description="zKillboard RedisQ long-poll endpoint",
    )

    redisq_queue_id: str = Field(
        default="",
        description="RedisQ queue identifier (empty = generate per run)",
    )

    redisq_ttw: int = Field(
        default=10,
        ge=1,
        le=10,
        description="RedisQ time-to-wait for the long poll, in seconds",
    )

    history_url: str = Field(
        default=ZKB_HISTORY_URL,
        description="zKillboard daily history endpoint template",
    )

    user_agent: str = Field(
        default=USER_AGENT,
        description="User-Agent sent to zKillboard and ESI",
    )

    # =========================================================================
    # ESI Enrichment
    # =========================================================================

    esi_base_url: str = Field(
        default=ESI_BASE_URL,
        description="ESI base URL for killmail detail requests",
    )

    fetch_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout for ESI fetches, in seconds",
    )

    fetch_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Maximum attempts for a transient ESI failure",
    )

    fetch_min_wait: float = Field(
        default=1.0,
        ge=0,
        description="Initial backoff between ESI attempts, in seconds",
    )

    fetch_max_wait: float = Field(
        default=60.0,
        ge=0,
        description="Backoff ceiling between ESI attempts, in seconds",
    )

    no_retry: bool = Field(
        default=False,
        description="Disable HTTP retry logic (tenacity)",
    )

    # =========================================================================
    # Pipeline
    # =========================================================================

    workers: int = Field(
        default=4,
        ge=1,
        description="Concurrent pipeline workers",
    )

    queue_size: int = Field(
        default=100,
        ge=1,
        description="Intake queue capacity between the event source and workers",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def effective_log_level(self) -> str:
        """
        Get effective log level, respecting legacy ZKB_DEBUG.

        Priority:
        1. Explicit ZKB_LOG_LEVEL
        2. ZKB_DEBUG=1 -> DEBUG
        3. Default: WARNING
        """
        if self.debug and self.log_level == "WARNING":
            return "DEBUG"
        return self.log_level

    @property
    def log_level_int(self) -> int:
        """Get effective log level as logging constant."""
        return getattr(logging, self.effective_log_level)

    @property
    def cache_dir(self) -> Path:
        """Path to cache directory."""
        return self.instance_root / "cache"

    @property
    def killmail_db_path(self) -> Path:
        """Path to killmail database."""
        if self.database is not None:
            return self.database
        return self.cache_dir / "killmails.db"

    @property
    def effective_max_attempts(self) -> int:
        """Attempt cap for ESI fetches; a single attempt when retry is disabled."""
        return 1 if self.no_retry else self.fetch_max_attempts


# =============================================================================
# Singleton Accessor
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> ZkbSettings:
    """
    Get the singleton settings instance.

    The settings are validated at first access.
    """
    return ZkbSettings()


def reset_settings() -> None:
    """
    Reset the settings cache (for testing).

    After calling this, the next get_settings() call will
    reload settings from environment variables.
    """
    get_settings.cache_clear()


def is_retry_disabled() -> bool:
    """Check if retry logic is disabled via environment."""
    return get_settings().no_retry
