from dotenv import load_dotenv
from dataclasses import dataclass, field
from typing import Optional
import logging
import os

from autocrawl.constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
    DOM_STABILITY_INTERVAL_SECONDS,
    FAILED_ATTEMPT_DELAY_MS,
    FALLBACK_NAVIGATION_TIMEOUT_MS,
    MAX_SETTLE_SECONDS,
    PAGE_ACQUIRE_BACKOFF_MS,
    PAGE_CREATE_TIMEOUT_SECONDS,
    PRIMARY_NAVIGATION_TIMEOUT_MS,
    SETTLE_PAUSE_SECONDS,
)

load_dotenv()  # Loads variables from .env file

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Manages application settings loaded from environment variables.
    """
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///vehicles.db")  # Default to SQLite
    DB_BACKEND = os.getenv("DB_BACKEND", "local")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE")
    HEADLESS = _env_bool("HEADLESS", True)


settings = Settings()


@dataclass
class CrawlSessionConfig:
    """Per-run crawl limits and the referer carried between attempts."""
    max_depth: int = DEFAULT_MAX_DEPTH
    max_pages: int = DEFAULT_MAX_PAGES
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS
    last_url: Optional[str] = None

    def __post_init__(self):
        if self.max_depth < 0:
            raise ValueError("max_depth must be >= 0")
        if self.max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be >= 0")

    @classmethod
    def from_env(cls, prefix: str = "AUTOCRAWL_") -> "CrawlSessionConfig":
        """Load limits from environment variables.

        Variables are named with the prefix, e.g. AUTOCRAWL_MAX_PAGES.
        Values that fail to parse keep their defaults.

        Returns:
            CrawlSessionConfig: Configuration instance with values from environment
        """
        values = {}
        for field_name in ("max_depth", "max_pages", "base_delay_ms"):
            env_name = f"{prefix}{field_name.upper()}"
            env_value = os.getenv(env_name)
            if env_value is None:
                continue
            try:
                values[field_name] = int(env_value)
            except ValueError:
                logger.warning(f"Ignoring invalid value for {env_name}: {env_value!r}")
        return cls(**values)


@dataclass
class AttemptTimeouts:
    """Timeouts and delay windows used by a page attempt.

    Tests shrink the delay windows to zero to keep attempts instant.
    """
    page_create_seconds: float = PAGE_CREATE_TIMEOUT_SECONDS
    primary_navigation_ms: int = PRIMARY_NAVIGATION_TIMEOUT_MS
    fallback_navigation_ms: int = FALLBACK_NAVIGATION_TIMEOUT_MS
    acquire_backoff_ms: list = field(default_factory=lambda: list(PAGE_ACQUIRE_BACKOFF_MS))
    failed_delay_ms: tuple = FAILED_ATTEMPT_DELAY_MS
    settle_pause_seconds: float = SETTLE_PAUSE_SECONDS
    stability_interval_seconds: float = DOM_STABILITY_INTERVAL_SECONDS
    max_settle_seconds: float = MAX_SETTLE_SECONDS

    @classmethod
    def instant(cls) -> "AttemptTimeouts":
        """Timeouts with every delay window collapsed to zero."""
        return cls(
            acquire_backoff_ms=[(0, 0), (0, 0)],
            failed_delay_ms=(0, 0),
            settle_pause_seconds=0.0,
            stability_interval_seconds=0.0,
            max_settle_seconds=1.0,
        )
