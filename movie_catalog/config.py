"""
Configuration for the movie catalog cache.

Values come from environment variables (optionally from a ``.env`` file next
to the project) and are validated with pydantic on construction.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .domain.entities import QueryType

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./movie_catalog.db"
DEFAULT_CATALOG_URL = "http://localhost:8080"

MAX_PAGE_SIZE = 100
LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in ("1", "true", "yes", "on")


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else None


class CatalogSettings(BaseModel):
    """
    Settings consumed by the repository, the stores and the catalog client.

    Attributes:
        ttl_seconds: Freshness window before a refresh is attempted
        popular_ttl_seconds: Override of ttl_seconds for popular pages
        detail_ttl_seconds: Override of ttl_seconds for single movies
        page_size: Page length for query results
        refresh_on_startup: Whether to eagerly warm the genre cache
        retry_on_referential_error: Refresh genres and retry a movie write once
            when it fails on unknown genres
    """

    ttl_seconds: int = Field(default=300, ge=0)
    popular_ttl_seconds: Optional[int] = Field(default=None, ge=0)
    detail_ttl_seconds: Optional[int] = Field(default=None, ge=0)
    page_size: int = Field(default=20, ge=1, le=MAX_PAGE_SIZE)
    refresh_on_startup: bool = True
    retry_on_referential_error: bool = True

    database_url: str = DEFAULT_DATABASE_URL

    catalog_base_url: str = DEFAULT_CATALOG_URL
    catalog_api_key: Optional[str] = None
    catalog_timeout_seconds: float = Field(default=10.0, gt=0)
    catalog_max_retries: int = Field(default=2, ge=1)
    catalog_rate_limit_requests: int = Field(default=10, ge=1)
    catalog_rate_limit_window: int = Field(default=1, ge=1)
    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_recovery_timeout: int = Field(default=60, ge=1)

    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("catalog_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("catalog_base_url must be an http(s) URL")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return v

    def ttl_for(self, query_type: QueryType) -> int:
        """Freshness window in seconds for a query family."""
        if query_type == QueryType.POPULAR and self.popular_ttl_seconds is not None:
            return self.popular_ttl_seconds
        if query_type == QueryType.MOVIE and self.detail_ttl_seconds is not None:
            return self.detail_ttl_seconds
        return self.ttl_seconds

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "CatalogSettings":
        """
        Build settings from the process environment.

        Args:
            env_file: Optional path of a dotenv file to load first. Defaults
                to ``.env`` in the current working directory.

        Returns:
            Validated settings
        """
        env_path = env_file or Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(dotenv_path=env_path)
            logger.info(f"Loaded environment from {env_path}")

        return cls(
            ttl_seconds=int(os.getenv("CATALOG_TTL_SECONDS", "300")),
            popular_ttl_seconds=_env_optional_int("CATALOG_POPULAR_TTL_SECONDS"),
            detail_ttl_seconds=_env_optional_int("CATALOG_DETAIL_TTL_SECONDS"),
            page_size=int(os.getenv("CATALOG_PAGE_SIZE", "20")),
            refresh_on_startup=_env_bool("CATALOG_REFRESH_ON_STARTUP", True),
            retry_on_referential_error=_env_bool("CATALOG_RETRY_ON_REFERENTIAL_ERROR", True),
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            catalog_base_url=os.getenv("CATALOG_BASE_URL", DEFAULT_CATALOG_URL),
            catalog_api_key=os.getenv("CATALOG_API_KEY") or None,
            catalog_timeout_seconds=float(os.getenv("CATALOG_TIMEOUT_SECONDS", "10")),
            catalog_max_retries=int(os.getenv("CATALOG_MAX_RETRIES", "2")),
            catalog_rate_limit_requests=int(os.getenv("CATALOG_RATE_LIMIT_REQUESTS", "10")),
            catalog_rate_limit_window=int(os.getenv("CATALOG_RATE_LIMIT_WINDOW", "1")),
            circuit_failure_threshold=int(os.getenv("CATALOG_CIRCUIT_FAILURE_THRESHOLD", "5")),
            circuit_recovery_timeout=int(os.getenv("CATALOG_CIRCUIT_RECOVERY_TIMEOUT", "60")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_json=_env_bool("LOG_JSON", True),
        )
