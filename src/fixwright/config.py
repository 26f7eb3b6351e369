"""Environment-based configuration and application constants."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from fixwright.constants import (
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_RATE_LIMIT_REQUESTS,
    DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
    DEFAULT_SKIP_DIRECTORIES,
)

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Reads from .env file and environment variables."""

    # Model chain (first = primary, rest = fallbacks tried in order)
    litellm_model_chain: Annotated[list[str], NoDecode] = [
        "gemini/gemini-1.5-pro",
        "openai/gpt-4.1-mini",
    ]
    llm_max_concurrency: int = 4
    llm_timeout_seconds: float = 60.0

    # Backend quota, shared by every run in the process
    rate_limit_max_requests: int = DEFAULT_RATE_LIMIT_REQUESTS
    rate_limit_window_seconds: float = DEFAULT_RATE_LIMIT_WINDOW_SECONDS
    rate_limit_max_retries: int = 3

    # Fingerprint cache
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES

    # Database
    database_url: str = "sqlite:///data/fixwright.db"

    # Directories
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")

    # Logging
    log_level: str = "INFO"
    debug_mode: bool = False

    # Analysis
    analysis_timeout_seconds: float = 1800.0
    max_file_size_bytes: int = 1_048_576  # 1MB

    # API
    cors_origins: str = "http://localhost:3000"

    # Ingestion
    skip_directories: list[str] = list(DEFAULT_SKIP_DIRECTORIES)

    @field_validator("litellm_model_chain", mode="before")
    @classmethod
    def _parse_chain(cls, v: Any) -> Any:
        """Accept comma-separated string or JSON array."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("litellm_model_chain")
    @classmethod
    def _validate_chain(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError(
                "litellm_model_chain must contain at least one model"
            )
        seen: set[str] = set()
        dupes: list[str] = []
        for m in v:
            if m in seen:
                dupes.append(m)
            seen.add(m)
        if dupes:
            logger.warning(
                "Duplicate models in LITELLM_MODEL_CHAIN: %s",
                ", ".join(dupes),
            )
        return v

    @field_validator(
        "llm_max_concurrency",
        "rate_limit_max_requests",
        "cache_max_entries",
    )
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("rate_limit_max_retries")
    @classmethod
    def _validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must not be negative")
        return v

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator(
        "llm_timeout_seconds",
        "rate_limit_window_seconds",
        "cache_ttl_seconds",
        "analysis_timeout_seconds",
    )
    @classmethod
    def _validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("duration must be positive")
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "",
        "extra": "ignore",
    }


def create_app_engine(
    url: str, *, echo: bool = False
) -> AsyncEngine:
    """Create async SQLite engine with WAL journal mode.

    Handles URL conversion (sqlite:/// → sqlite+aiosqlite:///)
    and sets WAL mode via a pool-connect event listener so it
    fires once per raw DBAPI connection, not per ORM session.
    """
    if url.startswith("sqlite:///"):
        db_url = "sqlite+aiosqlite:///" + url[len("sqlite:///"):]
    else:
        db_url = url
    engine = create_async_engine(db_url, echo=echo)

    @event.listens_for(engine.sync_engine, "connect")
    def _set_wal_mode(
        dbapi_conn: object,
        _connection_record: object,
    ) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine
