"""Environment-driven settings for fieldspine.

``FieldSpineSettings`` collects everything a :class:`~fieldspine.context.FieldSpineContext`
needs to build its collaborators: the database URL, logging, the read
cache, and the few behavioural conventions that callers may want to flip.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not at first use
    - **Environment-driven:** ``FIELDSPINE_*`` variables and ``.env`` files
    - **Sensible defaults:** In-memory SQLite works out of the box

Examples:
    >>> from fieldspine.core.settings import FieldSpineSettings
    >>> settings = FieldSpineSettings(database_url="sqlite:///content.db")
    >>> settings.default_language
    'en'

Tags:
    settings, configuration, pydantic, environment, fieldspine
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FieldSpineSettings(BaseSettings):
    """Settings for one fieldspine context.

    Fields
    ──────
    database_url        : SQLAlchemy-style URL (``sqlite:///path``, ``postgresql://…``)
    debug               : Enable debug mode
    log_level           : structlog log level
    log_json            : Force JSON (True) / console (False) output; None = auto
    default_language    : Language code used for EAV values when none is passed
    cache_enabled       : Enable the in-process entity read cache
    cache_max_size      : Max cached rows before LRU eviction
    cache_ttl_seconds   : Default TTL for cached rows
    empty_last_page     : ``last_page`` reported by ``paginate`` when total is 0
    optimistic_locking  : Compare-and-swap on ``revision_id`` for revisioned entities
    """

    model_config = SettingsConfigDict(
        env_prefix="FIELDSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_url: str = "sqlite:///:memory:"

    # ── Observability ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Behaviour ────────────────────────────────────────────────
    default_language: str = "en"
    cache_enabled: bool = True
    cache_max_size: int = Field(default=10_000, ge=1)
    cache_ttl_seconds: int = Field(default=3600, ge=1)
    empty_last_page: int = Field(default=0, description="0 or 1")
    optimistic_locking: bool = True

    @field_validator("empty_last_page")
    @classmethod
    def _check_empty_last_page(cls, value: int) -> int:
        if value not in (0, 1):
            raise ValueError("empty_last_page must be 0 or 1")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()


@lru_cache(maxsize=1)
def get_settings() -> FieldSpineSettings:
    """Return settings loaded from the environment (cached)."""
    return FieldSpineSettings()


__all__ = [
    "FieldSpineSettings",
    "get_settings",
]
