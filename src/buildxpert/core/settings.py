"""Migration tooling settings.

All fields can be set via ``BUILDXPERT_*`` environment variables or a
``.env`` / ``config.env`` file next to the working directory. The database
URL additionally honours the backend's historical ``DATABASE_URL``.

Examples:
    >>> from buildxpert.core.settings import MigrateSettings
    >>> MigrateSettings(database_url="postgresql://app:pw@db/buildxpert").backend
    'postgresql'

Tags:
    settings, configuration, pydantic, environment, buildxpert
"""

from __future__ import annotations

import getpass
import logging
import socket
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def default_executed_by() -> str:
    """Identify the operator running migrations as ``user@host``."""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return f"{user}@{socket.gethostname()}"


class MigrateSettings(BaseSettings):
    """Settings for the migration runner."""

    model_config = SettingsConfigDict(
        env_prefix="BUILDXPERT_",
        env_file=(".env", "config.env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite:///buildxpert.db",
        validation_alias=AliasChoices("BUILDXPERT_DATABASE_URL", "DATABASE_URL", "database_url"),
    )
    ledger_table: str = Field(default="migrations", pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")

    # ── Locking ──────────────────────────────────────────────────
    app_name: str = Field(default="buildxpert")
    lock_ttl_seconds: int = Field(default=3600, gt=0)

    # ── Bookkeeping ──────────────────────────────────────────────
    executed_by: str = Field(default_factory=default_executed_by)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: Literal["console", "json", "auto"] = Field(default="auto")

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level {value!r}")
        return level

    @property
    def backend(self) -> str:
        scheme = self.database_url.split(":", 1)[0].split("+", 1)[0]
        return "postgresql" if scheme in ("postgresql", "postgres") else scheme

    @property
    def lock_name(self) -> str:
        return f"{self.app_name}.migrations"

    @property
    def json_logs(self) -> bool | None:
        if self.log_format == "auto":
            return None
        return self.log_format == "json"


@lru_cache(maxsize=1)
def get_settings() -> MigrateSettings:
    """Load and cache settings from the environment."""
    return MigrateSettings()


__all__ = ["MigrateSettings", "get_settings", "default_executed_by"]
