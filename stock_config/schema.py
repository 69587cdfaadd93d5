"""
LedgerSettings schema.

Runtime settings for the stock ledger, parsed from YAML by
``stock_config.loader``.  Frozen: a settings object never changes after
loading; a new configuration means a new object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection and pool settings handed to ``build_engine``."""

    url: str = "sqlite:///stock_ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    sqlite_busy_timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("database.url must not be empty")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(f"database.max_overflow must be >= 0, got {self.max_overflow}")
        if self.sqlite_busy_timeout <= 0:
            raise ValueError("database.sqlite_busy_timeout must be positive")

    def engine_kwargs(self) -> dict[str, Any]:
        return {
            "echo": self.echo,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "sqlite_busy_timeout": self.sqlite_busy_timeout,
        }


@dataclass(frozen=True)
class AttributionSettings:
    """Backlog runner limits.  batch_limit None means drain everything."""

    batch_limit: int | None = None

    def __post_init__(self) -> None:
        if self.batch_limit is not None and self.batch_limit < 1:
            raise ValueError(f"attribution.batch_limit must be >= 1, got {self.batch_limit}")


@dataclass(frozen=True)
class LedgerSettings:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    attribution: AttributionSettings = field(default_factory=AttributionSettings)
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {_LOG_LEVELS}, got {self.log_level!r}")

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level.upper())
