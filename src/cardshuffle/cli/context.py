"""
CLI Context Management Module

Global CLI state shared by all Typer commands, held in a ContextVar:

- log_level: Logging level
- json_output: JSON output mode
- config_path: Optional TOML configuration file
"""

from __future__ import annotations

import contextvars
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class LogLevel(str, Enum):
    """Log level enumeration for type safety."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class CliContext(BaseModel):
    """CLI context model for managing global state."""

    log_level: LogLevel = Field(default=LogLevel.WARNING, description="Logging level")
    json_output: bool = Field(default=False, description="Emit JSON instead of tables")
    config_path: Path | None = Field(default=None, description="TOML configuration file")


_cli_context: contextvars.ContextVar[CliContext | None] = contextvars.ContextVar(
    "cli_context",
    default=None,
)


def get_cli_context() -> CliContext:
    """Return the current CLI context, or defaults when none was set."""
    return _cli_context.get() or CliContext()


def set_cli_context(context: CliContext) -> None:
    _cli_context.set(context)
