"""Execution context shared by the vagrant workflows."""
from __future__ import annotations

import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

from .config import AppConfig
from .errors import ConfigError, ToolNotFoundError
from .logging import OperationScope

VAGRANT_STEP = "vagrant"

T = TypeVar("T")


@dataclass(slots=True)
class ExecutionContext:
    """Configuration, run mode and the active log scope for one command."""

    config: AppConfig
    dry_run: bool = False
    op: OperationScope | None = None

    def yes(self, step: str = VAGRANT_STEP) -> bool:
        """Return ``True`` when *step* should pass its auto-confirm flag."""
        return self.config.yes(step)

    def record_step(self, name: str, *, status: str, detail: str | None = None) -> None:
        """Add a step to the structured log when a scope is attached."""
        if self.op is not None:
            self.op.add_step(name, status=status, detail=detail)


def require_binary(name: str) -> Path:
    """Return the absolute path to *name*, raising when it is not installed."""
    resolved = shutil.which(name)
    if resolved is None:
        raise ToolNotFoundError(f"Cannot find {name} in PATH.")
    return Path(resolved).absolute()


def require_option(value: Sequence[T] | None, message: str) -> Sequence[T]:
    """Return *value* unless it is missing or empty."""
    if not value:
        raise ConfigError(message)
    return value


__all__ = ["ExecutionContext", "VAGRANT_STEP", "require_binary", "require_option"]
