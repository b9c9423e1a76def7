"""Exception hierarchy shared across boxgrade."""
from __future__ import annotations


class BoxgradeError(RuntimeError):
    """Base class for failures raised by boxgrade."""


class ConfigError(BoxgradeError):
    """Raised when configuration parsing fails or a required option is missing."""


class ToolNotFoundError(BoxgradeError):
    """Raised when a required external binary is not installed."""


class VagrantError(BoxgradeError):
    """Raised when a vagrant invocation exits unsuccessfully."""


class StatusParseError(BoxgradeError):
    """Raised when ``vagrant status`` output cannot be parsed."""


class SkipStep(Exception):  # noqa: N818 - mirrors the step-skipping vocabulary.
    """Signal that an operation was intentionally not performed.

    This is not a failure: callers report it separately and it never changes
    the exit code.
    """


__all__ = [
    "BoxgradeError",
    "ConfigError",
    "SkipStep",
    "StatusParseError",
    "ToolNotFoundError",
    "VagrantError",
]
