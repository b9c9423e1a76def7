"""Typed records describing vagrant boxes."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

PLACEHOLDER_NAME = "default"


class BoxStatus(str, Enum):
    """Power state reported by ``vagrant status`` when a box is discovered."""

    POWER_OFF = "poweroff"
    RUNNING = "running"
    SAVED = "saved"
    ABORTED = "aborted"

    @property
    def powered_on(self) -> bool:
        """Return ``True`` when the box is running."""
        return self is BoxStatus.RUNNING

    @classmethod
    def from_keyword(cls, keyword: str) -> BoxStatus:
        """Match a status keyword case-insensitively.

        Raises ``ValueError`` for keywords that are not one of the known states.
        """
        return cls(keyword.lower())


@dataclass(frozen=True, slots=True)
class BoxLocation:
    """Directory holding a Vagrantfile.

    One instance is created per discovery pass and shared by every record
    discovered from that directory.
    """

    path: Path

    @property
    def label(self) -> str:
        """Return the final path segment (or the full path for filesystem roots)."""
        return self.path.name or str(self.path)


@dataclass(frozen=True, slots=True)
class BoxRecord:
    """A box discovered in one directory, with its initial power state."""

    location: BoxLocation
    name: str
    initial_status: BoxStatus

    @property
    def path(self) -> Path:
        """Return the working directory used for every vagrant call on this box."""
        return self.location.path

    @property
    def display_name(self) -> str:
        """Return a human-readable label.

        ``default`` says nothing once several directories are scanned, so the
        directory name stands in for it.
        """
        if self.name == PLACEHOLDER_NAME:
            return self.location.label
        return self.name

    def __str__(self) -> str:
        return f"{self.name} @ {self.path}"


@dataclass(frozen=True, slots=True)
class OutdatedEntry:
    """One ``box outdated --global`` line: a box and the provider it is outdated for."""

    box: str
    provider: str


__all__ = ["BoxLocation", "BoxRecord", "BoxStatus", "OutdatedEntry", "PLACEHOLDER_NAME"]
