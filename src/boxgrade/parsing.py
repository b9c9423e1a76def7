"""Parsers for the human-readable output of the vagrant CLI.

Both parsers are pure functions over captured text so they can be exercised
without a vagrant installation.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path

from .errors import StatusParseError
from .models import BoxLocation, BoxRecord, BoxStatus, OutdatedEntry

LOGGER = logging.getLogger(__name__)

# ``vagrant status`` prints "Current machine states:" followed by a blank line.
STATUS_HEADER_LINES = 2

OUTDATED_PATTERN = re.compile(r"\* '(.*?)' for '(.*?)' is outdated")


def _ends_listing(line: str) -> bool:
    # Some vagrant versions separate the trailing help text with a blank line,
    # others with a bare carriage return.
    return not line or line.startswith("\r")


def parse_status_output(text: str, directory: str | Path) -> list[BoxRecord]:
    """Parse ``vagrant status`` output captured in *directory*.

    Returns the boxes in listing order. Every record shares one
    :class:`BoxLocation`. Malformed lines raise :class:`StatusParseError`
    instead of being dropped, because a dropped line would hide a box from
    the upgrade run.
    """
    location = BoxLocation(Path(directory))
    records: list[BoxRecord] = []

    for line in text.split("\n")[STATUS_HEADER_LINES:]:
        if _ends_listing(line):
            break
        LOGGER.debug("Vagrant line: %r", line)
        tokens = line.split()
        if len(tokens) < 2:
            raise StatusParseError(f"Malformed vagrant status line in {directory}: {line!r}")
        name, keyword = tokens[0], tokens[1]
        try:
            status = BoxStatus.from_keyword(keyword)
        except ValueError as exc:
            raise StatusParseError(
                f"Unknown status {keyword!r} for box {name!r} in {directory}"
            ) from exc
        record = BoxRecord(location=location, name=name, initial_status=status)
        LOGGER.debug("Discovered %r", record)
        records.append(record)

    return records


def parse_outdated_report(text: str) -> list[OutdatedEntry]:
    """Extract ``(box, provider)`` pairs from ``vagrant box outdated --global``.

    Lines that do not follow vagrant's fixed phrasing are not entries.
    """
    return [
        OutdatedEntry(box=match.group(1), provider=match.group(2))
        for match in OUTDATED_PATTERN.finditer(text)
    ]


__all__ = [
    "OUTDATED_PATTERN",
    "STATUS_HEADER_LINES",
    "parse_outdated_report",
    "parse_status_output",
]
