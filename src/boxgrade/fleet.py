"""Fleet-wide box image updates."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .errors import BoxgradeError
from .execution import ExecutionContext, require_binary
from .models import OutdatedEntry
from .parsing import parse_outdated_report
from .providers.vagrant import VagrantProvider
from .terminal import print_info, print_separator

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class FleetReport:
    """Outcome of :func:`reconcile_fleet`."""

    entries: list[OutdatedEntry] = field(default_factory=list)
    failures: list[tuple[OutdatedEntry, str]] = field(default_factory=list)
    pruned: bool = False

    @property
    def nothing_to_do(self) -> bool:
        """Return ``True`` when the report listed no outdated boxes."""
        return not self.entries

    @property
    def updated(self) -> list[OutdatedEntry]:
        """Return the entries that updated successfully."""
        failed = {entry for entry, _ in self.failures}
        return [entry for entry in self.entries if entry not in failed]


def reconcile_fleet(context: ExecutionContext) -> FleetReport:
    """Update every outdated box known to vagrant, then prune old versions.

    Update failures are logged and skipped. Prune runs once, after all
    updates, and only when something was outdated.
    """
    vagrant = VagrantProvider(
        require_binary(context.config.vagrant.bin),
        dry_run=context.dry_run,
    )
    print_separator("Vagrant boxes")

    outdated = vagrant.box_outdated_global()
    report = FleetReport(entries=parse_outdated_report(outdated.stdout))

    if report.nothing_to_do:
        print_info("No outdated boxes")
        context.record_step("vagrant.box.outdated", status="info", detail="no outdated boxes")
        return report

    for entry in report.entries:
        try:
            vagrant.box_update(entry.box, entry.provider)
        except BoxgradeError as exc:
            LOGGER.error("Failed to update box %s (%s): %s", entry.box, entry.provider, exc)
            report.failures.append((entry, str(exc)))
            context.record_step("vagrant.box.update", status="error", detail=str(exc))
            continue
        context.record_step(
            "vagrant.box.update",
            status="success",
            detail=f"{entry.box} ({entry.provider})",
        )

    vagrant.box_prune()
    report.pruned = True
    context.record_step("vagrant.box.prune", status="success")
    return report


__all__ = ["FleetReport", "reconcile_fleet"]
