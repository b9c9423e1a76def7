"""Transient power-on for boxes that were off or suspended.

A :class:`PowerLifecycleGuard` exists only for a box that had to be powered on.
Leaving its ``with`` block restores the box exactly once, however the block
exits.
"""
from __future__ import annotations

import logging
from types import TracebackType

from .errors import BoxgradeError
from .execution import ExecutionContext
from .models import BoxRecord, BoxStatus
from .providers.vagrant import VagrantProvider
from .terminal import console

LOGGER = logging.getLogger(__name__)

_POWER_UP = {
    BoxStatus.POWER_OFF: "up",
    BoxStatus.ABORTED: "up",
    BoxStatus.SAVED: "resume",
}

_RESTORE = {
    BoxStatus.POWER_OFF: "halt",
    BoxStatus.ABORTED: "halt",
    BoxStatus.SAVED: "suspend",
}


def power_up_subcommand(status: BoxStatus) -> str:
    """Return the vagrant subcommand that brings a box in *status* up."""
    try:
        return _POWER_UP[status]
    except KeyError:
        raise ValueError(f"No power-up transition for a {status.value} box") from None


def restore_subcommand(status: BoxStatus, *, always_suspend: bool = False) -> str:
    """Return the vagrant subcommand that returns a box to *status*."""
    if status not in _RESTORE:
        raise ValueError(f"No restore transition for a {status.value} box")
    if always_suspend:
        return "suspend"
    return _RESTORE[status]


class PowerLifecycleGuard:
    """Context manager owning the restoration of one powered-on box."""

    def __init__(
        self,
        vagrant: VagrantProvider,
        box: BoxRecord,
        context: ExecutionContext,
    ) -> None:
        """Track a box that has already been powered on; use :meth:`create`."""
        self.vagrant = vagrant
        self.box = box
        self.context = context
        self._released = False

    @classmethod
    def create(
        cls,
        vagrant: VagrantProvider,
        box: BoxRecord,
        context: ExecutionContext,
    ) -> PowerLifecycleGuard:
        """Power *box* on and return the guard responsible for powering it back down.

        A failed power-up raises :class:`~boxgrade.errors.VagrantError` and no
        guard is returned, so nothing will try to restore the box.
        """
        subcommand = power_up_subcommand(box.initial_status)
        vagrant.power(subcommand, box)
        context.record_step(f"vagrant.{subcommand}", status="success", detail=str(box))
        return cls(vagrant, box, context)

    @property
    def released(self) -> bool:
        """Return ``True`` once restoration has been attempted."""
        return self._released

    def release(self) -> None:
        """Return the box to its initial state. Failures are logged, never raised."""
        if self._released:
            return
        self._released = True

        subcommand = restore_subcommand(
            self.box.initial_status,
            always_suspend=self.context.config.vagrant.always_suspend,
        )
        console.print()
        try:
            self.vagrant.power(subcommand, self.box)
        except BoxgradeError as exc:
            LOGGER.warning("Failed to %s %s: %s", subcommand, self.box, exc)
            self.context.record_step(f"vagrant.{subcommand}", status="warning", detail=str(exc))
            return
        self.context.record_step(f"vagrant.{subcommand}", status="success", detail=str(self.box))

    def __enter__(self) -> PowerLifecycleGuard:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def temporary_power_on(
    vagrant: VagrantProvider,
    box: BoxRecord,
    context: ExecutionContext,
) -> PowerLifecycleGuard:
    """Power *box* on for the duration of a ``with`` block."""
    return PowerLifecycleGuard.create(vagrant, box, context)


__all__ = [
    "PowerLifecycleGuard",
    "power_up_subcommand",
    "restore_subcommand",
    "temporary_power_on",
]
