"""Discover vagrant boxes and upgrade the systems inside them."""
from __future__ import annotations

import logging
import shlex
from contextlib import nullcontext
from pathlib import Path

from .errors import BoxgradeError, SkipStep
from .execution import ExecutionContext, require_binary, require_option
from .models import BoxRecord
from .parsing import parse_status_output
from .power import temporary_power_on
from .providers.vagrant import VagrantProvider
from .terminal import print_info, print_separator

LOGGER = logging.getLogger(__name__)


def _vagrant(context: ExecutionContext) -> VagrantProvider:
    return VagrantProvider(
        require_binary(context.config.vagrant.bin),
        dry_run=context.dry_run,
    )


def get_boxes(vagrant: VagrantProvider, directory: str | Path) -> list[BoxRecord]:
    """Return the boxes defined by the Vagrantfile in *directory*."""
    output = vagrant.status(directory)
    LOGGER.debug("Vagrant output in %s: %s", directory, output.stdout)
    return parse_status_output(output.stdout, directory)


def collect_boxes(context: ExecutionContext) -> list[BoxRecord]:
    """Enumerate boxes across every configured directory.

    Directories that fail (vagrant errors, unparsable output) are logged and
    left out; the remaining directories are still scanned.
    """
    directories = require_option(
        context.config.vagrant.directories,
        "No Vagrant directories were specified in the configuration file",
    )
    vagrant = _vagrant(context)

    print_separator("Vagrant")
    print_info("Collecting Vagrant boxes")

    result: list[BoxRecord] = []
    for directory in directories:
        try:
            boxes = get_boxes(vagrant, directory)
        except BoxgradeError as exc:
            LOGGER.error("Error collecting vagrant boxes from %s: %s", directory, exc)
            context.record_step("vagrant.collect", status="error", detail=f"{directory}: {exc}")
            continue
        context.record_step(
            "vagrant.collect",
            status="success",
            detail=f"{directory}: {len(boxes)} box(es)",
        )
        result.extend(boxes)

    return result


def build_guest_command(context: ExecutionContext, box: BoxRecord) -> str:
    """Return the shell command that re-runs the upgrade tool inside *box*."""
    guest = context.config.guest
    command = f"env {guest.prefix_env}={shlex.quote(box.display_name)} {guest.command}"
    if context.yes():
        command += " -y"
    return command


def run_box(context: ExecutionContext, box: BoxRecord) -> None:
    """Upgrade the system inside *box*, powering it on temporarily if needed.

    Raises :class:`SkipStep` when the box is off and powering on is disabled.
    """
    if not box.initial_status.powered_on and not context.config.vagrant.power_on:
        raise SkipStep(f"Skipping powered off box {box.display_name} ({box})")

    vagrant = _vagrant(context)
    print_separator(f"Vagrant ({box.display_name})")

    power = (
        nullcontext()
        if box.initial_status.powered_on
        else temporary_power_on(vagrant, box, context)
    )
    with power:
        vagrant.ssh(box, build_guest_command(context, box))


__all__ = ["build_guest_command", "collect_boxes", "get_boxes", "run_box"]
