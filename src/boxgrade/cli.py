"""Typer-powered command line interface for ``boxgrade``.

Commands wire configuration, structured logging and the vagrant workflows
together. Every command runs inside a structured log operation and maps
failures onto the exit codes in :mod:`boxgrade.exit_codes`.
"""
from __future__ import annotations

import json
import logging
import os
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import get_version
from .boxes import collect_boxes, run_box
from .config import LOG_LEVEL_ENV_VAR, AppConfig, load_config
from .errors import BoxgradeError, ConfigError, SkipStep, ToolNotFoundError
from .execution import ExecutionContext
from .exit_codes import ExitCode
from .fleet import reconcile_fleet
from .logging import OperationScope, StructuredLogger
from .models import BoxRecord
from .terminal import console

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to boxgrade's YAML config file.",
)

DRY_RUN_OPTION = typer.Option(
    False,
    "--dry-run",
    help="Print the vagrant commands that would change state instead of running them.",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit machine-readable JSON.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Upgrade Vagrant boxes and the systems running inside them.

        Boxes that are powered off or suspended are started only for the
        duration of their upgrade and are put back the way they were found.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect the resolved configuration.")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger


def _configure_logging(verbose: bool) -> None:
    level_name = os.environ.get(LOG_LEVEL_ENV_VAR, "WARNING").strip().upper()
    level = logging.getLevelNamesMapping().get(level_name)
    if level is None:
        console.print(f"[red]Unknown log level '{level_name}' in {LOG_LEVEL_ENV_VAR}.[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION)
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc
    runtime = RuntimeContext(config=config, logger=StructuredLogger(config.logs_dir))
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the boxgrade version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log vagrant output and parsing details.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"boxgrade {get_version()}")
        raise typer.Exit(code=ExitCode.OK)

    _configure_logging(verbose)
    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _entry_point_error(op: OperationScope, exc: BoxgradeError) -> NoReturn:
    if isinstance(exc, ConfigError):
        _command_error(op, str(exc), rc=ExitCode.VALIDATION)
    if isinstance(exc, ToolNotFoundError):
        _command_error(op, str(exc), rc=ExitCode.ENVIRONMENT)
    _command_error(op, str(exc), rc=ExitCode.PROVIDER)


def _box_payload(box: BoxRecord) -> dict[str, object]:
    return {
        "name": box.name,
        "display_name": box.display_name,
        "status": box.initial_status.value,
        "location": str(box.path),
    }


def _select_boxes(
    boxes: list[BoxRecord],
    wanted: Sequence[str],
) -> tuple[list[BoxRecord], set[str]]:
    if not wanted:
        return boxes, set()
    names = set(wanted)
    selected = [box for box in boxes if box.display_name in names or box.name in names]
    matched = {box.display_name for box in selected} | {box.name for box in selected}
    return selected, names - matched


@app.command("list")
def list_boxes(ctx: typer.Context, json_output: bool = JSON_OPTION) -> None:
    """List boxes discovered in the configured directories."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "list",
        args={"json": json_output},
        target={"kind": "vagrant", "scope": "boxes"},
    ) as op:
        context = ExecutionContext(runtime.config, op=op)
        try:
            boxes = collect_boxes(context)
        except BoxgradeError as exc:
            _entry_point_error(op, exc)

        if json_output:
            console.print_json(data={"boxes": [_box_payload(box) for box in boxes]})
        else:
            table = Table(title="Vagrant boxes")
            table.add_column("Box")
            table.add_column("Name")
            table.add_column("Status")
            table.add_column("Location")
            for box in boxes:
                table.add_row(box.display_name, box.name, box.initial_status.value, str(box.path))
            console.print(table)
        op.success("Listed vagrant boxes.", context={"count": len(boxes)})


@app.command()
def upgrade(
    ctx: typer.Context,
    box_names: list[str] | None = typer.Option(
        None,
        "--box",
        "-b",
        help="Only upgrade the named box (repeatable). Matches the display name or vagrant name.",
    ),
    dry_run: bool = DRY_RUN_OPTION,
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Pass the auto-confirm flag to the upgrade command inside each box.",
    ),
) -> None:
    """Upgrade the system inside each box, restoring its power state afterwards."""
    runtime = _get_runtime(ctx)
    config = replace(runtime.config, assume_yes=True) if yes else runtime.config
    dry_run = dry_run or config.dry_run

    with runtime.logger.operation(
        "upgrade",
        args={"boxes": list(box_names or []), "dry_run": dry_run, "yes": yes},
        target={"kind": "vagrant", "scope": "boxes"},
    ) as op:
        context = ExecutionContext(config, dry_run=dry_run, op=op)
        try:
            boxes = collect_boxes(context)
        except BoxgradeError as exc:
            _entry_point_error(op, exc)

        selected, missing = _select_boxes(boxes, box_names or [])
        warnings = [f"No box named '{name}' was found." for name in sorted(missing)]
        for warning in warnings:
            console.print(f"[yellow]{warning}[/yellow]")

        upgraded: list[BoxRecord] = []
        skipped: list[BoxRecord] = []
        failed: list[tuple[BoxRecord, str]] = []
        for box in selected:
            try:
                run_box(context, box)
            except SkipStep as exc:
                console.print(f"[yellow]{exc}[/yellow]")
                op.add_step("box.upgrade", status="skipped", detail=str(exc))
                skipped.append(box)
            except BoxgradeError as exc:
                console.print(f"[red]{box.display_name}: {exc}[/red]")
                op.add_step("box.upgrade", status="error", detail=f"{box}: {exc}")
                failed.append((box, str(exc)))
            else:
                op.add_step("box.upgrade", status="success", detail=str(box))
                upgraded.append(box)

        _render_summary(upgraded, skipped, failed)
        summary = {
            "upgraded": [box.display_name for box in upgraded],
            "skipped": [box.display_name for box in skipped],
            "failed": [box.display_name for box, _ in failed],
        }
        if failed:
            op.error(
                f"{len(failed)} box(es) failed to upgrade.",
                errors=[f"{box}: {message}" for box, message in failed],
                rc=ExitCode.PROVIDER,
                context=summary,
            )
            raise typer.Exit(code=ExitCode.PROVIDER)
        if warnings:
            op.warning(
                "Upgrade completed with warnings.",
                changed=len(upgraded),
                warnings=warnings,
                context=summary,
            )
        else:
            op.success("Upgrade completed.", changed=len(upgraded), context=summary)


def _render_summary(
    upgraded: Sequence[BoxRecord],
    skipped: Sequence[BoxRecord],
    failed: Sequence[tuple[BoxRecord, str]],
) -> None:
    table = Table(title="Summary")
    table.add_column("Box")
    table.add_column("Result")
    for box in upgraded:
        table.add_row(box.display_name, "[green]upgraded[/green]")
    for box in skipped:
        table.add_row(box.display_name, "[yellow]skipped[/yellow]")
    for box, _ in failed:
        table.add_row(box.display_name, "[red]failed[/red]")
    console.print(table)


@app.command("update-boxes")
def update_boxes(ctx: typer.Context, dry_run: bool = DRY_RUN_OPTION) -> None:
    """Update every outdated box image known to vagrant and prune old versions."""
    runtime = _get_runtime(ctx)
    dry_run = dry_run or runtime.config.dry_run

    with runtime.logger.operation(
        "update-boxes",
        args={"dry_run": dry_run},
        target={"kind": "vagrant", "scope": "fleet"},
    ) as op:
        context = ExecutionContext(runtime.config, dry_run=dry_run, op=op)
        try:
            report = reconcile_fleet(context)
        except BoxgradeError as exc:
            _entry_point_error(op, exc)

        payload = {
            "outdated": [f"{entry.box} ({entry.provider})" for entry in report.entries],
            "pruned": report.pruned,
        }
        if report.failures:
            messages = [
                f"{entry.box} ({entry.provider}): {message}"
                for entry, message in report.failures
            ]
            for message in messages:
                console.print(f"[yellow]Update failed: {message}[/yellow]")
            op.warning(
                "Box update completed with failures.",
                changed=len(report.updated),
                errors=messages,
                context=payload,
            )
            return
        op.success("Box update completed.", changed=len(report.entries), context=payload)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Print the resolved configuration as JSON."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("config show", target={"kind": "config"}) as op:
        console.print(json.dumps(runtime.config.to_dict(), indent=2), soft_wrap=True)
        op.success("Rendered configuration.")


def main() -> None:  # pragma: no cover - console script entry point
    """Run the boxgrade CLI."""
    app()


__all__ = ["app", "main"]
