"""Vagrant provider wrapping the ``vagrant`` command line tool."""
from __future__ import annotations

import shlex
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..errors import VagrantError
from ..models import BoxRecord
from ..terminal import console


@dataclass(slots=True)
class VagrantProvider:
    """Run vagrant subcommands.

    Read-only queries (``status`` and ``box outdated``) always execute so that
    dry runs can still plan. Everything that changes state honours
    ``dry_run``.
    """

    vagrant_bin: Path
    dry_run: bool = False

    def status(self, directory: str | Path) -> subprocess.CompletedProcess[str]:
        """Return ``vagrant status`` output for the Vagrantfile in *directory*."""
        return self._vagrant(["status"], cwd=directory, capture_output=True, dry_run=False)

    def power(self, subcommand: str, box: BoxRecord) -> subprocess.CompletedProcess[str]:
        """Run a power transition (``up``, ``resume``, ``halt`` or ``suspend``) for *box*."""
        return self._vagrant([subcommand, box.name], cwd=box.path, dry_run=self.dry_run)

    def ssh(self, box: BoxRecord, command: str) -> subprocess.CompletedProcess[str]:
        """Execute *command* inside *box* via ``vagrant ssh -c``."""
        return self._vagrant(["ssh", "-c", command], cwd=box.path, dry_run=self.dry_run)

    def box_outdated_global(self) -> subprocess.CompletedProcess[str]:
        """Return the fleet-wide outdated report."""
        return self._vagrant(
            ["box", "outdated", "--global"],
            capture_output=True,
            dry_run=False,
        )

    def box_update(self, box: str, provider: str) -> subprocess.CompletedProcess[str]:
        """Update *box* for one explicit *provider*."""
        return self._vagrant(
            ["box", "update", "--box", box, "--provider", provider],
            dry_run=self.dry_run,
        )

    def box_prune(self) -> subprocess.CompletedProcess[str]:
        """Remove superseded box versions."""
        return self._vagrant(["box", "prune"], dry_run=self.dry_run)

    # ------------------------------------------------------------------
    def _vagrant(
        self,
        args: Sequence[str],
        *,
        cwd: str | Path | None = None,
        check: bool = True,
        capture_output: bool = False,
        dry_run: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        command = [str(self.vagrant_bin), *args]
        return self._run_command(
            command,
            cwd=cwd,
            check=check,
            error_prefix=f"vagrant {' '.join(args[:2])}".rstrip(),
            capture_output=capture_output,
            dry_run=dry_run,
        )

    def _run_command(
        self,
        args: Sequence[str],
        *,
        cwd: str | Path | None,
        check: bool,
        error_prefix: str,
        capture_output: bool,
        dry_run: bool,
    ) -> subprocess.CompletedProcess[str]:
        if dry_run:
            location = f" (in {cwd})" if cwd is not None else ""
            console.print(f"[yellow]Dry run[/yellow]: {shlex.join(args)}{location}")
            return subprocess.CompletedProcess(
                list(args),
                returncode=0,
                stdout="",
                stderr="",
            )
        try:
            if capture_output:
                result = subprocess.run(  # noqa: S603
                    list(args),
                    cwd=cwd,
                    capture_output=True,
                    text=True,
                    encoding="utf-8",
                    check=False,
                )
            else:
                result = subprocess.run(  # noqa: S603
                    list(args),
                    cwd=cwd,
                    text=True,
                    encoding="utf-8",
                    check=False,
                )
        except UnicodeDecodeError as exc:
            raise VagrantError(f"{error_prefix} produced non-UTF-8 output") from exc
        except OSError as exc:
            raise VagrantError(f"{error_prefix} could not be started: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise VagrantError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["VagrantProvider", "VagrantError"]
