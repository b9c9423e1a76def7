"""Tests for the boxgrade CLI."""
from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner
from vagrant_fakes import FakeVagrant

from boxgrade import __version__
from boxgrade.cli import app
from boxgrade.exit_codes import ExitCode

runner = CliRunner()

ALPHA_STATUS = "Current machine states:\n\ndefault                   poweroff (virtualbox)\n\n"
BETA_STATUS = (
    "Current machine states:\n"
    "\n"
    "web                       running (virtualbox)\n"
    "db                        saved (virtualbox)\n"
    "\n"
    "This environment represents multiple VMs.\n"
)


def _extract_json(output: str) -> dict[str, object]:
    """Extract the first JSON object embedded in *output*."""
    start = output.find("{")
    end = output.rfind("}")
    assert start != -1 and end != -1, f"No JSON payload found in output: {output}"
    return json.loads(output[start : end + 1])


def _write_config(tmp_path: Path, **values: object) -> dict[str, str]:
    payload: dict[str, object] = {"logs_dir": str(tmp_path / "logs")}
    payload.update(values)
    cfg = tmp_path / "boxgrade.yml"
    cfg.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return {"BOXGRADE_CONFIG_FILE": str(cfg)}


def _operations(tmp_path: Path) -> list[dict[str, object]]:
    path = tmp_path / "logs" / "operations.jsonl"
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


@pytest.fixture
def fleet_env(tmp_path: Path, fake_vagrant: FakeVagrant) -> dict[str, str]:
    """Config with two directories whose status output is pre-recorded."""
    fake_vagrant.respond("status", cwd="/srv/alpha", stdout=ALPHA_STATUS)
    fake_vagrant.respond("status", cwd="/srv/beta", stdout=BETA_STATUS)
    return _write_config(tmp_path, vagrant={"directories": ["/srv/alpha", "/srv/beta"]})


def test_version_flag() -> None:
    """``--version`` prints the package version."""
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"boxgrade {__version__}" in result.output


def test_list_json(fleet_env: dict[str, str]) -> None:
    """``list --json`` reports every discovered box."""
    result = runner.invoke(app, ["list", "--json"], env=fleet_env)

    assert result.exit_code == 0, result.output
    payload = _extract_json(result.output)
    assert payload["boxes"] == [
        {
            "name": "default",
            "display_name": "alpha",
            "status": "poweroff",
            "location": "/srv/alpha",
        },
        {"name": "web", "display_name": "web", "status": "running", "location": "/srv/beta"},
        {"name": "db", "display_name": "db", "status": "saved", "location": "/srv/beta"},
    ]


def test_upgrade_restores_every_box(fleet_env: dict[str, str], fake_vagrant: FakeVagrant) -> None:
    """Each box is upgraded and put back into its initial power state."""
    result = runner.invoke(app, ["upgrade"], env=fleet_env)

    assert result.exit_code == 0, result.output
    assert fake_vagrant.calls[2:] == [
        ("up", "default"),
        ("ssh", "-c", "env TOPGRADE_PREFIX=alpha topgrade"),
        ("halt", "default"),
        ("ssh", "-c", "env TOPGRADE_PREFIX=web topgrade"),
        ("resume", "db"),
        ("ssh", "-c", "env TOPGRADE_PREFIX=db topgrade"),
        ("suspend", "db"),
    ]
    assert "upgraded" in result.output


def test_upgrade_failure_sets_provider_exit_code(
    tmp_path: Path,
    fleet_env: dict[str, str],
    fake_vagrant: FakeVagrant,
) -> None:
    """A failing box exits with the provider code but other boxes still run."""
    fake_vagrant.respond(
        "ssh",
        "-c",
        "env TOPGRADE_PREFIX=db topgrade",
        returncode=1,
        stderr="apt lock held",
    )

    result = runner.invoke(app, ["upgrade"], env=fleet_env)

    assert result.exit_code == ExitCode.PROVIDER
    assert fake_vagrant.count("suspend", "db") == 1
    assert fake_vagrant.count("ssh") == 3
    (record,) = _operations(tmp_path)
    assert record["command"] == "upgrade"
    assert record["result"]["status"] == "error"  # type: ignore[index]
    assert record["result"]["context"]["failed"] == ["db"]  # type: ignore[index]


def test_upgrade_skips_powered_off_boxes_when_disabled(
    tmp_path: Path,
    fake_vagrant: FakeVagrant,
) -> None:
    """Skipped boxes are reported but do not fail the command."""
    fake_vagrant.respond("status", cwd="/srv/beta", stdout=BETA_STATUS)
    env = _write_config(tmp_path, vagrant={"directories": ["/srv/beta"], "power_on": False})

    result = runner.invoke(app, ["upgrade"], env=env)

    assert result.exit_code == 0, result.output
    assert "Skipping powered off box db (db @ /srv/beta)" in result.output
    assert fake_vagrant.calls == [("status",), ("ssh", "-c", "env TOPGRADE_PREFIX=web topgrade")]
    (record,) = _operations(tmp_path)
    assert record["result"]["context"]["skipped"] == ["db"]  # type: ignore[index]


def test_upgrade_selected_box_with_yes(fleet_env: dict[str, str], fake_vagrant: FakeVagrant) -> None:
    """``--box`` limits the run and ``--yes`` adds the auto-confirm flag."""
    result = runner.invoke(app, ["upgrade", "--box", "web", "--yes"], env=fleet_env)

    assert result.exit_code == 0, result.output
    assert fake_vagrant.calls[2:] == [("ssh", "-c", "env TOPGRADE_PREFIX=web topgrade -y")]


def test_upgrade_unknown_box_warns(fleet_env: dict[str, str], fake_vagrant: FakeVagrant) -> None:
    """Unknown box names are reported as warnings."""
    result = runner.invoke(app, ["upgrade", "--box", "ghost"], env=fleet_env)

    assert result.exit_code == 0, result.output
    assert "No box named 'ghost' was found." in result.output
    assert fake_vagrant.count("ssh") == 0


def test_upgrade_dry_run(fleet_env: dict[str, str], fake_vagrant: FakeVagrant) -> None:
    """Dry-run only executes the read-only status queries."""
    result = runner.invoke(app, ["upgrade", "--dry-run"], env=fleet_env)

    assert result.exit_code == 0, result.output
    assert fake_vagrant.dry_runs[:2] == [False, False]
    assert all(fake_vagrant.dry_runs[2:])


def test_upgrade_without_directories_is_validation_error(
    tmp_path: Path,
    fake_vagrant: FakeVagrant,
) -> None:
    """Missing directories exit with the validation code."""
    env = _write_config(tmp_path)

    result = runner.invoke(app, ["upgrade"], env=env)

    assert result.exit_code == ExitCode.VALIDATION
    assert "No Vagrant directories" in result.output
    assert fake_vagrant.calls == []


def test_missing_vagrant_is_environment_error(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A missing vagrant binary exits with the environment code."""
    monkeypatch.setattr("boxgrade.execution.shutil.which", lambda name: None)
    env = _write_config(tmp_path, vagrant={"directories": ["/srv/alpha"]})

    result = runner.invoke(app, ["list"], env=env)

    assert result.exit_code == ExitCode.ENVIRONMENT
    assert "Cannot find vagrant" in result.output


def test_invalid_config_is_validation_error(tmp_path: Path) -> None:
    """Config errors are reported before any command runs."""
    env = _write_config(tmp_path, snapshots=True)

    result = runner.invoke(app, ["list"], env=env)

    assert result.exit_code == ExitCode.VALIDATION
    assert "snapshots" in result.output


def test_update_boxes(tmp_path: Path, fake_vagrant: FakeVagrant) -> None:
    """``update-boxes`` updates outdated entries and prunes once."""
    fake_vagrant.respond(
        "box", "outdated", "--global",
        stdout="* 'ubuntu/jammy64' for 'virtualbox' is outdated! Current: 1.0. Latest: 1.1\n",
    )
    env = _write_config(tmp_path)

    result = runner.invoke(app, ["update-boxes"], env=env)

    assert result.exit_code == 0, result.output
    assert fake_vagrant.calls == [
        ("box", "outdated", "--global"),
        ("box", "update", "--box", "ubuntu/jammy64", "--provider", "virtualbox"),
        ("box", "prune"),
    ]
    (record,) = _operations(tmp_path)
    assert record["result"]["status"] == "success"  # type: ignore[index]


def test_update_boxes_nothing_to_do(tmp_path: Path, fake_vagrant: FakeVagrant) -> None:
    """An empty report prints the no-op message."""
    env = _write_config(tmp_path)

    result = runner.invoke(app, ["update-boxes"], env=env)

    assert result.exit_code == 0, result.output
    assert "No outdated boxes" in result.output
    assert fake_vagrant.calls == [("box", "outdated", "--global")]


def test_update_boxes_partial_failure_warns(tmp_path: Path, fake_vagrant: FakeVagrant) -> None:
    """Failed updates are reported as warnings without failing the command."""
    fake_vagrant.respond(
        "box", "outdated", "--global",
        stdout="* 'ubuntu/jammy64' for 'virtualbox' is outdated! Current: 1.0. Latest: 1.1\n",
    )
    fake_vagrant.respond(
        "box", "update", "--box", "ubuntu/jammy64", "--provider", "virtualbox",
        returncode=1,
    )
    env = _write_config(tmp_path)

    result = runner.invoke(app, ["update-boxes"], env=env)

    assert result.exit_code == 0, result.output
    assert "Update failed" in result.output
    assert fake_vagrant.count("box", "prune") == 1
    (record,) = _operations(tmp_path)
    assert record["result"]["status"] == "warning"  # type: ignore[index]


def test_config_show(tmp_path: Path) -> None:
    """``config show`` prints the resolved configuration."""
    env = _write_config(tmp_path, vagrant={"directories": ["/srv/alpha"]})

    result = runner.invoke(app, ["config", "show"], env=env)

    assert result.exit_code == 0, result.output
    payload = _extract_json(result.output)
    assert payload["vagrant"]["directories"] == ["/srv/alpha"]  # type: ignore[index]
    assert payload["guest"]["command"] == "topgrade"  # type: ignore[index]


def test_log_level_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """``BOXGRADE_LOG_LEVEL`` sets the console log level unless ``--verbose`` is given."""
    levels: list[object] = []
    monkeypatch.setattr(
        "boxgrade.cli.logging.basicConfig",
        lambda **kwargs: levels.append(kwargs["level"]),
    )
    monkeypatch.setattr("boxgrade.cli._ensure_runtime", lambda ctx, config_file: None)

    runner.invoke(app, [], env={"BOXGRADE_LOG_LEVEL": "info"})
    runner.invoke(app, ["--verbose"], env={"BOXGRADE_LOG_LEVEL": "info"})

    assert levels == [logging.INFO, logging.DEBUG]


def test_unknown_log_level_is_a_validation_error() -> None:
    """An unrecognised ``BOXGRADE_LOG_LEVEL`` exits before any command runs."""
    result = runner.invoke(app, ["list"], env={"BOXGRADE_LOG_LEVEL": "chatty"})

    assert result.exit_code == ExitCode.VALIDATION
    assert "Unknown log level 'CHATTY'" in result.output
