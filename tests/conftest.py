"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from vagrant_fakes import FAKE_VAGRANT, DummyResult, FakeVagrant

from boxgrade import boxes, fleet
from boxgrade.config import AppConfig, load_config
from boxgrade.execution import ExecutionContext
from boxgrade.providers.vagrant import VagrantProvider


@pytest.fixture
def fake_vagrant(monkeypatch: pytest.MonkeyPatch) -> FakeVagrant:
    """Route every vagrant invocation to a recording fake."""
    fake = FakeVagrant()

    def fake_run_command(
        self: VagrantProvider,
        args: Sequence[str],
        **kwargs: object,
    ) -> DummyResult:
        return fake.run_command(self, args, **kwargs)  # type: ignore[arg-type]

    monkeypatch.setattr(VagrantProvider, "_run_command", fake_run_command)
    monkeypatch.setattr(boxes, "require_binary", lambda name: FAKE_VAGRANT)
    monkeypatch.setattr(fleet, "require_binary", lambda name: FAKE_VAGRANT)
    return fake


@pytest.fixture
def make_context(tmp_path: Path) -> Callable[..., ExecutionContext]:
    """Return a factory building an execution context from config overrides."""

    def factory(*, dry_run: bool = False, **overrides: object) -> ExecutionContext:
        merged: dict[str, object] = {"logs_dir": str(tmp_path / "logs")}
        merged.update(overrides)
        config: AppConfig = load_config(
            config_file=tmp_path / "missing.yml",
            env={},
            overrides=merged,
        )
        return ExecutionContext(config, dry_run=dry_run)

    return factory
