"""Configuration loader for boxgrade.

This module centralises the logic for reading configuration values from
multiple sources:

1. Built-in defaults.
2. ``~/.config/boxgrade/config.yml`` (or an override path).
3. Environment variables prefixed with ``BOXGRADE_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export BOXGRADE_VAGRANT__POWER_ON=false
    export BOXGRADE_VAGRANT__DIRECTORIES='[~/vm/alpha, ~/vm/beta]'

Values are coerced via PyYAML's ``safe_load`` so that booleans, numbers and
flow-style lists are parsed naturally. The resulting configuration is exposed
as immutable ``dataclasses`` for convenient access and type safety.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load boxgrade configuration. Install with "
        "`pip install boxgrade` or ensure PyYAML>=6.0 is available."
    ) from exc

from .errors import ConfigError

ENV_PREFIX = "BOXGRADE_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
LOG_LEVEL_ENV_VAR = f"{ENV_PREFIX}LOG_LEVEL"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR, LOG_LEVEL_ENV_VAR}


@dataclass(frozen=True)
class VagrantConfig:
    """Settings for the vagrant integration."""

    directories: tuple[Path, ...] | None = None
    power_on: bool = True
    always_suspend: bool = False
    bin: str = "vagrant"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "directories": (
                [str(path) for path in self.directories]
                if self.directories is not None
                else None
            ),
            "power_on": self.power_on,
            "always_suspend": self.always_suspend,
            "bin": self.bin,
        }


@dataclass(frozen=True)
class GuestConfig:
    """The command re-invoked inside each box."""

    command: str = "topgrade"
    prefix_env: str = "TOPGRADE_PREFIX"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"command": self.command, "prefix_env": self.prefix_env}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for boxgrade."""

    config_file: Path
    logs_dir: Path
    dry_run: bool
    assume_yes: bool | tuple[str, ...]
    vagrant: VagrantConfig
    guest: GuestConfig

    def yes(self, step: str) -> bool:
        """Return ``True`` when prompts for *step* should be auto-confirmed."""
        if isinstance(self.assume_yes, bool):
            return self.assume_yes
        return step.lower() in self.assume_yes

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "logs_dir": str(self.logs_dir),
            "dry_run": self.dry_run,
            "assume_yes": (
                self.assume_yes
                if isinstance(self.assume_yes, bool)
                else list(self.assume_yes)
            ),
            "vagrant": self.vagrant.to_dict(),
            "guest": self.guest.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "~/.config/boxgrade/config.yml",
    "logs_dir": "~/.local/state/boxgrade/logs",
    "dry_run": False,
    "assume_yes": False,
    "vagrant": {
        "directories": None,
        "power_on": True,
        "always_suspend": False,
        "bin": "vagrant",
    },
    "guest": {
        "command": "topgrade",
        "prefix_env": "TOPGRADE_PREFIX",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_VAGRANT_KEYS = {"directories", "power_on", "always_suspend", "bin"}
ALLOWED_GUEST_KEYS = {"command", "prefix_env"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override).expanduser()
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR]).expanduser()
    return Path(default_path).expanduser()


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    vagrant = _as_dict(raw.get("vagrant"), "vagrant")
    unknown = set(vagrant.keys()) - ALLOWED_VAGRANT_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown vagrant configuration keys: {joined}.")

    guest = _as_dict(raw.get("guest"), "guest")
    unknown = set(guest.keys()) - ALLOWED_GUEST_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown guest configuration keys: {joined}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    vagrant_mapping = _as_dict(raw.get("vagrant"), "vagrant")
    directories_raw = vagrant_mapping.get("directories")
    directories: tuple[Path, ...] | None = None
    if directories_raw is not None:
        entries = _as_sequence(directories_raw, "vagrant.directories")
        directories = tuple(
            _to_path(entry, f"vagrant.directories[{index}]")
            for index, entry in enumerate(entries)
        )

    vagrant = VagrantConfig(
        directories=directories,
        power_on=_expect_bool(vagrant_mapping.get("power_on"), "vagrant.power_on", default=True),
        always_suspend=_expect_bool(
            vagrant_mapping.get("always_suspend"),
            "vagrant.always_suspend",
            default=False,
        ),
        bin=_expect_non_empty_str(vagrant_mapping.get("bin", "vagrant"), "vagrant.bin"),
    )

    guest_mapping = _as_dict(raw.get("guest"), "guest")
    guest = GuestConfig(
        command=_expect_non_empty_str(guest_mapping.get("command", "topgrade"), "guest.command"),
        prefix_env=_expect_non_empty_str(
            guest_mapping.get("prefix_env", "TOPGRADE_PREFIX"),
            "guest.prefix_env",
        ),
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file"), "config_file"),
        logs_dir=_to_path(raw.get("logs_dir"), "logs_dir"),
        dry_run=_expect_bool(raw.get("dry_run"), "dry_run", default=False),
        assume_yes=_parse_assume_yes(raw.get("assume_yes")),
        vagrant=vagrant,
        guest=guest,
    )


def _parse_assume_yes(value: object) -> bool | tuple[str, ...]:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return (value.strip().lower(),)
    steps = _as_sequence(value, "assume_yes")
    parsed: list[str] = []
    for index, step in enumerate(steps):
        if not isinstance(step, str) or not step.strip():
            raise ConfigError(f"assume_yes[{index}] must be a non-empty step name.")
        parsed.append(step.strip().lower())
    return tuple(parsed)


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object, label: str) -> Path:
    if value is None:
        raise ConfigError(f"Expected {label} to be a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert {label} value {value!r} to Path.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_non_empty_str(value: object, key: str) -> str:
    text = _expect_str(value, key).strip()
    if not text:
        raise ConfigError(f"{key} must be a non-empty string.")
    return text


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "GuestConfig",
    "LOG_LEVEL_ENV_VAR",
    "VagrantConfig",
    "load_config",
]
