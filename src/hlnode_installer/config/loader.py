"""
hlnode-installer: runtime config loader.

Purpose
- Resolve the effective installer config from defaults, ``hlnode.toml``,
  ``HLNODE_`` environment variables, and command-line flags.

Functional requirements
- Precedence: CLI > env > file > defaults; a selected profile overlays the
  file values before env and CLI apply.
- Every ``<section>.<key>`` scalar binds to ``HLNODE_<SECTION>_<KEY>``, coerced
  to the type of its current value. The shell installer's ``RPC_EXTERNAL``
  toggle is accepted as an alias for ``HLNODE_NODE_RPC_EXTERNAL``.
- A relative ``node.install_dir`` resolves against the config file's directory.
- An explicit config path must exist; the implicit ``./hlnode.toml`` is optional.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from hlnode_installer.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    dump_redacted,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "hlnode.toml"
ENV_PREFIX: Final[str] = "HLNODE_"

# Env names accepted for compatibility with the shell installer.
LEGACY_ENV_ALIASES: Final[Mapping[str, str]] = {
    "RPC_EXTERNAL": f"{ENV_PREFIX}NODE_RPC_EXTERNAL",
}

# Sections that never bind to environment variables.
_UNBOUND_SECTIONS: Final[frozenset[str]] = frozenset({"meta", "profiles"})

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load the effective config.

    ``cli_overrides`` maps ``"<section>.<key>"`` to a value; ``None`` values
    mean the flag was not given.
    """

    resolved_path = _resolve_config_path(config_path)
    env_map = _apply_legacy_aliases(os.environ if environ is None else environ)
    selected_profile = _selected_profile(profile, env_map)

    merged = merge_config(default_config(), _load_toml_file(resolved_path, config_path is not None))
    merged = assert_valid_config(merged)
    if selected_profile is not None:
        merged = apply_profile_overlay(merged, selected_profile)

    merged = merge_config(merged, _env_overrides(merged, env_map))
    merged = merge_config(merged, _cli_payload(cli_overrides or {}))
    merged = normalize_paths(merged, base_dir=resolved_path.parent)
    return assert_valid_config(merged, active_profile=selected_profile)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve relative path fields, including those in profile overlays, against ``base_dir``."""

    materialized = merge_config({}, config)
    targets: list[dict[str, Any]] = [materialized]
    profiles = materialized.get("profiles")
    if isinstance(profiles, dict):
        targets.extend(overlay for overlay in profiles.values() if isinstance(overlay, dict))

    for target in targets:
        for section, key in PATH_FIELDS:
            values = target.get(section)
            if isinstance(values, dict) and isinstance(values.get(key), str):
                values[key] = _normalize_one_path(values[key], base_dir)
    return materialized


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Return a redacted effective config representation suitable for logging."""

    return dump_redacted(config)


def dump_effective_config(config: Mapping[str, object], *, indent: int | None = None) -> str:
    """Return deterministic JSON dump of redacted effective config."""

    separators = (",", ":") if indent is None else (",", ": ")
    return json.dumps(
        effective_config(config),
        sort_keys=True,
        separators=separators,
        indent=indent,
        ensure_ascii=False,
    )


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _selected_profile(profile: str | None, environ: Mapping[str, str]) -> str | None:
    raw = profile if profile is not None else environ.get(f"{ENV_PREFIX}PROFILE")
    if raw is None:
        return None
    return raw.strip() or None


def _apply_legacy_aliases(environ: Mapping[str, str]) -> dict[str, str]:
    """Map legacy names onto their prefixed form; the prefixed name wins when both are set."""

    resolved = dict(environ)
    for legacy_name, env_name in LEGACY_ENV_ALIASES.items():
        if legacy_name in environ and env_name not in environ:
            resolved[env_name] = environ[legacy_name]
    return resolved


def _env_overrides(config: Mapping[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for section in sorted(config):
        values = config[section]
        if section in _UNBOUND_SECTIONS or not isinstance(values, Mapping):
            continue
        for key in sorted(values):
            env_name = f"{ENV_PREFIX}{section.upper()}_{key.upper()}"
            raw = environ.get(env_name)
            if raw is None:
                continue
            coerced = _coerce_env(raw, values[key], env_name, f"{section}.{key}")
            overrides.setdefault(section, {})[key] = coerced
    return overrides


def _coerce_env(raw: str, current: object, env_name: str, field: str) -> object:
    value = raw.strip()
    if isinstance(current, bool):
        lowered = value.lower()
        if lowered in _BOOLEAN_TRUE:
            return True
        if lowered in _BOOLEAN_FALSE:
            return False
        raise ConfigLoadError(
            f"{env_name} -> {field} must be a boolean (true/false/1/0/yes/no/on/off)"
        )
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {field} must be an integer") from exc
    if isinstance(current, float):
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {field} must be a number") from exc
    if isinstance(current, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def _cli_payload(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for field in sorted(cli_overrides):
        value = cli_overrides[field]
        if value is None:
            continue
        section, _, key = field.partition(".")
        if not section or not key:
            raise ConfigLoadError(f"invalid CLI override {field!r}; expected <section>.<key>")
        payload.setdefault(section, {})[key] = value
    return payload


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(str(candidate))).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "LEGACY_ENV_ALIASES",
    "dump_effective_config",
    "effective_config",
    "load_config",
    "normalize_paths",
]
