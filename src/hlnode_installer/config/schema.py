"""
hlnode-installer: configuration schema and validation.

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Profile overlay validation and deterministic deep-merge helpers.
- Redaction of credentials embedded in repository or lookup URLs.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Support the ``strict`` and ``permissive`` profile overlays.

Non-functional requirements
- Keep rules deterministic and easy to audit.
- Preserve backwards compatibility through explicit migration messages.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict
from urllib.parse import urlsplit, urlunsplit

from hlnode_installer.constants import (
    COMPOSE_PROJECT,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_INSTALL_DIR,
    NODE_IMAGE,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("strict", "permissive")

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_PROJECT_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
_IMAGE_REFERENCE_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._/:@-]*$")

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("node", "install_dir"),)

# Config paths whose URL userinfo is masked in dumps.
URL_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("runtime", "docker_gpg_url"),
    ("runtime", "docker_repo_url"),
    ("report", "public_ip_url"),
)


class MetaConfig(TypedDict):
    schema_version: int


class NodeConfig(TypedDict):
    image: str
    install_dir: str
    rpc_external: bool
    compose_project: str


class RequirementsConfig(TypedDict):
    min_cpu_cores: int
    min_ram_gb: int
    min_disk_gb: int
    strict: bool


class RuntimeConfig(TypedDict):
    docker_gpg_url: str
    docker_repo_url: str


class TuningConfig(TypedDict):
    kernel_failures_fatal: bool
    firewall_enabled: bool


class ReadinessConfig(TypedDict):
    warmup_seconds: float
    attempts: int
    interval_seconds: float
    markers: list[str]


class ReportConfig(TypedDict):
    public_ip_url: str
    public_ip_timeout_seconds: float


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_dir: str


class ProfileOverlay(TypedDict, total=False):
    node: dict[str, object]
    requirements: dict[str, object]
    runtime: dict[str, object]
    tuning: dict[str, object]
    readiness: dict[str, object]
    report: dict[str, object]
    observability: dict[str, object]


class InstallerConfig(TypedDict):
    meta: MetaConfig
    node: NodeConfig
    requirements: RequirementsConfig
    runtime: RuntimeConfig
    tuning: TuningConfig
    readiness: ReadinessConfig
    report: ReportConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[InstallerConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "node": {
        "image": NODE_IMAGE,
        "install_dir": DEFAULT_INSTALL_DIR,
        "rpc_external": False,
        "compose_project": COMPOSE_PROJECT,
    },
    "requirements": {
        "min_cpu_cores": 16,
        "min_ram_gb": 64,
        "min_disk_gb": 500,
        "strict": False,
    },
    "runtime": {
        "docker_gpg_url": "https://download.docker.com/linux/ubuntu/gpg",
        "docker_repo_url": "https://download.docker.com/linux/ubuntu",
    },
    "tuning": {
        "kernel_failures_fatal": False,
        "firewall_enabled": True,
    },
    "readiness": {
        "warmup_seconds": 10.0,
        "attempts": 30,
        "interval_seconds": 2.0,
        "markers": ["applied block", "starting metrics server", "peer latency"],
    },
    "report": {
        "public_ip_url": "https://ifconfig.me/ip",
        "public_ip_timeout_seconds": 5.0,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "text",
        "log_dir": "logs",
    },
    "profiles": {
        "strict": {
            "requirements": {"strict": True},
            "tuning": {"kernel_failures_fatal": True},
        },
        "permissive": {},
    },
}

_SECTIONS: Final[tuple[str, ...]] = (
    "meta",
    "node",
    "requirements",
    "runtime",
    "tuning",
    "readiness",
    "report",
    "observability",
)
_OVERLAY_SECTIONS: Final[frozenset[str]] = frozenset(_SECTIONS) - {"meta"}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> InstallerConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade hlnode.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade hlnode-installer"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    if profile is None:
        return materialized

    selected = profile.strip()
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    if not isinstance(profiles_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", "profiles section is required"),)
        )

    overlay_raw = profiles_raw.get(selected)
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    merged = merge_config(materialized, overlay_raw)
    return assert_valid_config(merged, active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, "", issues, partial=False)

    selected_profile = active_profile.strip() if isinstance(active_profile, str) else None
    if selected_profile:
        profiles = normalized.get("profiles")
        if not isinstance(profiles, Mapping):
            issues.add("profiles", "profiles section is required")
        elif selected_profile not in profiles:
            issues.add("profiles", f"profile {selected_profile!r} is not defined")

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())

    return ConfigValidationResult(config=normalized, issues=issues.items())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return a copy with credentials stripped from URL-valued fields."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _deep_copy_mapping(config)
    for field_path in URL_FIELDS:
        section = redacted.get(field_path[0])
        if isinstance(section, dict) and isinstance(section.get(field_path[1]), str):
            section[field_path[1]] = redact_url(section[field_path[1]])
    return redacted


def dump_redacted(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Alias for schema-level redacted dumps."""

    return redact_config(config)


def redact_url(url: str) -> str:
    """Mask ``user:password@`` in a URL, keeping the host and path visible."""

    parts = urlsplit(url)
    if parts.username is None and parts.password is None:
        return url
    host = parts.hostname or ""
    if parts.port is not None:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"<redacted>@{host}", parts.path, parts.query, parts.fragment))


SectionValidator = Callable[[Mapping[str, object], str, _IssueCollector, bool], dict[str, Any]]


def _validate_root(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    allowed = {*_SECTIONS, "profiles"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, set(_SECTIONS), path, issues)

    out: dict[str, Any] = {}
    for key in _SECTIONS:
        _section(payload, key=key, path=path, issues=issues, partial=partial, out=out)

    profiles_raw = payload.get("profiles")
    if profiles_raw is not None:
        profiles_path = _join(path, "profiles")
        profiles_obj = _as_object(profiles_raw, profiles_path, issues)
        if profiles_obj is not None:
            out["profiles"] = _validate_profiles(profiles_obj, profiles_path, issues)

    _validate_readiness_cross_fields(out.get("readiness"), _join(path, "readiness"), issues)
    return out


def _section(
    payload: Mapping[str, object],
    *,
    key: str,
    path: str,
    issues: _IssueCollector,
    partial: bool,
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        return
    section_path = _join(path, key)
    section_obj = _as_object(raw, section_path, issues)
    if section_obj is None:
        return
    out[key] = _SECTION_VALIDATORS[key](section_obj, section_path, issues, partial)


def _validate_meta(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    if not partial:
        _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(
            payload["schema_version"], _join(path, "schema_version"), issues, minimum=1
        )
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_node(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"image", "install_dir", "rpc_external", "compose_project"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "image" in payload:
        parsed_image = _as_pattern(
            payload["image"],
            _join(path, "image"),
            issues,
            pattern=_IMAGE_REFERENCE_PATTERN,
            hint="must be an image reference (example: ghcr.io/org/image:tag)",
        )
        if parsed_image is not None:
            out["image"] = parsed_image

    if "install_dir" in payload:
        parsed_dir = _as_path_text(payload["install_dir"], _join(path, "install_dir"), issues)
        if parsed_dir is not None:
            out["install_dir"] = parsed_dir

    if "rpc_external" in payload:
        parsed_external = _as_bool(payload["rpc_external"], _join(path, "rpc_external"), issues)
        if parsed_external is not None:
            out["rpc_external"] = parsed_external

    if "compose_project" in payload:
        parsed_project = _as_pattern(
            payload["compose_project"],
            _join(path, "compose_project"),
            issues,
            pattern=_PROJECT_NAME_PATTERN,
            hint="must match ^[a-z0-9][a-z0-9_-]*$",
        )
        if parsed_project is not None:
            out["compose_project"] = parsed_project
    return out


def _validate_requirements(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"min_cpu_cores", "min_ram_gb", "min_disk_gb", "strict"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("min_cpu_cores", "min_ram_gb", "min_disk_gb"):
        if key in payload:
            parsed = _as_int(payload[key], _join(path, key), issues, minimum=0)
            if parsed is not None:
                out[key] = parsed

    if "strict" in payload:
        parsed_strict = _as_bool(payload["strict"], _join(path, "strict"), issues)
        if parsed_strict is not None:
            out["strict"] = parsed_strict
    return out


def _validate_runtime(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"docker_gpg_url", "docker_repo_url"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key in payload:
            parsed = _as_url(payload[key], _join(path, key), issues, schemes=("https",))
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_tuning(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"kernel_failures_fatal", "firewall_enabled"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key in payload:
            parsed = _as_bool(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_readiness(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"warmup_seconds", "attempts", "interval_seconds", "markers"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("warmup_seconds", "interval_seconds"):
        if key in payload:
            parsed_seconds = _as_float(payload[key], _join(path, key), issues, minimum=0.0)
            if parsed_seconds is not None:
                out[key] = parsed_seconds

    if "attempts" in payload:
        parsed_attempts = _as_int(payload["attempts"], _join(path, "attempts"), issues, minimum=1)
        if parsed_attempts is not None:
            out["attempts"] = parsed_attempts

    if "markers" in payload:
        parsed_markers = _as_str_list(payload["markers"], _join(path, "markers"), issues)
        if parsed_markers is not None:
            out["markers"] = parsed_markers
    return out


def _validate_report(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"public_ip_url", "public_ip_timeout_seconds"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "public_ip_url" in payload:
        parsed_url = _as_url(
            payload["public_ip_url"],
            _join(path, "public_ip_url"),
            issues,
            schemes=("http", "https"),
        )
        if parsed_url is not None:
            out["public_ip_url"] = parsed_url

    if "public_ip_timeout_seconds" in payload:
        key_path = _join(path, "public_ip_timeout_seconds")
        parsed_timeout = _as_float(payload["public_ip_timeout_seconds"], key_path, issues)
        if parsed_timeout is not None:
            if parsed_timeout <= 0:
                issues.add(key_path, "must be > 0")
            else:
                out["public_ip_timeout_seconds"] = parsed_timeout
    return out


def _validate_observability(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    partial: bool,
) -> dict[str, Any]:
    allowed = {"log_level", "log_format", "log_dir"}
    _reject_unknown_keys(payload, allowed, path, issues)
    if not partial:
        _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        parsed_log_level = _as_enum(
            payload["log_level"],
            _join(path, "log_level"),
            issues,
            allowed_values=("DEBUG", "INFO", "WARNING", "ERROR"),
        )
        if parsed_log_level is not None:
            out["log_level"] = parsed_log_level

    if "log_format" in payload:
        parsed_log_format = _as_enum(
            payload["log_format"],
            _join(path, "log_format"),
            issues,
            allowed_values=("json", "text"),
        )
        if parsed_log_format is not None:
            out["log_format"] = parsed_log_format

    if "log_dir" in payload:
        parsed_log_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if parsed_log_dir is not None:
            out["log_dir"] = parsed_log_dir
    return out


_SECTION_VALIDATORS: Final[dict[str, SectionValidator]] = {
    "meta": _validate_meta,
    "node": _validate_node,
    "requirements": _validate_requirements,
    "runtime": _validate_runtime,
    "tuning": _validate_tuning,
    "readiness": _validate_readiness,
    "report": _validate_report,
    "observability": _validate_observability,
}


def _validate_profiles(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for profile_name in sorted(payload):
        profile_path = _join(path, profile_name)
        if not _PROFILE_NAME_PATTERN.fullmatch(profile_name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        profile_obj = _as_object(payload[profile_name], profile_path, issues)
        if profile_obj is None:
            continue
        out[profile_name] = _validate_profile_overlay(profile_obj, profile_path, issues)
    return out


def _validate_profile_overlay(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(_OVERLAY_SECTIONS), path, issues)

    out: dict[str, Any] = {}
    for section in sorted(_OVERLAY_SECTIONS):
        raw = payload.get(section)
        if raw is None:
            continue
        section_path = _join(path, section)
        section_obj = _as_object(raw, section_path, issues)
        if section_obj is None:
            continue
        out[section] = _SECTION_VALIDATORS[section](section_obj, section_path, issues, True)
    return out


def _validate_readiness_cross_fields(
    readiness: object,
    path: str,
    issues: _IssueCollector,
) -> None:
    if not isinstance(readiness, Mapping):
        return
    markers = readiness.get("markers")
    if isinstance(markers, list) and not markers:
        issues.add(_join(path, "markers"), "at least one readiness marker is required")


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if not isinstance(value, (list, tuple)):
        issues.add(path, f"expected array of strings, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is None:
            return None
        out.append(parsed)
    return out


def _as_pattern(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    pattern: re.Pattern[str],
    hint: str,
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if not pattern.fullmatch(parsed):
        issues.add(path, hint)
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_url(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    schemes: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    parts = urlsplit(parsed)
    if parts.scheme not in schemes or not parts.netloc:
        expected = ", ".join(schemes)
        issues.add(path, f"must be an absolute URL with scheme: {expected}")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            elif isinstance(existing, Mapping):
                nested = _deep_copy_mapping(existing)
                _merge_into(nested, value)
                target[key] = nested
            else:
                nested_new: dict[str, Any] = {}
                _merge_into(nested_new, value)
                target[key] = nested_new
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        out[key] = _deep_copy_value(value[key])
    return out


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        out: dict[str, Any] = {}
        for key, item in value.items():
            if isinstance(key, str):
                out[key] = _deep_copy_value(item)
        return out
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_deep_copy_value(item) for item in value)
    return copy.deepcopy(value)


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "InstallerConfig",
    "PATH_FIELDS",
    "ProfileOverlay",
    "URL_FIELDS",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_redacted",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "redact_url",
    "validate_config",
]
