"""Command-line interface router for hlnode-install."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from hlnode_installer import __version__
from hlnode_installer.config import (
    BUILTIN_PROFILE_NAMES,
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
)
from hlnode_installer.errors import ProvisioningError, ProvisioningStepError
from hlnode_installer.observability.logging import (
    LoggingConfig,
    new_run_id,
    setup_structured_logging,
    shutdown_logging,
)
from hlnode_installer.pipeline import (
    PipelineSettings,
    ProvisioningPipeline,
    log_dir_from_config,
    settings_from_config,
)
from hlnode_installer.report import render_report
from hlnode_installer.service.supervisor import build_supervisor_unit, render_unit
from hlnode_installer.service.compose import render_compose
from hlnode_installer.ui.render import CLIRenderer, create_renderer

PipelineFactory = Callable[[PipelineSettings], ProvisioningPipeline]

DEFAULT_COMMAND: Final[str] = "install"
_COMMANDS: Final[frozenset[str]] = frozenset({"install", "check", "render", "config"})
_TOP_LEVEL_FLAGS: Final[frozenset[str]] = frozenset({"-h", "--help", "--version"})

_LOGGER = logging.getLogger("hlnode_installer.cli")


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="hlnode-install",
        description=(
            "Provision a host running a supervised Hyperliquid non-validator node.\n\n"
            "Common workflows:\n"
            "  hlnode-install                        Run the full installation (as root)\n"
            "  hlnode-install check                  Check hardware against requirements\n"
            "  hlnode-install render                 Print compose file and systemd unit\n"
            "  hlnode-install config                 Print the effective configuration\n\n"
            "Runs are one-shot and must not overlap on the same host."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to hlnode TOML config (default: ./hlnode.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        choices=BUILTIN_PROFILE_NAMES,
        help="Config profile overlay: strict makes hardware and kernel failures fatal.",
    )
    common.add_argument(
        "--install-dir",
        default=None,
        help="Directory holding docker-compose.yml and install logs (default: /opt/hyperliquid).",
    )
    common.add_argument("--image", default=None, help="Node container image reference.")
    common.add_argument(
        "--rpc-external",
        action="store_const",
        const=True,
        default=None,
        help="Publish the RPC port on all interfaces and open it in the firewall.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show debug output on the console.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # install -------------------------------------------------------------
    install_parser = subparsers.add_parser(
        "install",
        parents=[common],
        help="Provision the host and start the node (default command)",
        description=(
            "Check hardware, install Docker, tune the host, write the compose file and\n"
            "systemd unit, start the node, and wait for it to come up.\n\n"
            "Examples:\n"
            "  sudo hlnode-install\n"
            "  sudo hlnode-install --rpc-external\n"
            "  sudo hlnode-install --non-interactive --profile strict\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    install_parser.add_argument(
        "--non-interactive",
        action="store_true",
        default=False,
        help="Never prompt; a hardware shortfall aborts the run.",
    )
    install_parser.add_argument(
        "--yes",
        "-y",
        dest="assume_yes",
        action="store_true",
        default=False,
        help="Continue below hardware requirements without prompting.",
    )
    install_parser.set_defaults(handler=_cmd_install)

    # check ---------------------------------------------------------------
    check_parser = subparsers.add_parser(
        "check",
        parents=[common],
        help="Probe hardware and evaluate requirements without changing the host",
        description=(
            "Probe CPU, RAM, and free disk and compare them with the requirements.\n"
            "Exits 1 when a non-interactive install would abort.\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    check_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    check_parser.set_defaults(handler=_cmd_check)

    # render --------------------------------------------------------------
    render_parser = subparsers.add_parser(
        "render",
        parents=[common],
        help="Print the compose file and systemd unit for the effective config",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    render_parser.set_defaults(handler=_cmd_render)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the effective configuration (redacted)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.add_argument("--json", action="store_true", help="Emit compact JSON output")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(
    argv: Sequence[str] | None = None,
    *,
    pipeline_factory: PipelineFactory | None = None,
) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    arguments = _with_default_command(list(argv) if argv is not None else sys.argv[1:])
    namespace = parser.parse_args(arguments)
    namespace.pipeline_factory = pipeline_factory or ProvisioningPipeline
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def _with_default_command(arguments: list[str]) -> list[str]:
    if not arguments:
        return [DEFAULT_COMMAND]
    first = arguments[0]
    if first in _COMMANDS or first in _TOP_LEVEL_FLAGS:
        return arguments
    return [DEFAULT_COMMAND, *arguments]


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_install(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    handle = setup_structured_logging(
        LoggingConfig(
            run_id=new_run_id(),
            log_dir=log_dir_from_config(config),
            level="DEBUG" if _flag(args, "verbose") else config["observability"]["log_level"],
            console_format=config["observability"]["log_format"],
            color=False if _flag(args, "no_color") else None,
        )
    )
    try:
        _LOGGER.info("Hyperliquid Node Installer for Mainnet")
        settings = settings_from_config(
            config,
            interactive=not _flag(args, "non_interactive"),
            assume_yes=_flag(args, "assume_yes"),
        )
        pipeline = args.pipeline_factory(settings)
        try:
            outcome = pipeline.run()
        except ProvisioningError as exc:
            step = exc.step if isinstance(exc, ProvisioningStepError) else None
            _LOGGER.error("%s", exc, extra={"failed_step": step})
            if handle.log_path is not None:
                _LOGGER.error("Install log: %s", handle.log_path)
            return 1

        renderer = _get_renderer(args)
        renderer.block(render_report(outcome.report))
        for warning in outcome.warnings:
            renderer.warning(warning)
        return 0
    finally:
        shutdown_logging(handle)


def _cmd_check(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    settings = settings_from_config(config, interactive=False)
    pipeline = args.pipeline_factory(settings)
    result = pipeline.evaluate(pipeline.probe_host())

    payload: dict[str, object] = {
        "command": "check",
        "profile": {
            "cpu_cores": result.profile.cpu_cores,
            "ram_gb": result.profile.ram_gb,
            "free_disk_gb": result.profile.free_disk_gb,
        },
        "requirements": {
            "min_cpu_cores": result.policy.min_cpu_cores,
            "min_ram_gb": result.policy.min_ram_gb,
            "min_disk_gb": result.policy.min_disk_gb,
        },
        "deficiencies": sorted(item.value for item in result.deficiencies),
        "decision": result.decision.value,
    }
    exit_code = 0 if result.compliant else 1

    if _flag(args, "json"):
        _emit_json(payload)
        return exit_code

    renderer = _get_renderer(args)
    renderer.heading("hlnode-install check")
    renderer.kv("CPU", f"{result.profile.cpu_cores} vCPUs (need {result.policy.min_cpu_cores}+)")
    renderer.kv("RAM", f"{result.profile.ram_gb}GB (need {result.policy.min_ram_gb}GB+)")
    renderer.kv(
        "Disk", f"{result.profile.free_disk_gb}GB free (need {result.policy.min_disk_gb}GB+)"
    )
    if result.compliant:
        renderer.ok("hardware requirements met")
    else:
        for reason in result.describe():
            renderer.fail(reason)
    return exit_code


def _cmd_render(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    settings = settings_from_config(config, interactive=False)
    pipeline = args.pipeline_factory(settings)
    workload = pipeline.workload_spec()
    unit = build_supervisor_unit(settings.install_dir, name=settings.unit_name)

    renderer = _get_renderer(args)
    renderer.text(f"# {workload.compose_path}")
    renderer.block(render_compose(workload))
    renderer.text("")
    renderer.text(f"# {settings.paths.unit_dir / unit.filename}")
    renderer.block(render_unit(unit))
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = _optional_str(getattr(args, "profile", None))
    redacted = effective_config(config)

    payload: dict[str, object] = {
        "command": "config",
        "active_profile": profile,
        "config": redacted,
    }

    if _flag(args, "json"):
        _emit_json(payload)
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"), verbose=_flag(args, "verbose"))


def _cli_overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {}
    install_dir = _optional_str(getattr(args, "install_dir", None))
    if install_dir is not None:
        overrides["node.install_dir"] = str(Path(install_dir).expanduser().resolve())
    image = _optional_str(getattr(args, "image", None))
    if image is not None:
        overrides["node.image"] = image
    if getattr(args, "rpc_external", None) is True:
        overrides["node.rpc_external"] = True
    return overrides


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))

    try:
        return load_config(config_path, profile=profile, cli_overrides=_cli_overrides(args))
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _optional_str(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "DEFAULT_COMMAND", "PipelineFactory", "build_parser", "run_cli"]
