"""
hlnode-installer: post-install report

Purpose
- Summarize how to reach and manage the installed node.

Functional requirements
- Public IP lookup is best effort: IPv4 only, short timeout, ``UNKNOWN`` on any
  failure or malformed answer.
- ``build_report`` and ``render_report`` are pure; the lookup result is an input.
- External endpoints and an exposure warning appear only when RPC is exposed.

Non-functional requirements
- Never raises once the pipeline has reached this step.
"""

from __future__ import annotations

import ipaddress
import json
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from hlnode_installer.constants import (
    ALL_INTERFACES_ADDRESS,
    COMPOSE_FILENAME,
    LOOPBACK_ADDRESS,
    METRICS_PORT,
    NETWORK_NAME,
    NODE_DATA_DIRS,
    NODE_DATA_ROOT,
    RPC_PORT,
    UNIT_NAME,
)
from hlnode_installer.service.readiness import ReadinessResult

_LOGGER = logging.getLogger(__name__)

UNKNOWN_ADDRESS = "UNKNOWN"
DEFAULT_PUBLIC_IP_URL = "https://ifconfig.me/ip"
DEFAULT_PUBLIC_IP_TIMEOUT_SECONDS = 5.0


class PublicIpResolver:
    """Ask an echo service for this host's public IPv4 address."""

    def __init__(
        self,
        *,
        url: str = DEFAULT_PUBLIC_IP_URL,
        timeout_seconds: float = DEFAULT_PUBLIC_IP_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport

    def resolve(self) -> str:
        # Binding the source to 0.0.0.0 keeps the request on IPv4.
        transport = self._transport or httpx.HTTPTransport(local_address=ALL_INTERFACES_ADDRESS)
        try:
            with httpx.Client(
                transport=transport,
                timeout=self._timeout,
                follow_redirects=True,
            ) as client:
                response = client.get(self._url)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            _LOGGER.warning("public IP lookup failed: %s", exc)
            return UNKNOWN_ADDRESS

        candidate = response.text.strip()
        try:
            return str(ipaddress.IPv4Address(candidate))
        except ValueError:
            _LOGGER.warning("public IP lookup returned a non-IPv4 answer: %r", candidate[:64])
            return UNKNOWN_ADDRESS


@dataclass(frozen=True, slots=True)
class Endpoint:
    label: str
    url: str


@dataclass(frozen=True, slots=True)
class InstallReport:
    """Everything the operator needs after a successful run."""

    network: str
    install_dir: Path
    public_ip: str
    rpc_external: bool
    local_endpoints: tuple[Endpoint, ...]
    external_endpoints: tuple[Endpoint, ...]
    management_commands: tuple[tuple[str, str], ...]
    data_paths: tuple[tuple[str, Path], ...]
    test_command: str
    next_steps: tuple[str, ...]
    readiness: ReadinessResult | None = None


def _service_name(unit_name: str) -> str:
    return unit_name.removesuffix(".service")


def build_report(
    *,
    install_dir: Path,
    public_ip: str,
    rpc_external: bool,
    readiness: ReadinessResult | None = None,
    unit_name: str = UNIT_NAME,
) -> InstallReport:
    rpc_base = f"http://{LOOPBACK_ADDRESS}:{RPC_PORT}"
    metrics_url = f"http://{LOOPBACK_ADDRESS}:{METRICS_PORT}/metrics"
    local = (
        Endpoint("EVM RPC", f"{rpc_base}/evm"),
        Endpoint("Info API", f"{rpc_base}/info"),
        Endpoint("Metrics", metrics_url),
    )
    external: tuple[Endpoint, ...] = ()
    if rpc_external:
        external = (
            Endpoint("External RPC", f"http://{public_ip}:{RPC_PORT}/evm"),
            Endpoint("External Info", f"http://{public_ip}:{RPC_PORT}/info"),
        )

    compose_file = install_dir / COMPOSE_FILENAME
    service = _service_name(unit_name)
    management = (
        ("Status", f"systemctl status {service}"),
        ("Logs", f"docker compose -f {compose_file} logs -f"),
        ("Stop", f"systemctl stop {service}"),
        ("Start", f"systemctl start {service}"),
        ("Restart", f"systemctl restart {service}"),
    )
    data_root = install_dir / NODE_DATA_ROOT
    data_paths = tuple((label, data_root / dirname) for label, dirname in NODE_DATA_DIRS)
    payload = json.dumps({"type": "exchangeStatus"}, separators=(",", ":"))
    test_command = (
        f"curl -X POST {rpc_base}/info \\\n"
        '    -H "Content-Type: application/json" \\\n'
        f"    -d '{payload}'"
    )
    next_steps = (
        f"Monitor sync: docker compose -f {compose_file} logs -f node",
        f"Check metrics: curl {metrics_url}",
        "Initial sync may take several hours",
    )
    return InstallReport(
        network=NETWORK_NAME,
        install_dir=install_dir,
        public_ip=public_ip,
        rpc_external=rpc_external,
        local_endpoints=local,
        external_endpoints=external,
        management_commands=management,
        data_paths=data_paths,
        test_command=test_command,
        next_steps=next_steps,
        readiness=readiness,
    )


def _aligned(rows: tuple[tuple[str, str], ...]) -> list[str]:
    width = max(len(label) for label, _ in rows) + 2
    return [f"  {(label + ':').ljust(width)}{value}" for label, value in rows]


def render_report(report: InstallReport) -> str:
    lines = [
        "",
        "Hyperliquid Node Installation Complete",
        "=" * 38,
        "",
        f"Network: {report.network.capitalize()}",
        f"Data Directory: {report.install_dir}",
        f"Public IP: {report.public_ip}",
    ]
    if report.readiness is not None:
        if report.readiness.confirmed:
            lines.append(
                f"Startup: confirmed after {report.readiness.iterations} poll(s)"
                f" ({report.readiness.matched_marker!r})"
            )
        else:
            lines.append("Startup: still initializing when polling ended")

    lines.extend(["", "RPC Endpoints:"])
    lines.extend(_aligned(tuple((item.label, item.url) for item in report.local_endpoints)))
    if report.external_endpoints:
        lines.append("")
        lines.extend(_aligned(tuple((item.label, item.url) for item in report.external_endpoints)))
        lines.append("  WARNING: RPC exposed publicly! Use firewall/VPN for security")

    lines.extend(["", "Management Commands:"])
    lines.extend(_aligned(report.management_commands))
    lines.extend(["", "Data Access:"])
    lines.extend(_aligned(tuple((label, f"{path}/") for label, path in report.data_paths)))
    lines.extend(["", "Test Connection:", f"  {report.test_command}"])
    lines.extend(["", "Next Steps:"])
    lines.extend(f"  {index}. {step}" for index, step in enumerate(report.next_steps, start=1))
    lines.extend(["", "Done!"])
    return "\n".join(lines) + "\n"


__all__ = [
    "DEFAULT_PUBLIC_IP_TIMEOUT_SECONDS",
    "DEFAULT_PUBLIC_IP_URL",
    "Endpoint",
    "InstallReport",
    "PublicIpResolver",
    "UNKNOWN_ADDRESS",
    "build_report",
    "render_report",
]
