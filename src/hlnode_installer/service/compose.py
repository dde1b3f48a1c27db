"""
hlnode-installer: compose service definition

Purpose
- Describe the node container as a typed ``WorkloadSpec`` and render it to a
  ``docker-compose.yml`` document.

Functional requirements
- RPC binds to loopback unless external exposure was requested; metrics always
  bind to loopback; P2P always binds to all interfaces.
- Rendering is a pure function of the spec: identical inputs produce
  byte-identical output.
- Writing goes through ``write_if_changed`` so re-runs leave the file untouched.

Non-functional requirements
- No host commands; file I/O only in ``write_compose``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Final

import yaml

from hlnode_installer.constants import (
    ALL_INTERFACES_ADDRESS,
    COMPOSE_FILENAME,
    COMPOSE_PROJECT,
    COMPOSE_SERVICE,
    CONTAINER_NAME,
    LOOPBACK_ADDRESS,
    METRICS_PORT,
    NODE_IMAGE,
    P2P_PORT_FIRST,
    P2P_PORT_LAST,
    RPC_PORT,
)
from hlnode_installer.utils.fs import WriteResult, write_if_changed

NODE_COMMAND_ARGS: Final[tuple[str, ...]] = (
    "run-non-validator",
    "--write-trades",
    "--write-fills",
    "--write-order-statuses",
    "--write-raw-book-diffs",
    "--write-hip3-oracle-updates",
    "--write-misc-events",
    "--write-system-and-core-writer-actions",
    "--serve-eth-rpc",
    "--serve-info",
    "--disable-output-file-buffering",
)

NODE_ENVIRONMENT: Final[Mapping[str, str]] = MappingProxyType(
    {
        "RUST_LOG": "info,hl_bootstrap=debug",
        "HL_BOOTSTRAP_METRICS_LISTEN_ADDRESS": f"{ALL_INTERFACES_ADDRESS}:{METRICS_PORT}",
        "HL_BOOTSTRAP_PRUNE_DATA_INTERVAL": "1h",
        "HL_BOOTSTRAP_PRUNE_DATA_OLDER_THAN": "4h",
        "HL_BOOTSTRAP_SEED_PEERS_MAX_LATENCY": "80ms",
    }
)

NODE_SYSCTLS: Final[Mapping[str, str]] = MappingProxyType(
    {"net.ipv6.conf.all.disable_ipv6": "1"}
)


@dataclass(frozen=True, slots=True)
class PortBinding:
    """``host_address:host_ports:container_ports`` publish rule."""

    host_address: str
    host_ports: str
    container_ports: str

    @classmethod
    def single(cls, host_address: str, port: int) -> PortBinding:
        return cls(host_address=host_address, host_ports=str(port), container_ports=str(port))

    @classmethod
    def span(cls, host_address: str, first: int, last: int) -> PortBinding:
        ports = f"{first}-{last}"
        return cls(host_address=host_address, host_ports=ports, container_ports=ports)

    def render(self) -> str:
        return f"{self.host_address}:{self.host_ports}:{self.container_ports}"


@dataclass(frozen=True, slots=True)
class VolumeMount:
    """Named volume mounted into the container."""

    name: str
    target: str

    def render(self) -> str:
        return f"{self.name}:{self.target}"


@dataclass(frozen=True, slots=True)
class ResourceLimits:
    cpu_limit: str = "16"
    mem_limit: str = "64G"
    pid_limit: int = 1024
    max_open_files: int = 1048576


NODE_VOLUMES: Final[tuple[VolumeMount, ...]] = (
    VolumeMount(name="node-data", target="/data"),
    VolumeMount(name="node-bin", target="/opt/hl/bin"),
)


@dataclass(frozen=True, slots=True)
class WorkloadSpec:
    """Declarative description of the node container."""

    install_dir: Path
    image_reference: str = NODE_IMAGE
    command_args: tuple[str, ...] = NODE_COMMAND_ARGS
    env: Mapping[str, str] = field(default_factory=lambda: NODE_ENVIRONMENT)
    port_bindings: tuple[PortBinding, ...] = ()
    resource_limits: ResourceLimits = field(default_factory=ResourceLimits)
    volumes: tuple[VolumeMount, ...] = NODE_VOLUMES
    read_only_root: bool = True
    sysctls: Mapping[str, str] = field(default_factory=lambda: NODE_SYSCTLS)
    project_name: str = COMPOSE_PROJECT
    service_name: str = COMPOSE_SERVICE
    container_name: str = CONTAINER_NAME
    restart: str = "unless-stopped"

    @property
    def compose_path(self) -> Path:
        return self.install_dir / COMPOSE_FILENAME

    @property
    def rpc_binding(self) -> PortBinding:
        return self.port_bindings[0]


def rpc_binding(*, external_rpc_exposed: bool) -> PortBinding:
    address = ALL_INTERFACES_ADDRESS if external_rpc_exposed else LOOPBACK_ADDRESS
    return PortBinding.single(address, RPC_PORT)


def build_workload_spec(
    install_dir: Path,
    image_reference: str = NODE_IMAGE,
    *,
    external_rpc_exposed: bool = False,
    project_name: str = COMPOSE_PROJECT,
) -> WorkloadSpec:
    """Build the node's workload spec for one install directory."""

    if not image_reference.strip():
        raise ValueError("image_reference must be a non-empty string")
    bindings = (
        rpc_binding(external_rpc_exposed=external_rpc_exposed),
        PortBinding.single(LOOPBACK_ADDRESS, METRICS_PORT),
        PortBinding.span(ALL_INTERFACES_ADDRESS, P2P_PORT_FIRST, P2P_PORT_LAST),
    )
    return WorkloadSpec(
        install_dir=Path(install_dir),
        image_reference=image_reference,
        port_bindings=bindings,
        project_name=project_name,
    )


def compose_document(spec: WorkloadSpec) -> dict[str, Any]:
    """Return the compose document as plain, insertion-ordered data."""

    limits = spec.resource_limits
    service: dict[str, Any] = {
        "image": spec.image_reference,
        "container_name": spec.container_name,
        "restart": spec.restart,
        "command": list(spec.command_args),
        "read_only": spec.read_only_root,
        "sysctls": dict(spec.sysctls),
        "environment": dict(spec.env),
        "volumes": [volume.render() for volume in spec.volumes],
        "ports": [binding.render() for binding in spec.port_bindings],
        "deploy": {
            "resources": {
                "limits": {
                    "cpus": limits.cpu_limit,
                    "memory": limits.mem_limit,
                    "pids": limits.pid_limit,
                }
            }
        },
        "ulimits": {
            "nofile": {"soft": limits.max_open_files, "hard": limits.max_open_files},
        },
    }
    return {
        "name": spec.project_name,
        "services": {spec.service_name: service},
        "volumes": {volume.name: {"driver": "local"} for volume in spec.volumes},
    }


def render_compose(spec: WorkloadSpec) -> str:
    return yaml.safe_dump(
        compose_document(spec),
        sort_keys=False,
        default_flow_style=False,
        width=4096,
    )


def write_compose(spec: WorkloadSpec) -> WriteResult:
    return write_if_changed(spec.compose_path, render_compose(spec), mode=0o644)


__all__ = [
    "NODE_COMMAND_ARGS",
    "NODE_ENVIRONMENT",
    "NODE_SYSCTLS",
    "NODE_VOLUMES",
    "PortBinding",
    "ResourceLimits",
    "VolumeMount",
    "WorkloadSpec",
    "build_workload_spec",
    "compose_document",
    "render_compose",
    "rpc_binding",
    "write_compose",
]
