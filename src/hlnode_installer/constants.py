"""Stable constants shared by the host, service, and report layers."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Final

# Config schema version for ``hlnode.toml``.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Workload identity.
NETWORK_NAME: Final[str] = "mainnet"
NODE_IMAGE: Final[str] = "ghcr.io/buckshotcapital/hyperliquid-node:mainnet"
COMPOSE_PROJECT: Final[str] = "hyperliquid"
COMPOSE_SERVICE: Final[str] = "node"
CONTAINER_NAME: Final[str] = "hyperliquid-node"
COMPOSE_FILENAME: Final[str] = "docker-compose.yml"
UNIT_NAME: Final[str] = "hyperliquid-node.service"
DOCKER_BINARY: Final[str] = "/usr/bin/docker"

# Network bindings.
LOOPBACK_ADDRESS: Final[str] = "127.0.0.1"
ALL_INTERFACES_ADDRESS: Final[str] = "0.0.0.0"
RPC_PORT: Final[int] = 3001
METRICS_PORT: Final[int] = 2112
P2P_PORT_FIRST: Final[int] = 4000
P2P_PORT_LAST: Final[int] = 4010
SSH_PORT: Final[int] = 22

# Host paths owned by the installer.
DEFAULT_INSTALL_DIR: Final[str] = "/opt/hyperliquid"
SYSCTL_CONF_PATH: Final[Path] = Path("/etc/sysctl.d/99-hyperliquid.conf")
LIMITS_CONF_PATH: Final[Path] = Path("/etc/security/limits.d/hyperliquid.conf")
SYSTEMD_UNIT_DIR: Final[Path] = Path("/etc/systemd/system")
APT_KEYRING_PATH: Final[Path] = Path("/etc/apt/keyrings/docker.asc")
APT_SOURCES_PATH: Final[Path] = Path("/etc/apt/sources.list.d/docker.list")
OS_RELEASE_PATH: Final[Path] = Path("/etc/os-release")
INSTALL_LOG_FILENAME: Final[str] = "install.jsonl"

# Workload-owned data categories under the install directory.
NODE_DATA_ROOT: Final[PurePosixPath] = PurePosixPath("node-data/_data/hl/data")
NODE_DATA_DIRS: Final[tuple[tuple[str, str], ...]] = (
    ("Trades", "node_trades"),
    ("Fills", "node_fills"),
    ("Order Status", "node_order_statuses"),
    ("Raw Diffs", "node_raw_book_diffs"),
)

__all__ = [
    "ALL_INTERFACES_ADDRESS",
    "APT_KEYRING_PATH",
    "APT_SOURCES_PATH",
    "COMPOSE_FILENAME",
    "COMPOSE_PROJECT",
    "COMPOSE_SERVICE",
    "CONFIG_SCHEMA_VERSION",
    "CONTAINER_NAME",
    "DEFAULT_INSTALL_DIR",
    "DOCKER_BINARY",
    "INSTALL_LOG_FILENAME",
    "LIMITS_CONF_PATH",
    "LOOPBACK_ADDRESS",
    "METRICS_PORT",
    "NETWORK_NAME",
    "NODE_DATA_DIRS",
    "NODE_DATA_ROOT",
    "NODE_IMAGE",
    "OS_RELEASE_PATH",
    "P2P_PORT_FIRST",
    "P2P_PORT_LAST",
    "RPC_PORT",
    "SSH_PORT",
    "SYSCTL_CONF_PATH",
    "SYSTEMD_UNIT_DIR",
    "UNIT_NAME",
]
