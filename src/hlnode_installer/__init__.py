"""
hlnode-installer: one-shot provisioning of a supervised Hyperliquid node host.

The package turns a bare Debian/Ubuntu machine into a host running the node
container under systemd. It validates hardware, installs Docker, tunes the
kernel and firewall, renders the compose file and unit, starts the workload,
and waits for evidence that the node is live.

Import-time behavior is side-effect free: no config loading and no logging setup.
"""

from __future__ import annotations

__version__ = "0.3.0"

__all__ = ["__version__"]
