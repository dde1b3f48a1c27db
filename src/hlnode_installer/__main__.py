"""Module entrypoint for ``python -m hlnode_installer``."""

from __future__ import annotations

from hlnode_installer.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
