"""Shared utilities."""

from hlnode_installer.utils.fs import WriteResult, atomic_write, write_if_changed

__all__ = ["WriteResult", "atomic_write", "write_if_changed"]
