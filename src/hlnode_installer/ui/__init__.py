"""UI package exports for the CLI and its output renderer."""

from hlnode_installer.ui.cli import CLIError, build_parser, run_cli
from hlnode_installer.ui.render import CLIRenderer, color_allowed, create_renderer

__all__ = [
    "CLIError",
    "CLIRenderer",
    "build_parser",
    "color_allowed",
    "create_renderer",
    "run_cli",
]
