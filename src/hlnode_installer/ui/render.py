"""Output rendering abstraction for the hlnode-install CLI.

Purpose
- Provide a thin rendering layer for command output (stdout), separate from
  the diagnostic log stream (stderr and the install log).
- Respect the NO_COLOR environment variable and the --no-color CLI flag.

Functional requirements
- Plain-text rendering must always work without a terminal.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

_GREEN = "\033[0;32m"
_YELLOW = "\033[1;33m"
_RED = "\033[0;31m"
_RESET = "\033[0m"


def color_allowed(no_color_flag: bool, stream: TextIO | None = None) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    target = stream if stream is not None else sys.stdout
    return hasattr(target, "isatty") and target.isatty()


class CLIRenderer:
    """Thin CLI output renderer.

    Produces clean, deterministic plain-text output.
    Respects ``NO_COLOR`` env var and ``--no-color`` flag.
    """

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream
        self._color = color_allowed(no_color, stream)

    @property
    def color(self) -> bool:
        return self._color

    def heading(self, text: str) -> None:
        self._print(self._paint(text, _GREEN))

    def kv(self, key: str, value: object) -> None:
        self._print(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._print(line)

    def block(self, text: str) -> None:
        """Print preformatted text without adding a trailing newline."""

        self._print(text, end="")

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._print(f"\n{title}")

    def warning(self, text: str) -> None:
        self._print(self._paint(f"  Warning: {text}", _YELLOW))

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._print(f"  {prefix}{entry}")

    def ok(self, label: str) -> None:
        """Print a passing diagnostic check."""

        self._print(f"  {self._paint('OK', _GREEN)}  {label}")

    def fail(self, label: str) -> None:
        """Print a failing diagnostic check."""

        self._print(f"  {self._paint('FAIL', _RED)}  {label}")

    def _paint(self, text: str, color: str) -> str:
        if not self._color:
            return text
        return f"{color}{text}{_RESET}"

    def _print(self, text: str, *, end: str = "\n") -> None:
        print(text, end=end, file=self._stream if self._stream is not None else sys.stdout)


def create_renderer(
    *,
    no_color: bool = False,
    verbose: bool = False,
    stream: TextIO | None = None,
) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "color_allowed", "create_renderer"]
