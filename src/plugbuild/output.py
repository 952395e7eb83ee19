"""Terminal output for plugbuild.

Build reports and diagnostics are written to stderr; stdout carries only
what a command was asked to print (``plugbuild version``), so it stays
clean when piped. Colour is off when ``--no-color`` is given, ``NO_COLOR``
is set, or ``TERM=dumb``.

Four levels of diagnostics exist:

========  ====================================================  ============
level     used for                                              shown
========  ====================================================  ============
error     failed builds, unreadable manifests                   always
warning   bundler warnings, undecodable assets                  always
info      "building ..." / "built ... in 1.2s" plugin reports   unless -q
progress  user library compiles                                 with -v
debug     per-module timings, cache hits, configurations        with --trace
========  ====================================================  ============

Errors and warnings may carry a code *frame* (the excerpt of source the
bundler prints under a located message); it is printed dimmed beneath the
message.

Build components call the module-level functions, which go through the
process-global :class:`OutputManager` installed by
:func:`~plugbuild.app.main_callback`.
"""

from __future__ import annotations

import os
import sys
from typing import Optional

from rich.console import Console
from rich.markup import escape


class OutputManager:
    """Routes build reports and diagnostics to a Rich console on stderr.

    Args:
        no_color: Print plain text without styles.
        quiet: Drop ``info`` and ``progress`` reports.
        verbose: Show ``progress`` reports.
        trace: Show ``debug`` reports (implies *verbose*).
    """

    def __init__(
        self,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
        trace: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._trace = trace
        self._verbose = verbose or trace
        self._console = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    @property
    def is_trace(self) -> bool:
        return self._trace

    def _emit(self, message: str, style: str = "", label: str = "", frame: Optional[str] = None) -> None:
        if self._no_color:
            print(f"{label} {message}" if label else message, file=sys.stderr, flush=True)
            if frame:
                print(frame, file=sys.stderr, flush=True)
            return
        text = escape(message)
        if label:
            text = f"[{style}]{escape(label)}[/{style}] {text}"
        elif style:
            text = f"[{style}]{text}[/{style}]"
        self._console.print(text, highlight=False)
        if frame:
            self._console.print(f"[dim]{escape(frame)}[/dim]", highlight=False)

    def print_data(self, text: str) -> None:
        """Print *text* to stdout, unstyled."""
        print(text, file=sys.stdout, flush=True)

    def error(self, message: str, frame: Optional[str] = None) -> None:
        self._emit(message, "bold red", "Error:", frame)

    def warning(self, message: str, frame: Optional[str] = None) -> None:
        self._emit(message, "yellow", "Warning:", frame)

    def info(self, message: str) -> None:
        if not self._quiet:
            self._emit(message)

    def progress(self, message: str) -> None:
        if self._verbose and not self._quiet:
            self._emit(message, "cyan")

    def debug(self, message: str) -> None:
        if self._trace:
            self._emit(message, "dim", "[debug]")


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set (to anything) or ``TERM`` is ``dumb``."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


# ---------------------------------------------------------------------------
# Global instance
# ---------------------------------------------------------------------------

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one if needed."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager; the next :func:`get_output` creates a fresh one.

    A manager's console is bound to the ``sys.stderr`` of the moment it was
    created, so test suites reset between tests.
    """
    global _output
    _output = None


def print_data(text: str) -> None:
    get_output().print_data(text)


def error(message: str, frame: Optional[str] = None) -> None:
    get_output().error(message, frame)


def warning(message: str, frame: Optional[str] = None) -> None:
    get_output().warning(message, frame)


def info(message: str) -> None:
    get_output().info(message)


def progress(message: str) -> None:
    get_output().progress(message)


def debug(message: str) -> None:
    get_output().debug(message)
