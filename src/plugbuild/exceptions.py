"""Exception hierarchy for plugbuild.

All exceptions inherit from :class:`PlugbuildError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`plugbuild.exit_codes`.
The top-level error handler in :func:`plugbuild.app.main` catches
``PlugbuildError`` and exits with the appropriate code, printing the message
only when the error has not already been reported by the component that
raised it.

Subclass hierarchy::

    PlugbuildError (exit 1)
    +-- InvalidUsageError        (exit 2)
    +-- ConfigError              (exit 3)
    +-- BuildError               (exit 4)
    |   +-- OptimizeError        (exit 4)
    |   +-- LibraryCompileError  (exit 4)
    +-- AssetFormatError         (exit 5)
    +-- ToolchainError           (exit 6)
"""

from __future__ import annotations

import re
from typing import Optional

from plugbuild.exit_codes import (
    EXIT_ASSET_ERROR,
    EXIT_BUILD_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_TOOLCHAIN_ERROR,
)

_TS_ORIGIN_RE = re.compile(r"(\n|^)(.+)\((\d+),(\d+)\)")


def format_location(
    file: Optional[str],
    line: Optional[int],
    column: Optional[int],
    message: str,
) -> str:
    """Render ``file:line:column: message``, omitting parts that are unknown."""
    if not file:
        return message
    if line is None:
        return f"{file}: {message}"
    if column is None:
        return f"{file}:{line}: {message}"
    return f"{file}:{line}:{column}: {message}"


def normalize_ts_origins(message: str) -> str:
    """Rewrite TypeScript-style ``file(line,col)`` origins to ``file:line:col``."""
    return _TS_ORIGIN_RE.sub(r"\1\2:\3:\4", message)


class PlugbuildError(Exception):
    """Base exception for all plugbuild errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.reported = False
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(PlugbuildError):
    """Raised for invalid CLI arguments."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(PlugbuildError):
    """Raised before any tool runs when a target is misconfigured.

    Covers invalid language-level versions, duplicate library files, entry
    files that equal their output file, and unreadable manifests.
    """

    exit_code = EXIT_CONFIG_ERROR


class BuildError(PlugbuildError):
    """Raised when compiling or bundling a product fails.

    Carries the source location when the underlying tool reported one.
    ``reported`` is set once the error has been printed so the entry point
    does not print it a second time.

    Args:
        message: The tool's error message.
        file: Source file the error refers to, if known.
        line: 1-based line number, if known.
        column: Column number, if known.
        frame: Code frame excerpt supplied by the bundler, if any.
    """

    exit_code = EXIT_BUILD_FAILURE

    def __init__(
        self,
        message: str,
        *,
        file: Optional[str] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
        frame: Optional[str] = None,
        plugin: Optional[str] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.file = file
        self.line = line
        self.column = column
        self.frame = frame
        self.plugin = plugin
        self.code = code

    @property
    def location_message(self) -> str:
        """The message prefixed with ``file:line:column`` when available."""
        return format_location(self.file, self.line, self.column, str(self))


class OptimizeError(BuildError):
    """Raised when the minifier rejects its input."""

    def __init__(
        self,
        message: str,
        *,
        filename: Optional[str] = None,
        line: Optional[int] = None,
        col: Optional[int] = None,
    ):
        super().__init__(message, file=filename, line=line, column=col)

    @property
    def filename(self) -> Optional[str]:
        return self.file

    @property
    def col(self) -> Optional[int]:
        return self.column


class LibraryCompileError(BuildError):
    """Raised when a library source file fails to compile."""


class AssetFormatError(PlugbuildError):
    """Raised when an image header cannot be decoded (not a GIF, truncated JPEG, ...)."""

    exit_code = EXIT_ASSET_ERROR


class ToolchainError(PlugbuildError):
    """Raised when an external tool is missing or exits abnormally."""

    exit_code = EXIT_TOOLCHAIN_ERROR
