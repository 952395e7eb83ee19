"""Libraries: code and declarations linked into every product.

A :class:`Library` pairs a declaration file (``.d.ts``, added to the type
checker's include list) with an optional code file (``.js``, compiled once
and prepended to the product's output). A :class:`StdLib` names one of the
compiler's standard libraries, such as ``dom``.

Compiled library code is cached at two levels:

* **Memory** -- one slot per debug flag, valid while its timestamp is at
  least the source file's modification time.
* **Disk** -- ``<cachedir>/.debug-<path>`` or ``<cachedir>/.opt-<path>``,
  where ``<path>`` is the absolute source path with every run of
  characters outside ``[A-Za-z0-9_.-]`` replaced by ``-``. Valid under the
  same modification-time rule. Unreadable cache files count as misses.

Concurrent :meth:`Library.get_code` calls for the same library and debug
flag share one compile: the first caller compiles, the rest wait on
futures that are settled with its result.

:class:`LibraryRegistry` owns the Library instances of one build run,
keyed by canonical file paths, so that products sharing a library share
its cache and its in-flight compile.
"""

from __future__ import annotations

import asyncio
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from plugbuild.config import atomic_write, get_lib_cache_dir, get_lib_dir
from plugbuild.exceptions import (
    ConfigError,
    LibraryCompileError,
    OptimizeError,
    PlugbuildError,
)
from plugbuild.models import BuildContext
from plugbuild.output import debug, error, progress, warning
from plugbuild.toolchain.base import Minifier
from plugbuild.util import rpath

_CACHE_NAME_RE = re.compile(r"[^A-Za-z0-9_\-.]+")

# Host API declaration files, newest first: lib/host-api-<version>.d.ts
HOST_API_VERSIONS = ("1.0.0",)


def _mtime(path: str) -> float:
    return os.stat(path).st_mtime


def _mtime_or_none(path: Path) -> Optional[float]:
    try:
        return path.stat().st_mtime
    except OSError:
        return None


def _read_text(path: str | Path) -> str:
    return Path(path).read_text(encoding="utf-8")


@dataclass(frozen=True)
class _Compiled:
    code: str
    mtime: float


class LibraryBase:
    """Anything a product can link against."""


class StdLib(LibraryBase):
    """A standard compiler library referenced by name, e.g. ``"dom"``."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"StdLib({self.name!r})"


class Library(LibraryBase):
    """A declaration file and/or a code file linked into products.

    Args:
        dfile: Type declaration file (``.d.ts``).
        jsfile: Code file. When omitted the library only contributes
            types and :meth:`get_code` returns ``""``.
        cachedir: Directory for compiled code. Defaults to the user cache
            directory's ``libs/``.
        minifier: Compiles the code file. Required when *jsfile* is set.

    Raises:
        ValueError: If neither *dfile* nor *jsfile* is given.
    """

    def __init__(
        self,
        dfile: Optional[str | Path] = None,
        jsfile: Optional[str | Path] = None,
        cachedir: Optional[str | Path] = None,
        minifier: Optional[Minifier] = None,
    ) -> None:
        if not dfile and not jsfile:
            raise ValueError("a library needs a declaration file or a code file")
        self.dfile = os.path.abspath(dfile) if dfile else ""
        self.jsfile = os.path.abspath(jsfile) if jsfile else ""
        self._cachedir = Path(cachedir).resolve() if cachedir else None
        self.minifier = minifier
        self._memory: dict[bool, _Compiled] = {}
        self._in_flight: dict[bool, list[asyncio.Future[str]]] = {}

    @property
    def cachedir(self) -> Path:
        if self._cachedir is None:
            self._cachedir = get_lib_cache_dir()
        return self._cachedir

    def __repr__(self) -> str:
        cwd = os.getcwd()

        def short(path: str) -> str:
            return rpath(path) if path.startswith(cwd) else path

        parts = [short(p) for p in (self.dfile, self.jsfile) if p]
        return f"{type(self).__name__}({':'.join(parts)})"

    def get_defines(self, debug: bool) -> dict[str, Any]:
        """Constants this library expects, inlinable by the optimizer."""
        return {"DEBUG": debug}

    def cache_file(self, debug: bool) -> Path:
        prefix = ".debug-" if debug else ".opt-"
        return self.cachedir / (prefix + _CACHE_NAME_RE.sub("-", self.jsfile))

    # ------------------------------------------------------------------ #
    # Compiled code
    # ------------------------------------------------------------------ #

    async def get_code(self, ctx: BuildContext) -> str:
        """Return the compiled code for *ctx*'s debug mode.

        Raises:
            LibraryCompileError: If the source cannot be read or compiled.
                Every caller waiting on the same compile receives it.
        """
        if not self.jsfile:
            return ""
        flag = ctx.debug

        try:
            source_mtime = await asyncio.to_thread(_mtime, self.jsfile)
        except OSError as exc:
            raise LibraryCompileError(f"cannot read library {self}: {exc}", file=self.jsfile)

        cached = self._memory.get(flag)
        if cached is not None and cached.mtime >= source_mtime:
            if ctx.trace:
                debug(f"memory cache hit for lib {self}")
            return cached.code

        waiters = self._in_flight.get(flag)
        if waiters is not None:
            future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
            waiters.append(future)
            return await future

        self._in_flight[flag] = []
        try:
            code = await self._load_or_compile(ctx, source_mtime)
        except BaseException as exc:
            self._settle(flag, error=exc)
            raise
        self._settle(flag, code=code)
        return code

    def _settle(
        self, flag: bool, code: str = "", error: Optional[BaseException] = None
    ) -> None:
        for future in self._in_flight.pop(flag, []):
            if future.done():
                continue
            if error is None:
                future.set_result(code)
            elif isinstance(error, Exception):
                future.set_exception(error)
            else:
                future.cancel()

    async def _load_or_compile(self, ctx: BuildContext, source_mtime: float) -> str:
        cache_file = self.cache_file(ctx.debug)

        cache_mtime = await asyncio.to_thread(_mtime_or_none, cache_file)
        if cache_mtime is not None and cache_mtime >= source_mtime:
            try:
                code = await asyncio.to_thread(_read_text, cache_file)
            except OSError as exc:
                debug(f"unreadable cache file {cache_file}: {exc}")
            else:
                if ctx.trace:
                    debug(f"cache hit for lib {self} ({cache_file})")
                self._memory[ctx.debug] = _Compiled(code, time.time())
                return code
        if ctx.trace:
            debug(f"cache miss for lib {self} ({cache_file})")

        if ctx.trace:
            debug(f"build lib {self.jsfile} -> {cache_file}")
        elif ctx.verbose and isinstance(self, UserLib):
            progress(f"build lib {self}")

        try:
            source = await asyncio.to_thread(_read_text, self.jsfile)
        except OSError as exc:
            raise LibraryCompileError(f"cannot read library {self}: {exc}", file=self.jsfile)
        code = self.compile(ctx, source)

        try:
            await asyncio.to_thread(atomic_write, cache_file, code)
        except OSError as exc:
            debug(f"cannot write cache file {cache_file}: {exc}")
        else:
            if ctx.trace:
                debug(f"compiled lib {rpath(self.jsfile)} cached at {cache_file}")

        self._memory[ctx.debug] = _Compiled(code, time.time())
        return code

    def compile(self, ctx: BuildContext, source: str) -> str:
        """Strip dead branches for *ctx*'s debug mode; names are not mangled."""
        if self.minifier is None:
            raise LibraryCompileError(f"no minifier configured for {self}")
        options = {
            "ecma": 2015,
            "compress": {
                "dead_code": True,
                "global_defs": self.get_defines(ctx.debug),
            },
            "mangle": False,
            "format": {"beautify": ctx.debug, "comments": False},
        }
        try:
            result = self.minifier.minify({self.jsfile: source}, options)
        except OptimizeError as exc:
            raise LibraryCompileError(
                exc.location_message, file=exc.file, line=exc.line, column=exc.column
            )
        return result.code


class UserLib(Library):
    """A library named on the command line.

    A failing user library is reported and contributes no code instead of
    failing the build. A failure is reported once per debug mode, however
    many products link the library, until the library compiles again or
    fails differently.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._reported_failures: dict[bool, str] = {}

    async def get_code(self, ctx: BuildContext) -> str:
        try:
            code = await super().get_code(ctx)
        except PlugbuildError as exc:
            message = str(exc)
            if not exc.reported and self._reported_failures.get(ctx.debug) != message:
                error(f"Error while building {self}: {message}")
            self._reported_failures[ctx.debug] = message
            exc.reported = True
            return ""
        self._reported_failures.pop(ctx.debug, None)
        return code


class LibraryRegistry:
    """The libraries of one build run, keyed by canonical file paths.

    Args:
        minifier: Compiler used for every library's code file.
        cachedir: Cache directory for compiled code; ``None`` uses the
            user cache directory.
    """

    def __init__(self, minifier: Minifier, cachedir: Optional[str | Path] = None) -> None:
        self.minifier = minifier
        self.cachedir = cachedir
        self._libs: dict[tuple[type, str, str], Library] = {}
        self._stdlibs: dict[str, StdLib] = {}

    def get(
        self,
        dfile: Optional[str | Path] = None,
        jsfile: Optional[str | Path] = None,
        cls: type[Library] = Library,
    ) -> Library:
        """Return the library for a file pair, creating it on first use."""
        key = (
            cls,
            os.path.realpath(dfile) if dfile else "",
            os.path.realpath(jsfile) if jsfile else "",
        )
        lib = self._libs.get(key)
        if lib is None:
            lib = cls(dfile=dfile, jsfile=jsfile, cachedir=self.cachedir, minifier=self.minifier)
            self._libs[key] = lib
        return lib

    def stdlib(self, name: str) -> StdLib:
        lib = self._stdlibs.get(name)
        if lib is None:
            lib = self._stdlibs[name] = StdLib(name)
        return lib

    def runtime_library(self) -> Library:
        """The built-in runtime (``print``, ``assert``, ``DEBUG``...)."""
        lib_dir = get_lib_dir()
        return self.get(dfile=lib_dir / "plugbuild.d.ts", jsfile=lib_dir / "plugbuild.js")

    def host_api_library(self, api_version: Optional[str] = None) -> Library:
        """Declarations for the host API *api_version* (``None``/``"latest"``: newest).

        Unknown versions fall back to the newest declarations with a
        warning.
        """
        version = HOST_API_VERSIONS[0]
        if api_version and api_version != "latest":
            version = api_version
        dfile = get_lib_dir() / f"host-api-{version}.d.ts"
        if not dfile.is_file():
            warning(
                f"unknown host API version {api_version}. "
                "Using type definitions for latest known version."
            )
            dfile = get_lib_dir() / f"host-api-{HOST_API_VERSIONS[0]}.d.ts"
        return self.get(dfile=dfile)

    def user_libraries(self, files: list[str]) -> list[Library]:
        """Return :class:`UserLib` instances for *files*, typed by extension.

        A ``.d.ts`` file becomes a declaration-only library; any other file
        is a code file, paired with a sibling ``.d.ts`` when one exists.

        Raises:
            ConfigError: If the same file is listed twice.
        """
        seen: set[str] = set()
        libs: list[Library] = []
        for file in files:
            canonical = os.path.realpath(file)
            if canonical in seen:
                raise ConfigError(f"duplicate library file {file!r}")
            seen.add(canonical)
            if file.endswith(".d.ts"):
                libs.append(self.get(dfile=file, cls=UserLib))
                continue
            sibling = os.path.splitext(file)[0] + ".d.ts"
            dfile = sibling if os.path.isfile(sibling) else None
            libs.append(self.get(dfile=dfile, jsfile=file, cls=UserLib))
        return libs
