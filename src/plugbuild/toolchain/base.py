"""Contracts for the external tools a build drives.

plugbuild does not type-check, bundle, minify or optimize SVG itself. It
drives external tools through the narrow interfaces declared here:

* :class:`Bundler` -- compiles and bundles an entry module, once
  (:meth:`Bundler.bundle`) or continuously (:meth:`Bundler.watch`).
* :class:`BundlerPlugin` -- resolution and loading hooks the bundler
  calls back into while it runs.
* :class:`CompilerHost` -- file lookups the type checker performs, so
  that virtual declaration files can be answered.
* :class:`Minifier` -- code minification with source-map rebasing.
* :class:`SvgOptimizer` -- vector-graphics optimization for SVG assets.

Shipped implementations live in :mod:`plugbuild.toolchain.rollup`,
:mod:`plugbuild.toolchain.terser` and :mod:`plugbuild.toolchain.svgo`.
Tests substitute in-process fakes.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Optional, Protocol, Union, runtime_checkable

from plugbuild.exceptions import BuildError


# ------------------------------------------------------------------ #
# Compiler host and bundler plugins
# ------------------------------------------------------------------ #


@runtime_checkable
class CompilerHost(Protocol):
    """File-system view consulted by the type checker before the real disk."""

    def file_exists(self, path: str) -> bool: ...

    def read_file(self, path: str) -> Optional[str]: ...


@dataclass(frozen=True)
class JsxModule:
    """Module source in JSX, returned by a plugin's ``load`` hook.

    The bundler transpiles it with the JSX settings of the program being
    compiled before parsing it.
    """

    source: str
    file_name: str


@runtime_checkable
class BundlerPlugin(Protocol):
    """Hooks a bundler calls for every module it resolves and loads.

    ``id_pattern`` is a regular expression (JavaScript-compatible syntax)
    selecting the module ids the plugin wants to see; a bundler may skip
    the round-trip for ids that do not match.
    """

    name: str
    id_pattern: str

    def resolve_id(self, source: str, importer: Optional[str]) -> Optional[str]: ...

    async def load(self, module_id: str) -> Optional[Union[str, JsxModule]]: ...

    def build_end(self) -> None: ...


# ------------------------------------------------------------------ #
# Bundler configuration and results
# ------------------------------------------------------------------ #


@dataclass
class BundleWarning:
    """A non-fatal diagnostic reported by the bundler."""

    message: str
    code: Optional[str] = None
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    frame: Optional[str] = None


@dataclass
class InputConfig:
    """What to bundle and how to compile it.

    Attributes:
        entry: Absolute path of the entry module.
        basedir: Project root; node modules are resolved from here.
        typescript: Options for the TypeScript bundler plugin (tsconfig
            path, defaults, overrides, cache root).
        plugins: Python-side plugins the bundler calls back into.
        compiler_host: Overrides for the type checker's file lookups.
        virtual_extensions: Asset extensions whose ``.d.ts`` lookups are
            routed to *compiler_host*.
        external: Module ids left unbundled.
        on_warn: Receives every bundler warning.
    """

    entry: str
    basedir: str
    typescript: dict[str, Any] = field(default_factory=dict)
    plugins: list[BundlerPlugin] = field(default_factory=list)
    compiler_host: Optional[CompilerHost] = None
    virtual_extensions: list[str] = field(default_factory=list)
    external: list[str] = field(default_factory=list)
    on_warn: Optional[Callable[[BundleWarning], None]] = None


@dataclass
class OutputConfig:
    """How bundled code is emitted.

    ``intro`` is placed inside the wrapper, ahead of user code; ``banner``
    and ``footer`` surround everything.
    """

    file: str
    name: str
    format: str = "cjs"
    sourcemap: bool = True
    freeze: bool = False
    banner: str = ""
    footer: str = ""
    intro: str = ""

    def to_json(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "name": self.name,
            "format": self.format,
            "sourcemap": self.sourcemap,
            "freeze": self.freeze,
            "banner": self.banner,
            "footer": self.footer,
            "intro": self.intro,
        }


@dataclass
class OutputChunk:
    """One emitted fragment: code, its parsed source map, and the entry flag."""

    code: str
    map: dict[str, Any]
    is_entry: bool = False
    file_name: str = ""


@dataclass
class BundleResult:
    output: list[OutputChunk]

    def entry_chunk(self) -> OutputChunk:
        """Return the last chunk flagged as an entry, or the first chunk."""
        if not self.output:
            raise BuildError("bundler produced no output")
        chosen = self.output[0]
        for chunk in self.output[1:]:
            if chunk.is_entry:
                chosen = chunk
        return chosen


# ------------------------------------------------------------------ #
# Watch mode
# ------------------------------------------------------------------ #


class WatchEventCode(str, enum.Enum):
    """Lifecycle events emitted by a watching bundler."""

    START = "START"  # the watcher is (re)starting
    BUNDLE_START = "BUNDLE_START"  # building one bundle
    BUNDLE_END = "BUNDLE_END"  # finished one bundle; output files are written
    END = "END"  # finished all bundles
    ERROR = "ERROR"  # recoverable build error
    FATAL = "FATAL"  # unrecoverable error


@dataclass
class WatchEvent:
    code: WatchEventCode
    error: Optional[BuildError] = None


@runtime_checkable
class Watcher(Protocol):
    """A running watch process: an async stream of :class:`WatchEvent`."""

    def __aiter__(self) -> AsyncIterator[WatchEvent]: ...

    async def close(self) -> None: ...


@runtime_checkable
class Bundler(Protocol):
    async def bundle(self, input: InputConfig, output: OutputConfig) -> BundleResult: ...

    def watch(self, input: InputConfig, output: OutputConfig) -> Watcher: ...


# ------------------------------------------------------------------ #
# Minifier and SVG optimizer
# ------------------------------------------------------------------ #


@dataclass
class MinifyResult:
    code: str
    map: str = ""


@runtime_checkable
class Minifier(Protocol):
    """Synchronous minifier.

    Raises:
        OptimizeError: When the input cannot be parsed or minified.
    """

    def minify(
        self,
        files: dict[str, str],
        options: dict[str, Any],
        source_map: Optional[dict[str, Any]] = None,
    ) -> MinifyResult: ...


@dataclass
class SvgResult:
    """Optimized SVG text and the raw width/height attributes of its root."""

    data: str
    width: Optional[str] = None
    height: Optional[str] = None


@runtime_checkable
class SvgOptimizer(Protocol):
    def optimize(self, svg: str, path: str) -> SvgResult: ...
