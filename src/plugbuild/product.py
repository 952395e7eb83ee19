"""Build targets.

A :class:`Product` is one compilation unit: an entry module compiled and
bundled into one output file plus its source map. A plugin has one product
for its main program and, optionally, one for its UI script.

Products are mutable between builds. :meth:`Product.copy` returns a
shallow copy so that a shared base configuration can be specialized for
one build without touching the original.
"""

from __future__ import annotations

import os
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from plugbuild.assets.virtualizer import AssetVirtualizer
from plugbuild.exceptions import ConfigError
from plugbuild.libraries import Library, StdLib
from plugbuild.models import BuildContext, BuildOutput
from plugbuild.toolchain.svgo import SvgoOptimizer
from plugbuild.util import rpath


def _default_assets() -> AssetVirtualizer:
    return AssetVirtualizer(SvgoOptimizer())


class Product(BaseModel):
    """One compilation target.

    Paths are made absolute on construction. ``mapfile`` defaults to
    ``<outfile>.map``, ``srcdir`` to the entry's directory and ``banner``
    to ``/* <name> <version> */``.

    Example::

        Product(entry="src/plugin.ts", outfile="build/plugin.js", libs=[runtime])
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    entry: str = Field(description="Entry source file")
    outfile: str = Field(description="Output program file")
    name: str = Field(default="", description="Display name; defaults to the output path")
    version: str = Field(default="0.0.0", description="Baked into VERSION and the banner")
    basedir: str = Field(default=".", description="Where tsconfig.json and node_modules live")
    srcdir: str = Field(default="", description="Source root used by source maps")
    mapfile: str = Field(default="", description="Output source map file")
    target_es_version: int = Field(default=0, description="ECMAScript target; 0 is latest")
    jsx: Optional[str] = Field(default=None, description="JSX mode, e.g. 'react'")
    banner: str = Field(default="", description="Code placed above the wrapper")
    libs: list[Library] = Field(default_factory=list)
    stdlibs: list[StdLib] = Field(default_factory=list)
    subs: list[tuple[Any, Any]] = Field(
        default_factory=list, description="(lookup, replacement) pairs, see plugbuild.strings"
    )
    defines_inline: dict[str, Any] = Field(
        default_factory=dict, description="Constants the optimizer may fold"
    )
    defines: dict[str, Any] = Field(
        default_factory=dict, description="Constants declared at the top of the output"
    )
    output: BuildOutput = Field(default_factory=BuildOutput)
    assets: AssetVirtualizer = Field(default_factory=_default_assets)

    @model_validator(mode="after")
    def _resolve(self) -> Product:
        self.outfile = os.path.abspath(self.outfile)
        self.entry = os.path.abspath(self.entry)
        self.basedir = os.path.abspath(self.basedir)
        if not self.name:
            self.name = rpath(self.outfile)
        self.srcdir = os.path.abspath(self.srcdir) if self.srcdir else os.path.dirname(self.entry)
        self.mapfile = os.path.abspath(self.mapfile) if self.mapfile else self.outfile + ".map"
        if not self.banner:
            self.banner = f"/* {self.name} {self.version} */\n"
        return self

    @property
    def outdir(self) -> str:
        return os.path.dirname(self.outfile)

    def copy(self) -> Product:  # type: ignore[override]
        """Return a shallow copy; lists and tables are shared with the original."""
        return self.model_copy()

    def check_paths(self) -> None:
        """Raise :class:`ConfigError` when the entry would be overwritten by the output."""
        if os.path.realpath(self.entry) == os.path.realpath(self.outfile):
            raise ConfigError(
                f"entry file {rpath(self.entry)!r} is the same as output file"
            )

    def pre_build(self, ctx: BuildContext) -> None:
        """Compute the constant tables for *ctx*.

        The inlinable table is gathered from the libraries once and kept;
        ``defines`` is rebuilt each time from it plus ``VERSION``. Both tables
        are replaced, never updated in place, so a copy can be specialized
        without touching the product it was copied from.
        """
        if not self.defines_inline:
            inline: dict[str, Any] = {}
            for lib in self.libs:
                inline.update(lib.get_defines(ctx.debug))
            self.defines_inline = inline
        self.defines = {"VERSION": self.version, **self.defines_inline}

    def __repr__(self) -> str:
        return f"Product({self.name!r})"
