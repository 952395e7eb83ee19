"""Translate a :class:`~plugbuild.product.Product` into bundler configuration.

:func:`configure` returns the ``(InputConfig, OutputConfig)`` pair for one
bundler invocation:

* **Input** -- the entry module, the TypeScript plugin's options (compiler
  options merged from built-in defaults, the project's ``tsconfig.json``
  and a fixed set of overrides), the asset plugin and its compiler host.
* **Output** -- CommonJS code wrapped in a function that receives
  ``exports``, with the banner above the wrapper and an empty ``intro`` that
  :func:`plugbuild.builder.make_intro` fills with constants and library code.

A missing or malformed ``tsconfig.json`` is not an error; the template
shipped in ``plugbuild/lib`` is used instead.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
from pathlib import Path
from typing import Any, Optional

from plugbuild.config import get_lib_dir
from plugbuild.exceptions import ConfigError
from plugbuild.models import BuildContext
from plugbuild.output import debug, warning
from plugbuild.product import Product
from plugbuild.toolchain.base import BundleWarning, InputConfig, OutputConfig
from plugbuild.util import jsonfmt, rpath

WRAPPER_START = "(function(exports){\n"
WRAPPER_END = '})(typeof exports != "undefined" ? exports : this);\n'

TEMPLATE_TSCONFIG = "template-tsconfig.json"

_TS_IGNORE_RE = re.compile(r"//\s*@ts-ignore\b")

_TS_TARGETS = {
    0: "esnext",
    3: "es3",
    5: "es5",
    6: "es6",
    2015: "es6",
    7: "es2016",
    2016: "es2016",
    8: "es2017",
    2017: "es2017",
    9: "es2018",
    2018: "es2018",
}


def ts_target_id(target_es_version: int) -> str:
    """Return the compiler's target name for an ECMAScript version.

    ``0`` means the latest language level. Years after 2018 pass through
    as ``es<year>``.

    Raises:
        ConfigError: For any other unmapped version.
    """
    target = _TS_TARGETS.get(target_es_version)
    if target is not None:
        return target
    if target_es_version > 2018:
        return f"es{target_es_version}"
    raise ConfigError(f"invalid target ES version {target_es_version}")


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


async def load_project_tsconfig(basedir: str) -> tuple[str, dict[str, Any]]:
    """Return the tsconfig file to hand to the compiler, and its parsed content.

    Falls back to the bundled template (with empty content) when the
    project's file is missing, unreadable or not a JSON object. The
    fallback path is passed on explicitly so the compiler plugin does not
    go searching parent directories for an unrelated tsconfig.
    """
    file = Path(basedir) / "tsconfig.json"
    try:
        config = await asyncio.to_thread(_read_json, file)
    except (OSError, ValueError):
        config = None
    if not isinstance(config, dict):
        return str(get_lib_dir() / TEMPLATE_TSCONFIG), {}
    return str(file), config


def print_warning(w: BundleWarning) -> None:
    """Print a bundler warning with its location and code frame.

    Warnings whose frame shows a ``// @ts-ignore`` comment on the line
    above the reported line are dropped.
    """
    if not w.file:
        warning(w.message)
        return
    if w.frame:
        lines = w.frame.split("\n")
        for i, line in enumerate(lines):
            if i > 0 and line.lstrip().startswith(f"{w.line}:"):
                if _TS_IGNORE_RE.search(lines[i - 1]):
                    return
    warning(f"{rpath(w.file)}:{w.line}:{w.column} {w.message}", frame=w.frame)


def _jsx_mode(product: Product, compiler_options: dict[str, Any]) -> Optional[str]:
    if compiler_options.get("jsx") is not None:
        return compiler_options["jsx"]
    if product.entry.endswith((".tsx", ".jsx")):
        return "react"
    return product.jsx


async def make_input_config(product: Product, ctx: BuildContext) -> InputConfig:
    """Assemble the bundler input configuration for *product*."""
    tsconfig_file, tsconfig = await load_project_tsconfig(product.basedir)
    user_options = dict(tsconfig.get("compilerOptions") or {})

    estarget = ts_target_id(product.target_es_version)
    stdlibs = [estarget]
    if isinstance(user_options.get("lib"), list):
        stdlibs.extend(user_options["lib"])
    stdlibs.extend(lib.name for lib in product.stdlibs)

    include: list[str] = []
    if isinstance(tsconfig.get("include"), list):
        include = list(tsconfig["include"])
    include.extend(lib.dfile for lib in product.libs if lib.dfile)

    default_options = {
        "removeComments": not ctx.debug,
        "noFallthroughCasesInSwitch": True,
        "noImplicitReturns": True,
        "noImplicitThis": True,
        "preserveConstEnums": True,
        "strictNullChecks": True,
        "alwaysStrict": True,
        "forceConsistentCasingInFileNames": True,
        "allowSyntheticDefaultImports": True,
        "resolveJsonModule": True,
        "extendedDiagnostics": ctx.trace,
        "listFiles": ctx.trace,
    }

    compiler_options = {
        **user_options,
        "module": "esnext",
        "sourceMap": True,
        "target": estarget,
        "noEmitOnError": True,
        "outDir": os.path.relpath(product.outdir, start=product.basedir),
        "lib": stdlibs,
        "jsx": _jsx_mode(product, user_options),
        "baseUrl": os.path.relpath(product.srcdir, start=product.basedir),
    }
    if ctx.debug:
        compiler_options["pretty"] = True

    typescript = {
        "check": False,
        "verbosity": 2 if ctx.trace else 1,
        "tsconfig": tsconfig_file,
        "tsconfigDefaults": {"compilerOptions": default_options},
        "tsconfigOverride": {"include": include, "compilerOptions": compiler_options},
        "cacheRoot": os.path.join(product.outdir, ".tscache-" + ("g" if ctx.debug else "o")),
        "clean": ctx.clean,
    }

    if ctx.trace:
        debug(
            f"configuration for {product.name!r}:\n"
            + jsonfmt(
                {
                    "outfile": product.outfile,
                    "outdir": product.outdir,
                    "name": product.name,
                    "version": product.version,
                    "basedir": product.basedir,
                    "entry": product.entry,
                    "srcdir": product.srcdir,
                    "targetESVersion": product.target_es_version,
                    "tsconfig": tsconfig_file,
                    "tsconfig.compilerOptions": {**default_options, **compiler_options},
                    "tsconfig.include": include,
                    "libs": [repr(lib) for lib in product.libs],
                }
            )
        )

    return InputConfig(
        entry=product.entry,
        basedir=product.basedir,
        typescript=typescript,
        plugins=[product.assets],
        compiler_host=product.assets.compiler_host(),
        virtual_extensions=product.assets.extensions,
        on_warn=print_warning,
    )


def make_output_config(product: Product, ctx: BuildContext) -> OutputConfig:
    """Assemble the bundler output configuration for *product*.

    Code is wrapped in a closure exposing ``exports``. The ``intro`` is left
    empty for the builder to fill with constants and library code.
    """
    return OutputConfig(
        file=product.outfile,
        name=product.name,
        format="cjs",
        sourcemap=True,
        freeze=ctx.debug,
        banner=product.banner + WRAPPER_START,
        footer=WRAPPER_END,
    )


async def configure(product: Product, ctx: BuildContext) -> tuple[InputConfig, OutputConfig]:
    """Return the input and output configuration for one bundler run.

    Raises:
        ConfigError: If the product's target version is invalid.
    """
    ts_target_id(product.target_es_version)
    return await make_input_config(product, ctx), make_output_config(product, ctx)
