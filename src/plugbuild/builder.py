"""One-shot product builds and the post-processing pipeline.

:class:`ProductBuilder` runs a product through these stages, strictly in
order:

1. **Pre-build** -- compute the constant tables
   (:meth:`~plugbuild.product.Product.pre_build`).
2. **Compile** -- configure the bundler, fill the intro with constants and
   library code (:func:`make_intro`), run it once and pick the entry chunk.
3. **Post-process** -- patch the source map (:func:`patch_source_map`),
   apply the product's substitutions, optionally optimize, then replace the
   source-map comment (:func:`post_process_js`).
4. **Write** -- write the program and map files and update
   ``product.output``.

Any failure is printed with its location, marked as reported, and
re-raised. Files written before the failure are left in place.

The post-processing helpers are shared with
:mod:`plugbuild.session`, which runs stages 3 and 4 after every rebuild
in watch mode.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import time
from typing import Any, Optional

from plugbuild.config import atomic_write
from plugbuild.configurator import configure
from plugbuild.exceptions import BuildError, PlugbuildError, normalize_ts_origins
from plugbuild.models import BuildContext, BuildOutput
from plugbuild.output import debug, error
from plugbuild.product import Product
from plugbuild.strings import sub
from plugbuild.toolchain.base import Bundler, InputConfig, Minifier, MinifyResult, OutputConfig
from plugbuild.toolchain.terser import ecma_version
from plugbuild.util import fmt_byte_size, fmt_duration, inline_source_map, rpath, utf8_size

_SOURCE_MAPPING_URL_RE = re.compile(
    r"[\r\n\s]*//#\s*sourceMappingURL\s*=\s*[^\r\n]+[\r\n]*", re.MULTILINE
)

# Global functions without side effects, provided by every host.
PURE_FUNCS = ("Math.floor", "Math.ceil", "Math.round", "Math.random")


# ------------------------------------------------------------------ #
# Compile
# ------------------------------------------------------------------ #


async def make_intro(product: Product, ctx: BuildContext) -> str:
    """Return the code placed ahead of user code inside the wrapper.

    ``product.defines`` becomes one ``var`` statement, followed by the
    compiled code of each library in order. Libraries compile concurrently.

    Raises:
        LibraryCompileError: If a (non-user) library fails to compile.
    """
    intro = ""
    if product.defines:
        defs = ", ".join(
            f"{name} = {json.dumps(value, separators=(',', ':'))}"
            for name, value in product.defines.items()
        )
        intro += f"var {defs};\n"
    codes = await asyncio.gather(*(lib.get_code(ctx) for lib in product.libs))
    for code in codes:
        if code:
            intro += code + "\n"
    return intro


async def bundler_config(product: Product, ctx: BuildContext) -> tuple[InputConfig, OutputConfig]:
    """Configure one bundler run for *product*, with the intro filled in."""
    incfg, outcfg = await configure(product, ctx)
    outcfg.intro = await make_intro(product, ctx)
    return incfg, outcfg


# ------------------------------------------------------------------ #
# Post-processing
# ------------------------------------------------------------------ #


def patch_source_map(product: Product, source_map: dict[str, Any]) -> None:
    """Rebase *source_map* onto the product's source directory, in place.

    Embedded source contents are dropped. ``sourceRoot`` becomes the path
    from the output directory to the source directory, and sources under
    that prefix are rewritten relative to the source directory.
    """
    source_map.pop("sourcesContent", None)
    src_dir_rel = os.path.relpath(product.srcdir, start=product.outdir)
    source_map["sourceRoot"] = src_dir_rel

    sources = []
    for path in source_map.get("sources") or []:
        if path.startswith(src_dir_rel):
            abspath = os.path.normpath(os.path.join(product.outdir, path))
            path = os.path.relpath(abspath, start=product.srcdir)
        sources.append(path)
    source_map["sources"] = sources


def post_process_js(product: Product, ctx: BuildContext, js: str, map_json: str) -> str:
    """Replace any source-map comment in *js* with the one for this build.

    Optimized builds and ``external_source_map`` reference the map file;
    other builds embed the map as a data URL; ``no_source_map`` gets no
    comment at all.
    """
    js = _SOURCE_MAPPING_URL_RE.sub("", js.strip(), count=1)
    if ctx.no_source_map:
        return js + "\n"
    if ctx.optimize or ctx.external_source_map:
        return js + "\n//#sourceMappingURL=" + os.path.basename(product.mapfile) + "\n"
    return js + "\n" + inline_source_map(map_json)


async def write_output(product: Product, ctx: BuildContext, js: str, map_json: str) -> None:
    """Record and write the finished program and (unless disabled) its map."""
    product.output = BuildOutput(js=js, map=map_json)
    writes = [asyncio.to_thread(atomic_write, product.outfile, js)]
    if not ctx.no_source_map:
        writes.append(asyncio.to_thread(atomic_write, product.mapfile, map_json))
    await asyncio.gather(*writes)


# ------------------------------------------------------------------ #
# Diagnostics
# ------------------------------------------------------------------ #


def log_build_error(exc: BaseException) -> None:
    """Print *exc* with the most specific location available."""
    if isinstance(exc, BuildError):
        if exc.code == "PLUGIN_ERROR":
            message = str(exc)
            if exc.plugin == "rpt2":
                message = normalize_ts_origins(message)
            error(message)
            return
        if exc.file and exc.line is not None:
            error(exc.location_message, frame=exc.frame)
            return
    error(str(exc))


def report_build_completed(product: Product, ctx: BuildContext, start_time: float) -> None:
    if ctx.trace:
        elapsed = fmt_duration((time.monotonic() - start_time) * 1000)
        size = fmt_byte_size(utf8_size(product.output.js))
        debug(f"built module {product.name!r} ({size}) in {elapsed}")


# ------------------------------------------------------------------ #
# Builder
# ------------------------------------------------------------------ #


class ProductBuilder:
    """Builds products with a given bundler and minifier.

    Args:
        bundler: Compiles and bundles entry modules.
        minifier: Used for optimized builds.
    """

    def __init__(self, bundler: Bundler, minifier: Minifier) -> None:
        self.bundler = bundler
        self.minifier = minifier

    async def build(self, product: Product, ctx: BuildContext) -> None:
        """Build *product* once and write its output files.

        Raises:
            ConfigError: If the product is misconfigured. Raised before the
                bundler runs.
            BuildError: If compiling, bundling or optimizing fails.
        """
        try:
            product.check_paths()
            product.pre_build(ctx)
            start_time = time.monotonic()
            if ctx.trace:
                debug(f"build module {product.name!r}")

            incfg, outcfg = await bundler_config(product, ctx)
            result = await self.bundler.bundle(incfg, outcfg)
            chunk = result.entry_chunk()

            source_map = chunk.map
            patch_source_map(product, source_map)
            code = sub(chunk.code, product.subs)

            if ctx.optimize:
                optimized = self.optimize(product, ctx, code, source_map)
                code, map_json = optimized.code, optimized.map
            else:
                map_json = json.dumps(source_map)

            js = post_process_js(product, ctx, code, map_json)
            await write_output(product, ctx, js, map_json)
            report_build_completed(product, ctx, start_time)
        except PlugbuildError as exc:
            if not exc.reported:
                log_build_error(exc)
                exc.reported = True
            raise

    def optimize(
        self,
        product: Product,
        ctx: BuildContext,
        code: str,
        source_map: dict[str, Any],
    ) -> MinifyResult:
        """Minify *code*, rebasing *source_map* onto the result.

        Raises:
            OptimizeError: If the minifier rejects the code.
        """
        source_root = source_map.get("sourceRoot", "")
        source_map["sourceRoot"] = ""

        start_time = time.monotonic()
        if ctx.trace:
            debug(f"optimizing module {product.name!r} ({fmt_byte_size(utf8_size(code))})")

        result = self.minifier.minify(
            {rpath(product.outfile): code},
            optimizer_options(product, ctx, source_root),
            source_map=source_map,
        )

        if ctx.trace:
            elapsed = fmt_duration((time.monotonic() - start_time) * 1000)
            debug(f"finished optimizing module {product.name!r} in {elapsed}")
        return result


def optimizer_options(
    product: Product, ctx: BuildContext, source_root: Optional[str] = ""
) -> dict[str, Any]:
    """Return the minifier options for an optimized build of *product*."""
    ecma = ecma_version(product.target_es_version)
    minify = not ctx.nomin
    return {
        "toplevel": True,
        "compress": {
            "ecma": ecma,
            "evaluate": True,
            "global_defs": product.defines_inline,
            "hoist_vars": True,
            "keep_classnames": True,
            "keep_infinity": True,
            "passes": 2,
            "pure_funcs": list(PURE_FUNCS),
        },
        "mangle": {
            "keep_classnames": True,
            "keep_fnames": False,
            "safari10": False,
        } if minify else False,
        "format": {
            "preamble": product.banner.strip(),
            "beautify": not minify,
            "indent_level": 2,
            "safari10": False,
            "ecma": ecma,
        },
        "sourceMap": {
            "root": source_root or "",
            "url": os.path.basename(product.mapfile),
            "filename": os.path.basename(product.outfile),
        },
    }
