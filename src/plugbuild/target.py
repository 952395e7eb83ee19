"""Plugin targets: everything built from one manifest.

A :class:`PluginTarget` derives its products from a
:class:`~plugbuild.manifest.Manifest`:

* the **plugin product** -- ``main`` compiled to ``<outdir>/plugin.js``,
  linked with the runtime library, the host API declarations and any
  ``--lib`` libraries;
* the **UI product** (when ``ui`` names a script) -- compiled to
  ``<outdir>/.ui.js``, linked with the runtime library, the ``dom``
  standard library and any ``--uilib`` libraries;
* the **HTML shell** (when ``ui`` is set) -- ``<ui>.html`` with
  ``<ui>.css`` inlined in its head and the UI program inlined before its
  closing body tag, written to ``<outdir>/ui.html``;
* the **manifest** -- rewritten into ``<outdir>/manifest.json`` with
  ``main`` and ``ui`` pointing at the outputs.

In watch mode the products are built by
:class:`~plugbuild.session.IncrementalSession`\\ s, and the manifest, the
HTML and CSS sources and user library files are polled by a
:class:`~plugbuild.watch.FileWatcher`.
"""

from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path
from typing import Callable, Optional

from plugbuild.assets.virtualizer import AssetVirtualizer
from plugbuild.builder import ProductBuilder
from plugbuild.config import atomic_write
from plugbuild.exceptions import BuildError, ConfigError, PlugbuildError
from plugbuild.html import inject
from plugbuild.libraries import LibraryRegistry, UserLib
from plugbuild.manifest import MANIFEST_FILENAME, Manifest
from plugbuild.models import BuildContext
from plugbuild.output import debug, error, info, progress
from plugbuild.product import Product
from plugbuild.session import IncrementalSession
from plugbuild.toolchain.base import Bundler, Minifier, SvgOptimizer
from plugbuild.toolchain.rollup import RollupBundler
from plugbuild.toolchain.svgo import SvgoOptimizer
from plugbuild.toolchain.terser import TerserMinifier
from plugbuild.util import fmt_duration, jsonfmt, rpath, unique
from plugbuild.watch import FileWatcher

DEFAULT_HTML = '<html><head></head><body><div id="root"></div></body></html>'

PLUGIN_OUTFILE = "plugin.js"
UI_OUTFILE = ".ui.js"
HTML_OUTFILE = "ui.html"


def _read_optional(path: str, default: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return default


def check_libs(product: Product) -> None:
    """Raise :class:`ConfigError` if a library file is linked twice into *product*."""
    seen: set[str] = set()
    for lib in product.libs:
        for file in (lib.dfile, lib.jsfile):
            if not file:
                continue
            canonical = os.path.realpath(file)
            if canonical in seen:
                raise ConfigError(f"duplicate library file {rpath(file)!r} in {product.name!r}")
            seen.add(canonical)


class PluginTarget:
    """The products, HTML shell and manifest of one plugin.

    Args:
        manifest: The plugin's manifest.
        ctx: Build flags.
        registry: Library instances shared by every target of the run.
        builder: Bundler and minifier.
        svg_optimizer: Optimizer for SVG assets; defaults to svgo resolved
            from the plugin's directory.

    Raises:
        ConfigError: If the host API or user libraries are misconfigured.
    """

    def __init__(
        self,
        manifest: Manifest,
        ctx: BuildContext,
        registry: LibraryRegistry,
        builder: ProductBuilder,
        svg_optimizer: Optional[SvgOptimizer] = None,
    ) -> None:
        self.ctx = ctx
        self.registry = registry
        self.builder = builder
        self.svg_optimizer = svg_optimizer
        self.ui_product: Optional[Product] = None
        self.html_in = ""
        self.css_in = ""
        self.html_out = ""
        self._configure(manifest)

        self._sessions: list[IncrementalSession] = []
        self._file_watcher: Optional[FileWatcher] = None
        self._outcome: Optional[asyncio.Future[None]] = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._build_counter = 0
        self._start_time = 0.0
        self._on_build: Optional[Callable[[], None]] = None

    def _configure(self, manifest: Manifest) -> None:
        ctx = self.ctx
        basedir = manifest.basedir
        plugin_src = os.path.abspath(basedir / manifest.props.main)
        srcdir = os.path.dirname(plugin_src)
        outdir = os.path.abspath(ctx.outdir) if ctx.outdir else os.path.join(srcdir, "build")
        svg_optimizer = self.svg_optimizer or SvgoOptimizer(cwd=str(basedir))

        runtime = self.registry.runtime_library()
        plugin_product = Product(
            version=ctx.version,
            entry=plugin_src,
            outfile=os.path.join(outdir, PLUGIN_OUTFILE),
            basedir=str(basedir),
            libs=[
                runtime,
                self.registry.host_api_library(manifest.props.api),
                *self.registry.user_libraries(ctx.libs),
            ],
            assets=AssetVirtualizer(svg_optimizer),
        )
        check_libs(plugin_product)

        ui_product = None
        html_in = css_in = html_out = ""
        if manifest.props.ui:
            ui_src = os.path.abspath(basedir / manifest.props.ui)
            stem, ext = os.path.splitext(ui_src)
            html_in = stem + ".html"
            css_in = stem + ".css"
            html_out = os.path.join(outdir, HTML_OUTFILE)
            if ext.lower() != ".html":
                ui_product = Product(
                    version=plugin_product.version,
                    entry=ui_src,
                    outfile=os.path.join(outdir, UI_OUTFILE),
                    basedir=str(basedir),
                    libs=[runtime, *self.registry.user_libraries(ctx.uilibs)],
                    stdlibs=[self.registry.stdlib("dom")],
                    jsx="react" if ext.lower() in (".tsx", ".jsx") else None,
                    assets=AssetVirtualizer(svg_optimizer),
                )
                check_libs(ui_product)

        self.manifest = manifest
        self.basedir = str(basedir)
        self.srcdir = srcdir
        self.outdir = outdir
        self.name = manifest.props.name
        self.plugin_product = plugin_product
        self.ui_product = ui_product
        self.html_in, self.css_in, self.html_out = html_in, css_in, html_out

    @property
    def products(self) -> list[Product]:
        return [p for p in (self.plugin_product, self.ui_product) if p is not None]

    def __repr__(self) -> str:
        return f"Plugin({self.name!r} at {rpath(self.srcdir)!r})"

    def check(self) -> None:
        """Raise :class:`ConfigError` if an input would be overwritten by an output."""
        for product in self.products:
            product.check_paths()
        if self.html_in and os.path.realpath(self.html_in) == os.path.realpath(self.html_out):
            raise ConfigError(f"html input file is same as output file: {rpath(self.html_in)!r}")

    # ------------------------------------------------------------------ #
    # Build
    # ------------------------------------------------------------------ #

    async def build(self, on_build: Optional[Callable[[], None]] = None) -> None:
        """Build once, or keep building until an unrecoverable error in watch mode.

        Args:
            on_build: Called after each complete build of the target.

        Raises:
            ConfigError: Before anything is built, if the target is invalid.
            BuildError: If a build fails (one-shot) or a watcher fails.
        """
        try:
            self.check()
        except PlugbuildError as exc:
            error(str(exc))
            exc.reported = True
            raise
        self._on_build = on_build
        if self.ctx.watch:
            await asyncio.gather(self.write_manifest_file(self.manifest), self.build_incr())
        else:
            await asyncio.gather(self.write_manifest_file(self.manifest), self.build_once())

    @property
    def _report_info(self) -> str:
        return f"plugin {self.name!r} at {rpath(self.srcdir)} -> {rpath(self.outdir)}"

    def _report_start(self) -> None:
        self._start_time = time.monotonic()
        if self.ctx.verbose or self.ctx.watch:
            info(f"building {self._report_info}")

    def _report_end(self) -> None:
        if self.ctx.verbose or self.ctx.watch:
            elapsed = fmt_duration((time.monotonic() - self._start_time) * 1000)
            info(f"built {self._report_info} in {elapsed}")
        if self._on_build is not None:
            self._on_build()

    async def build_once(self) -> None:
        """Build every product and the HTML shell once."""
        self._report_start()
        builds = [self.builder.build(self.plugin_product, self.ctx)]
        if self.ui_product is not None:
            builds.append(self._build_ui_and_html())
        elif self.html_in:
            builds.append(self.build_html())
        await asyncio.gather(*builds)
        self._report_end()

    async def _build_ui_and_html(self) -> None:
        assert self.ui_product is not None
        await self.builder.build(self.ui_product, self.ctx)
        await self.build_html()

    async def build_html(self) -> None:
        """Write the HTML shell with the stylesheet and the latest UI program inlined."""
        start_time = time.monotonic()
        if self.ctx.verbose:
            progress(f"build module {rpath(self.html_out)!r}")
        try:
            html, css = await asyncio.gather(
                asyncio.to_thread(_read_optional, self.html_in, DEFAULT_HTML),
                asyncio.to_thread(_read_optional, self.css_in, ""),
            )
        except OSError as exc:
            raise BuildError(f"cannot read UI sources: {exc}")

        head = tail = ""
        if self.ui_product is not None:
            tail = "<script>\n" + self.ui_product.output.js + "\n</script>"
        if css.strip():
            head = "<style>\n" + css + "\n</style>"

        await asyncio.to_thread(atomic_write, self.html_out, inject(html, head=head, tail=tail))
        if self.ctx.verbose:
            elapsed = fmt_duration((time.monotonic() - start_time) * 1000)
            progress(f"built module {rpath(self.html_out)!r} in {elapsed}")

    async def write_manifest_file(self, manifest: Manifest) -> None:
        """Write *manifest* to the output directory with ``main``/``ui`` pointing at outputs."""
        if self.ctx.no_gen_manifest:
            return
        props = manifest.prop_map()
        props["main"] = os.path.basename(self.plugin_product.outfile)
        if self.html_out:
            props["ui"] = os.path.basename(self.html_out)
        else:
            props.pop("ui", None)
        file = os.path.join(self.outdir, MANIFEST_FILENAME)
        if self.ctx.trace:
            debug(f"write {rpath(file)}")
        await asyncio.to_thread(atomic_write, file, jsonfmt(props) + "\n")

    # ------------------------------------------------------------------ #
    # Watch mode
    # ------------------------------------------------------------------ #

    async def build_incr(self) -> None:
        """Watch and rebuild until a session fails or :meth:`stop` is called."""
        self._outcome = asyncio.get_running_loop().create_future()
        self._file_watcher = FileWatcher(self._on_file_change)
        self._watch_files()
        self._file_watcher.start()
        try:
            self._start_sessions()
            await self._outcome
        finally:
            await self.close()

    def stop(self) -> None:
        """End watch mode cleanly."""
        if self._outcome is not None and not self._outcome.done():
            self._outcome.set_result(None)

    async def close(self) -> None:
        """End every session and stop polling files."""
        sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.end()
        for session in sessions:
            await session.closed()
        if self._file_watcher is not None:
            await self._file_watcher.close()
            self._file_watcher = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _watch_files(self) -> None:
        assert self._file_watcher is not None
        files = [str(self.manifest.file)]
        if self.html_in:
            files += [self.html_in, self.css_in]
        for product in self.products:
            for lib in product.libs:
                if isinstance(lib, UserLib):
                    files += [f for f in (lib.dfile, lib.jsfile) if f]
        self._file_watcher.set_files(files)

    def _start_sessions(self) -> None:
        self._build_counter = 0
        for product in self.products:
            session = IncrementalSession(
                product,
                self.ctx,
                self.builder,
                on_build_start=self._on_build_start,
                on_build_end=self._on_build_end,
            )
            session.start()
            self._sessions.append(session)
            self._spawn(self._supervise(session))
        if self.ui_product is None and self.html_in:
            self._spawn(self._rebuild_html())

    async def _supervise(self, session: IncrementalSession) -> None:
        try:
            await session.wait()
        except PlugbuildError as exc:
            if self._outcome is not None and not self._outcome.done():
                self._outcome.set_exception(exc)

    def _build_started(self) -> None:
        if self._build_counter == 0:
            self._report_start()
        self._build_counter += 1

    def _build_finished(self) -> None:
        self._build_counter -= 1
        if self._build_counter == 0:
            self._report_end()

    def _on_build_start(self, product: Product, is_initial: bool) -> None:
        self._build_started()

    def _on_build_end(self, product: Product, exc: Optional[BaseException]) -> None:
        if product is self.ui_product and exc is None:
            self._spawn(self._html_then_finish())
        else:
            self._build_finished()

    async def _html_then_finish(self) -> None:
        try:
            await self._build_html_logged()
        finally:
            self._build_finished()

    async def _rebuild_html(self) -> None:
        self._build_started()
        try:
            await self._build_html_logged()
        finally:
            self._build_finished()

    async def _build_html_logged(self) -> None:
        try:
            await self.build_html()
        except (PlugbuildError, OSError) as exc:
            error(f"{rpath(self.html_out)}: {exc}")

    def _on_file_change(self, path: str) -> None:
        if path == str(self.manifest.file):
            self._spawn(self._reload_manifest())
            return
        if path in (self.html_in, self.css_in):
            self._spawn(self._rebuild_html())
            return
        for session in self._sessions:
            if any(path in (lib.dfile, lib.jsfile) for lib in session.product.libs):
                debug(f"library {rpath(path)} changed; restarting {session.product.name!r}")
                session.restart()

    async def _reload_manifest(self) -> None:
        try:
            manifest = await Manifest.load_file(self.manifest.file)
        except ConfigError as exc:
            error(str(exc))
            return
        old = self.manifest.props
        if (old.main, old.ui) == (manifest.props.main, manifest.props.ui):
            self.manifest = manifest
            await self._write_manifest_logged(manifest)
            return

        info(f"source files in {rpath(manifest.file)} changed; restarting")
        sessions, self._sessions = self._sessions, []
        try:
            self._configure(manifest)
            self.check()
        except PlugbuildError as exc:
            error(str(exc))
            self._sessions = sessions
            return
        for session in sessions:
            session.end()
        for session in sessions:
            await session.closed()
        self._watch_files()
        self._start_sessions()
        await self._write_manifest_logged(manifest)

    async def _write_manifest_logged(self, manifest: Manifest) -> None:
        try:
            await self.write_manifest_file(manifest)
        except OSError as exc:
            error(f"cannot write manifest: {exc}")


async def build_plugins(
    paths: list[str],
    ctx: BuildContext,
    bundler: Optional[Bundler] = None,
    minifier: Optional[Minifier] = None,
    svg_optimizer: Optional[SvgOptimizer] = None,
    registry: Optional[LibraryRegistry] = None,
) -> list[PluginTarget]:
    """Load the manifest at each of *paths* and build every plugin concurrently.

    Duplicate paths are built once. An empty *paths* builds the plugin in
    the working directory.

    Returns:
        The targets that were built.
    """
    if bundler is None:
        bundler = RollupBundler()
    if minifier is None:
        minifier = TerserMinifier()
    if registry is None:
        registry = LibraryRegistry(minifier)
    builder = ProductBuilder(bundler, minifier)

    locations = unique(os.path.abspath(p) for p in (paths or ["."]))
    manifests = await asyncio.gather(*(Manifest.load(p) for p in locations))
    targets = [
        PluginTarget(manifest, ctx, registry, builder, svg_optimizer) for manifest in manifests
    ]
    await asyncio.gather(*(target.build() for target in targets))
    return targets
