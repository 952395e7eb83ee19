"""Tests for plugbuild.target -- plugin targets built from manifests."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any

import pytest

from fakes import FakeBundler, FakeMinifier, FakeSvgOptimizer, until
from plugbuild.builder import ProductBuilder
from plugbuild.exceptions import BuildError, ConfigError
from plugbuild.libraries import LibraryRegistry, UserLib
from plugbuild.manifest import Manifest
from plugbuild.models import BuildContext
from plugbuild.target import PluginTarget, build_plugins
from plugbuild.toolchain.base import WatchEventCode


def _build(
    paths: list[Path],
    registry: LibraryRegistry,
    bundler: FakeBundler | None = None,
    **ctx: Any,
) -> list[PluginTarget]:
    return asyncio.run(
        build_plugins(
            [str(p) for p in paths],
            BuildContext(**ctx),
            bundler=bundler or FakeBundler(),
            minifier=registry.minifier,
            svg_optimizer=FakeSvgOptimizer(),
            registry=registry,
        )
    )


def _target(path: Path, registry: LibraryRegistry, bundler: FakeBundler, **ctx: Any) -> PluginTarget:
    manifest = asyncio.run(Manifest.load(path))
    builder = ProductBuilder(bundler, registry.minifier)
    return PluginTarget(manifest, BuildContext(**ctx), registry, builder, FakeSvgOptimizer())


def _touch_later(path: Path) -> None:
    later = os.stat(path).st_mtime + 10
    os.utime(path, (later, later))


class TestConfiguration:
    def test_plugin_product(self, plugin_dir: Path, registry: LibraryRegistry) -> None:
        target = _target(plugin_dir, registry, FakeBundler())
        product = target.plugin_product
        assert product.entry == str(plugin_dir / "plugin.ts")
        assert product.outfile == str(plugin_dir / "build" / "plugin.js")
        assert product.libs[0] is registry.runtime_library()
        assert product.libs[1] is registry.host_api_library("1.0.0")
        assert target.ui_product is None
        assert target.html_out == ""

    def test_ui_product(self, ui_plugin_dir: Path, registry: LibraryRegistry) -> None:
        target = _target(ui_plugin_dir, registry, FakeBundler())
        ui = target.ui_product
        assert ui is not None
        assert ui.outfile == str(ui_plugin_dir / "build" / ".ui.js")
        assert [lib.name for lib in ui.stdlibs] == ["dom"]
        assert ui.jsx is None
        assert target.html_in == str(ui_plugin_dir / "ui.html")
        assert target.css_in == str(ui_plugin_dir / "ui.css")
        assert target.html_out == str(ui_plugin_dir / "build" / "ui.html")

    def test_tsx_ui_uses_react(self, ui_plugin_dir: Path, registry: LibraryRegistry) -> None:
        manifest = json.loads((ui_plugin_dir / "manifest.json").read_text())
        manifest["ui"] = "ui.tsx"
        (ui_plugin_dir / "manifest.json").write_text(json.dumps(manifest))
        target = _target(ui_plugin_dir, registry, FakeBundler())
        assert target.ui_product is not None
        assert target.ui_product.jsx == "react"

    def test_user_libraries(self, plugin_dir: Path, registry: LibraryRegistry) -> None:
        (plugin_dir / "util.js").write_text("function util() {}\n")
        target = _target(plugin_dir, registry, FakeBundler(), libs=[str(plugin_dir / "util.js")])
        assert isinstance(target.plugin_product.libs[-1], UserLib)

    def test_duplicate_library(self, plugin_dir: Path, registry: LibraryRegistry) -> None:
        lib = str(plugin_dir / "util.js")
        with pytest.raises(ConfigError, match="duplicate library file"):
            _target(plugin_dir, registry, FakeBundler(), libs=[lib, lib])


class TestBuildOnce:
    def test_plugin_only(self, plugin_dir: Path, registry: LibraryRegistry) -> None:
        bundler = FakeBundler()
        (target,) = _build([plugin_dir], registry, bundler)
        build = plugin_dir / "build"
        assert (build / "plugin.js").is_file()
        assert (build / "plugin.js.map").is_file()
        assert not (build / "ui.html").exists()
        assert json.loads((build / "manifest.json").read_text()) == {
            "name": "Hello",
            "api": "1.0.0",
            "main": "plugin.js",
        }
        assert len(bundler.bundles) == 1

    def test_ui_inlined_into_html(self, ui_plugin_dir: Path, registry: LibraryRegistry) -> None:
        bundler = FakeBundler()
        (target,) = _build([ui_plugin_dir], registry, bundler)
        build = ui_plugin_dir / "build"
        html = (build / "ui.html").read_text()
        ui_js = (build / ".ui.js").read_text()

        assert "<style>\np { color: red }\n\n</style>" in html
        assert html.index("<style>") < html.index("</head>")
        assert "<script>\n" + ui_js + "\n</script>" in html
        assert html.index("</script>") < html.index("</body>")

        manifest = json.loads((build / "manifest.json").read_text())
        assert list(manifest) == ["name", "api", "main", "ui", "menu"]
        assert manifest["ui"] == "ui.html"
        assert manifest["menu"] == ["a"]

        ui_input = next(incfg for incfg, _ in bundler.bundles if incfg.entry.endswith("ui.ts"))
        assert "dom" in ui_input.typescript["tsconfigOverride"]["compilerOptions"]["lib"]

    def test_html_only_ui(self, ui_plugin_dir: Path, registry: LibraryRegistry) -> None:
        manifest = json.loads((ui_plugin_dir / "manifest.json").read_text())
        manifest["ui"] = "ui.html"
        (ui_plugin_dir / "manifest.json").write_text(json.dumps(manifest))
        bundler = FakeBundler()
        _build([ui_plugin_dir], registry, bundler)

        html = (ui_plugin_dir / "build" / "ui.html").read_text()
        assert "<style>" in html
        assert "<script>" not in html
        assert len(bundler.bundles) == 1

    def test_missing_html_uses_default_shell(self, ui_plugin_dir: Path, registry: LibraryRegistry) -> None:
        (ui_plugin_dir / "ui.html").unlink()
        (ui_plugin_dir / "ui.css").unlink()
        _build([ui_plugin_dir], registry)
        html = (ui_plugin_dir / "build" / "ui.html").read_text()
        assert html.startswith('<html><head></head><body><div id="root"></div><script>')

    def test_outdir_and_no_manifest(self, plugin_dir: Path, tmp_path: Path, registry: LibraryRegistry) -> None:
        outdir = tmp_path / "dist"
        _build([plugin_dir], registry, outdir=str(outdir), no_gen_manifest=True)
        assert (outdir / "plugin.js").is_file()
        assert not (outdir / "manifest.json").exists()
        assert not (plugin_dir / "build").exists()

    def test_html_input_equals_output(self, ui_plugin_dir: Path, registry: LibraryRegistry) -> None:
        manifest = json.loads((ui_plugin_dir / "manifest.json").read_text())
        manifest["ui"] = "build/ui.html"
        (ui_plugin_dir / "manifest.json").write_text(json.dumps(manifest))
        bundler = FakeBundler()
        with pytest.raises(ConfigError, match="html input file is same as output file") as excinfo:
            _build([ui_plugin_dir], registry, bundler)
        assert excinfo.value.reported
        assert bundler.bundles == []

    def test_several_plugins_and_duplicates(
        self, plugin_dir: Path, ui_plugin_dir: Path, registry: LibraryRegistry
    ) -> None:
        bundler = FakeBundler()
        targets = _build([plugin_dir, ui_plugin_dir, plugin_dir / "manifest.json"], registry, bundler)
        assert [t.name for t in targets] == ["Hello", "With UI", "Hello"]
        dup = _build([plugin_dir, plugin_dir], registry)
        assert len(dup) == 1

    def test_verbose_reports(
        self, plugin_dir: Path, registry: LibraryRegistry, capsys: pytest.CaptureFixture[str]
    ) -> None:
        from plugbuild.output import OutputManager, set_output

        set_output(OutputManager(no_color=True, verbose=True))
        _build([plugin_dir], registry, verbose=True)
        err = capsys.readouterr().err
        assert "building plugin 'Hello'" in err
        assert "built plugin 'Hello'" in err

    def test_build_failure_propagates(self, plugin_dir: Path, registry: LibraryRegistry) -> None:
        bundler = FakeBundler(error=BuildError("syntax error"))
        with pytest.raises(BuildError):
            _build([plugin_dir], registry, bundler)
        assert not (plugin_dir / "build" / "plugin.js").exists()


class TestWatch:
    def test_builds_and_reacts_to_css(self, ui_plugin_dir: Path, registry: LibraryRegistry) -> None:
        bundler = FakeBundler()
        target = _target(ui_plugin_dir, registry, bundler, watch=True)
        html_out = ui_plugin_dir / "build" / "ui.html"
        builds: list[int] = []

        async def scenario() -> None:
            task = asyncio.create_task(target.build(on_build=lambda: builds.append(1)))
            await until(lambda: len(bundler.watchers) == 2)
            for watcher in bundler.watchers:
                watcher.emit_build()
            await until(lambda: bool(builds) and html_out.exists())
            assert "<script>" in html_out.read_text()

            css = ui_plugin_dir / "ui.css"
            css.write_text("p { color: blue }\n")
            _touch_later(css)
            await until(lambda: "blue" in html_out.read_text())

            target.stop()
            await task

        asyncio.run(scenario())
        assert all(w.closed for w in bundler.watchers)
        assert (ui_plugin_dir / "build" / "manifest.json").is_file()

    def test_library_change_restarts_session(self, plugin_dir: Path, registry: LibraryRegistry) -> None:
        lib = plugin_dir / "util.js"
        lib.write_text("function util() {}\n")
        bundler = FakeBundler()
        target = _target(plugin_dir, registry, bundler, watch=True, libs=[str(lib)])

        async def scenario() -> None:
            task = asyncio.create_task(target.build())
            await until(lambda: len(bundler.watchers) == 1)
            lib.write_text("function util2() {}\n")
            _touch_later(lib)
            await until(lambda: len(bundler.watchers) == 2)
            target.stop()
            await task

        asyncio.run(scenario())
        assert bundler.watchers[0].closed
        assert bundler.watchers[1].closed

    def test_fatal_error_ends_watch(self, plugin_dir: Path, registry: LibraryRegistry) -> None:
        bundler = FakeBundler()
        target = _target(plugin_dir, registry, bundler, watch=True)

        async def scenario() -> None:
            task = asyncio.create_task(target.build())
            await until(lambda: len(bundler.watchers) == 1)
            bundler.watchers[0].emit(WatchEventCode.FATAL, BuildError("bundler crashed"))
            with pytest.raises(BuildError, match="bundler crashed"):
                await task

        asyncio.run(scenario())
        assert bundler.watchers[0].closed
