"""Tests for plugbuild.configurator -- bundler input and output configuration."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

import pytest

from plugbuild.config import get_lib_dir
from plugbuild.configurator import (
    WRAPPER_END,
    WRAPPER_START,
    configure,
    make_input_config,
    make_output_config,
    print_warning,
    ts_target_id,
)
from plugbuild.exceptions import ConfigError
from plugbuild.libraries import LibraryRegistry
from plugbuild.models import BuildContext
from plugbuild.product import Product
from plugbuild.toolchain.base import BundleWarning


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "proj"
    (root / "src").mkdir(parents=True)
    (root / "src" / "ui.tsx").write_text("export {}\n")
    return root


def _product(project: Path, registry: LibraryRegistry, **kwargs) -> Product:
    defaults = dict(
        entry=str(project / "src" / "ui.tsx"),
        outfile=str(project / "build" / ".ui.js"),
        basedir=str(project),
        version="1.2.3",
        libs=[registry.runtime_library()],
        stdlibs=[registry.stdlib("dom")],
    )
    defaults.update(kwargs)
    return Product(**defaults)


class TestTsTargetId:
    @pytest.mark.parametrize(
        "version, expected",
        [(0, "esnext"), (5, "es5"), (6, "es6"), (2015, "es6"), (8, "es2017"), (2020, "es2020")],
    )
    def test_known(self, version: int, expected: str) -> None:
        assert ts_target_id(version) == expected

    @pytest.mark.parametrize("version", [1, 4, 10, 2014])
    def test_invalid(self, version: int) -> None:
        with pytest.raises(ConfigError, match="invalid target ES version"):
            ts_target_id(version)


class TestInputConfig:
    def test_defaults_without_tsconfig(self, project: Path, registry: LibraryRegistry) -> None:
        product = _product(project, registry)
        incfg = asyncio.run(make_input_config(product, BuildContext()))
        ts = incfg.typescript
        options = ts["tsconfigOverride"]["compilerOptions"]

        assert incfg.entry == product.entry
        assert ts["tsconfig"] == str(get_lib_dir() / "template-tsconfig.json")
        assert options["lib"] == ["esnext", "dom"]
        assert options["target"] == "esnext"
        assert options["jsx"] == "react"
        assert options["outDir"] == "build"
        assert options["baseUrl"] == "src"
        assert "pretty" not in options
        assert ts["tsconfigOverride"]["include"] == [str(get_lib_dir() / "plugbuild.d.ts")]
        assert ts["tsconfigDefaults"]["compilerOptions"]["removeComments"] is True
        assert ts["cacheRoot"] == os.path.join(product.outdir, ".tscache-o")
        assert ts["clean"] is False

    def test_asset_plugin_wired(self, project: Path, registry: LibraryRegistry) -> None:
        product = _product(project, registry)
        incfg = asyncio.run(make_input_config(product, BuildContext()))
        assert incfg.plugins == [product.assets]
        assert incfg.compiler_host is not None
        assert ".svg" in incfg.virtual_extensions
        assert incfg.on_warn is print_warning

    def test_project_tsconfig_merged(self, project: Path, registry: LibraryRegistry) -> None:
        (project / "tsconfig.json").write_text(
            json.dumps(
                {
                    "compilerOptions": {"lib": ["es2019"], "strict": True, "jsx": "preserve"},
                    "include": ["src/*.ts"],
                }
            )
        )
        product = _product(project, registry)
        incfg = asyncio.run(make_input_config(product, BuildContext(debug=True, clean=True)))
        ts = incfg.typescript
        options = ts["tsconfigOverride"]["compilerOptions"]

        assert ts["tsconfig"] == str(project / "tsconfig.json")
        assert options["lib"] == ["esnext", "es2019", "dom"]
        assert options["strict"] is True
        assert options["jsx"] == "preserve"
        assert options["pretty"] is True
        assert ts["tsconfigOverride"]["include"][0] == "src/*.ts"
        assert ts["cacheRoot"].endswith(".tscache-g")
        assert ts["clean"] is True

    def test_malformed_tsconfig_ignored(self, project: Path, registry: LibraryRegistry) -> None:
        (project / "tsconfig.json").write_text("{ not json")
        incfg = asyncio.run(make_input_config(_product(project, registry), BuildContext()))
        assert incfg.typescript["tsconfig"].endswith("template-tsconfig.json")

    def test_plain_ts_entry_has_no_jsx(self, project: Path, registry: LibraryRegistry) -> None:
        (project / "src" / "main.ts").write_text("")
        product = _product(project, registry, entry=str(project / "src" / "main.ts"))
        incfg = asyncio.run(make_input_config(product, BuildContext()))
        assert incfg.typescript["tsconfigOverride"]["compilerOptions"]["jsx"] is None


class TestOutputConfig:
    def test_wrapper_with_empty_intro(self, project: Path, registry: LibraryRegistry) -> None:
        product = _product(project, registry)
        outcfg = make_output_config(product, BuildContext())

        assert outcfg.file == product.outfile
        assert outcfg.format == "cjs"
        assert outcfg.freeze is False
        assert outcfg.banner == product.banner + WRAPPER_START
        assert outcfg.footer == WRAPPER_END
        assert outcfg.intro == ""
        assert registry.minifier.calls == []

    def test_debug_freezes(self, project: Path, registry: LibraryRegistry) -> None:
        product = _product(project, registry, libs=[])
        outcfg = make_output_config(product, BuildContext(debug=True))
        assert outcfg.freeze is True


class TestConfigure:
    def test_returns_pair(self, project: Path, registry: LibraryRegistry) -> None:
        product = _product(project, registry)
        incfg, outcfg = asyncio.run(configure(product, BuildContext()))
        assert incfg.entry == product.entry
        assert outcfg.file == product.outfile

    def test_invalid_target_fails_before_compiling_libraries(
        self, project: Path, registry: LibraryRegistry
    ) -> None:
        product = _product(project, registry, target_es_version=4)
        with pytest.raises(ConfigError):
            asyncio.run(configure(product, BuildContext()))
        assert registry.minifier.calls == []


class TestPrintWarning:
    FRAME = "1: let a = 1;\n2: // @ts-ignore\n3: missing();\n   ^"

    def test_without_location(self, capsys: pytest.CaptureFixture[str]) -> None:
        print_warning(BundleWarning(message="circular dependency"))
        assert capsys.readouterr().err == "Warning: circular dependency\n"

    def test_with_location_and_frame(self, tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        frame = "1: let a = 1;\n2: missing();\n   ^"
        print_warning(
            BundleWarning(message="unused", file=str(tmp_path / "a.ts"), line=2, column=3, frame=frame)
        )
        err = capsys.readouterr().err
        assert err.startswith("Warning: a.ts:2:3 unused\n1: let a = 1;")

    def test_ts_ignore_suppresses(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        print_warning(
            BundleWarning(message="x", file=str(tmp_path / "a.ts"), line=3, column=0, frame=self.FRAME)
        )
        assert capsys.readouterr().err == ""
