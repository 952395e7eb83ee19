"""Tests for plugbuild.assets.virtualizer -- asset imports as modules."""

from __future__ import annotations

import asyncio
import base64
import json
import os
from pathlib import Path

import pytest

from plugbuild.assets.virtualizer import (
    AssetVirtualizer,
    extract_path_query,
    js_identifier,
    mime_type_for,
    parse_int_attr,
)
from plugbuild.exceptions import ToolchainError
from plugbuild.models import AssetEncoding
from plugbuild.toolchain.base import JsxModule, SvgResult

GIF = b"GIF89a" + (3).to_bytes(2, "little") + (5).to_bytes(2, "little") + b"\x00" * 8
SVG = '<svg xmlns="http://www.w3.org/2000/svg" width="24px" height="12">\n  <rect/>\n</svg>\n'


@pytest.fixture
def assets_dir(tmp_path: Path) -> Path:
    root = tmp_path / "assets"
    root.mkdir()
    (root / "logo.png").write_bytes(b"\x89PNG\r\n")
    (root / "anim.gif").write_bytes(GIF)
    (root / "broken.jpg").write_bytes(b"not a jpeg")
    (root / "icon.svg").write_text(SVG, encoding="utf-8")
    (root / "config.json").write_text('{"a": [1, 2], "b": "é"}', encoding="utf-8")
    return root


class _MultiLineSvgOptimizer:
    def optimize(self, svg: str, path: str) -> SvgResult:
        return SvgResult(data=svg, width="24", height="12")


class _FailingSvgOptimizer:
    def optimize(self, svg: str, path: str) -> SvgResult:
        raise ToolchainError("'node' not found on PATH")


class TestHelpers:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("a/b.svg?jsx", ("a/b.svg", "jsx")),
            ("a/b.svg", ("a/b.svg", "")),
            ("a?b/c.svg", ("a?b/c.svg", "")),
            ("b.svg?", ("b.svg", "")),
        ],
    )
    def test_extract_path_query(self, path: str, expected: tuple[str, str]) -> None:
        assert extract_path_query(path) == expected

    def test_mime_type_for(self) -> None:
        assert mime_type_for("x/LOGO.PNG") == "image/png"
        assert mime_type_for("x.jpeg") == "image/jpeg"
        assert mime_type_for("x.bin") == "application/octet-stream"

    @pytest.mark.parametrize("value, expected", [("24px", 24), (" 7 ", 7), ("auto", 0), (None, 0)])
    def test_parse_int_attr(self, value: str | None, expected: int) -> None:
        assert parse_int_attr(value) == expected

    def test_js_identifier(self) -> None:
        assert js_identifier("/a/my-logo.v2.png", ".png") == "my_logo_v2"


class TestCompilerHost:
    def test_declaration_for_existing_image(self, assets_dir: Path) -> None:
        virtualizer = AssetVirtualizer()
        host = virtualizer.compiler_host()
        path = str(assets_dir / "logo.png") + ".d.ts"
        assert host.file_exists(path)
        assert "width:number" in (host.read_file(path) or "")

    def test_no_declaration_for_missing_file(self, assets_dir: Path) -> None:
        host = AssetVirtualizer().compiler_host()
        assert not host.file_exists(str(assets_dir / "missing.png") + ".d.ts")

    def test_no_declaration_for_unknown_extension(self, assets_dir: Path) -> None:
        (assets_dir / "data.bin").write_bytes(b"")
        host = AssetVirtualizer().compiler_host()
        assert not host.file_exists(str(assets_dir / "data.bin") + ".d.ts")

    def test_jsx_declaration(self, assets_dir: Path) -> None:
        host = AssetVirtualizer().compiler_host()
        path = str(assets_dir / "icon.svg") + "?jsx.d.ts"
        assert host.file_exists(path)
        assert "React.StatelessComponent" in (host.read_file(path) or "")

    def test_real_files_pass_through(self, assets_dir: Path) -> None:
        host = AssetVirtualizer().compiler_host()
        path = str(assets_dir / "config.json")
        assert host.file_exists(path)
        assert host.read_file(path) == '{"a": [1, 2], "b": "é"}'

    def test_build_end_forgets_declarations(self, assets_dir: Path) -> None:
        virtualizer = AssetVirtualizer()
        path = str(assets_dir / "logo.png") + ".d.ts"
        virtualizer.compiler_host().file_exists(path)
        assert virtualizer.has_declaration(path)
        virtualizer.build_end()
        assert not virtualizer.has_declaration(path)


class TestResolveId:
    def test_query_resolved_against_importer(self, assets_dir: Path) -> None:
        importer = str(assets_dir / "src" / "ui.tsx")
        result = AssetVirtualizer().resolve_id("../icon.svg?jsx", importer)
        assert result == os.path.join(str(assets_dir), "icon.svg?jsx")

    def test_plain_ids_left_to_bundler(self) -> None:
        assert AssetVirtualizer().resolve_id("./logo.png", "/a/b.ts") is None
        assert AssetVirtualizer().resolve_id("./x.ts?raw", "/a/b.ts") is None


class TestLoad:
    def test_png_module(self, assets_dir: Path) -> None:
        code = asyncio.run(AssetVirtualizer().load(str(assets_dir / "logo.png")))
        assert code is not None
        obj = json.loads(code.split(" = ", 1)[1].split(";\n", 1)[0])
        assert obj["url"] == "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n").decode()
        assert (obj["width"], obj["height"]) == (0, 0)
        assert code.endswith("export default asset_logo;")

    def test_gif_dimensions(self, assets_dir: Path) -> None:
        info = asyncio.run(AssetVirtualizer().encode("image/gif", str(assets_dir / "anim.gif")))
        assert info.attrs == {"width": 3, "height": 5}

    def test_undecodable_jpeg_warns(self, assets_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        info = asyncio.run(AssetVirtualizer().encode("image/jpeg", str(assets_dir / "broken.jpg")))
        assert info.encoding is AssetEncoding.BASE64
        assert info.attrs == {"width": 0, "height": 0}
        assert "not a JPEG image" in capsys.readouterr().err

    def test_json_module(self, assets_dir: Path) -> None:
        code = asyncio.run(AssetVirtualizer().load(str(assets_dir / "config.json")))
        assert code == 'export default {"a":[1,2],"b":"é"}'

    def test_unknown_ids_ignored(self) -> None:
        assert asyncio.run(AssetVirtualizer().load("/a/b.ts")) is None

    def test_svg_jsx_module(self, assets_dir: Path) -> None:
        path = str(assets_dir / "icon.svg")
        module = asyncio.run(AssetVirtualizer().load(path + "?jsx"))
        assert isinstance(module, JsxModule)
        assert module.file_name == path + ".jsx"
        assert "const asset_icon = <svg" in module.source
        assert "createElement" not in module.source

    def test_svg_optimized_as_text(self, assets_dir: Path, svg_optimizer) -> None:
        virtualizer = AssetVirtualizer(svg_optimizer)
        info = asyncio.run(virtualizer.encode("image/svg+xml", str(assets_dir / "icon.svg")))
        assert info.encoding is AssetEncoding.TEXT
        assert "\n" not in (info.text or "")
        assert info.attrs == {"width": 24, "height": 12}

    def test_multi_line_svg_falls_back_to_base64(self, assets_dir: Path) -> None:
        virtualizer = AssetVirtualizer(_MultiLineSvgOptimizer())
        info = asyncio.run(virtualizer.encode("image/svg+xml", str(assets_dir / "icon.svg")))
        assert info.encoding is AssetEncoding.BASE64
        assert info.get_text_data() == SVG

    def test_optimizer_failure_warns_and_falls_back(
        self, assets_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        virtualizer = AssetVirtualizer(_FailingSvgOptimizer())
        info = asyncio.run(virtualizer.encode("image/svg+xml", str(assets_dir / "icon.svg")))
        assert info.encoding is AssetEncoding.BASE64
        assert "not found on PATH" in capsys.readouterr().err

    def test_svg_without_optimizer_is_base64(self, assets_dir: Path) -> None:
        info = asyncio.run(AssetVirtualizer().encode("image/svg+xml", str(assets_dir / "icon.svg")))
        assert info.encoding is AssetEncoding.BASE64
        assert info.attrs == {"width": 0, "height": 0}
