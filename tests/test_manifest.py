"""Tests for plugbuild.manifest -- loading and validating manifest files."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from plugbuild.exceptions import ConfigError
from plugbuild.manifest import MANIFEST_FILENAME, Manifest


def _write(path: Path, data: object) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
    return path


class TestLoad:
    def test_load_from_directory(self, plugin_dir: Path) -> None:
        manifest = asyncio.run(Manifest.load(plugin_dir))
        assert manifest.file == (plugin_dir / MANIFEST_FILENAME).resolve()
        assert manifest.basedir == plugin_dir.resolve()
        assert manifest.props.name == "Hello"
        assert manifest.props.main == "plugin.ts"
        assert manifest.props.ui is None

    def test_load_from_file(self, tmp_path: Path) -> None:
        file = _write(tmp_path / "custom.json", {"name": "X", "main": "a.ts"})
        manifest = asyncio.run(Manifest.load(file))
        assert manifest.file == file.resolve()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="manifest not found"):
            asyncio.run(Manifest.load(tmp_path / "nope"))

    def test_invalid_json_reports_position(self, tmp_path: Path) -> None:
        file = _write(tmp_path / MANIFEST_FILENAME, '{"name": "X",\n  main: 1}')
        with pytest.raises(ConfigError, match=r":2:3: invalid JSON"):
            asyncio.run(Manifest.load_file(file))

    def test_not_an_object(self, tmp_path: Path) -> None:
        file = _write(tmp_path / MANIFEST_FILENAME, [1, 2])
        with pytest.raises(ConfigError, match="must be a JSON object"):
            asyncio.run(Manifest.load_file(file))

    @pytest.mark.parametrize("missing", ["name", "main"])
    def test_required_properties(self, tmp_path: Path, missing: str) -> None:
        props = {"name": "X", "main": "a.ts"}
        del props[missing]
        file = _write(tmp_path / MANIFEST_FILENAME, props)
        with pytest.raises(ConfigError, match=f"missing '{missing}' property"):
            asyncio.run(Manifest.load_file(file))

    def test_wrong_type(self, tmp_path: Path) -> None:
        file = _write(tmp_path / MANIFEST_FILENAME, {"name": "X", "main": "a.ts", "menu": "no"})
        with pytest.raises(ConfigError, match="invalid manifest"):
            asyncio.run(Manifest.load_file(file))


class TestPropMap:
    def test_standard_keys_first_then_extras(self, tmp_path: Path) -> None:
        file = _write(
            tmp_path / MANIFEST_FILENAME,
            {"zeta": True, "ui": "ui.ts", "main": "a.ts", "name": "X", "api": "1.0.0"},
        )
        manifest = asyncio.run(Manifest.load_file(file))
        props = manifest.prop_map()
        assert list(props) == ["name", "api", "main", "ui", "zeta"]
        assert props["zeta"] is True

    def test_undeclared_keys_are_omitted(self, plugin_dir: Path) -> None:
        manifest = asyncio.run(Manifest.load(plugin_dir))
        assert "ui" not in manifest.prop_map()
        assert "id" not in manifest.prop_map()
