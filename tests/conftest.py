"""Shared test fixtures for plugbuild.

Provides an isolated cache and data directory, plain (uncoloured) output,
the in-process tool fakes from :mod:`fakes`, and small plugin projects on
disk. These fixtures are automatically discovered by pytest and available
to all test modules without explicit imports.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from fakes import FakeBundler, FakeMinifier, FakeSvgOptimizer
from plugbuild.builder import ProductBuilder
from plugbuild.libraries import LibraryRegistry
from plugbuild.output import reset_output


# ---------------------------------------------------------------------------
# Auto-reset global output state and isolate user directories
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point the cache and data directories at tmp_path and disable colour.

    The global OutputManager caches references to sys.stdout/sys.stderr at
    creation time, so it is reset after every test; the next one gets a
    fresh manager bound to the streams pytest installs.
    """
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    monkeypatch.setenv("NO_COLOR", "1")
    monkeypatch.delenv("PLUGBUILD_CACHE_DIR", raising=False)
    monkeypatch.setattr("plugbuild.config._is_xdg_platform", lambda: True)
    reset_output()
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Tool fakes
# ---------------------------------------------------------------------------


@pytest.fixture
def bundler() -> FakeBundler:
    return FakeBundler()


@pytest.fixture
def minifier() -> FakeMinifier:
    return FakeMinifier()


@pytest.fixture
def svg_optimizer() -> FakeSvgOptimizer:
    return FakeSvgOptimizer()


@pytest.fixture
def builder(bundler: FakeBundler, minifier: FakeMinifier) -> ProductBuilder:
    return ProductBuilder(bundler, minifier)


@pytest.fixture
def registry(minifier: FakeMinifier, tmp_path: Path) -> LibraryRegistry:
    """A library registry caching compiled code under tmp_path."""
    return LibraryRegistry(minifier, cachedir=tmp_path / "libcache")


# ---------------------------------------------------------------------------
# Plugin projects on disk
# ---------------------------------------------------------------------------


def _write_project(root: Path, manifest: dict[str, Any], files: dict[str, str]) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    (root / "manifest.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    for name, text in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


@pytest.fixture
def plugin_dir(tmp_path: Path) -> Path:
    """A plugin with only a main program."""
    return _write_project(
        tmp_path / "hello",
        {"name": "Hello", "api": "1.0.0", "main": "plugin.ts"},
        {"plugin.ts": 'print("hello")\n'},
    )


@pytest.fixture
def ui_plugin_dir(tmp_path: Path) -> Path:
    """A plugin with a main program and a scripted UI with HTML and CSS."""
    return _write_project(
        tmp_path / "with-ui",
        {"name": "With UI", "api": "1.0.0", "main": "plugin.ts", "ui": "ui.ts", "menu": ["a"]},
        {
            "plugin.ts": "host.showUI()\n",
            "ui.ts": 'document.body.title = "ui"\n',
            "ui.html": "<html>\n<head>\n<title>x</title>\n</head>\n<body>\n<p>hi</p>\n</body>\n</html>\n",
            "ui.css": "p { color: red }\n",
        },
    )


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
