"""Tests for plugbuild.toolchain.process -- running the Node.js helpers."""

from __future__ import annotations

import json
import subprocess
from typing import Any

import pytest

from plugbuild.exceptions import ToolchainError
from plugbuild.toolchain.process import JS_DIR, require_tool, run_node_script


class TestRequireTool:
    def test_found(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("plugbuild.toolchain.process.shutil.which", lambda name: f"/usr/bin/{name}")
        assert require_tool("node") == "/usr/bin/node"

    def test_missing_with_hint(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("plugbuild.toolchain.process.shutil.which", lambda name: None)
        with pytest.raises(ToolchainError, match="'node' not found on PATH; install it"):
            require_tool("node", "install it")


class TestRunNodeScript:
    def _patch_run(self, monkeypatch: pytest.MonkeyPatch, **result: Any) -> list[dict[str, Any]]:
        calls: list[dict[str, Any]] = []

        def fake_run(args, **kwargs):
            calls.append({"args": args, **kwargs})
            return subprocess.CompletedProcess(
                args, result.get("returncode", 0), result.get("stdout", ""), result.get("stderr", "")
            )

        monkeypatch.setattr("plugbuild.toolchain.process.subprocess.run", fake_run)
        return calls

    def test_payload_on_stdin(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls = self._patch_run(monkeypatch, stdout='{"code": "x"}')
        response = run_node_script("minify.js", {"files": {}}, cwd="/proj", node="/bin/node")
        assert response == {"code": "x"}
        call = calls[0]
        assert call["args"] == ["/bin/node", str(JS_DIR / "minify.js")]
        assert json.loads(call["input"]) == {"files": {}}
        assert call["cwd"] == "/proj"

    def test_non_zero_exit(self, monkeypatch: pytest.MonkeyPatch) -> None:
        self._patch_run(monkeypatch, returncode=1, stderr="Error: Cannot find module 'terser'\n")
        with pytest.raises(ToolchainError, match="exited with status 1:\nError: Cannot find module"):
            run_node_script("minify.js", {}, node="/bin/node")

    @pytest.mark.parametrize("stdout", ["not json", "[1, 2]"])
    def test_invalid_output(self, monkeypatch: pytest.MonkeyPatch, stdout: str) -> None:
        self._patch_run(monkeypatch, stdout=stdout)
        with pytest.raises(ToolchainError, match="invalid output"):
            run_node_script("svgo.js", {}, node="/bin/node")

    def test_cannot_spawn(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_run(args, **kwargs):
            raise FileNotFoundError(args[0])

        monkeypatch.setattr("plugbuild.toolchain.process.subprocess.run", fake_run)
        with pytest.raises(ToolchainError, match="cannot run /missing/node"):
            run_node_script("svgo.js", {}, node="/missing/node")

    def test_scripts_are_shipped(self) -> None:
        for name in ("driver.js", "minify.js", "svgo.js"):
            assert (JS_DIR / name).is_file(), name
