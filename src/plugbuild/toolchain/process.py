"""Locating and running the Node.js tools a build depends on."""

from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path
from typing import Any, Optional

from plugbuild.exceptions import ToolchainError
from plugbuild.output import debug

JS_DIR = Path(__file__).parent / "js"

NODE_HINT = "install Node.js from https://nodejs.org"


def require_tool(name: str, hint: Optional[str] = None) -> str:
    """Return the absolute path of executable *name*.

    Raises:
        ToolchainError: If *name* is not on ``PATH``. The message ends with
            *hint* when one is given.
    """
    path = shutil.which(name)
    if path is None:
        message = f"{name!r} not found on PATH"
        if hint:
            message += f"; {hint}"
        raise ToolchainError(message)
    return path


def run_node_script(
    script: str,
    payload: dict[str, Any],
    cwd: Optional[str] = None,
    node: Optional[str] = None,
) -> dict[str, Any]:
    """Run ``node js/<script>`` with *payload* as JSON on stdin.

    Node packages are resolved from *cwd* first, so a project's own
    ``node_modules`` wins over a global install.

    Returns:
        The JSON object the script printed on stdout.

    Raises:
        ToolchainError: If Node.js is missing, the script exits non-zero,
            or its output is not a JSON object.
    """
    node = node or require_tool("node", NODE_HINT)
    script_path = JS_DIR / script
    debug(f"run {script_path.name} in {cwd or '.'}")
    try:
        result = subprocess.run(
            [node, str(script_path)],
            input=json.dumps(payload),
            capture_output=True,
            text=True,
            encoding="utf-8",
            cwd=cwd,
        )
    except OSError as exc:
        raise ToolchainError(f"cannot run {node}: {exc}")

    if result.returncode != 0:
        tail = "\n".join(result.stderr.strip().splitlines()[-20:])
        raise ToolchainError(
            f"{script_path.name} exited with status {result.returncode}"
            + (f":\n{tail}" if tail else "")
        )
    try:
        response = json.loads(result.stdout)
    except json.JSONDecodeError:
        raise ToolchainError(f"{script_path.name} produced invalid output")
    if not isinstance(response, dict):
        raise ToolchainError(f"{script_path.name} produced invalid output")
    return response
