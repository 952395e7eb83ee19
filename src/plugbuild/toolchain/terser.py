"""Minification through terser.

:class:`TerserMinifier` runs terser's ``minify`` in a short-lived Node.js
process (``js/minify.js``) and returns its code and source map. It is
synchronous: a build blocks on the minifier, which is acceptable because
builds are not latency-sensitive.
"""

from __future__ import annotations

import os
import re
from typing import Any, Optional

from plugbuild.exceptions import OptimizeError
from plugbuild.output import debug
from plugbuild.toolchain.base import MinifyResult
from plugbuild.toolchain.process import run_node_script

# "Parse error at plugin.js:12,4" as printed by terser's CLI and some wrappers.
_PARSE_ERROR_RE = re.compile(r"^(?P<message>.*?)\s+at\s+(?P<file>[^\s:]+):(?P<line>\d+),(?P<col>\d+)")


def ecma_version(target_es_version: int) -> int:
    """Map a product's ES target (0, 3, 5, 6..9, 2015..) to terser's ``ecma`` value."""
    if target_es_version == 0:
        return 2020
    if target_es_version < 6:
        return 5
    if target_es_version < 2015:
        return 2009 + target_es_version
    return target_es_version


def parse_error(payload: dict[str, Any]) -> OptimizeError:
    """Build an :class:`OptimizeError` from terser's error object."""
    message = str(payload.get("message") or "minification failed")
    filename = payload.get("filename")
    line = payload.get("line")
    col = payload.get("col")
    if filename is None:
        match = _PARSE_ERROR_RE.match(message)
        if match:
            message = match.group("message")
            filename = match.group("file")
            line = int(match.group("line"))
            col = int(match.group("col"))
    return OptimizeError(message, filename=filename, line=line, col=col)


class TerserMinifier:
    """Minifier backed by the ``terser`` Node.js package.

    Args:
        cwd: Directory terser is resolved from (its ``node_modules``).
            Defaults to the working directory at call time.
        node: Path to the ``node`` executable; looked up on ``PATH`` when
            omitted.
    """

    def __init__(self, cwd: Optional[str] = None, node: Optional[str] = None) -> None:
        self._cwd = cwd
        self._node = node

    def minify(
        self,
        files: dict[str, str],
        options: dict[str, Any],
        source_map: Optional[dict[str, Any]] = None,
    ) -> MinifyResult:
        options = dict(options)
        if source_map is not None:
            sm_options = dict(options.get("sourceMap") or {})
            sm_options["content"] = source_map
            options["sourceMap"] = sm_options
        debug(f"minify {', '.join(files)}")
        response = run_node_script(
            "minify.js",
            {"files": files, "options": options},
            cwd=self._cwd or os.getcwd(),
            node=self._node,
        )
        if "error" in response:
            raise parse_error(response["error"] or {})
        return MinifyResult(code=response.get("code", ""), map=response.get("map", ""))
