"""SVG optimization through svgo."""

from __future__ import annotations

import os
from typing import Optional

from plugbuild.assets.svg import root_dimensions
from plugbuild.exceptions import AssetFormatError
from plugbuild.toolchain.base import SvgResult
from plugbuild.toolchain.process import run_node_script

# Applied in order. Raster images and the viewBox are kept; dimensions too,
# since they become the asset's width and height.
SVGO_PLUGINS = (
    "cleanupAttrs",
    "removeDoctype",
    "removeXMLProcInst",
    "removeComments",
    "removeMetadata",
    "removeTitle",
    "removeDesc",
    "removeUselessDefs",
    "removeEditorsNSData",
    "removeEmptyAttrs",
    "removeHiddenElems",
    "removeEmptyText",
    "removeEmptyContainers",
    "cleanupEnableBackground",
    "convertStyleToAttrs",
    "convertColors",
    "convertPathData",
    "convertTransform",
    "removeUnknownsAndDefaults",
    "removeNonInheritableGroupAttrs",
    "removeUselessStrokeAndFill",
    "removeUnusedNS",
    "cleanupIds",
    "cleanupNumericValues",
    "moveElemsAttrsToGroup",
    "moveGroupAttrsToElems",
    "collapseGroups",
    "mergePaths",
    "convertShapeToPath",
    "sortAttrs",
)


class SvgoOptimizer:
    """SVG optimizer backed by the ``svgo`` Node.js package.

    Args:
        cwd: Directory svgo is resolved from. Defaults to the working
            directory at call time.
        node: Path to the ``node`` executable.
    """

    def __init__(self, cwd: Optional[str] = None, node: Optional[str] = None) -> None:
        self._cwd = cwd
        self._node = node

    def optimize(self, svg: str, path: str) -> SvgResult:
        """Optimize *svg* and read the root element's width and height.

        Raises:
            AssetFormatError: If svgo rejects the document.
            ToolchainError: If Node.js or svgo is unavailable.
        """
        response = run_node_script(
            "svgo.js",
            {"svg": svg, "path": path, "plugins": list(SVGO_PLUGINS)},
            cwd=self._cwd or os.getcwd(),
            node=self._node,
        )
        if "error" in response:
            message = (response["error"] or {}).get("message", "svgo failed")
            raise AssetFormatError(f"{path}: {message}")
        data = response.get("data", "")
        width, height = root_dimensions(data)
        return SvgResult(data=data, width=width, height=height)
