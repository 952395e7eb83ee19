"""Asset virtualization: images and JSON imported as typed modules.

Sub-modules:

* :mod:`~plugbuild.assets.gif` -- GIF signature and dimension decoding.
* :mod:`~plugbuild.assets.jpeg` -- JPEG Start-Of-Frame scanning.
* :mod:`~plugbuild.assets.svg` -- SVG markup to JSX element modules.
* :mod:`~plugbuild.assets.virtualizer` -- the compiler host and bundler
  plugin that make asset imports resolve.
"""

from plugbuild.assets.gif import GifInfo, gif_info
from plugbuild.assets.jpeg import JpegInfo, jpeg_info
from plugbuild.assets.svg import svg_to_jsx_source
from plugbuild.assets.virtualizer import (
    MIME_TYPES,
    AssetCompilerHost,
    AssetVirtualizer,
    extract_path_query,
    mime_type_for,
)

__all__ = [
    "MIME_TYPES",
    "AssetCompilerHost",
    "AssetVirtualizer",
    "GifInfo",
    "JpegInfo",
    "extract_path_query",
    "gif_info",
    "jpeg_info",
    "mime_type_for",
    "svg_to_jsx_source",
]
