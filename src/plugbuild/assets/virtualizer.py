"""Asset files as typed, importable modules.

Programs import images and JSON like code::

    import logo from "./logo.png"          // {url, width, height}
    import Icon from "./icon.svg?jsx"      // a JSX element
    import config from "./config.json"

Two parties need to be convinced that such modules exist:

* The **type checker** looks for ``logo.png.d.ts``. :class:`AssetCompilerHost`
  answers that lookup for any existing file with a known asset extension
  and synthesizes a minimal declaration for it.
* The **bundler** resolves and loads ``logo.png``. :class:`AssetVirtualizer`
  is a bundler plugin that loads the file and emits a module whose default
  export is an object literal carrying a data URL and, for images, pixel
  dimensions.

A query string (``file.svg?jsx``) selects a loading directive; it is only
recognized when no ``/`` follows the last ``?``. Declaration lookups made
during one bundling pass are cached until :meth:`AssetVirtualizer.build_end`.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from plugbuild.assets.gif import HEADER_SIZE as GIF_HEADER_SIZE
from plugbuild.assets.gif import gif_info
from plugbuild.assets.jpeg import jpeg_info
from plugbuild.assets.svg import svg_to_jsx_source
from plugbuild.exceptions import AssetFormatError, ToolchainError
from plugbuild.models import AssetInfo
from plugbuild.output import debug, error, warning
from plugbuild.toolchain.base import CompilerHost, JsxModule, SvgOptimizer

MIME_TYPES: dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
}
DEFAULT_MIME_TYPE = "application/octet-stream"

JSX_DIRECTIVE = "jsx"

_JSID_RE = re.compile(r"[^A-Za-z0-9_]+")
_SINGLE_LINE_RE = re.compile(r"[^\r\n\t]+")
_INT_PREFIX_RE = re.compile(r"\s*([+-]?\d+)")

_JSX_DECLARATION = (
    "import React from 'react';\n"
    "const s :React.StatelessComponent<React.SVGAttributes<SVGElement>>;\n"
    "export default s;\n"
)
_IMAGE_DECLARATION = "const a :{url:string,width:number,height:number};\nexport default a;\n"
_ASSET_DECLARATION = "const a :{url:string};\nexport default a;\n"


def mime_type_for(path: str) -> str:
    """Return the mime type for *path*'s extension, or ``application/octet-stream``."""
    return MIME_TYPES.get(os.path.splitext(path)[1].lower(), DEFAULT_MIME_TYPE)


def is_text_mime_type(mime_type: str) -> bool:
    return mime_type == "image/svg+xml"


def is_jsx_compatible(mime_type: str) -> bool:
    return mime_type == "image/svg+xml"


def is_image_mime_type(mime_type: str) -> bool:
    return mime_type.startswith("image/")


def extract_path_query(path: str) -> tuple[str, str]:
    """Split ``file.ext?query`` into ``(file.ext, query)``.

    The ``?`` only starts a query when no ``/`` follows it; otherwise the
    whole input is a path and the query is empty.
    """
    qi = path.rfind("?")
    if qi != -1 and path.rfind("/") < qi:
        return path[:qi], path[qi + 1:]
    return path, ""


def parse_int_attr(value: Optional[str]) -> int:
    """Parse the leading integer of an attribute such as ``"24px"``; 0 when absent."""
    if not value:
        return 0
    match = _INT_PREFIX_RE.match(value)
    return int(match.group(1)) if match else 0


def js_identifier(path: str, ext: str) -> str:
    """Derive a stable identifier from *path*'s base name without *ext*."""
    name = os.path.basename(path)
    if ext and name.endswith(ext):
        name = name[: -len(ext)]
    return _JSID_RE.sub("_", name)


@dataclass(frozen=True)
class AssetDeclaration:
    """What a virtual ``.d.ts`` path stands for."""

    file: str
    mime_type: str
    meta: str


class _DiskFiles:
    """The real file system as a :class:`CompilerHost`."""

    def file_exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def read_file(self, path: str) -> Optional[str]:
        try:
            return Path(path).read_text(encoding="utf-8")
        except OSError:
            return None


class AssetCompilerHost:
    """Compiler host that adds virtual declarations for asset files.

    Every lookup goes to *files* first. Only paths ending in ``.d.ts``
    whose stripped path names an existing file with a known asset
    extension fall through to the virtual table.
    """

    def __init__(self, virtualizer: AssetVirtualizer, files: Optional[CompilerHost] = None) -> None:
        self._virtualizer = virtualizer
        self._files = files if files is not None else _DiskFiles()

    def file_exists(self, path: str) -> bool:
        if self._virtualizer.has_declaration(path) or self._files.file_exists(path):
            return True
        if not path.endswith(".d.ts"):
            return False
        file, meta = extract_path_query(path[: -len(".d.ts")])
        ext = os.path.splitext(file)[1].lower()
        mime_type = MIME_TYPES.get(ext)
        if mime_type is not None and self._files.file_exists(file):
            self._virtualizer.add_declaration(path, AssetDeclaration(file, mime_type, meta))
            return True
        return False

    def read_file(self, path: str) -> Optional[str]:
        declaration = self._virtualizer.get_declaration(path)
        if declaration is None:
            return self._files.read_file(path)
        return self._virtualizer.declaration_source(declaration)


class AssetVirtualizer:
    """Bundler plugin that loads asset files as data-URL modules.

    Args:
        svg_optimizer: Optimizer for SVG assets. Without one, SVGs are
            base64-encoded like any other binary asset.
    """

    name = "asset"
    id_pattern = (
        r"\?|\.(json|" + "|".join(ext.lstrip(".") for ext in MIME_TYPES) + r")$"
    )

    def __init__(self, svg_optimizer: Optional[SvgOptimizer] = None) -> None:
        self.svg_optimizer = svg_optimizer
        self._declarations: dict[str, AssetDeclaration] = {}

    # ------------------------------------------------------------------ #
    # Declarations (compiler side)
    # ------------------------------------------------------------------ #

    def compiler_host(self, files: Optional[CompilerHost] = None) -> AssetCompilerHost:
        return AssetCompilerHost(self, files)

    @property
    def extensions(self) -> list[str]:
        return list(MIME_TYPES)

    def has_declaration(self, path: str) -> bool:
        return path in self._declarations

    def get_declaration(self, path: str) -> Optional[AssetDeclaration]:
        return self._declarations.get(path)

    def add_declaration(self, path: str, declaration: AssetDeclaration) -> None:
        self._declarations[path] = declaration

    def declaration_source(self, declaration: AssetDeclaration) -> str:
        """Return the synthesized type declaration for *declaration*."""
        if declaration.meta == JSX_DIRECTIVE:
            if is_jsx_compatible(declaration.mime_type):
                return _JSX_DECLARATION
            error(f"{declaration.file}: not valid JSX")
        if is_image_mime_type(declaration.mime_type):
            return _IMAGE_DECLARATION
        return _ASSET_DECLARATION

    # ------------------------------------------------------------------ #
    # Bundler plugin hooks
    # ------------------------------------------------------------------ #

    def resolve_id(self, source: str, importer: Optional[str]) -> Optional[str]:
        """Resolve ``file.ext?query`` ids relative to the importing module."""
        if "?" not in source:
            return None
        file, meta = extract_path_query(source)
        if not meta or os.path.splitext(file)[1].lower() not in MIME_TYPES:
            return None
        base = os.path.dirname(importer) if importer else os.getcwd()
        return os.path.normpath(os.path.join(base, source))

    async def load(self, module_id: str) -> Optional[Union[str, JsxModule]]:
        """Return module code for an asset id, or None for ids this plugin does not own.

        SVGs loaded with the ``?jsx`` directive come back as a
        :class:`JsxModule` for the bundler to transpile.
        """
        ext = os.path.splitext(module_id)[1]
        if ext == ".json":
            text = await asyncio.to_thread(Path(module_id).read_text, encoding="utf-8")
            value = json.loads(text)
            return "export default " + json.dumps(value, ensure_ascii=False, separators=(",", ":"))

        mime_type = MIME_TYPES.get(ext.lower())
        meta = ""
        if mime_type is None:
            if "?" in module_id:
                file, meta = extract_path_query(module_id)
                if meta:
                    ext = os.path.splitext(file)[1]
                    mime_type = MIME_TYPES.get(ext.lower())
                    if mime_type is not None:
                        module_id = file
            if mime_type is None:
                return None

        jsid = js_identifier(module_id, ext)
        if meta == JSX_DIRECTIVE and is_jsx_compatible(mime_type):
            svg = await asyncio.to_thread(Path(module_id).read_text, encoding="utf-8")
            return JsxModule(svg_to_jsx_source(svg, jsid), module_id + ".jsx")

        info = await self.encode(mime_type, module_id)
        obj = json.dumps(info.module_object(), ensure_ascii=False, separators=(",", ":"))
        return f"const asset_{jsid} = {obj};\nexport default asset_{jsid};"

    def build_end(self) -> None:
        """Forget declaration lookups made during the finished pass."""
        self._declarations.clear()

    # ------------------------------------------------------------------ #
    # Encoding
    # ------------------------------------------------------------------ #

    async def encode(self, mime_type: str, path: str) -> AssetInfo:
        """Read the asset at *path* and encode it as an :class:`AssetInfo`.

        Undecodable GIF and JPEG headers and unoptimizable SVGs are reported
        as warnings; the asset is still encoded (base64, zero dimensions).
        """
        attrs: dict[str, int] = {}
        if is_image_mime_type(mime_type):
            attrs = {"width": 0, "height": 0}

        raw = await asyncio.to_thread(Path(path).read_bytes)

        if mime_type == "image/gif":
            try:
                gif = gif_info(raw[:GIF_HEADER_SIZE])
            except AssetFormatError as exc:
                warning(f"{path}: not a GIF image ({exc})")
            else:
                attrs.update(width=gif.width, height=gif.height)

        elif mime_type == "image/jpeg":
            try:
                jpeg = jpeg_info(raw)
            except AssetFormatError as exc:
                warning(f"{path}: not a JPEG image ({exc})")
            else:
                attrs.update(width=jpeg.width, height=jpeg.height)

        elif is_text_mime_type(mime_type) and self.svg_optimizer is not None:
            text_info = await self._encode_svg(mime_type, path, raw, attrs)
            if text_info is not None:
                return text_info

        return AssetInfo.from_bytes(mime_type, raw, **attrs)

    async def _encode_svg(
        self, mime_type: str, path: str, raw: bytes, attrs: dict[str, int]
    ) -> Optional[AssetInfo]:
        assert self.svg_optimizer is not None
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            warning(f"{path}: SVG is not valid UTF-8")
            return None
        try:
            result = await asyncio.to_thread(self.svg_optimizer.optimize, text, path)
        except (AssetFormatError, ToolchainError) as exc:
            warning(str(exc))
            return None
        if not _SINGLE_LINE_RE.fullmatch(result.data):
            debug(f"{path}: optimized SVG spans lines; using base64")
            return None
        if result.width:
            attrs["width"] = parse_int_attr(result.width)
        if result.height:
            attrs["height"] = parse_int_attr(result.height)
        return AssetInfo.from_text(mime_type, result.data, **attrs)
