"""Pydantic models shared across plugbuild modules.

**Run configuration**:
    :class:`BuildContext` -- the per-invocation flags every build step reads.

**Build data**:
    :class:`AssetInfo` -- the encoded form of one virtualized asset file.
    :class:`BuildOutput` -- the in-memory result of the latest product build.
"""

from __future__ import annotations

import base64
import enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


# --- Run configuration ---


class BuildContext(BaseModel):
    """Flags for one ``plugbuild build`` invocation.

    A single instance is shared (read-only) by every target and product
    built during the run.

    Example::

        BuildContext(watch=True, debug=True, outdir="dist")
    """

    watch: bool = Field(default=False, description="Rebuild incrementally on change")
    debug: bool = Field(default=False, description="Emit DEBUG branches and assertions")
    optimize: bool = Field(default=False, description="Run the minifier over the output")
    clean: bool = Field(default=False, description="Ignore the compiler's cache")
    nomin: bool = Field(
        default=False, description="With optimize: do not minify or mangle"
    )
    verbose: bool = Field(default=False, description="Report per-plugin builds")
    trace: bool = Field(
        default=False, description="Report per-module and cache detail (implies verbose)"
    )
    outdir: str = Field(
        default="", description="Output directory; empty means <srcdir>/build"
    )
    libs: list[str] = Field(
        default_factory=list, description="Extra library files linked into the plugin"
    )
    uilibs: list[str] = Field(
        default_factory=list, description="Extra library files linked into the UI"
    )
    no_gen_manifest: bool = Field(
        default=False, description="Do not write manifest.json to the output directory"
    )
    external_source_map: bool = Field(
        default=False, description="Reference a .map file instead of inlining the map"
    )
    no_source_map: bool = Field(
        default=False, description="Emit no source map at all"
    )
    version: str = Field(default="0", description="Version string baked into products")

    @model_validator(mode="after")
    def _trace_implies_verbose(self) -> BuildContext:
        if self.trace:
            self.verbose = True
        return self


# --- Assets ---


class AssetEncoding(str, enum.Enum):
    """How an asset payload is carried in its data URL."""

    BASE64 = "base64"
    TEXT = "utf8"


class AssetInfo(BaseModel):
    """An asset file encoded as a data URL plus format-specific attributes.

    Exactly one of ``data`` (base64 text) and ``text`` (literal text) is
    set, matching ``encoding``. Images carry ``width`` and ``height`` in
    ``attrs``; both are 0 when the dimensions could not be decoded.
    """

    mime_type: str
    encoding: AssetEncoding
    data: Optional[str] = Field(default=None, description="Base64 payload")
    text: Optional[str] = Field(default=None, description="Literal text payload")
    attrs: dict[str, int] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _exactly_one_payload(self) -> AssetInfo:
        if (self.data is None) == (self.text is None):
            raise ValueError("exactly one of data and text must be set")
        if self.encoding is AssetEncoding.BASE64 and self.data is None:
            raise ValueError("base64 encoding requires data")
        if self.encoding is AssetEncoding.TEXT and self.text is None:
            raise ValueError("utf8 encoding requires text")
        return self

    @classmethod
    def from_bytes(cls, mime_type: str, raw: bytes, **attrs: int) -> AssetInfo:
        """Encode *raw* as base64."""
        return cls(
            mime_type=mime_type,
            encoding=AssetEncoding.BASE64,
            data=base64.b64encode(raw).decode("ascii"),
            attrs=attrs,
        )

    @classmethod
    def from_text(cls, mime_type: str, text: str, **attrs: int) -> AssetInfo:
        """Carry *text* literally."""
        return cls(mime_type=mime_type, encoding=AssetEncoding.TEXT, text=text, attrs=attrs)

    @classmethod
    def from_url(cls, url: str, **attrs: int) -> AssetInfo:
        """Parse a ``data:<mime>;<encoding>,<payload>`` URL."""
        if not url.startswith("data:") or "," not in url:
            raise ValueError(f"not a data URL: {url[:40]!r}")
        header, payload = url[len("data:"):].split(",", 1)
        mime_type, _, encoding = header.partition(";")
        if encoding == AssetEncoding.BASE64.value:
            return cls(mime_type=mime_type, encoding=AssetEncoding.BASE64, data=payload, attrs=attrs)
        if encoding == AssetEncoding.TEXT.value:
            return cls(mime_type=mime_type, encoding=AssetEncoding.TEXT, text=payload, attrs=attrs)
        raise ValueError(f"unsupported data URL encoding {encoding!r}")

    @property
    def url_prefix(self) -> str:
        return f"data:{self.mime_type};{self.encoding.value},"

    @property
    def url(self) -> str:
        payload = self.data if self.encoding is AssetEncoding.BASE64 else self.text
        return self.url_prefix + (payload or "")

    def get_data(self) -> bytes:
        """Return the decoded payload bytes."""
        if self.encoding is AssetEncoding.BASE64:
            return base64.b64decode(self.data or "")
        return (self.text or "").encode("utf-8")

    def get_text_data(self) -> str:
        """Return the payload decoded as UTF-8 text."""
        if self.encoding is AssetEncoding.TEXT:
            return self.text or ""
        return self.get_data().decode("utf-8")

    def module_object(self) -> dict[str, Any]:
        """Return the object a loaded asset module default-exports."""
        return {"url": self.url, **self.attrs}


# --- Build output ---


class BuildOutput(BaseModel):
    """Latest output of a product, consumed by the HTML shell step."""

    js: str = ""
    map: str = ""
