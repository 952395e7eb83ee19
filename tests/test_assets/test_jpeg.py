"""Tests for plugbuild.assets.jpeg."""

from __future__ import annotations

import pytest

from plugbuild.assets.jpeg import jpeg_info
from plugbuild.exceptions import AssetFormatError

SOI = b"\xff\xd8"
APP0 = b"\xff\xe0\x00\x10" + b"JFIF\x00" + b"\x00" * 9


def _sof0(width: int, height: int, components: int = 3) -> bytes:
    body = b"\x08" + height.to_bytes(2, "big") + width.to_bytes(2, "big") + bytes([components])
    body += b"\x00" * 3 * components
    return b"\xff\xc0" + (len(body) + 2).to_bytes(2, "big") + body


class TestJpegInfo:
    def test_dimensions_after_app_segment(self) -> None:
        info = jpeg_info(SOI + APP0 + _sof0(640, 480))
        assert (info.width, info.height) == (640, 480)
        assert not info.is_greyscale

    def test_greyscale(self) -> None:
        assert jpeg_info(SOI + _sof0(1, 2, components=1)).is_greyscale

    def test_not_a_jpeg(self) -> None:
        with pytest.raises(AssetFormatError, match="invalid jpeg data"):
            jpeg_info(b"GIF89a")

    def test_truncated_segment(self) -> None:
        with pytest.raises(AssetFormatError, match="truncated"):
            jpeg_info(SOI + b"\xff\xe0\x00\x40\x00")

    def test_missing_sof(self) -> None:
        with pytest.raises(AssetFormatError, match="missing SOF"):
            jpeg_info(SOI + APP0)

    def test_short_sof(self) -> None:
        with pytest.raises(AssetFormatError, match="syntax error"):
            jpeg_info(SOI + b"\xff\xc0\x00\x04\x08\x00")
