"""JPEG dimension scanning.

Walks the marker segments of a baseline JPEG until the Start-Of-Frame
(``0xFFC0``) segment and reads the frame size from it. The segment walk
follows NanoJPEG (Martin J. Fiedler, MIT license); no image data is
decoded.
"""

from __future__ import annotations

from dataclasses import dataclass

from plugbuild.exceptions import AssetFormatError

_SOI = b"\xff\xd8"
_SOF0 = 0xC0


@dataclass(frozen=True)
class JpegInfo:
    width: int
    height: int
    is_greyscale: bool


def _u16(buf: bytes, index: int) -> int:
    return (buf[index] << 8) | buf[index + 1]


class _Scanner:
    def __init__(self, buf: bytes) -> None:
        self.buf = buf
        self.pos = 0

    def decode_length(self) -> int:
        """Read a segment length and advance past the two length bytes."""
        remaining = len(self.buf) - self.pos
        if remaining < 2:
            raise AssetFormatError("jpeg data truncated")
        length = _u16(self.buf, self.pos)
        if length > remaining:
            raise AssetFormatError("jpeg data truncated")
        self.pos += 2
        return length

    def decode_sof(self) -> JpegInfo:
        length = self.decode_length()
        if length < 9:
            raise AssetFormatError("jpeg syntax error")
        i = self.pos
        return JpegInfo(
            height=_u16(self.buf, i + 1),
            width=_u16(self.buf, i + 3),
            is_greyscale=self.buf[i + 5] == 1,
        )


def jpeg_info(buf: bytes) -> JpegInfo:
    """Return the dimensions and colour mode of the JPEG image in *buf*.

    Raises:
        AssetFormatError: If *buf* does not start with ``0xFFD8``, a segment
            is truncated, or no SOF0 segment precedes the end of the buffer.
    """
    if len(buf) < 2 or buf[:2] != _SOI:
        raise AssetFormatError("invalid jpeg data")
    scanner = _Scanner(buf)
    scanner.pos = 2
    end = len(buf) - 1
    while scanner.pos < end and buf[scanner.pos] == 0xFF:
        marker = buf[scanner.pos + 1]
        scanner.pos += 2
        if marker == _SOF0:
            return scanner.decode_sof()
        # The length includes its own two bytes.
        length = scanner.decode_length()
        if length < 2:
            raise AssetFormatError("jpeg syntax error")
        scanner.pos += length - 2
    raise AssetFormatError("invalid jpeg (missing SOF section)")
