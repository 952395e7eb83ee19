"""GIF header decoding.

Only the 6-byte signature and the first four bytes of the logical screen
descriptor are read; that is enough for an image's pixel dimensions.
"""

from __future__ import annotations

from dataclasses import dataclass

from plugbuild.exceptions import AssetFormatError

HEADER_SIZE = 10


@dataclass(frozen=True)
class GifInfo:
    version: str  # "87a" or "89a"
    width: int
    height: int


def gif_info(buf: bytes) -> GifInfo:
    """Decode the version and dimensions from the start of a GIF file.

    Args:
        buf: At least the first 10 bytes of the file.

    Raises:
        AssetFormatError: If *buf* is too short, the signature is not
            ``GIF8?a``/``GIF8?b``, or the version is neither 87 nor 89.
    """
    if len(buf) < HEADER_SIZE or buf[:4] != b"GIF8" or buf[5] not in (0x61, 0x62):
        raise AssetFormatError("not a gif")

    minor = buf[4] - 0x30
    version = f"8{minor}{chr(buf[5])}"
    if minor not in (7, 9):
        raise AssetFormatError(f"unsupported gif version GIF{version}")

    # Little-endian uint16 width then height.
    return GifInfo(
        version=version,
        width=(buf[7] << 8) | buf[6],
        height=(buf[9] << 8) | buf[8],
    )
