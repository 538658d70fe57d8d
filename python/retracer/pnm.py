"""Decoder for the PNM snapshot stream emitted by ``<api>retrace -s -``.

Each record is a binary PNM image: a magic token (``P5`` for single-channel
greyscale, ``P6`` for RGB), whitespace separated width, height and maximum
sample value, one whitespace byte, then ``width * height * channels`` raw
pixel bytes.  Records are concatenated back-to-back with no framing, so the
decoder walks the buffer with a cursor and stops at the first record it
cannot make sense of.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from .errors import MalformedHeader

logger = logging.getLogger(__name__)

BytesLike = Union[bytes, bytearray, memoryview]

_MAGIC_CHANNELS = {b"P5": 1, b"P6": 3}
_WHITESPACE = frozenset(b" \t\r\n\v\f")
_COMMENT = ord("#")
_NEWLINE = ord("\n")


@dataclass(frozen=True)
class SnapshotImage:
    width: int
    height: int
    channels: int
    pixels: bytes = field(repr=False)

    def __post_init__(self) -> None:
        if self.channels not in (1, 3):
            raise ValueError(f"channels must be 1 or 3 (got {self.channels})")
        expected = self.width * self.height * self.channels
        if len(self.pixels) != expected:
            raise ValueError(f"pixel buffer holds {len(self.pixels)} bytes, expected {expected}")

    @property
    def row_bytes(self) -> int:
        return self.width * self.channels

    @property
    def suffix(self) -> str:
        return ".pgm" if self.channels == 1 else ".ppm"

    def row(self, y: int) -> bytes:
        if not 0 <= y < self.height:
            raise IndexError(f"row {y} out of range for height {self.height}")
        start = y * self.row_bytes
        return self.pixels[start : start + self.row_bytes]

    def to_pnm(self) -> bytes:
        magic = "P5" if self.channels == 1 else "P6"
        header = f"{magic}\n{self.width} {self.height}\n255\n".encode("ascii")
        return header + self.pixels


def _read_token(data: bytes, pos: int) -> Tuple[bytes, int]:
    size = len(data)
    while pos < size:
        byte = data[pos]
        if byte in _WHITESPACE:
            pos += 1
        elif byte == _COMMENT:
            while pos < size and data[pos] != _NEWLINE:
                pos += 1
        else:
            break
    start = pos
    while pos < size and data[pos] not in _WHITESPACE and data[pos] != _COMMENT:
        pos += 1
    return data[start:pos], pos


def _read_number(data: bytes, pos: int, name: str, offset: int) -> Tuple[int, int]:
    token, pos = _read_token(data, pos)
    if not token:
        raise MalformedHeader(f"missing {name}", offset)
    if not token.isdigit():
        raise MalformedHeader(f"non-numeric {name} {token!r}", offset)
    return int(token), pos


def decode_one(buffer: BytesLike, offset: int = 0) -> Tuple[SnapshotImage, int]:
    """Decode the record starting at ``offset``.

    Returns the image and the number of bytes it occupied (header plus pixel
    body).  Raises :class:`MalformedHeader` when the header is unrecognised or
    the buffer is too short for the declared dimensions.
    """
    data = buffer if isinstance(buffer, bytes) else bytes(buffer)
    magic = data[offset : offset + 2]
    channels = _MAGIC_CHANNELS.get(magic)
    if channels is None:
        raise MalformedHeader(f"unrecognised magic {magic!r}", offset)
    pos = offset + 2
    if pos >= len(data) or (data[pos] not in _WHITESPACE and data[pos] != _COMMENT):
        raise MalformedHeader("magic token not followed by whitespace", offset)

    width, pos = _read_number(data, pos, "width", offset)
    height, pos = _read_number(data, pos, "height", offset)
    maxval, pos = _read_number(data, pos, "maximum sample value", offset)
    if width == 0 or height == 0:
        raise MalformedHeader(f"empty image dimensions {width}x{height}", offset)
    if not 0 < maxval < 256:
        raise MalformedHeader(f"unsupported maximum sample value {maxval}", offset)
    if pos >= len(data):
        raise MalformedHeader("header not terminated", offset)
    # exactly one whitespace byte separates the header from the pixels
    if data[pos] not in _WHITESPACE:
        raise MalformedHeader("header not terminated by whitespace", offset)
    pos += 1

    end = pos + width * height * channels
    if end > len(data):
        raise MalformedHeader(
            f"truncated pixel data: need {end - pos} bytes, have {len(data) - pos}",
            offset,
        )
    image = SnapshotImage(width, height, channels, data[pos:end])
    return image, end - offset


def decode_stream(buffer: BytesLike) -> Tuple[List[SnapshotImage], Optional[MalformedHeader]]:
    """Decode every record in ``buffer``.

    Decoding stops at the first malformed record; the images decoded before
    it are returned together with the error that stopped the stream.
    """
    data = buffer if isinstance(buffer, bytes) else bytes(buffer)
    images: List[SnapshotImage] = []
    cursor = 0
    while cursor < len(data):
        try:
            image, consumed = decode_one(data, cursor)
        except MalformedHeader as exc:
            logger.warning("invalid snapshot stream at byte %d: %s", cursor, exc)
            return images, exc
        images.append(image)
        cursor += consumed
    return images, None


__all__ = ["SnapshotImage", "decode_one", "decode_stream"]
