"""A minimal RGBA canvas with a 5x7 bitmap font and PNG encoding/decoding."""

from __future__ import annotations

import random
import struct
import zlib
from collections.abc import Sequence

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

GLYPH_COLS = 5
GLYPH_ROWS = 7
GLYPH_SCALE = 3
CHAR_BOX_W = GLYPH_COLS * GLYPH_SCALE + 5
CHAR_BOX_H = GLYPH_ROWS * GLYPH_SCALE

Color = tuple[int, int, int, int]

# Each glyph is 7 rows of 5 bits, most significant bit on the left.
GLYPHS: dict[str, tuple[int, ...]] = {
    "0": (0b01110, 0b10001, 0b10011, 0b10101, 0b11001, 0b10001, 0b01110),
    "1": (0b00100, 0b01100, 0b00100, 0b00100, 0b00100, 0b00100, 0b01110),
    "2": (0b01110, 0b10001, 0b00001, 0b00110, 0b01000, 0b10000, 0b11111),
    "3": (0b11111, 0b00010, 0b00100, 0b00010, 0b00001, 0b10001, 0b01110),
    "4": (0b00010, 0b00110, 0b01010, 0b10010, 0b11111, 0b00010, 0b00010),
    "5": (0b11111, 0b10000, 0b11110, 0b00001, 0b00001, 0b10001, 0b01110),
    "6": (0b00110, 0b01000, 0b10000, 0b11110, 0b10001, 0b10001, 0b01110),
    "7": (0b11111, 0b00001, 0b00010, 0b00100, 0b01000, 0b01000, 0b01000),
    "8": (0b01110, 0b10001, 0b10001, 0b01110, 0b10001, 0b10001, 0b01110),
    "9": (0b01110, 0b10001, 0b10001, 0b01111, 0b00001, 0b00010, 0b01100),
    "A": (0b01110, 0b10001, 0b10001, 0b11111, 0b10001, 0b10001, 0b10001),
    "B": (0b11110, 0b10001, 0b10001, 0b11110, 0b10001, 0b10001, 0b11110),
    "C": (0b01110, 0b10001, 0b10000, 0b10000, 0b10000, 0b10001, 0b01110),
    "D": (0b11110, 0b10001, 0b10001, 0b10001, 0b10001, 0b10001, 0b11110),
    "E": (0b11111, 0b10000, 0b10000, 0b11110, 0b10000, 0b10000, 0b11111),
    "F": (0b11111, 0b10000, 0b10000, 0b11110, 0b10000, 0b10000, 0b10000),
    "G": (0b01110, 0b10001, 0b10000, 0b10111, 0b10001, 0b10001, 0b01110),
    "H": (0b10001, 0b10001, 0b10001, 0b11111, 0b10001, 0b10001, 0b10001),
    "I": (0b01110, 0b00100, 0b00100, 0b00100, 0b00100, 0b00100, 0b01110),
    "J": (0b00111, 0b00010, 0b00010, 0b00010, 0b00010, 0b10010, 0b01100),
    "K": (0b10001, 0b10010, 0b10100, 0b11000, 0b10100, 0b10010, 0b10001),
    "L": (0b10000, 0b10000, 0b10000, 0b10000, 0b10000, 0b10000, 0b11111),
    "M": (0b10001, 0b11011, 0b10101, 0b10101, 0b10001, 0b10001, 0b10001),
    "N": (0b10001, 0b11001, 0b10101, 0b10011, 0b10001, 0b10001, 0b10001),
    "O": (0b01110, 0b10001, 0b10001, 0b10001, 0b10001, 0b10001, 0b01110),
    "P": (0b11110, 0b10001, 0b10001, 0b11110, 0b10000, 0b10000, 0b10000),
    "Q": (0b01110, 0b10001, 0b10001, 0b10001, 0b10101, 0b10010, 0b01101),
    "R": (0b11110, 0b10001, 0b10001, 0b11110, 0b10100, 0b10010, 0b10001),
    "S": (0b01110, 0b10001, 0b10000, 0b01110, 0b00001, 0b10001, 0b01110),
    "T": (0b11111, 0b00100, 0b00100, 0b00100, 0b00100, 0b00100, 0b00100),
    "U": (0b10001, 0b10001, 0b10001, 0b10001, 0b10001, 0b10001, 0b01110),
    "V": (0b10001, 0b10001, 0b10001, 0b10001, 0b10001, 0b01010, 0b00100),
    "W": (0b10001, 0b10001, 0b10001, 0b10101, 0b10101, 0b10101, 0b01010),
    "X": (0b10001, 0b10001, 0b01010, 0b00100, 0b01010, 0b10001, 0b10001),
    "Y": (0b10001, 0b10001, 0b01010, 0b00100, 0b00100, 0b00100, 0b00100),
    "Z": (0b11111, 0b00001, 0b00010, 0b00100, 0b01000, 0b10000, 0b11111),
}


def _normalize(color: Sequence[int]) -> Color:
    if len(color) == 3:
        r, g, b = color
        a = 255
    elif len(color) == 4:
        r, g, b, a = color
    else:
        raise ValueError(f"color must have 3 or 4 components, got {len(color)}")
    for c in (r, g, b, a):
        if not 0 <= c <= 255:
            raise ValueError(f"color component {c} out of range")
    return (r, g, b, a)


def random_dark_color(rng: random.Random | None = None) -> Color:
    """A random opaque colour with every channel below 120."""
    gen = rng or random
    return (gen.randrange(120), gen.randrange(120), gen.randrange(120), 255)


class Canvas:
    """A fixed-size RGBA image."""

    def __init__(self, width: int, height: int, background: Sequence[int] = (0, 0, 0, 0)) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"invalid canvas size {width}x{height}")
        self.width = width
        self.height = height
        self._pixels = bytearray(bytes(_normalize(background)) * (width * height))

    def _offset(self, x: int, y: int) -> int:
        return (y * self.width + x) * 4

    def set(self, x: int, y: int, color: Sequence[int]) -> None:
        """Paint one pixel; coordinates outside the canvas are ignored."""
        if 0 <= x < self.width and 0 <= y < self.height:
            off = self._offset(x, y)
            self._pixels[off : off + 4] = bytes(_normalize(color))

    def get(self, x: int, y: int) -> Color:
        """The RGBA colour at (x, y); IndexError outside the canvas."""
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"pixel ({x}, {y}) outside {self.width}x{self.height} canvas")
        off = self._offset(x, y)
        r, g, b, a = self._pixels[off : off + 4]
        return (r, g, b, a)

    def to_png(self) -> bytes:
        """Encode the canvas as an 8-bit RGBA PNG."""
        stride = self.width * 4
        raw = b"".join(
            b"\x00" + bytes(self._pixels[start : start + stride])
            for start in range(0, len(self._pixels), stride)
        )
        header = struct.pack(">IIBBBBB", self.width, self.height, 8, 6, 0, 0, 0)
        return (
            PNG_SIGNATURE
            + _chunk(b"IHDR", header)
            + _chunk(b"IDAT", zlib.compress(raw))
            + _chunk(b"IEND", b"")
        )


def _chunk(kind: bytes, payload: bytes) -> bytes:
    crc = zlib.crc32(kind + payload) & 0xFFFFFFFF
    return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", crc)


def draw_char(
    canvas: Canvas, x: int, y: int, ch: str, color: Sequence[int] | None = None
) -> None:
    """Draw ch scaled 3x with its top-left at (x, y); unknown characters are skipped.

    Without a colour, a random dark one is used.
    """
    glyph = GLYPHS.get(ch)
    if glyph is None:
        return
    paint = _normalize(color) if color is not None else random_dark_color()
    for row, bits in enumerate(glyph):
        for col in range(GLYPH_COLS):
            if not bits & (1 << (GLYPH_COLS - 1 - col)):
                continue
            x0 = x + col * GLYPH_SCALE
            y0 = y + row * GLYPH_SCALE
            for dy in range(GLYPH_SCALE):
                for dx in range(GLYPH_SCALE):
                    canvas.set(x0 + dx, y0 + dy, paint)


def _paeth(a: int, b: int, c: int) -> int:
    p = a + b - c
    pa, pb, pc = abs(p - a), abs(p - b), abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    if pb <= pc:
        return b
    return c


def _unfilter(kind: int, line: bytearray, prev: bytes, bpp: int) -> bytearray:
    if kind == 0:
        return line
    out = bytearray(len(line))
    for i, value in enumerate(line):
        left = out[i - bpp] if i >= bpp else 0
        up = prev[i]
        upper_left = prev[i - bpp] if i >= bpp else 0
        if kind == 1:
            pred = left
        elif kind == 2:
            pred = up
        elif kind == 3:
            pred = (left + up) // 2
        elif kind == 4:
            pred = _paeth(left, up, upper_left)
        else:
            raise ValueError(f"unknown PNG filter type {kind}")
        out[i] = (value + pred) & 0xFF
    return out


def decode_png(data: bytes) -> Canvas:
    """Decode an 8-bit RGB or RGBA, non-interlaced PNG into a Canvas."""
    if not data.startswith(PNG_SIGNATURE):
        raise ValueError("not a PNG: bad signature")
    pos = len(PNG_SIGNATURE)
    header: bytes | None = None
    idat = bytearray()
    ended = False
    while pos < len(data):
        if pos + 8 > len(data):
            raise ValueError("truncated PNG chunk header")
        (length,) = struct.unpack(">I", data[pos : pos + 4])
        kind = data[pos + 4 : pos + 8]
        payload = data[pos + 8 : pos + 8 + length]
        crc_bytes = data[pos + 8 + length : pos + 12 + length]
        if len(payload) != length or len(crc_bytes) != 4:
            raise ValueError("truncated PNG chunk")
        if zlib.crc32(kind + payload) & 0xFFFFFFFF != struct.unpack(">I", crc_bytes)[0]:
            raise ValueError(f"CRC mismatch in {kind!r} chunk")
        pos += 12 + length
        if kind == b"IHDR":
            header = payload
        elif kind == b"IDAT":
            idat += payload
        elif kind == b"IEND":
            ended = True
            break
    if header is None or len(header) != 13:
        raise ValueError("missing or malformed IHDR chunk")
    if not ended:
        raise ValueError("missing IEND chunk")
    width, height, depth, ctype, _comp, _filt, interlace = struct.unpack(">IIBBBBB", header)
    if depth != 8 or ctype not in (2, 6) or interlace != 0:
        raise ValueError("unsupported PNG format")
    try:
        raw = zlib.decompress(bytes(idat))
    except zlib.error as exc:
        raise ValueError(f"corrupt PNG image data: {exc}") from exc
    bpp = 4 if ctype == 6 else 3
    stride = width * bpp
    if len(raw) != height * (stride + 1):
        raise ValueError("PNG image data has the wrong size")
    canvas = Canvas(width, height)
    pixels = bytearray()
    prev = bytes(stride)
    for start in range(0, len(raw), stride + 1):
        line = _unfilter(raw[start], bytearray(raw[start + 1 : start + 1 + stride]), prev, bpp)
        prev = bytes(line)
        if bpp == 4:
            pixels += line
        else:
            for i in range(0, stride, 3):
                pixels += line[i : i + 3] + b"\xff"
    canvas._pixels = pixels
    return canvas