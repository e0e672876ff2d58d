"""PNG images: decoding into raw pixel rows and encoding them back."""

from __future__ import annotations

import enum
import struct
import zlib
from dataclasses import dataclass
from os import PathLike

from .token import CommandError

_SIGNATURE = b"\x89PNG\r\n\x1a\n"

_INFO_ERROR = "Error reading PNG information."
_IMAGE_ERROR = "Invalid PNG data."
_TAIL_ERROR = "Error reading PNG tail."

# Samples per pixel and the bit depths allowed for each PNG colour type.
_SAMPLES = {0: 1, 2: 3, 3: 1, 4: 2, 6: 4}
_ALLOWED_DEPTHS = {
    0: (1, 2, 4, 8, 16),
    2: (8, 16),
    3: (1, 2, 4, 8),
    4: (8, 16),
    6: (8, 16),
}
_KNOWN_CRITICAL = {b"IHDR", b"PLTE", b"IDAT", b"IEND"}

# Adam7 passes: starting column, starting row, column step, row step.
_ADAM7 = (
    (0, 0, 8, 8),
    (4, 0, 8, 8),
    (0, 4, 4, 8),
    (2, 0, 4, 4),
    (0, 2, 2, 4),
    (1, 0, 2, 2),
    (0, 1, 1, 2),
)
_MAX_DIMENSION = 0x7FFFFFFF


class ChannelOrder(enum.IntEnum):
    """Image channel orders."""

    R = 0x10B0
    A = 0x10B1
    RG = 0x10B2
    RA = 0x10B3
    RGB = 0x10B4
    RGBA = 0x10B5
    BGRA = 0x10B6
    ARGB = 0x10B7
    INTENSITY = 0x10B8
    LUMINANCE = 0x10B9


class ChannelType(enum.IntEnum):
    """Image channel data types."""

    SNORM_INT8 = 0x10D0
    SNORM_INT16 = 0x10D1
    UNORM_INT8 = 0x10D2
    UNORM_INT16 = 0x10D3
    UNORM_SHORT_565 = 0x10D4
    UNORM_SHORT_555 = 0x10D5
    UNORM_INT_101010 = 0x10D6
    SIGNED_INT8 = 0x10D7
    SIGNED_INT16 = 0x10D8
    SIGNED_INT32 = 0x10D9
    UNSIGNED_INT8 = 0x10DA
    UNSIGNED_INT16 = 0x10DB
    UNSIGNED_INT32 = 0x10DC
    HALF_FLOAT = 0x10DD
    FLOAT = 0x10DE


class ImageType(enum.IntEnum):
    """Memory object types for images."""

    BUFFER = 0x10F0
    IMAGE2D = 0x10F1
    IMAGE3D = 0x10F2
    IMAGE2D_ARRAY = 0x10F3
    IMAGE1D = 0x10F4
    IMAGE1D_ARRAY = 0x10F5
    IMAGE1D_BUFFER = 0x10F6


_PNG_COLOUR = {
    ChannelOrder.R: 0,
    ChannelOrder.RA: 4,
    ChannelOrder.RGB: 2,
    ChannelOrder.RGBA: 6,
}
_PNG_BITS = {ChannelType.UNSIGNED_INT8: 8, ChannelType.UNSIGNED_INT16: 16}
_ORDER_FROM_COLOUR = {colour: order for order, colour in _PNG_COLOUR.items()}
_TYPE_FROM_BITS = {bits: kind for kind, bits in _PNG_BITS.items()}


@dataclass(frozen=True)
class Image:
    """Raw image rows with their layout; 16-bit samples are big-endian."""

    width: int
    height: int
    channel_order: ChannelOrder
    channel_type: ChannelType
    data: bytes
    name: str = ""

    @property
    def image_type(self) -> ImageType:
        return ImageType.IMAGE1D if self.height == 1 else ImageType.IMAGE2D

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class _Header:
    width: int
    height: int
    bit_depth: int
    colour_type: int
    interlace: int

    @property
    def bits_per_pixel(self) -> int:
        return self.bit_depth * _SAMPLES[self.colour_type]

    @property
    def filter_step(self) -> int:
        return max(1, self.bits_per_pixel // 8)

    def row_bytes(self, width: int) -> int:
        return (width * self.bits_per_pixel + 7) // 8


def _is_critical(kind: bytes) -> bool:
    return not kind[0] & 0x20


class _ChunkReader:
    def __init__(self, data: bytes, offset: int) -> None:
        self._data = data
        self._offset = offset

    def _take(self, count: int, error: str) -> bytes:
        end = self._offset + count
        if end > len(self._data):
            raise CommandError(error)
        chunk = self._data[self._offset:end]
        self._offset = end
        return chunk

    def peek_kind(self) -> bytes:
        return self._data[self._offset + 4:self._offset + 8]

    def chunk(self, error: str) -> tuple[bytes, bytes]:
        length, kind = struct.unpack(">I4s", self._take(8, error))
        if length > _MAX_DIMENSION or not all(
            65 <= byte <= 90 or 97 <= byte <= 122 for byte in kind
        ):
            raise CommandError(error)
        body = self._take(length, error)
        (crc,) = struct.unpack(">I", self._take(4, error))
        if _is_critical(kind) and crc != zlib.crc32(kind + body):
            raise CommandError(error)
        return kind, body


def _read_info(reader: _ChunkReader) -> tuple[_Header, bytes]:
    kind, body = reader.chunk(_INFO_ERROR)
    if kind != b"IHDR" or len(body) != 13:
        raise CommandError(_INFO_ERROR)
    width, height, depth, colour, compression, filtering, interlace = struct.unpack(
        ">IIBBBBB", body
    )
    if (
        not 0 < width <= _MAX_DIMENSION
        or not 0 < height <= _MAX_DIMENSION
        or depth not in _ALLOWED_DEPTHS.get(colour, ())
        or compression != 0
        or filtering != 0
        or interlace not in (0, 1)
    ):
        raise CommandError(_INFO_ERROR)
    header = _Header(width, height, depth, colour, interlace)

    while True:
        kind, body = reader.chunk(_INFO_ERROR)
        if kind == b"IDAT":
            return header, body
        if kind in (b"IHDR", b"IEND"):
            raise CommandError(_INFO_ERROR)
        if _is_critical(kind) and kind not in _KNOWN_CRITICAL:
            raise CommandError(_INFO_ERROR)


def _unfilter(
    stream: bytes, offset: int, rows: int, row_bytes: int, step: int
) -> tuple[bytearray, int]:
    out = bytearray()
    prior = bytearray(row_bytes)
    for _ in range(rows):
        method = stream[offset]
        line = bytearray(stream[offset + 1:offset + 1 + row_bytes])
        offset += 1 + row_bytes
        if method == 1:
            for i in range(step, row_bytes):
                line[i] = (line[i] + line[i - step]) & 0xFF
        elif method == 2:
            line = bytearray((a + b) & 0xFF for a, b in zip(line, prior))
        elif method == 3:
            for i in range(row_bytes):
                left = line[i - step] if i >= step else 0
                line[i] = (line[i] + ((left + prior[i]) >> 1)) & 0xFF
        elif method == 4:
            for i in range(row_bytes):
                left = line[i - step] if i >= step else 0
                upper_left = prior[i - step] if i >= step else 0
                up = prior[i]
                estimate = left + up - upper_left
                pa = abs(estimate - left)
                pb = abs(estimate - up)
                pc = abs(estimate - upper_left)
                if pa <= pb and pa <= pc:
                    predictor = left
                elif pb <= pc:
                    predictor = up
                else:
                    predictor = upper_left
                line[i] = (line[i] + predictor) & 0xFF
        elif method != 0:
            raise CommandError(_IMAGE_ERROR)
        out += line
        prior = line
    return out, offset


def _passes(header: _Header):
    """Yield (x0, y0, dx, dy, width, height) for each non-empty pass."""
    if header.interlace == 0:
        yield 0, 0, 1, 1, header.width, header.height
        return
    for x0, y0, dx, dy in _ADAM7:
        width = (header.width - x0 + dx - 1) // dx
        height = (header.height - y0 + dy - 1) // dy
        if width > 0 and height > 0:
            yield x0, y0, dx, dy, width, height


def _read_image(reader: _ChunkReader, header: _Header, first: bytes) -> bytes:
    parts = [first]
    while reader.peek_kind() == b"IDAT":
        _, body = reader.chunk(_IMAGE_ERROR)
        parts.append(body)

    try:
        stream = zlib.decompressobj().decompress(b"".join(parts))
    except zlib.error as exc:
        raise CommandError(_IMAGE_ERROR) from exc

    passes = list(_passes(header))
    expected = sum(h * (1 + header.row_bytes(w)) for _, _, _, _, w, h in passes)
    if len(stream) < expected:
        raise CommandError(_IMAGE_ERROR)

    if header.interlace == 0:
        rows, _ = _unfilter(
            stream, 0, header.height, header.row_bytes(header.width), header.filter_step
        )
        return bytes(rows)

    row_bytes = header.row_bytes(header.width)
    pixel = header.bits_per_pixel // 8
    image = bytearray(row_bytes * header.height)
    offset = 0
    for x0, y0, dx, dy, width, height in passes:
        pass_row_bytes = header.row_bytes(width)
        rows, offset = _unfilter(stream, offset, height, pass_row_bytes, header.filter_step)
        # Sub-byte depths are rejected once the image is read; skip placement.
        if header.bits_per_pixel % 8:
            continue
        for r in range(height):
            source = rows[r * pass_row_bytes:(r + 1) * pass_row_bytes]
            row_start = (y0 + r * dy) * row_bytes
            for c in range(width):
                target = row_start + (x0 + c * dx) * pixel
                image[target:target + pixel] = source[c * pixel:(c + 1) * pixel]
    return bytes(image)


def _read_end(reader: _ChunkReader) -> None:
    while True:
        kind, _ = reader.chunk(_TAIL_ERROR)
        if kind == b"IEND":
            return
        if kind in (b"IHDR", b"IDAT"):
            raise CommandError(_TAIL_ERROR)
        if _is_critical(kind) and kind not in _KNOWN_CRITICAL:
            raise CommandError(_TAIL_ERROR)


def load_png(data: bytes, filename: str = "") -> Image:
    """Decode PNG bytes into an image; ``filename`` becomes its name."""
    data = bytes(data)
    if data[:8] != _SIGNATURE:
        raise CommandError("PNG signature check failed.")

    reader = _ChunkReader(data, len(_SIGNATURE))
    header, first_idat = _read_info(reader)
    pixels = _read_image(reader, header, first_idat)
    _read_end(reader)

    channel_type = _TYPE_FROM_BITS.get(header.bit_depth)
    if channel_type is None:
        raise CommandError("Unsupported PNG bit depth.")
    channel_order = _ORDER_FROM_COLOUR.get(header.colour_type)
    if channel_order is None:
        raise CommandError("Unsupported PNG colour type")

    return Image(
        width=header.width,
        height=header.height,
        channel_order=channel_order,
        channel_type=channel_type,
        data=pixels,
        name=filename,
    )


def _chunk(kind: bytes, body: bytes) -> bytes:
    return struct.pack(">I", len(body)) + kind + body + struct.pack(
        ">I", zlib.crc32(kind + body)
    )


def encode_png(image: Image) -> bytes:
    """Encode an image as PNG bytes."""
    colour = _PNG_COLOUR.get(image.channel_order)
    if colour is None:
        raise CommandError("Unsupported PNG channel format")
    bits = _PNG_BITS.get(image.channel_type)
    if bits is None:
        raise CommandError("Unsupported PNG image bit depth")
    if not 0 < image.width <= _MAX_DIMENSION or not 0 < image.height <= _MAX_DIMENSION:
        raise CommandError(_IMAGE_ERROR)

    stride = (image.width * _SAMPLES[colour] * bits + 7) // 8
    if stride * image.height > len(image.data):
        raise CommandError("Bounds check error: insufficient data for PNG write.")

    data = bytes(image.data)
    raw = b"".join(
        b"\x00" + data[row * stride:(row + 1) * stride] for row in range(image.height)
    )
    header = struct.pack(">IIBBBBB", image.width, image.height, bits, colour, 0, 0, 0)
    return b"".join(
        (
            _SIGNATURE,
            _chunk(b"IHDR", header),
            _chunk(b"IDAT", zlib.compress(raw)),
            _chunk(b"IEND", b""),
        )
    )


def write_png(image: Image, path: str | PathLike) -> None:
    """Write an image to ``path`` as a PNG file."""
    try:
        handle = open(path, "wb")
    except OSError as exc:
        raise CommandError("Cannot open file for writing.") from exc
    with handle:
        handle.write(encode_png(image))