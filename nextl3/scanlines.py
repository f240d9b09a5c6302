"""IDAT inflation and scanline de-filtering.

After inflating, a PNG stream holds one filter-type byte in front of every
scanline. Only filter type 0 (None) is understood: the filter byte is
dropped and the remaining bytes are taken as 8-bit palette indices.

Scanlines written with any other filter type are NOT reconstructed; their
bytes pass through as-is and the resulting pixels are wrong. Export tools
must therefore save tileset images without PNG filtering.
"""
import zlib

from .errors import DecompressionError, PixelCountMismatch
from .reporting import NullReporter


def inflate(compressed: bytes) -> bytes:
    try:
        return zlib.decompress(compressed)
    except zlib.error as e:
        raise DecompressionError(f"Corrupt image data stream: {e}")


def strip_filter_bytes(raw: bytes, image_width: int) -> bytes:
    """Drop every byte at an index divisible by image_width + 1."""
    stride = image_width + 1
    out = bytearray()
    for row_start in range(0, len(raw), stride):
        out += raw[row_start + 1:row_start + stride]
    return bytes(out)


def decode_pixels(compressed: bytes, image_width: int, image_height: int, reporter=None) -> bytes:
    """Inflate an IDAT stream into a flat buffer of image_width * image_height indices."""
    reporter = reporter or NullReporter()
    raw = inflate(compressed)
    reporter.report(f"deflatedData size: {len(raw)}")

    pixels = strip_filter_bytes(raw, image_width)
    expected = image_width * image_height
    reporter.report(f"number of pixels {len(pixels)}")
    reporter.report(f"difference: {len(pixels) - expected}")
    if len(pixels) != expected:
        raise PixelCountMismatch(expected, len(pixels))
    reporter.report(f"first 32 pixels: {list(pixels[:32])}")
    return pixels
