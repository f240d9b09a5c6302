"""PLTE to ZX Next palette conversion.

The Next palette register takes one byte per color: RRRGGGBB. Red keeps its
top 3 bits in place, green's top 3 bits move to bits 4-2 and blue's top 2
bits to bits 1-0.
"""
from typing import Optional

from .errors import MissingPalette, TruncatedPaletteEntry
from .reporting import NullReporter


def rgb_to_next(r: int, g: int, b: int) -> int:
    return (r & 0b11100000) | ((g & 0b11100000) >> 3) | ((b & 0b11000000) >> 6)


def quantize_palette(plte: Optional[bytes], reporter=None) -> bytes:
    """Convert a PLTE payload (RGB triples) into one Next palette byte per entry."""
    reporter = reporter or NullReporter()
    if plte is None:
        raise MissingPalette("Tileset image has no palette (PLTE chunk)")
    if len(plte) % 3 != 0:
        raise TruncatedPaletteEntry(
            f"Palette length {len(plte)} is not a multiple of 3")

    out = bytearray(len(plte) // 3)
    for i in range(len(out)):
        r, g, b = plte[i * 3:i * 3 + 3]
        out[i] = rgb_to_next(r, g, b)
        reporter.report(f"palette entry {i}: {r}, {g}, {b} -> ${out[i]:02X}")
    return bytes(out)
