"""Tile linearization and 4bpp packing for Layer 3 tile definitions.

A tileset tile may be any multiple of 8 pixels in each direction. Each tile
is cut into 8x8 sub-tiles, read left to right then top to bottom, and every
sub-tile is stored as 8 rows of 8 pixels. Layer 3 uses 4 bits per pixel,
two pixels per byte with the first pixel in the low nibble.

Palette indices are reduced modulo 16. Tilesets are expected to give each
tile a contiguous block of 16 palette entries, so the block is recovered
later through the tile's palette offset attribute.
"""
from typing import List

from .errors import OddSampleCount, TiledFormatError, UnsupportedTileDimensions
from .model import SUBTILE_SIZE, Tileset


def check_tile_dimensions(tile_width: int, tile_height: int):
    if tile_width % SUBTILE_SIZE != 0 or tile_height % SUBTILE_SIZE != 0:
        raise UnsupportedTileDimensions(
            f"Tiles must be multiple of 8 pixels in width and height (got {tile_width}x{tile_height})")


def plan_subtile_offsets(tileset: Tileset, stride: int) -> List[int]:
    """Return the flat-buffer offset of every 8-pixel run, in output order.

    Order: tile, sub-tile row, sub-tile column, pixel row. Each offset is the
    first pixel of an 8-pixel horizontal run inside the source image.
    """
    check_tile_dimensions(tileset.tile_width, tileset.tile_height)
    sub_cols = tileset.tile_width // SUBTILE_SIZE
    sub_rows = tileset.tile_height // SUBTILE_SIZE

    if len(tileset.rects) < tileset.tile_count:
        raise TiledFormatError(
            f"Tileset '{tileset.name}' declares {tileset.tile_count} tiles but has {len(tileset.rects)} tile rectangles")

    offsets = []
    for rect in tileset.rects[:tileset.tile_count]:
        for sub_row in range(sub_rows):
            for sub_col in range(sub_cols):
                x = rect.x + sub_col * SUBTILE_SIZE
                for row in range(SUBTILE_SIZE):
                    y = rect.y + sub_row * SUBTILE_SIZE + row
                    offsets.append(y * stride + x)
    return offsets


def linearize(pixels: bytes, offsets: List[int]) -> bytearray:
    """Copy the 8-pixel run at each offset into one contiguous buffer."""
    out = bytearray(len(offsets) * SUBTILE_SIZE)
    pos = 0
    for offset in offsets:
        run = pixels[offset:offset + SUBTILE_SIZE]
        out[pos:pos + len(run)] = run
        pos += SUBTILE_SIZE
    return out


def normalize(samples) -> bytearray:
    return bytearray(s % 16 for s in samples)


def pack_nibbles(samples) -> bytes:
    """Pack (a, b) pairs as a | (b << 4)."""
    if len(samples) % 2:
        raise OddSampleCount(f"Cannot pack {len(samples)} samples into nibble pairs")
    low = samples[0::2]
    high = samples[1::2]
    return bytes((a & 0x0F) | ((b & 0x0F) << 4) for a, b in zip(low, high))


def pack_tiles(pixels: bytes, offsets: List[int], reporter=None) -> bytes:
    """Build the 4bpp tile bitmap from a flat pixel buffer and an offset plan."""
    tile_data = linearize(pixels, offsets)
    normalized = normalize(tile_data)
    if reporter is not None:
        reporter.report(f"normalizedTileData length: {len(normalized)}")
    return pack_nibbles(normalized)
