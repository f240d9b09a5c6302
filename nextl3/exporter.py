"""Export pipelines and output sinks.

Tileset export: PNG -> chunks -> inflated pixels -> sub-tile plan ->
4bpp tile bitmap, plus PLTE -> Next palette. Map export: first tile layer ->
metatile records -> JSON. Everything is computed before the sink is
touched, so a failing export writes nothing.
"""
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from . import metatiles, palette, png_chunks, scanlines, tiles
from .errors import NoTileLayers, UnsupportedTileDimensions
from .model import SUBTILE_SIZE, TiledMap, Tileset
from .reporting import NullReporter


PALETTE_SUFFIX = '.pal'


@dataclass
class TilesetExport:
    tile_data: bytes
    palette: bytes


def export_tileset(tileset: Tileset, reporter=None) -> TilesetExport:
    """Convert a tileset's image into Layer 3 tile and palette bytes."""
    reporter = reporter or NullReporter()
    # reject before touching the image
    tiles.check_tile_dimensions(tileset.tile_width, tileset.tile_height)

    reporter.report(f"tileCount: {tileset.tile_count}")
    reporter.report(f"tilesetWidth: {tileset.image_width}")
    reporter.report(f"tilesetHeight: {tileset.image_height}")
    reporter.report(f"expectedNumberOfPixels: {tileset.image_width * tileset.image_height}")

    offsets = tiles.plan_subtile_offsets(tileset, tileset.image_width)
    reporter.report(f"offsets: {offsets[:32]}")

    image_bytes = tileset.read_image()
    reporter.report(f"image file length: {len(image_bytes)}")
    container = png_chunks.extract_chunks(image_bytes)
    reporter.report(f"pngChunks: {container.names}")
    report_header(container.header, tileset, reporter)

    pixels = scanlines.decode_pixels(
        container.image_data, tileset.image_width, tileset.image_height, reporter)
    tile_data = tiles.pack_tiles(pixels, offsets, reporter)
    pal = palette.quantize_palette(container.palette, reporter)
    return TilesetExport(tile_data, pal)


def report_header(header, tileset: Tileset, reporter):
    """Report IHDR fields and any disagreement with the tileset's image size."""
    if header is None:
        reporter.report("IHDR: missing")
        return
    reporter.report(f"IHDR: {header.width}x{header.height} bitDepth={header.bit_depth} "
                    f"colorType={header.color_type}")
    if (header.width, header.height) != (tileset.image_width, tileset.image_height):
        reporter.report(f"IHDR size {header.width}x{header.height} differs from tileset image size "
                        f"{tileset.image_width}x{tileset.image_height}")


def metatile_factor(tiled_map: TiledMap) -> int:
    if tiled_map.tile_width % SUBTILE_SIZE != 0:
        raise UnsupportedTileDimensions(
            f"Map tile width {tiled_map.tile_width} is not a multiple of 8 pixels")
    return tiled_map.tile_width // SUBTILE_SIZE


def export_map(tiled_map: TiledMap, reporter=None) -> List[metatiles.MetaTileRecord]:
    """Expand the first tile layer of a map into metatile records.

    Only the first layer is exported; there is no rule for composing several
    layers into one Layer 3 tilemap.
    """
    reporter = reporter or NullReporter()
    reporter.report(f"Map height: {tiled_map.height}")
    reporter.report(f"Map width: {tiled_map.width}")

    if tiled_map.layer_count == 0:
        raise NoTileLayers("No layers to export")

    factor = metatile_factor(tiled_map)
    reporter.report(f"metaTileFactor: {factor}")

    first, extra = tiled_map.layers[0], tiled_map.layers[1:]
    for layer in extra:
        reporter.report(f"Ignoring layer '{layer.name}': only the first layer is exported")
    if not first.is_tile_layer:
        raise NoTileLayers("No tile layers found.")

    return metatiles.resolve_metatiles(first.grid, factor, reporter)


# ----------------------------
# Sinks
# ----------------------------

def write_temp(path: Path, data: bytes) -> str:
    """Write data to a temporary file beside path and return its name."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix='.tmp')
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
    except BaseException:
        os.unlink(tmp)
        raise
    return tmp


def write_atomic(*outputs):
    """Write (path, data) pairs. No path is replaced until every temp file is written."""
    pending = []
    try:
        for path, data in outputs:
            pending.append((write_temp(path, data), path))
    except BaseException:
        for tmp, _ in pending:
            os.unlink(tmp)
        raise
    for tmp, path in pending:
        os.replace(tmp, path)


class FileSink:
    """Writes outputs next to a tile bitmap path: <bin>, <bin>.pal, and a metatile JSON."""

    def __init__(self, tiles_path=None, metatiles_path=None):
        self.tiles_path = Path(tiles_path) if tiles_path else None
        self.metatiles_path = Path(metatiles_path) if metatiles_path else None

    @property
    def palette_path(self) -> Optional[Path]:
        if self.tiles_path is None:
            return None
        return self.tiles_path.with_name(self.tiles_path.name + PALETTE_SUFFIX)

    def write_tileset(self, result: TilesetExport):
        if self.tiles_path is None:
            raise ValueError("FileSink has no tile data output path")
        write_atomic((self.tiles_path, result.tile_data), (self.palette_path, result.palette))

    def write_metatiles(self, text: str):
        if self.metatiles_path is None:
            raise ValueError("FileSink has no metatile output path")
        write_atomic((self.metatiles_path, text.encode('utf-8')))


class MemorySink:
    def __init__(self):
        self.outputs: Dict[str, bytes] = {}

    def write_tileset(self, result: TilesetExport):
        self.outputs['tiles'] = result.tile_data
        self.outputs['palette'] = result.palette

    def write_metatiles(self, text: str):
        self.outputs['metatiles'] = text.encode('utf-8')


def is_up_to_date(outputs: List[Path], sources: List[Path]) -> bool:
    """True when every output exists and is newer than every source."""
    try:
        newest_src = max(p.stat().st_mtime for p in sources if p is not None)
        oldest_out = min(p.stat().st_mtime for p in outputs)
    except (OSError, ValueError):
        return False
    return oldest_out >= newest_src


def write_tileset(tileset: Tileset, sink, reporter=None) -> TilesetExport:
    result = export_tileset(tileset, reporter)
    sink.write_tileset(result)
    return result


def write_map(tiled_map: TiledMap, sink, reporter=None) -> List[metatiles.MetaTileRecord]:
    records = export_map(tiled_map, reporter)
    sink.write_metatiles(metatiles.records_to_json(records))
    return records


def export_tileset_file(tileset: Tileset, out_path, source_path=None, force: bool = False,
                        reporter=None) -> Optional[TilesetExport]:
    """Export a tileset to <out_path> and <out_path>.pal.

    Returns None without writing when both outputs are newer than the
    tileset image and the tileset description, unless force is set.
    """
    tiles.check_tile_dimensions(tileset.tile_width, tileset.tile_height)
    sink = FileSink(out_path)
    sources = [tileset.image_path, Path(source_path) if source_path else None]
    if not force and tileset.image_path is not None and \
            is_up_to_date([sink.tiles_path, sink.palette_path], sources):
        return None
    return write_tileset(tileset, sink, reporter)
