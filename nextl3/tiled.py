"""Tiled map and tileset loader.

Reads Tiled XML (.tmx / .tsx) and JSON (.tmj / .tsj / .json) files into the
exporter's data model.

Tile layer cells hold global tile ids (GIDs). The top bits of a GID are
flip flags:
- bit 31: flipped horizontally
- bit 30: flipped vertically
- bit 29: flipped anti-diagonally
- bit 28: rotated 120 degrees (hexagonal maps only, ignored)

The remaining bits minus the owning tileset's firstgid give the tile id
local to that tileset. GID 0 means the cell is empty.

References:
- https://doc.mapeditor.org/en/stable/reference/tmx-map-format/
- https://doc.mapeditor.org/en/stable/reference/json-map-format/
"""
import base64
import gzip
import json
import struct
import xml.etree.ElementTree as ET
import zlib
from pathlib import Path
from typing import List, Optional, Tuple

from PIL import Image

from .errors import TiledFormatError
from .model import EMPTY_CELL, Cell, Layer, TiledMap, TileGrid, TileRect, Tileset
from .tiles import check_tile_dimensions


FLIPPED_HORIZONTALLY = 0x80000000
FLIPPED_VERTICALLY = 0x40000000
FLIPPED_DIAGONALLY = 0x20000000
ROTATED_HEXAGONAL_120 = 0x10000000
GID_MASK = ~(FLIPPED_HORIZONTALLY | FLIPPED_VERTICALLY | FLIPPED_DIAGONALLY
             | ROTATED_HEXAGONAL_120) & 0xFFFFFFFF

LAYER_TAGS = {'layer': 'tilelayer', 'objectgroup': 'objectgroup',
              'imagelayer': 'imagelayer', 'group': 'group'}

JSON_SUFFIXES = {'.tmj', '.tsj', '.json'}


def decode_gid(gid: int, firstgids: List[int]) -> Cell:
    """Split a raw GID into a Cell with a tileset-local tile id."""
    tile_gid = gid & GID_MASK
    if tile_gid == 0:
        return EMPTY_CELL
    firstgid = max((f for f in firstgids if f <= tile_gid), default=1)
    return Cell(
        tile_id=tile_gid - firstgid,
        flip_h=bool(gid & FLIPPED_HORIZONTALLY),
        flip_v=bool(gid & FLIPPED_VERTICALLY),
        flip_d=bool(gid & FLIPPED_DIAGONALLY),
    )


def decode_layer_data(text: str, encoding: Optional[str], compression: Optional[str]) -> List[int]:
    """Decode CSV or base64 layer data into a list of raw GIDs."""
    if encoding == 'csv':
        try:
            return [int(v) for v in text.replace('\n', '').split(',') if v.strip()]
        except ValueError as e:
            raise TiledFormatError(f"Invalid CSV layer data: {e}")
    if encoding != 'base64':
        raise TiledFormatError(f"Unsupported layer encoding: {encoding}")

    try:
        raw = base64.b64decode(text.strip())
    except ValueError as e:
        raise TiledFormatError(f"Invalid base64 layer data: {e}")
    try:
        if compression == 'zlib':
            raw = zlib.decompress(raw)
        elif compression == 'gzip':
            raw = gzip.decompress(raw)
        elif compression:
            raise TiledFormatError(f"Unsupported layer compression: {compression}")
    except (zlib.error, OSError) as e:
        raise TiledFormatError(f"Corrupt {compression} layer data: {e}")
    if len(raw) % 4:
        raise TiledFormatError(f"Layer data length {len(raw)} is not a multiple of 4")
    return list(struct.unpack(f'<{len(raw) // 4}I', raw))


def build_grid(width: int, height: int, gids: List[int], firstgids: List[int]) -> TileGrid:
    if len(gids) != width * height:
        raise TiledFormatError(f"Layer has {len(gids)} cells, expected {width * height}")
    return TileGrid(width, height, [decode_gid(g, firstgids) for g in gids])


def image_size(path: Path) -> Tuple[int, int]:
    try:
        with Image.open(path) as img:
            return img.size
    except (OSError, ValueError) as e:
        raise TiledFormatError(f"Cannot read tileset image {path}: {e}")


def _grid_tileset(name: str, tile_width: int, tile_height: int, image_path: Path,
                  image_width: Optional[int], image_height: Optional[int],
                  tile_count: Optional[int], columns: Optional[int],
                  spacing: int = 0, margin: int = 0) -> Tileset:
    """Build a Tileset whose tiles are laid out on a grid in one image."""
    if tile_width <= 0 or tile_height <= 0:
        raise TiledFormatError(f"Tileset '{name}' has invalid tile size {tile_width}x{tile_height}")
    check_tile_dimensions(tile_width, tile_height)
    if not image_width or not image_height:
        image_width, image_height = image_size(image_path)
    if not columns:
        columns = (image_width - 2 * margin + spacing) // (tile_width + spacing)
    if tile_count is None:
        rows = (image_height - 2 * margin + spacing) // (tile_height + spacing)
        tile_count = columns * rows

    rects = []
    for i in range(tile_count):
        x = margin + (i % columns) * (tile_width + spacing)
        y = margin + (i // columns) * (tile_height + spacing)
        rects.append(TileRect(x, y, tile_width, tile_height))

    return Tileset(name=name, tile_width=tile_width, tile_height=tile_height,
                   image_width=image_width, image_height=image_height,
                   tile_count=tile_count, rects=rects, image_path=image_path)


def _int_attr(el, key: str, default: Optional[int] = None) -> Optional[int]:
    value = el.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise TiledFormatError(f"<{el.tag}> attribute {key}={value!r} is not an integer")


def _parse_xml(path: Path):
    try:
        return ET.parse(path).getroot()
    except ET.ParseError as e:
        raise TiledFormatError(f"Cannot parse {path}: {e}")
    except OSError as e:
        raise TiledFormatError(f"Cannot read {path}: {e}")


def _load_json(path: Path) -> dict:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise TiledFormatError(f"Cannot parse {path}: {e}")
    except OSError as e:
        raise TiledFormatError(f"Cannot read {path}: {e}")


# ----------------------------
# XML (.tmx / .tsx)
# ----------------------------

def _tileset_from_xml(el, base_dir: Path) -> Tileset:
    name = el.get('name', '')
    image = el.find('image')
    if image is None or not image.get('source'):
        raise TiledFormatError(f"Tileset '{name}' is an image collection; a single tileset image is required")
    return _grid_tileset(
        name,
        _int_attr(el, 'tilewidth', 0),
        _int_attr(el, 'tileheight', 0),
        base_dir / image.get('source'),
        _int_attr(image, 'width'),
        _int_attr(image, 'height'),
        _int_attr(el, 'tilecount'),
        _int_attr(el, 'columns'),
        _int_attr(el, 'spacing', 0),
        _int_attr(el, 'margin', 0),
    )


def _layers_from_xml(root, firstgids: List[int]) -> List[Layer]:
    layers = []
    for child in root:
        kind = LAYER_TAGS.get(child.tag)
        if kind is None:
            continue
        name = child.get('name', '')
        if kind != 'tilelayer':
            layers.append(Layer(name, kind))
            continue

        width = _int_attr(child, 'width', 0)
        height = _int_attr(child, 'height', 0)
        data = child.find('data')
        if data is None:
            raise TiledFormatError(f"Layer '{name}' has no data")
        if data.find('chunk') is not None:
            raise TiledFormatError("Infinite maps are not supported")
        encoding = data.get('encoding')
        if encoding is None:
            gids = [_int_attr(t, 'gid', 0) for t in data.findall('tile')]
        else:
            gids = decode_layer_data(data.text or '', encoding, data.get('compression'))
        layers.append(Layer(name, kind, build_grid(width, height, gids, firstgids)))
    return layers


def _load_tmx(path: Path) -> TiledMap:
    root = _parse_xml(path)
    if root.tag != 'map':
        raise TiledFormatError(f"{path} is not a Tiled map")
    if root.get('infinite') == '1':
        raise TiledFormatError("Infinite maps are not supported")
    firstgids = [_int_attr(ts, 'firstgid', 1) for ts in root.findall('tileset')]
    return TiledMap(
        width=_int_attr(root, 'width', 0),
        height=_int_attr(root, 'height', 0),
        tile_width=_int_attr(root, 'tilewidth', 0),
        tile_height=_int_attr(root, 'tileheight', 0),
        layers=_layers_from_xml(root, firstgids),
    )


# ----------------------------
# JSON (.tmj / .tsj)
# ----------------------------

def _tileset_from_json(obj: dict, base_dir: Path) -> Tileset:
    name = obj.get('name', '')
    if not obj.get('image'):
        raise TiledFormatError(f"Tileset '{name}' is an image collection; a single tileset image is required")
    return _grid_tileset(
        name,
        obj.get('tilewidth', 0),
        obj.get('tileheight', 0),
        base_dir / obj['image'],
        obj.get('imagewidth'),
        obj.get('imageheight'),
        obj.get('tilecount'),
        obj.get('columns'),
        obj.get('spacing', 0),
        obj.get('margin', 0),
    )


def _layers_from_json(objs: List[dict], firstgids: List[int]) -> List[Layer]:
    layers = []
    for obj in objs:
        kind = obj.get('type', '')
        name = obj.get('name', '')
        if kind != 'tilelayer':
            layers.append(Layer(name, kind))
            continue
        if 'chunks' in obj:
            raise TiledFormatError("Infinite maps are not supported")
        data = obj.get('data', [])
        if isinstance(data, str):
            gids = decode_layer_data(data, obj.get('encoding', 'base64'), obj.get('compression') or None)
        else:
            gids = [int(g) for g in data]
        layers.append(Layer(name, kind, build_grid(obj.get('width', 0), obj.get('height', 0), gids, firstgids)))
    return layers


def _load_tmj(path: Path) -> TiledMap:
    obj = _load_json(path)
    if obj.get('type', 'map') != 'map':
        raise TiledFormatError(f"{path} is not a Tiled map")
    if obj.get('infinite'):
        raise TiledFormatError("Infinite maps are not supported")
    firstgids = [ts.get('firstgid', 1) for ts in obj.get('tilesets', [])]
    return TiledMap(
        width=obj.get('width', 0),
        height=obj.get('height', 0),
        tile_width=obj.get('tilewidth', 0),
        tile_height=obj.get('tileheight', 0),
        layers=_layers_from_json(obj.get('layers', []), firstgids),
    )


# ----------------------------
# Public entry points
# ----------------------------

def load_map(path) -> TiledMap:
    """Load a .tmx or .tmj map."""
    path = Path(path)
    if path.suffix.lower() in JSON_SUFFIXES:
        return _load_tmj(path)
    return _load_tmx(path)


def load_tileset(path) -> Tileset:
    """Load an external .tsx or .tsj tileset."""
    path = Path(path)
    if path.suffix.lower() in JSON_SUFFIXES:
        return _tileset_from_json(_load_json(path), path.parent)
    root = _parse_xml(path)
    if root.tag != 'tileset':
        raise TiledFormatError(f"{path} is not a Tiled tileset")
    return _tileset_from_xml(root, path.parent)


def load_map_tileset(path) -> Tileset:
    """Load the first tileset referenced by a map, following external sources."""
    path = Path(path)
    if path.suffix.lower() in JSON_SUFFIXES:
        entries = _load_json(path).get('tilesets', [])
        if not entries:
            raise TiledFormatError(f"Map {path} has no tilesets")
        first = entries[0]
        if 'source' in first:
            return load_tileset(path.parent / first['source'])
        return _tileset_from_json(first, path.parent)

    root = _parse_xml(path)
    first = root.find('tileset')
    if first is None:
        raise TiledFormatError(f"Map {path} has no tilesets")
    if first.get('source'):
        return load_tileset(path.parent / first.get('source'))
    return _tileset_from_xml(first, path.parent)


def load_any_tileset(path) -> Tileset:
    """Load a tileset from a tileset file or from the first tileset of a map."""
    path = Path(path)
    if path.suffix.lower() in ('.tsx', '.tsj'):
        return load_tileset(path)
    if path.suffix.lower() == '.json':
        obj = _load_json(path)
        if obj.get('type') == 'tileset':
            return _tileset_from_json(obj, path.parent)
    return load_map_tileset(path)
