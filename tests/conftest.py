import struct
import zlib

import pytest


def _chunk(name: bytes, data: bytes) -> bytes:
    crc = struct.pack('>I', zlib.crc32(name + data) & 0xFFFFFFFF)
    return struct.pack('>I', len(data)) + name + data + crc


def build_png(width, height, pixels, palette=None, filter_byte=0, idat_parts=1, extra_chunks=()):
    """Build an 8-bit indexed PNG with unfiltered scanlines.

    pixels is a flat row-major list of palette indices. palette is a list of
    (r, g, b) tuples; None omits the PLTE chunk.
    """
    raw = bytearray()
    for y in range(height):
        raw.append(filter_byte)
        raw.extend(pixels[y * width:(y + 1) * width])
    compressed = zlib.compress(bytes(raw))

    out = b'\x89PNG\r\n\x1a\n'
    out += _chunk(b'IHDR', struct.pack('>IIBBBBB', width, height, 8, 3, 0, 0, 0))
    if palette is not None:
        out += _chunk(b'PLTE', b''.join(bytes(rgb) for rgb in palette))
    for name, data in extra_chunks:
        out += _chunk(name, data)
    step = -(-len(compressed) // idat_parts)
    for i in range(0, len(compressed), step):
        out += _chunk(b'IDAT', compressed[i:i + step])
    out += _chunk(b'IEND', b'')
    return out


GREYS = [(i * 16, i * 16, i * 16) for i in range(16)]


@pytest.fixture
def png_chunk():
    return _chunk


@pytest.fixture
def make_png():
    return build_png


@pytest.fixture
def tileset_files(tmp_path):
    """Write a 16x16 tileset image (value 5 everywhere) plus .tsx and .tmx files."""
    def _write(tile_width=16, tile_height=16, image_width=16, image_height=16,
               pixels=None, palette=GREYS, layers_xml=None):
        if pixels is None:
            pixels = [5] * (image_width * image_height)
        image = tmp_path / 'tiles.png'
        image.write_bytes(build_png(image_width, image_height, pixels, palette))
        columns = image_width // tile_width if tile_width else 0
        count = columns * (image_height // tile_height) if tile_height else 0
        tsx = tmp_path / 'tiles.tsx'
        tsx.write_text(
            f'<?xml version="1.0" encoding="UTF-8"?>\n'
            f'<tileset version="1.10" name="tiles" tilewidth="{tile_width}" tileheight="{tile_height}" '
            f'tilecount="{count}" columns="{columns}">\n'
            f' <image source="tiles.png" width="{image_width}" height="{image_height}"/>\n'
            f'</tileset>\n')
        if layers_xml is None:
            layers_xml = (
                '<layer id="1" name="ground" width="2" height="1">\n'
                '  <data encoding="csv">1,0</data>\n'
                ' </layer>\n')
        tmx = tmp_path / 'level.tmx'
        tmx.write_text(
            f'<?xml version="1.0" encoding="UTF-8"?>\n'
            f'<map version="1.10" orientation="orthogonal" width="2" height="1" '
            f'tilewidth="{tile_width}" tileheight="{tile_height}" infinite="0">\n'
            f' <tileset firstgid="1" source="tiles.tsx"/>\n'
            f' {layers_xml}'
            f'</map>\n')
        return {'image': image, 'tsx': tsx, 'tmx': tmx}
    return _write
