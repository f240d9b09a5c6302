import base64
import gzip
import json
import struct
import zlib

import pytest
from PIL import Image

from nextl3.errors import TiledFormatError, UnsupportedTileDimensions
from nextl3.model import Cell
from nextl3.tiled import (
    FLIPPED_DIAGONALLY,
    FLIPPED_HORIZONTALLY,
    FLIPPED_VERTICALLY,
    decode_gid,
    decode_layer_data,
    load_any_tileset,
    load_map,
    load_map_tileset,
    load_tileset,
)


def _tmx(tmp_path, body, width=2, height=1, tile=16, extra=''):
    path = tmp_path / 'm.tmx'
    path.write_text(
        f'<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<map version="1.10" width="{width}" height="{height}" tilewidth="{tile}" '
        f'tileheight="{tile}" infinite="0"{extra}>\n{body}</map>\n')
    return path


class TestDecodeGid:
    def test_empty(self) -> None:
        assert decode_gid(0, [1]) == Cell()

    def test_local_id(self) -> None:
        assert decode_gid(1, [1]).tile_id == 0
        assert decode_gid(5, [1]).tile_id == 4

    def test_flip_bits(self) -> None:
        cell = decode_gid(3 | FLIPPED_HORIZONTALLY | FLIPPED_DIAGONALLY, [1])
        assert cell == Cell(2, flip_h=True, flip_v=False, flip_d=True)

    def test_flipped_empty_is_empty(self) -> None:
        assert decode_gid(FLIPPED_VERTICALLY, [1]).tile_id is None

    def test_second_tileset(self) -> None:
        assert decode_gid(105, [1, 100]).tile_id == 5


class TestDecodeLayerData:
    GIDS = [1, 0, 2 | FLIPPED_VERTICALLY, 4]

    def _raw(self):
        return struct.pack('<4I', *self.GIDS)

    def test_csv(self) -> None:
        assert decode_layer_data('\n1,0,\n1073741826,4\n', 'csv', None) == self.GIDS

    def test_base64(self) -> None:
        text = base64.b64encode(self._raw()).decode()
        assert decode_layer_data(text, 'base64', None) == self.GIDS

    def test_base64_zlib(self) -> None:
        text = base64.b64encode(zlib.compress(self._raw())).decode()
        assert decode_layer_data(f'\n   {text}\n  ', 'base64', 'zlib') == self.GIDS

    def test_base64_gzip(self) -> None:
        text = base64.b64encode(gzip.compress(self._raw())).decode()
        assert decode_layer_data(text, 'base64', 'gzip') == self.GIDS

    def test_unsupported_compression(self) -> None:
        with pytest.raises(TiledFormatError):
            decode_layer_data(base64.b64encode(self._raw()).decode(), 'base64', 'zstd')

    def test_unsupported_encoding(self) -> None:
        with pytest.raises(TiledFormatError):
            decode_layer_data('1,2', 'hex', None)


class TestLoadMap:
    def test_tmx_layers(self, tmp_path) -> None:
        path = _tmx(tmp_path,
                    ' <tileset firstgid="1" source="t.tsx"/>\n'
                    ' <layer id="1" name="ground" width="2" height="1">\n'
                    '  <data encoding="csv">2147483649,0</data>\n'
                    ' </layer>\n'
                    ' <objectgroup id="2" name="things"/>\n')
        tiled_map = load_map(path)
        assert (tiled_map.width, tiled_map.height, tiled_map.tile_width) == (2, 1, 16)
        assert [layer.kind for layer in tiled_map.layers] == ['tilelayer', 'objectgroup']
        grid = tiled_map.layers[0].grid
        assert grid.cell_at(0, 0) == Cell(0, flip_h=True)
        assert grid.cell_at(1, 0).tile_id is None

    def test_xml_tile_elements(self, tmp_path) -> None:
        path = _tmx(tmp_path,
                    ' <tileset firstgid="1" source="t.tsx"/>\n'
                    ' <layer id="1" name="l" width="2" height="1">\n'
                    '  <data><tile gid="3"/><tile/></data>\n'
                    ' </layer>\n')
        grid = load_map(path).layers[0].grid
        assert grid.cells == [Cell(2), Cell()]

    def test_wrong_cell_count(self, tmp_path) -> None:
        path = _tmx(tmp_path,
                    ' <layer id="1" name="l" width="2" height="1">\n'
                    '  <data encoding="csv">1,1,1</data>\n'
                    ' </layer>\n')
        with pytest.raises(TiledFormatError):
            load_map(path)

    def test_infinite_rejected(self, tmp_path) -> None:
        path = tmp_path / 'inf.tmx'
        path.write_text('<map width="2" height="1" tilewidth="8" tileheight="8" infinite="1"></map>')
        with pytest.raises(TiledFormatError):
            load_map(path)

    def test_broken_xml(self, tmp_path) -> None:
        path = tmp_path / 'bad.tmx'
        path.write_text('<map')
        with pytest.raises(TiledFormatError):
            load_map(path)

    def test_tmj(self, tmp_path) -> None:
        path = tmp_path / 'm.tmj'
        path.write_text(json.dumps({
            'type': 'map', 'width': 2, 'height': 1, 'tilewidth': 8, 'tileheight': 8,
            'infinite': False,
            'tilesets': [{'firstgid': 1, 'source': 't.tsx'}],
            'layers': [
                {'type': 'tilelayer', 'name': 'ground', 'width': 2, 'height': 1,
                 'data': [1 | FLIPPED_DIAGONALLY, 2]},
                {'type': 'imagelayer', 'name': 'sky'},
            ],
        }))
        tiled_map = load_map(path)
        assert tiled_map.layers[0].grid.cells == [Cell(0, flip_d=True), Cell(1)]
        assert not tiled_map.layers[1].is_tile_layer


class TestLoadTileset:
    def test_tsx(self, tileset_files) -> None:
        files = tileset_files(tile_width=8, tile_height=8, image_width=16, image_height=16)
        ts = load_tileset(files['tsx'])
        assert (ts.tile_width, ts.tile_height, ts.tile_count) == (8, 8, 4)
        assert (ts.image_width, ts.image_height) == (16, 16)
        assert [(r.x, r.y) for r in ts.rects] == [(0, 0), (8, 0), (0, 8), (8, 8)]
        assert ts.image_path == files['image']

    def test_map_first_tileset_external(self, tileset_files) -> None:
        files = tileset_files()
        ts = load_map_tileset(files['tmx'])
        assert ts.name == 'tiles'
        assert ts.tile_count == 1

    def test_load_any_accepts_map_or_tileset(self, tileset_files) -> None:
        files = tileset_files()
        assert load_any_tileset(files['tsx']).rects == load_any_tileset(files['tmx']).rects

    def test_embedded_with_spacing_and_margin(self, tmp_path) -> None:
        path = _tmx(tmp_path,
                    ' <tileset firstgid="1" name="emb" tilewidth="8" tileheight="8" '
                    'spacing="1" margin="2" tilecount="4" columns="2">\n'
                    '  <image source="img.png" width="21" height="21"/>\n'
                    ' </tileset>\n')
        ts = load_map_tileset(path)
        assert [(r.x, r.y) for r in ts.rects] == [(2, 2), (11, 2), (2, 11), (11, 11)]

    def test_image_size_from_file(self, tmp_path) -> None:
        Image.new('P', (24, 8), 0).save(tmp_path / 'img.png')
        path = tmp_path / 't.tsx'
        path.write_text('<tileset name="t" tilewidth="8" tileheight="8">'
                        '<image source="img.png"/></tileset>')
        ts = load_tileset(path)
        assert (ts.image_width, ts.image_height) == (24, 8)
        assert ts.tile_count == 3

    def test_image_collection_rejected(self, tmp_path) -> None:
        path = tmp_path / 't.tsx'
        path.write_text('<tileset name="t" tilewidth="8" tileheight="8" tilecount="1" columns="0">'
                        '<tile id="0"><image source="a.png" width="8" height="8"/></tile></tileset>')
        with pytest.raises(TiledFormatError):
            load_tileset(path)

    def test_tsj(self, tmp_path) -> None:
        path = tmp_path / 't.tsj'
        path.write_text(json.dumps({
            'type': 'tileset', 'name': 'j', 'tilewidth': 16, 'tileheight': 8,
            'image': 'img.png', 'imagewidth': 32, 'imageheight': 8,
            'tilecount': 2, 'columns': 2,
        }))
        ts = load_tileset(path)
        assert [(r.x, r.y) for r in ts.rects] == [(0, 0), (16, 0)]

    def test_unaligned_tiles_rejected_before_opening_image(self, tmp_path) -> None:
        path = tmp_path / 't.tsx'
        path.write_text('<tileset name="t" tilewidth="12" tileheight="16">'
                        '<image source="missing.png"/></tileset>')
        with pytest.raises(UnsupportedTileDimensions):
            load_tileset(path)
