"""Metatile description for Tiled tile layers.

A Tiled tile larger than 8x8 is a metatile made of factor x factor Layer 3
sub-tiles. Every map cell expands to one record per sub-tile. Records are
emitted in raster order of the final 8x8 tilemap: map row, sub-tile row,
map column, sub-tile column.

Tiled stores three independent flips per cell (horizontal, vertical,
anti-diagonal). The Next tile attribute has X mirror, Y mirror and a 90
degree rotate bit; the anti-diagonal flip becomes a rotation and the other
two flags swap roles.
"""
import json
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .model import TileGrid
from .reporting import NullReporter


# (flip_h, flip_v, flip_d) -> (x_mirror, y_mirror, rotate)
FLIP_TABLE: Dict[Tuple[bool, bool, bool], Tuple[bool, bool, bool]] = {
    (False, False, False): (False, False, False),
    (True, False, False): (True, False, False),
    (False, True, False): (False, True, False),
    (True, True, False): (True, True, False),
    (False, False, True): (False, True, True),
    (True, False, True): (False, False, True),
    (False, True, True): (True, True, True),
    (True, True, True): (True, False, True),
}


@dataclass(frozen=True)
class MetaTileRecord:
    tile_id: Optional[int]
    sub_tile_coords: Tuple[int, int]  # (column, row) inside the metatile
    x_mirror: bool
    y_mirror: bool
    rotate: bool

    def to_dict(self) -> dict:
        return {
            'tileId': self.tile_id,
            'subTileCoords': list(self.sub_tile_coords),
            'xMirror': self.x_mirror,
            'yMirror': self.y_mirror,
            'rotate': self.rotate,
        }


def resolve_flips(flip_h: bool, flip_v: bool, flip_d: bool) -> Tuple[bool, bool, bool]:
    return FLIP_TABLE[(bool(flip_h), bool(flip_v), bool(flip_d))]


def resolve_metatiles(grid: TileGrid, factor: int, reporter=None) -> List[MetaTileRecord]:
    reporter = reporter or NullReporter()

    # resolve each cell once, then expand in raster order
    resolved = []
    for y in range(grid.height):
        row = []
        for x in range(grid.width):
            cell = grid.cell_at(x, y)
            if cell.tile_id is None:
                reporter.report(f"No tile found at {x}, {y}")
            row.append((cell.tile_id, resolve_flips(cell.flip_h, cell.flip_v, cell.flip_d)))
        resolved.append(row)

    records = []
    for row in resolved:
        for sub_row in range(factor):
            for tile_id, (x_mirror, y_mirror, rotate) in row:
                for sub_col in range(factor):
                    records.append(MetaTileRecord(
                        tile_id, (sub_col, sub_row), x_mirror, y_mirror, rotate))
    return records


def records_to_json(records: List[MetaTileRecord]) -> str:
    return json.dumps([r.to_dict() for r in records], separators=(',', ':')) + '\n'
