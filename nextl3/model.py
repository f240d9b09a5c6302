"""Data model shared by the Tiled loader and the export pipelines."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


SUBTILE_SIZE = 8  # Layer 3 native tile is 8x8 pixels


@dataclass(frozen=True)
class Cell:
    """One grid cell. tile_id is None when the cell is empty (not tile 0)."""
    tile_id: Optional[int] = None
    flip_h: bool = False
    flip_v: bool = False
    flip_d: bool = False  # anti-diagonal


EMPTY_CELL = Cell()


@dataclass
class TileGrid:
    width: int
    height: int
    cells: List[Cell] = field(default_factory=list)  # row-major, width*height

    def cell_at(self, x: int, y: int) -> Cell:
        if not (0 <= x < self.width and 0 <= y < self.height):
            return EMPTY_CELL
        return self.cells[y * self.width + x]


@dataclass(frozen=True)
class TileRect:
    """Source rectangle of one tile inside the tileset image."""
    x: int
    y: int
    width: int
    height: int


@dataclass
class Tileset:
    name: str
    tile_width: int
    tile_height: int
    image_width: int
    image_height: int
    tile_count: int
    rects: List[TileRect] = field(default_factory=list)
    image_path: Optional[Path] = None

    def read_image(self) -> bytes:
        if self.image_path is None:
            raise FileNotFoundError(f"Tileset '{self.name}' has no image")
        return Path(self.image_path).read_bytes()


@dataclass
class Layer:
    name: str
    kind: str  # 'tilelayer', 'objectgroup', 'imagelayer' or 'group'
    grid: Optional[TileGrid] = None

    @property
    def is_tile_layer(self) -> bool:
        return self.kind == 'tilelayer' and self.grid is not None


@dataclass
class TiledMap:
    width: int
    height: int
    tile_width: int
    tile_height: int
    layers: List[Layer] = field(default_factory=list)

    @property
    def layer_count(self) -> int:
        return len(self.layers)
