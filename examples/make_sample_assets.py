#!/usr/bin/env python3
"""
Write a small sample project for nextl3: a 32x16 indexed tileset with two
16x16 tiles, its .tsx and a 4x2 .tmx map using flipped cells.

    python examples/make_sample_assets.py build/sample
    nextl3 all build/sample/sample.tmx -o build/out
"""
import argparse
from pathlib import Path

from PIL import Image


TSX = """<?xml version="1.0" encoding="UTF-8"?>
<tileset version="1.10" name="sample" tilewidth="16" tileheight="16" tilecount="2" columns="2">
 <image source="sample.png" width="32" height="16"/>
</tileset>
"""

# gid 1 plain, gid 2 flipped horizontally, gid 1 flipped anti-diagonally, empty
TMX = """<?xml version="1.0" encoding="UTF-8"?>
<map version="1.10" orientation="orthogonal" width="4" height="2" tilewidth="16" tileheight="16" infinite="0">
 <tileset firstgid="1" source="sample.tsx"/>
 <layer id="1" name="ground" width="4" height="2">
  <data encoding="csv">
1,2147483650,536870913,0,
2,2,1,1
</data>
 </layer>
</map>
"""


def make_tileset_image() -> Image.Image:
    img = Image.new('P', (32, 16), 0)
    # colors 0-15: greys for tile 0, colors 16-31: reds for tile 1
    palette = []
    for i in range(16):
        palette += [i * 17, i * 17, i * 17]
    for i in range(16):
        palette += [i * 17, 0, 0]
    palette += [0] * (768 - len(palette))
    img.putpalette(palette)
    for y in range(16):
        for x in range(16):
            img.putpixel((x, y), (x + y) % 16)
            img.putpixel((16 + x, y), 16 + (x ^ y) % 16)
    return img


def main():
    ap = argparse.ArgumentParser(description='Write a sample Tiled project for nextl3')
    ap.add_argument('outdir', nargs='?', default='sample')
    args = ap.parse_args()

    out = Path(args.outdir)
    out.mkdir(parents=True, exist_ok=True)
    make_tileset_image().save(out / 'sample.png')
    (out / 'sample.tsx').write_text(TSX, encoding='utf-8')
    (out / 'sample.tmx').write_text(TMX, encoding='utf-8')
    print(f"Wrote sample project to {out}")


if __name__ == '__main__':
    main()
