import argparse
import sys
from pathlib import Path

from . import exporter, metatiles, tiled
from .errors import ExportError
from .reporting import StderrReporter


def _export_tileset(source, out, force, reporter):
    tileset = tiled.load_any_tileset(source)
    result = exporter.export_tileset_file(tileset, out, source_path=source, force=force,
                                          reporter=reporter.child('next_tileset'))
    if result is None:
        print(f"Up to date: {out}")
    else:
        print(f"Wrote {len(result.tile_data)} bytes of tile data to {out} "
              f"and {len(result.palette)} palette entries to {out}{exporter.PALETTE_SUFFIX}")


def _write_records(records, out):
    exporter.FileSink(metatiles_path=out).write_metatiles(metatiles.records_to_json(records))
    print(f"Wrote {len(records)} metatile records to {out}")


def _export_map(source, out, reporter):
    records = exporter.export_map(tiled.load_map(source), reporter.child('next_map'))
    _write_records(records, out)


def main(argv=None):
    ap = argparse.ArgumentParser(prog="nextl3", description="Tiled to ZX Spectrum Next Layer 3 exporter")
    sub = ap.add_subparsers(dest="command", required=True)

    ts = sub.add_parser("tileset", help="Export a tileset to 4bpp tile data and a Next palette")
    ts.add_argument("input", help="Tileset (.tsx/.tsj) or map (.tmx/.tmj) whose first tileset is exported")
    ts.add_argument("-o", "--output", help="Output tile data file (palette goes to <output>.pal)", default="tiles.bin")
    ts.add_argument("--force", action="store_true", help="Force regeneration even if up-to-date")

    mp = sub.add_parser("map", help="Export the first tile layer of a map as metatile JSON")
    mp.add_argument("input", help="Map file (.tmx/.tmj)")
    mp.add_argument("-o", "--output", help="Output JSON file", default="map.json")

    al = sub.add_parser("all", help="Export a map and its first tileset")
    al.add_argument("input", help="Map file (.tmx/.tmj)")
    al.add_argument("-o", "--outdir", help="Output directory", default=".")
    al.add_argument("--force", action="store_true", help="Force tileset regeneration even if up-to-date")

    args = ap.parse_args(argv)
    reporter = StderrReporter()

    try:
        if args.command == "tileset":
            _export_tileset(args.input, args.output, args.force, reporter)
        elif args.command == "map":
            _export_map(args.input, args.output, reporter)
        else:
            stem = Path(args.input).stem
            outdir = Path(args.outdir)
            # map errors must surface before any tileset file is written
            records = exporter.export_map(tiled.load_map(args.input), reporter.child('next_map'))
            _export_tileset(args.input, outdir / f"{stem}.bin", args.force, reporter)
            _write_records(records, outdir / f"{stem}.json")
    except ExportError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except FileNotFoundError as e:
        print(f"Error: File not found: {e.filename}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
