"""nextl3 - Tiled tileset/tilemap exporter for ZX Spectrum Next Layer 3."""

__version__ = "0.1.0"
