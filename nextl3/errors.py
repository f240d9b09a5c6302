"""Error kinds raised by the exporter. All are terminal for one export run."""


class ExportError(Exception):
    """Base class for every export failure."""
    pass


class MalformedContainer(ExportError):
    """Raised when the PNG chunk structure cannot be parsed."""
    pass


class DecompressionError(ExportError):
    """Raised when the IDAT stream is not valid zlib data."""
    pass


class PixelCountMismatch(ExportError):
    """Raised when the de-filtered pixel count disagrees with the image size."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Expected {expected} pixels but decoded {actual} (difference {actual - expected})"
        )
        self.expected = expected
        self.actual = actual


class OddSampleCount(ExportError):
    """Raised when a sample buffer cannot be split into nibble pairs."""
    pass


class MissingPalette(ExportError):
    """Raised when the image carries no PLTE chunk."""
    pass


class TruncatedPaletteEntry(ExportError):
    """Raised when the PLTE payload is not a whole number of RGB triples."""
    pass


class UnsupportedTileDimensions(ExportError):
    """Raised when a tile size is not a multiple of 8 pixels."""
    pass


class NoTileLayers(ExportError):
    """Raised when a map has nothing to export."""
    pass


class TiledFormatError(ExportError):
    """Raised when a Tiled map or tileset file cannot be understood."""
    pass
