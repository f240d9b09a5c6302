"""PNG chunk container decoder.

Splits a PNG byte buffer into its chunks and gathers the pieces the tile
exporter needs: the concatenated IDAT stream and the PLTE color table.

PNG layout:
- 8 byte signature
- chunks: length (u32 BE), type (4 ASCII bytes), data, CRC32 over type+data
- IEND terminates the stream

References:
- https://www.w3.org/TR/png/#5Chunk-layout
"""
import struct
import zlib
from typing import List, NamedTuple, Optional

from .errors import MalformedContainer


PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'

CHUNK_HEADER = struct.Struct('>I4s')
CRC_SIZE = 4


class Chunk(NamedTuple):
    name: str
    data: bytes


class ImageHeader(NamedTuple):
    width: int
    height: int
    bit_depth: int
    color_type: int
    interlace: int


class PNGContainer:
    """Decoded chunk list of one PNG file."""

    def __init__(self, chunks: List[Chunk]):
        self.chunks = chunks

    @property
    def names(self) -> List[str]:
        return [c.name for c in self.chunks]

    @property
    def image_data(self) -> bytes:
        """All IDAT payloads joined in container order."""
        return b''.join(c.data for c in self.chunks if c.name == 'IDAT')

    @property
    def palette(self) -> Optional[bytes]:
        """The PLTE payload, or None if the image has no palette."""
        for c in self.chunks:
            if c.name == 'PLTE':
                return c.data
        return None

    @property
    def header(self) -> Optional[ImageHeader]:
        for c in self.chunks:
            if c.name == 'IHDR':
                if len(c.data) < 13:
                    raise MalformedContainer(f"IHDR chunk too small: {len(c.data)}")
                width, height, depth, color_type, _comp, _filt, interlace = struct.unpack(
                    '>IIBBBBB', c.data[:13])
                return ImageHeader(width, height, depth, color_type, interlace)
        return None


def read_chunk_header(data: bytes, pos: int):
    """Read chunk length and type at pos. Returns (name, length)."""
    if pos + CHUNK_HEADER.size > len(data):
        raise MalformedContainer(f"Unexpected end of data reading chunk header at offset {pos}")
    length, raw_name = CHUNK_HEADER.unpack_from(data, pos)
    try:
        name = raw_name.decode('ascii')
    except UnicodeDecodeError:
        raise MalformedContainer(f"Invalid chunk type {raw_name!r} at offset {pos}")
    return name, length


def extract_chunks(data: bytes) -> PNGContainer:
    """Parse a PNG byte buffer into its chunks.

    Raises MalformedContainer on a bad signature, a truncated chunk, a length
    that overruns the buffer, a CRC mismatch or a repeated PLTE chunk.
    """
    data = bytes(data)
    if data[:len(PNG_SIGNATURE)] != PNG_SIGNATURE:
        raise MalformedContainer("Not a PNG file (invalid signature)")

    chunks: List[Chunk] = []
    pos = len(PNG_SIGNATURE)
    ended = False
    while pos < len(data) and not ended:
        name, length = read_chunk_header(data, pos)
        start = pos + CHUNK_HEADER.size
        end = start + length
        if end + CRC_SIZE > len(data):
            raise MalformedContainer(
                f"Chunk {name} declares {length} bytes but only {max(len(data) - start - CRC_SIZE, 0)} remain")

        chunk_data = data[start:end]
        crc_expected = struct.unpack_from('>I', data, end)[0]
        crc_actual = zlib.crc32(data[pos + 4:end]) & 0xFFFFFFFF
        if crc_expected != crc_actual:
            raise MalformedContainer(f"CRC values for {name} header do not match")

        if name == 'PLTE' and any(c.name == 'PLTE' for c in chunks):
            raise MalformedContainer("Multiple PLTE chunks")

        chunks.append(Chunk(name, chunk_data))
        ended = name == 'IEND'
        pos = end + CRC_SIZE

    if not ended:
        raise MalformedContainer("Missing IEND chunk")
    return PNGContainer(chunks)
