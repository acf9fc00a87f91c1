"""
Payload location inside serialized .resx values.

BinaryFormatter has no generic "end of nested byte array" marker that can
be found without parsing the object graph, so the image boundaries are
taken from the image formats themselves:

    [envelope header ...][89 50 4E 47 ... IEND crc][envelope trailer ...]
                         ^ offset                 ^ offset + length

- PNG ends 8 bytes after the first "IEND" chunk type (type + CRC)
- JPEG ends after the last FF D9 (EOI) marker
- GIF ends after the last 3B (trailer) byte

When an end marker is missing the image is assumed to run to the end of
the buffer. These are heuristics; a trailer that happens to contain FF D9
or 3B will be swallowed into the image.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .signatures import (
    EntryFormat,
    MAGIC_SIGNATURES,
    find_signature,
    format_for_offset,
)
from utilities import Print

PNG_IEND = b'IEND'
JPEG_EOI = b'\xff\xd9'
GIF_TRAILER = b'\x3b'

# Typical size of the BinaryFormatter epilogue after the byte array
ENVELOPE_EPILOGUE_ESTIMATE = 11


@dataclass
class EmbeddedPayload:
    """An image located inside a decoded value."""
    image_bytes: bytes
    envelope_offset: int
    envelope_length: int


def find_png_end(data: bytes, offset: int) -> int:
    """Length of a PNG stream starting at `offset`, through the IEND CRC."""
    # Leave room for the 4 byte CRC after the chunk type
    pos = data.find(PNG_IEND, offset + 8, len(data) - 4)
    if pos < 0:
        return len(data) - offset
    return pos + 4 + 4 - offset


def find_jpeg_end(data: bytes, offset: int) -> int:
    """Length of a JPEG stream starting at `offset`, through the last EOI."""
    pos = data.rfind(JPEG_EOI, offset)
    if pos < 0:
        return len(data) - offset
    return pos + 2 - offset


def find_gif_end(data: bytes, offset: int) -> int:
    """Length of a GIF stream starting at `offset`, through the last trailer byte."""
    pos = data.rfind(GIF_TRAILER, offset + 1)
    if pos < 0:
        return len(data) - offset
    return pos + 1 - offset


_END_FINDERS = {
    'png': find_png_end,
    'jpeg': find_jpeg_end,
    'gif': find_gif_end,
}


def find_image_end(data: bytes, offset: int) -> int:
    """
    Length of the image that starts at `offset`.

    Returns:
        Number of image bytes, or 0 when `offset` is out of range
    """
    if offset < 0 or offset >= len(data):
        return 0

    fmt = format_for_offset(data, offset)
    if fmt is None:
        Print("DEBUG", f"No signature at offset {offset}, estimating image end")
        return max(0, len(data) - offset - ENVELOPE_EPILOGUE_ESTIMATE)

    return _END_FINDERS[fmt](data, offset)


def locate(data: bytes, entry_format: EntryFormat) -> Optional[Tuple[int, int]]:
    """
    Find the (offset, length) of the raw image inside a decoded value.

    Args:
        data: Decoded value bytes
        entry_format: Classification of the entry

    Returns:
        (offset, length), or None when no image could be found
    """
    if not data:
        return None

    if entry_format is EntryFormat.BYTE_ARRAY:
        return 0, len(data)

    if entry_format is not EntryFormat.OBJECT_GRAPH:
        return None

    # Earliest signature wins if the envelope contains several
    offsets = [find_signature(data, sig) for sig in MAGIC_SIGNATURES.values()]
    offsets = [o for o in offsets if o >= 0]
    if not offsets:
        return None

    offset = min(offsets)
    length = find_image_end(data, offset)
    if length <= 0:
        return None

    return offset, length


def extract(data: bytes, entry_format: EntryFormat) -> Optional[EmbeddedPayload]:
    """Locate the image and slice it out of `data`."""
    located = locate(data, entry_format)
    if located is None:
        return None
    offset, length = located
    return EmbeddedPayload(
        image_bytes=data[offset:offset + length],
        envelope_offset=offset,
        envelope_length=length
    )
