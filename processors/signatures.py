"""
Signature scanning for .resx data entries.

Classifies a <data> entry as a raw byte-array image, an image wrapped in a
legacy BinaryFormatter object graph, or not an image at all, using only
the entry's declared metadata and the magic bytes of the decoded value.
No attempt is made to parse the object graph itself.
"""

import base64
import binascii
import re
from enum import Enum
from typing import Optional

# Magic bytes, in the order they are tried
PNG_SIGNATURE = b'\x89PNG'
JPEG_SIGNATURE = b'\xff\xd8\xff'
GIF_SIGNATURE = b'GIF'

MAGIC_SIGNATURES = {
    'png': PNG_SIGNATURE,
    'jpeg': JPEG_SIGNATURE,
    'gif': GIF_SIGNATURE,
}

EXTENSIONS = {
    'png': '.png',
    'jpeg': '.jpg',
    'gif': '.gif',
}

BYTE_ARRAY_MIMETYPE = "application/x-microsoft.net.object.bytearray.base64"
OBJECT_GRAPH_MIMETYPE = "application/x-microsoft.net.object.binary.base64"

IMAGE_TYPE_MARKERS = (
    "system.drawing.bitmap",
    "system.drawing.icon",
    "system.drawing.image",
)

_WHITESPACE = re.compile(r'\s+')


class EntryFormat(Enum):
    """How an entry stores its image, if it holds one."""
    BYTE_ARRAY = "byte_array"
    OBJECT_GRAPH = "object_graph"
    NOT_AN_IMAGE = "not_an_image"


def matches_signature(data: bytes, offset: int, signature: bytes) -> bool:
    """Check whether `signature` occurs in `data` exactly at `offset`."""
    if offset < 0 or offset + len(signature) > len(data):
        return False
    return data[offset:offset + len(signature)] == signature


def find_signature(data: bytes, signature: bytes, start: int = 0) -> int:
    """
    Offset of the first occurrence of `signature` at or after `start`.

    Returns:
        The offset, or -1 if not found
    """
    if not data or not signature or len(data) < len(signature):
        return -1
    return data.find(signature, start)


def probe(data: Optional[bytes]) -> bool:
    """True if any known image signature appears anywhere in `data`."""
    if not data:
        return False
    return any(find_signature(data, sig) >= 0 for sig in MAGIC_SIGNATURES.values())


def format_for_offset(data: bytes, offset: int) -> Optional[str]:
    """Name of the image format whose signature starts at `offset`."""
    for fmt, signature in MAGIC_SIGNATURES.items():
        if matches_signature(data, offset, signature):
            return fmt
    return None


def detect_image_extension(data: Optional[bytes]) -> Optional[str]:
    """
    File extension for an image, from its leading magic bytes.

    Returns:
        '.png', '.jpg' or '.gif', or None for unknown data or fewer
        than 4 bytes
    """
    if data is None or len(data) < 4:
        return None
    fmt = format_for_offset(data, 0)
    return EXTENSIONS.get(fmt) if fmt else None


def decode_value(text: Optional[str]) -> Optional[bytes]:
    """
    Decode the base64 text of a <value> element.

    Whitespace and line breaks (Visual Studio wraps long values) are
    ignored. Malformed input gives None instead of an exception.
    """
    if text is None:
        return None
    cleaned = _WHITESPACE.sub('', text)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        return None


def is_byte_array_image(declared_type: Optional[str], declared_mimetype: Optional[str]) -> bool:
    if not declared_mimetype or declared_mimetype.strip().lower() != BYTE_ARRAY_MIMETYPE:
        return False
    if not declared_type:
        return False
    lowered = declared_type.lower()
    return any(marker in lowered for marker in IMAGE_TYPE_MARKERS)


def is_object_graph(declared_mimetype: Optional[str]) -> bool:
    return bool(declared_mimetype) and declared_mimetype.strip().lower() == OBJECT_GRAPH_MIMETYPE


def classify(
    declared_type: Optional[str],
    declared_mimetype: Optional[str],
    data: Optional[bytes] = None
) -> EntryFormat:
    """
    Classify a data entry.

    Byte-array entries are recognised from metadata alone. Object-graph
    entries additionally need an image signature somewhere in the decoded
    bytes; pass None when the value could not be decoded.

    Args:
        declared_type: The entry's `type` attribute
        declared_mimetype: The entry's `mimetype` attribute
        data: Decoded value bytes (only consulted for object graphs)

    Returns:
        The EntryFormat for this entry
    """
    if is_byte_array_image(declared_type, declared_mimetype):
        return EntryFormat.BYTE_ARRAY
    if is_object_graph(declared_mimetype) and probe(data):
        return EntryFormat.OBJECT_GRAPH
    return EntryFormat.NOT_AN_IMAGE
