"""
Embedded image optimisation for .resx resource files.

A .resx file is an XML document whose <data> entries may carry images as
base64 text, either as a plain byte array:

    <data name="Logo" type="System.Drawing.Bitmap, System.Drawing"
          mimetype="application/x-microsoft.net.object.bytearray.base64">
      <value>iVBORw0KGgo...</value>
    </data>

or wrapped in a BinaryFormatter object graph
(mimetype="application/x-microsoft.net.object.binary.base64").

For every image entry the processor:
1. Decodes the value and locates the raw image bytes
2. Compresses them through a CompressionAdapter
3. Splices the result back (patching the byte-array length prefix for
   object graphs) and re-encodes it as base64

The file is written once, at the end, and only if at least one entry got
smaller. lxml is only used to read and classify the entries; the new
values are spliced into the original text at the exact position of the
old ones, so line endings, quoting, empty elements and character
references elsewhere in the file come back byte for byte.
"""

import base64
import codecs
import re
import struct
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path
from typing import List, Optional, Tuple

from lxml import etree

from engines.compression import CompressionMode, ImageCompressor
from utilities import Print, to_file_size, validate_file_path
from .adapter import CompressionAdapter
from .payload import locate
from .signatures import (
    EntryFormat,
    classify,
    decode_value,
    detect_image_extension,
    is_object_graph,
)

_LAYOUT = re.compile(r'^(\s*)(.*?)(\s*)$', re.DOTALL)
_LINE_BREAK = re.compile(r'\s*[\r\n]\s*')

# Comments, CDATA, processing instructions and DOCTYPE are skipped whole,
# so a <data> example inside the schema comment is never mistaken for an entry
_MARKUP = re.compile(
    r'<!--.*?-->'
    r'|<!\[CDATA\[.*?\]\]>'
    r'|<\?.*?\?>'
    r'|<!DOCTYPE(?:[^>\[]|\[.*?\])*>'
    r'|<(?P<close>/)?(?P<tag>[^\s/>!?]+)(?:[^>"\']|"[^"]*"|\'[^\']*\')*?(?P<empty>/)?>',
    re.DOTALL
)

_BOMS = (
    (codecs.BOM_UTF8, 'utf-8'),
    (codecs.BOM_UTF16_LE, 'utf-16-le'),
    (codecs.BOM_UTF16_BE, 'utf-16-be'),
)


@dataclass
class EntryResult:
    """
    Outcome for one image entry.

    optimized_value is None when the entry was left untouched; in that case
    both sizes are 0.
    """
    resource_name: str
    container_path: Path
    original_size: int
    optimized_size: int
    optimized_value: Optional[str] = None

    @classmethod
    def zero(cls, resource_name: str, container_path: Path) -> "EntryResult":
        return cls(resource_name, container_path, 0, 0, None)

    @property
    def saving(self) -> int:
        return self.original_size - self.optimized_size

    @property
    def percent_saved(self) -> float:
        if self.original_size <= 0:
            return 0.0
        ratio = (Decimal(1) - Decimal(self.optimized_size) / Decimal(self.original_size)) * 100
        return float(ratio.quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))

    def __str__(self) -> str:
        if self.optimized_value is None:
            return f"{self.resource_name}: already optimized"
        return (
            f"{self.resource_name}: {to_file_size(self.original_size)} -> "
            f"{to_file_size(self.optimized_size)} "
            f"(saved {to_file_size(self.saving)} / {self.percent_saved:.1f}%)"
        )


@dataclass
class ImageEntry:
    """
    A <data> entry classified as holding an image.

    position is the entry's index among the <data> children of the root,
    counting every entry, image or not.
    """
    resource_name: str
    value_element: etree._Element
    entry_format: EntryFormat
    position: int = 0


def reassemble_envelope(original: bytes, offset: int, length: int, new_image: bytes) -> bytes:
    """
    Replace original[offset:offset+length] with `new_image`.

    BinaryFormatter stores a byte array's length as a little-endian int32
    immediately before the data. If the 4 bytes before `offset` hold
    `length`, they are rewritten with the new length; otherwise they are
    left alone.

    Returns:
        header + new_image + trailer
    """
    header = bytearray(original[:offset])
    trailer = original[offset + length:]

    if offset >= 4:
        (stored_length,) = struct.unpack_from('<i', header, offset - 4)
        if stored_length == length:
            struct.pack_into('<i', header, offset - 4, len(new_image))
        else:
            Print("DEBUG", f"No length prefix before offset {offset} (found {stored_length}, expected {length})")

    return bytes(header) + new_image + trailer


def format_base64(encoded: str, template: str) -> str:
    """
    Lay out base64 text the way the original value text was laid out.

    Visual Studio wraps base64 values at 80 columns with every line
    indented; single-line values stay single-line. The line breaks and
    indentation are copied from `template`, so CRLF files stay CRLF.
    """
    match = _LAYOUT.match(template or '')
    leading, content, trailing = match.group(1), match.group(2), match.group(3)

    lines = content.splitlines()
    separator = _LINE_BREAK.search(content)
    if len(lines) <= 1 or separator is None:
        return f"{leading}{encoded}{trailing}"

    width = len(lines[0].strip())
    if width <= 0:
        return f"{leading}{encoded}{trailing}"

    chunks = [encoded[i:i + width] for i in range(0, len(encoded), width)]
    return f"{leading}{separator.group(0).join(chunks)}{trailing}"


def find_value_spans(text: str) -> List[Optional[Tuple[int, int]]]:
    """
    Character ranges of the <value> contents of every root-level <data>.

    One item per <data> child of the root, in document order, matching
    root.iterchildren('data'). The range covers everything between
    <value> and </value> (the first <value> of the entry only); entries
    without one, or with <value />, give None.
    """
    spans: List[Optional[Tuple[int, int]]] = []
    depth = 0
    in_data = False
    value_start = None
    seen_value = False

    for match in _MARKUP.finditer(text):
        tag = match.group('tag')
        if tag is None:
            continue

        if match.group('close'):
            depth -= 1
            if depth == 2 and in_data and tag == 'value' and value_start is not None:
                spans[-1] = (value_start, match.start())
                value_start = None
            elif depth == 1 and tag == 'data':
                in_data = False
            continue

        if depth == 1 and tag == 'data':
            spans.append(None)
            in_data = not match.group('empty')
            seen_value = False
        elif depth == 2 and in_data and tag == 'value' and not seen_value:
            seen_value = True
            if not match.group('empty'):
                value_start = match.end()

        if not match.group('empty'):
            depth += 1

    return spans


def split_bom(raw: bytes, declared_encoding: Optional[str]) -> Tuple[bytes, str]:
    """
    Separate the byte order mark from a document and pick its codec.

    Returns:
        (bom, codec); bom is b'' when the file has none
    """
    for bom, codec in _BOMS:
        if raw.startswith(bom):
            return bom, codec

    codec = (declared_encoding or 'utf-8').lower()
    # Python's plain utf-16 codec would add a BOM on encode
    if codec in ('utf-16', 'utf16'):
        codec = 'utf-16-le'
    return b'', codec


def find_image_entries(tree: etree._ElementTree) -> List[ImageEntry]:
    """
    Collect the <data> entries of a .resx document that hold images.

    Entries without a <value>, with a blank value, or that classify as
    not-an-image are skipped.
    """
    entries = []
    root = tree.getroot()
    if root is None:
        return entries

    for position, data_element in enumerate(root.iterchildren('data')):
        value_element = data_element.find('value')
        if value_element is None or not (value_element.text or '').strip():
            continue

        declared_type = data_element.get('type')
        declared_mimetype = data_element.get('mimetype')

        # Object graphs are only images if a signature shows up in the bytes
        decoded = None
        if is_object_graph(declared_mimetype):
            decoded = decode_value(value_element.text)

        entry_format = classify(declared_type, declared_mimetype, decoded)
        if entry_format is EntryFormat.NOT_AN_IMAGE:
            continue

        entries.append(ImageEntry(
            resource_name=data_element.get('name', 'unknown'),
            value_element=value_element,
            entry_format=entry_format,
            position=position
        ))

    return entries


class ResxImageOptimizer:
    """
    Optimizes the images embedded in .resx files.

    Holds no per-file state, so one instance can be shared between threads
    as long as each call targets a different file.

    Attributes:
        temp_dir: Directory for transient image files (None = system temp dir)
    """

    def __init__(self, temp_dir: Optional[Path] = None):
        self.temp_dir = Path(temp_dir) if temp_dir else None

    def optimize(
        self,
        container_path: Path,
        compressor: ImageCompressor,
        mode: CompressionMode = CompressionMode.LOSSLESS,
        dry_run: bool = False
    ) -> List[EntryResult]:
        """
        Optimize every embedded image in a .resx file.

        Args:
            container_path: Path to the .resx file
            compressor: Engine used to compress each image
            mode: Lossless or lossy compression
            dry_run: Compute results without writing the file

        Returns:
            One EntryResult per image entry, in document order. Empty if
            the file does not exist or holds no images.

        Raises:
            ValueError: If compressor is None or the path is invalid
            RuntimeError: If the file is not well-formed XML or cannot be
                          decoded with its declared encoding
        """
        if compressor is None:
            raise ValueError("A compressor is required")

        validation = validate_file_path(container_path)
        if not validation.is_valid:
            raise ValueError(validation.error_message)

        path = validation.value
        if not path.is_file():
            Print("DEBUG", f"Resx file not found: {path}")
            return []

        raw = path.read_bytes()
        tree = self._parse(path, raw)

        entries = find_image_entries(tree)
        if not entries:
            Print("DEBUG", f"No embedded images in {path.name}")
            return []

        bom, codec, text = self._load_text(path, raw, tree)
        spans = find_value_spans(text)
        data_count = sum(1 for _ in tree.getroot().iterchildren('data'))
        if len(spans) != data_count or any(spans[entry.position] is None for entry in entries):
            raise RuntimeError(f"Could not match the <data> entries of {path.name} to their source text")

        Print("STATE", f"Optimizing {len(entries)} embedded image{'s' if len(entries) != 1 else ''} in {path.name}")

        adapter = CompressionAdapter(compressor, self.temp_dir)
        results: List[EntryResult] = []
        pending: List[Tuple[int, str]] = []

        for entry in entries:
            result = self._optimize_entry(entry, adapter, mode, path)
            results.append(result)

            if result.optimized_value is not None:
                pending.append((entry.position, result.optimized_value))
                Print("SUCCESS", str(result))
            else:
                Print("DEBUG", f"{entry.resource_name}: no improvement")

        if not pending:
            return results

        if dry_run:
            Print("INFO", f"Dry run: {path.name} not modified")
            return results

        self._write(path, bom, codec, text, spans, pending)
        Print("INFO", f"Updated {len(pending)} image{'s' if len(pending) != 1 else ''} in {path.name}")

        return results

    def _optimize_entry(
        self,
        entry: ImageEntry,
        adapter: CompressionAdapter,
        mode: CompressionMode,
        container_path: Path
    ) -> EntryResult:
        original = decode_value(entry.value_element.text)
        if not original:
            Print("WARNING", f"{entry.resource_name}: value is not valid base64")
            return EntryResult.zero(entry.resource_name, container_path)

        located = locate(original, entry.entry_format)
        if located is None:
            Print("DEBUG", f"{entry.resource_name}: no image payload found")
            return EntryResult.zero(entry.resource_name, container_path)

        offset, length = located
        image_bytes = original[offset:offset + length]

        extension = detect_image_extension(image_bytes)
        if extension is None:
            Print("DEBUG", f"{entry.resource_name}: unrecognised image format")
            return EntryResult.zero(entry.resource_name, container_path)

        optimized = adapter.compress(image_bytes, extension, mode)
        if optimized is None or len(optimized) >= len(image_bytes):
            return EntryResult.zero(entry.resource_name, container_path)

        if entry.entry_format is EntryFormat.OBJECT_GRAPH:
            final_bytes = reassemble_envelope(original, offset, length, optimized)
        else:
            final_bytes = optimized

        return EntryResult(
            resource_name=entry.resource_name,
            container_path=container_path,
            original_size=len(original),
            optimized_size=len(final_bytes),
            optimized_value=base64.b64encode(final_bytes).decode('ascii')
        )

    def _parse(self, path: Path, raw: bytes) -> etree._ElementTree:
        """Parse the document keeping all whitespace."""
        parser = etree.XMLParser(
            remove_blank_text=False,
            resolve_entities=False,
            no_network=True,
            huge_tree=True
        )
        try:
            return etree.fromstring(raw, parser).getroottree()
        except etree.XMLSyntaxError as e:
            raise RuntimeError(f"Failed to parse {path.name}: {e}")

    def _load_text(self, path: Path, raw: bytes, tree: etree._ElementTree) -> Tuple[bytes, str, str]:
        """
        Decode the raw document with its own encoding.

        Returns:
            (bom, codec, text)
        """
        bom, codec = split_bom(raw, tree.docinfo.encoding)
        try:
            return bom, codec, raw[len(bom):].decode(codec)
        except (UnicodeDecodeError, LookupError) as e:
            raise RuntimeError(f"Failed to decode {path.name} as {codec}: {e}")

    def _write(
        self,
        path: Path,
        bom: bytes,
        codec: str,
        text: str,
        spans: List[Optional[Tuple[int, int]]],
        pending: List[Tuple[int, str]]
    ) -> None:
        """
        Splice the new values into the original text and write it to `path`.

        Nothing outside the replaced <value> contents changes.
        """
        # Back to front, so the earlier spans stay valid
        for position, optimized_value in reversed(pending):
            start, end = spans[position]
            text = text[:start] + format_base64(optimized_value, text[start:end]) + text[end:]

        try:
            path.write_bytes(bom + text.encode(codec))
        except OSError as e:
            Print("FAILURE", f"Failed to write {path.name}: {e}")
            raise
