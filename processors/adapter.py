"""
Bridge between in-memory image bytes and file-based compressors.

Compressors dispatch on file extension and work on paths, so the image is
written to a uniquely named temp file, compressed, and read back. Both the
temp input and the compressor's output are always removed.
"""

import subprocess
import tempfile
import uuid
from pathlib import Path
from typing import Optional

from engines.compression import CompressionMode, ImageCompressor
from utilities import Print, safe_delete


class CompressionAdapter:
    """
    Runs a compressor over a byte buffer.

    Attributes:
        compressor: Engine implementing the ImageCompressor protocol
        temp_dir: Directory for transient files (None = system temp dir)
    """

    def __init__(self, compressor: ImageCompressor, temp_dir: Optional[Path] = None):
        self.compressor = compressor
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())

    def compress(self, image_bytes: bytes, extension: str, mode: CompressionMode) -> Optional[bytes]:
        """
        Compress an image held in memory.

        Args:
            image_bytes: The exact image bytes
            extension: Extension detected from the magic bytes, e.g. '.png'
            mode: Lossless or lossy compression

        Returns:
            The smaller image bytes, or None if nothing was gained
        """
        if not image_bytes:
            return None

        input_path = self.temp_dir / f"{uuid.uuid4().hex}{extension}"
        result_path = None

        try:
            input_path.write_bytes(image_bytes)

            result = self.compressor.compress_file(input_path, mode)
            result_path = result.result_path

            if result.saving <= 0 or result_path is None or not Path(result_path).exists():
                return None

            optimized = Path(result_path).read_bytes()
            if not optimized:
                Print("WARNING", f"{self.compressor.name} produced an empty file for {input_path.name}")
                return None

            return optimized

        except (RuntimeError, OSError, ValueError, subprocess.SubprocessError) as e:
            Print("WARNING", f"Compression failed for {extension} image ({len(image_bytes):,} bytes): {e}")
            return None

        finally:
            safe_delete(input_path)
            if result_path is not None and Path(result_path) != input_path:
                safe_delete(Path(result_path))
