"""
Pillow compression engine for resxshrink

Re-encodes PNG, JPEG and GIF files in-process, without any external
binaries. Gains are usually smaller than with the dedicated tools used by
the external engine, but it works anywhere Pillow is installed.

Lossless:
- PNG: zlib optimisation pass (optimize=True), pixels untouched
- JPEG: re-encode keeping the original quantisation tables and
  subsampling, with optimised Huffman tables and progressive scans
- GIF: optimize=True over all frames

Lossy:
- PNG: quantised to a palette of `png_colors` entries
- JPEG: re-encoded at `jpeg_quality`
- GIF: same as lossless
"""

import tempfile
import time
from pathlib import Path
from typing import Optional

from PIL import Image

from . import register_compressor
from .base import CompressionMode, CompressionResult
from utilities import Print, safe_delete


@register_compressor("pillow")
class PillowCompressorFactory:
    """Factory for creating Pillow compressor instances."""

    @staticmethod
    def create(config: dict) -> "PillowCompressor":
        return PillowCompressor(config)


class PillowCompressor:
    """
    In-process image compressor built on Pillow.

    Attributes:
        jpeg_quality: Quality used for lossy JPEG output (1-95)
        png_colors: Palette size used for lossy PNG output (2-256)
        temp_dir: Directory for output files (None = system temp dir)
    """

    FORMATS = {
        '.png': 'PNG',
        '.jpg': 'JPEG',
        '.jpeg': 'JPEG',
        '.gif': 'GIF',
    }

    def __init__(self, config: dict):
        """
        Initialize Pillow compressor with configuration.

        Args:
            config: Configuration dictionary with optional keys:
                - jpeg_quality: int - Lossy JPEG quality (default: 80)
                - png_colors: int - Lossy PNG palette size (default: 256)
                - temp_dir: str - Where to write results (default: system temp)
        """
        self.jpeg_quality = int(config.get('jpeg_quality', 80))
        self.png_colors = int(config.get('png_colors', 256))
        temp_dir = config.get('temp_dir')
        self.temp_dir: Optional[Path] = Path(temp_dir) if temp_dir else None

        if not 1 <= self.jpeg_quality <= 95:
            raise ValueError(f"jpeg_quality must be between 1 and 95, got {self.jpeg_quality}")
        if not 2 <= self.png_colors <= 256:
            raise ValueError(f"png_colors must be between 2 and 256, got {self.png_colors}")

        Print("DEBUG", f"Pillow compressor initialized: jpeg_quality={self.jpeg_quality}, png_colors={self.png_colors}")

    def supports(self, extension: str) -> bool:
        return extension.lower() in self.FORMATS

    def compress_file(self, path: Path, mode: CompressionMode) -> CompressionResult:
        """
        Write a re-encoded copy of `path` to a new temp file.

        Args:
            path: Source image; its extension selects the codec
            mode: Lossless or lossy compression

        Returns:
            CompressionResult pointing at the smaller copy, or a zero
            result when the file is unsupported, unreadable or did not shrink
        """
        path = Path(path)
        extension = path.suffix.lower()
        if not self.supports(extension):
            Print("DEBUG", f"Pillow: unsupported extension '{extension}'")
            return CompressionResult.zero(path)

        start = time.monotonic()
        target = self._create_target(extension)

        try:
            with Image.open(path) as img:
                fmt = self.FORMATS[extension]
                if fmt == 'PNG':
                    self._save_png(img, target, mode)
                elif fmt == 'JPEG':
                    self._save_jpeg(img, target, mode)
                else:
                    self._save_gif(img, target)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            Print("WARNING", f"Pillow could not re-encode {path.name}: {e}")
            safe_delete(target)
            return CompressionResult.zero(path)

        result = CompressionResult.from_paths(path, target, time.monotonic() - start)
        if result.saving <= 0:
            Print("DEBUG", f"Pillow: no reduction for {path.name}")
            safe_delete(target)
            return CompressionResult.zero(path)

        Print("DEBUG", f"Pillow: {result}")
        return result

    def _create_target(self, extension: str) -> Path:
        """Reserve a unique output file carrying the same extension."""
        handle = tempfile.NamedTemporaryFile(
            prefix="resxshrink_", suffix=extension, dir=self.temp_dir, delete=False
        )
        handle.close()
        return Path(handle.name)

    def _save_png(self, img: Image.Image, target: Path, mode: CompressionMode) -> None:
        if mode is CompressionMode.LOSSY and img.mode != 'P':
            # FASTOCTREE is the only quantizer that keeps an alpha channel
            img = img.convert('RGBA').quantize(colors=self.png_colors, method=Image.Quantize.FASTOCTREE)
        img.save(target, format='PNG', optimize=True)

    def _save_jpeg(self, img: Image.Image, target: Path, mode: CompressionMode) -> None:
        extra = {}
        if img.info.get('icc_profile'):
            extra['icc_profile'] = img.info['icc_profile']
        if img.info.get('exif'):
            extra['exif'] = img.info['exif']

        if mode is CompressionMode.LOSSY:
            if img.mode not in ('RGB', 'L', 'CMYK'):
                img = img.convert('RGB')
            img.save(target, format='JPEG', quality=self.jpeg_quality, optimize=True, progressive=True, **extra)
        else:
            img.save(target, format='JPEG', quality='keep', subsampling='keep', optimize=True, progressive=True, **extra)

    def _save_gif(self, img: Image.Image, target: Path) -> None:
        img.save(target, format='GIF', save_all=True, optimize=True)

    @property
    def name(self) -> str:
        """Compressor identifier."""
        return "pillow"
