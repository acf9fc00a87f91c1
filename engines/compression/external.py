"""
External tool compression engine for resxshrink

Shells out to the same optimisers the Visual Studio Image Optimizer uses:
- pingo for PNG, JPEG and WEBP (optimises a copy in place)
- gifsicle for GIF (writes to --output)

Both binaries must be on PATH or configured explicitly. A missing binary,
a non-zero exit or a timeout is reported as a zero result, never raised,
so a single stubborn image cannot abort a whole container.
"""

import shutil
import subprocess
import tempfile
import time
from pathlib import Path
from typing import List, Optional

from . import register_compressor
from .base import CompressionMode, CompressionResult
from utilities import Print, safe_delete


@register_compressor("external")
class ExternalCompressorFactory:
    """Factory for creating external tool compressor instances."""

    @staticmethod
    def create(config: dict) -> "ExternalCompressor":
        """
        Create an external tool compressor.

        Args:
            config: Configuration dictionary with:
                - pingo_path: Path to pingo binary (default: 'pingo')
                - gifsicle_path: Path to gifsicle binary (default: 'gifsicle')
                - timeout_seconds: Per-image timeout (default: 60)
                - temp_dir: Where to write results (default: system temp)

        Returns:
            Initialized ExternalCompressor instance
        """
        return ExternalCompressor(config)


class ExternalCompressor:
    """
    Compressor that delegates to pingo and gifsicle.

    Stateless between calls: every call writes to its own uniquely named
    output file, so one instance can serve several threads.
    """

    PINGO_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.webp')
    GIFSICLE_EXTENSIONS = ('.gif',)

    def __init__(self, config: dict):
        self.pingo_path = config.get('pingo_path', 'pingo')
        self.gifsicle_path = config.get('gifsicle_path', 'gifsicle')
        self.timeout_seconds = float(config.get('timeout_seconds', 60))
        if self.timeout_seconds <= 0:
            self.timeout_seconds = 60.0
        temp_dir = config.get('temp_dir')
        self.temp_dir: Optional[Path] = Path(temp_dir) if temp_dir else None

        for tool in (self.pingo_path, self.gifsicle_path):
            if shutil.which(tool) is None:
                Print("WARNING", f"'{tool}' not found on PATH - matching images will not be optimized")

    def supports(self, extension: str) -> bool:
        extension = extension.lower()
        return extension in self.PINGO_EXTENSIONS or extension in self.GIFSICLE_EXTENSIONS

    def compress_file(self, path: Path, mode: CompressionMode) -> CompressionResult:
        """
        Run the matching optimiser against a copy of `path`.

        Args:
            path: Source image; its extension selects the tool
            mode: Lossless or lossy compression

        Returns:
            CompressionResult for the optimised copy, or a zero result
        """
        path = Path(path)
        extension = path.suffix.lower()
        if not self.supports(extension):
            Print("DEBUG", f"No external tool for extension '{extension}'")
            return CompressionResult.zero(path)

        start = time.monotonic()
        target = self._create_target(extension)

        try:
            cmd = self._build_command(path, target, mode)
        except OSError as e:
            Print("WARNING", f"Could not stage {path.name} for compression: {e}")
            safe_delete(target)
            return CompressionResult.zero(path)

        Print("DEBUG", f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                timeout=self.timeout_seconds
            )
        except FileNotFoundError:
            Print("WARNING", f"Compressor binary not found: {cmd[0]}")
            safe_delete(target)
            return CompressionResult.zero(path)
        except subprocess.TimeoutExpired:
            Print("FAILURE", f"{cmd[0]} timed out after {self.timeout_seconds:.0f} seconds on {path.name}")
            safe_delete(target)
            return CompressionResult.zero(path)

        if result.returncode != 0:
            stderr_text = result.stderr.decode('utf-8', errors='replace').strip()
            Print("WARNING", f"{cmd[0]} exited with {result.returncode}: {stderr_text}")
            safe_delete(target)
            return CompressionResult.zero(path)

        compression = CompressionResult.from_paths(path, target, time.monotonic() - start)
        if compression.saving <= 0:
            safe_delete(target)
            return CompressionResult.zero(path)

        Print("DEBUG", str(compression))
        return compression

    def _create_target(self, extension: str) -> Path:
        handle = tempfile.NamedTemporaryFile(
            prefix="resxshrink_", suffix=extension, dir=self.temp_dir, delete=False
        )
        handle.close()
        return Path(handle.name)

    def _build_command(self, source: Path, target: Path, mode: CompressionMode) -> List[str]:
        """
        Build the optimiser command line.

        pingo rewrites its input, so the source is copied to `target` first.
        """
        if source.suffix.lower() in self.GIFSICLE_EXTENSIONS:
            cmd = [self.gifsicle_path, '-O3']
            if mode is CompressionMode.LOSSY:
                cmd.append('--lossy')
            cmd.extend([str(source), f'--output={target}'])
            return cmd

        shutil.copyfile(source, target)
        cmd = [self.pingo_path]
        if mode is CompressionMode.LOSSLESS:
            cmd.append('-lossless')
        cmd.extend(['-s4', '-q', str(target)])
        return cmd

    @property
    def name(self) -> str:
        """Compressor identifier."""
        return "external"
