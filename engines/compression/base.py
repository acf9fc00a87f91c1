"""
Image Compressor Protocol for resxshrink

Defines the contract that all file compression engines must implement,
together with the compression mode and the per-file result record.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol, Optional

from utilities import to_file_size


class CompressionMode(Enum):
    """How aggressively an engine may re-encode an image."""
    LOSSLESS = "lossless"
    LOSSY = "lossy"

    @classmethod
    def parse(cls, text: str) -> "CompressionMode":
        """
        Parse a mode name from config or the command line.

        Raises:
            ValueError: If the name is not a known mode
        """
        try:
            return cls(str(text).strip().lower())
        except ValueError:
            available = ', '.join(m.value for m in cls)
            raise ValueError(f"Unknown compression mode: '{text}'. Available modes: {available}")


@dataclass
class CompressionResult:
    """
    Outcome of compressing a single file.

    Only result_size and the existence of result_path are used to decide
    whether the engine produced an improvement.
    """
    original_path: Path
    result_path: Optional[Path]
    original_size: int
    result_size: int
    elapsed: float = 0.0

    @classmethod
    def zero(cls, path: Path) -> "CompressionResult":
        """Result for a file that was not processed or could not be reduced."""
        size = path.stat().st_size if path.exists() else 0
        return cls(original_path=path, result_path=None, original_size=size, result_size=size)

    @classmethod
    def from_paths(cls, original_path: Path, result_path: Optional[Path], elapsed: float = 0.0) -> "CompressionResult":
        """
        Build a result by measuring both files on disk.

        A missing result file counts as no reduction.
        """
        original_size = original_path.stat().st_size if original_path.exists() else 0
        if result_path is not None and result_path != original_path and result_path.exists():
            result_size = result_path.stat().st_size
        else:
            result_path = None
            result_size = original_size
        return cls(
            original_path=original_path,
            result_path=result_path,
            original_size=original_size,
            result_size=result_size,
            elapsed=elapsed
        )

    @property
    def saving(self) -> int:
        return max(self.original_size - self.result_size, 0)

    @property
    def percent(self) -> float:
        if self.original_size == 0:
            return 0.0
        return round(100 - (self.result_size / self.original_size * 100), 1)

    def __str__(self) -> str:
        return (
            f"{self.original_path.name}: {to_file_size(self.original_size)} -> "
            f"{to_file_size(self.result_size)} "
            f"(saved {to_file_size(self.saving)} / {self.percent:.1f}%)"
        )


class ImageCompressor(Protocol):
    """
    Protocol for image compression engines.

    Engines are responsible for:
    - Producing a smaller copy of an image file in a new location
    - Dispatching on the file extension (.png, .jpg, .gif, ...)
    - Never modifying the input file
    """

    def compress_file(self, path: Path, mode: CompressionMode) -> CompressionResult:
        """
        Compress an image file.

        Args:
            path: Image file; its extension selects the codec
            mode: Lossless or lossy compression

        Returns:
            CompressionResult describing the output file. When nothing could
            be gained the result has no result_path or saving == 0.

        Raises:
            RuntimeError: If the engine fails in a way it cannot report
                          as a zero result
        """
        ...

    def supports(self, extension: str) -> bool:
        """
        Whether this engine can handle files with the given extension.

        Args:
            extension: Extension including the dot, e.g. '.png'
        """
        ...

    @property
    def name(self) -> str:
        """
        Compressor identifier for logging and debugging.

        Returns:
            Unique name of this compressor (e.g., 'pillow', 'external')
        """
        ...
