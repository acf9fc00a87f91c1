#!/usr/bin/env python3
"""
resxshrink v0.1: shrink the images embedded in .NET .resx resource files.

This is the main orchestrator that wires together the compression engines
and the .resx processor.

Architecture:
- Factory pattern for compression engines (engines/compression)
- Protocol-based compressor contract
- Byte-level payload location instead of a BinaryFormatter parser

Pipeline per .resx file:
1. Find <data> entries holding images (byte arrays or object graphs)
2. Locate the raw PNG/JPEG/GIF bytes inside each value
3. Compress them with the selected engine
4. Splice the result back and rewrite the file once, if anything shrank

Usage:
    from resxshrink import ResxShrinkPipeline

    pipeline = ResxShrinkPipeline()
    pipeline.initialize()
    pipeline.process_paths([Path("Resources.resx")])

Or from command line:
    python resxshrink.py Properties/Resources.resx --mode lossy
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from engines.compression import CompressionMode, get_compressor
from processors import EntryResult, ResxImageOptimizer
from utilities import Print, to_file_size


class ResxShrinkPipeline:
    """
    Main orchestrator for .resx image optimisation.

    Attributes:
        config: Loaded configuration dictionary
        compressor: Initialized image compressor instance
        mode: Compression mode applied to every image
        optimizer: ResxImageOptimizer doing the per-file work
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize pipeline with configuration.

        Args:
            config_path: Path to config.json. If None, uses default location.
        """
        self.config = self._load_config(config_path)
        self.compressor = None
        self.mode = CompressionMode.LOSSLESS
        self.optimizer = None
        self._initialized = False

    def _load_config(self, config_path: Optional[Path]) -> dict:
        """Load configuration from JSON file."""
        if config_path is None:
            config_path = Path(__file__).parent / "config" / "config.json"

        if not config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {config_path}\n"
                f"Create config/config.json or specify path with config_path parameter."
            )

        with open(config_path) as f:
            config = json.load(f)

        Print("DEBUG", f"Loaded configuration v{config.get('version', 'unknown')}")
        return config

    def initialize(self, engine_name: Optional[str] = None, mode: Optional[str] = None) -> None:
        """
        Initialize the compression engine.

        This must be called before any process_* method.

        Args:
            engine_name: Compression engine (default: processing.default_engine)
            mode: 'lossless' or 'lossy' (default: processing.default_mode)

        Raises:
            ValueError: If the engine or mode is unknown
        """
        processing = self.config.get('processing', {})
        engine_name = engine_name or processing.get('default_engine', 'pillow')
        self.mode = CompressionMode.parse(mode or processing.get('default_mode', 'lossless'))

        Print("STARTING", f"Initializing resxshrink v{self.config.get('version', '0.1.0')}")

        temp_dir = processing.get('temp_dir')
        if temp_dir:
            Path(temp_dir).mkdir(parents=True, exist_ok=True)

        engine_config = dict(self.config.get('compression', {}).get(engine_name, {}))
        engine_config.setdefault('temp_dir', temp_dir)
        self.compressor = get_compressor(engine_name, engine_config)
        Print("SUCCESS", f"Compressor: {self.compressor.name} ({self.mode.value})")

        self.optimizer = ResxImageOptimizer(temp_dir=Path(temp_dir) if temp_dir else None)
        self._initialized = True

    def process_file(self, resx_path: Path, dry_run: bool = False) -> List[EntryResult]:
        """
        Optimize the images in a single .resx file.

        Args:
            resx_path: Path to the .resx file
            dry_run: Report savings without writing the file

        Returns:
            One EntryResult per embedded image

        Raises:
            RuntimeError: If pipeline not initialized
        """
        if not self._initialized:
            raise RuntimeError("Pipeline not initialized. Call initialize() first.")

        return self.optimizer.optimize(Path(resx_path), self.compressor, self.mode, dry_run=dry_run)

    def process_paths(self, paths: Iterable[Path], dry_run: bool = False) -> dict:
        """
        Optimize every .resx file in `paths` (directories are searched recursively).

        A file that cannot be validated, read, parsed or written is reported
        and skipped; the remaining files are still processed.

        Returns:
            dict with processing statistics:
                - files: Number of .resx files visited
                - images: Number of image entries found
                - optimized: Number of entries that shrank
                - saving: Total bytes saved
                - failed: Number of files that could not be processed
                - processing_time: Time in seconds
        """
        if not self._initialized:
            raise RuntimeError("Pipeline not initialized. Call initialize() first.")

        start_time = datetime.now()
        files = collect_resx_files(paths)
        total_files = len(files)

        stats = {
            'files': total_files,
            'images': 0,
            'optimized': 0,
            'saving': 0,
            'failed': 0,
            'processing_time': 0.0,
        }

        for file_num, resx_path in enumerate(files, 1):
            Print("PROGRESS", f"Processing file {file_num}/{total_files}: {resx_path.name}")
            try:
                results = self.process_file(resx_path, dry_run=dry_run)
            except (RuntimeError, ValueError, OSError) as e:
                Print("FAILURE", f"{resx_path.name}: {e}")
                stats['failed'] += 1
                continue

            stats['images'] += len(results)
            for result in results:
                if result.saving > 0:
                    stats['optimized'] += 1
                    stats['saving'] += result.saving

        stats['processing_time'] = (datetime.now() - start_time).total_seconds()

        if stats['optimized'] == 0:
            Print("COMPLETED", "The images were already optimized")
        else:
            Print("COMPLETED", f"Optimized {stats['optimized']} of {stats['images']} images, saved {to_file_size(stats['saving'])}")
        Print("INFO", f"Time: {stats['processing_time']:.1f} seconds")

        return stats


def collect_resx_files(paths: Iterable[Path]) -> List[Path]:
    """Expand directories into the .resx files they contain, keeping order and dropping duplicates."""
    files = []
    seen = set()
    for path in paths:
        path = Path(path)
        candidates = sorted(path.rglob('*.resx')) if path.is_dir() else [path]
        for candidate in candidates:
            key = candidate.absolute()
            if key not in seen:
                seen.add(key)
                files.append(candidate)
    return files


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description='resxshrink v0.1: shrink images embedded in .resx files',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python resxshrink.py Properties/Resources.resx
  python resxshrink.py src/ --mode lossy
  python resxshrink.py Form1.resx --engine external --dry-run
        """
    )

    parser.add_argument('paths', type=Path, nargs='+', help='.resx files or directories')
    parser.add_argument('--mode', choices=[m.value for m in CompressionMode], default=None,
                        help='Compression mode (default: from config)')
    parser.add_argument('--engine', default=None, help='Compression engine (default: from config)')
    parser.add_argument('--config', type=Path, default=None, help='Path to config.json')
    parser.add_argument('--dry-run', action='store_true', help='Report savings without writing files')
    parser.add_argument('--quiet', action='store_true', help='Hide debug and progress output')

    args = parser.parse_args(argv)

    if args.quiet:
        os.environ['RESXSHRINK_LOG_LEVEL'] = 'quiet'

    try:
        pipeline = ResxShrinkPipeline(config_path=args.config)
        pipeline.initialize(engine_name=args.engine, mode=args.mode)
        stats = pipeline.process_paths(args.paths, dry_run=args.dry_run)
        return 0 if stats['failed'] == 0 else 1

    except FileNotFoundError as e:
        Print("FAILURE", str(e))
        return 1
    except (ValueError, RuntimeError) as e:
        Print("FAILURE", str(e))
        return 2
    except KeyboardInterrupt:
        Print("WARNING", "Interrupted by user")
        return 130
    except Exception as e:
        Print("FAILURE", f"Unexpected error: {e}")
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    import sys
    sys.exit(main())
