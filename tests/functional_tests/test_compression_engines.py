#!/usr/bin/env python3
"""
Functional Test: Compression Engines and Adapter

Tests the compression layer with real image data to verify:
1. Engines are registered and unknown names are rejected
2. The Pillow engine shrinks an uncompressed PNG losslessly
3. The external engine degrades to a zero result when its binary is missing
4. The adapter returns bytes only on a real reduction and always cleans up
5. CompressionResult and size formatting helpers

Usage:
    python tests/functional_tests/test_compression_engines.py
"""

import io
import sys
import tempfile
from pathlib import Path

# Add repo root to path for imports
repo_root = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(repo_root))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from PIL import Image

from engines.compression import (
    COMPRESSOR_REGISTRY,
    CompressionMode,
    CompressionResult,
    get_compressor,
)
from processors.adapter import CompressionAdapter
from resx_fixtures import FailingCompressor, StubCompressor, fake_png, real_png
from utilities import Print, safe_delete, to_file_size, validate_file_path


def test_registry() -> None:
    Print("HEADER", "Testing compressor registry")

    assert 'pillow' in COMPRESSOR_REGISTRY
    assert 'external' in COMPRESSOR_REGISTRY

    try:
        get_compressor('does-not-exist', {})
    except ValueError as e:
        assert 'pillow' in str(e)
    else:
        raise AssertionError("expected ValueError for unknown compressor")

    assert CompressionMode.parse(' LOSSY ') is CompressionMode.LOSSY
    try:
        CompressionMode.parse('extreme')
    except ValueError:
        pass
    else:
        raise AssertionError("expected ValueError for unknown mode")

    Print("SUCCESS", "Registry works")


def test_pillow_engine_png_lossless() -> None:
    """An uncompressed PNG shrinks and decodes to the same pixels."""
    Print("HEADER", "Testing Pillow engine on PNG")

    with tempfile.TemporaryDirectory() as tmp:
        tmp = Path(tmp)
        source = tmp / "gradient.png"
        source.write_bytes(real_png())

        engine = get_compressor('pillow', {'temp_dir': str(tmp)})
        assert engine.name == 'pillow'
        assert engine.supports('.PNG')
        assert not engine.supports('.bmp')

        result = engine.compress_file(source, CompressionMode.LOSSLESS)
        Print("INFO", str(result))
        assert result.saving > 0
        assert result.result_path is not None and result.result_path.exists()
        assert result.result_path.suffix == '.png'

        with Image.open(source) as before, Image.open(result.result_path) as after:
            assert before.size == after.size
            assert list(before.convert('RGB').getdata()) == list(after.convert('RGB').getdata())

        assert source.read_bytes() == real_png(), "input must not be modified"
        safe_delete(result.result_path)

    Print("SUCCESS", "Pillow engine shrinks PNG losslessly")


def test_pillow_engine_lossy_and_unreadable() -> None:
    Print("HEADER", "Testing Pillow engine edge cases")

    with tempfile.TemporaryDirectory() as tmp:
        tmp = Path(tmp)
        engine = get_compressor('pillow', {'temp_dir': str(tmp), 'png_colors': 64})

        source = tmp / "gradient.png"
        source.write_bytes(real_png())
        result = engine.compress_file(source, CompressionMode.LOSSY)
        assert result.saving > 0
        with Image.open(result.result_path) as img:
            assert img.mode == 'P'
        safe_delete(result.result_path)

        # Signature only: Pillow cannot decode it
        broken = tmp / "broken.png"
        broken.write_bytes(fake_png(200))
        result = engine.compress_file(broken, CompressionMode.LOSSLESS)
        assert result.saving == 0
        assert result.result_path is None

        # Only the two source files remain
        assert sorted(p.name for p in tmp.iterdir()) == ["broken.png", "gradient.png"]

    try:
        get_compressor('pillow', {'jpeg_quality': 0})
    except ValueError:
        pass
    else:
        raise AssertionError("expected ValueError for jpeg_quality=0")

    Print("SUCCESS", "Pillow engine edge cases handled")


def test_pillow_engine_jpeg() -> None:
    """JPEG output is either smaller and still a JPEG, or a zero result."""
    Print("HEADER", "Testing Pillow engine on JPEG")

    with tempfile.TemporaryDirectory() as tmp:
        tmp = Path(tmp)
        buffer = io.BytesIO()
        Image.open(io.BytesIO(real_png())).convert('RGB').save(buffer, format='JPEG', quality=95)
        source = tmp / "photo.jpg"
        source.write_bytes(buffer.getvalue())

        engine = get_compressor('pillow', {'temp_dir': str(tmp)})
        for mode in CompressionMode:
            result = engine.compress_file(source, mode)
            if result.result_path is not None:
                assert result.saving > 0
                assert result.result_path.read_bytes()[:3] == b'\xff\xd8\xff'
                safe_delete(result.result_path)
            else:
                assert result.saving == 0

    Print("SUCCESS", "Pillow engine handles JPEG")


def test_external_engine_missing_binary() -> None:
    Print("HEADER", "Testing external engine without binaries")

    with tempfile.TemporaryDirectory() as tmp, tempfile.TemporaryDirectory() as out:
        source = Path(tmp) / "gradient.png"
        source.write_bytes(real_png())
        gif = Path(tmp) / "anim.gif"
        gif.write_bytes(b'GIF89a' + b'\x00' * 20 + b'\x3b')

        engine = get_compressor('external', {
            'pingo_path': 'resxshrink-missing-pingo',
            'gifsicle_path': 'resxshrink-missing-gifsicle',
            'timeout_seconds': 5,
            'temp_dir': out,
        })
        assert engine.name == 'external'
        assert engine.supports('.jpeg')
        assert not engine.supports('.svg')

        for path in (source, gif):
            result = engine.compress_file(path, CompressionMode.LOSSLESS)
            assert result.saving == 0
            assert result.result_path is None

        assert list(Path(out).iterdir()) == [], "staged copies must be removed"

    Print("SUCCESS", "External engine degrades without binaries")


def test_adapter_success_and_cleanup() -> None:
    Print("HEADER", "Testing compression adapter")

    with tempfile.TemporaryDirectory() as tmp:
        tmp = Path(tmp)
        compressor = StubCompressor(800)
        adapter = CompressionAdapter(compressor, temp_dir=tmp)

        optimized = adapter.compress(fake_png(1000), '.png', CompressionMode.LOSSY)
        assert optimized is not None and len(optimized) == 800

        staged, mode = compressor.calls[0]
        assert staged.suffix == '.png'
        assert staged.parent == tmp
        assert mode is CompressionMode.LOSSY

        # No reduction
        assert adapter.compress(fake_png(500), '.png', CompressionMode.LOSSLESS) is None
        # Nothing to do
        assert adapter.compress(b'', '.png', CompressionMode.LOSSLESS) is None
        # Engine crash
        assert CompressionAdapter(FailingCompressor(), tmp).compress(fake_png(1000), '.png',
                                                                     CompressionMode.LOSSLESS) is None

        # Unique names per call
        adapter.compress(fake_png(1000), '.png', CompressionMode.LOSSLESS)
        names = [call[0].name for call in compressor.calls]
        assert len(set(names)) == len(names)

        assert list(tmp.iterdir()) == [], "transient files must be removed"

    Print("SUCCESS", "Adapter works and cleans up")


def test_compression_result() -> None:
    Print("HEADER", "Testing CompressionResult")

    with tempfile.TemporaryDirectory() as tmp:
        tmp = Path(tmp)
        original = tmp / "a.png"
        original.write_bytes(b'x' * 1000)
        smaller = tmp / "b.png"
        smaller.write_bytes(b'x' * 250)

        result = CompressionResult.from_paths(original, smaller)
        assert (result.original_size, result.result_size, result.saving) == (1000, 250, 750)
        assert result.percent == 75.0
        assert str(result) == "a.png: 1,000 bytes -> 250 bytes (saved 750 bytes / 75.0%)"

        missing = CompressionResult.from_paths(original, tmp / "gone.png")
        assert missing.result_path is None
        assert missing.saving == 0

        same = CompressionResult.from_paths(original, original)
        assert same.saving == 0

        zero = CompressionResult.zero(original)
        assert zero.saving == 0 and zero.percent == 0.0

        bigger = CompressionResult(original, smaller, 100, 150)
        assert bigger.saving == 0

    Print("SUCCESS", "CompressionResult works")


def test_utilities() -> None:
    Print("HEADER", "Testing utilities")

    assert to_file_size(0) == "0 bytes"
    assert to_file_size(1000) == "1,000 bytes"
    assert to_file_size(1023) == "1,023 bytes"
    assert to_file_size(1536) == "1.5 KB"
    assert to_file_size(1024 * 1024) == "1.0 MB"
    assert to_file_size(-2048) == "-2.0 KB"

    assert validate_file_path("Resources.resx").is_valid
    assert validate_file_path("Resources.resx").value.is_absolute()
    assert not validate_file_path(None).is_valid
    assert not validate_file_path("   ").is_valid
    assert not validate_file_path("a<b.resx").is_valid
    assert "maximum length" in validate_file_path("y" * 261).error_message

    assert safe_delete(None) is False
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / "t.bin"
        target.write_bytes(b'1')
        assert safe_delete(target) is True
        assert safe_delete(target) is False

    Print("SUCCESS", "Utilities work")


def main():
    """Run all tests and print a summary."""
    Print("HEADER", "Compression Engine Tests")
    print("=" * 60)

    tests = [
        ("Registry", test_registry),
        ("Pillow PNG Lossless", test_pillow_engine_png_lossless),
        ("Pillow Edge Cases", test_pillow_engine_lossy_and_unreadable),
        ("Pillow JPEG", test_pillow_engine_jpeg),
        ("External Missing Binary", test_external_engine_missing_binary),
        ("Adapter", test_adapter_success_and_cleanup),
        ("CompressionResult", test_compression_result),
        ("Utilities", test_utilities),
    ]

    all_passed = True
    for name, test in tests:
        try:
            test()
            passed = True
        except AssertionError as e:
            Print("FAILURE", f"{name}: {e}")
            passed = False
        symbol = "✓" if passed else "✗"
        print(f"  {symbol} {name}: {'PASSED' if passed else 'FAILED'}")
        all_passed = all_passed and passed

    print()
    if all_passed:
        Print("COMPLETED", "All compression tests passed!")
        sys.exit(0)
    else:
        Print("FAILURE", "Some tests failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
