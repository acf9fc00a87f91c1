"""
Image Compressor Registry for resxshrink

Factory pattern with decorator-based registration.

Usage:
    # In compressor implementation:
    @register_compressor("pillow")
    class PillowCompressorFactory:
        @staticmethod
        def create(config: dict) -> ImageCompressor:
            return PillowCompressor(config)

    # To get a compressor:
    compressor = get_compressor("pillow", config)
"""

from typing import Dict, Callable
from .base import ImageCompressor, CompressionMode, CompressionResult

# Global registry of image compressor factories
COMPRESSOR_REGISTRY: Dict[str, Callable[[dict], ImageCompressor]] = {}


def register_compressor(name: str):
    """
    Decorator to register image compressor factories.

    Args:
        name: Unique identifier for this compressor

    Returns:
        Decorator function that registers the factory class

    Example:
        @register_compressor("pillow")
        class PillowCompressorFactory:
            @staticmethod
            def create(config: dict):
                return PillowCompressor(config)
    """
    def decorator(factory_class):
        COMPRESSOR_REGISTRY[name] = factory_class.create
        return factory_class
    return decorator


def get_compressor(name: str, config: dict) -> ImageCompressor:
    """
    Get an image compressor instance by name.

    Args:
        name: Compressor identifier (must be registered)
        config: Compressor-specific configuration dictionary

    Returns:
        Initialized image compressor instance

    Raises:
        ValueError: If compressor name is not registered
    """
    if name not in COMPRESSOR_REGISTRY:
        available = ', '.join(COMPRESSOR_REGISTRY.keys()) if COMPRESSOR_REGISTRY else 'none'
        raise ValueError(
            f"Unknown compressor: '{name}'. "
            f"Available compressors: {available}"
        )
    return COMPRESSOR_REGISTRY[name](config)


# Import engines to trigger registration
from . import pillow_engine  # noqa: E402,F401
from . import external  # noqa: E402,F401

__all__ = [
    'COMPRESSOR_REGISTRY',
    'CompressionMode',
    'CompressionResult',
    'ImageCompressor',
    'get_compressor',
    'register_compressor',
]
