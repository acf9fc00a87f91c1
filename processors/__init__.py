"""
Resource processors for resxshrink

Modules for locating, compressing and re-embedding images in .resx files.
"""

from .adapter import CompressionAdapter
from .resx import EntryResult, ResxImageOptimizer

__all__ = ['CompressionAdapter', 'EntryResult', 'ResxImageOptimizer']
