"""
inkpatch - annotate PDF pages and bake the annotations into an exported copy.
"""
from .config import CacheSettings, ExportSettings, ToolSettings
from .errors import (
    AssetUnavailable,
    BoundsError,
    DecodeError,
    ExportError,
    InkpatchError,
)

__version__ = "0.3.0"

__all__ = [
    'CacheSettings',
    'ExportSettings',
    'ToolSettings',
    'InkpatchError',
    'DecodeError',
    'AssetUnavailable',
    'BoundsError',
    'ExportError',
]
