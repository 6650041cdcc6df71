"""
Page geometry, page slots and original-text layers.
"""
from .coordinates import (
    document_to_screen,
    from_export_space,
    normalize_rotation,
    screen_to_document,
    to_export_space,
)
from .models import NativeTextItem, PageInfo, PageKind, Point, Rect, TextGroup
from .text_layer import TextLayerState, extract_text_items, group_text_items

__all__ = [
    'document_to_screen',
    'from_export_space',
    'normalize_rotation',
    'screen_to_document',
    'to_export_space',
    'NativeTextItem',
    'PageInfo',
    'PageKind',
    'Point',
    'Rect',
    'TextGroup',
    'TextLayerState',
    'extract_text_items',
    'group_text_items',
]
