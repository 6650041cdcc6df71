"""
Annotation system for PDF documents.
"""
from .models import (
    Annotation,
    AnnotationType,
    ImageData,
    ShapeData,
    ShapeType,
    StrokeData,
    TextData,
    paint_order,
)
from .undo_redo import History
from .manager import AnnotationStore
from .persistence import AnnotationPersistence
from .native_edit import NativeTextEditor, redaction_rects

__all__ = [
    'Annotation',
    'AnnotationType',
    'ImageData',
    'ShapeData',
    'ShapeType',
    'StrokeData',
    'TextData',
    'paint_order',
    'History',
    'AnnotationStore',
    'AnnotationPersistence',
    'NativeTextEditor',
    'redaction_rects',
]
