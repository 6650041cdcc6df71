"""
PDF document handling: reading, rendering, fonts, assets and export.
"""
from .assets import UNAVAILABLE, AssetCache, DecodedImage, ImageDecoder, decode_image_bytes
from .fonts import FontProvider, TextMetrics, needs_unicode_font, to_latin_safe
from .pdf_exporter import ExportMerger, PagePainter, parse_color
from .pdf_reader import PDFDocumentReader
from .pdf_tools import images_to_pdf, merge_documents, split_document
from .render_worker import PageRenderWorker, RenderScheduler
from .text_patch import TextModification, modify_page_text

__all__ = [
    'UNAVAILABLE',
    'AssetCache',
    'DecodedImage',
    'ImageDecoder',
    'decode_image_bytes',
    'FontProvider',
    'TextMetrics',
    'needs_unicode_font',
    'to_latin_safe',
    'ExportMerger',
    'PagePainter',
    'parse_color',
    'PDFDocumentReader',
    'images_to_pdf',
    'merge_documents',
    'split_document',
    'PageRenderWorker',
    'RenderScheduler',
    'TextModification',
    'modify_page_text',
]
