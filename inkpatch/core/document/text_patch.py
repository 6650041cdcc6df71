"""
Direct text replacement on a single page, outside the annotation store.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

import fitz  # PyMuPDF

from ...config import ExportSettings
from ...errors import BoundsError, DecodeError
from ..annotations.models import TextData
from ..page.models import Rect
from .fonts import FontProvider, TextMetrics
from .pdf_exporter import PagePainter, parse_color

logger = logging.getLogger(__name__)


@dataclass
class TextModification:
    """Replacement of one run of original text, in visual page space."""
    text: str
    original_text: str
    x: float
    y_top: float
    baseline_y: float
    width: float
    height: float
    font_size: float
    font_family: str = "Helvetica"
    color: str = "#000000"

    @property
    def origin(self) -> Rect:
        return Rect(self.x, self.y_top, self.width, self.height)

    def as_text_data(self) -> TextData:
        return TextData(
            text=self.text,
            x=self.x,
            y_top=self.y_top,
            font_size=self.font_size,
            font_family=self.font_family,
            color=self.color,
            is_native_edit=True,
            native_edit_origin=self.origin,
        )


def modify_page_text(pdf_bytes: bytes, page_index: int,
                     modifications: List[TextModification], rotation: int = 0,
                     settings: Optional[ExportSettings] = None,
                     metrics: Optional[TextMetrics] = None) -> bytes:
    """
    Redact original text on one page and draw replacement text over it.

    Args:
        pdf_bytes: Source PDF
        page_index: 0-based page index
        modifications: Replacements to apply
        rotation: Rotation the coordinates refer to; also set on the page
        settings: Export options (pad, fallback font)
        metrics: Text metrics; built from settings when omitted

    Returns:
        Bytes of the modified PDF

    Raises:
        DecodeError: If pdf_bytes cannot be opened
        BoundsError: If page_index is out of range
    """
    settings = settings or ExportSettings()
    metrics = metrics or TextMetrics(FontProvider(settings.fallback_font_path),
                                     settings.line_height)

    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        raise DecodeError(f"Cannot open document: {e}") from e

    try:
        if page_index < 0 or page_index >= doc.page_count:
            raise BoundsError(f"Page index {page_index} out of bounds "
                              f"(document has {doc.page_count} pages)")

        page = doc[page_index]
        page.set_rotation(0)
        painter = PagePainter(page, rotation, metrics, settings, logger.warning)

        for mod in modifications:
            painter.redact_text(mod.as_text_data())

        for mod in modifications:
            if not mod.text:
                continue
            painter.draw_text_line(mod.text, mod.x, mod.baseline_y, mod.font_size,
                                   mod.font_family, parse_color(mod.color))

        page.set_rotation(painter.rotation)
        return doc.tobytes(garbage=settings.garbage, deflate=settings.deflate)
    finally:
        doc.close()
