"""
Bakes annotations into an exported copy of the source document.

Every page is drawn with its rotation temporarily reset to 0, so all
drawing happens in the unrotated page frame. Annotations are stored in the
visual frame and mapped through to_export_space with the page's final
rotation; the final rotation is written back once the page is done.
"""
import logging
import re
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF
from PyQt5.QtCore import QObject, pyqtSignal

from ...config import CacheSettings, ExportSettings
from ...errors import AssetUnavailable, BoundsError, DecodeError
from ..annotations.models import (
    Annotation,
    AnnotationType,
    ImageData,
    ShapeData,
    ShapeType,
    StrokeData,
    TextData,
    paint_order,
)
from ..annotations.native_edit import redaction_rects
from ..page.coordinates import export_to_fitz_rect, normalize_rotation, to_export_space
from ..page.models import PageInfo, Rect
from .assets import AssetCache, ImageDecoder
from .fonts import FALLBACK_FONT_NAME, FontProvider, TextMetrics, needs_unicode_font

logger = logging.getLogger(__name__)

Color = Tuple[float, float, float]

WHITE: Color = (1.0, 1.0, 1.0)
BLACK: Color = (0.0, 0.0, 0.0)
YELLOW: Color = (1.0, 1.0, 0.0)

_RGB_FUNC = re.compile(r"rgba?\s*\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)")


def parse_color(value: Optional[str], default: Color = BLACK) -> Color:
    """
    Parse '#RRGGBB', '#RGB' or 'rgb(a)(r, g, b[, a])' into PyMuPDF's 0-1 range.

    Anything else falls back to default.
    """
    if not value or not isinstance(value, str):
        return default
    text = value.strip()

    if text.startswith('#'):
        digits = text[1:]
        if len(digits) == 3:
            digits = "".join(c * 2 for c in digits)
        if len(digits) >= 6:
            try:
                return tuple(int(digits[i:i + 2], 16) / 255.0 for i in (0, 2, 4))
            except ValueError:
                return default
        return default

    match = _RGB_FUNC.match(text.lower())
    if match:
        return tuple(min(255, int(part)) / 255.0 for part in match.groups())

    return default


def is_transparent(value: Optional[str]) -> bool:
    return not value or value.strip().lower() == "transparent"


class PagePainter:
    """
    Draws visual-space geometry onto one page in its unrotated frame.

    The caller must have reset the page rotation to 0 beforehand.
    """

    def __init__(self, page: fitz.Page, rotation: int, metrics: TextMetrics,
                 settings: ExportSettings, warn: Callable[[str], None]):
        self.page = page
        self.rotation = normalize_rotation(rotation)
        self.metrics = metrics
        self.settings = settings
        self.warn = warn
        self.width = page.rect.width
        self.height = page.rect.height
        self._fallback_inserted = False

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def to_fitz_rect(self, rect: Rect) -> fitz.Rect:
        export = to_export_space(rect.x, rect.y, rect.width, rect.height,
                                 self.width, self.height, self.rotation)
        return export_to_fitz_rect(export, self.height)

    def to_fitz_point(self, x: float, y: float) -> fitz.Point:
        rect = self.to_fitz_rect(Rect(x, y, 0.0, 0.0))
        return fitz.Point(rect.x0, rect.y0)

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def white_out(self, rect: Rect) -> None:
        """Paint an opaque white rectangle (visual space)."""
        shape = self.page.new_shape()
        shape.draw_rect(self.to_fitz_rect(rect))
        shape.finish(color=None, fill=WHITE, width=0)
        shape.commit()

    def _ensure_fallback_font(self) -> bool:
        if self._fallback_inserted:
            return True
        data = self.metrics.fonts.fallback_bytes()
        if data is None:
            return False
        self.page.insert_font(fontname=FALLBACK_FONT_NAME, fontbuffer=data)
        self._fallback_inserted = True
        return True

    def draw_text_line(self, line: str, x: float, baseline_y: float, font_size: float,
                       font_family: str, color: Color, bold: bool = False,
                       italic: bool = False) -> bool:
        """
        Draw one line of text starting at a visual baseline point.

        Runs the base font cannot encode use the fallback font when it is
        available, otherwise they were already reduced to '?'.

        Returns:
            True if part of the line was drawn with the fallback font
        """
        used_fallback = False
        offset = 0.0
        for text, fontname in self.metrics.line_runs(line, font_family, bold, italic):
            if fontname is None:
                if not self._ensure_fallback_font():
                    continue
                used_fallback = True
                draw_name = FALLBACK_FONT_NAME
            else:
                draw_name = fontname

            point = self.to_fitz_point(x + offset, baseline_y)
            self.page.insert_text(point, text, fontsize=font_size, fontname=draw_name,
                                  color=color, rotate=self.rotation)
            offset += self.metrics.run_width(text, fontname, font_size)
        return used_fallback

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    def redact_text(self, data: TextData) -> None:
        for rect in redaction_rects(data, self.metrics, self.settings.redaction_pad):
            self.white_out(rect)

    def draw_text(self, annotation: Annotation) -> None:
        data: TextData = annotation.data
        if not data.text:
            return

        font_size = data.font_size or self.settings.default_font_size
        line_height = font_size * self.settings.line_height
        ascent = self.metrics.ascender(data.font_family, data.is_bold, data.is_italic) * font_size
        color = parse_color(data.color)

        used_fallback = False
        for index, line in enumerate(data.lines):
            if not line:
                continue
            baseline = data.y_top + index * line_height + ascent
            used_fallback |= self.draw_text_line(line, data.x, baseline, font_size,
                                                 data.font_family, color,
                                                 data.is_bold, data.is_italic)

        if used_fallback and data.is_bold:
            self.warn(f"Text {annotation.id}: the fallback font has no bold instance; "
                      f"drawn with regular weight")

    def draw_stroke(self, annotation: Annotation) -> None:
        data: StrokeData = annotation.data
        kind = annotation.type
        if not data.points or (len(data.points) < 2 and kind != AnnotationType.ERASER):
            return

        opacity = 1.0
        if kind == AnnotationType.HIGHLIGHT:
            raw = (data.color or "").strip().lower()
            color = parse_color(data.color, YELLOW)
            # Named colours would otherwise export as black
            if raw and not raw.startswith('#') and not raw.startswith('rgb'):
                color = YELLOW
            opacity = data.opacity if data.opacity is not None else 0.3
            width = data.size or 10.0
        elif kind == AnnotationType.ERASER:
            color = WHITE
            width = data.size or 10.0
        else:
            color = parse_color(data.color)
            width = data.thickness or data.size or 2.0

        points = [self.to_fitz_point(p.x, p.y) for p in data.points]
        shape = self.page.new_shape()
        if len(points) > 1:
            shape.draw_polyline(points)
            shape.finish(color=color, width=width, lineCap=1, lineJoin=1,
                         closePath=False, stroke_opacity=opacity)

        # Round dots at every sample cover gaps between fast eraser strokes
        if kind == AnnotationType.ERASER:
            for point in points:
                shape.draw_circle(point, width / 2.0)
            shape.finish(color=None, fill=WHITE, width=0)
        shape.commit()

    def draw_shape(self, annotation: Annotation) -> None:
        data: ShapeData = annotation.data
        border = parse_color(data.border_color)
        fill = None if is_transparent(data.fill_color) else parse_color(data.fill_color)
        width = data.border_width if data.border_width is not None else 2.0
        stroke = border if width > 0 else None

        shape = self.page.new_shape()
        if data.shape_type == ShapeType.LINE:
            start = self.to_fitz_point(data.x, data.y)
            end = self.to_fitz_point(data.x + data.width, data.y + data.height)
            shape.draw_line(start, end)
            shape.finish(color=border, width=width, lineCap=1, closePath=False)
        else:
            rect = self.to_fitz_rect(data.rect)
            if data.shape_type == ShapeType.CIRCLE:
                shape.draw_oval(rect)
            else:
                shape.draw_rect(rect)
            shape.finish(color=stroke, fill=fill, width=width)
        shape.commit()

    def draw_image(self, annotation: Annotation, images: ImageDecoder) -> None:
        data: ImageData = annotation.data
        try:
            image = images.decode(annotation.id, data.image_data)
        except AssetUnavailable as e:
            self.warn(f"Skipping image {annotation.id}: {e}")
            return
        if data.width <= 0 or data.height <= 0:
            self.warn(f"Skipping image {annotation.id}: empty box")
            return

        self.page.insert_image(self.to_fitz_rect(data.rect), stream=image.data,
                               rotate=self.rotation, keep_proportion=False)

    def draw(self, annotation: Annotation, images: ImageDecoder) -> None:
        if annotation.type == AnnotationType.TEXT:
            self.draw_text(annotation)
        elif annotation.type == AnnotationType.SHAPE:
            self.draw_shape(annotation)
        elif annotation.type == AnnotationType.IMAGE:
            self.draw_image(annotation, images)
        else:
            self.draw_stroke(annotation)


def strip_annotations(page: fitz.Page) -> int:
    """Delete every annotation (form borders, comments) from a page."""
    removed = 0
    annot = page.first_annot
    while annot:
        annot = page.delete_annot(annot)
        removed += 1
    return removed


class ExportMerger(QObject):
    """Merges annotations and page layout into a new PDF."""

    progress_signal = pyqtSignal(int, int)  # current, total pages
    warning_signal = pyqtSignal(str)

    def __init__(self, settings: Optional[ExportSettings] = None,
                 cache_settings: Optional[CacheSettings] = None,
                 metrics: Optional[TextMetrics] = None):
        super().__init__()
        self.settings = settings or ExportSettings()
        cache_settings = cache_settings or CacheSettings()
        self.metrics = metrics or TextMetrics(FontProvider(self.settings.fallback_font_path),
                                              self.settings.line_height)
        # Failed decodes stay cached for the merger's lifetime
        self.images = ImageDecoder(AssetCache(cache_settings.image_capacity))
        self.warnings: List[str] = []

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)
        self.warning_signal.emit(message)

    def merge(self, document_bytes: bytes, pages: Sequence[PageInfo],
              annotations: Sequence[Annotation]) -> bytes:
        """
        Produce the exported document.

        Args:
            document_bytes: Source PDF; may be empty when every page is blank
            pages: Page slots in output order
            annotations: Live annotations

        Returns:
            Bytes of the output PDF

        Raises:
            DecodeError: If the source cannot be opened
            BoundsError: If an annotation references an unknown page or a
                page references a missing original page
        """
        self.warnings = []
        page_ids = {info.id for info in pages}
        for ann in annotations:
            if ann.page_id not in page_ids:
                raise BoundsError(f"Annotation {ann.id} references unknown page {ann.page_id}")

        by_page: Dict[str, List[Annotation]] = {}
        for ann in paint_order(list(annotations)):
            by_page.setdefault(ann.page_id, []).append(ann)

        if any(ann.type == AnnotationType.TEXT and needs_unicode_font(ann.data.text)
               for ann in annotations):
            if self.metrics.fonts.fallback_bytes() is None:
                self._warn("Unicode fallback font unavailable; unsupported characters "
                           "are replaced by '?'")

        output = self._build_output(document_bytes, pages)
        try:
            total = len(pages)
            for index, info in enumerate(pages):
                self.progress_signal.emit(index, total)
                self._paint_page(output[index], info, by_page.get(info.id, []))
            self.progress_signal.emit(total, total)

            return output.tobytes(garbage=self.settings.garbage, deflate=self.settings.deflate)
        finally:
            output.close()

    def _build_output(self, document_bytes: bytes, pages: Sequence[PageInfo]) -> fitz.Document:
        needs_source = any(not info.is_blank for info in pages)
        source = None
        if needs_source:
            try:
                source = fitz.open(stream=document_bytes, filetype="pdf")
            except Exception as e:
                raise DecodeError(f"Cannot open source document: {e}") from e

        output = fitz.open()
        try:
            blank_w, blank_h = self.settings.blank_page_size
            for info in pages:
                if info.is_blank:
                    output.new_page(width=info.width or blank_w, height=info.height or blank_h)
                    continue
                index = info.original_index - 1
                if index >= source.page_count:
                    raise BoundsError(
                        f"Page {info.id} references original page {info.original_index}, "
                        f"source has {source.page_count}"
                    )
                output.insert_pdf(source, from_page=index, to_page=index)
        except Exception:
            output.close()
            raise
        finally:
            if source is not None:
                source.close()
        return output

    def _paint_page(self, page: fitz.Page, info: PageInfo,
                    annotations: List[Annotation]) -> None:
        if self.settings.strip_existing_annotations:
            removed = strip_annotations(page)
            if removed:
                logger.debug("Removed %d existing annotations from page %s", removed, info.id)

        page.set_rotation(0)
        painter = PagePainter(page, info.rotation, self.metrics, self.settings, self._warn)

        # White-outs first, so no annotation's cover hides another one's content
        for ann in annotations:
            if ann.type == AnnotationType.TEXT:
                painter.redact_text(ann.data)

        for ann in annotations:
            painter.draw(ann, self.images)

        page.set_rotation(info.rotation)
