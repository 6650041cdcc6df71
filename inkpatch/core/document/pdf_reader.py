"""
PDF document loading, page metadata and rendering.
"""
import logging
from typing import List, Optional, Tuple, Union

import fitz  # PyMuPDF
from PyQt5.QtCore import Qt
from PyQt5.QtGui import QImage

from ...errors import BoundsError, DecodeError
from ..page.coordinates import normalize_rotation, visual_size
from ..page.models import NativeTextItem, PageInfo, PageKind
from ..page.text_layer import extract_text_items

logger = logging.getLogger(__name__)


class PDFDocumentReader:
    """Opens the source document and answers per-page questions about it."""

    def __init__(self):
        self.doc: Optional[fitz.Document] = None
        self.source_bytes: Optional[bytes] = None
        self.current_file_path: Optional[str] = None

    def load(self, source: Union[bytes, str]) -> int:
        """
        Load a PDF document from bytes or a file path.

        Args:
            source: PDF bytes or path to a PDF file

        Returns:
            Number of pages

        Raises:
            DecodeError: If the document cannot be opened; nothing of it is kept
        """
        self.close_document()

        try:
            if isinstance(source, (bytes, bytearray)):
                data = bytes(source)
                path = None
            else:
                with open(source, "rb") as f:
                    data = f.read()
                path = str(source)
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise DecodeError(f"Error loading PDF: {e}") from e

        if doc.page_count == 0:
            doc.close()
            raise DecodeError("Document has no pages")

        self.doc = doc
        self.source_bytes = data
        self.current_file_path = path
        logger.info("Loaded %s (%d pages)", path or "document", doc.page_count)
        return doc.page_count

    def close_document(self) -> None:
        """Close the current PDF document and clear all state."""
        if self.doc:
            self.doc.close()
        self.doc = None
        self.source_bytes = None
        self.current_file_path = None

    def is_loaded(self) -> bool:
        return self.doc is not None

    @property
    def page_count(self) -> int:
        return self.doc.page_count if self.doc else 0

    def get_page(self, original_index: int) -> fitz.Page:
        """
        Get a source page by its 1-based index.

        Raises:
            BoundsError: If no document is loaded or the index is out of range
        """
        if not self.doc or not 1 <= original_index <= self.doc.page_count:
            raise BoundsError(f"Original page {original_index} out of range "
                              f"(document has {self.page_count} pages)")
        return self.doc.load_page(original_index - 1)

    def page_infos(self, id_prefix: str = "page") -> List[PageInfo]:
        """Initial page slots: every source page in order, with its own rotation."""
        infos = []
        for index in range(self.page_count):
            page = self.doc.load_page(index)
            infos.append(PageInfo(
                id=f"{id_prefix}-{index + 1}",
                kind=PageKind.ORIGINAL,
                rotation=page.rotation,
                original_index=index + 1,
            ))
        return infos

    def page_size(self, original_index: int) -> Tuple[float, float]:
        """Size of the unrotated source page in points."""
        page = self.get_page(original_index)
        rect = page.rect
        if page.rotation in (90, 270):
            return rect.height, rect.width
        return rect.width, rect.height

    def info_size(self, info: PageInfo, blank_size: Tuple[float, float]) -> Tuple[float, float]:
        """Unrotated size of any page slot."""
        if info.is_blank:
            return info.width or blank_size[0], info.height or blank_size[1]
        return self.page_size(info.original_index)

    def text_items(self, original_index: int, rotation: Optional[int] = None) -> List[NativeTextItem]:
        """Text runs of a source page, in the visual frame of the given rotation."""
        return extract_text_items(self.get_page(original_index), rotation)

    def render_page(self, original_index: int, scale: float, rotation: Optional[int] = None) -> QImage:
        """
        Render a source page as displayed under a rotation.

        Args:
            original_index: 1-based page index
            scale: Zoom factor
            rotation: Display rotation; defaults to the page's own rotation

        Returns:
            Rendered page image
        """
        if scale <= 0:
            raise ValueError(f"Scale must be positive, got {scale}")
        page = self.get_page(original_index)
        if rotation is None:
            rotation = page.rotation
        # get_pixmap already applies the page's own rotation
        delta = (normalize_rotation(rotation) - page.rotation) % 360
        matrix = fitz.Matrix(scale, scale).prerotate(delta)

        pix = page.get_pixmap(matrix=matrix, alpha=False)
        img = QImage(pix.samples, pix.width, pix.height, pix.stride, QImage.Format_RGB888)
        # Detach from the pixmap buffer
        return img.copy()

    @staticmethod
    def render_blank(width: float, height: float, scale: float, rotation: int = 0) -> QImage:
        """White image the size of a blank page under a rotation."""
        vis_w, vis_h = visual_size(width, height, rotation)
        img = QImage(max(1, round(vis_w * scale)), max(1, round(vis_h * scale)),
                     QImage.Format_RGB888)
        img.fill(Qt.white)
        return img
