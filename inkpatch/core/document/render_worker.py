"""
Background page rendering with stale-result rejection.
"""
import logging
from typing import Dict, Optional, Tuple

from PyQt5.QtCore import QObject, QThread, pyqtSignal

from ...config import ExportSettings
from ..page.models import PageInfo
from ..page.text_layer import TextLayerState
from .pdf_reader import PDFDocumentReader

logger = logging.getLogger(__name__)


class PageRenderWorker(QThread):
    """Worker thread rendering one page slot and extracting its text."""

    # Signals
    rendered = pyqtSignal(str, int, object, object)  # page_id, generation, QImage, text items
    error = pyqtSignal(str, int, str)  # page_id, generation, message

    def __init__(self, reader: PDFDocumentReader, info: PageInfo, scale: float,
                 generation: int, blank_size: Tuple[float, float] = (595.0, 842.0),
                 parent=None):
        super().__init__(parent)
        self._reader = reader
        self.info = info
        self.scale = scale
        self.generation = generation
        self._blank_size = blank_size
        self._cancelled = False

    def cancel(self):
        """Cancel the render; nothing is emitted afterwards."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def run(self):
        """Render the page in the background thread."""
        info = self.info
        try:
            if info.is_blank:
                width, height = self._reader.info_size(info, self._blank_size)
                image = self._reader.render_blank(width, height, self.scale, info.rotation)
                items = []
            else:
                image = self._reader.render_page(info.original_index, self.scale, info.rotation)
                if self._cancelled:
                    return
                items = self._reader.text_items(info.original_index, info.rotation)
        except Exception as e:
            logger.warning("Rendering page %s failed: %s", info.id, e)
            if not self._cancelled:
                self.error.emit(info.id, self.generation, str(e))
            return

        if not self._cancelled:
            self.rendered.emit(info.id, self.generation, image, items)


class RenderScheduler(QObject):
    """
    Issues page renders and keeps only the newest result per page.

    Each request bumps the page's generation and cancels the worker still
    running for it; a result that arrives with an older generation is
    dropped before it touches any state.
    """

    page_ready = pyqtSignal(str, object)  # page_id, QImage

    def __init__(self, reader: PDFDocumentReader, text_layer: Optional[TextLayerState] = None,
                 settings: Optional[ExportSettings] = None, parent=None):
        super().__init__(parent)
        self.reader = reader
        self.text_layer = text_layer or TextLayerState()
        self._blank_size = (settings or ExportSettings()).blank_page_size
        self._workers: Dict[str, PageRenderWorker] = {}
        self.images: Dict[str, object] = {}

    def request(self, info: PageInfo, scale: float, start: bool = True) -> PageRenderWorker:
        """
        Schedule a render of a page slot.

        Args:
            info: Page slot to render
            scale: Zoom factor
            start: Start the worker thread right away

        Returns:
            The worker carrying the new generation
        """
        previous = self._workers.get(info.id)
        if previous is not None:
            previous.cancel()

        generation = self.text_layer.begin(info.id)
        worker = PageRenderWorker(self.reader, info, scale, generation, self._blank_size)
        worker.rendered.connect(self._on_rendered)
        self._workers[info.id] = worker
        if start:
            worker.start()
        return worker

    def cancel(self, page_id: str) -> None:
        """Cancel the in-flight render of a page and forget its results."""
        worker = self._workers.pop(page_id, None)
        if worker is not None:
            worker.cancel()
        self.text_layer.forget(page_id)
        self.images.pop(page_id, None)

    def _on_rendered(self, page_id: str, generation: int, image, items) -> None:
        if not self.text_layer.apply(page_id, generation, items):
            return
        self.images[page_id] = image
        worker = self._workers.get(page_id)
        if worker is not None and worker.generation == generation:
            del self._workers[page_id]
        self.page_ready.emit(page_id, image)
