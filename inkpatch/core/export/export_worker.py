import logging
import os
import shutil
import tempfile
from typing import List, Optional

from PyQt5.QtCore import QThread, pyqtSignal

from ...config import CacheSettings, ExportSettings
from ...errors import ExportError, InkpatchError
from ..annotations.models import Annotation
from ..document.pdf_exporter import ExportMerger
from ..page.models import PageInfo

logger = logging.getLogger(__name__)


class ExportWorker(QThread):
    """Worker thread that merges annotations and writes the result to disk."""

    # Signals
    finished = pyqtSignal(bool, str)  # success, message
    progress = pyqtSignal(str)  # status message
    page_progress = pyqtSignal(int, int)  # current, total pages

    def __init__(self, source_bytes: bytes, output_pdf: str, pages: List[PageInfo],
                 annotations: List[Annotation], generation: int = 0,
                 settings: Optional[ExportSettings] = None,
                 cache_settings: Optional[CacheSettings] = None, parent=None):
        super().__init__(parent)
        self.source_bytes = source_bytes
        self.output_pdf = output_pdf
        self.pages = list(pages)
        self.annotations = list(annotations)
        self.generation = generation
        self.temp_path: Optional[str] = None
        self.error: Optional[Exception] = None
        self.merger = ExportMerger(settings, cache_settings)

    @property
    def warnings(self) -> List[str]:
        return self.merger.warnings

    def run(self):
        """Execute the export in a background thread."""
        self.merger.progress_signal.connect(self._on_page_progress)
        try:
            self.progress.emit("Exporting annotations...")
            data = self.merger.merge(self.source_bytes, self.pages, self.annotations)

            self.progress.emit("Finalizing...")
            self._write(data)
        except Exception as e:
            self.error = e
            if isinstance(e, InkpatchError):
                logger.error("Export to %s failed: %s", self.output_pdf, e)
            else:
                logger.exception("Unexpected error exporting to %s", self.output_pdf)
            self.finished.emit(False, f"Error during export: {e}")
            return

        self.finished.emit(True, f"Exported {len(self.pages)} pages to {self.output_pdf}")

    def _write(self, data: bytes) -> None:
        # A failed export never leaves a partial file at the target
        output_dir = os.path.dirname(os.path.abspath(self.output_pdf))
        try:
            temp_fd, self.temp_path = tempfile.mkstemp(suffix='.pdf', dir=output_dir)
        except OSError as e:
            raise ExportError(f"Cannot write {self.output_pdf}: {e}") from e

        try:
            with os.fdopen(temp_fd, 'wb') as f:
                f.write(data)
            shutil.move(self.temp_path, self.output_pdf)
        except OSError as e:
            if os.path.exists(self.temp_path):
                os.remove(self.temp_path)
            raise ExportError(f"Cannot write {self.output_pdf}: {e}") from e
        finally:
            self.temp_path = None

    def _on_page_progress(self, current, total):
        """Handle page-level progress updates."""
        self.page_progress.emit(current, total)
