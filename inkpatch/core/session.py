"""
Editor session: the command surface a UI drives.

The session owns the page list, the annotation store and the text layer
of one open document, and keeps them consistent with each other.
"""
import itertools
import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from PyQt5.QtCore import QObject, pyqtSignal

from ..config import CacheSettings, ExportSettings, ToolSettings
from ..errors import BoundsError
from .annotations.manager import AnnotationStore
from .annotations.models import (Annotation, AnnotationData, AnnotationType, ShapeData,
                                 ShapeType, StrokeData, TextData)
from .annotations.native_edit import NativeTextEditor
from .annotations.persistence import AnnotationPersistence
from .document.fonts import FontProvider, TextMetrics
from .document.pdf_exporter import ExportMerger
from .document.pdf_reader import PDFDocumentReader
from .export.export_worker import ExportWorker
from .page.coordinates import normalize_rotation
from .page.models import PageInfo, PageKind, Point
from .page.text_layer import TextLayerState

logger = logging.getLogger(__name__)

# Drags shorter than this, in points, do not create a shape
MIN_SHAPE_DRAG = 5.0


class EditorSession(QObject):
    """One open document with its pages, annotations and text layer."""

    pages_changed = pyqtSignal()
    export_finished = pyqtSignal(bool, str)  # success, message

    def __init__(self, reader: Optional[PDFDocumentReader] = None,
                 tool_settings: Optional[ToolSettings] = None,
                 export_settings: Optional[ExportSettings] = None,
                 cache_settings: Optional[CacheSettings] = None,
                 persistence: Optional[AnnotationPersistence] = None,
                 parent=None):
        super().__init__(parent)
        self.reader = reader or PDFDocumentReader()
        self.tool_settings = tool_settings or ToolSettings()
        self.export_settings = export_settings or ExportSettings()
        self.cache_settings = cache_settings or CacheSettings()
        self.persistence = persistence or AnnotationPersistence()

        self.store = AnnotationStore()
        self.text_layer = TextLayerState()
        self.metrics = TextMetrics(FontProvider(self.export_settings.fallback_font_path),
                                   self.export_settings.line_height)
        self.native_editor = NativeTextEditor(self.store, self.metrics,
                                              self.tool_settings.text_color)

        self.pages: List[PageInfo] = []
        # Annotation the UI should open in edit mode once it is displayed
        self.pending_edit_id: Optional[str] = None
        self.last_export_warnings: List[str] = []

        self._blank_ids = itertools.count(1)
        self._export_generation = 0
        self._export_worker: Optional[ExportWorker] = None

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------

    def open_document(self, source: Union[bytes, str]) -> int:
        """
        Open a source PDF and reset pages and annotations.

        Raises:
            DecodeError: If the document cannot be opened
        """
        count = self.reader.load(source)
        self.pages = self.reader.page_infos()
        self.store.clear()
        for info in self.pages:
            self.text_layer.forget(info.id)
        self.pending_edit_id = None
        self.pages_changed.emit()
        return count

    def page(self, page_id: str) -> PageInfo:
        """
        Look up a page slot.

        Raises:
            BoundsError: If there is no such page
        """
        for info in self.pages:
            if info.id == page_id:
                return info
        raise BoundsError(f"Unknown page {page_id}")

    def page_index(self, page_id: str) -> int:
        for index, info in enumerate(self.pages):
            if info.id == page_id:
                return index
        raise BoundsError(f"Unknown page {page_id}")

    def page_size(self, page_id: str):
        """Unrotated size of a page slot in points."""
        return self.reader.info_size(self.page(page_id), self.export_settings.blank_page_size)

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    def add_annotation(self, annotation_type: AnnotationType, page_id: str,
                       data: AnnotationData, open_editor: bool = False) -> Annotation:
        """
        Create an annotation on a page.

        Args:
            annotation_type: Kind of annotation
            page_id: Page slot it belongs to
            data: Payload, in the page's visual frame
            open_editor: Mark the new annotation as pending edit

        Raises:
            BoundsError: If the page does not exist
        """
        self.page(page_id)
        annotation = self.store.add(Annotation.create(annotation_type, page_id, data))
        if open_editor:
            self.pending_edit_id = annotation.id
        return annotation

    def add_text(self, page_id: str, x: float, y_top: float, text: str = "",
                 open_editor: bool = True) -> Annotation:
        """Place a text box using the current text tool settings."""
        tools = self.tool_settings
        data = TextData(text=text, x=x, y_top=y_top, font_size=tools.font_size,
                        font_family=tools.font_family, color=tools.text_color)
        return self.add_annotation(AnnotationType.TEXT, page_id, data, open_editor=open_editor)

    def add_stroke(self, annotation_type: AnnotationType, page_id: str,
                   points: Sequence[Union[Point, Tuple[float, float]]]) -> Optional[Annotation]:
        """
        Commit a freehand, highlight or eraser stroke with the tool defaults.

        Strokes of two points or fewer are treated as stray clicks and dropped.

        Returns:
            The new annotation, or None if the stroke was discarded

        Raises:
            ValueError: If the type is not a stroke tool
        """
        tools = self.tool_settings
        if annotation_type == AnnotationType.DRAW:
            style = dict(color=tools.draw_color, size=tools.draw_thickness,
                         thickness=tools.draw_thickness)
        elif annotation_type == AnnotationType.HIGHLIGHT:
            style = dict(color=tools.highlight_color, size=tools.highlight_size,
                         opacity=tools.highlight_opacity)
        elif annotation_type == AnnotationType.ERASER:
            style = dict(size=tools.eraser_size)
        else:
            raise ValueError(f"{annotation_type.value} is not a stroke tool")

        path = [p if isinstance(p, Point) else Point(float(p[0]), float(p[1])) for p in points]
        if len(path) <= 2:
            return None
        return self.add_annotation(annotation_type, page_id, StrokeData(points=path, **style))

    def add_shape(self, page_id: str, shape_type: ShapeType, x: float, y: float,
                  width: float, height: float) -> Optional[Annotation]:
        """
        Commit a dragged shape with the current border and fill settings.

        Returns None when the drag was shorter than the minimum distance.
        """
        if math.hypot(width, height) < MIN_SHAPE_DRAG:
            return None
        tools = self.tool_settings
        data = ShapeData(shape_type, x, y, width, height,
                         border_color=tools.shape_border_color,
                         border_width=tools.shape_border_width,
                         fill_color=tools.shape_fill_color)
        return self.add_annotation(AnnotationType.SHAPE, page_id, data)

    def remove_annotation(self, annotation_id: str) -> bool:
        removed = self.store.remove(annotation_id)
        if removed and self.pending_edit_id == annotation_id:
            self.pending_edit_id = None
        return removed

    def update_annotation(self, annotation_id: str,
                          partial_data: Dict[str, Any]) -> Optional[Annotation]:
        return self.store.update(annotation_id, partial_data)

    def undo(self) -> bool:
        done = self.store.undo()
        self._drop_stale_pending()
        return done

    def redo(self) -> bool:
        done = self.store.redo()
        self._drop_stale_pending()
        return done

    def take_pending_edit(self) -> Optional[Annotation]:
        """Return the annotation waiting to be edited and clear the flag."""
        pending = self.store.get(self.pending_edit_id) if self.pending_edit_id else None
        self.pending_edit_id = None
        return pending

    def _drop_stale_pending(self) -> None:
        if self.pending_edit_id and self.store.get(self.pending_edit_id) is None:
            self.pending_edit_id = None

    # ------------------------------------------------------------------
    # Native text
    # ------------------------------------------------------------------

    def click_text_group(self, page_id: str, group_id: str) -> Annotation:
        """
        Start (or resume) editing an original text group.

        Raises:
            BoundsError: If the page does not exist
            KeyError: If the group is not in the page's text layer
        """
        self.page(page_id)
        group = self.text_layer.find_group(page_id, group_id)
        if group is None:
            raise KeyError(f"No text group {group_id} on page {page_id}")

        annotation = self.native_editor.begin_edit(page_id, group)
        self.pending_edit_id = annotation.id
        self.store.select(annotation.id)
        return annotation

    def load_text_layer(self, page_id: str) -> int:
        """
        Extract the text of a page synchronously.

        Returns:
            Number of text groups found
        """
        info = self.page(page_id)
        generation = self.text_layer.begin(page_id)
        items = [] if info.is_blank else self.reader.text_items(info.original_index, info.rotation)
        self.text_layer.apply(page_id, generation, items)
        return len(self.text_layer.groups_for_page(page_id))

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def rotate_page(self, page_id: str, delta: int = 90) -> int:
        """
        Rotate a page slot by a multiple of 90 degrees.

        Stored annotation geometry is left as it is.

        Returns:
            The new rotation
        """
        info = self.page(page_id)
        info.rotation = normalize_rotation(info.rotation + delta)
        # Text runs are reported in the visual frame, which just changed
        self.text_layer.forget(page_id)
        self.pages_changed.emit()
        return info.rotation

    def insert_blank_page(self, index: Optional[int] = None, width: Optional[float] = None,
                          height: Optional[float] = None) -> PageInfo:
        """Insert a blank page slot; appended when index is None."""
        default_w, default_h = self.export_settings.blank_page_size
        existing = {info.id for info in self.pages}
        page_id = f"blank-{next(self._blank_ids)}"
        while page_id in existing:
            page_id = f"blank-{next(self._blank_ids)}"

        info = PageInfo(id=page_id, kind=PageKind.BLANK, width=width or default_w,
                        height=height or default_h)
        if index is None:
            self.pages.append(info)
        else:
            if not 0 <= index <= len(self.pages):
                raise BoundsError(f"Insert position {index} out of range")
            self.pages.insert(index, info)
        self.pages_changed.emit()
        return info

    def remove_page(self, page_id: str) -> int:
        """
        Remove a page slot together with all of its annotations.

        Returns:
            Number of live annotations removed

        Raises:
            BoundsError: If the page does not exist
            ValueError: If it is the last remaining page
        """
        index = self.page_index(page_id)
        if len(self.pages) == 1:
            raise ValueError("Cannot remove the last page")

        del self.pages[index]
        removed = self.store.purge_page(page_id)
        self.text_layer.forget(page_id)
        self._drop_stale_pending()
        self.pages_changed.emit()
        logger.debug("Removed page %s and %d annotations", page_id, removed)
        return removed

    def move_page(self, page_id: str, new_index: int) -> None:
        """Move a page slot to another position."""
        index = self.page_index(page_id)
        if not 0 <= new_index < len(self.pages):
            raise BoundsError(f"Target position {new_index} out of range")
        info = self.pages.pop(index)
        self.pages.insert(new_index, info)
        self.pages_changed.emit()

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_document(self, pages: Optional[Sequence[PageInfo]] = None,
                        annotations: Optional[Sequence[Annotation]] = None) -> bytes:
        """
        Merge annotations into the source document and return the bytes.

        Args:
            pages: Page slots; defaults to the session's pages
            annotations: Annotations; defaults to the live set
        """
        merger = ExportMerger(self.export_settings, self.cache_settings, self.metrics)
        data = merger.merge(self.reader.source_bytes or b"",
                            self.pages if pages is None else pages,
                            self.store.annotations if annotations is None else annotations)
        self.last_export_warnings = list(merger.warnings)
        return data

    def export_to_file(self, output_path: str, start: bool = True) -> ExportWorker:
        """
        Export in a worker thread and write the result to output_path.

        Only the newest export reports through export_finished; completions
        of superseded exports are ignored.
        """
        self._export_generation += 1
        generation = self._export_generation
        worker = ExportWorker(self.reader.source_bytes or b"", output_path, self.pages,
                              self.store.annotations, generation,
                              self.export_settings, self.cache_settings)
        worker.finished.connect(
            lambda ok, message: self._on_export_finished(generation, ok, message)
        )
        self._export_worker = worker
        if start:
            worker.start()
        return worker

    def _on_export_finished(self, generation: int, ok: bool, message: str) -> None:
        if generation != self._export_generation:
            logger.debug("Ignoring superseded export %d", generation)
            return
        if self._export_worker is not None:
            self.last_export_warnings = list(self._export_worker.warnings)
        self._export_worker = None
        self.export_finished.emit(ok, message)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_annotations(self, file_path: Optional[str] = None) -> str:
        """Save pages and annotations; returns the written path."""
        path = self.persistence.save(self.pages, self.store.annotations,
                                     pdf_path=self.reader.current_file_path,
                                     file_path=file_path)
        self.store.mark_saved()
        return path

    def load_annotations(self, file_path: Optional[str] = None) -> int:
        """
        Replace pages and annotations with a saved set.

        Returns:
            Number of annotations loaded

        Raises:
            FileNotFoundError: If there is no saved file
            DecodeError: If the file is malformed
            BoundsError: If it references pages the document does not have
        """
        pages, annotations = self.persistence.load(self.reader.current_file_path, file_path)
        if not pages:
            pages = self.reader.page_infos()

        for info in pages:
            if not info.is_blank and info.original_index > self.reader.page_count:
                raise BoundsError(f"Saved page {info.id} references original page "
                                  f"{info.original_index}, document has {self.reader.page_count}")
        page_ids = {info.id for info in pages}
        for ann in annotations:
            if ann.page_id not in page_ids:
                raise BoundsError(f"Saved annotation {ann.id} references unknown page {ann.page_id}")

        for info in self.pages:
            self.text_layer.forget(info.id)
        self.pages = pages
        self.pending_edit_id = None
        self.store.replace_all(annotations)
        self.pages_changed.emit()
        return len(annotations)

    def has_unsaved_changes(self) -> bool:
        return self.store.has_unsaved_changes()
