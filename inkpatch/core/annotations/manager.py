"""
Annotation store: the live annotation list, its history and the selection.
"""
import copy
import logging
from typing import Any, Dict, List, Optional

from PyQt5.QtCore import QObject, pyqtSignal

from .models import Annotation, AnnotationType, StrokeData, paint_order
from .undo_redo import History

logger = logging.getLogger(__name__)


class AnnotationStore(QObject):
    """Holds all annotations of a document with undo/redo support."""

    changed = pyqtSignal()  # live annotation list changed
    selection_changed = pyqtSignal(object)  # selected annotation id or None

    def __init__(self, max_history: Optional[int] = None, parent=None):
        super().__init__(parent)
        self.history = History(max_size=max_history)
        self.selected_id: Optional[str] = None
        # Snapshot considered saved, for change detection
        self._saved_state: List[dict] = []

    @property
    def annotations(self) -> List[Annotation]:
        """The live annotation list. Treat as read-only; mutate via the store."""
        return list(self.history.current)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, annotation: Annotation) -> Annotation:
        """
        Add a new annotation.

        Raises:
            ValueError: If an annotation with the same id already exists
        """
        if self.get(annotation.id) is not None:
            raise ValueError(f"Duplicate annotation id {annotation.id}")

        self._commit(self.annotations + [annotation])
        return annotation

    def remove(self, annotation_id: str) -> bool:
        """
        Remove an annotation by id.

        Returns:
            True if the annotation was found and removed
        """
        current = self.annotations
        remaining = [ann for ann in current if ann.id != annotation_id]
        if len(remaining) == len(current):
            return False

        if self.selected_id == annotation_id:
            self.select(None)
        self._commit(remaining)
        return True

    def update(self, annotation_id: str, partial_data: Dict[str, Any]) -> Optional[Annotation]:
        """
        Merge payload fields into an annotation.

        Every update is a history step of its own, including text edits.

        Args:
            annotation_id: Id of the annotation to change
            partial_data: Payload fields keyed by their JSON names

        Returns:
            The updated annotation, or None if the id is unknown
        """
        current = self.annotations
        for index, ann in enumerate(current):
            if ann.id == annotation_id:
                updated = ann.with_data(partial_data)
                current[index] = updated
                self._commit(current)
                return updated
        return None

    def purge_page(self, page_id: str) -> int:
        """
        Drop every annotation of a page from the live list and the history.

        Returns:
            Number of annotations removed from the live list
        """
        live = sum(1 for ann in self.history.current if ann.page_id == page_id)
        removed = self.history.purge(lambda ann: ann.page_id == page_id)
        selected = self.get(self.selected_id) if self.selected_id else None
        if self.selected_id and selected is None:
            self.select(None)
        if removed:
            logger.debug("Purged %d annotation snapshot entries for page %s", removed, page_id)
            self.changed.emit()
        return live

    def clear(self) -> None:
        """Remove all annotations and forget history."""
        self.history.reset()
        self._saved_state = []
        self.select(None)
        self.changed.emit()

    def replace_all(self, annotations: List[Annotation]) -> None:
        """Start over from a loaded annotation list, with fresh history."""
        self.history.reset(annotations)
        self.select(None)
        self.mark_saved()
        self.changed.emit()

    def _commit(self, annotations: List[Annotation]) -> None:
        self.history.push(annotations)
        self.changed.emit()

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def undo(self) -> bool:
        """Step back one mutation. No-op at the oldest state."""
        if not self.history.undo():
            return False
        self._drop_stale_selection()
        self.changed.emit()
        return True

    def redo(self) -> bool:
        """Step forward one mutation. No-op at the newest state."""
        if not self.history.redo():
            return False
        self._drop_stale_selection()
        self.changed.emit()
        return True

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def can_redo(self) -> bool:
        return self.history.can_redo()

    def _drop_stale_selection(self) -> None:
        if self.selected_id and self.get(self.selected_id) is None:
            self.select(None)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(self, annotation_id: Optional[str]) -> None:
        """Select an annotation by id, or clear the selection with None."""
        if annotation_id is not None and self.get(annotation_id) is None:
            raise KeyError(annotation_id)
        if annotation_id != self.selected_id:
            self.selected_id = annotation_id
            self.selection_changed.emit(annotation_id)

    @property
    def selected(self) -> Optional[Annotation]:
        return self.get(self.selected_id) if self.selected_id else None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, annotation_id: Optional[str]) -> Optional[Annotation]:
        for ann in self.history.current:
            if ann.id == annotation_id:
                return ann
        return None

    def annotations_for_page(self, page_id: str) -> List[Annotation]:
        return [ann for ann in self.history.current if ann.page_id == page_id]

    def find_native_edit(self, page_id: str, original_text_id: str) -> Optional[Annotation]:
        """Find the live native edit replacing a given text group."""
        for ann in self.history.current:
            if (ann.type == AnnotationType.TEXT and ann.page_id == page_id
                    and ann.data.is_native_edit
                    and ann.data.original_text_id == original_text_id):
                return ann
        return None

    def annotation_at_point(self, page_id: str, x: float, y: float) -> Optional[Annotation]:
        """
        Get the topmost annotation at a point.

        Args:
            page_id: Page slot id
            x, y: Point in visual page space

        Returns:
            The annotation painted on top at that point, or None
        """
        for ann in reversed(paint_order(self.annotations_for_page(page_id))):
            if self._hit(ann, x, y):
                return ann
        return None

    def _hit(self, annotation: Annotation, x: float, y: float) -> bool:
        data = annotation.data
        if isinstance(data, StrokeData):
            if not data.points:
                return False
            width = data.size or data.thickness or 2.0
            tolerance = max(width / 2.0 + 2.0, 5.0)
            if len(data.points) == 1:
                p = data.points[0]
                return self._point_near_line(x, y, p.x, p.y, p.x, p.y, tolerance)
            for p1, p2 in zip(data.points, data.points[1:]):
                if self._point_near_line(x, y, p1.x, p1.y, p2.x, p2.y, tolerance):
                    return True
            return False

        bounds = annotation.bounds
        if bounds is None:
            # Text without a recorded box; rough estimate is enough for picking
            width = max(len(line) for line in data.lines) * data.font_size * 0.6
            height = len(data.lines) * data.font_size * 1.2
            return data.x <= x <= data.x + width and data.y_top <= y <= data.y_top + height
        return bounds.contains_point(x, y)

    @staticmethod
    def _point_near_line(px: float, py: float, x1: float, y1: float,
                         x2: float, y2: float, tolerance: float) -> bool:
        """Check if a point lies within tolerance of a line segment."""
        length_sq = (x2 - x1) ** 2 + (y2 - y1) ** 2
        if length_sq == 0:
            return ((px - x1) ** 2 + (py - y1) ** 2) ** 0.5 <= tolerance

        t = max(0.0, min(1.0, ((px - x1) * (x2 - x1) + (py - y1) * (y2 - y1)) / length_sq))
        nearest_x = x1 + t * (x2 - x1)
        nearest_y = y1 + t * (y2 - y1)
        return ((px - nearest_x) ** 2 + (py - nearest_y) ** 2) ** 0.5 <= tolerance

    # ------------------------------------------------------------------
    # Change tracking
    # ------------------------------------------------------------------

    def has_unsaved_changes(self) -> bool:
        """Check if the live set differs from the last saved one (order ignored)."""
        current = sorted((ann.to_dict() for ann in self.history.current), key=lambda d: d['id'])
        return current != self._saved_state

    def mark_saved(self) -> None:
        self._saved_state = sorted(
            (copy.deepcopy(ann.to_dict()) for ann in self.history.current),
            key=lambda d: d['id'],
        )

    def __len__(self) -> int:
        return len(self.history.current)
