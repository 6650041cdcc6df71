"""
Editing of original document text.

A native edit is a text annotation that covers a TextGroup with white and
draws the replacement text on top. The original bounding box is recorded
once, when the edit is created, so the white-out keeps covering the old
glyphs however the replacement text changes later.
"""
import logging
from typing import Any, Dict, List, Optional

from ..page.models import Rect, TextGroup
from .manager import AnnotationStore
from .models import Annotation, AnnotationType, TextData

logger = logging.getLogger(__name__)


def redaction_rects(data: TextData, metrics, pad: float = 4.0) -> List[Rect]:
    """
    White-out rectangles of a text annotation, in visual page space.

    Native edits get two rectangles: the recorded origin of the replaced
    text and the box of the current text. Plain text boxes only get the
    latter. Both are grown by pad on every side. A native edit whose text
    was cleared still covers its origin.

    Args:
        data: Text payload
        metrics: Object with a measure(TextData) -> (width, height) method
        pad: Padding in points

    Returns:
        Rectangles to paint opaque white
    """
    rects = []
    if data.is_native_edit and data.native_edit_origin is not None:
        rects.append(data.native_edit_origin.expanded(pad))

    if data.text.strip():
        width, height = metrics.measure(data)
        rects.append(Rect(data.x, data.y_top, width, height).expanded(pad))
    return rects


class NativeTextEditor:
    """Creates and updates native edits on an AnnotationStore."""

    def __init__(self, store: AnnotationStore, metrics=None, default_color: str = "#000000"):
        self.store = store
        self.metrics = metrics
        self.default_color = default_color

    def begin_edit(self, page_id: str, group: TextGroup) -> Annotation:
        """
        Start editing a text group, or return the edit that already covers it.

        Args:
            page_id: Page slot the group belongs to
            group: Clicked text group

        Returns:
            The native edit annotation for this group
        """
        existing = self.store.find_native_edit(page_id, group.id)
        if existing is not None:
            logger.debug("Reusing native edit %s for %s", existing.id, group.id)
            return existing

        box = group.rect
        data = TextData(
            text=group.text,
            x=box.x,
            y_top=box.y,
            font_size=group.font_size,
            font_family=group.font_family,
            color=self.default_color,
            font_weight="bold" if group.bold else None,
            font_style="italic" if group.italic else None,
            is_native_edit=True,
            original_text_id=group.id,
            native_edit_origin=box,
            width=box.width,
            height=box.height,
        )
        annotation = Annotation.create(AnnotationType.TEXT, page_id, data)
        return self.store.add(annotation)

    def update_text(self, annotation_id: str, text: Optional[str] = None,
                    **style: Any) -> Optional[Annotation]:
        """
        Change the text and/or style of a native edit.

        The recorded origin never changes. When metrics are available the
        stored box size follows the new text.

        Args:
            annotation_id: Native edit to update
            text: New text, or None to keep it
            **style: Payload fields keyed by their JSON names (fontSize,
                fontFamily, fontWeight, fontStyle, color)

        Returns:
            The updated annotation, or None if the id is unknown
        """
        annotation = self.store.get(annotation_id)
        if annotation is None:
            return None
        if annotation.type != AnnotationType.TEXT:
            raise ValueError(f"Annotation {annotation_id} is not a text annotation")
        if 'nativeEditOrigin' in style or 'originalTextId' in style:
            raise ValueError("The origin of a native edit cannot be changed")

        partial: Dict[str, Any] = dict(style)
        if text is not None:
            partial['text'] = text

        if self.metrics is not None:
            preview = annotation.with_data(partial).data
            width, height = self.metrics.measure(preview)
            partial['width'] = width
            partial['height'] = height

        return self.store.update(annotation_id, partial)
