"""
Extraction of original text runs and their grouping into editable lines.
"""
import logging
from typing import Dict, List, Optional, Tuple

import fitz

from .coordinates import fitz_rect_to_export, from_export_space, normalize_rotation
from .models import NativeTextItem, TextGroup

logger = logging.getLogger(__name__)

# Span flag bits reported by PyMuPDF
_FLAG_ITALIC = 1 << 1
_FLAG_BOLD = 1 << 4

# Largest on-screen slope of a writing direction still treated as a line
_HORIZONTAL_SLOPE = 0.1


def _visual_point(x: float, y: float, page_width: float, page_height: float,
                  rotation: int) -> Tuple[float, float]:
    """Map a PyMuPDF point on the unrotated page into the visual frame."""
    point = from_export_space(x, page_height - y, 0, 0, page_width, page_height, rotation)
    return point.x, point.y


def map_font_family(pdf_font: str) -> str:
    """Map an embedded PDF font name to one of the Base-14 families."""
    if not pdf_font:
        return "Helvetica"

    if "+" in pdf_font:
        pdf_font = pdf_font.split("+")[-1]

    lower = pdf_font.lower().replace("-", "").replace("_", "")

    if "times" in lower or ("serif" in lower and "sans" not in lower):
        return "Times"
    if "courier" in lower or "mono" in lower:
        return "Courier"
    return "Helvetica"


def extract_text_items(page: fitz.Page, rotation: Optional[int] = None) -> List[NativeTextItem]:
    """
    Extract text spans of a page as NativeTextItems in the visual frame.

    Args:
        page: PyMuPDF page
        rotation: Display rotation; defaults to the page's own /Rotate

    Returns:
        Text items in reading order
    """
    if rotation is None:
        rotation = page.rotation
    rotation = normalize_rotation(rotation)

    # Text is reported on the unrotated page, whose size page.rect hides
    # behind the intrinsic rotation
    if page.rotation in (90, 270):
        page_width, page_height = page.rect.height, page.rect.width
    else:
        page_width, page_height = page.rect.width, page.rect.height

    try:
        text_dict = page.get_text("dict", sort=True)
    except Exception as e:
        logger.warning("Failed to extract text from page %s: %s", page.number, e)
        return []

    items: List[NativeTextItem] = []
    for block_idx, block in enumerate(text_dict.get("blocks", [])):
        # Skip image blocks
        if block.get("type") != 0:
            continue

        for line_idx, line in enumerate(block.get("lines", [])):
            dir_x, dir_y = line.get("dir", (1.0, 0.0))
            for span_idx, span in enumerate(line.get("spans", [])):
                text = span.get("text", "")
                if not text.strip():
                    continue

                bbox = fitz.Rect(span.get("bbox", (0, 0, 0, 0)))
                origin = span.get("origin", (bbox.x0, bbox.y1))
                export = fitz_rect_to_export(bbox, page_height)
                visual = from_export_space(export.x, export.y, export.width, export.height,
                                           page_width, page_height, rotation)
                baseline = _visual_point(origin[0], origin[1], page_width, page_height, rotation)
                ahead = _visual_point(origin[0] + dir_x, origin[1] + dir_y,
                                      page_width, page_height, rotation)
                flags = span.get("flags", 0)
                font_size = float(span.get("size", 12.0))

                items.append(NativeTextItem(
                    id=f"native-{block_idx}-{line_idx}-{span_idx}",
                    text=text,
                    x=visual.x,
                    y_top=visual.y,
                    baseline_y=baseline[1],
                    width=visual.width,
                    height=visual.height if visual.height > 0 else font_size,
                    font_size=font_size,
                    font_family=map_font_family(span.get("font", "")),
                    bold=bool(flags & _FLAG_BOLD),
                    italic=bool(flags & _FLAG_ITALIC),
                    horizontal=abs(ahead[1] - baseline[1]) < _HORIZONTAL_SLOPE,
                ))

    return items


def group_text_items(items: List[NativeTextItem], gap_tolerance: float = 6.0,
                     line_tolerance: float = 2.0) -> List[TextGroup]:
    """
    Cluster text runs that sit on the same visual line into TextGroups.

    Two runs join a group when their baselines differ by at most
    line_tolerance and the horizontal gap between them is at most
    gap_tolerance (negative gaps, i.e. overlaps, always join).

    Args:
        items: Text items of one page
        gap_tolerance: Maximum horizontal gap in points
        line_tolerance: Maximum baseline difference in points

    Returns:
        Groups ordered top-to-bottom, left-to-right
    """
    if not items:
        return []

    # Bucket runs into lines by baseline, then split each line at wide gaps.
    # Vertical runs stay on their own.
    lines: List[List[NativeTextItem]] = []
    for item in sorted(items, key=lambda it: (it.baseline_y, it.x)):
        if (lines and item.horizontal and lines[-1][0].horizontal
                and abs(item.baseline_y - lines[-1][0].baseline_y) <= line_tolerance):
            lines[-1].append(item)
        else:
            lines.append([item])

    groups: List[TextGroup] = []
    for line in lines:
        line.sort(key=lambda it: it.x)
        current: List[NativeTextItem] = [line[0]]
        for item in line[1:]:
            last = current[-1]
            gap = item.x - (last.x + last.width)
            if gap <= gap_tolerance:
                current.append(item)
            else:
                groups.append(TextGroup(id=f"group-{current[0].id}", items=current))
                current = [item]
        groups.append(TextGroup(id=f"group-{current[0].id}", items=current))

    return groups


class TextLayerState:
    """
    Text items and groups of the pages currently on screen.

    Text extraction runs asynchronously; every request gets a generation
    number and only the latest generation for a page may store its result.
    """

    def __init__(self, gap_tolerance: float = 6.0, line_tolerance: float = 2.0):
        self.gap_tolerance = gap_tolerance
        self.line_tolerance = line_tolerance
        self._generations: Dict[str, int] = {}
        self._items: Dict[str, List[NativeTextItem]] = {}
        self._groups: Dict[str, List[TextGroup]] = {}

    def begin(self, page_id: str) -> int:
        """Start a new extraction for a page and return its generation."""
        generation = self._generations.get(page_id, 0) + 1
        self._generations[page_id] = generation
        return generation

    def is_current(self, page_id: str, generation: int) -> bool:
        return self._generations.get(page_id) == generation

    def apply(self, page_id: str, generation: int, items: List[NativeTextItem]) -> bool:
        """
        Store extracted items if the generation is still current.

        Returns:
            True if the items were stored, False if they were stale
        """
        if not self.is_current(page_id, generation):
            logger.debug("Dropping stale text layer for %s (generation %d)", page_id, generation)
            return False

        self._items[page_id] = list(items)
        self._groups[page_id] = group_text_items(items, self.gap_tolerance, self.line_tolerance)
        return True

    def items_for_page(self, page_id: str) -> List[NativeTextItem]:
        return self._items.get(page_id, [])

    def groups_for_page(self, page_id: str) -> List[TextGroup]:
        return self._groups.get(page_id, [])

    def find_group(self, page_id: str, group_id: str) -> Optional[TextGroup]:
        for group in self._groups.get(page_id, []):
            if group.id == group_id:
                return group
        return None

    def group_at_point(self, page_id: str, x: float, y: float) -> Optional[TextGroup]:
        for group in self._groups.get(page_id, []):
            if group.rect.contains_point(x, y):
                return group
        return None

    def forget(self, page_id: str) -> None:
        """Drop cached text for a page (e.g. after it was removed)."""
        self._items.pop(page_id, None)
        self._groups.pop(page_id, None)
        # Results still in flight for this page become stale
        if page_id in self._generations:
            self._generations[page_id] += 1
