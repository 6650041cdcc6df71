from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

# ==============================================================================
# Geometry
# ==============================================================================


@dataclass(frozen=True)
class Point:
    """A point in page space."""

    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle given by its origin corner and size."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def expanded(self, pad: float) -> "Rect":
        """Grow the rectangle by pad on every side."""
        return Rect(self.x - pad, self.y - pad, self.width + 2 * pad, self.height + 2 * pad)

    def union(self, other: "Rect") -> "Rect":
        x0 = min(self.x, other.x)
        y0 = min(self.y, other.y)
        x1 = max(self.right, other.right)
        y1 = max(self.bottom, other.bottom)
        return Rect(x0, y0, x1 - x0, y1 - y0)

    def contains(self, other: "Rect", tolerance: float = 1e-6) -> bool:
        """Check if other lies entirely inside this rectangle."""
        return (
            self.x <= other.x + tolerance
            and self.y <= other.y + tolerance
            and self.right >= other.right - tolerance
            and self.bottom >= other.bottom - tolerance
        )

    def contains_point(self, x: float, y: float) -> bool:
        return self.x <= x <= self.right and self.y <= y <= self.bottom


# ==============================================================================
# Page slots
# ==============================================================================


class PageKind(Enum):
    """Whether a page slot shows an original page or an inserted blank page."""

    ORIGINAL = "original"
    BLANK = "blank"


VALID_ROTATIONS = (0, 90, 180, 270)


@dataclass
class PageInfo:
    """One page slot of the edited document."""

    id: str
    kind: PageKind
    rotation: int = 0
    # 1-based index into the source document, only for ORIGINAL pages
    original_index: Optional[int] = None
    # Size of a BLANK page in points; ORIGINAL pages take the source size
    width: Optional[float] = None
    height: Optional[float] = None

    def __post_init__(self):
        if self.kind == PageKind.ORIGINAL:
            if self.original_index is None or self.original_index < 1:
                raise ValueError(
                    f"Original page {self.id} needs a 1-based original_index, "
                    f"got {self.original_index}"
                )
        if self.rotation not in VALID_ROTATIONS:
            raise ValueError(f"Invalid rotation {self.rotation} for page {self.id}")

    @property
    def is_blank(self) -> bool:
        return self.kind == PageKind.BLANK

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'type': self.kind.value,
            'rotation': self.rotation,
        }
        if self.original_index is not None:
            data['originalIndex'] = self.original_index
        if self.width is not None and self.height is not None:
            data['width'] = self.width
            data['height'] = self.height
        return data

    @staticmethod
    def from_dict(data: dict) -> "PageInfo":
        return PageInfo(
            id=data['id'],
            kind=PageKind(data.get('type', 'original')),
            rotation=data.get('rotation', 0) % 360,
            original_index=data.get('originalIndex'),
            width=data.get('width'),
            height=data.get('height'),
        )


# ==============================================================================
# Native text
# ==============================================================================


@dataclass
class NativeTextItem:
    """A run of original document text, in the page's visual frame."""

    id: str
    text: str
    x: float
    y_top: float
    baseline_y: float
    width: float
    height: float
    font_size: float
    font_family: str = "Helvetica"
    bold: bool = False
    italic: bool = False
    # Runs along the visual x axis; vertical runs have no usable baseline
    horizontal: bool = True

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y_top, self.width, self.height)


@dataclass
class TextGroup:
    """Adjacent text runs on one visual line, edited as a unit."""

    id: str
    items: List[NativeTextItem] = field(default_factory=list)

    @property
    def text(self) -> str:
        parts = []
        previous = None
        for item in self.items:
            # Runs separated by a visible gap get a space unless one is already there
            if previous is not None:
                gap = item.x - (previous.x + previous.width)
                if gap > previous.font_size * 0.15 and not (
                    previous.text.endswith(" ") or item.text.startswith(" ")
                ):
                    parts.append(" ")
            parts.append(item.text)
            previous = item
        return "".join(parts)

    @property
    def rect(self) -> Rect:
        box = self.items[0].rect
        for item in self.items[1:]:
            box = box.union(item.rect)
        return box

    @property
    def baseline_y(self) -> float:
        return max(item.baseline_y for item in self.items)

    @property
    def font_size(self) -> float:
        return max(item.font_size for item in self.items)

    @property
    def font_family(self) -> str:
        return self.items[0].font_family

    @property
    def bold(self) -> bool:
        return self.items[0].bold

    @property
    def italic(self) -> bool:
        return self.items[0].italic
