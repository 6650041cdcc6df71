import itertools
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ..page.models import Point, Rect


class AnnotationType(Enum):
    TEXT = "text"
    DRAW = "draw"
    SHAPE = "shape"
    HIGHLIGHT = "highlight"
    IMAGE = "image"
    ERASER = "eraser"


class ShapeType(Enum):
    RECTANGLE = "rectangle"
    CIRCLE = "circle"
    LINE = "line"


# Paint order at export time, bottom to top
LAYER_ORDER = {
    AnnotationType.HIGHLIGHT: 0,
    AnnotationType.SHAPE: 1,
    AnnotationType.IMAGE: 2,
    AnnotationType.TEXT: 3,
    AnnotationType.DRAW: 4,
    AnnotationType.ERASER: 5,
}

STROKE_TYPES = (AnnotationType.DRAW, AnnotationType.HIGHLIGHT, AnnotationType.ERASER)


# ==============================================================================
# Payloads
# ==============================================================================


def _rect_to_dict(rect: Rect) -> Dict[str, float]:
    return {'x': rect.x, 'y': rect.y, 'width': rect.width, 'height': rect.height}


def _rect_from_dict(data: Optional[dict]) -> Optional[Rect]:
    if not data:
        return None
    return Rect(float(data['x']), float(data['y']),
                float(data.get('width') or 0.0), float(data.get('height') or 0.0))


def _point_from_json(value: Any) -> Point:
    if isinstance(value, dict):
        return Point(float(value['x']), float(value['y']))
    return Point(float(value[0]), float(value[1]))


@dataclass
class TextData:
    """A text box; native edits replace a run of original text."""
    text: str
    x: float
    y_top: float
    font_size: float = 16.0
    font_family: str = "Helvetica"
    color: str = "#000000"
    font_weight: Optional[str] = None
    font_style: Optional[str] = None
    is_native_edit: bool = False
    original_text_id: Optional[str] = None
    # Bounding box of the replaced original text, captured once
    native_edit_origin: Optional[Rect] = None
    width: Optional[float] = None
    height: Optional[float] = None

    @property
    def is_bold(self) -> bool:
        weight = (self.font_weight or "").lower()
        if weight.isdigit():
            return int(weight) >= 600
        return weight in ("bold", "bolder")

    @property
    def is_italic(self) -> bool:
        return (self.font_style or "").lower() in ("italic", "oblique")

    @property
    def lines(self) -> List[str]:
        return self.text.replace("\r\n", "\n").split("\n")

    def to_dict(self) -> dict:
        data = {
            'text': self.text,
            'x': self.x,
            'yTop': self.y_top,
            'fontSize': self.font_size,
            'fontFamily': self.font_family,
            'color': self.color,
        }
        if self.font_weight is not None:
            data['fontWeight'] = self.font_weight
        if self.font_style is not None:
            data['fontStyle'] = self.font_style
        if self.is_native_edit:
            data['isNativeEdit'] = True
        if self.original_text_id is not None:
            data['originalTextId'] = self.original_text_id
        if self.native_edit_origin is not None:
            data['nativeEditOrigin'] = _rect_to_dict(self.native_edit_origin)
        if self.width is not None:
            data['width'] = self.width
        if self.height is not None:
            data['height'] = self.height
        return data

    @staticmethod
    def from_dict(data: dict) -> "TextData":
        # Older files store the top edge as 'y'
        y_top = data.get('yTop', data.get('y', 0.0))
        return TextData(
            text=data.get('text') or "",
            x=float(data.get('x', 0.0)),
            y_top=float(y_top),
            font_size=float(data.get('fontSize') or 16.0),
            font_family=data.get('fontFamily') or "Helvetica",
            color=data.get('color') or "#000000",
            font_weight=data.get('fontWeight'),
            font_style=data.get('fontStyle'),
            is_native_edit=bool(data.get('isNativeEdit', False)),
            original_text_id=data.get('originalTextId'),
            native_edit_origin=_rect_from_dict(data.get('nativeEditOrigin')),
            width=data.get('width'),
            height=data.get('height'),
        )


@dataclass
class StrokeData:
    """Freehand path shared by draw, highlight and eraser annotations."""
    points: List[Point] = field(default_factory=list)
    color: Optional[str] = None
    size: Optional[float] = None
    opacity: Optional[float] = None
    thickness: Optional[float] = None

    @property
    def bounds(self) -> Optional[Rect]:
        if not self.points:
            return None
        xs = [p.x for p in self.points]
        ys = [p.y for p in self.points]
        return Rect(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {'points': [{'x': p.x, 'y': p.y} for p in self.points]}
        for key, value in (('color', self.color), ('size', self.size),
                           ('opacity', self.opacity), ('thickness', self.thickness)):
            if value is not None:
                data[key] = value
        return data

    @staticmethod
    def from_dict(data: dict) -> "StrokeData":
        return StrokeData(
            points=[_point_from_json(p) for p in data.get('points') or []],
            color=data.get('color'),
            size=data.get('size'),
            opacity=data.get('opacity'),
            thickness=data.get('thickness'),
        )


@dataclass
class ShapeData:
    shape_type: ShapeType
    x: float
    y: float
    width: float
    height: float
    border_color: str = "#000000"
    border_width: float = 2.0
    fill_color: Optional[str] = None

    @property
    def rect(self) -> Rect:
        # Lines may be drawn right-to-left or bottom-to-top
        x0 = min(self.x, self.x + self.width)
        y0 = min(self.y, self.y + self.height)
        return Rect(x0, y0, abs(self.width), abs(self.height))

    @property
    def has_fill(self) -> bool:
        return bool(self.fill_color) and self.fill_color != "transparent"

    def to_dict(self) -> dict:
        data = {
            'shapeType': self.shape_type.value,
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
            'borderColor': self.border_color,
            'borderWidth': self.border_width,
        }
        if self.fill_color is not None:
            data['fillColor'] = self.fill_color
        return data

    @staticmethod
    def from_dict(data: dict) -> "ShapeData":
        return ShapeData(
            shape_type=ShapeType(data.get('shapeType', 'rectangle')),
            x=float(data.get('x', 0.0)),
            y=float(data.get('y', 0.0)),
            width=float(data.get('width') or 0.0),
            height=float(data.get('height') or 0.0),
            border_color=data.get('borderColor') or "#000000",
            border_width=float(data.get('borderWidth') or 2.0),
            fill_color=data.get('fillColor'),
        )


@dataclass
class ImageData:
    x: float
    y: float
    width: float
    height: float
    # data: URL carrying base64 PNG or JPEG bytes
    image_data: str = ""

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    def to_dict(self) -> dict:
        return {
            'x': self.x,
            'y': self.y,
            'width': self.width,
            'height': self.height,
            'imageData': self.image_data,
        }

    @staticmethod
    def from_dict(data: dict) -> "ImageData":
        return ImageData(
            x=float(data.get('x', 0.0)),
            y=float(data.get('y', 0.0)),
            width=float(data.get('width') or 0.0),
            height=float(data.get('height') or 0.0),
            image_data=data.get('imageData') or "",
        )


AnnotationData = Union[TextData, StrokeData, ShapeData, ImageData]

_PAYLOAD_TYPES = {
    AnnotationType.TEXT: TextData,
    AnnotationType.DRAW: StrokeData,
    AnnotationType.HIGHLIGHT: StrokeData,
    AnnotationType.ERASER: StrokeData,
    AnnotationType.SHAPE: ShapeData,
    AnnotationType.IMAGE: ImageData,
}


# ==============================================================================
# Annotation
# ==============================================================================


_id_counter = itertools.count()
_last_timestamp = 0.0


def next_timestamp() -> float:
    """Milliseconds since the epoch, strictly increasing within the process."""
    global _last_timestamp
    now = time.time() * 1000.0
    if now <= _last_timestamp:
        now = _last_timestamp + 0.001
    _last_timestamp = now
    return now


def new_annotation_id(annotation_type: AnnotationType) -> str:
    """Unique id whose lexical order follows creation order."""
    return f"{annotation_type.value}-{time.time_ns():020d}-{next(_id_counter):06d}"


@dataclass
class Annotation:
    """A single annotation placed on a page slot."""
    id: str
    type: AnnotationType
    page_id: str
    data: AnnotationData
    timestamp: float = 0.0

    def __post_init__(self):
        expected = _PAYLOAD_TYPES[self.type]
        if not isinstance(self.data, expected):
            raise TypeError(
                f"{self.type.value} annotation needs {expected.__name__}, "
                f"got {type(self.data).__name__}"
            )

    @staticmethod
    def create(annotation_type: AnnotationType, page_id: str,
               data: AnnotationData) -> "Annotation":
        """Build a new annotation with a fresh id and timestamp."""
        return Annotation(
            id=new_annotation_id(annotation_type),
            type=annotation_type,
            page_id=page_id,
            data=data,
            timestamp=next_timestamp(),
        )

    @property
    def layer(self) -> int:
        return LAYER_ORDER[self.type]

    @property
    def bounds(self) -> Optional[Rect]:
        """Stored geometry of the annotation, in visual page space."""
        data = self.data
        if isinstance(data, StrokeData):
            return data.bounds
        if isinstance(data, ShapeData):
            return data.rect
        if isinstance(data, ImageData):
            return data.rect
        if data.width is not None and data.height is not None:
            return Rect(data.x, data.y_top, data.width, data.height)
        return None

    def with_data(self, partial: Dict[str, Any]) -> "Annotation":
        """
        Return a copy with some payload fields replaced.

        Args:
            partial: Payload fields keyed by their JSON names

        Raises:
            ValueError: If a key is not a field of this annotation's payload
        """
        merged = self.data.to_dict()
        known = set(merged) | _optional_json_keys(self.type)
        unknown = set(partial) - known
        if unknown:
            raise ValueError(
                f"Unknown field(s) for {self.type.value} annotation: {sorted(unknown)}"
            )
        merged.update(partial)
        return replace(self, data=_PAYLOAD_TYPES[self.type].from_dict(merged))

    def to_dict(self) -> dict:
        """Convert annotation to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'type': self.type.value,
            'pageId': self.page_id,
            'timestamp': self.timestamp,
            'data': self.data.to_dict(),
        }

    @staticmethod
    def from_dict(data: dict) -> "Annotation":
        """Create annotation from dictionary."""
        annotation_type = AnnotationType(data['type'])
        payload = _PAYLOAD_TYPES[annotation_type].from_dict(data.get('data') or {})
        return Annotation(
            id=data['id'],
            type=annotation_type,
            page_id=data['pageId'],
            data=payload,
            timestamp=float(data.get('timestamp', 0.0)),
        )


_OPTIONAL_KEYS = {
    AnnotationType.TEXT: {
        'fontWeight', 'fontStyle', 'isNativeEdit', 'originalTextId',
        'nativeEditOrigin', 'width', 'height',
    },
    AnnotationType.SHAPE: {'fillColor'},
}
for _stroke in STROKE_TYPES:
    _OPTIONAL_KEYS[_stroke] = {'color', 'size', 'opacity', 'thickness'}


def _optional_json_keys(annotation_type: AnnotationType) -> set:
    return _OPTIONAL_KEYS.get(annotation_type, set())


def paint_order(annotations: List[Annotation]) -> List[Annotation]:
    """Sort annotations into export layering order; ties keep creation order."""
    return sorted(annotations, key=lambda a: (a.layer, a.timestamp, a.id))
