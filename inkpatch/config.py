"""
Settings objects passed explicitly to tools, the store and the exporter.
"""
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .utils.resource_loader import get_resource_path

FALLBACK_FONT_ENV = "INKPATCH_FALLBACK_FONT"
DEFAULT_FALLBACK_FONT = "resources/fonts/NotoSansTC-VariableFont_wght.ttf"


def default_fallback_font_path() -> str:
    """Resolve the Unicode fallback font, honouring the environment override."""
    override = os.environ.get(FALLBACK_FONT_ENV)
    if override:
        return override
    return get_resource_path(DEFAULT_FALLBACK_FONT)


@dataclass
class ToolSettings:
    """Per-tool defaults used when an interaction creates an annotation."""
    eraser_size: float = 20.0
    draw_color: str = "#000000"
    draw_thickness: float = 2.0
    shape_border_color: str = "#000000"
    shape_border_width: float = 2.0
    shape_fill_color: str = "transparent"
    text_color: str = "#000000"
    font_size: float = 16.0
    font_family: str = "Helvetica"
    highlight_color: str = "#FFFF00"
    highlight_opacity: float = 0.3
    highlight_size: float = 20.0


@dataclass
class ExportSettings:
    """Options controlling how annotations are baked into the output PDF."""
    # Padding around every white-out rectangle, in points
    redaction_pad: float = 4.0
    line_height: float = 1.2
    default_font_size: float = 12.0
    fallback_font_path: Optional[str] = field(default_factory=default_fallback_font_path)
    blank_page_size: Tuple[float, float] = (595.0, 842.0)
    strip_existing_annotations: bool = True
    garbage: int = 4
    deflate: bool = True


@dataclass
class CacheSettings:
    """Capacity of the decoded-asset caches."""
    image_capacity: int = 50
