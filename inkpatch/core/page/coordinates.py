"""
Coordinate mapping between screen, visual page space and export space.

Visual space: top-left origin, unscaled points, in the frame of the page as it
is displayed (i.e. with the page rotation already applied). The rendering
surface draws pages pre-rotated, so pointer offsets divided by the zoom scale
are already visual coordinates.

Export space: bottom-left origin, unscaled points, in the frame of the
unrotated page. This is what gets written into the output document; the page
rotation is then applied as a page-level property.
"""
from typing import Tuple

import fitz  # PyMuPDF

from .models import VALID_ROTATIONS, Point, Rect


def normalize_rotation(rotation: int) -> int:
    """
    Bring a rotation in degrees into {0, 90, 180, 270}.

    Args:
        rotation: Any multiple of 90, negative values allowed

    Returns:
        Equivalent rotation in [0, 360)

    Raises:
        ValueError: If rotation is not a multiple of 90
    """
    normalized = int(rotation) % 360
    if normalized not in VALID_ROTATIONS or int(rotation) != rotation:
        raise ValueError(f"Rotation must be a multiple of 90 degrees, got {rotation}")
    return normalized


def screen_to_document(client_x: float, client_y: float, container_rect: Rect,
                       scale: float, rotation: int = 0) -> Point:
    """
    Convert pointer coordinates to unscaled visual page coordinates.

    Args:
        client_x, client_y: Pointer position in screen pixels
        container_rect: On-screen bounding box of the page surface
        scale: Current zoom factor
        rotation: Page rotation; the surface is pre-rotated so it is not applied

    Returns:
        Point in visual page space
    """
    if scale <= 0:
        raise ValueError(f"Scale must be positive, got {scale}")
    normalize_rotation(rotation)

    offset_x = client_x - container_rect.x
    offset_y = client_y - container_rect.y
    return Point(offset_x / scale, offset_y / scale)


def document_to_screen(x: float, y: float, scale: float) -> Point:
    """Convert visual page coordinates to an on-screen offset."""
    return Point(x * scale, y * scale)


def to_export_space(visual_x: float, visual_y: float,
                    visual_width: float, visual_height: float,
                    page_width: float, page_height: float,
                    rotation: int) -> Rect:
    """
    Map a visual rectangle to export space.

    Args:
        visual_x, visual_y: Top-left corner in visual space
        visual_width, visual_height: Size in visual space
        page_width, page_height: Size of the unrotated page
        rotation: Page rotation in degrees

    Returns:
        Rectangle with bottom-left origin in the unrotated page frame
    """
    rot = normalize_rotation(rotation)

    if rot == 90:
        return Rect(visual_y, visual_x, visual_height, visual_width)
    if rot == 180:
        return Rect(page_width - visual_x - visual_width, visual_y,
                    visual_width, visual_height)
    if rot == 270:
        return Rect(page_width - visual_y - visual_height,
                    page_height - visual_x - visual_width,
                    visual_height, visual_width)
    return Rect(visual_x, page_height - visual_y - visual_height,
                visual_width, visual_height)


def from_export_space(export_x: float, export_y: float,
                      export_width: float, export_height: float,
                      page_width: float, page_height: float,
                      rotation: int) -> Rect:
    """Inverse of to_export_space: export rectangle back to visual space."""
    rot = normalize_rotation(rotation)

    if rot == 90:
        return Rect(export_y, export_x, export_height, export_width)
    if rot == 180:
        return Rect(page_width - export_x - export_width, export_y,
                    export_width, export_height)
    if rot == 270:
        return Rect(page_height - export_y - export_height,
                    page_width - export_x - export_width,
                    export_height, export_width)
    return Rect(export_x, page_height - export_y - export_height,
                export_width, export_height)


def visual_size(page_width: float, page_height: float, rotation: int) -> Tuple[float, float]:
    """Size of the page as displayed under the given rotation."""
    if normalize_rotation(rotation) in (90, 270):
        return page_height, page_width
    return page_width, page_height


# PyMuPDF draws with a top-left origin on the unrotated page, so export space
# still needs its Y axis flipped before it reaches a fitz call.

def export_to_fitz_rect(rect: Rect, page_height: float) -> fitz.Rect:
    """Convert an export-space rectangle to a PyMuPDF rectangle."""
    return fitz.Rect(rect.x, page_height - rect.y - rect.height,
                     rect.x + rect.width, page_height - rect.y)


def export_to_fitz_point(x: float, y: float, page_height: float) -> fitz.Point:
    """Convert an export-space point to a PyMuPDF point."""
    return fitz.Point(x, page_height - y)


def fitz_rect_to_export(rect: fitz.Rect, page_height: float) -> Rect:
    """Convert a PyMuPDF rectangle (top-left origin) to export space."""
    return Rect(rect.x0, page_height - rect.y1, rect.width, rect.height)
