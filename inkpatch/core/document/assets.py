"""
Decoded-asset cache and image decoding for export.
"""
import base64
import binascii
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

import fitz  # PyMuPDF

from ...errors import AssetUnavailable
from ..annotations.models import Annotation, AnnotationType

logger = logging.getLogger(__name__)

# Cached marker for an asset that already failed to decode
UNAVAILABLE = object()

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]*)*),(?P<payload>.*)$",
                       re.DOTALL)
_SUPPORTED_MIME = ("image/png", "image/jpeg", "image/jpg")


class AssetCache:
    """
    Bounded least-recently-used cache.

    get() refreshes an entry; inserting past capacity drops the entry that
    was used longest ago.
    """

    def __init__(self, capacity: int = 50):
        if capacity < 1:
            raise ValueError(f"Capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._entries: "OrderedDict[str, Any]" = OrderedDict()

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._entries:
            return default
        self._entries.move_to_end(key)
        return self._entries[key]

    def set(self, key: str, value: Any) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        self._entries[key] = value
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted %s from asset cache", evicted)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def evict_except(self, live_keys: Iterable[str]) -> int:
        """
        Drop every entry whose key is not in live_keys.

        Returns:
            Number of evicted entries
        """
        live = set(live_keys)
        stale = [key for key in self._entries if key not in live]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def evict_for_page(self, page_id: str, annotations: List[Annotation]) -> int:
        """Keep only the images that belong to the given page."""
        return self.evict_except(
            ann.id for ann in annotations
            if ann.type == AnnotationType.IMAGE and ann.page_id == page_id
        )

    def keys(self) -> List[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


@dataclass
class DecodedImage:
    """Raw image bytes ready for insertion, with their pixel size."""
    data: bytes
    mime: str
    width: int
    height: int


def parse_data_url(url: str):
    """
    Split a data: URL into its MIME type and payload bytes.

    Raises:
        ValueError: If url is not a base64 data: URL
    """
    match = _DATA_URL.match(url.strip())
    if not match:
        raise ValueError("not a data: URL")
    if ";base64" not in (match.group("params") or ""):
        raise ValueError("data: URL is not base64 encoded")
    mime = (match.group("mime") or "").lower()
    try:
        payload = base64.b64decode(match.group("payload"), validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 payload: {e}") from e
    return mime, payload


class ImageDecoder:
    """Decodes image annotations through an AssetCache."""

    def __init__(self, cache: Optional[AssetCache] = None):
        self.cache = cache if cache is not None else AssetCache()

    def decode(self, key: str, image_data: str) -> DecodedImage:
        """
        Decode a data: URL, reusing cached results and cached failures.

        Args:
            key: Cache key, normally the annotation id
            image_data: data: URL carrying PNG or JPEG bytes

        Raises:
            AssetUnavailable: If the image cannot be decoded
        """
        cached = self.cache.get(key)
        if cached is UNAVAILABLE:
            raise AssetUnavailable(key, "previously failed to decode")
        if cached is not None:
            return cached

        try:
            image = self._decode(image_data)
        except (ValueError, RuntimeError) as e:
            self.cache.set(key, UNAVAILABLE)
            raise AssetUnavailable(key, str(e)) from e

        self.cache.set(key, image)
        return image

    @staticmethod
    def _decode(image_data: str) -> DecodedImage:
        if not image_data:
            raise ValueError("empty image data")
        mime, payload = parse_data_url(image_data)
        return decode_image_bytes(payload, mime)


def sniff_image_mime(payload: bytes) -> str:
    """MIME type of PNG or JPEG bytes, or an empty string."""
    if payload.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if payload.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    return ""


def decode_image_bytes(payload: bytes, mime: Optional[str] = None) -> DecodedImage:
    """
    Validate PNG or JPEG bytes and read their pixel size.

    Args:
        payload: Encoded image
        mime: Declared type; sniffed from the bytes when omitted

    Raises:
        ValueError: If the type is unsupported or the bytes do not decode
    """
    if mime is None:
        mime = sniff_image_mime(payload)
    if mime not in _SUPPORTED_MIME:
        raise ValueError(f"unsupported image type {mime or 'unknown'}")
    if not payload:
        raise ValueError("empty image payload")

    try:
        pixmap = fitz.Pixmap(payload)
    except Exception as e:
        raise ValueError(f"unreadable image: {e}") from e
    return DecodedImage(data=payload, mime=mime, width=pixmap.width, height=pixmap.height)
