"""
Font selection, Latin-1 encodability and text measurement for export.

Text that fits in Latin-1 is drawn with one of the Base-14 fonts. Anything
else needs the embedded Unicode fallback font; if that font cannot be loaded
the offending characters are replaced by '?'.
"""
import logging
import os
from typing import Dict, List, Optional, Tuple

import fitz  # PyMuPDF

from ...config import ExportSettings
from ...errors import AssetUnavailable
from ..annotations.models import TextData

logger = logging.getLogger(__name__)

FALLBACK_FONT_NAME = "inkfb"
REPLACEMENT_CHAR = "?"

# Base-14 font names understood by PyMuPDF: (regular, bold, italic, bold-italic)
_BASE14 = {
    "Helvetica": ("helv", "hebo", "heit", "hebi"),
    "Times": ("tiro", "tibo", "tiit", "tibi"),
    "Courier": ("cour", "cobo", "coit", "cobi"),
}

# TrueType, 'true', OpenType (CFF) and TrueType collection signatures
_FONT_MAGIC = (b"\x00\x01\x00\x00", b"true", b"OTTO", b"ttcf")

_LINE_BREAKS = ("\n", "\r")


def _encodable(char: str) -> bool:
    return ord(char) <= 0xFF


def needs_unicode_font(text: str) -> bool:
    """Check whether text has characters outside Latin-1 (line breaks aside)."""
    return any(not _encodable(c) for c in text if c not in _LINE_BREAKS)


def to_latin_safe(text: str) -> str:
    """Replace characters outside Latin-1 with '?'."""
    return "".join(c if _encodable(c) or c in _LINE_BREAKS else REPLACEMENT_CHAR for c in text)


def split_runs(text: str) -> List[Tuple[str, bool]]:
    """
    Split a line into runs that the base font can or cannot encode.

    Returns:
        List of (run, needs_fallback) in text order
    """
    runs: List[Tuple[str, bool]] = []
    for char in text:
        fallback = not _encodable(char)
        if runs and runs[-1][1] == fallback:
            runs[-1] = (runs[-1][0] + char, fallback)
        else:
            runs.append((char, fallback))
    return runs


def normalize_family(font_family: str) -> str:
    """Map a CSS-ish font family name onto a Base-14 family."""
    lower = (font_family or "").lower()
    if "times" in lower or ("serif" in lower and "sans" not in lower):
        return "Times"
    if "courier" in lower or "mono" in lower:
        return "Courier"
    return "Helvetica"


def base14_fontname(font_family: str, bold: bool = False, italic: bool = False) -> str:
    """Pick the discrete Base-14 instance for a family and style."""
    regular, bold_name, italic_name, bold_italic = _BASE14[normalize_family(font_family)]
    if bold and italic:
        return bold_italic
    if bold:
        return bold_name
    if italic:
        return italic_name
    return regular


def is_font_file(data: bytes) -> bool:
    return len(data) >= 4 and data[:4] in _FONT_MAGIC


class FontProvider:
    """
    Loads the Unicode fallback font once per provider.

    A failed load is remembered, so a missing font is reported a single time
    and later lookups degrade immediately.
    """

    def __init__(self, font_path: Optional[str] = None):
        self.font_path = font_path
        self._bytes: Optional[bytes] = None
        self._font: Optional[fitz.Font] = None
        self._failure: Optional[AssetUnavailable] = None

    def load_fallback_bytes(self) -> bytes:
        """
        Read and validate the fallback font file.

        Raises:
            AssetUnavailable: If the file is missing, not a font or corrupt
        """
        if self._bytes is not None:
            return self._bytes
        if self._failure is not None:
            raise self._failure

        key = self.font_path or "<unset>"
        try:
            if not self.font_path:
                raise AssetUnavailable(key, "no fallback font configured")
            if not os.path.isfile(self.font_path):
                raise AssetUnavailable(key, "file not found")
            with open(self.font_path, "rb") as f:
                data = f.read()
            if not is_font_file(data):
                raise AssetUnavailable(key, "unrecognized font format")
            try:
                font = fitz.Font(fontbuffer=data)
            except Exception as e:
                # The signature matched but the tables do not parse
                raise AssetUnavailable(key, f"unreadable font: {e}") from e
        except OSError as e:
            self._failure = AssetUnavailable(key, str(e))
            raise self._failure from e
        except AssetUnavailable as e:
            self._failure = e
            raise

        self._bytes = data
        self._font = font
        return data

    def fallback_bytes(self) -> Optional[bytes]:
        """Fallback font bytes, or None (logged once) if unavailable."""
        if self._failure is not None:
            return None
        try:
            return self.load_fallback_bytes()
        except AssetUnavailable as e:
            logger.warning("%s; non Latin-1 characters will be replaced by '%s'",
                           e, REPLACEMENT_CHAR)
            return None

    def fallback_font(self) -> Optional[fitz.Font]:
        if self._font is None:
            data = self.fallback_bytes()
            if data is None:
                return None
            self._font = fitz.Font(fontbuffer=data)
        return self._font

    @property
    def available(self) -> bool:
        return self.fallback_font() is not None


class TextMetrics:
    """Measures text boxes with real font metrics."""

    def __init__(self, fonts: FontProvider, line_height: float = 1.2):
        self.fonts = fonts
        self.line_height = line_height
        self._base_fonts: Dict[str, fitz.Font] = {}

    def _base_font(self, fontname: str) -> fitz.Font:
        font = self._base_fonts.get(fontname)
        if font is None:
            font = fitz.Font(fontname)
            self._base_fonts[fontname] = font
        return font

    def line_runs(self, line: str, font_family: str, bold: bool,
                  italic: bool) -> List[Tuple[str, Optional[str]]]:
        """
        Split a line into drawable runs.

        Returns:
            List of (text, base14 fontname) where a None fontname means the
            run is drawn with the fallback font
        """
        base = base14_fontname(font_family, bold, italic)
        fallback_ok = self.fonts.fallback_font() is not None if needs_unicode_font(line) else False
        runs: List[Tuple[str, Optional[str]]] = []
        for text, needs_fallback in split_runs(line):
            if needs_fallback and fallback_ok:
                runs.append((text, None))
            elif needs_fallback:
                runs.append((to_latin_safe(text), base))
            else:
                runs.append((text, base))
        return runs

    def run_width(self, text: str, fontname: Optional[str], font_size: float) -> float:
        if fontname is None:
            font = self.fonts.fallback_font()
            if font is not None:
                return font.text_length(text, fontsize=font_size)
            fontname = "helv"
            text = to_latin_safe(text)
        return fitz.get_text_length(text, fontname=fontname, fontsize=font_size)

    def line_width(self, line: str, font_family: str, font_size: float,
                   bold: bool = False, italic: bool = False) -> float:
        return sum(self.run_width(text, fontname, font_size)
                   for text, fontname in self.line_runs(line, font_family, bold, italic))

    def ascender(self, font_family: str, bold: bool = False, italic: bool = False) -> float:
        """Ascender of the base font as a fraction of the font size."""
        return self._base_font(base14_fontname(font_family, bold, italic)).ascender

    def measure(self, data: TextData) -> Tuple[float, float]:
        """
        Measure the box a text annotation occupies when drawn.

        Returns:
            (width, height) in points
        """
        lines = data.lines
        width = max(
            self.line_width(line, data.font_family, data.font_size, data.is_bold, data.is_italic)
            for line in lines
        )
        height = max(1, len(lines)) * data.font_size * self.line_height
        return width, height

    @classmethod
    def from_settings(cls, settings: ExportSettings) -> "TextMetrics":
        return cls(FontProvider(settings.fallback_font_path), settings.line_height)
