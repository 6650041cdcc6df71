import os

import fitz
import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PyQt5.QtGui import QGuiApplication  # noqa: E402

from inkpatch.config import ExportSettings  # noqa: E402
from inkpatch.core.document.fonts import is_font_file  # noqa: E402


def build_pdf(pages):
    """
    Build a PDF in memory.

    Each page is a dict with optional width, height, rotation, fontsize and
    texts: a list of ((x, baseline_y), text) in unrotated page coordinates.
    """
    doc = fitz.open()
    for spec in pages:
        page = doc.new_page(width=spec.get("width", 612), height=spec.get("height", 792))
        for point, text in spec.get("texts", []):
            page.insert_text(point, text, fontsize=spec.get("fontsize", 12), fontname="helv")
        if spec.get("rotation"):
            page.set_rotation(spec["rotation"])
    data = doc.tobytes()
    doc.close()
    return data


def open_pdf(data):
    return fitz.open(stream=data, filetype="pdf")


@pytest.fixture(scope="session", autouse=True)
def qt_app():
    app = QGuiApplication.instance() or QGuiApplication([])
    yield app


@pytest.fixture
def hello_pdf():
    """Two 612x792 pages; the first holds 'Hello' at (72, 100)."""
    return build_pdf([{"texts": [((72, 100), "Hello")]}, {}])


@pytest.fixture
def no_font_settings(tmp_path):
    return ExportSettings(fallback_font_path=str(tmp_path / "missing.ttf"))


@pytest.fixture
def unicode_font_path(tmp_path):
    data = fitz.Font("cjk").buffer
    if not is_font_file(data):
        pytest.skip("built-in CJK font is not a plain TrueType/OpenType file")
    path = tmp_path / "fallback.ttf"
    path.write_bytes(data)
    return str(path)


@pytest.fixture
def unicode_settings(unicode_font_path):
    return ExportSettings(fallback_font_path=unicode_font_path)
