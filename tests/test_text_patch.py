import fitz
import pytest

from inkpatch.core.document.text_patch import TextModification, modify_page_text
from inkpatch.errors import BoundsError, DecodeError

from .conftest import open_pdf


def hello_modification(text):
    return TextModification(text=text, original_text="Hello", x=72, y_top=88, baseline_y=100,
                            width=28, height=15, font_size=12)


def white_fills(page):
    return [d["rect"] for d in page.get_drawings()
            if d.get("fill") == pytest.approx((1.0, 1.0, 1.0))]


class TestModifyPageText:

    def test_replaces_text(self, hello_pdf, no_font_settings):
        out = open_pdf(modify_page_text(hello_pdf, 0, [hello_modification("Howdy partner")],
                                        settings=no_font_settings))
        page = out[0]

        assert "Howdy partner" in page.get_text()
        assert any(r.contains(fitz.Rect(72, 88, 100, 103)) for r in white_fills(page))
        assert out.page_count == 2

    def test_empty_replacement_only_covers(self, hello_pdf, no_font_settings):
        out = open_pdf(modify_page_text(hello_pdf, 0, [hello_modification("")],
                                        settings=no_font_settings))
        page = out[0]
        assert len(white_fills(page)) == 1
        words = [w[4] for w in page.get_text("words")]
        assert words.count("Hello") == 1

    def test_keeps_requested_rotation(self, hello_pdf, no_font_settings):
        out = open_pdf(modify_page_text(hello_pdf, 1, [hello_modification("x")], rotation=180,
                                        settings=no_font_settings))
        assert out[1].rotation == 180
        assert out[0].rotation == 0

    def test_page_out_of_range(self, hello_pdf, no_font_settings):
        with pytest.raises(BoundsError):
            modify_page_text(hello_pdf, 2, [], settings=no_font_settings)
        with pytest.raises(BoundsError):
            modify_page_text(hello_pdf, -1, [], settings=no_font_settings)

    def test_bad_document(self, no_font_settings):
        with pytest.raises(DecodeError):
            modify_page_text(b"%PDF-garbage", 0, [], settings=no_font_settings)

    def test_as_text_data(self):
        data = hello_modification("Howdy").as_text_data()
        assert data.is_native_edit
        assert data.native_edit_origin == hello_modification("").origin
        assert data.text == "Howdy"
