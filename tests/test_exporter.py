import random

import fitz
import pytest

from inkpatch.core.annotations.models import (
    Annotation,
    AnnotationType,
    ImageData,
    ShapeData,
    ShapeType,
    StrokeData,
    TextData,
)
from inkpatch.core.document.pdf_exporter import ExportMerger, parse_color
from inkpatch.core.page.models import PageInfo, PageKind, Point, Rect
from inkpatch.errors import BoundsError, DecodeError

from .conftest import open_pdf
from .test_assets import png_data_url

WHITE = (1.0, 1.0, 1.0)


def original(index, rotation=0, page_id=None):
    return PageInfo(id=page_id or f"page-{index}", kind=PageKind.ORIGINAL,
                    rotation=rotation, original_index=index)


def annotation(kind, data, page_id="page-1"):
    return Annotation.create(kind, page_id, data)


def white_rects(page):
    return [d["rect"] for d in page.get_drawings() if d.get("fill") == pytest.approx(WHITE)]


class TestParseColor:

    @pytest.mark.parametrize("value,expected", [
        ("#ff0000", (1.0, 0.0, 0.0)),
        ("#0F0", (0.0, 1.0, 0.0)),
        ("rgba(0, 0, 255, 0.5)", (0.0, 0.0, 1.0)),
        ("rgb(255,255,255)", (1.0, 1.0, 1.0)),
        ("purple", (0.0, 0.0, 0.0)),
        (None, (0.0, 0.0, 0.0)),
        ("#zzzzzz", (0.0, 0.0, 0.0)),
    ])
    def test_formats(self, value, expected):
        assert parse_color(value) == pytest.approx(expected)


class TestPageAssembly:

    def test_follows_page_list(self, hello_pdf, no_font_settings):
        pages = [
            original(2),
            PageInfo(id="blank-1", kind=PageKind.BLANK),
            original(1, rotation=90),
        ]
        out = open_pdf(ExportMerger(no_font_settings).merge(hello_pdf, pages, []))

        assert out.page_count == 3
        assert "Hello" not in out[0].get_text()
        assert (out[1].rect.width, out[1].rect.height) == (595, 842)
        assert out[2].rotation == 90
        assert "Hello" in out[2].get_text()

    def test_all_blank_needs_no_source(self, no_font_settings):
        pages = [PageInfo(id="blank-1", kind=PageKind.BLANK, width=300, height=400)]
        out = open_pdf(ExportMerger(no_font_settings).merge(b"", pages, []))
        assert (out[0].rect.width, out[0].rect.height) == (300, 400)

    def test_unknown_page_reference(self, hello_pdf, no_font_settings):
        stray = annotation(AnnotationType.TEXT, TextData(text="x", x=0, y_top=0), "page-9")
        with pytest.raises(BoundsError):
            ExportMerger(no_font_settings).merge(hello_pdf, [original(1)], [stray])

    def test_original_index_out_of_range(self, hello_pdf, no_font_settings):
        with pytest.raises(BoundsError):
            ExportMerger(no_font_settings).merge(hello_pdf, [original(3)], [])

    def test_undecodable_source(self, no_font_settings):
        with pytest.raises(DecodeError):
            ExportMerger(no_font_settings).merge(b"definitely not a pdf", [original(1)], [])

    def test_strips_existing_annotations(self, no_font_settings):
        doc = fitz.open()
        page = doc.new_page()
        page.add_rect_annot(fitz.Rect(50, 50, 150, 100))
        data = doc.tobytes()
        doc.close()

        stripped = open_pdf(ExportMerger(no_font_settings).merge(data, [original(1)], []))
        assert stripped[0].first_annot is None

        no_font_settings.strip_existing_annotations = False
        kept = open_pdf(ExportMerger(no_font_settings).merge(data, [original(1)], []))
        assert kept[0].first_annot is not None


class TestTextExport:

    def test_native_edit_longer_text_is_fully_covered(self, hello_pdf, no_font_settings):
        origin = Rect(72, 88, 28, 15)
        edit = annotation(AnnotationType.TEXT, TextData(
            text="Hello, World", x=72, y_top=88, font_size=12,
            is_native_edit=True, original_text_id="group-native-0-0-0",
            native_edit_origin=origin,
        ))
        out = open_pdf(ExportMerger(no_font_settings).merge(hello_pdf, [original(1), original(2)],
                                                            [edit]))
        page = out[0]

        assert "Hello, World" in page.get_text()
        needed = fitz.get_text_length("Hello, World", fontname="helv", fontsize=12) + 2 * 4
        covers = white_rects(page)
        assert any(r.x0 <= 72 - 4 + 0.5 and r.width >= needed - 0.5 for r in covers)
        assert any(r.contains(fitz.Rect(72, 88, 100, 103)) for r in covers)

    def test_shorter_text_still_hides_origin(self, hello_pdf, no_font_settings):
        origin = Rect(72, 88, 28, 15)
        edit = annotation(AnnotationType.TEXT, TextData(
            text="Hi", x=72, y_top=88, font_size=12, is_native_edit=True,
            original_text_id="g", native_edit_origin=origin,
        ))
        out = open_pdf(ExportMerger(no_font_settings).merge(hello_pdf, [original(1)], [edit]))
        assert any(r.contains(fitz.Rect(72, 88, 100, 103)) for r in white_rects(out[0]))

    def test_white_outs_come_before_all_text(self, hello_pdf, no_font_settings):
        first = annotation(AnnotationType.TEXT, TextData(text="First", x=72, y_top=200))
        second = annotation(AnnotationType.TEXT, TextData(text="Second", x=80, y_top=205))
        merger = ExportMerger(no_font_settings)
        out = open_pdf(merger.merge(hello_pdf, [original(1)], [first, second]))

        text = out[0].get_text()
        assert "First" in text and "Second" in text
        assert len(white_rects(out[0])) == 2

    def test_unicode_without_font_degrades(self, hello_pdf, no_font_settings):
        note = annotation(AnnotationType.TEXT, TextData(text="Hi 你好", x=72, y_top=300))
        merger = ExportMerger(no_font_settings)
        out = open_pdf(merger.merge(hello_pdf, [original(1)], [note]))

        text = out[0].get_text()
        assert "Hi" in text and "??" in text
        assert "你" not in text
        assert any("fallback font" in w for w in merger.warnings)

    def test_unicode_with_fallback_font(self, hello_pdf, unicode_settings):
        note = annotation(AnnotationType.TEXT, TextData(text="Hi 你好", x=72, y_top=300))
        merger = ExportMerger(unicode_settings)
        out = open_pdf(merger.merge(hello_pdf, [original(1)], [note]))

        text = out[0].get_text()
        assert "你好" in text
        assert "Hi" in text
        assert merger.warnings == []

    def test_bold_fallback_reports_warning(self, hello_pdf, unicode_settings):
        note = annotation(AnnotationType.TEXT, TextData(text="你好", x=72, y_top=300,
                                                        font_weight="bold"))
        merger = ExportMerger(unicode_settings)
        merger.merge(hello_pdf, [original(1)], [note])
        assert any("bold" in w for w in merger.warnings)

    def test_multiline_text(self, hello_pdf, no_font_settings):
        note = annotation(AnnotationType.TEXT, TextData(text="one\n\nthree", x=72, y_top=300))
        out = open_pdf(ExportMerger(no_font_settings).merge(hello_pdf, [original(1)], [note]))
        words = [w[4] for w in out[0].get_text("words")]
        assert "one" in words and "three" in words


class TestForegroundExport:

    def test_layering_order(self, hello_pdf, no_font_settings):
        stroke = [Point(100, 400), Point(200, 400)]
        anns = [
            annotation(AnnotationType.ERASER, StrokeData(points=stroke, size=6)),
            annotation(AnnotationType.DRAW, StrokeData(points=stroke, color="#0000ff", thickness=3)),
            annotation(AnnotationType.SHAPE, ShapeData(ShapeType.LINE, 100, 380, 100, 0,
                                                       border_color="#ff0000")),
            annotation(AnnotationType.HIGHLIGHT, StrokeData(points=stroke, size=12)),
        ]
        out = open_pdf(ExportMerger(no_font_settings).merge(hello_pdf, [original(1)], anns))
        strokes = [tuple(round(c, 3) for c in d["color"]) for d in out[0].get_drawings()
                   if d.get("color")]

        assert strokes[:3] == [(1.0, 1.0, 0.0), (1.0, 0.0, 0.0), (0.0, 0.0, 1.0)]

    def test_output_independent_of_input_order(self, hello_pdf, no_font_settings):
        stroke = [Point(50, 50), Point(60, 70), Point(80, 75)]
        anns = [
            annotation(AnnotationType.TEXT, TextData(text="Note", x=300, y_top=300)),
            annotation(AnnotationType.DRAW, StrokeData(points=stroke)),
            annotation(AnnotationType.HIGHLIGHT, StrokeData(points=stroke, color="#00ffff")),
            annotation(AnnotationType.SHAPE, ShapeData(ShapeType.CIRCLE, 20, 20, 40, 40)),
            annotation(AnnotationType.ERASER, StrokeData(points=stroke, size=4)),
        ]
        shuffled = list(anns)
        random.Random(7).shuffle(shuffled)

        def drawings(order):
            page = open_pdf(ExportMerger(no_font_settings).merge(hello_pdf, [original(1)], order))[0]
            return [(d.get("color"), d.get("fill"), tuple(d["rect"])) for d in page.get_drawings()]

        assert drawings(anns) == drawings(shuffled)

    def test_eraser_dot_for_single_sample(self, hello_pdf, no_font_settings):
        dot = annotation(AnnotationType.ERASER, StrokeData(points=[Point(300, 300)], size=10))
        out = open_pdf(ExportMerger(no_font_settings).merge(hello_pdf, [original(1)], [dot]))
        covers = white_rects(out[0])
        assert len(covers) == 1
        assert covers[0].width == pytest.approx(10, abs=0.5)

    def test_images(self, hello_pdf, no_font_settings):
        good = annotation(AnnotationType.IMAGE, ImageData(50, 50, 40, 30, png_data_url()))
        bad = annotation(AnnotationType.IMAGE, ImageData(50, 150, 40, 30,
                                                         "data:image/png;base64,AAAAAAAA"))
        merger = ExportMerger(no_font_settings)
        out = open_pdf(merger.merge(hello_pdf, [original(1)], [good, bad]))

        assert len(out[0].get_images()) == 1
        assert len(merger.warnings) == 1
        assert bad.id in merger.warnings[0]

    def test_progress_and_warning_signals(self, hello_pdf, no_font_settings):
        merger = ExportMerger(no_font_settings)
        progress, warnings = [], []
        merger.progress_signal.connect(lambda cur, total: progress.append((cur, total)))
        merger.warning_signal.connect(warnings.append)
        bad = annotation(AnnotationType.IMAGE, ImageData(0, 0, 10, 10, "nope"))

        merger.merge(hello_pdf, [original(1), original(2)], [bad])

        assert progress == [(0, 2), (1, 2), (2, 2)]
        assert warnings == merger.warnings


def displayed(page, read):
    """Read geometry off the unrotated page and map it into the displayed frame."""
    rotation = page.rotation
    page.set_rotation(0)
    value = read(page)
    page.set_rotation(rotation)
    matrix = page.rotation_matrix
    if isinstance(value, fitz.Point):
        # Direction vector: drop the translation
        return value * matrix - fitz.Point(0, 0) * matrix
    return fitz.Rect(value) * matrix


def assert_rect(got, want, tolerance=1.5):
    for g, w in zip(got, want):
        assert g == pytest.approx(w, abs=tolerance)


@pytest.mark.parametrize("rotation", [0, 90, 180, 270])
class TestRotatedPlacement:

    def merge(self, hello_pdf, settings, rotation, anns):
        page = open_pdf(ExportMerger(settings).merge(hello_pdf, [original(1, rotation=rotation)],
                                                     anns))[0]
        assert page.rotation == rotation
        return page

    def test_shape(self, hello_pdf, no_font_settings, rotation):
        box = annotation(AnnotationType.SHAPE, ShapeData(ShapeType.RECTANGLE, 10, 10, 100, 50,
                                                         border_width=0, fill_color="#00ff00"))
        page = self.merge(hello_pdf, no_font_settings, rotation, [box])

        def green(p):
            return [d["rect"] for d in p.get_drawings()
                    if d.get("fill") == pytest.approx((0, 1, 0))][0]

        assert_rect(displayed(page, green), (10, 10, 110, 60))

    def test_image(self, hello_pdf, no_font_settings, rotation):
        picture = annotation(AnnotationType.IMAGE, ImageData(200, 150, 40, 30, png_data_url()))
        page = self.merge(hello_pdf, no_font_settings, rotation, [picture])

        def placed(p):
            xref = p.get_images()[0][0]
            return p.get_image_rects(xref)[0]

        assert_rect(displayed(page, placed), (200, 150, 240, 180))

    def test_text(self, hello_pdf, no_font_settings, rotation):
        note = annotation(AnnotationType.TEXT, TextData(text="Upright", x=100, y_top=100))
        page = self.merge(hello_pdf, no_font_settings, rotation, [note])

        def word(p):
            return [w[:4] for w in p.get_text("words") if w[4] == "Upright"][0]

        def direction(p):
            for block in p.get_text("dict")["blocks"]:
                for line in block.get("lines", []):
                    if any("Upright" in span["text"] for span in line["spans"]):
                        return fitz.Point(line["dir"])
            raise AssertionError("text not found")

        box = displayed(page, word)
        assert box.x0 == pytest.approx(100, abs=1.5)
        assert box.y0 == pytest.approx(100, abs=5)
        assert box.width > box.height
        reading = displayed(page, direction)
        assert reading.x == pytest.approx(1, abs=1e-3)
        assert reading.y == pytest.approx(0, abs=1e-3)
