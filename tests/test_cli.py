import json

import pytest

from inkpatch.core.annotations.models import Annotation, AnnotationType, TextData
from inkpatch.core.document.pdf_exporter import ExportMerger
from main import main

from .conftest import open_pdf


@pytest.fixture
def files(hello_pdf, tmp_path):
    source = tmp_path / "source.pdf"
    source.write_bytes(hello_pdf)
    note = Annotation.create(AnnotationType.TEXT, "page-2", TextData(text="From CLI", x=50, y_top=50))
    saved = tmp_path / "saved.json"
    saved.write_text(json.dumps({'version': 1, 'annotations': [note.to_dict()]}))
    return source, saved, tmp_path / "out.pdf"


class TestMain:

    def test_exports(self, files, tmp_path):
        source, saved, output = files
        code = main([str(source), str(saved), str(output),
                     "--fallback-font", str(tmp_path / "none.ttf")])

        assert code == 0
        out = open_pdf(output.read_bytes())
        assert out.page_count == 2
        assert "From CLI" in out[1].get_text()

    def test_bad_source(self, files, tmp_path):
        _, saved, output = files
        bad = tmp_path / "bad.pdf"
        bad.write_text("nope")
        assert main([str(bad), str(saved), str(output)]) == 1
        assert not output.exists()

    def test_missing_annotation_file(self, files, tmp_path):
        source, _, output = files
        assert main([str(source), str(tmp_path / "absent.json"), str(output)]) == 1

    def test_unwritable_output(self, files, tmp_path):
        source, saved, _ = files
        assert main([str(source), str(saved), str(tmp_path / "no" / "out.pdf")]) == 1

    def test_unexpected_export_failure(self, files, monkeypatch):
        source, saved, output = files

        def broken_merge(self, *args):
            raise ValueError("bad geometry")

        monkeypatch.setattr(ExportMerger, "merge", broken_merge)
        assert main([str(source), str(saved), str(output)]) == 1
        assert not output.exists()
