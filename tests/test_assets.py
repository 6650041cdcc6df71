import base64

import fitz
import pytest

from inkpatch.core.annotations.models import Annotation, AnnotationType, ImageData, TextData
from inkpatch.core.document.assets import (
    UNAVAILABLE,
    AssetCache,
    ImageDecoder,
    parse_data_url,
)
from inkpatch.errors import AssetUnavailable


def png_data_url(width=4, height=3):
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, width, height), False)
    pix.clear_with(200)
    return "data:image/png;base64," + base64.b64encode(pix.tobytes("png")).decode("ascii")


class TestAssetCache:

    def test_evicts_least_recently_used(self):
        cache = AssetCache(capacity=2)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.get("a") == 1
        cache.set("c", 3)

        assert "b" not in cache
        assert "a" in cache and "c" in cache
        assert len(cache) == 2

    def test_set_existing_refreshes(self):
        cache = AssetCache(capacity=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        cache.set("c", 3)
        assert cache.keys() == ["a", "c"]
        assert cache.get("a") == 10

    def test_never_exceeds_capacity(self):
        cache = AssetCache(capacity=50)
        for n in range(500):
            cache.set(str(n), n)
        assert len(cache) == 50
        assert cache.keys()[0] == "450"

    def test_delete_and_clear(self):
        cache = AssetCache()
        cache.set("a", 1)
        assert cache.delete("a")
        assert not cache.delete("a")
        cache.set("b", 2)
        cache.clear()
        assert len(cache) == 0

    def test_evict_except(self):
        cache = AssetCache()
        for key in "abcd":
            cache.set(key, key)
        assert cache.evict_except(["b", "d", "z"]) == 2
        assert cache.keys() == ["b", "d"]

    def test_evict_for_page_keeps_page_images(self):
        def image(page_id):
            return Annotation.create(AnnotationType.IMAGE, page_id, ImageData(0, 0, 1, 1))

        mine, other = image("page-1"), image("page-2")
        text = Annotation.create(AnnotationType.TEXT, "page-1", TextData(text="t", x=0, y_top=0))
        cache = AssetCache()
        for ann in (mine, other, text):
            cache.set(ann.id, object())

        cache.evict_for_page("page-1", [mine, other, text])
        assert cache.keys() == [mine.id]

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            AssetCache(capacity=0)


class TestImageDecoder:

    def test_decodes_png(self):
        decoder = ImageDecoder()
        image = decoder.decode("img-1", png_data_url(4, 3))
        assert (image.width, image.height) == (4, 3)
        assert image.mime == "image/png"
        assert decoder.decode("img-1", "ignored when cached") is image

    def test_failure_is_cached(self):
        decoder = ImageDecoder()
        with pytest.raises(AssetUnavailable):
            decoder.decode("img-bad", "data:image/png;base64,AAAAAAAA")
        assert decoder.cache.get("img-bad") is UNAVAILABLE

        # A valid payload under the same key stays unavailable
        with pytest.raises(AssetUnavailable):
            decoder.decode("img-bad", png_data_url())

    @pytest.mark.parametrize("url", [
        "",
        "https://example.com/a.png",
        "data:image/gif;base64,R0lGODlhAQABAAAAACw=",
        "data:image/png,rawbytes",
        "data:image/png;base64,",
    ])
    def test_rejects_unusable_data(self, url):
        with pytest.raises(AssetUnavailable):
            ImageDecoder().decode("k", url)

    def test_parse_data_url(self):
        mime, payload = parse_data_url("data:image/jpeg;base64," + base64.b64encode(b"xyz").decode())
        assert mime == "image/jpeg"
        assert payload == b"xyz"
        with pytest.raises(ValueError):
            parse_data_url("not a url")
