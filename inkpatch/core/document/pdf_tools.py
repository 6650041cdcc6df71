"""
Whole-document conversions: merging, splitting and images to PDF.
"""
import logging
from typing import List, Sequence, Tuple, Union

import fitz  # PyMuPDF

from ...errors import AssetUnavailable, BoundsError, DecodeError
from .assets import decode_image_bytes, parse_data_url

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, str]


def _open(data: bytes, label: str) -> fitz.Document:
    try:
        return fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        raise DecodeError(f"Error loading {label}: {e}") from e


def _save(doc: fitz.Document) -> bytes:
    try:
        return doc.tobytes(garbage=4, deflate=True)
    finally:
        doc.close()


def merge_documents(documents: Sequence[bytes]) -> bytes:
    """
    Concatenate PDFs, keeping every page of each in order.

    Args:
        documents: PDF bytes, in output order

    Returns:
        Bytes of the merged PDF

    Raises:
        ValueError: If there is nothing to merge
        DecodeError: If one of the inputs cannot be opened
    """
    if not documents:
        raise ValueError("No documents to merge")

    merged = fitz.open()
    try:
        for index, data in enumerate(documents):
            src = _open(data, f"document {index + 1}")
            try:
                merged.insert_pdf(src)
            finally:
                src.close()
    except Exception:
        merged.close()
        raise

    if merged.page_count == 0:
        merged.close()
        raise ValueError("Merged documents have no pages")
    logger.info("Merged %d documents into %d pages", len(documents), merged.page_count)
    return _save(merged)


def split_document(document: bytes, ranges: Sequence[Tuple[int, int]]) -> List[bytes]:
    """
    Cut a PDF into one new document per page range.

    Args:
        document: Source PDF bytes
        ranges: (start, end) pairs of 1-based, inclusive page numbers

    Returns:
        One PDF per range, in the order given

    Raises:
        DecodeError: If the source cannot be opened
        BoundsError: If a range is empty or leaves the document
    """
    src = _open(document, "document")
    try:
        for start, end in ranges:
            if not 1 <= start <= end <= src.page_count:
                raise BoundsError(f"Page range {start}-{end} out of range "
                                  f"(document has {src.page_count} pages)")

        parts = []
        for start, end in ranges:
            part = fitz.open()
            part.insert_pdf(src, from_page=start - 1, to_page=end - 1)
            parts.append(_save(part))
    finally:
        src.close()
    return parts


def images_to_pdf(images: Sequence[ImageSource]) -> bytes:
    """
    Build a PDF with one page per image, each page the size of its image.

    Args:
        images: PNG or JPEG bytes, or data: URLs carrying them

    Returns:
        Bytes of the new PDF

    Raises:
        ValueError: If no images are given
        AssetUnavailable: If an image is not a readable PNG or JPEG
    """
    if not images:
        raise ValueError("No images to convert")

    doc = fitz.open()
    try:
        for index, source in enumerate(images):
            key = f"image-{index + 1}"
            try:
                if isinstance(source, str):
                    mime, payload = parse_data_url(source)
                    image = decode_image_bytes(payload, mime)
                else:
                    image = decode_image_bytes(bytes(source))
            except ValueError as e:
                raise AssetUnavailable(key, str(e)) from e

            page = doc.new_page(width=image.width, height=image.height)
            page.insert_image(page.rect, stream=image.data)
    except Exception:
        doc.close()
        raise

    logger.info("Converted %d images to PDF", len(images))
    return _save(doc)
