"""
Handles persistence of annotations and page layout to/from JSON files.
"""
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple

from ...errors import DecodeError
from ...utils.resource_loader import get_app_data_dir
from ..page.models import PageInfo
from .models import Annotation

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class AnnotationPersistence:
    """Saves and loads a document's pages and annotations."""

    def __init__(self, data_dir: Optional[str] = None):
        """
        Args:
            data_dir: Directory for per-document files; defaults to the
                user's app data directory
        """
        self._data_dir = Path(data_dir) if data_dir else None

    def get_data_dir(self) -> Path:
        if self._data_dir is None:
            self._data_dir = get_app_data_dir() / "annotations"
        self._data_dir.mkdir(parents=True, exist_ok=True)
        return self._data_dir

    def get_json_path(self, pdf_path: str) -> str:
        """
        Get the JSON file path for a given PDF.

        The file name is a hash of the PDF path, so every document gets its
        own file regardless of where it lives.
        """
        path_hash = hashlib.md5(os.path.abspath(pdf_path).encode()).hexdigest()
        return str(self.get_data_dir() / f"{path_hash}.json")

    @staticmethod
    def to_document(pages: List[PageInfo], annotations: List[Annotation],
                    pdf_path: Optional[str] = None) -> dict:
        return {
            'version': FORMAT_VERSION,
            'pdf_path': pdf_path,
            'pages': [page.to_dict() for page in pages],
            'annotations': [ann.to_dict() for ann in annotations],
        }

    @staticmethod
    def from_document(data: dict) -> Tuple[List[PageInfo], List[Annotation]]:
        """
        Decode a saved document.

        Raises:
            DecodeError: If the structure or a field is invalid
        """
        try:
            pages = [PageInfo.from_dict(p) for p in data.get('pages', [])]
            annotations = [Annotation.from_dict(a) for a in data.get('annotations', [])]
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Invalid annotation file: {e}") from e
        return pages, annotations

    def save(self, pages: List[PageInfo], annotations: List[Annotation],
             pdf_path: Optional[str] = None, file_path: Optional[str] = None) -> str:
        """
        Save pages and annotations to a JSON file.

        Args:
            pages: Page slots in display order
            annotations: Live annotations
            pdf_path: Path of the associated PDF
            file_path: Explicit target; defaults to the hashed per-PDF file

        Returns:
            Path of the written file
        """
        if file_path is None:
            if pdf_path is None:
                raise ValueError("Either pdf_path or file_path is required")
            file_path = self.get_json_path(pdf_path)

        directory = os.path.dirname(os.path.abspath(file_path))
        os.makedirs(directory, exist_ok=True)

        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(self.to_document(pages, annotations, pdf_path), f, indent=2)

        logger.debug("Saved %d annotations to %s", len(annotations), file_path)
        return file_path

    def load(self, pdf_path: Optional[str] = None,
             file_path: Optional[str] = None) -> Tuple[List[PageInfo], List[Annotation]]:
        """
        Load pages and annotations from a JSON file.

        Raises:
            FileNotFoundError: If there is no saved file
            DecodeError: If the file is not a valid annotation file
        """
        if file_path is None:
            if pdf_path is None:
                raise ValueError("Either pdf_path or file_path is required")
            file_path = self.get_json_path(pdf_path)

        with open(file_path, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise DecodeError(f"{file_path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise DecodeError(f"{file_path} does not hold an annotation document")

        stored = data.get('pdf_path')
        if pdf_path and stored and os.path.abspath(stored) != os.path.abspath(pdf_path):
            logger.warning("Annotation file %s was saved for a different PDF: %s",
                           file_path, stored)

        return self.from_document(data)

    def delete(self, pdf_path: str) -> bool:
        """
        Delete the saved file of a PDF.

        Returns:
            True if a file was removed
        """
        file_path = self.get_json_path(pdf_path)
        if not os.path.exists(file_path):
            return False
        os.remove(file_path)
        return True

    def has_saved_annotations(self, pdf_path: str) -> bool:
        return os.path.exists(self.get_json_path(pdf_path))
