"""
PDF import for passage intake.
"""

import io
import re
from typing import Any

from pypdf import PdfReader

_TRAILING_SPACE_RE = re.compile(r"[ \t]+\n")
_BLANK_RUN_RE = re.compile(r"\n{3,}")


class PDFProcessor:
    """Extracts passage text from uploaded PDF files."""

    def _read_bytes(self, uploaded_file: Any) -> bytes:
        try:
            data = uploaded_file.read()
        except Exception as e:
            raise ValueError(f"Unable to read file: {e!s}") from e
        if not data:
            raise ValueError("File is empty and cannot be processed.")
        return data

    def extract_pages_from_bytes(self, data: bytes) -> list[str]:
        """
        Extract the non-empty text of every page.

        Raises:
            ValueError: If the bytes are empty or not a readable PDF.
        """
        if not data:
            raise ValueError("File is empty and cannot be processed.")
        try:
            reader = PdfReader(io.BytesIO(data))
        except Exception as e:
            raise ValueError(f"Unable to parse PDF (possibly corrupted): {e!s}") from e

        pages: list[str] = []
        try:
            for page in reader.pages:
                text = (page.extract_text() or "").strip()
                if text:
                    pages.append(text)
        except Exception as e:
            raise ValueError(f"Error extracting page text: {e!s}") from e
        return pages

    def extract_passage(self, uploaded_file: Any) -> str:
        """
        Read an uploaded PDF and return its text as one passage.

        Args:
            uploaded_file: A file-like object (e.g. Streamlit UploadedFile)
                with .read() returning bytes.

        Returns:
            Page texts joined by blank lines, with runs of blank lines collapsed.

        Raises:
            ValueError: If the file is empty, corrupted, or has no extractable text.
        """
        pages = self.extract_pages_from_bytes(self._read_bytes(uploaded_file))
        text = _TRAILING_SPACE_RE.sub("\n", "\n\n".join(pages))
        text = _BLANK_RUN_RE.sub("\n\n", text).strip()
        if not text:
            raise ValueError("No text could be extracted from this PDF.")
        return text
