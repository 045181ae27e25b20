"""
PDF ingestion - resolve a resource uri and extract its text.

Extraction is blocking (PyMuPDF is a C library), so it runs in a worker
thread and never stalls the event loop the executor runs on.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import fitz  # PyMuPDF

from lessonflow.graph.errors import ExtractionError

logger = logging.getLogger(__name__)


class TextExtractor(ABC):
    """Turns document bytes into plain text."""

    @abstractmethod
    def extract_text(self, data: bytes) -> str:
        """
        Extract the text of a document.

        Raises:
            ExtractionError: If the bytes are not a readable document
        """


class PyMuPDFExtractor(TextExtractor):
    """PDF text extraction with PyMuPDF; pages are joined with newlines."""

    def extract_text(self, data: bytes) -> str:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise ExtractionError(f"Could not open PDF: {e}") from e

        try:
            pages = []
            for page_num in range(doc.page_count):
                page = doc.load_page(page_num)
                # Clean NULL characters
                pages.append(page.get_text().replace("\x00", ""))
            return "\n".join(pages)
        except Exception as e:
            raise ExtractionError(f"PDF text extraction failed: {e}") from e
        finally:
            doc.close()


class DocumentLoader:
    """
    Loads documents named by a resource uri.

    Relative uris are resolved against ``base_dir`` (the working directory
    by default); ``file://`` prefixes are accepted.
    """

    def __init__(self, extractor: TextExtractor | None = None, base_dir: str | Path | None = None):
        self.extractor = extractor or PyMuPDFExtractor()
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()

    def resolve(self, uri: str) -> Path:
        path = Path(uri.removeprefix("file://")).expanduser()
        if not path.is_absolute():
            path = self.base_dir / path
        return path

    async def load_text(self, uri: str) -> str:
        """
        Read and extract the document at ``uri``.

        Raises:
            ExtractionError: If the file cannot be read or parsed
        """
        path = self.resolve(uri)

        def _load() -> str:
            try:
                data = path.read_bytes()
            except OSError as e:
                raise ExtractionError(f"Could not read {path}: {e.strerror or e}") from e
            return self.extractor.extract_text(data)

        text = await asyncio.to_thread(_load)
        logger.info(f"📄 Extracted {len(text)} characters from {path.name}")
        return text
