"""Document ingestion adapters."""

from lessonflow.ingest.pdf import DocumentLoader, PyMuPDFExtractor, TextExtractor

__all__ = ["DocumentLoader", "PyMuPDFExtractor", "TextExtractor"]
