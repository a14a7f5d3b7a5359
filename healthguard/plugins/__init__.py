"""Document processing plugins."""

from .pdf_extractor import PDFExtractionPipeline

__all__ = [
    'PDFExtractionPipeline'
]
