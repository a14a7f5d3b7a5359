"""PDF text extraction with an ordered chain of ingestion strategies."""

import asyncio
import io
import logging
import os
import tempfile
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from PyPDF2 import PdfReader

from ..models.claim import ClaimDocument
from ..utils.errors import DocumentProcessingError

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"
SPOOL_MAX_BYTES = 1024 * 1024
READ_CHUNK_BYTES = 64 * 1024

# source (buffer, file object, or path) -> object exposing .pages
ReaderFactory = Callable[[Any], Any]
ExtractionStrategy = Callable[[ClaimDocument, ReaderFactory], Awaitable[str]]


def _read_all_pages(reader_factory: ReaderFactory, source: Any) -> str:
    """Open the document and extract every page, in page order."""
    reader = reader_factory(source)
    page_texts = []
    for page in reader.pages:
        page_texts.append(page.extract_text() or "")
    return PAGE_SEPARATOR.join(page_texts)


def _spool(target, content: bytes) -> None:
    for offset in range(0, len(content), READ_CHUNK_BYTES):
        target.write(content[offset:offset + READ_CHUNK_BYTES])
    target.seek(0)


def _acquire_temp_path(document: ClaimDocument) -> str:
    fd, path = tempfile.mkstemp(prefix="claim-", suffix=".pdf")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(document.content)
    except Exception:
        _release_temp_path(path)
        raise
    logger.debug(f"Wrote {document.size} bytes of {document.filename} to {path}")
    return path


def _release_temp_path(path: str) -> None:
    try:
        os.unlink(path)
        logger.debug(f"Released temporary file {path}")
    except FileNotFoundError:
        logger.warning(f"Temporary file already gone: {path}")
    except OSError as e:
        logger.error(f"Failed to release temporary file {path}: {str(e)}")


async def direct_buffer_strategy(document: ClaimDocument, reader_factory: ReaderFactory) -> str:
    """Hand the raw bytes to the parser through an in-memory buffer."""
    return await asyncio.to_thread(_read_all_pages, reader_factory, io.BytesIO(document.content))


async def async_read_strategy(document: ClaimDocument, reader_factory: ReaderFactory) -> str:
    """Copy the bytes through an asynchronous read into a spooled file, then parse that."""
    spooled = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES)
    try:
        await asyncio.to_thread(_spool, spooled, document.content)
        return await asyncio.to_thread(_read_all_pages, reader_factory, spooled)
    finally:
        spooled.close()


async def temp_file_strategy(document: ClaimDocument, reader_factory: ReaderFactory) -> str:
    """Parse from a temporary file path; the file is released on every outcome."""
    path = await asyncio.to_thread(_acquire_temp_path, document)
    try:
        return await asyncio.to_thread(_read_all_pages, reader_factory, path)
    finally:
        _release_temp_path(path)


DEFAULT_STRATEGIES: Tuple[Tuple[str, ExtractionStrategy], ...] = (
    ("direct_buffer", direct_buffer_strategy),
    ("async_read", async_read_strategy),
    ("temp_file", temp_file_strategy),
)


class PDFExtractionPipeline:
    """
    Extracts the text of a claim PDF.

    Strategies all wrap the same parser (PyPDF2 by default) and differ only
    in how the bytes reach it. They run in order; the first one to open the
    document and extract every page wins, and none run after it. When all of
    them fail a DocumentProcessingError carries every strategy's message in
    order.

    The pipeline sets no timeout of its own; callers wrap ``extract_text``
    in ``asyncio.wait_for``.
    """

    def __init__(
        self,
        strategies: Optional[Sequence[Tuple[str, ExtractionStrategy]]] = None,
        reader_factory: Optional[ReaderFactory] = None
    ):
        """
        Initialize the extraction pipeline.

        Args:
            strategies: (name, strategy) pairs in the order they are tried
            reader_factory: Parser entry point taking a buffer, file object or path
        """
        self.strategies: List[Tuple[str, ExtractionStrategy]] = list(
            strategies if strategies is not None else DEFAULT_STRATEGIES
        )
        self.reader_factory = reader_factory or PdfReader
        logger.info(
            f"Initialized PDFExtractionPipeline with strategies "
            f"{[name for name, _ in self.strategies]}"
        )

    async def extract_text(self, document: ClaimDocument) -> str:
        """
        Extract text from a PDF document.

        Args:
            document: Uploaded claim document

        Returns:
            Per-page text joined by a blank line, page 1 first

        Raises:
            DocumentProcessingError: If every strategy fails
        """
        failures: List[Tuple[str, str]] = []

        for name, strategy in self.strategies:
            try:
                text = await strategy(document, self.reader_factory)
            except Exception as e:
                message = str(e) or e.__class__.__name__
                logger.warning(
                    f"Extraction strategy '{name}' failed for {document.filename}: {message}"
                )
                failures.append((name, message))
                continue

            logger.info(
                f"Extracted {len(text)} characters using {name} "
                f"from {document.filename}"
            )
            return text

        logger.error(
            f"All {len(failures)} extraction strategies failed for {document.filename}"
        )
        raise DocumentProcessingError.pdf_extraction_failed(document.filename, failures)
