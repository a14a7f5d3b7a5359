"""
Claim submission workflow.

Validates operator input, extracts the PDF text, classifies it (falling back
to a flagged random classification when the model is unavailable), and
records the result in the claim session state.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from typing import Optional

from .agents.fraud_analyst import FraudAnalystAgent, fallback_classification
from .models.claim import ClaimDocument, ClaimDraft, ClaimRecord, Classification
from .plugins.pdf_extractor import PDFExtractionPipeline
from .storage.claim_session import ClaimSessionState
from .utils.errors import ClaimValidationError, DocumentProcessingError, ModelAPIError
from .utils.logging import set_context, with_context

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


def _is_number(value: str) -> bool:
    try:
        return math.isfinite(float(value))
    except ValueError:
        return False


def validate_submission(
    draft: ClaimDraft,
    document: Optional[ClaimDocument],
    max_file_size_mb: int = 10
) -> None:
    """
    Reject a submission before any extraction or model work starts.

    Checks run in form order and the first failure wins.

    Raises:
        ClaimValidationError: Naming the missing or invalid field
    """
    if not draft.patient_name or not draft.patient_name.strip():
        raise ClaimValidationError("patient_name", "Please enter patient name")

    age = (draft.patient_age or "").strip()
    if not age or not _is_number(age):
        raise ClaimValidationError("patient_age", "Please enter a valid age")

    amount = (draft.claim_amount or "").strip()
    if not amount or not _is_number(amount.replace("$", "").replace(",", "")):
        raise ClaimValidationError("claim_amount", "Please enter a valid claim amount")

    if document is None or not document.filename:
        raise ClaimValidationError("document", "Please upload a claim document")

    if document.size == 0:
        raise ClaimValidationError("document", "Uploaded claim document is empty")

    if not document.filename.lower().endswith(".pdf"):
        raise ClaimValidationError("document", "Please upload a PDF file")

    if document.size > max_file_size_mb * 1024 * 1024:
        raise ClaimValidationError("document", f"File size exceeds {max_file_size_mb}MB limit")


class ClaimSubmissionService:
    """Runs one submission from form data to a stored claim record."""

    def __init__(
        self,
        session: ClaimSessionState,
        pipeline: PDFExtractionPipeline,
        analyst: FraudAnalystAgent,
        extraction_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        classification_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_file_size_mb: int = 10,
        rng: Optional[random.Random] = None
    ):
        self.session = session
        self.pipeline = pipeline
        self.analyst = analyst
        self.extraction_timeout = extraction_timeout
        self.classification_timeout = classification_timeout
        self.max_file_size_mb = max_file_size_mb
        self.rng = rng or random.Random()

    @with_context(component="submission")
    async def submit(self, draft: ClaimDraft, document: Optional[ClaimDocument]) -> ClaimRecord:
        """
        Process a claim submission.

        Args:
            draft: Operator-entered fields
            document: Uploaded claim PDF

        Returns:
            The recorded ClaimRecord

        Raises:
            ClaimValidationError: Input rejected; nothing else ran
            DocumentProcessingError: No text could be extracted; nothing was recorded
            StorageError: The claim history could not be saved
        """
        validate_submission(draft, document, self.max_file_size_mb)
        set_context(document=document.filename)

        logger.info(f"Processing claim submission for {document.filename} ({document.size} bytes)")

        extracted_text = await self._extract(document)
        classification = await self._classify(extracted_text)

        return self.session.record_submission(draft, document, extracted_text, classification)

    async def _extract(self, document: ClaimDocument) -> str:
        try:
            return await asyncio.wait_for(
                self.pipeline.extract_text(document),
                timeout=self.extraction_timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Extraction of {document.filename} timed out after {self.extraction_timeout}s")
            raise DocumentProcessingError.pdf_extraction_failed(
                document.filename,
                [("timeout", f"extraction did not finish within {self.extraction_timeout:g} seconds")]
            ) from e

    async def _classify(self, text: str) -> Classification:
        if not text.strip():
            logger.warning("Extracted text is empty, skipping model classification")
            return fallback_classification(
                ValueError("No text could be extracted from the document"), self.rng
            )

        try:
            return await asyncio.wait_for(
                self.analyst.classify(text),
                timeout=self.classification_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Classification timed out after {self.classification_timeout}s, "
                f"using fallback classification"
            )
            return fallback_classification(
                TimeoutError(f"model did not answer within {self.classification_timeout:g} seconds"),
                self.rng
            )
        except ModelAPIError as e:
            logger.warning(f"Classification failed, using fallback classification: {e}")
            return fallback_classification(e, self.rng)
