"""Tests for the claim submission workflow."""

import asyncio
import random

import pytest

from conftest import CLEAN_ANSWER, FRAUD_ANSWER, FakeChatClient
from healthguard.agents import FraudAnalystAgent
from healthguard.agents.fraud_analyst import FALLBACK_REASON
from healthguard.models import ClaimDocument, ClaimDraft
from healthguard.plugins import PDFExtractionPipeline
from healthguard.submission import ClaimSubmissionService, validate_submission
from healthguard.utils.errors import (
    ClaimValidationError,
    DocumentProcessingError,
    ModelAPIError,
)


class CountingPipeline:
    """Extraction pipeline double that records calls."""

    def __init__(self, text="Office visit 99213", delay=0.0):
        self.text = text
        self.delay = delay
        self.calls = 0

    async def extract_text(self, document):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.text


class SlowClient(FakeChatClient):
    async def complete(self, messages, generation, operation="chat_completion"):
        await asyncio.sleep(1)
        return FRAUD_ANSWER


def _service(session_state, analyst_config, generation, client=None, pipeline=None, **kwargs):
    analyst = FraudAnalystAgent.from_config(analyst_config, generation, client or FakeChatClient())
    return ClaimSubmissionService(
        session=session_state,
        pipeline=pipeline or PDFExtractionPipeline(),
        analyst=analyst,
        rng=random.Random(7),
        **kwargs
    )


@pytest.mark.asyncio
async def test_successful_submission_records_model_result(
    session_state, analyst_config, generation, draft, claim_document
):
    client = FakeChatClient([FRAUD_ANSWER])
    service = _service(session_state, analyst_config, generation, client=client)

    record = await service.submit(draft, claim_document)

    assert record.is_fraud is True
    assert record.confidence_score == 87
    assert record.reasons == ("Procedure billed twice on the same date",)
    assert record.is_fallback is False
    assert "Jane Doe" in record.extracted_text
    assert session_state.load_current() == record
    assert len(client.calls) == 1
    user_turn = client.calls[0]["messages"][1]["content"]
    assert "80053" in user_turn


@pytest.mark.asyncio
async def test_empty_file_rejected_before_extraction(session_state, analyst_config, generation, draft):
    pipeline = CountingPipeline()
    client = FakeChatClient([CLEAN_ANSWER])
    service = _service(session_state, analyst_config, generation, client=client, pipeline=pipeline)

    with pytest.raises(ClaimValidationError) as exc_info:
        await service.submit(draft, ClaimDocument("claim.pdf", b""))

    assert exc_info.value.field == "document"
    assert pipeline.calls == 0
    assert client.calls == []
    assert session_state.load_current() is None
    assert session_state.load_history(10) == []


@pytest.mark.asyncio
async def test_model_failure_produces_labelled_fallback(
    session_state, analyst_config, generation, draft, claim_document
):
    error = ModelAPIError.missing_api_key()
    service = _service(
        session_state, analyst_config, generation, client=FakeChatClient([error])
    )

    record = await service.submit(draft, claim_document)

    assert record.is_fallback is True
    assert record.reasons[0] == FALLBACK_REASON
    assert "API key" in record.reasons[1]
    assert 50 <= record.confidence_score <= 95
    assert session_state.load_history(10)[0].is_fallback is True


@pytest.mark.asyncio
async def test_unparseable_model_answer_falls_back(
    session_state, analyst_config, generation, draft, claim_document
):
    client = FakeChatClient(["I think this claim looks fine."])
    service = _service(session_state, analyst_config, generation, client=client)

    record = await service.submit(draft, claim_document)

    assert record.is_fallback is True
    assert "Degraded mode" in record.reasons[0]


@pytest.mark.asyncio
async def test_classification_timeout_falls_back(
    session_state, analyst_config, generation, draft, claim_document
):
    service = _service(
        session_state, analyst_config, generation,
        client=SlowClient(), classification_timeout=0.01
    )

    record = await service.submit(draft, claim_document)

    assert record.is_fallback is True
    assert record.reasons[0] == FALLBACK_REASON


@pytest.mark.asyncio
async def test_empty_extracted_text_skips_model(session_state, analyst_config, generation, draft, claim_document):
    client = FakeChatClient([FRAUD_ANSWER])
    service = _service(
        session_state, analyst_config, generation,
        client=client, pipeline=CountingPipeline(text="  \n\n ")
    )

    record = await service.submit(draft, claim_document)

    assert client.calls == []
    assert record.is_fallback is True


@pytest.mark.asyncio
async def test_extraction_timeout_is_fatal(session_state, analyst_config, generation, draft, claim_document):
    client = FakeChatClient([FRAUD_ANSWER])
    service = _service(
        session_state, analyst_config, generation,
        client=client, pipeline=CountingPipeline(delay=1), extraction_timeout=0.01
    )

    with pytest.raises(DocumentProcessingError) as exc_info:
        await service.submit(draft, claim_document)

    assert "timeout" in exc_info.value.message
    assert client.calls == []
    assert session_state.load_current() is None


@pytest.mark.asyncio
async def test_unreadable_pdf_records_nothing(session_state, analyst_config, generation, draft):
    service = _service(session_state, analyst_config, generation, client=FakeChatClient([FRAUD_ANSWER]))

    with pytest.raises(DocumentProcessingError):
        await service.submit(draft, ClaimDocument("claim.pdf", b"garbage bytes"))

    assert session_state.load_current() is None
    assert session_state.load_history(10) == []


class TestValidateSubmission:
    def _document(self, name="claim.pdf", content=b"%PDF-1.4"):
        return ClaimDocument(filename=name, content=content)

    @pytest.mark.parametrize("draft_kwargs, document, field, message", [
        (
            {"patient_name": "  ", "patient_age": "x", "claim_amount": "x"}, None,
            "patient_name", "Please enter patient name",
        ),
        (
            {"patient_name": "Jane", "patient_age": "forty", "claim_amount": "x"}, None,
            "patient_age", "Please enter a valid age",
        ),
        (
            {"patient_name": "Jane", "patient_age": "42", "claim_amount": "lots"}, None,
            "claim_amount", "Please enter a valid claim amount",
        ),
        (
            {"patient_name": "Jane", "patient_age": "42", "claim_amount": "$1,200"}, None,
            "document", "Please upload a claim document",
        ),
    ])
    def test_first_failing_field_wins(self, draft_kwargs, document, field, message):
        with pytest.raises(ClaimValidationError) as exc_info:
            validate_submission(ClaimDraft(**draft_kwargs), document)

        assert exc_info.value.field == field
        assert exc_info.value.message == message

    def test_non_pdf_rejected(self, draft):
        with pytest.raises(ClaimValidationError, match="Please upload a PDF file"):
            validate_submission(draft, self._document(name="claim.docx"))

    def test_oversized_file_rejected(self, draft):
        big = self._document(content=b"x" * (1024 * 1024 + 1))

        with pytest.raises(ClaimValidationError, match="File size exceeds 1MB limit"):
            validate_submission(draft, big, max_file_size_mb=1)

    def test_valid_submission_passes(self, draft):
        validate_submission(draft, self._document(name="CLAIM.PDF"))
