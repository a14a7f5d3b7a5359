"""Shared fixtures for the HealthGuard test suite."""

import io
import json
from typing import List, Optional, Sequence, Union

import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from healthguard.models import ClaimDocument, ClaimDraft
from healthguard.storage import ClaimSessionState, InMemoryStore
from healthguard.utils.config import AgentConfig, GenerationConfig

FRAUD_ANSWER = json.dumps({
    "isFraud": True,
    "confidenceScore": 87,
    "reasons": ["Procedure billed twice on the same date"],
    "suggestedActions": ["Request itemized bill"],
})

CLEAN_ANSWER = json.dumps({
    "isFraud": False,
    "confidenceScore": 72,
    "reasons": ["Dates and codes are consistent"],
    "suggestedActions": ["Approve claim"],
})


def build_pdf(pages: Sequence[str]) -> bytes:
    """Render one line of text per page into a real PDF."""
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=letter)
    for text in pages:
        pdf.drawString(72, 720, text)
        pdf.showPage()
    pdf.save()
    return buffer.getvalue()


class FakeChatClient:
    """Stands in for ChatCompletionClient; replays scripted answers or errors."""

    def __init__(self, responses: Optional[List[Union[str, Exception]]] = None):
        self.responses = list(responses or [])
        self.calls = []

    async def complete(self, messages, generation, operation="chat_completion"):
        self.calls.append({"messages": messages, "generation": generation, "operation": operation})
        if not self.responses:
            return ""
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def sample_pdf() -> bytes:
    return build_pdf([
        "Patient Jane Doe - Office visit 99213",
        "Lab panel 80053 billed on 2025-05-14",
        "Total charges $1,250.00",
    ])


@pytest.fixture
def claim_document(sample_pdf) -> ClaimDocument:
    return ClaimDocument(filename="claim.pdf", content=sample_pdf)


@pytest.fixture
def draft() -> ClaimDraft:
    return ClaimDraft(
        patient_name="Jane Doe",
        patient_age="42",
        claim_amount="$1,250.00",
        claim_description="Routine visit with lab work",
    )


@pytest.fixture
def ephemeral() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def durable() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def session_state(ephemeral, durable) -> ClaimSessionState:
    return ClaimSessionState(ephemeral=ephemeral, durable=durable)


@pytest.fixture
def generation() -> GenerationConfig:
    return GenerationConfig(temperature=0.2, top_p=0.9, max_tokens=1000)


@pytest.fixture
def analyst_config() -> AgentConfig:
    return AgentConfig(name="fraud-analyst", instructions="Detect fraud. Answer in JSON.")


@pytest.fixture
def assistant_config() -> AgentConfig:
    return AgentConfig(
        name="claims-assistant",
        instructions="You are a helpful assistant for healthcare insurance claims.",
    )
