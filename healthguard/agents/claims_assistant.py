"""Chat assistant that answers operator questions about the current claim."""

import logging
from typing import Optional

from ..models.claim import ClaimRecord
from ..utils.config import AgentConfig, GenerationConfig
from ..utils.llm_client import ChatCompletionClient
from .base import BaseClaimsAgent

logger = logging.getLogger(__name__)

EMPTY_REPLY = "Sorry, I couldn't generate a response."
TRANSCRIPT_EXCERPT_CHARS = 4000


def summarize_claim(claim: ClaimRecord, excerpt_chars: int = TRANSCRIPT_EXCERPT_CHARS) -> str:
    """Plain-text summary of a claim for the assistant's system turn."""
    determination = "potentially fraudulent" if claim.is_fraud else "not fraudulent"
    if claim.is_fallback:
        determination += " (fallback result, not a model determination)"

    lines = [
        f"Claim ID: {claim.id}",
        f"Patient: {claim.patient_name}, age {claim.patient_age}",
        f"Claim amount: {claim.claim_amount}",
        f"Submitted: {claim.display_date}",
        f"Document: {claim.file_name}",
        f"Determination: {determination}, confidence {claim.confidence_score}%",
    ]
    if claim.claim_description:
        lines.append(f"Description: {claim.claim_description}")
    if claim.reasons:
        lines.append("Reasons:")
        lines.extend(f"- {reason}" for reason in claim.reasons)
    if claim.suggested_actions:
        lines.append("Suggested actions:")
        lines.extend(f"- {action}" for action in claim.suggested_actions)

    text = claim.extracted_text.strip()
    if text:
        if len(text) > excerpt_chars:
            text = text[:excerpt_chars] + " [truncated]"
        lines.append(f"Document text:\n{text}")

    return "\n".join(lines)


class ClaimsAssistantAgent(BaseClaimsAgent):
    """Free-text answers grounded in the current claim, when there is one."""

    @classmethod
    def from_config(
        cls,
        agent: AgentConfig,
        generation: GenerationConfig,
        client: ChatCompletionClient
    ) -> "ClaimsAssistantAgent":
        return cls(agent.name, agent.instructions, generation, client)

    def system_prompt(self, claim: Optional[ClaimRecord] = None) -> str:
        if claim is None:
            return self.instructions
        return (
            f"{self.instructions} Use the following context about the claim: "
            f"{summarize_claim(claim)}"
        )

    async def reply(self, message: str, claim: Optional[ClaimRecord] = None) -> str:
        """
        Answer one operator message.

        Raises:
            ValueError: If the message is blank
            ModelAPIError: If the endpoint call fails
        """
        if not message or not message.strip():
            raise ValueError("Message must not be empty")

        content = await self.get_response(message.strip(), system_prompt=self.system_prompt(claim))
        return content.strip() or EMPTY_REPLY
