"""Fraud analyst agent and the degraded-mode fallback classification."""

import logging
import random
from typing import Optional

from ..models.claim import Classification
from ..utils.config import AgentConfig, GenerationConfig
from ..utils.errors import ModelAPIError
from ..utils.llm_client import ChatCompletionClient
from ..utils.response_formatter import ResponseFormatter
from .base import BaseClaimsAgent

logger = logging.getLogger(__name__)

FALLBACK_REASON = (
    "Degraded mode: automated fraud analysis was unavailable, so this result is a "
    "random fallback and was NOT produced by the model."
)

FALLBACK_ACTIONS = [
    "Route this claim for manual review before acting on the result",
    "Re-submit the document once the analysis service is reachable",
]

REQUIRED_FIELDS = ("isFraud", "confidenceScore")


class FraudAnalystAgent(BaseClaimsAgent):
    """
    Classifies extracted claim text as fraudulent or not.

    The model is asked for a JSON object with isFraud, confidenceScore,
    reasons and suggestedActions; anything else is treated as a failed call.
    """

    @classmethod
    def from_config(
        cls,
        agent: AgentConfig,
        generation: GenerationConfig,
        client: ChatCompletionClient
    ) -> "FraudAnalystAgent":
        return cls(agent.name, agent.instructions, generation, client)

    async def classify(self, text: str) -> Classification:
        """
        Classify the extracted text of one claim document.

        Args:
            text: Full extracted text

        Returns:
            Classification parsed from the model answer

        Raises:
            ModelAPIError: On transport failure or an unusable answer
        """
        content = await self.get_response(text)

        data = ResponseFormatter.extract_json_from_response(content)
        if data is None:
            raise ModelAPIError.invalid_response(self.name, "no JSON object in response", content)
        if not ResponseFormatter.validate_json_structure(data, REQUIRED_FIELDS):
            raise ModelAPIError.invalid_response(
                self.name, f"response is missing one of {list(REQUIRED_FIELDS)}", content
            )

        try:
            classification = Classification.from_model_output(data)
        except ValueError as e:
            raise ModelAPIError.invalid_response(self.name, str(e), content) from e

        logger.info(
            f"Model classification: is_fraud={classification.is_fraud}, "
            f"confidence={classification.confidence_score}, "
            f"reasons={len(classification.reasons)}"
        )
        return classification


def fallback_classification(
    error: Optional[Exception] = None,
    rng: Optional[random.Random] = None
) -> Classification:
    """
    Coin-flip classification used when the model call fails.

    The first reason always says the result is a degraded-mode fallback so
    that nobody reading the record mistakes it for a model determination.
    """
    rng = rng or random.Random()
    reasons = [FALLBACK_REASON]
    if error is not None:
        reasons.append(f"Analysis error: {getattr(error, 'message', None) or str(error)}")

    return Classification(
        is_fraud=rng.random() < 0.5,
        confidence_score=rng.randint(50, 95),
        reasons=reasons,
        suggested_actions=list(FALLBACK_ACTIONS),
        is_fallback=True,
    )
