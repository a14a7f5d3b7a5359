"""Agents backed by the chat-completion endpoint."""

from .base import BaseClaimsAgent
from .fraud_analyst import FraudAnalystAgent, fallback_classification
from .claims_assistant import ClaimsAssistantAgent

__all__ = [
    'BaseClaimsAgent',
    'FraudAnalystAgent',
    'fallback_classification',
    'ClaimsAssistantAgent',
]
