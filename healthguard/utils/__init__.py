"""Utility modules for configuration, logging, errors, and the chat-completion client."""

from .response_formatter import ResponseFormatter

__all__ = [
    'ResponseFormatter'
]
