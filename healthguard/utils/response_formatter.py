"""Response formatting utilities for pulling JSON out of model answers."""

import json
import logging
import re
from typing import Dict, Any, Optional, Iterable

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r'```(?:json)?\s*\n?(.*?)\n?```', re.DOTALL | re.IGNORECASE)


class ResponseFormatter:
    """
    Utility class for extracting JSON objects from chat-completion answers.

    Models asked for "a valid JSON object" still wrap it in markdown fences
    or surround it with prose, so extraction tries, in order:
    1. Raw JSON (entire response)
    2. Markdown code blocks (```json ... ```)
    3. The first decodable JSON object embedded in text
    """

    @staticmethod
    def extract_json_from_response(response_text: str) -> Optional[Dict[str, Any]]:
        """
        Extract a JSON object from a model response.

        Args:
            response_text: Raw response text that may contain JSON

        Returns:
            Parsed JSON dictionary, or None if no JSON object found
        """
        if not response_text or not response_text.strip():
            logger.warning("Empty response text provided")
            return None

        text = response_text.strip()

        json_data = ResponseFormatter._extract_raw_json(text)
        if json_data is not None:
            logger.debug("Extracted raw JSON")
            return json_data

        json_data = ResponseFormatter._extract_markdown_json(text)
        if json_data is not None:
            logger.debug("Extracted JSON from markdown code block")
            return json_data

        json_data = ResponseFormatter._extract_embedded_json(text)
        if json_data is not None:
            logger.debug("Extracted embedded JSON")
            return json_data

        logger.warning(f"Failed to extract JSON from response: {text[:200]}...")
        return None

    @staticmethod
    def _extract_raw_json(text: str) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _extract_markdown_json(text: str) -> Optional[Dict[str, Any]]:
        for match in _FENCE_PATTERN.finditer(text):
            data = ResponseFormatter._extract_raw_json(match.group(1).strip())
            if data is not None:
                return data
        return None

    @staticmethod
    def _extract_embedded_json(text: str) -> Optional[Dict[str, Any]]:
        """Decode from each '{' in turn until one yields a complete object."""
        decoder = json.JSONDecoder()
        start = text.find('{')
        while start != -1:
            try:
                data, _ = decoder.raw_decode(text, start)
                if isinstance(data, dict):
                    return data
            except json.JSONDecodeError:
                pass
            start = text.find('{', start + 1)
        return None

    @staticmethod
    def validate_json_structure(
        data: Dict[str, Any],
        required_fields: Optional[Iterable[str]] = None
    ) -> bool:
        """
        Validate that JSON data has required structure.

        Args:
            data: JSON data to validate
            required_fields: Field names that must be present

        Returns:
            True if valid, False otherwise
        """
        if not isinstance(data, dict):
            logger.warning("JSON data is not a dictionary")
            return False

        if required_fields:
            missing_fields = [field for field in required_fields if field not in data]
            if missing_fields:
                logger.warning(f"Missing required fields: {missing_fields}")
                return False

        return True
