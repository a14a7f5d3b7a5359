"""Chat-completion client wrapper with retry logic and error handling."""

import asyncio
import logging
from typing import Dict, List, Optional, Any

import openai
from openai import AsyncOpenAI

from .config import GenerationConfig, LLMConfig
from .errors import ModelAPIError, ErrorType, ErrorContext

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,  # includes APITimeoutError
    openai.InternalServerError,
)


class ChatCompletionClient:
    """
    Wrapper for an OpenAI-compatible chat-completions endpoint.

    Provides methods for:
    - Sending a system + user turn and returning the answer text
    - Bearer-token authentication against any base URL (Perplexity by default)
    - Automatic retry with exponential backoff
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.perplexity.ai",
        model: str = "llama-3.1-sonar-small-128k-online",
        timeout: float = 30,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        client: Optional[Any] = None
    ):
        """
        Initialize chat-completion client.

        Args:
            api_key: Bearer token for the endpoint; calls fail without one
            base_url: Endpoint base URL
            model: Model name sent with each request
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts per call
            retry_delay: Base delay for exponential backoff in seconds
            client: Optional pre-built AsyncOpenAI-compatible client
        """
        self.api_key = api_key.strip() if api_key else None
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._client = client

        logger.info(
            f"Initialized ChatCompletionClient: base_url={base_url}, "
            f"model={model}, max_retries={self.max_retries}, "
            f"api_key={'set' if self.api_key else 'missing'}"
        )

    @classmethod
    def from_config(cls, config: LLMConfig, api_key: Optional[str] = None) -> "ChatCompletionClient":
        """Build a client from config, preferring an explicit (per-session) API key."""
        return cls(
            api_key=api_key or config.api_key,
            base_url=config.base_url,
            model=config.model,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise ModelAPIError.missing_api_key()
            # Retries are handled here, not by the SDK
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def complete(
        self,
        messages: List[Dict[str, str]],
        generation: GenerationConfig,
        operation: str = "chat_completion"
    ) -> str:
        """
        Send messages to the endpoint with retry logic.

        Args:
            messages: List of message dicts with 'role' and 'content'
            generation: Sampling parameters
            operation: Name of the calling operation, used in errors and logs

        Returns:
            Text content of the first choice ("" when the provider sends none)

        Raises:
            ModelAPIError: If the key is missing or all retry attempts fail
        """
        client = self._get_client()

        params = {
            "model": self.model,
            "messages": messages,
            "temperature": generation.temperature,
            "top_p": generation.top_p,
            "max_tokens": generation.max_tokens,
        }

        # Retry with exponential backoff
        for attempt in range(self.max_retries):
            try:
                logger.debug(
                    f"Invoking {operation} (attempt {attempt + 1}/{self.max_retries})"
                )

                response = await client.chat.completions.create(**params)

                logger.info(
                    f"{operation} successful: "
                    f"usage={getattr(response, 'usage', None)}"
                )

                return self._parse_response(response)

            except openai.APIError as e:
                logger.warning(
                    f"Chat-completion API error (attempt {attempt + 1}/{self.max_retries}): "
                    f"{e.__class__.__name__}: {str(e)}"
                )

                if isinstance(e, RETRYABLE_ERRORS) and attempt < self.max_retries - 1:
                    # Exponential backoff: 1s, 2s, 4s, ...
                    wait_time = self.retry_delay * (2 ** attempt)
                    logger.info(f"Retrying in {wait_time} seconds...")
                    await asyncio.sleep(wait_time)
                    continue

                logger.error(
                    f"{operation} failed after {attempt + 1} attempts: "
                    f"{e.__class__.__name__}"
                )
                raise ModelAPIError.from_api_error(
                    error=e,
                    operation=operation,
                    recoverable=False,
                    fallback_action=None
                ) from e

            except Exception as e:
                logger.error(f"Unexpected error invoking {operation}: {str(e)}")

                context = ErrorContext(
                    error_type=ErrorType.MODEL_SERVICE_ERROR,
                    message=f"Unexpected error invoking {operation}: {str(e)}",
                    recoverable=False,
                    fallback_action=None,
                    original_exception=e
                )
                raise ModelAPIError(context) from e

        # Should not reach here, but just in case
        context = ErrorContext(
            error_type=ErrorType.MODEL_SERVICE_ERROR,
            message=f"Failed to invoke {operation} after {self.max_retries} attempts",
            recoverable=False,
            fallback_action=None
        )
        raise ModelAPIError(context)

    @staticmethod
    def _parse_response(response: Any) -> str:
        """Pull the answer text out of the provider's response envelope."""
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        return (getattr(message, "content", None) or "") if message else ""
