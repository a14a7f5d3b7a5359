"""Base agent class for the claims review agents."""

import logging
from typing import Dict, List, Optional

from ..utils.config import GenerationConfig
from ..utils.llm_client import ChatCompletionClient

logger = logging.getLogger(__name__)


class BaseClaimsAgent:
    """
    Base class for agents that talk to the chat-completion endpoint.

    Attributes:
        name: Agent name/identifier
        instructions: System instructions for the agent
        generation: Sampling parameters for this agent's calls
        client: ChatCompletionClient for LLM calls
    """

    def __init__(
        self,
        name: str,
        instructions: str,
        generation: GenerationConfig,
        client: ChatCompletionClient,
    ):
        self.name = name
        self.instructions = instructions
        self.generation = generation
        self.client = client

        logger.debug(f"Initialized {self.__class__.__name__}: {name}")

    async def get_response(self, user_message: str, system_prompt: Optional[str] = None) -> str:
        """
        Get a text response for one system + user exchange.

        Args:
            user_message: Content of the user turn
            system_prompt: Overrides the agent instructions for this call

        Raises:
            ModelAPIError: If the endpoint call fails
        """
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt or self.instructions},
            {"role": "user", "content": user_message},
        ]

        try:
            response_text = await self.client.complete(
                messages=messages,
                generation=self.generation,
                operation=self.name,
            )
        except Exception as e:
            logger.error(f"Error getting response from {self.name}: {str(e)}")
            raise

        logger.debug(f"{self.name} generated response: {response_text[:100]}...")
        return response_text

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
