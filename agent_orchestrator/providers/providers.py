from abc import ABC, abstractmethod
from typing import Any


class LLMServiceProvider(ABC):
    """Abstract interface for LLM service providers used by LLMAgent."""

    @abstractmethod
    async def generate_response(
        self,
        system_prompt: str,
        user_prompt: str,
        model_name: str,
        max_tokens: int = 4096,
    ) -> Any:
        """Generate a response from the LLM.

        Args:
            system_prompt: The system prompt for the LLM
            user_prompt: The user prompt for the LLM
            model_name: The name of the model to use
            max_tokens: Maximum number of tokens in the response

        Returns:
            The generated response from the LLM
        """
        pass
