"""Base interface for inference clients."""

from abc import ABC, abstractmethod


class InferenceClient(ABC):
    """Abstract base class for remote text-generation clients."""

    def __init__(self, system_prompt: str = ""):
        self.system_prompt = system_prompt

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the client."""
        pass

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """
        Generate an answer for ``prompt``.

        Args:
            prompt: The user's question

        Returns:
            The generated text

        Raises:
            NetworkError: the request could not be completed
            EmptyResponse: the service returned no text
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Stop the client and clean up resources."""
        pass

    @abstractmethod
    def get_status(self) -> dict:
        """Get current status of the client."""
        pass
