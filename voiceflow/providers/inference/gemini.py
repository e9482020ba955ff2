"""Gemini inference client implementation."""

import os
import asyncio
from typing import Any, Optional
import google.generativeai as genai
import structlog

from .base import InferenceClient
from ...core.errors import EmptyResponse, NetworkError


logger = structlog.get_logger()


def extract_response_text(response: Any) -> str:
    """Return ``candidates[0].content.parts[0].text``, or "" if any part is missing."""
    try:
        text = response.candidates[0].content.parts[0].text
    except (AttributeError, IndexError, TypeError):
        return ""
    return text or ""


class GeminiInferenceClient(InferenceClient):
    """
    Single-turn Gemini client. Every question is sent on its own, without
    chat history.
    """

    def __init__(
        self,
        system_prompt: str = "",
        model_name: str = "gemini-1.5-flash",
        temperature: float = 0.7,
        max_tokens: int = 2048,
        timeout: float = 30.0,
        max_retries: int = 3,
        initial_backoff: float = 1.0,
        backoff_multiplier: float = 2.0,
        max_backoff: float = 30.0,
    ):
        super().__init__(system_prompt)
        self.model_name = model_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.backoff_multiplier = backoff_multiplier
        self.max_backoff = max_backoff
        self.model: Optional[genai.GenerativeModel] = None
        self.is_generating = False
        self.request_count = 0

    def initialize(self) -> None:
        """Initialize Gemini API client."""
        logger.info("Initializing Gemini client", model=self.model_name)

        api_key = os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise ValueError("GOOGLE_API_KEY environment variable not set")

        genai.configure(api_key=api_key)

        if self.system_prompt:
            self.model = genai.GenerativeModel(
                model_name=self.model_name, system_instruction=self.system_prompt
            )
        else:
            self.model = genai.GenerativeModel(model_name=self.model_name)

        logger.info("Gemini client initialized")

    async def generate(self, prompt: str) -> str:
        """Generate an answer, retrying transport failures with backoff."""
        if not self.model:
            raise RuntimeError("Gemini not initialized")

        generation_config = genai.GenerationConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
        )
        attempts = max(1, self.max_retries)

        self.is_generating = True
        try:
            for attempt in range(attempts):
                try:
                    response = await asyncio.wait_for(
                        self.model.generate_content_async(
                            prompt, generation_config=generation_config
                        ),
                        timeout=self.timeout,
                    )
                except asyncio.TimeoutError as e:
                    error = NetworkError(f"Gemini response timeout after {self.timeout}s", e)
                except Exception as e:
                    error = NetworkError(f"Gemini request failed: {e}", e)
                else:
                    text = extract_response_text(response)
                    if not text.strip():
                        raise EmptyResponse("Gemini response contained no text")
                    self.request_count += 1
                    return text

                logger.warning(f"Gemini attempt {attempt + 1} failed", error=str(error))
                if attempt == attempts - 1:
                    logger.error("All Gemini retry attempts failed", error=str(error))
                    raise error

                wait_time = min(
                    self.initial_backoff * self.backoff_multiplier**attempt, self.max_backoff
                )
                logger.info(f"Retrying Gemini in {wait_time}s", attempt=attempt + 1)
                await asyncio.sleep(wait_time)
        finally:
            self.is_generating = False

    def close(self) -> None:
        """Stop Gemini client."""
        logger.info("Stopping Gemini client")
        self.model = None

    def get_status(self) -> dict:
        """Get Gemini client status."""
        return {
            "provider": "gemini",
            "model": self.model_name,
            "is_generating": self.is_generating,
            "initialized": self.model is not None,
            "request_count": self.request_count,
        }
