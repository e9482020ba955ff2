"""
Mock provider implementations for running VoiceFlow without devices or APIs.
"""

import asyncio
import time
from typing import List, Optional
from voiceflow.providers.capture.base import CaptureDevice
from voiceflow.providers.inference.base import InferenceClient
from voiceflow.providers.playback.base import PlaybackDevice


class MockCaptureDevice(CaptureDevice):
    """Mock capture device that 'hears' scripted questions."""

    def __init__(self, transcripts: Optional[List[str]] = None, delay: float = 2.0):
        super().__init__()
        self.delay = delay
        self.mock_transcripts = transcripts or [
            "Hello, how are you today?",
            "What's the weather like?",
            "Tell me a joke.",
            "What time is it?",
        ]
        self.transcript_index = 0
        self._task: Optional[asyncio.Task] = None

    def initialize(self) -> None:
        """Initialize mock capture device."""
        pass

    def start(self) -> None:
        """Start 'listening'; a transcript arrives after ``delay`` seconds."""
        self.is_active = True
        self._task = asyncio.get_running_loop().create_task(self._listen())

    async def _listen(self) -> None:
        self.emit_start()
        await asyncio.sleep(self.delay)

        text = self.mock_transcripts[self.transcript_index % len(self.mock_transcripts)]
        self.transcript_index += 1

        # Deliver the transcript word by word like an interim recognizer
        words = text.split()
        for i in range(1, len(words) + 1):
            self.emit_result(" ".join(words[:i]))
            await asyncio.sleep(0.02)

    def stop(self) -> None:
        """Stop mock capture."""
        self.is_active = False
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    def close(self) -> None:
        self.stop()

    def get_status(self) -> dict:
        """Get mock capture status."""
        return {
            "provider": "mock_capture",
            "is_active": self.is_active,
            "transcripts_generated": self.transcript_index,
        }


class MockInferenceClient(InferenceClient):
    """Mock inference client that returns canned answers."""

    def __init__(self, system_prompt: str = "", latency: float = 0.5):
        super().__init__(system_prompt)
        self.latency = latency
        self.is_generating = False
        self.mock_responses = [
            "I'm doing great, thank you for asking! How can I help you today?",
            "The weather is looking nice! It's a perfect day for a conversation.",
            "Here's a joke for you: Why don't scientists trust atoms? Because they make up everything!",
            "The current time is " + time.strftime("%I:%M %p"),
        ]
        self.response_index = 0

    def initialize(self) -> None:
        """Initialize mock inference client."""
        pass

    async def generate(self, prompt: str) -> str:
        """Return the next canned answer after a simulated delay."""
        self.is_generating = True
        try:
            await asyncio.sleep(self.latency)
        finally:
            self.is_generating = False

        response = self.mock_responses[self.response_index % len(self.mock_responses)]
        self.response_index += 1
        return response

    def close(self) -> None:
        self.is_generating = False

    def get_status(self) -> dict:
        """Get mock inference status."""
        return {
            "provider": "mock_inference",
            "is_generating": self.is_generating,
            "responses_generated": self.response_index,
        }


class MockPlaybackDevice(PlaybackDevice):
    """Mock playback device that simulates speaking time."""

    def __init__(self, seconds_per_word: float = 0.1):
        super().__init__()
        self.seconds_per_word = seconds_per_word
        self.spoken: List[str] = []
        self._task: Optional[asyncio.Task] = None

    def initialize(self) -> None:
        """Initialize mock playback device."""
        pass

    def speak(self, text: str) -> None:
        """'Speak' for a duration proportional to the word count."""
        self.is_active = True
        self.spoken.append(text)
        duration = len(text.split()) * self.seconds_per_word
        self._task = asyncio.get_running_loop().create_task(self._finish_after(duration))

    async def _finish_after(self, duration: float) -> None:
        await asyncio.sleep(duration)
        self.emit_complete()

    def cancel(self) -> None:
        """Stop mock playback without completing."""
        self.is_active = False
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    def close(self) -> None:
        self.cancel()

    def get_status(self) -> dict:
        """Get mock playback status."""
        return {
            "provider": "mock_playback",
            "is_active": self.is_active,
            "utterances": len(self.spoken),
        }
