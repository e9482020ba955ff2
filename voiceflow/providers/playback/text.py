"""Text-only playback device: answers are shown, not spoken."""

import asyncio
from typing import Optional
import structlog

from .base import PlaybackDevice


logger = structlog.get_logger()


class TextPlaybackDevice(PlaybackDevice):
    """Completes every utterance on the next loop iteration without audio."""

    def __init__(self):
        super().__init__()
        self._handle: Optional[asyncio.Handle] = None
        self.utterance_count = 0

    def initialize(self) -> None:
        pass

    def speak(self, text: str) -> None:
        self.is_active = True
        self.utterance_count += 1
        self._handle = asyncio.get_running_loop().call_soon(self._finish)

    def _finish(self) -> None:
        self._handle = None
        self.emit_complete()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.is_active = False

    def close(self) -> None:
        self.cancel()

    def get_status(self) -> dict:
        return {
            "provider": "text",
            "is_active": self.is_active,
            "utterance_count": self.utterance_count,
        }
