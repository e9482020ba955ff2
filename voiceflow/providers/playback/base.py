"""Base interface for speech playback devices."""

from abc import ABC, abstractmethod
from typing import Optional, Protocol


class PlaybackListener(Protocol):
    """Receives playback device events."""

    def on_playback_complete(self) -> None: ...


class PlaybackDevice(ABC):
    """Abstract base class for playback devices."""

    def __init__(self):
        self.listener: Optional[PlaybackListener] = None
        self.is_active = False

    def attach(self, listener: PlaybackListener) -> None:
        """Route this device's events to ``listener``."""
        self.listener = listener

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the playback device."""
        pass

    @abstractmethod
    def speak(self, text: str) -> None:
        """
        Start speaking ``text``. Returns immediately; completion is signalled
        later on the loop through ``emit_complete``, never from inside
        ``speak`` itself.

        Args:
            text: The text to convert to speech
        """
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Stop current playback without signalling completion."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the device and clean up resources."""
        pass

    @abstractmethod
    def get_status(self) -> dict:
        """Get current status of the playback device."""
        pass

    def emit_complete(self) -> None:
        self.is_active = False
        if self.listener:
            self.listener.on_playback_complete()
