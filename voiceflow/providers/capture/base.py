"""Base interface for speech capture devices."""

from abc import ABC, abstractmethod
from typing import Optional, Protocol


class CaptureListener(Protocol):
    """Receives capture device events."""

    def on_capture_start(self) -> None: ...

    def on_capture_result(self, text: str) -> None: ...

    def on_capture_error(self, reason: str) -> None: ...

    def on_capture_end(self) -> None: ...


class CaptureDevice(ABC):
    """
    Abstract base class for capture devices.

    Implementations must deliver events on the asyncio loop thread; work done
    on other threads is marshalled back with ``loop.call_soon_threadsafe``.
    """

    def __init__(self):
        self.listener: Optional[CaptureListener] = None
        self.is_active = False

    def attach(self, listener: CaptureListener) -> None:
        """Route this device's events to ``listener``."""
        self.listener = listener

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the capture device."""
        pass

    @abstractmethod
    def start(self) -> None:
        """Begin capturing speech. Events are emitted later, not from inside start."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop capturing. Late events may still arrive afterwards."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the device and clean up resources."""
        pass

    @abstractmethod
    def get_status(self) -> dict:
        """Get current status of the capture device."""
        pass

    def emit_start(self) -> None:
        if self.listener:
            self.listener.on_capture_start()

    def emit_result(self, text: str) -> None:
        if self.listener:
            self.listener.on_capture_result(text)

    def emit_error(self, reason: str) -> None:
        self.is_active = False
        if self.listener:
            self.listener.on_capture_error(reason)

    def emit_end(self) -> None:
        self.is_active = False
        if self.listener:
            self.listener.on_capture_end()
