"""Coalesces bursts of capture results into a single submission."""

import asyncio
from typing import Callable, Optional
import structlog


logger = structlog.get_logger()


class TranscriptDebouncer:
    """
    Quiet-window debouncer bound to the running asyncio loop.

    Every ``feed`` records the text and restarts the timer; when ``delay``
    seconds pass without another ``feed``, ``on_submit`` is called once with
    the most recent text. Only one timer is outstanding at a time.
    """

    def __init__(self, on_submit: Callable[[str], None], delay: float = 0.1):
        self.on_submit = on_submit
        self.delay = delay
        self._pending: Optional[str] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> Optional[str]:
        return self._pending

    @property
    def is_pending(self) -> bool:
        return self._handle is not None

    def feed(self, text: str) -> None:
        """Record ``text`` as the latest value and restart the quiet window."""
        if self._handle is not None:
            self._handle.cancel()

        self._pending = text
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)
        logger.debug("Debounce timer armed", delay=self.delay, text=text[:50])

    def cancel(self) -> None:
        """Drop any pending submission without emitting."""
        if self._handle is not None:
            self._handle.cancel()
            logger.debug("Debounce timer cancelled")
        self._handle = None
        self._pending = None

    def _fire(self) -> None:
        text = self._pending
        self._handle = None
        self._pending = None
        if text is not None:
            self.on_submit(text)
