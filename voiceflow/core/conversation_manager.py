"""
Conversation manager: wires settings, providers, the turn controller,
metrics and conversation persistence together.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
import structlog

from .turn_controller import TurnController
from ..config.settings import settings
from ..metrics.collector import MetricsCollector
from ..providers.capture.base import CaptureDevice
from ..providers.inference.base import InferenceClient
from ..providers.playback.base import PlaybackDevice
from ..providers.registry import registry
from ..state.history import HistoryStore, Speaker
from ..state.session import Mode, SessionSnapshot


logger = structlog.get_logger()

SETTLED_MODES = (Mode.IDLE, Mode.ERRORED)


@dataclass
class ConversationConfig:
    """Configuration for one conversation."""

    capture_provider: str = "whisperkit"
    inference_provider: str = "gemini"
    playback_provider: str = "elevenlabs"
    hands_free: bool = False
    enable_metrics: bool = True
    enable_history: bool = True
    debounce_ms: Optional[int] = None
    debug_mode: bool = False
    mock_mode: bool = False


class ConversationManager:
    """
    Owns the devices and the turn controller for a single conversation.

    ``start()`` initializes the providers and opens the metrics session;
    ``stop()`` shuts the controller down, closes the providers and persists
    the conversation and its metrics.
    """

    def __init__(
        self,
        config: ConversationConfig,
        history_store: Optional[HistoryStore] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self.config = config
        self.is_running = False

        self.capture = self._initialize_capture_provider()
        self.inference = self._initialize_inference_provider()
        self.playback = self._initialize_playback_provider()

        if config.enable_metrics:
            self.metrics_collector = metrics_collector or MetricsCollector(
                Path(settings.metrics.storage_path).expanduser()
            )
        else:
            self.metrics_collector = None

        self.history_store = history_store or (HistoryStore() if config.enable_history else None)
        self.conversation_id = HistoryStore.new_conversation_id()

        debounce_ms = config.debounce_ms if config.debounce_ms is not None else settings.turns.debounce_ms
        self.controller = TurnController(
            self.capture,
            self.inference,
            self.playback,
            debounce_delay=debounce_ms / 1000.0,
            hands_free=config.hands_free,
            fallback_answer=settings.turns.fallback_answer,
            capture_error_message=settings.turns.capture_error_message,
            metrics=self.metrics_collector,
        )

        self._settled: Optional[asyncio.Event] = None
        self.controller.add_observer(self._on_session_change)

    def _initialize_capture_provider(self) -> CaptureDevice:
        """Initialize the capture provider based on configuration."""
        if self.config.mock_mode:
            from mocks.providers import MockCaptureDevice

            return MockCaptureDevice()
        return registry.get_capture_provider(self.config.capture_provider)

    def _initialize_inference_provider(self) -> InferenceClient:
        """Initialize the inference provider based on configuration."""
        if self.config.mock_mode:
            from mocks.providers import MockInferenceClient

            return MockInferenceClient(system_prompt=settings.system_prompts.default)
        return registry.get_inference_provider(self.config.inference_provider)

    def _initialize_playback_provider(self) -> PlaybackDevice:
        """Initialize the playback provider based on configuration."""
        if self.config.mock_mode and self.config.playback_provider != "text":
            from mocks.providers import MockPlaybackDevice

            return MockPlaybackDevice()
        return registry.get_playback_provider(self.config.playback_provider)

    async def start(self) -> None:
        """Initialize the providers and begin the conversation."""
        logger.info(
            "Starting conversation",
            conversation_id=self.conversation_id,
            capture_provider=self.config.capture_provider,
            inference_provider=self.config.inference_provider,
            playback_provider=self.config.playback_provider,
            mock_mode=self.config.mock_mode,
        )

        try:
            self.capture.initialize()
            self.inference.initialize()
            self.playback.initialize()
        except Exception as e:
            logger.error("Failed to initialize providers", error=str(e))
            raise

        if self.metrics_collector:
            self.metrics_collector.start_session(self.conversation_id)

        self._settled = asyncio.Event()
        self._settled.set()
        self.is_running = True

        if self.config.hands_free:
            self.controller.start_listening()

        logger.info("Conversation started")

    async def stop(self) -> None:
        """Stop the conversation and persist what was collected."""
        if not self.is_running:
            return

        logger.info("Stopping conversation", conversation_id=self.conversation_id)
        self.is_running = False

        await self.controller.shutdown()

        for provider in (self.capture, self.inference, self.playback):
            try:
                provider.close()
            except Exception as e:
                logger.warning(
                    "Error closing provider", provider=type(provider).__name__, error=str(e)
                )

        if self.metrics_collector:
            self.metrics_collector.end_session()
            self.metrics_collector.save_metrics()

        if self.history_store:
            try:
                self.history_store.save(self.conversation_id, self.controller.session.history)
            except OSError as e:
                logger.error("Failed to save conversation", error=str(e))

        logger.info("Conversation stopped")

    async def ask(self, question: str) -> Optional[str]:
        """
        Submit a typed question and wait until its answer has been spoken.

        Returns the answer, or None when the question was rejected or the
        inference request failed (see ``controller.session.last_error``).
        """
        if not self.is_running:
            raise RuntimeError("Conversation not started")

        turns_before = len(self.controller.session.history)
        if not self.controller.submit_text(question):
            return None

        await self.wait_until_settled()

        turns = self.controller.session.history.snapshot()
        if len(turns) > turns_before and turns[-1].speaker is Speaker.SYSTEM:
            return turns[-1].text
        return None

    async def wait_until_settled(self) -> None:
        """Wait until the controller is idle or errored."""
        if self._settled is not None:
            await self._settled.wait()

    def _on_session_change(self, snapshot: SessionSnapshot) -> None:
        if self._settled is None:
            return
        if snapshot.mode in SETTLED_MODES:
            self._settled.set()
        else:
            self._settled.clear()

    def get_status(self) -> Dict[str, Any]:
        """Get current conversation status."""
        return {
            "is_running": self.is_running,
            "conversation_id": self.conversation_id,
            "capture_provider": self.config.capture_provider,
            "inference_provider": self.config.inference_provider,
            "playback_provider": self.config.playback_provider,
            "mock_mode": self.config.mock_mode,
            **self.controller.get_status(),
        }
