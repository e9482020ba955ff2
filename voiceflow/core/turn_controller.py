"""
Turn-taking controller.

Arbitrates the capture device, the inference client and the playback device
so that at most one of them holds the conversation at any instant. All
device events are delivered on the asyncio loop and handled one at a time;
every session mutation goes through ``_update``, which also notifies the
observers.
"""

import asyncio
import time
from typing import Callable, List, Optional
import structlog

from .debouncer import TranscriptDebouncer
from .errors import EmptyResponse, EmptySubmission, InferenceFailure
from ..metrics.collector import MetricsCollector
from ..providers.capture.base import CaptureDevice
from ..providers.inference.base import InferenceClient
from ..providers.playback.base import PlaybackDevice
from ..state.history import Speaker, Turn
from ..state.session import CAPTURE_MODES, Mode, Session, SessionSnapshot


logger = structlog.get_logger()


FALLBACK_ANSWER = "Sorry - Something went wrong. Please try again!"
CAPTURE_ERROR_MESSAGE = "Failed to recognize speech."
PLAYBACK_ERROR_MESSAGE = "Failed to speak the answer."

SessionObserver = Callable[[SessionSnapshot], None]


class TurnController:
    """
    State machine owning the single conversation session.

    Public operations: ``start_listening``, ``submit_text``,
    ``stop_speaking``, ``toggle_hands_free`` and ``toggle_listening``.
    Device callbacks (``on_capture_*``, ``on_playback_complete``) are ignored
    whenever the controller no longer owns the device that sent them.
    """

    def __init__(
        self,
        capture: CaptureDevice,
        inference: InferenceClient,
        playback: PlaybackDevice,
        debounce_delay: float = 0.1,
        hands_free: bool = False,
        fallback_answer: str = FALLBACK_ANSWER,
        capture_error_message: str = CAPTURE_ERROR_MESSAGE,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.capture = capture
        self.inference = inference
        self.playback = playback
        self.fallback_answer = fallback_answer
        self.capture_error_message = capture_error_message
        self.metrics = metrics

        self.session = Session(hands_free=hands_free)
        self.debouncer = TranscriptDebouncer(self._on_debounced, delay=debounce_delay)

        self._observers: List[SessionObserver] = []
        self._capture_active = False
        self._playback_active = False
        self._request_task: Optional[asyncio.Task] = None
        self._request_started = 0.0

        capture.attach(self)
        playback.attach(self)

    @property
    def mode(self) -> Mode:
        return self.session.mode

    def snapshot(self) -> SessionSnapshot:
        """Immutable copy of the session plus device ownership flags."""
        return SessionSnapshot(
            mode=self.session.mode,
            pending_question=self.session.pending_question,
            last_error=self.session.last_error,
            hands_free=self.session.hands_free,
            turns=self.session.history.snapshot(),
            capture_active=self._capture_active,
            playback_active=self._playback_active,
            request_in_flight=self._request_task is not None,
        )

    def add_observer(self, observer: SessionObserver) -> None:
        """Register a callback receiving a snapshot after every change."""
        self._observers.append(observer)

    def remove_observer(self, observer: SessionObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    # Public operations

    def start_listening(self) -> None:
        """Activate capture and enable hands-free mode."""
        if self.session.mode not in (Mode.IDLE, Mode.ERRORED):
            logger.debug("start_listening ignored", mode=self.session.mode.value)
            return
        self._begin_listening(hands_free=True)

    def submit_text(self, text: str) -> bool:
        """
        Submit a typed question, bypassing the debounce window.

        Returns False when the question was rejected: blank text, or another
        question is still waiting for its answer.
        """
        try:
            question = self._validate_question(text)
        except EmptySubmission as e:
            logger.info("Submission rejected", reason=str(e))
            return False

        mode = self.session.mode
        if mode is Mode.AWAITING_ANSWER:
            logger.info("Submission rejected, answer still pending", question=question[:50])
            return False

        if mode in CAPTURE_MODES:
            self._release_capture()
        elif mode is Mode.SPEAKING:
            self._release_playback()

        self._send(question)
        return True

    def stop_speaking(self) -> None:
        """Cancel playback. Safe to call at any time."""
        mode = self.session.mode
        if mode is Mode.SPEAKING:
            self._release_playback()
            if self.metrics:
                self.metrics.record_interruption()
            logger.info("Playback stopped by user")
            self._update(mode=Mode.IDLE, hands_free=False)
        elif mode is Mode.ERRORED:
            self._update(mode=Mode.IDLE, last_error=None)

    def toggle_hands_free(self) -> None:
        """Flip hands-free mode, starting or stopping capture when idle."""
        enabled = not self.session.hands_free
        mode = self.session.mode

        if not enabled and mode in CAPTURE_MODES:
            self._release_capture()
            self._update(mode=Mode.IDLE, hands_free=False, pending_question="")
        elif enabled and mode in (Mode.IDLE, Mode.ERRORED):
            self._begin_listening(hands_free=True)
        else:
            self._update(hands_free=enabled)

    def toggle_listening(self) -> None:
        """Start listening, or stop listening and leave hands-free mode."""
        mode = self.session.mode
        if mode in CAPTURE_MODES:
            self._release_capture()
            self._update(mode=Mode.IDLE, hands_free=False, pending_question="")
        elif mode is Mode.SPEAKING:
            if self.session.hands_free:
                self._update(hands_free=False)
        else:
            self.start_listening()

    async def wait_until_settled(self) -> None:
        """Wait for the in-flight inference request, if any."""
        task = self._request_task
        if task is not None:
            await asyncio.wait({task})

    async def shutdown(self) -> None:
        """Stop every device and discard pending work."""
        logger.info("Shutting down turn controller", mode=self.session.mode.value)

        self._release_capture()
        self._release_playback()

        task = self._request_task
        self._request_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("Inference request cancelled")

        self._update(mode=Mode.IDLE, pending_question="")

    def get_status(self) -> dict:
        """Get current controller status."""
        return {
            "mode": self.session.mode.value,
            "hands_free": self.session.hands_free,
            "turn_count": len(self.session.history),
            "last_error": self.session.last_error,
            "capture_active": self._capture_active,
            "playback_active": self._playback_active,
            "request_in_flight": self._request_task is not None,
            "providers_status": {
                "capture": self.capture.get_status(),
                "inference": self.inference.get_status(),
                "playback": self.playback.get_status(),
            },
        }

    # Capture events

    def on_capture_start(self) -> None:
        if self.session.mode in CAPTURE_MODES:
            logger.debug("Capture device started")

    def on_capture_result(self, text: str) -> None:
        if self.session.mode not in CAPTURE_MODES:
            logger.debug("Ignoring late capture result", mode=self.session.mode.value)
            return

        text = text.strip()
        if not text:
            return

        self.debouncer.feed(text)
        self._update(mode=Mode.DEBOUNCING, pending_question=text)

    def on_capture_error(self, reason: str) -> None:
        if self.session.mode not in CAPTURE_MODES:
            logger.debug(
                "Ignoring capture error from released device",
                reason=reason,
                mode=self.session.mode.value,
            )
            return
        self._fail_capture(reason)

    def on_capture_end(self) -> None:
        mode = self.session.mode
        if mode not in CAPTURE_MODES or not self._capture_active:
            return

        self._capture_active = False
        if mode is Mode.DEBOUNCING:
            # The pending transcript is still submitted when the timer fires
            logger.debug("Capture ended while debouncing")
            self._notify()
        elif self.session.hands_free:
            logger.debug("Capture ended, restarting for hands-free mode")
            self._begin_listening()
        else:
            self._update(mode=Mode.IDLE)

    # Playback events

    def on_playback_complete(self) -> None:
        if self.session.mode is not Mode.SPEAKING or not self._playback_active:
            logger.debug("Ignoring late playback completion", mode=self.session.mode.value)
            return

        self._playback_active = False
        if self.session.hands_free:
            self._begin_listening()
        else:
            self._update(mode=Mode.IDLE)

    # Internals

    def _validate_question(self, text: Optional[str]) -> str:
        question = (text or "").strip()
        if not question:
            raise EmptySubmission()
        return question

    def _update(self, **changes) -> None:
        """Single mutation entry point for the session."""
        previous = self.session.mode
        for key, value in changes.items():
            setattr(self.session, key, value)

        if self.session.mode is not previous:
            logger.debug(
                "Turn state transition",
                previous=previous.value,
                current=self.session.mode.value,
                hands_free=self.session.hands_free,
            )
        self._notify()

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception as e:
                logger.error("Session observer error", error=str(e))

    def _begin_listening(self, **changes) -> None:
        try:
            self.capture.start()
        except Exception as e:
            logger.error("Failed to start capture device", error=str(e))
            self._fail_capture(str(e))
            return

        self._capture_active = True
        self._update(mode=Mode.LISTENING, last_error=None, pending_question="", **changes)

    def _release_capture(self) -> None:
        self.debouncer.cancel()
        if self._capture_active:
            self._capture_active = False
            self.capture.stop()

    def _release_playback(self) -> None:
        if self._playback_active:
            self._playback_active = False
            self.playback.cancel()

    def _fail_capture(self, reason: str) -> None:
        self._release_capture()
        if self.metrics:
            self.metrics.record_error("capture", reason)

        logger.warning(
            "Capture error, hands-free disabled",
            reason=reason,
            hands_free_was=self.session.hands_free,
        )
        self._update(
            mode=Mode.ERRORED,
            last_error=self.capture_error_message,
            hands_free=False,
            pending_question="",
        )

    def _on_debounced(self, text: str) -> None:
        if self.session.mode is not Mode.DEBOUNCING:
            return
        self._release_capture()
        self._send(text)

    def _send(self, question: str) -> None:
        logger.info("Submitting question", question=question[:50])
        self._request_started = time.time()
        self._request_task = asyncio.get_running_loop().create_task(
            self._request_answer(question)
        )
        self._update(mode=Mode.AWAITING_ANSWER, pending_question=question, last_error=None)

    async def _request_answer(self, question: str) -> None:
        try:
            answer = await self.inference.generate(question)
            if not answer or not answer.strip():
                raise EmptyResponse()
        except EmptyResponse:
            logger.warning("Empty inference response, using fallback answer")
            answer = self.fallback_answer
        except InferenceFailure as e:
            self._on_inference_failed(e)
            return
        except Exception as e:
            logger.error("Unexpected inference client error", error=str(e), exc_info=True)
            self._on_inference_failed(e)
            return

        self._on_answer(question, answer)

    def _owns_request(self) -> bool:
        return (
            self.session.mode is Mode.AWAITING_ANSWER
            and self._request_task is asyncio.current_task()
        )

    def _on_answer(self, question: str, answer: str) -> None:
        if not self._owns_request():
            logger.debug("Discarding answer for abandoned request")
            return

        self._request_task = None
        if self.metrics:
            self.metrics.record_inference_latency((time.time() - self._request_started) * 1000)
            self.metrics.record_exchange()

        self.session.history.append(Turn(text=question, speaker=Speaker.USER))
        self.session.history.append(Turn(text=answer, speaker=Speaker.SYSTEM))
        logger.info("Answer received", answer_length=len(answer))

        try:
            self.playback.speak(answer)
        except Exception as e:
            logger.error("Failed to start playback", error=str(e))
            if self.metrics:
                self.metrics.record_error("playback", str(e))
            self._update(mode=Mode.IDLE, pending_question="", last_error=PLAYBACK_ERROR_MESSAGE)
            return

        self._playback_active = True
        self._update(mode=Mode.SPEAKING, pending_question="")

    def _on_inference_failed(self, error: Exception) -> None:
        if not self._owns_request():
            return

        self._request_task = None
        if self.metrics:
            self.metrics.record_error("inference", str(error))

        logger.warning("Inference failed", error=str(error), error_type=type(error).__name__)
        # The question stays in pending_question so it can be resubmitted
        self._update(mode=Mode.IDLE, last_error=self.fallback_answer)
