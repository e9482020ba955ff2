"""Shared fixtures: controllable fake devices and a session recorder."""

import asyncio
from typing import List, Optional, Tuple
import pytest

from voiceflow.core.turn_controller import TurnController
from voiceflow.providers.capture.base import CaptureDevice
from voiceflow.providers.inference.base import InferenceClient
from voiceflow.providers.playback.base import PlaybackDevice
from voiceflow.state.session import SessionSnapshot


class FakeCaptureDevice(CaptureDevice):
    """Capture device driven by the test through the emit_* helpers."""

    def __init__(self):
        super().__init__()
        self.start_calls = 0
        self.stop_calls = 0
        self.start_error: Optional[Exception] = None

    def initialize(self):
        pass

    def start(self):
        if self.start_error:
            raise self.start_error
        self.start_calls += 1
        self.is_active = True

    def stop(self):
        self.stop_calls += 1
        self.is_active = False

    def close(self):
        self.stop()

    def get_status(self):
        return {"provider": "fake_capture", "is_active": self.is_active}


class FakeInferenceClient(InferenceClient):
    """
    Each ``generate`` call parks on a future until the test resolves it with
    ``answer()`` or ``fail()``. With ``auto_answer`` set, calls return at once.
    """

    def __init__(self, auto_answer: Optional[str] = None):
        super().__init__()
        self.auto_answer = auto_answer
        self.prompts: List[str] = []
        self.pending: List[asyncio.Future] = []

    def initialize(self):
        pass

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if self.auto_answer is not None:
            return self.auto_answer
        future = asyncio.get_running_loop().create_future()
        self.pending.append(future)
        return await future

    def answer(self, text: str, index: int = -1):
        self.pending[index].set_result(text)

    def fail(self, error: Exception, index: int = -1):
        self.pending[index].set_exception(error)

    def close(self):
        pass

    def get_status(self):
        return {"provider": "fake_inference", "calls": len(self.prompts)}


class FakePlaybackDevice(PlaybackDevice):
    """Playback device whose completion is triggered by the test."""

    def __init__(self):
        super().__init__()
        self.spoken: List[str] = []
        self.cancel_calls = 0
        self.speak_error: Optional[Exception] = None

    def initialize(self):
        pass

    def speak(self, text):
        if self.speak_error:
            raise self.speak_error
        self.spoken.append(text)
        self.is_active = True

    def cancel(self):
        self.cancel_calls += 1
        self.is_active = False

    def close(self):
        self.cancel()

    def get_status(self):
        return {"provider": "fake_playback", "is_active": self.is_active}


class SessionRecorder:
    """
    Observer that keeps every snapshot and notes each one where more than
    one resource is held.

    Observer exceptions are logged and swallowed by the controller, so
    overlaps are collected in ``violations`` and asserted by the test.
    When devices are given, their own state is counted as well as the
    controller's ownership flags.
    """

    def __init__(self, capture=None, inference=None, playback=None):
        self.capture = capture
        self.inference = inference
        self.playback = playback
        self.snapshots: List[SessionSnapshot] = []
        self.violations: List[Tuple[SessionSnapshot, int]] = []

    def device_resources(self) -> int:
        held = 0
        if self.capture is not None and self.capture.is_active:
            held += 1
        if self.playback is not None and self.playback.is_active:
            held += 1
        pending = getattr(self.inference, "pending", [])
        generating = getattr(self.inference, "is_generating", False)
        if generating or any(not future.done() for future in pending):
            held += 1
        return held

    def __call__(self, snapshot: SessionSnapshot):
        self.snapshots.append(snapshot)
        held = max(snapshot.active_resources, self.device_resources())
        if held > 1:
            self.violations.append((snapshot, held))

    @property
    def modes(self):
        return [s.mode for s in self.snapshots]


async def settle(rounds: int = 5):
    """Let pending callbacks and tasks on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def capture():
    return FakeCaptureDevice()


@pytest.fixture
def inference():
    return FakeInferenceClient()


@pytest.fixture
def playback():
    return FakePlaybackDevice()


@pytest.fixture
def recorder(capture, inference, playback):
    recorder = SessionRecorder(capture, inference, playback)
    yield recorder
    assert recorder.violations == [], "more than one resource held at once"


@pytest.fixture
def controller(capture, inference, playback, recorder):
    controller = TurnController(capture, inference, playback, debounce_delay=0.01)
    controller.add_observer(recorder)
    return controller
