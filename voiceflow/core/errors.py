"""Error kinds raised by devices, the inference client and the controller."""

from typing import Optional


class VoiceFlowError(Exception):
    """Base class for all VoiceFlow errors."""


class CaptureError(VoiceFlowError):
    """Speech capture device failure (permission denied, no microphone...)."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Speech capture failed: {reason}")


class InferenceFailure(VoiceFlowError):
    """The remote text-generation request did not produce an answer."""


class NetworkError(InferenceFailure):
    """Transport level failure: connection error, timeout or bad status."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class EmptyResponse(InferenceFailure):
    """The service answered but the generated text was missing or empty."""

    def __init__(self, message: str = "Inference response contained no text"):
        super().__init__(message)


class EmptySubmission(VoiceFlowError):
    """A blank question was submitted. Rejected locally, never surfaced."""

    def __init__(self):
        super().__init__("Refusing to submit an empty question")
