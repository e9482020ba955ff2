"""The single mutable session context owned by the turn controller."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .history import ConversationHistory, Turn


class Mode(str, Enum):
    """Turn controller states."""

    IDLE = "idle"
    LISTENING = "listening"
    DEBOUNCING = "debouncing"
    AWAITING_ANSWER = "awaiting_answer"
    SPEAKING = "speaking"
    ERRORED = "errored"


# Modes in which the capture device is owned by the controller
CAPTURE_MODES = frozenset({Mode.LISTENING, Mode.DEBOUNCING})


@dataclass
class Session:
    """Conversation state. Only TurnController writes to it."""

    mode: Mode = Mode.IDLE
    pending_question: str = ""
    last_error: Optional[str] = None
    hands_free: bool = False
    history: ConversationHistory = field(default_factory=ConversationHistory)


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the session handed to observers."""

    mode: Mode
    pending_question: str
    last_error: Optional[str]
    hands_free: bool
    turns: Tuple[Turn, ...]
    capture_active: bool = False
    playback_active: bool = False
    request_in_flight: bool = False

    @property
    def active_resources(self) -> int:
        """How many of capture, playback and inference are held right now."""
        return sum((self.capture_active, self.playback_active, self.request_in_flight))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "pending_question": self.pending_question,
            "last_error": self.last_error,
            "hands_free": self.hands_free,
            "turns": [turn.to_dict() for turn in self.turns],
            "capture_active": self.capture_active,
            "playback_active": self.playback_active,
            "request_in_flight": self.request_in_flight,
        }
