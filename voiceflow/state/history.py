"""Conversation history and its on-disk persistence."""

import os
import json
import tempfile
from datetime import datetime
from enum import Enum
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple
from uuid import uuid4
import structlog


logger = structlog.get_logger()


class Speaker(str, Enum):
    """Who produced a turn."""

    USER = "user"
    SYSTEM = "system"


@dataclass(frozen=True)
class Turn:
    """One utterance in the conversation."""

    text: str
    speaker: Speaker
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def is_user(self) -> bool:
        return self.speaker is Speaker.USER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "speaker": self.speaker.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Turn":
        return cls(
            text=data["text"],
            speaker=Speaker(data["speaker"]),
            timestamp=data.get("timestamp", ""),
        )


class ConversationHistory:
    """
    Append-only, chronologically ordered log of turns.

    Turns are never removed or reordered; ``append`` is the only mutator.
    """

    def __init__(self):
        self._turns: List[Turn] = []

    def append(self, turn: Turn) -> None:
        """Append a turn to the end of the log."""
        self._turns.append(turn)

    def snapshot(self) -> Tuple[Turn, ...]:
        """Return the full ordered sequence of turns."""
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self.snapshot())


class HistoryStore:
    """Persists finished conversations as JSON files."""

    def __init__(self, base_path: Optional[str] = None):
        self.base_path = Path(base_path or "~/.voiceflow/conversations").expanduser()
        self.base_path.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def new_conversation_id() -> str:
        return f"conv_{uuid4()}"

    def _atomic_write(self, file_path: Path, data: Dict[str, Any]) -> None:
        """Atomically write data to file."""
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(
            mode="w", dir=file_path.parent, delete=False, suffix=".tmp"
        ) as tmp_file:
            json.dump(data, tmp_file, indent=2, ensure_ascii=False)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
            tmp_path = tmp_file.name

        os.replace(tmp_path, file_path)

    def save(self, conversation_id: str, history: ConversationHistory) -> Optional[Path]:
        """Save the conversation. Empty conversations are skipped."""
        turns = history.snapshot()
        if not turns:
            logger.debug("Conversation empty, not saving", conversation_id=conversation_id)
            return None

        file_path = self.base_path / f"{conversation_id}.json"
        self._atomic_write(
            file_path,
            {
                "id": conversation_id,
                "saved_at": datetime.now().isoformat(),
                "turns": [turn.to_dict() for turn in turns],
            },
        )
        logger.info(
            "Conversation saved", conversation_id=conversation_id, turn_count=len(turns)
        )
        return file_path

    def load(self, conversation_id: str) -> Optional[ConversationHistory]:
        """Load a saved conversation, or None if it does not exist."""
        file_path = self.base_path / f"{conversation_id}.json"
        if not file_path.exists():
            return None

        with open(file_path, "r") as f:
            data = json.load(f)

        history = ConversationHistory()
        for item in data.get("turns", []):
            history.append(Turn.from_dict(item))
        return history

    def list_conversations(self) -> List[Dict[str, Any]]:
        """List saved conversations, most recent first."""
        conversations = []
        for file_path in self.base_path.glob("conv_*.json"):
            try:
                with open(file_path, "r") as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                logger.error(
                    "Failed to read conversation file", file=str(file_path), error=str(e)
                )
                continue

            turns = data.get("turns", [])
            first_question = next(
                (t["text"] for t in turns if t.get("speaker") == Speaker.USER.value), ""
            )
            conversations.append(
                {
                    "id": data.get("id", file_path.stem),
                    "saved_at": data.get("saved_at", ""),
                    "turn_count": len(turns),
                    "first_question": first_question,
                }
            )

        conversations.sort(key=lambda x: x["saved_at"], reverse=True)
        return conversations
