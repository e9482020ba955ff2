"""Interactive console: renders the session and reads typed input."""

import asyncio
import sys
from typing import Callable, Dict, IO, Optional
import click
import structlog

from ..core.conversation_manager import ConversationManager
from ..state.history import Speaker
from ..state.session import Mode, SessionSnapshot


logger = structlog.get_logger()

MODE_LABELS = {
    Mode.IDLE: "Idle",
    Mode.LISTENING: "Listening...",
    Mode.DEBOUNCING: "Listening...",
    Mode.AWAITING_ANSWER: "Thinking...",
    Mode.SPEAKING: "Speaking...",
    Mode.ERRORED: "Error",
}

HELP_TEXT = (
    "Type a question and press Enter.\n"
    "  /listen    start or stop listening\n"
    "  /stop      stop speaking\n"
    "  /handsfree toggle hands-free mode\n"
    "  /help      show this help\n"
    "  /quit      end the conversation"
)


class ConsoleRenderer:
    """Session observer that prints new turns, mode changes and errors."""

    def __init__(self, out: Optional[IO[str]] = None):
        self.out = out
        self._turns_seen = 0
        self._label: Optional[str] = None
        self._last_error: Optional[str] = None
        self._hands_free: Optional[bool] = None

    def __call__(self, snapshot: SessionSnapshot) -> None:
        for turn in snapshot.turns[self._turns_seen:]:
            if turn.speaker is Speaker.USER:
                self._echo(click.style("You: ", fg="cyan", bold=True) + turn.text)
            else:
                self._echo(click.style("Assistant: ", fg="green", bold=True) + turn.text)
        self._turns_seen = len(snapshot.turns)

        if snapshot.last_error and snapshot.last_error != self._last_error:
            self._echo(click.style(f"! {snapshot.last_error}", fg="red"))
        self._last_error = snapshot.last_error

        if self._hands_free is not None and snapshot.hands_free != self._hands_free:
            state = "on" if snapshot.hands_free else "off"
            self._echo(click.style(f"[hands-free {state}]", dim=True))
        self._hands_free = snapshot.hands_free

        label = MODE_LABELS[snapshot.mode]
        if label != self._label:
            self._echo(click.style(f"[{label}]", dim=True))
            self._label = label

    def _echo(self, message: str) -> None:
        click.echo(message, file=self.out)


def build_commands(manager: ConversationManager) -> Dict[str, Callable[[], None]]:
    """Slash commands mapped to the controller operations."""
    controller = manager.controller
    return {
        "/listen": controller.toggle_listening,
        "/stop": controller.stop_speaking,
        "/handsfree": controller.toggle_hands_free,
        "/help": lambda: click.echo(HELP_TEXT),
    }


async def run_console(manager: ConversationManager, stdin: Optional[IO[str]] = None) -> None:
    """Read lines until ``/quit`` or end of input, dispatching each one."""
    stdin = stdin or sys.stdin
    commands = build_commands(manager)

    while manager.is_running:
        line = await asyncio.to_thread(stdin.readline)
        if not line:
            logger.debug("End of console input")
            break

        line = line.strip()
        if not line:
            continue
        if line == "/quit":
            break

        if line.startswith("/"):
            command = commands.get(line)
            if command is None:
                click.echo(click.style(f"Unknown command: {line}", fg="yellow"))
                continue
            command()
            continue

        if not manager.controller.submit_text(line):
            click.echo(click.style("Still waiting for the previous answer.", fg="yellow"))
