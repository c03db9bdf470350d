"""Administrative chat commands.

Text starting with ``/`` never reaches the model: it is either one of a fixed
set of commands or answered with :data:`UNKNOWN_COMMAND_REPLY`.
"""

from __future__ import annotations

from enum import StrEnum

COMMAND_PREFIX = "/"

GREETING = (
    "Hello! I'm an agentshell bot, an LLM assistant whose tools are plain executables.\n\n"
    "Send me any message to chat. Commands:\n"
    "  /reset - clear conversation history\n"
    "  /session - show conversation stats"
)
RESET_REPLY = "Conversation cleared. Fresh start!"
UNKNOWN_COMMAND_REPLY = "Unknown command. Try /start, /reset, or /session."


class Command(StrEnum):
    START = "start"
    RESET = "reset"
    SESSION = "session"
    UNKNOWN = "unknown"


_ALIASES = {
    "start": Command.START,
    "help": Command.START,
    "reset": Command.RESET,
    "session": Command.SESSION,
}


def is_command(text: str) -> bool:
    return text.startswith(COMMAND_PREFIX)


def parse_command(text: str) -> Command:
    """Map ``/name``, ``/name@botname`` or ``/name args`` to a :class:`Command`."""
    if not is_command(text):
        raise ValueError(f"not a command: {text!r}")
    word = text[len(COMMAND_PREFIX):].split(maxsplit=1)[0] if text[1:].strip() else ""
    name = word.split("@", 1)[0].lower()
    return _ALIASES.get(name, Command.UNKNOWN)


def session_count_reply(count: int) -> str:
    return f"Messages in this conversation: {count}"
