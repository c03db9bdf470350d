"""Chat platform message models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Update:
    """One inbound update. ``chat_id`` is empty when the update has no chat."""

    update_id: int
    chat_id: str
    text: str = ""


@dataclass(frozen=True, slots=True)
class OutgoingMessage:
    chat_id: str
    text: str
