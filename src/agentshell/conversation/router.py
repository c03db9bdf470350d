"""Maps external chat identifiers to isolated sessions and conversation ids."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Conversation:
    chat_id: str
    session_key: str
    conversation_id: str


class ConversationRouter:
    """Derives per-chat keys as pure functions of the chat id.

    ``session_key(c) = "chat_" + c`` and ``conversation_id(c) = agent + "_" + c``
    are injective for a fixed agent, so distinct chats can never share state
    and no registry needs to be kept or locked.
    """

    SESSION_PREFIX = "chat_"

    def __init__(self, agent_id: str):
        if not agent_id:
            raise ValueError("agent id required")
        self.agent_id = agent_id

    def session_key(self, chat_id: str | int) -> str:
        return f"{self.SESSION_PREFIX}{chat_id}"

    def conversation_id(self, chat_id: str | int) -> str:
        return f"{self.agent_id}_{chat_id}"

    def route(self, chat_id: str | int) -> Conversation:
        chat = str(chat_id)
        return Conversation(
            chat_id=chat,
            session_key=self.session_key(chat),
            conversation_id=self.conversation_id(chat),
        )
