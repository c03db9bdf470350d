"""In-memory chat adapter for offline runs and tests."""

from __future__ import annotations

import asyncio

from agentshell.log import get_logger
from agentshell.messenger.base import ChatAdapter
from agentshell.messenger.models import OutgoingMessage, Update

logger = get_logger(__name__)


class StubChatAdapter(ChatAdapter):
    """Serves enqueued updates and records everything sent.

    Like the Telegram API, updates stay queued until a fetch passes an offset
    above their id, so an unacknowledged update is delivered again.
    """

    def __init__(self) -> None:
        self._queue: list[Update] = []
        self._next_id = 1
        self._arrived = asyncio.Event()
        self.sent: list[tuple[str, str]] = []
        self.typing: list[str] = []
        self.offsets: list[int] = []

    @property
    def platform_name(self) -> str:
        return "stub"

    def enqueue(self, chat_id: str | int, text: str, update_id: int | None = None) -> Update:
        if update_id is None:
            update_id = self._next_id
        self._next_id = max(self._next_id, update_id + 1)
        update = Update(update_id=update_id, chat_id=str(chat_id), text=text)
        self._queue.append(update)
        self._arrived.set()
        return update

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def fetch_updates(self, offset: int, timeout: int) -> list[Update]:
        self.offsets.append(offset)
        self._queue = [u for u in self._queue if u.update_id >= offset]
        if not self._queue and timeout > 0:
            self._arrived.clear()
            try:
                await asyncio.wait_for(self._arrived.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                return []
        return sorted(self._queue, key=lambda u: u.update_id)

    async def send_message(self, message: OutgoingMessage) -> None:
        logger.debug("stub_send_message", chat_id=message.chat_id, length=len(message.text))
        self.sent.append((message.chat_id, message.text))

    async def send_typing_indicator(self, chat_id: str) -> None:
        self.typing.append(chat_id)

    def replies_to(self, chat_id: str | int) -> list[str]:
        return [text for chat, text in self.sent if chat == str(chat_id)]
