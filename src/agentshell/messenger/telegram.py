"""Telegram adapter using python-telegram-bot's Bot API client (long polling)."""

from __future__ import annotations

from telegram import Bot
from telegram import Update as TelegramUpdate
from telegram.constants import ChatAction
from telegram.error import TelegramError

from agentshell.log import get_logger
from agentshell.messenger.base import ChatAdapter
from agentshell.messenger.models import OutgoingMessage, Update

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 4000


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split a message into chunks that fit within platform limits."""
    if len(text) <= max_length:
        return [text]

    chunks = []
    while text:
        if len(text) <= max_length:
            chunks.append(text)
            break
        # Prefer a newline boundary
        split_pos = text.rfind("\n", 0, max_length)
        if split_pos <= 0:
            split_pos = max_length
        chunks.append(text[:split_pos])
        text = text[split_pos:].lstrip("\n")
    return chunks


def to_update(update: TelegramUpdate) -> Update:
    """Map a Telegram update; non-text content yields empty text."""
    message = update.effective_message
    chat = update.effective_chat
    return Update(
        update_id=update.update_id,
        chat_id=str(chat.id) if chat else "",
        text=(message.text or "") if message else "",
    )


class TelegramAdapter(ChatAdapter):
    """Telegram bot adapter driven by explicit ``getUpdates`` calls."""

    def __init__(self, token: str):
        if not token:
            raise ValueError("Telegram bot token not configured")
        self._bot = Bot(token)

    @property
    def platform_name(self) -> str:
        return "telegram"

    async def start(self) -> None:
        await self._bot.initialize()
        logger.info("telegram_adapter_started", username=self._bot.username)

    async def stop(self) -> None:
        await self._bot.shutdown()
        logger.info("telegram_adapter_stopped")

    async def fetch_updates(self, offset: int, timeout: int) -> list[Update]:
        updates = await self._bot.get_updates(
            offset=offset or None,
            timeout=timeout,
            read_timeout=timeout + 10,
            allowed_updates=["message"],
        )
        return [to_update(u) for u in updates]

    async def send_message(self, message: OutgoingMessage) -> None:
        for chunk in split_message(message.text):
            await self._bot.send_message(chat_id=int(message.chat_id), text=chunk)

    async def send_typing_indicator(self, chat_id: str) -> None:
        try:
            await self._bot.send_chat_action(chat_id=int(chat_id), action=ChatAction.TYPING)
        except TelegramError as e:
            logger.warning("telegram_typing_failed", chat_id=chat_id, error=str(e))
