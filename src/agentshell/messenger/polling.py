"""Long-polling bot loop: fetch a batch, handle each update, advance the offset.

Delivery is at-least-once. The offset only moves past an update once that
update has been fully handled, so a crash mid-handling redelivers it on the
next start.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict

from agentshell.ai.handler import MessageHandler
from agentshell.conversation.commands import (
    GREETING,
    RESET_REPLY,
    UNKNOWN_COMMAND_REPLY,
    Command,
    is_command,
    parse_command,
    session_count_reply,
)
from agentshell.conversation.router import Conversation, ConversationRouter
from agentshell.log import get_logger
from agentshell.messenger.base import ChatAdapter
from agentshell.messenger.models import OutgoingMessage, Update
from agentshell.session.store import SessionStore
from agentshell.storage.event_log import EventLog

logger = get_logger(__name__)

FAILURE_NOTICE = "Sorry, something went wrong while handling your message."


class PollingBot:
    """Drives one :class:`ChatAdapter` against one :class:`MessageHandler`."""

    def __init__(
        self,
        adapter: ChatAdapter,
        handler: MessageHandler,
        router: ConversationRouter,
        session_store: SessionStore,
        event_log: EventLog | None = None,
        poll_timeout: int = 30,
        retry_delay: float = 5.0,
        concurrent_chats: bool = False,
    ):
        self._adapter = adapter
        self._handler = handler
        self._router = router
        self._sessions = session_store
        self._event_log = event_log
        self._poll_timeout = poll_timeout
        self._retry_delay = retry_delay
        self._concurrent_chats = concurrent_chats
        self.offset = 0

    async def _log(self, event: str, message: str) -> None:
        if self._event_log is not None:
            await self._event_log.try_log_event(event, message)

    async def _send(self, chat_id: str, text: str) -> None:
        await self._adapter.send_message(OutgoingMessage(chat_id=chat_id, text=text))

    # -- per-update handling -------------------------------------------------

    async def handle_command(self, conversation: Conversation, text: str) -> None:
        command = parse_command(text)
        chat_id = conversation.chat_id
        match command:
            case Command.START:
                reply = GREETING
            case Command.RESET:
                await self._sessions.clear(conversation.session_key)
                reply = RESET_REPLY
            case Command.SESSION:
                reply = session_count_reply(await self._sessions.count(conversation.session_key))
            case _:
                reply = UNKNOWN_COMMAND_REPLY

        await self._send(chat_id, reply)
        if command is not Command.UNKNOWN:
            await self._log("telegram_command", f"/{command.value} from {chat_id}")

    async def handle_message(self, conversation: Conversation, text: str) -> None:
        await self._log("telegram_input", text)
        try:
            await self._adapter.send_typing_indicator(conversation.chat_id)
        except Exception as e:
            logger.warning("typing_indicator_failed", chat_id=conversation.chat_id, error=str(e))

        response = await self._handler.handle(
            text,
            conversation.session_key,
            conversation_id=conversation.conversation_id,
        )
        await self._log("telegram_response", response)
        await self._send(conversation.chat_id, response)

    async def handle_update(self, update: Update) -> None:
        """Handle one update. Errors are reported to the chat, never raised."""
        text = update.text.strip()
        if not update.chat_id or not text:
            logger.debug("update_skipped", update_id=update.update_id)
            return

        conversation = self._router.route(update.chat_id)
        try:
            if is_command(text):
                await self.handle_command(conversation, text)
            else:
                await self.handle_message(conversation, text)
        except Exception as e:
            logger.error(
                "update_failed",
                update_id=update.update_id,
                chat_id=update.chat_id,
                error=str(e),
                exc_info=True,
            )
            try:
                await self._send(update.chat_id, FAILURE_NOTICE)
            except Exception as send_error:
                logger.error("failure_notice_failed", chat_id=update.chat_id, error=str(send_error))

    # -- batches ---------------------------------------------------------------

    async def process_batch(
        self, updates: list[Update], stop_event: asyncio.Event | None = None
    ) -> None:
        """Handle a batch in arrival order and advance :attr:`offset`."""
        ordered = sorted(updates, key=lambda u: u.update_id)
        if self._concurrent_chats:
            await self._process_concurrently(ordered, stop_event)
            return

        for update in ordered:
            if stop_event is not None and stop_event.is_set():
                return
            await self.handle_update(update)
            self.offset = max(self.offset, update.update_id + 1)

    async def _process_concurrently(
        self, ordered: list[Update], stop_event: asyncio.Event | None
    ) -> None:
        # One sequential lane per chat; lanes run side by side.
        lanes: OrderedDict[str, list[Update]] = OrderedDict()
        for update in ordered:
            lanes.setdefault(update.chat_id, []).append(update)

        done: set[int] = set()

        async def _lane(chat_updates: list[Update]) -> None:
            for update in chat_updates:
                if stop_event is not None and stop_event.is_set():
                    return
                await self.handle_update(update)
                done.add(update.update_id)

        await asyncio.gather(*(_lane(lane) for lane in lanes.values()))

        # Advance only across the contiguous prefix of handled updates.
        for update in ordered:
            if update.update_id not in done:
                break
            self.offset = max(self.offset, update.update_id + 1)

    async def poll_once(self, stop_event: asyncio.Event | None = None) -> int:
        """Fetch and process one batch. Returns the number of updates fetched."""
        updates = await self._adapter.fetch_updates(self.offset, self._poll_timeout)
        if updates:
            logger.debug("updates_fetched", count=len(updates), offset=self.offset)
            await self.process_batch(updates, stop_event)
        return len(updates)

    async def _wait_or_stop(self, stop_event: asyncio.Event, delay: float) -> None:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll until *stop_event* is set. The in-flight update always completes."""
        await self._adapter.start()
        await self._log("bot_startup", f"bot starting (agent={self._router.agent_id})")
        logger.info("bot_started", agent=self._router.agent_id, platform=self._adapter.platform_name)
        try:
            while not stop_event.is_set():
                fetch = asyncio.ensure_future(
                    self._adapter.fetch_updates(self.offset, self._poll_timeout)
                )
                stopper = asyncio.ensure_future(stop_event.wait())
                await asyncio.wait({fetch, stopper}, return_when=asyncio.FIRST_COMPLETED)
                stopper.cancel()
                if not fetch.done():
                    fetch.cancel()
                    break

                try:
                    updates = fetch.result()
                except Exception as e:
                    logger.warning("fetch_failed", error=str(e), retry_in=self._retry_delay)
                    await self._wait_or_stop(stop_event, self._retry_delay)
                    continue

                if updates:
                    await self.process_batch(updates, stop_event)
        finally:
            await self._log("bot_shutdown", "bot stopping")
            await self._adapter.stop()
            logger.info("bot_stopped", offset=self.offset)
