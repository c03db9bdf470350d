"""Message handler: one inbound message -> session -> LLM (+ tools) -> reply."""

from __future__ import annotations

from agentshell.ai.client import CallOptions, LLMClient, LLMError
from agentshell.ai.prompt import resolve_system_prompt
from agentshell.ai.tool_loop import DEFAULT_MAX_ROUNDS, build_tool_prompt, run_tool_loop
from agentshell.log import get_logger
from agentshell.session.locks import KeyedLocks
from agentshell.session.models import Role
from agentshell.session.store import SessionStore, check_key
from agentshell.storage.event_log import EventLog
from agentshell.tools.dispatch import Dispatcher

logger = get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class MessageHandler:
    """Sequences the full flow for one message.

    All work for one session key runs under that key's lock, so the user
    entry and its assistant entry are always adjacent in the session even
    when several chats are handled concurrently.
    """

    def __init__(
        self,
        llm: LLMClient,
        session_store: SessionStore,
        event_log: EventLog | None = None,
        dispatcher: Dispatcher | None = None,
        system: str = "",
        model: str = "",
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        history_limit: int | None = DEFAULT_HISTORY_LIMIT,
    ):
        self._llm = llm
        self._sessions = session_store
        self._event_log = event_log
        self._dispatcher = dispatcher
        self._system = system
        self._model = model
        self._max_rounds = max_rounds
        self._history_limit = history_limit
        self._locks = KeyedLocks()

    @property
    def tools_enabled(self) -> bool:
        return self._dispatcher is not None and bool(self._dispatcher.catalog)

    async def _log(self, event: str, message: str) -> None:
        if self._event_log is not None:
            await self._event_log.try_log_event(event, message)

    def _build_system(self, system: str | None) -> str:
        prompt = resolve_system_prompt(system) if system else self._system
        if self.tools_enabled:
            prompt += build_tool_prompt(self._dispatcher.catalog)
        return prompt

    async def handle(
        self,
        text: str,
        session_key: str,
        conversation_id: str | None = None,
        system: str | None = None,
        model: str | None = None,
        continue_conversation: bool = False,
    ) -> str:
        """Process one message end-to-end and return the reply text.

        Raises :class:`LLMError` after recording a failure notice as the
        assistant turn.
        """
        if not text.strip():
            raise ValueError("message required")
        check_key(session_key)

        async with self._locks.get(session_key):
            await self._log("user_input", text)
            history = await self._sessions.entries(session_key, limit=self._history_limit)
            await self._sessions.append(session_key, Role.USER, text)

            options = CallOptions(
                system=self._build_system(system),
                model=model or self._model,
                conversation_id=conversation_id or "",
                continue_conversation=continue_conversation,
                history=history,
            )
            logger.info(
                "llm_request",
                session=session_key,
                backend=self._llm.backend_name,
                tools=self.tools_enabled,
            )

            try:
                if self.tools_enabled:
                    response_text = await run_tool_loop(
                        self._llm,
                        self._dispatcher,
                        text,
                        options,
                        max_rounds=self._max_rounds,
                    )
                else:
                    response_text = await self._llm.call(text, options)
            except LLMError as e:
                logger.error("llm_error", session=session_key, error=str(e))
                await self._sessions.append(session_key, Role.ASSISTANT, f"An error occurred: {e}")
                await self._log("llm_error", str(e))
                raise

            await self._sessions.append(session_key, Role.ASSISTANT, response_text)
            await self._log("llm_response", response_text)
            return response_text
