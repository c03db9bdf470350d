"""Application wiring: builds the runtime for one agent and manages its lifecycle."""

from __future__ import annotations

import asyncio
from pathlib import Path

from agentshell.ai.client import LLMClient, create_llm_client
from agentshell.ai.handler import MessageHandler
from agentshell.ai.prompt import compose_system, resolve_system_prompt
from agentshell.config import AppConfig, ConfigError
from agentshell.conversation.router import ConversationRouter
from agentshell.log import get_logger
from agentshell.messenger.base import ChatAdapter
from agentshell.messenger.polling import PollingBot
from agentshell.session.store import FileSessionStore
from agentshell.storage.event_log import EventLog
from agentshell.tools.catalog import ToolCatalog
from agentshell.tools.discovery import discover_tools
from agentshell.tools.dispatch import Dispatcher

logger = get_logger(__name__)

CLI_SESSION_KEY = "current"
AGENT_LOG = "agent.jsonl"
BOT_LOG = "bot.jsonl"


class AgentShellApp:
    """Everything one agent needs: sessions, event log, LLM, tools.

    Files live under ``<home>/agents/<id>/``: ``sessions/*.jsonl`` for
    conversations, ``agent.jsonl`` for the CLI trail and ``sessions/bot.jsonl``
    for the bot trail.
    """

    def __init__(self, config: AppConfig, agent_id: str | None = None, llm: LLMClient | None = None):
        self.config = config
        self.agent_id = agent_id or config.default_agent
        self.agent = config.resolve_agent(self.agent_id)
        self.agent_dir = config.agent_dir(self.agent_id)
        self.sessions_dir = self.agent_dir / "sessions"
        self.session_store = FileSessionStore(self.sessions_dir)
        self.event_log = EventLog(self.agent_dir / AGENT_LOG, agent_id=self.agent_id)
        self._llm = llm

    @property
    def llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = create_llm_client(self.config.llm, self.config.model_for(self.agent_id))
        return self._llm

    @property
    def model(self) -> str:
        return self.config.model_for(self.agent_id)

    def system_prompt(self) -> str:
        return compose_system(self.agent_dir, self.config.soul_path(self.agent_id))

    async def discover(self) -> ToolCatalog:
        """Run one discovery pass over the tools directory."""
        tools_dir = self.config.tools_dir
        if not tools_dir.is_dir():
            logger.warning("tools_dir_missing", path=str(tools_dir))
            return ToolCatalog()
        return await discover_tools(
            tools_dir,
            timeout=self.config.tools.describe_timeout,
            env=self.config.tool_env(),
        )

    def create_dispatcher(self, catalog: ToolCatalog, event_log: EventLog | None) -> Dispatcher:
        return Dispatcher(
            self.config.tools_dir,
            catalog=catalog,
            timeout=self.config.tools.call_timeout,
            env=self.config.tool_env(),
            event_log=event_log,
            enforce_validation=self.config.tools.enforce_validation,
        )

    async def create_handler(
        self,
        event_log: EventLog | None,
        tool_log: EventLog | None = None,
        system: str | None = None,
    ) -> MessageHandler:
        """Build a handler; the agent's composed prompt is used unless *system* is given."""
        dispatcher = None
        if self.config.tools.enabled:
            catalog = await self.discover()
            dispatcher = self.create_dispatcher(catalog, tool_log or event_log)
        return MessageHandler(
            llm=self.llm,
            session_store=self.session_store,
            event_log=event_log,
            dispatcher=dispatcher,
            system=system if system is not None else self.system_prompt(),
            model=self.model,
            max_rounds=self.config.tools.max_rounds,
        )

    async def send(
        self,
        message: str,
        system: str | None = None,
        model: str | None = None,
        continue_conversation: bool = False,
    ) -> str:
        """Filter mode: one message in, one reply out, mirrored to ``sessions/current.jsonl``."""
        # An explicit system prompt replaces the agent's composed one.
        handler = await self.create_handler(
            self.event_log, system=resolve_system_prompt(system) if system else None
        )
        return await handler.handle(
            message,
            CLI_SESSION_KEY,
            model=model,
            continue_conversation=continue_conversation,
        )

    def create_adapter(self) -> ChatAdapter:
        telegram = self.config.telegram
        if telegram.stub:
            from agentshell.messenger.stub import StubChatAdapter

            return StubChatAdapter()
        if not telegram.token:
            raise ConfigError(
                "telegram.token is not set (or set AGENTSHELL_TELEGRAM_TOKEN; "
                "get a token from @BotFather)"
            )
        from agentshell.messenger.telegram import TelegramAdapter

        return TelegramAdapter(telegram.token)

    async def create_bot(self, adapter: ChatAdapter | None = None) -> PollingBot:
        bot_log = EventLog(self.sessions_dir / BOT_LOG, agent_id=self.agent_id)
        # The bot writes its own telegram_* events; the handler only feeds tool events.
        handler = await self.create_handler(event_log=None, tool_log=bot_log)
        telegram = self.config.telegram
        return PollingBot(
            adapter=adapter or self.create_adapter(),
            handler=handler,
            router=ConversationRouter(self.agent_id),
            session_store=self.session_store,
            event_log=bot_log,
            poll_timeout=telegram.poll_timeout,
            retry_delay=telegram.retry_delay,
            concurrent_chats=telegram.concurrent_chats,
        )

    async def run_bot(self, stop_event: asyncio.Event, adapter: ChatAdapter | None = None) -> None:
        bot = await self.create_bot(adapter)
        logger.info("agentshell_bot_starting", agent=self.agent_id, backend=self.llm.backend_name)
        await bot.run(stop_event)


def init_project(home: str | Path, config_path: str | Path | None = None) -> list[Path]:
    """Create the default agent's soul file and a config file where missing."""
    home = Path(home)
    created: list[Path] = []
    soul = home / "agents" / "default" / "soul.md"
    if not soul.exists():
        soul.parent.mkdir(parents=True, exist_ok=True)
        soul.write_text(DEFAULT_SOUL, encoding="utf-8")
        created.append(soul)
    config_file = Path(config_path) if config_path else home / "config.yaml"
    if not config_file.exists():
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(DEFAULT_CONFIG, encoding="utf-8")
        created.append(config_file)
    return created


DEFAULT_SOUL = """\
You are a helpful assistant running inside agentshell.

Be concise. Answer in plain text that reads well in a terminal or a chat
window. When a tool can answer a question better than you can, use it.
"""

DEFAULT_CONFIG = """\
# agentshell configuration
log_level: INFO
model: claude-sonnet-4-5-20250929
default_agent: default

llm:
  backend: llm          # llm | anthropic | stub
  cli_path: llm
  timeout: 120

tools:
  enabled: false
  directory: tools
"""
