"""The Telegram bot wired by the application, driven through the stub adapter."""

import json

import pytest

from agentshell.app import AgentShellApp
from agentshell.config import AppConfig, ConfigError, TelegramConfig, ToolsConfig
from agentshell.conversation.commands import GREETING, RESET_REPLY
from agentshell.messenger.stub import StubChatAdapter

from conftest import WEATHER_DESCRIPTOR, WEATHER_RUN, describing_tool, make_tool


@pytest.fixture
def config(tmp_path):
    agent_dir = tmp_path / "agents" / "telegram"
    agent_dir.mkdir(parents=True)
    (agent_dir / "soul.md").write_text("You are a chat bot.\n")
    return AppConfig(
        home=str(tmp_path),
        agents={"telegram": {}},
        telegram=TelegramConfig(stub=True, poll_timeout=0),
        tools=ToolsConfig(enabled=False),
    )


async def test_stub_conversation_lands_in_chat_session(config, tmp_path, stub_llm):
    app = AgentShellApp(config, "telegram", llm=stub_llm)
    adapter = StubChatAdapter()
    bot = await app.create_bot(adapter)

    adapter.enqueue(12345, "/start")
    adapter.enqueue(12345, "Hello")
    await bot.poll_once()

    assert adapter.replies_to(12345) == [GREETING, "stub response 1"]
    _, options = stub_llm.calls[0]
    assert options.conversation_id == "telegram_12345"
    assert options.system.startswith("You are a chat bot.")

    sessions = tmp_path / "agents" / "telegram" / "sessions"
    assert len((sessions / "chat_12345.jsonl").read_text().splitlines()) == 2
    events = [json.loads(line)["event"] for line in (sessions / "bot.jsonl").read_text().splitlines()]
    assert events == ["telegram_command", "telegram_input", "telegram_response"]


async def test_reset_archives_chat_session_file(config, tmp_path, stub_llm):
    app = AgentShellApp(config, "telegram", llm=stub_llm)
    adapter = StubChatAdapter()
    bot = await app.create_bot(adapter)

    adapter.enqueue(7, "Hello")
    await bot.poll_once()
    adapter.enqueue(7, "/reset")
    await bot.poll_once()

    assert adapter.replies_to(7)[-1] == RESET_REPLY
    sessions = tmp_path / "agents" / "telegram" / "sessions"
    assert (sessions / "chat_7.jsonl").read_text() == ""
    assert len(list(sessions.glob("chat_7.jsonl.*"))) == 1


async def test_bot_tool_events_go_to_bot_log(config, tmp_path):
    tools = tmp_path / "tools"
    make_tool(tools, "get_weather.py", describing_tool(WEATHER_DESCRIPTOR, WEATHER_RUN))
    config.tools = ToolsConfig(enabled=True, stub=True)

    class AskOnce:
        backend_name = "scripted"

        def __init__(self):
            self.count = 0

        async def call(self, message, options=None):
            self.count += 1
            if self.count == 1:
                return '<tool_call>{"tool": "get_weather", "input": {"location": "Oslo"}}</tool_call>'
            return "Sunny in Oslo."

    app = AgentShellApp(config, "telegram", llm=AskOnce())
    adapter = StubChatAdapter()
    bot = await app.create_bot(adapter)
    adapter.enqueue(1, "Weather?")
    await bot.poll_once()

    assert adapter.replies_to(1) == ["Sunny in Oslo."]
    log = tmp_path / "agents" / "telegram" / "sessions" / "bot.jsonl"
    events = [json.loads(line)["event"] for line in log.read_text().splitlines()]
    assert events == ["telegram_input", "tool_dispatch", "tool_result", "telegram_response"]


def test_real_adapter_needs_token(config, stub_llm):
    config.telegram = TelegramConfig(stub=False, token="")
    app = AgentShellApp(config, "telegram", llm=stub_llm)
    with pytest.raises(ConfigError, match="telegram.token"):
        app.create_adapter()
