"""Shared fixtures: throwaway tool directories, stub collaborators, stores."""

from __future__ import annotations

import json
import stat
import sys
import textwrap
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from agentshell.ai.client import StubLLMClient
from agentshell.messenger.stub import StubChatAdapter
from agentshell.session.store import FileSessionStore, InMemorySessionStore
from agentshell.storage.event_log import EventLog

REPO_ROOT = Path(__file__).resolve().parent.parent
EXAMPLE_TOOLS = REPO_ROOT / "tools"

WEATHER_DESCRIPTOR = {
    "name": "get_weather",
    "description": "Get current weather for a location",
    "parameters": {
        "type": "object",
        "properties": {
            "location": {"type": "string", "description": "City name or coordinates"},
            "unit": {
                "type": "string",
                "enum": ["celsius", "fahrenheit"],
                "description": "Temperature unit (default: celsius)",
            },
        },
        "required": ["location"],
    },
}


def make_tool(directory: Path, filename: str, body: str, executable: bool = True) -> Path:
    """Write a Python script run by the current interpreter."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body), encoding="utf-8")
    mode = path.stat().st_mode
    if executable:
        path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    else:
        path.chmod(mode & ~(stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))
    return path


def make_shell_tool(directory: Path, filename: str, body: str) -> Path:
    """Write an executable /bin/sh script."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text("#!/bin/sh\n" + textwrap.dedent(body), encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def describing_tool(descriptor: dict, run_body: str = "print('ok')") -> str:
    """Source of a tool that prints *descriptor* on --describe and runs *run_body* otherwise."""
    return (
        "import json, os, sys\n"
        f"DESCRIPTOR = {json.dumps(descriptor)!r}\n"
        "if sys.argv[1:2] == ['--describe']:\n"
        "    print(DESCRIPTOR)\n"
        "    sys.exit(0)\n"
        "args = json.loads(sys.argv[1]) if len(sys.argv) > 1 else {}\n"
        + textwrap.dedent(run_body)
    )


WEATHER_RUN = """\
if os.environ.get("AGENTSHELL_STUB") != "1":
    print("network disabled in tests", file=sys.stderr)
    sys.exit(3)
print(json.dumps({"location": args["location"], "temperature": "15",
                  "unit": args.get("unit", "celsius"), "condition": "Sunny"}))
"""

BROKEN_DESCRIBE = """\
import sys
print("cannot describe", file=sys.stderr)
sys.exit(1)
"""

EMPTY_DESCRIBE = """\
import sys
sys.exit(0)
"""

INVALID_JSON_DESCRIBE = """\
print("this is { not json")
"""

MISSING_FIELDS_DESCRIBE = """\
import json
print(json.dumps({"name": "half_tool", "description": "no parameters"}))
"""

HANGING_DESCRIBE = """\
import time
time.sleep(30)
"""

# The shell stays alive in the foreground while its child holds the pipes.
SHELL_SLEEP = """\
sleep 20
echo done
"""

DEEP_JSON_DESCRIBE = """\
print("[" * 200000)
"""


@pytest.fixture
def tools_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "tools"
    directory.mkdir()
    return directory


@pytest.fixture
def weather_tool(tools_dir: Path) -> Path:
    return make_tool(tools_dir, "get_weather.py", describing_tool(WEATHER_DESCRIPTOR, WEATHER_RUN))


@pytest.fixture
def broken_tool(tools_dir: Path) -> Path:
    return make_tool(tools_dir, "broken_tool.py", BROKEN_DESCRIBE)


@pytest.fixture
def stub_env() -> dict[str, str]:
    return {"AGENTSHELL_STUB": "1"}


@pytest.fixture
def stub_llm() -> StubLLMClient:
    return StubLLMClient()


@pytest.fixture
def memory_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def file_store(tmp_path: Path) -> FileSessionStore:
    return FileSessionStore(tmp_path / "sessions")


@pytest.fixture
def event_log(tmp_path: Path) -> EventLog:
    return EventLog(tmp_path / "agent.jsonl", agent_id="test")


@pytest.fixture
def stub_adapter() -> StubChatAdapter:
    return StubChatAdapter()


@pytest.fixture(autouse=True)
def log_events():
    """Structlog events emitted during the test, as dicts."""
    with capture_logs() as events:
        yield events
