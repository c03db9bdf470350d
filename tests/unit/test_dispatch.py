import json
import os
import time

import pytest

from agentshell.tools.catalog import ToolCatalog
from agentshell.tools.descriptor import ToolDescriptor
from agentshell.tools.dispatch import (
    Dispatcher,
    dispatch_tool,
    parse_arguments,
    resolve_tool,
    validate_tool_call,
)
from agentshell.tools.errors import (
    DispatchError,
    DispatchErrorKind,
    ToolValidationError,
    ValidationErrorKind,
)

from conftest import SHELL_SLEEP, WEATHER_DESCRIPTOR, describing_tool, make_shell_tool, make_tool

FAILING_RUN = """\
print("partial output")
print("upstream service unavailable", file=sys.stderr)
sys.exit(4)
"""

SILENT_FAILURE_RUN = """\
sys.exit(5)
"""

SLOW_RUN = """\
import time
time.sleep(30)
"""

ECHO_RUN = """\
print(json.dumps(args, sort_keys=True))
"""


@pytest.fixture
def catalog() -> ToolCatalog:
    return ToolCatalog([ToolDescriptor.model_validate(WEATHER_DESCRIPTOR)])


# -- validate -----------------------------------------------------------------


def test_validate_accepts_required_fields(catalog):
    descriptor = validate_tool_call(catalog, "get_weather", {"location": "NYC"})
    assert descriptor.name == "get_weather"


def test_validate_tolerates_extra_fields(catalog):
    validate_tool_call(catalog, "get_weather", {"location": "NYC", "unit": "celsius", "mood": "happy"})


def test_validate_accepts_json_string(catalog):
    validate_tool_call(catalog, "get_weather", '{"location": "NYC"}')


def test_validate_unknown_tool(catalog):
    with pytest.raises(ToolValidationError) as exc_info:
        validate_tool_call(catalog, "ghost_tool", {})
    assert exc_info.value.kind is ValidationErrorKind.UNKNOWN_TOOL
    assert str(exc_info.value) == "tool 'ghost_tool' not found in catalog"


def test_validate_missing_required(catalog):
    with pytest.raises(ToolValidationError) as exc_info:
        validate_tool_call(catalog, "get_weather", {"unit": "celsius"})
    assert exc_info.value.kind is ValidationErrorKind.MISSING_REQUIRED
    assert exc_info.value.missing == ["location"]


def test_validate_reports_every_missing_field():
    catalog = ToolCatalog(
        [
            ToolDescriptor.model_validate(
                {
                    "name": "github_issue",
                    "description": "d",
                    "parameters": {"type": "object", "required": ["repo", "title"]},
                }
            )
        ]
    )
    with pytest.raises(ToolValidationError) as exc_info:
        validate_tool_call(catalog, "github_issue", {})
    assert exc_info.value.missing == ["repo", "title"]
    assert "repo, title" in str(exc_info.value)


@pytest.mark.parametrize("arguments", ["not json", "[1, 2]", "42"])
def test_parse_arguments_rejects_non_objects(arguments):
    with pytest.raises(ToolValidationError) as exc_info:
        parse_arguments("get_weather", arguments)
    assert exc_info.value.kind is ValidationErrorKind.INVALID_ARGUMENTS


# -- resolve ------------------------------------------------------------------


def test_resolve_prefers_exact_name(tools_dir):
    make_tool(tools_dir, "hello", "print('exact')\n")
    make_tool(tools_dir, "hello.py", "print('suffixed')\n")
    assert resolve_tool(tools_dir, "hello").name == "hello"


def test_resolve_single_extension_only(tools_dir):
    make_tool(tools_dir, "hello.tar.gz", "print('x')\n")
    with pytest.raises(DispatchError) as exc_info:
        resolve_tool(tools_dir, "hello")
    assert exc_info.value.kind is DispatchErrorKind.TOOL_NOT_FOUND


def test_resolve_skips_non_executable_match(tools_dir):
    make_tool(tools_dir, "hello.sh", "print('x')\n", executable=False)
    make_tool(tools_dir, "hello.py", "print('x')\n")
    assert resolve_tool(tools_dir, "hello").name == "hello.py"


@pytest.mark.parametrize("name", ["../hello", "sub/hello", ".hidden", "", "/bin/sh"])
def test_resolve_rejects_paths(tools_dir, name):
    make_tool(tools_dir, "hello.py", "print('x')\n")
    with pytest.raises(DispatchError) as exc_info:
        resolve_tool(tools_dir, name)
    assert exc_info.value.kind is DispatchErrorKind.TOOL_NOT_FOUND


def test_resolve_glob_characters_are_literal(tools_dir):
    make_tool(tools_dir, "hello.py", "print('x')\n")
    with pytest.raises(DispatchError):
        resolve_tool(tools_dir, "hel*")


# -- dispatch -----------------------------------------------------------------


async def test_dispatch_returns_stdout(tools_dir, weather_tool, stub_env):
    output = await dispatch_tool(tools_dir, "get_weather", {"location": "NYC"}, env=stub_env)
    assert json.loads(output) == {
        "location": "NYC",
        "temperature": "15",
        "unit": "celsius",
        "condition": "Sunny",
    }


async def test_dispatch_passes_arguments_as_single_json_payload(tools_dir):
    make_tool(tools_dir, "echo.py", describing_tool(WEATHER_DESCRIPTOR, ECHO_RUN))
    output = await dispatch_tool(tools_dir, "echo", {"b": [1, 2], "a": "x y"})
    assert json.loads(output) == {"a": "x y", "b": [1, 2]}


async def test_dispatch_does_not_consult_catalog(tools_dir):
    # Exploratory path: no catalog, no required-field check.
    make_tool(tools_dir, "echo.py", describing_tool(WEATHER_DESCRIPTOR, ECHO_RUN))
    assert await dispatch_tool(tools_dir, "echo", {}) == "{}"


async def test_dispatch_failure_carries_stderr(tools_dir):
    make_tool(tools_dir, "flaky.py", describing_tool(WEATHER_DESCRIPTOR, FAILING_RUN))
    with pytest.raises(DispatchError) as exc_info:
        await dispatch_tool(tools_dir, "flaky", {})

    error = exc_info.value
    assert error.kind is DispatchErrorKind.EXECUTION_FAILED
    assert error.exit_status == 4
    assert "upstream service unavailable" in error.stderr
    assert error.user_message == "flaky failed: upstream service unavailable"


async def test_dispatch_failure_without_stderr_reports_status(tools_dir):
    make_tool(tools_dir, "quiet.py", describing_tool(WEATHER_DESCRIPTOR, SILENT_FAILURE_RUN))
    with pytest.raises(DispatchError) as exc_info:
        await dispatch_tool(tools_dir, "quiet", {})
    assert exc_info.value.user_message == "quiet failed with exit code 5"


async def test_dispatch_timeout(tools_dir):
    make_tool(tools_dir, "slow.py", describing_tool(WEATHER_DESCRIPTOR, SLOW_RUN))
    with pytest.raises(DispatchError) as exc_info:
        await dispatch_tool(tools_dir, "slow", {}, timeout=0.5)
    assert exc_info.value.kind is DispatchErrorKind.TIMEOUT
    assert "timed out" in exc_info.value.user_message


async def test_dispatch_unknown_tool_spawns_nothing(tools_dir, monkeypatch):
    import asyncio

    async def _fail(*args, **kwargs):
        raise AssertionError("no process may be spawned")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", _fail)
    with pytest.raises(DispatchError) as exc_info:
        await dispatch_tool(tools_dir, "ghost_tool", {})
    assert exc_info.value.kind is DispatchErrorKind.TOOL_NOT_FOUND


# -- event log ----------------------------------------------------------------


async def test_dispatch_logs_request_then_result(tools_dir, weather_tool, stub_env, event_log):
    await dispatch_tool(tools_dir, "get_weather", {"location": "NYC"}, env=stub_env, event_log=event_log)

    events = event_log.read_events()
    assert [e["event"] for e in events] == ["tool_dispatch", "tool_result"]
    request = json.loads(events[0]["message"])
    assert request["tool"] == "get_weather"
    assert json.loads(request["args"]) == {"location": "NYC"}
    assert "NYC" in json.loads(events[1]["message"])["result"]


async def test_dispatch_logs_request_then_error(tools_dir, event_log):
    make_tool(tools_dir, "flaky.py", describing_tool(WEATHER_DESCRIPTOR, FAILING_RUN))
    with pytest.raises(DispatchError):
        await dispatch_tool(tools_dir, "flaky", {}, event_log=event_log)

    events = event_log.read_events()
    assert [e["event"] for e in events] == ["tool_dispatch", "tool_error"]
    assert "upstream service unavailable" in json.loads(events[1]["message"])["error"]


async def test_dispatch_survives_unwritable_log(tools_dir, weather_tool, stub_env, tmp_path):
    from agentshell.storage.event_log import EventLog

    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    log = EventLog(blocker / "agent.jsonl")

    output = await dispatch_tool(tools_dir, "get_weather", {"location": "Oslo"}, env=stub_env, event_log=log)
    assert "Oslo" in output


# -- Dispatcher ---------------------------------------------------------------


async def test_dispatcher_validates_before_running(tools_dir, weather_tool, catalog, stub_env, monkeypatch):
    dispatcher = Dispatcher(tools_dir, catalog=catalog, env=stub_env)

    with pytest.raises(ToolValidationError):
        await dispatcher.call("get_weather", {})
    assert json.loads(await dispatcher.call("get_weather", {"location": "Rome"}))["location"] == "Rome"


async def test_dispatcher_exploratory_mode(tools_dir, weather_tool, stub_env):
    dispatcher = Dispatcher(tools_dir, env=stub_env, enforce_validation=False)
    # Empty catalog, but validation is off: the tool runs and fails on its own terms.
    with pytest.raises(DispatchError) as exc_info:
        await dispatcher.call("get_weather", {})
    assert exc_info.value.kind is DispatchErrorKind.EXECUTION_FAILED


@pytest.mark.skipif(os.name != "posix", reason="needs /bin/sh")
async def test_dispatch_timeout_kills_shell_children(tools_dir):
    make_shell_tool(tools_dir, "slow.sh", SHELL_SLEEP)

    started = time.monotonic()
    with pytest.raises(DispatchError) as exc_info:
        await dispatch_tool(tools_dir, "slow", {}, timeout=1.0)

    assert time.monotonic() - started < 5
    assert exc_info.value.kind is DispatchErrorKind.TIMEOUT


def test_deeply_nested_argument_string_is_rejected():
    with pytest.raises(ToolValidationError) as exc_info:
        parse_arguments("get_weather", "[" * 200000)
    assert exc_info.value.kind is ValidationErrorKind.INVALID_ARGUMENTS
