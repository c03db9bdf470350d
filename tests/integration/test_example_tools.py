"""The tools shipped in ``tools/`` describe themselves and honour stub mode."""

import asyncio
import json
import os

import pytest

from agentshell.tools.discovery import discover_tools
from agentshell.tools.dispatch import Dispatcher, dispatch_tool
from agentshell.tools.errors import DispatchError, DispatchErrorKind, ToolValidationError

from conftest import EXAMPLE_TOOLS

pytestmark = pytest.mark.skipif(
    not all(os.access(p, os.X_OK) for p in EXAMPLE_TOOLS.glob("*.py")),
    reason="shipped tools are not executable in this checkout",
)

STUB = {"AGENTSHELL_STUB": "1"}


async def test_all_shipped_tools_are_discovered():
    catalog = await discover_tools(EXAMPLE_TOOLS)
    assert sorted(catalog.names()) == ["disk_usage", "get_weather", "github_issue"]
    assert catalog.warnings == ()
    assert catalog.get("github_issue").required == ["repo", "title"]
    assert catalog.get("disk_usage").required == []


async def test_weather_stub():
    output = await dispatch_tool(EXAMPLE_TOOLS, "get_weather", {"location": "NYC"}, env=STUB)
    assert json.loads(output) == {
        "location": "NYC",
        "temperature": "15",
        "unit": "celsius",
        "condition": "Sunny",
    }


async def test_disk_usage_stub(tmp_path):
    output = await dispatch_tool(EXAMPLE_TOOLS, "disk_usage", {"path": str(tmp_path)}, env=STUB)
    assert output == f"1.2G\t{tmp_path}"


async def test_github_issue_stub():
    output = await dispatch_tool(
        EXAMPLE_TOOLS, "github_issue", {"repo": "octo/demo", "title": "Bug"}, env=STUB
    )
    assert json.loads(output)["message"] == "Would create issue in octo/demo: Bug"


async def test_tool_reports_bad_input_on_stderr():
    with pytest.raises(DispatchError) as exc_info:
        await dispatch_tool(EXAMPLE_TOOLS, "get_weather", {}, env=STUB)
    assert exc_info.value.kind is DispatchErrorKind.EXECUTION_FAILED
    assert "'location' is required" in exc_info.value.stderr


async def test_dispatcher_rejects_before_running():
    catalog = await discover_tools(EXAMPLE_TOOLS)
    dispatcher = Dispatcher(EXAMPLE_TOOLS, catalog=catalog, env=STUB)
    with pytest.raises(ToolValidationError):
        await dispatcher.call("github_issue", {"repo": "octo/demo"})


@pytest.mark.parametrize("tool", ["get_weather.py", "disk_usage.py", "github_issue.py"])
@pytest.mark.parametrize("payload", ["[]", '"x"', "42"])
async def test_non_object_arguments_fail_cleanly(tool, payload):
    process = await asyncio.create_subprocess_exec(
        str(EXAMPLE_TOOLS / tool),
        payload,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env={**os.environ, **STUB},
    )
    stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=30)

    assert process.returncode == 1
    assert stdout == b""
    assert stderr.decode().strip() == f"{tool[:-3]}: JSON arguments must be an object"
    assert "Traceback" not in stderr.decode()
