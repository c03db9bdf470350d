"""Text-based tool-use loop.

The model is told about the catalog in its system prompt and asks for tools
by emitting ``<tool_call>{"tool": ..., "input": {...}}</tool_call>`` blocks.
Each block is validated and dispatched; the results go back to the model as
the next message until it answers without tool calls.
"""

from __future__ import annotations

import json
import re
from dataclasses import replace
from typing import Any

from agentshell.ai.client import CallOptions, LLMClient
from agentshell.log import get_logger
from agentshell.session.models import Role, SessionEntry
from agentshell.tools.catalog import ToolCatalog
from agentshell.tools.dispatch import Dispatcher
from agentshell.tools.errors import DispatchError, ToolValidationError

logger = get_logger(__name__)

DEFAULT_MAX_ROUNDS = 5
MAX_RESULT_CHARS = 20_000
LIMIT_REACHED_REPLY = "[Tool execution limit reached]"

TOOL_CALL_PATTERN = re.compile(
    r"<tool_call>\s*(\{.*?\})\s*</tool_call>",
    re.DOTALL,
)


def build_tool_prompt(catalog: ToolCatalog) -> str:
    """System prompt section describing the catalog and the call protocol."""
    if not catalog:
        return ""

    lines = [
        "\n\n--- Available Tools ---",
        "You have access to the following tools. To use a tool, output EXACTLY this format:",
        "<tool_call>",
        '{"tool": "tool_name", "input": {"param1": "value1"}}',
        "</tool_call>",
        "",
        "You can use multiple tool calls in one response. Wait for tool results before continuing.",
        "When you have the final answer, respond with plain text WITHOUT any <tool_call> tags.",
        "",
        "Tools:",
        catalog.describe_for_prompt(),
    ]
    return "\n".join(lines)


def parse_tool_calls(text: str) -> list[str]:
    """Return the raw JSON body of every ``<tool_call>`` block, in order."""
    return TOOL_CALL_PATTERN.findall(text)


def _truncate(text: str, limit: int = MAX_RESULT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... (truncated, {len(text) - limit} more characters)"


async def run_tool_call(dispatcher: Dispatcher, call_json: str) -> str:
    """Execute one ``<tool_call>`` body and render the outcome as text.

    Every failure becomes a short result for the model, never an exception.
    """
    try:
        call_data: Any = json.loads(call_json)
    except (json.JSONDecodeError, RecursionError) as e:
        return f"[Tool Error]\ninvalid tool call: {e}"
    if not isinstance(call_data, dict):
        return "[Tool Error]\ninvalid tool call: expected a JSON object"

    tool_name = str(call_data.get("tool", ""))
    tool_input = call_data.get("input", {})
    if tool_input is None:
        tool_input = {}

    try:
        logger.info("tool_execute", tool=tool_name)
        result = await dispatcher.call(tool_name, tool_input)
    except ToolValidationError as e:
        return f"[Tool Error: {tool_name}]\n{e}"
    except DispatchError as e:
        return f"[Tool Error: {tool_name}]\n{e.user_message}"
    return f"[Tool Result: {tool_name}]\n{_truncate(result)}"


async def run_tool_loop(
    llm: LLMClient,
    dispatcher: Dispatcher,
    message: str,
    options: CallOptions,
    max_rounds: int = DEFAULT_MAX_ROUNDS,
) -> str:
    """Call the model, running requested tools between rounds.

    ``options.system`` should already include :func:`build_tool_prompt`.
    Returns the first reply without tool calls, or
    :data:`LIMIT_REACHED_REPLY` once *max_rounds* model calls have all asked
    for tools.
    """
    history = list(options.history)
    round_options = options
    rounds = 0
    while rounds < max(max_rounds, 1):
        response_text = await llm.call(message, round_options)
        tool_calls = parse_tool_calls(response_text)
        if not tool_calls:
            return response_text.strip()

        results = [await run_tool_call(dispatcher, call_json) for call_json in tool_calls]
        rounds += 1

        history.extend(
            [
                SessionEntry(role=Role.USER, content=message),
                SessionEntry(role=Role.ASSISTANT, content=response_text),
            ]
        )
        message = "\n\n".join(results)
        # Later rounds continue the same model conversation.
        round_options = replace(options, continue_conversation=True, history=list(history))

    logger.warning("tool_round_limit", rounds=rounds)
    return LIMIT_REACHED_REPLY
