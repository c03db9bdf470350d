"""LLM client abstraction: text in, text out.

Backends:

* ``llm`` - Simon Willison's ``llm`` CLI via subprocess.
* ``anthropic`` - the Anthropic Messages API via the official SDK.
* ``stub`` - deterministic canned replies for offline testing.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from agentshell.config import ConfigError, LLMConfig
from agentshell.log import get_logger
from agentshell.process import NEW_SESSION, kill_process_group
from agentshell.session.models import Role

if TYPE_CHECKING:
    from agentshell.session.models import SessionEntry

logger = get_logger(__name__)


class LLMError(Exception):
    """The backend could not produce a response."""


@dataclass
class CallOptions:
    system: str = ""
    model: str = ""
    conversation_id: str = ""
    continue_conversation: bool = False
    # Prior turns, for stateless backends that replay history themselves.
    history: list[SessionEntry] = field(default_factory=list)


class LLMClient(ABC):
    """Abstract base class for LLM backends."""

    @abstractmethod
    async def call(self, message: str, options: CallOptions | None = None) -> str:
        """Send *message* and return the response text. Raises :class:`LLMError`."""
        ...

    @property
    @abstractmethod
    def backend_name(self) -> str:
        ...


class StubLLMClient(LLMClient):
    """Returns ``stub response N`` with N counting up from 1. No network."""

    def __init__(self) -> None:
        self._count = 0
        self.calls: list[tuple[str, CallOptions]] = []

    @property
    def backend_name(self) -> str:
        return "stub"

    def reset(self) -> None:
        self._count = 0
        self.calls.clear()

    async def call(self, message: str, options: CallOptions | None = None) -> str:
        if not message:
            raise LLMError("message required")
        self._count += 1
        self.calls.append((message, options or CallOptions()))
        return f"stub response {self._count}"


class LlmCliClient(LLMClient):
    """``llm`` CLI backend using subprocess."""

    def __init__(self, config: LLMConfig, default_model: str = ""):
        self._cli_path = shutil.which(config.cli_path) or config.cli_path
        self._timeout = config.timeout
        self._default_model = default_model

    @property
    def backend_name(self) -> str:
        return "llm"

    def build_command(self, options: CallOptions) -> list[str]:
        cmd = [self._cli_path]
        if options.system:
            cmd.extend(["-s", options.system])
        model = options.model or self._default_model
        if model:
            cmd.extend(["-m", model])
        if options.continue_conversation:
            cmd.append("-c")
        if options.conversation_id:
            cmd.extend(["--cid", options.conversation_id])
        return cmd

    async def call(self, message: str, options: CallOptions | None = None) -> str:
        if not message:
            raise LLMError("message required")
        cmd = self.build_command(options or CallOptions())
        logger.debug("llm_cli_request", cli_path=self._cli_path, prompt_length=len(message))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=dict(os.environ),
                start_new_session=NEW_SESSION,
            )
        except FileNotFoundError:
            logger.error("llm_cli_not_found", cli_path=self._cli_path)
            raise LLMError(
                f"llm CLI not found at '{self._cli_path}' (install: pip install llm)"
            ) from None

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(input=message.encode("utf-8")),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            await kill_process_group(process)
            logger.error("llm_cli_timeout", timeout=self._timeout)
            raise LLMError(f"llm timed out after {self._timeout} seconds") from None

        stdout_text = stdout.decode("utf-8", errors="replace").strip()
        stderr_text = stderr.decode("utf-8", errors="replace").strip()

        if process.returncode != 0:
            logger.error("llm_cli_error", returncode=process.returncode, stderr=stderr_text)
            raise LLMError(
                f"llm exited with status {process.returncode}: {stderr_text or '(no output)'}"
            )
        return stdout_text


class AnthropicClient(LLMClient):
    """Anthropic API backend using the official SDK.

    The API is stateless, so multi-turn continuity comes from
    ``options.history`` rather than a server-side conversation id.
    """

    def __init__(self, config: LLMConfig, default_model: str = ""):
        import anthropic

        api_key = config.api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise ConfigError("llm.api_key (or ANTHROPIC_API_KEY) is required for the 'anthropic' backend")
        self._client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=config.base_url,
            timeout=config.timeout,
        )
        self._max_tokens = config.max_tokens
        self._default_model = default_model

    @property
    def backend_name(self) -> str:
        return "anthropic"

    @staticmethod
    def build_messages(message: str, history: list[SessionEntry]) -> list[dict[str, Any]]:
        """Replay history as alternating turns, merging consecutive same-role entries."""
        messages: list[dict[str, Any]] = []
        for entry in [*history, None]:
            role, content = (entry.role.value, entry.content) if entry else (Role.USER.value, message)
            if messages and messages[-1]["role"] == role:
                messages[-1]["content"] += "\n\n" + content
            else:
                messages.append({"role": role, "content": content})
        while messages and messages[0]["role"] != Role.USER.value:
            messages.pop(0)
        return messages

    async def call(self, message: str, options: CallOptions | None = None) -> str:
        import anthropic

        if not message:
            raise LLMError("message required")
        options = options or CallOptions()
        history = options.history if options.continue_conversation or options.conversation_id else []
        kwargs: dict[str, Any] = {
            "model": options.model or self._default_model,
            "max_tokens": self._max_tokens,
            "messages": self.build_messages(message, history),
        }
        if options.system:
            kwargs["system"] = options.system

        logger.debug("api_request", model=kwargs["model"], message_count=len(kwargs["messages"]))
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error("api_error", error=str(e))
            raise LLMError(f"Anthropic API error: {e}") from e

        logger.debug(
            "api_response",
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )
        return "\n".join(b.text for b in response.content if b.type == "text")


def create_llm_client(config: LLMConfig, default_model: str = "") -> LLMClient:
    """Create an LLM client based on the configured backend."""
    match config.backend:
        case "stub":
            return StubLLMClient()
        case "llm":
            return LlmCliClient(config, default_model)
        case "anthropic":
            return AnthropicClient(config, default_model)
        case _:
            raise ConfigError(f"Unknown LLM backend: {config.backend}")
