"""Tool variant backed by an external executable."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Mapping

from agentshell.log import get_logger
from agentshell.process import NEW_SESSION, kill_process_group
from agentshell.tools.base import Tool
from agentshell.tools.descriptor import ToolDescriptor, ToolInvocationResult
from agentshell.tools.errors import (
    DiscoveryError,
    DiscoveryErrorKind,
    DispatchError,
    DispatchErrorKind,
)

logger = get_logger(__name__)

DESCRIBE_FLAG = "--describe"


class ExecutableTool(Tool):
    """Spawns ``path --describe`` to describe and ``path '<json>'`` to execute."""

    def __init__(
        self,
        path: str | Path,
        describe_timeout: float = 5.0,
        call_timeout: float = 30.0,
        env: Mapping[str, str] | None = None,
    ):
        self.path = Path(path)
        self._describe_timeout = describe_timeout
        self._call_timeout = call_timeout
        self._env = dict(env or {})

    @property
    def name(self) -> str:
        return self.path.stem

    def _check_runnable(self) -> None:
        if not self.path.is_file():
            raise DiscoveryError(DiscoveryErrorKind.NOT_FOUND, self.path)
        if not os.access(self.path, os.X_OK):
            raise DiscoveryError(DiscoveryErrorKind.NOT_EXECUTABLE, self.path)

    async def _run(self, arg: str, timeout: float) -> ToolInvocationResult:
        """Run the executable with a single argument, killing it on timeout."""
        env = {**os.environ, **self._env}
        process = await asyncio.create_subprocess_exec(
            str(self.path),
            arg,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
            start_new_session=NEW_SESSION,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await kill_process_group(process)
            raise
        return ToolInvocationResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_status=process.returncode if process.returncode is not None else -1,
        )

    async def describe(self) -> ToolDescriptor:
        self._check_runnable()
        try:
            result = await self._run(DESCRIBE_FLAG, self._describe_timeout)
        except asyncio.TimeoutError:
            raise DiscoveryError(
                DiscoveryErrorKind.TIMEOUT,
                self.path,
                f"no answer within {self._describe_timeout}s",
            ) from None
        except OSError as e:
            raise DiscoveryError(DiscoveryErrorKind.DESCRIBE_FAILED, self.path, str(e)) from e

        if not result.ok:
            raise DiscoveryError(
                DiscoveryErrorKind.DESCRIBE_FAILED, self.path, f"exit {result.exit_status}"
            )

        output = result.stdout.strip()
        if not output:
            raise DiscoveryError(DiscoveryErrorKind.EMPTY_OUTPUT, self.path)

        try:
            data = json.loads(output)
        except (json.JSONDecodeError, RecursionError) as e:
            raise DiscoveryError(DiscoveryErrorKind.INVALID_JSON, self.path, str(e)) from e
        if not isinstance(data, dict):
            raise DiscoveryError(
                DiscoveryErrorKind.INVALID_JSON, self.path, "descriptor is not a JSON object"
            )

        missing = [key for key in ("name", "description", "parameters") if data.get(key) is None]
        if missing:
            raise DiscoveryError(
                DiscoveryErrorKind.MISSING_FIELDS, self.path, ", ".join(missing)
            )

        try:
            return ToolDescriptor.model_validate(data)
        except ValueError as e:
            raise DiscoveryError(
                DiscoveryErrorKind.INVALID_JSON,
                self.path,
                f"descriptor does not match the schema: {e}",
            ) from e

    async def execute(self, arguments: Mapping[str, Any]) -> ToolInvocationResult:
        payload = json.dumps(dict(arguments), ensure_ascii=False)
        try:
            result = await self._run(payload, self._call_timeout)
        except asyncio.TimeoutError:
            logger.warning("tool_timeout", tool=self.name, timeout=self._call_timeout)
            raise DispatchError(
                DispatchErrorKind.TIMEOUT, self.name, timeout=self._call_timeout
            ) from None
        except OSError as e:
            raise DispatchError(
                DispatchErrorKind.EXECUTION_FAILED, self.name, stderr=str(e), exit_status=126
            ) from e

        return result
