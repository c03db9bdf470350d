"""Tool call validation and dispatch.

Validation checks a call against the catalog: the tool must be known and
every required field present. Extra fields are tolerated. Dispatch resolves
a tool by name inside the tools directory and runs it; no code path ever
executes a caller-supplied path.

The two phases are separate functions so a caller can validate strictly or
invoke exploratively. :class:`Dispatcher` composes them and validates by
default.
"""

from __future__ import annotations

import glob
import json
import os
from pathlib import Path
from typing import Any, Mapping

from agentshell.log import get_logger
from agentshell.storage.event_log import EventLog
from agentshell.tools.catalog import ToolCatalog
from agentshell.tools.descriptor import ToolDescriptor
from agentshell.tools.errors import (
    DispatchError,
    DispatchErrorKind,
    ToolValidationError,
    ValidationErrorKind,
)
from agentshell.tools.executable import ExecutableTool

logger = get_logger(__name__)

DEFAULT_CALL_TIMEOUT = 30.0

Arguments = Mapping[str, Any] | str


def parse_arguments(tool_name: str, arguments: Arguments) -> dict[str, Any]:
    """Accept a mapping or a JSON object string."""
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except (json.JSONDecodeError, RecursionError) as e:
            raise ToolValidationError(
                ValidationErrorKind.INVALID_ARGUMENTS, tool_name, detail=str(e)
            ) from e
    if not isinstance(arguments, Mapping):
        raise ToolValidationError(
            ValidationErrorKind.INVALID_ARGUMENTS,
            tool_name,
            detail="arguments must be a JSON object",
        )
    return dict(arguments)


def validate_tool_call(
    catalog: ToolCatalog, tool_name: str, arguments: Arguments
) -> ToolDescriptor:
    """Check a call against the catalog and return the matching descriptor.

    Only key presence is checked; argument values are not type-checked.
    """
    args = parse_arguments(tool_name, arguments)
    descriptor = catalog.get(tool_name)
    if descriptor is None:
        raise ToolValidationError(ValidationErrorKind.UNKNOWN_TOOL, tool_name)

    missing = [field for field in descriptor.required if field not in args]
    if missing:
        raise ToolValidationError(ValidationErrorKind.MISSING_REQUIRED, tool_name, missing=missing)
    return descriptor


def _is_plain_name(tool_name: str) -> bool:
    if not tool_name or tool_name.startswith("."):
        return False
    return not any(sep in tool_name for sep in ("/", "\\", os.sep, "\0"))


def resolve_tool(tools_dir: str | Path, tool_name: str) -> Path:
    """Find the executable for *tool_name*: ``<name>`` or ``<name>.<ext>``.

    Raises :class:`DispatchError` (``TOOL_NOT_FOUND``) without spawning
    anything when no executable matches.
    """
    directory = Path(tools_dir)
    if not _is_plain_name(tool_name) or not directory.is_dir():
        raise DispatchError(DispatchErrorKind.TOOL_NOT_FOUND, tool_name)

    candidates = [directory / tool_name]
    prefix = f"{tool_name}."
    for entry in sorted(directory.glob(f"{glob.escape(tool_name)}.*"), key=lambda p: p.name):
        extension = entry.name[len(prefix):]
        if extension and "." not in extension:
            candidates.append(entry)

    for candidate in candidates:
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return candidate
    raise DispatchError(DispatchErrorKind.TOOL_NOT_FOUND, tool_name)


async def dispatch_tool(
    tools_dir: str | Path,
    tool_name: str,
    arguments: Arguments,
    timeout: float = DEFAULT_CALL_TIMEOUT,
    env: Mapping[str, str] | None = None,
    event_log: EventLog | None = None,
) -> str:
    """Run a tool and return its stdout (trailing newlines removed).

    Does not consult the catalog; call :func:`validate_tool_call` first when
    catalog enforcement is wanted. Raises :class:`DispatchError` for an
    unknown tool, a non-zero exit, or a timeout.
    """
    args = parse_arguments(tool_name, arguments)
    path = resolve_tool(tools_dir, tool_name)
    args_json = json.dumps(args, ensure_ascii=False)

    if event_log is not None:
        await event_log.try_log_event(
            "tool_dispatch", json.dumps({"tool": tool_name, "args": args_json}, ensure_ascii=False)
        )
    logger.info("tool_dispatch", tool=tool_name, path=str(path))

    tool = ExecutableTool(path, call_timeout=timeout, env=env)
    try:
        result = await tool.execute(args)
        if not result.ok:
            raise DispatchError(
                DispatchErrorKind.EXECUTION_FAILED,
                tool_name,
                stderr=result.stderr,
                exit_status=result.exit_status,
            )
    except DispatchError as e:
        logger.warning("tool_dispatch_failed", tool=tool_name, kind=e.kind.value, error=e.user_message)
        if event_log is not None:
            error_text = e.stderr if e.kind is DispatchErrorKind.EXECUTION_FAILED else e.user_message
            await event_log.try_log_event(
                "tool_error",
                json.dumps({"tool": tool_name, "error": error_text}, ensure_ascii=False),
            )
        raise

    output = result.stdout.rstrip("\n")
    if event_log is not None:
        await event_log.try_log_event(
            "tool_result", json.dumps({"tool": tool_name, "result": output}, ensure_ascii=False)
        )
    return output


class Dispatcher:
    """Validate-then-dispatch against one catalog and one tools directory."""

    def __init__(
        self,
        tools_dir: str | Path,
        catalog: ToolCatalog | None = None,
        timeout: float = DEFAULT_CALL_TIMEOUT,
        env: Mapping[str, str] | None = None,
        event_log: EventLog | None = None,
        enforce_validation: bool = True,
    ):
        self.tools_dir = Path(tools_dir)
        self.catalog = catalog or ToolCatalog()
        self._timeout = timeout
        self._env = dict(env or {})
        self._event_log = event_log
        self._enforce_validation = enforce_validation

    def validate(self, tool_name: str, arguments: Arguments) -> ToolDescriptor:
        return validate_tool_call(self.catalog, tool_name, arguments)

    async def call(self, tool_name: str, arguments: Arguments) -> str:
        """Validate (when enforced) and dispatch.

        Raises :class:`ToolValidationError` before anything runs, or
        :class:`DispatchError` if the tool cannot be run or fails.
        """
        if self._enforce_validation:
            self.validate(tool_name, arguments)
        return await dispatch_tool(
            self.tools_dir,
            tool_name,
            arguments,
            timeout=self._timeout,
            env=self._env,
            event_log=self._event_log,
        )
