"""Exception types for tool discovery, validation, and dispatch."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path


class ToolError(Exception):
    """Base class for all tool subsystem errors."""


class DiscoveryErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    NOT_EXECUTABLE = "not_executable"
    DESCRIBE_FAILED = "describe_failed"
    TIMEOUT = "timeout"
    EMPTY_OUTPUT = "empty_output"
    INVALID_JSON = "invalid_json"
    MISSING_FIELDS = "missing_fields"


class DiscoveryError(ToolError):
    """A single candidate could not be described. Never fatal to a catalog."""

    def __init__(self, kind: DiscoveryErrorKind, path: str | Path, detail: str = ""):
        self.kind = kind
        self.path = Path(path)
        self.detail = detail
        message = f"{kind.value}: {self.path}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)

    @property
    def tool_name(self) -> str:
        return self.path.name


class ValidationErrorKind(StrEnum):
    UNKNOWN_TOOL = "unknown_tool"
    MISSING_REQUIRED = "missing_required"
    INVALID_ARGUMENTS = "invalid_arguments"


class ToolValidationError(ToolError):
    """A tool call was rejected before anything was executed."""

    def __init__(
        self,
        kind: ValidationErrorKind,
        tool_name: str,
        missing: list[str] | None = None,
        detail: str = "",
    ):
        self.kind = kind
        self.tool_name = tool_name
        self.missing = list(missing or [])
        self.detail = detail
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        match self.kind:
            case ValidationErrorKind.UNKNOWN_TOOL:
                return f"tool '{self.tool_name}' not found in catalog"
            case ValidationErrorKind.MISSING_REQUIRED:
                return f"missing required fields for '{self.tool_name}': {', '.join(self.missing)}"
            case _:
                return f"invalid arguments for '{self.tool_name}': {self.detail}"


class DispatchErrorKind(StrEnum):
    TOOL_NOT_FOUND = "tool_not_found"
    EXECUTION_FAILED = "execution_failed"
    TIMEOUT = "timeout"


class DispatchError(ToolError):
    """A tool could not be resolved, or it ran and failed."""

    def __init__(
        self,
        kind: DispatchErrorKind,
        tool_name: str,
        stderr: str = "",
        exit_status: int | None = None,
        timeout: float | None = None,
    ):
        self.kind = kind
        self.tool_name = tool_name
        self.stderr = stderr
        self.exit_status = exit_status
        self.timeout = timeout
        super().__init__(self.user_message)

    @property
    def user_message(self) -> str:
        """Short text suitable for showing to a user or feeding back to a model."""
        match self.kind:
            case DispatchErrorKind.TOOL_NOT_FOUND:
                return f"tool '{self.tool_name}' not found"
            case DispatchErrorKind.TIMEOUT:
                return f"{self.tool_name} timed out after {self.timeout} seconds"
            case _:
                if self.stderr.strip():
                    return f"{self.tool_name} failed: {self.stderr.strip()}"
                return f"{self.tool_name} failed with exit code {self.exit_status}"
