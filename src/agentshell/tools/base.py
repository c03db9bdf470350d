"""Abstract tool interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from agentshell.tools.descriptor import ToolDescriptor, ToolInvocationResult


class Tool(ABC):
    """A capability the model can call.

    Implementations either wrap an external executable (see
    :class:`~agentshell.tools.executable.ExecutableTool`) or run in-process.
    Dispatch only relies on this interface.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Name used to resolve and dispatch the tool."""
        ...

    @abstractmethod
    async def describe(self) -> ToolDescriptor:
        """Return the tool's descriptor. Must not have side effects."""
        ...

    @abstractmethod
    async def execute(self, arguments: Mapping[str, Any]) -> ToolInvocationResult:
        """Run the tool once with the given call arguments."""
        ...
