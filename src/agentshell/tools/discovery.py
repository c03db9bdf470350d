"""Tool catalog discovery.

Walks a directory, asks each executable to ``--describe`` itself and
assembles a :class:`ToolCatalog`. The catalog is derived, not maintained:
tools own their descriptions, and one broken tool never spoils the pass.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Mapping

from agentshell.log import get_logger
from agentshell.tools.catalog import ToolCatalog
from agentshell.tools.descriptor import ToolDescriptor
from agentshell.tools.errors import DiscoveryError, DiscoveryErrorKind
from agentshell.tools.executable import ExecutableTool

logger = get_logger(__name__)

DEFAULT_DESCRIBE_TIMEOUT = 5.0


async def discover_tool(
    tool_path: str | Path,
    timeout: float = DEFAULT_DESCRIBE_TIMEOUT,
    env: Mapping[str, str] | None = None,
) -> ToolDescriptor:
    """Describe a single tool.

    Raises :class:`DiscoveryError` carrying the kind of failure and the
    offending path.
    """
    tool = ExecutableTool(tool_path, describe_timeout=timeout, env=env)
    return await tool.describe()


def list_candidates(tools_dir: Path) -> list[Path]:
    """Direct entries that are regular, executable files, in name order."""
    return [
        entry
        for entry in sorted(tools_dir.iterdir(), key=lambda p: p.name)
        if entry.is_file() and os.access(entry, os.X_OK)
    ]


async def discover_tools(
    tools_dir: str | Path,
    timeout: float = DEFAULT_DESCRIBE_TIMEOUT,
    env: Mapping[str, str] | None = None,
) -> ToolCatalog:
    """Build a catalog from every executable directly inside *tools_dir*.

    Describe calls run concurrently; the catalog keeps directory order.
    Failing tools are logged and excluded, and an empty catalog is a valid
    result. Only a missing directory is an error.
    """
    directory = Path(tools_dir)
    if not directory.is_dir():
        raise FileNotFoundError(f"Tools directory not found: {directory}")

    candidates = list_candidates(directory)
    results = await asyncio.gather(
        *(discover_tool(path, timeout=timeout, env=env) for path in candidates),
        return_exceptions=True,
    )

    descriptors: list[ToolDescriptor] = []
    warnings: list[DiscoveryError] = []
    for path, result in zip(candidates, results):
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
        if isinstance(result, Exception) and not isinstance(result, DiscoveryError):
            logger.error("tool_describe_crashed", tool=path.name, error=repr(result))
            result = DiscoveryError(
                DiscoveryErrorKind.DESCRIBE_FAILED, path, f"{type(result).__name__}: {result}"
            )
        if isinstance(result, DiscoveryError):
            logger.warning(
                "tool_discovery_skipped",
                tool=path.name,
                kind=result.kind.value,
                detail=result.detail,
            )
            warnings.append(result)
        else:
            descriptors.append(result)

    logger.info(
        "tools_discovered",
        directory=str(directory),
        count=len(descriptors),
        skipped=len(warnings),
    )
    return ToolCatalog(descriptors, warnings)
