"""Tool catalog: the ordered set of descriptors derived by one discovery pass."""

from __future__ import annotations

import json
from typing import Any, Iterable, Iterator

from agentshell.tools.descriptor import ToolDescriptor
from agentshell.tools.errors import DiscoveryError


class ToolCatalog:
    """Immutable, ordered sequence of valid tool descriptors.

    Repeated names are legal; lookups return the first match. ``warnings``
    keeps the per-tool discovery failures of the pass that built it.
    """

    def __init__(
        self,
        descriptors: Iterable[ToolDescriptor] = (),
        warnings: Iterable[DiscoveryError] = (),
    ):
        self._descriptors: tuple[ToolDescriptor, ...] = tuple(descriptors)
        self._warnings: tuple[DiscoveryError, ...] = tuple(warnings)

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self._descriptors)

    def __bool__(self) -> bool:
        return bool(self._descriptors)

    def __contains__(self, name: object) -> bool:
        return any(d.name == name for d in self._descriptors)

    @property
    def warnings(self) -> tuple[DiscoveryError, ...]:
        return self._warnings

    def get(self, name: str) -> ToolDescriptor | None:
        for descriptor in self._descriptors:
            if descriptor.name == name:
                return descriptor
        return None

    def names(self) -> list[str]:
        return [d.name for d in self._descriptors]

    def to_list(self) -> list[dict[str, Any]]:
        return [d.to_dict() for d in self._descriptors]

    def to_json(self) -> str:
        return json.dumps(self.to_list(), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> ToolCatalog:
        return cls(ToolDescriptor.model_validate(item) for item in json.loads(text))

    def to_api_list(self) -> list[dict[str, Any]]:
        """Serialize to the Anthropic API ``tools`` parameter."""
        return [d.to_api_dict() for d in self._descriptors]

    def describe_for_prompt(self) -> str:
        """Render a compact human-readable listing, one section per tool."""
        lines: list[str] = []
        for descriptor in self._descriptors:
            props = descriptor.parameters.properties
            param_desc = ", ".join(f"{k}: {v.description}" for k, v in props.items())
            lines.append(f"\n### {descriptor.name}")
            lines.append(f"Description: {descriptor.description}")
            lines.append(f"Parameters: {param_desc or '(none)'}")
            if descriptor.required:
                lines.append(f"Required: {', '.join(descriptor.required)}")
        return "\n".join(lines)
