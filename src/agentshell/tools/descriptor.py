"""Typed models for the tool self-description contract."""

from __future__ import annotations

import json
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ParameterProperty(BaseModel):
    """One entry of ``parameters.properties``."""

    model_config = ConfigDict(extra="allow")

    type: str = "string"
    description: str = ""
    enum: Optional[list[Any]] = None
    default: Any = None


class ParameterSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["object"] = "object"
    properties: dict[str, ParameterProperty] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)


class ToolDescriptor(BaseModel):
    """What a tool prints when asked to ``--describe`` itself."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: ParameterSchema

    @property
    def required(self) -> list[str]:
        return list(self.parameters.required)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the Anthropic API tool definition format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters.model_dump(mode="json", exclude_none=True),
        }


class ToolInvocationResult(BaseModel):
    """Raw outcome of running a tool once."""

    stdout: str = ""
    stderr: str = ""
    exit_status: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_status == 0
