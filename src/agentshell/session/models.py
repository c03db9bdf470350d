"""Data models for the session store."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from agentshell.storage.event_log import utc_timestamp


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class SessionEntry(BaseModel):
    """One line of a session log: ``{"ts": ..., "role": ..., "content": ...}``."""

    ts: str = Field(default_factory=utc_timestamp)
    role: Role
    content: str

    def transcript_line(self) -> str:
        return f"{self.role.value}: {self.content}"

    def to_json(self) -> str:
        return self.model_dump_json()
