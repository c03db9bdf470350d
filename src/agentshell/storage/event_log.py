"""Append-only JSONL event log: the observability trail of an agent.

Each line is ``{"ts": ..., "agent": ..., "event": ..., "message": ...}`` so
the trail can be inspected with ``cat``, ``grep`` or ``jq``.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path

from agentshell.log import get_logger

logger = get_logger(__name__)


def utc_timestamp() -> str:
    """UTC ISO-8601 at second precision, e.g. ``2026-02-12T10:00:00Z``."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class EventLog:
    """Writes structured events for one agent to a JSONL file."""

    def __init__(self, path: str | Path, agent_id: str = "unknown"):
        self.path = Path(path)
        self.agent_id = agent_id
        self._lock = asyncio.Lock()

    async def log_event(self, event: str, message: str = "") -> None:
        """Append one event. Raises ``OSError`` if the file cannot be written."""
        if not event:
            raise ValueError("event type required")
        line = json.dumps(
            {
                "ts": utc_timestamp(),
                "agent": self.agent_id,
                "event": event,
                "message": message,
            },
            ensure_ascii=False,
        )
        async with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")

    async def try_log_event(self, event: str, message: str = "") -> None:
        """Like :meth:`log_event` but never fails the caller."""
        try:
            await self.log_event(event, message)
        except (OSError, ValueError) as e:
            logger.error("event_log_write_failed", path=str(self.path), event=event, error=str(e))

    def read_events(self) -> list[dict]:
        if not self.path.exists():
            return []
        with self.path.open(encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
