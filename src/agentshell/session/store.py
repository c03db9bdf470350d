"""Conversation session storage.

A session is an append-only, ordered log of user/assistant turns addressed
by a logical key. Reads of missing sessions are empty rather than errors.
``clear`` archives a non-empty session under a fresh archive key and leaves
an empty live session behind.

Backends:

* :class:`InMemorySessionStore` for tests and throwaway runs.
* :class:`FileSessionStore` keeps one JSONL file per key, so sessions can be
  inspected with ``cat``, ``grep`` or ``jq``. Archives are renamed aside as
  ``<key>.jsonl.<YYYYMMDDTHHMMSSZ>``.
"""

from __future__ import annotations

import os
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path

from agentshell.log import get_logger
from agentshell.session.locks import KeyedLocks
from agentshell.session.models import Role, SessionEntry

logger = get_logger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_\-][A-Za-z0-9_.\-]*$")


class SessionKeyError(ValueError):
    """Session key missing or not usable as a storage name."""


def check_key(key: str) -> str:
    if not key:
        raise SessionKeyError("session key required")
    if not _KEY_PATTERN.match(key):
        raise SessionKeyError(f"invalid session key: {key!r}")
    return key


def archive_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _tail(entries: list[SessionEntry], limit: int | None) -> list[SessionEntry]:
    if limit is None:
        return entries
    if limit <= 0:
        return []
    return entries[-limit:]


class SessionStore(ABC):
    """Key -> ordered entries, with archive-on-clear."""

    def __init__(self) -> None:
        self._locks = KeyedLocks()

    @abstractmethod
    def _read(self, key: str) -> list[SessionEntry] | None:
        """Return entries, or ``None`` if the session does not exist."""
        ...

    @abstractmethod
    def _write_entry(self, key: str, entry: SessionEntry) -> None:
        ...

    @abstractmethod
    def _archive(self, key: str, stamp: str) -> str:
        """Move the live session aside under a unique archive key and return it."""
        ...

    @abstractmethod
    def _reset(self, key: str) -> None:
        """Ensure the live session exists and is empty."""
        ...

    @abstractmethod
    def _list_archives(self, key: str) -> list[str]:
        ...

    @abstractmethod
    def _read_archive(self, archive_key: str) -> list[SessionEntry]:
        ...

    async def append(self, key: str, role: Role | str, content: str) -> SessionEntry:
        """Append one entry, creating the session if needed."""
        check_key(key)
        entry = SessionEntry(role=Role(role), content=content)
        async with self._locks.get(key):
            self._write_entry(key, entry)
        return entry

    async def entries(self, key: str, limit: int | None = None) -> list[SessionEntry]:
        check_key(key)
        async with self._locks.get(key):
            return _tail(self._read(key) or [], limit)

    async def load(self, key: str, limit: int | None = None) -> list[str]:
        """Transcript lines (``role: content``), optionally only the last *limit*."""
        return [entry.transcript_line() for entry in await self.entries(key, limit)]

    async def count(self, key: str) -> int:
        return len(await self.entries(key))

    async def clear(self, key: str) -> str | None:
        """Archive a non-empty session and reset it. Returns the archive key, if any."""
        check_key(key)
        async with self._locks.get(key):
            archive_key = None
            if self._read(key):
                archive_key = self._archive(key, archive_stamp())
                logger.info("session_archived", session=key, archive=archive_key)
            self._reset(key)
        return archive_key

    async def archives(self, key: str) -> list[str]:
        check_key(key)
        async with self._locks.get(key):
            return self._list_archives(key)

    async def load_archive(self, archive_key: str) -> list[SessionEntry]:
        return self._read_archive(archive_key)


def _unique(stamp: str, taken: set[str] | None = None, exists=None) -> str:
    """Suffix ``-1``, ``-2``, ... onto *stamp* until it is free."""
    candidate = stamp
    n = 0
    while (taken is not None and candidate in taken) or (exists is not None and exists(candidate)):
        n += 1
        candidate = f"{stamp}-{n}"
    return candidate


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        super().__init__()
        self._sessions: dict[str, list[SessionEntry]] = {}
        self._archived: dict[str, list[SessionEntry]] = {}

    def _read(self, key: str) -> list[SessionEntry] | None:
        entries = self._sessions.get(key)
        return list(entries) if entries is not None else None

    def _write_entry(self, key: str, entry: SessionEntry) -> None:
        self._sessions.setdefault(key, []).append(entry)

    def _archive(self, key: str, stamp: str) -> str:
        prefix = f"{key}."
        taken = {k[len(prefix):] for k in self._archived if k.startswith(prefix)}
        archive_key = prefix + _unique(stamp, taken=taken)
        self._archived[archive_key] = self._sessions.pop(key)
        return archive_key

    def _reset(self, key: str) -> None:
        self._sessions[key] = []

    def _list_archives(self, key: str) -> list[str]:
        prefix = f"{key}."
        return sorted(k for k in self._archived if k.startswith(prefix))

    def _read_archive(self, archive_key: str) -> list[SessionEntry]:
        return list(self._archived.get(archive_key, []))


class FileSessionStore(SessionStore):
    """One JSONL file per session key under *directory*."""

    SUFFIX = ".jsonl"

    def __init__(self, directory: str | Path):
        super().__init__()
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{check_key(key)}{self.SUFFIX}"

    def _read_file(self, path: Path) -> list[SessionEntry]:
        with path.open(encoding="utf-8") as f:
            return [SessionEntry.model_validate_json(line) for line in f if line.strip()]

    def _read(self, key: str) -> list[SessionEntry] | None:
        path = self.path_for(key)
        if not path.is_file():
            return None
        return self._read_file(path)

    def _write_entry(self, key: str, entry: SessionEntry) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        with self.path_for(key).open("a", encoding="utf-8") as f:
            f.write(entry.to_json() + "\n")

    def _archive(self, key: str, stamp: str) -> str:
        live = self.path_for(key)
        suffix = _unique(stamp, exists=lambda s: live.with_name(f"{live.name}.{s}").exists())
        archive = live.with_name(f"{live.name}.{suffix}")
        os.replace(live, archive)
        return archive.name

    def _reset(self, key: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path_for(key).write_text("", encoding="utf-8")

    def _list_archives(self, key: str) -> list[str]:
        if not self.directory.is_dir():
            return []
        prefix = f"{key}{self.SUFFIX}."
        return sorted(p.name for p in self.directory.iterdir() if p.name.startswith(prefix))

    def _read_archive(self, archive_key: str) -> list[SessionEntry]:
        path = self.directory / archive_key
        if path.parent != self.directory or not path.is_file():
            return []
        return self._read_file(path)
