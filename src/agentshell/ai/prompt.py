"""System prompt composition from an agent directory."""

from __future__ import annotations

from pathlib import Path

SOUL_FILE = "soul.md"
CONTEXT_DIR = "context"
SECTION_SEPARATOR = "\n---\n"


class PromptError(Exception):
    """The agent's prompt files are missing or unreadable."""


def compose_system(agent_dir: str | Path, soul_path: str | Path | None = None) -> str:
    """Join ``soul.md`` and every ``context/*.md`` (alphabetical) into one prompt."""
    agent_dir = Path(agent_dir)
    soul = Path(soul_path) if soul_path else agent_dir / SOUL_FILE
    if not soul.is_file():
        raise PromptError(f"soul file not found: {soul}")

    sections = [soul.read_text(encoding="utf-8").strip()]
    context_dir = agent_dir / CONTEXT_DIR
    if context_dir.is_dir():
        for path in sorted(context_dir.glob("*.md")):
            if path.is_file():
                sections.append(path.read_text(encoding="utf-8").strip())
    return SECTION_SEPARATOR.join(section for section in sections if section)


def resolve_system_prompt(value: str | None) -> str:
    """A value naming an existing file is read; anything else is used literally."""
    if not value:
        return ""
    path = Path(value)
    try:
        if path.is_file():
            return path.read_text(encoding="utf-8").strip()
    except OSError:
        # Too long or otherwise not a valid path: treat as literal text.
        pass
    return value
