import asyncio
import json

import pytest

from agentshell.storage.event_log import EventLog


async def test_log_event_writes_one_json_object_per_line(event_log):
    await event_log.log_event("user_input", "hello world")
    await event_log.log_event("session_start")

    lines = event_log.path.read_text().splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["agent"] == "test"
    assert first["event"] == "user_input"
    assert first["message"] == "hello world"
    assert json.loads(lines[1])["message"] == ""


async def test_log_event_escapes_special_characters(event_log):
    await event_log.log_event("user_input", 'He said "hello" & <world>\nline two')
    assert event_log.read_events()[0]["message"] == 'He said "hello" & <world>\nline two'


async def test_log_event_requires_event_type(event_log):
    with pytest.raises(ValueError):
        await event_log.log_event("")


async def test_log_event_creates_parent_directories(tmp_path):
    log = EventLog(tmp_path / "deep" / "er" / "bot.jsonl", agent_id="telegram")
    await log.log_event("bot_startup", "starting")
    assert log.read_events()[0]["agent"] == "telegram"


async def test_concurrent_writers_keep_lines_whole(event_log):
    await asyncio.gather(*(event_log.log_event("tick", str(i) * 200) for i in range(50)))
    events = event_log.read_events()
    assert len(events) == 50
    assert sorted(e["message"][0] for e in events) == sorted(str(i)[0] for i in range(50))


async def test_try_log_event_never_raises(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    await EventLog(blocker / "x.jsonl").try_log_event("user_input", "lost")


def test_read_events_of_missing_file_is_empty(tmp_path):
    assert EventLog(tmp_path / "none.jsonl").read_events() == []
