"""Child process helpers shared by tool and LLM CLI invocations."""

from __future__ import annotations

import asyncio
import os
import signal

# Each child leads its own process group, so a timeout can take down
# grandchildren that still hold the output pipes.
NEW_SESSION = os.name == "posix"


async def kill_process_group(process: asyncio.subprocess.Process) -> None:
    """Kill *process* and everything it started, then reap it."""
    if NEW_SESSION:
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    else:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()
