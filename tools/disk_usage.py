#!/usr/bin/env python3
"""Check disk usage for a directory (a self-describing shim around ``du``).

With AGENTSHELL_STUB=1 ``du`` is not run.
"""

import json
import os
import subprocess
import sys

DESCRIPTOR = {
    "name": "disk_usage",
    "description": "Check disk usage for a directory path",
    "parameters": {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Directory path to check (default: current directory)",
            },
            "human_readable": {
                "type": "boolean",
                "description": "Use human-readable sizes like KB, MB, GB (default: true)",
            },
        },
        "required": [],
    },
}


def main(argv: list[str]) -> None:
    if argv[:1] == ["--describe"]:
        print(json.dumps(DESCRIPTOR))
        return
    try:
        args = json.loads(argv[0]) if argv and argv[0] else {}
    except json.JSONDecodeError as e:
        print(f"disk_usage: invalid JSON arguments: {e}", file=sys.stderr)
        sys.exit(1)
    if not isinstance(args, dict):
        print("disk_usage: JSON arguments must be an object", file=sys.stderr)
        sys.exit(1)

    path = args.get("path") or "."
    human_readable = args.get("human_readable", True) not in (False, "false")
    if not os.path.exists(path):
        print(f"disk_usage: path not found: {path}", file=sys.stderr)
        sys.exit(1)

    if os.environ.get("AGENTSHELL_STUB") == "1":
        print(f"1.2G\t{path}" if human_readable else f"1258291\t{path}")
        return

    cmd = ["du", "-sh", path] if human_readable else ["du", "-s", path]
    sys.exit(subprocess.run(cmd).returncode)


if __name__ == "__main__":
    main(sys.argv[1:])
