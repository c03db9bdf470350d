#!/usr/bin/env python3
"""Get current weather for a location (wraps wttr.in).

Modes:
    --describe            print the tool descriptor
    '{"location": ...}'   run with JSON arguments

With AGENTSHELL_STUB=1 no network call is made.
"""

import json
import os
import sys

DESCRIPTOR = {
    "name": "get_weather",
    "description": "Get current weather for a location",
    "parameters": {
        "type": "object",
        "properties": {
            "location": {"type": "string", "description": "City name or coordinates"},
            "unit": {
                "type": "string",
                "enum": ["celsius", "fahrenheit"],
                "description": "Temperature unit (default: celsius)",
            },
        },
        "required": ["location"],
    },
}


def fail(message: str) -> None:
    print(f"get_weather: {message}", file=sys.stderr)
    sys.exit(1)


def fetch(location: str, unit: str) -> dict:
    import httpx

    try:
        response = httpx.get(f"https://wttr.in/{location}", params={"format": "j1"}, timeout=15)
        response.raise_for_status()
        current = response.json()["current_condition"][0]
    except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
        fail(f"failed to fetch weather for '{location}': {e}")
    temp_field = "temp_F" if unit == "fahrenheit" else "temp_C"
    return {
        "location": location,
        "temperature": current[temp_field],
        "unit": unit,
        "condition": current["weatherDesc"][0]["value"],
    }


def main(argv: list[str]) -> None:
    if argv[:1] == ["--describe"]:
        print(json.dumps(DESCRIPTOR))
        return
    if not argv or not argv[0]:
        fail("JSON arguments required")
    try:
        args = json.loads(argv[0])
    except json.JSONDecodeError as e:
        fail(f"invalid JSON arguments: {e}")
    if not isinstance(args, dict):
        fail("JSON arguments must be an object")

    location = args.get("location") or ""
    unit = args.get("unit") or "celsius"
    if not location:
        fail("'location' is required")

    if os.environ.get("AGENTSHELL_STUB") == "1":
        result = {"location": location, "temperature": "15", "unit": unit, "condition": "Sunny"}
    else:
        result = fetch(location, unit)
    print(json.dumps(result))


if __name__ == "__main__":
    main(sys.argv[1:])
