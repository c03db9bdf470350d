#!/usr/bin/env python3
"""Create a GitHub issue through the REST API.

Needs GITHUB_TOKEN in real mode. With AGENTSHELL_STUB=1 it only reports what
it would have done.
"""

import json
import os
import sys

DESCRIPTOR = {
    "name": "github_issue",
    "description": "Create a GitHub issue in a repository",
    "parameters": {
        "type": "object",
        "properties": {
            "repo": {"type": "string", "description": "Repository in owner/repo format"},
            "title": {"type": "string", "description": "Issue title"},
            "body": {"type": "string", "description": "Issue body text (optional)"},
        },
        "required": ["repo", "title"],
    },
}

API_URL = "https://api.github.com/repos/{repo}/issues"


def fail(message: str) -> None:
    print(f"github_issue: {message}", file=sys.stderr)
    sys.exit(1)


def create_issue(repo: str, title: str, body: str, token: str) -> dict:
    import httpx

    try:
        response = httpx.post(
            API_URL.format(repo=repo),
            json={"title": title, "body": body},
            headers={
                "Authorization": f"token {token}",
                "Accept": "application/vnd.github+json",
            },
            timeout=20,
        )
        response.raise_for_status()
        issue = response.json()
    except (httpx.HTTPError, ValueError) as e:
        fail(f"API call failed for repo '{repo}': {e}")
    return {"url": issue.get("html_url"), "number": issue.get("number"), "title": issue.get("title")}


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

    repo = args.get("repo") or ""
    title = args.get("title") or ""
    body = args.get("body") or ""
    if not repo:
        fail("'repo' is required")
    if not title:
        fail("'title' is required")

    if os.environ.get("AGENTSHELL_STUB") == "1":
        result = {
            "status": "stub",
            "message": f"Would create issue in {repo}: {title}",
            "url": f"https://github.com/{repo}/issues/0",
        }
    else:
        token = os.environ.get("GITHUB_TOKEN")
        if not token:
            fail("GITHUB_TOKEN environment variable required")
        result = create_issue(repo, title, body, token)
    print(json.dumps(result))


if __name__ == "__main__":
    main(sys.argv[1:])
