"""CLI entry point for agentshell.

Filter mode sends one message (argument or stdin) and prints the bare reply,
so the command composes in pipelines. The first word may instead name a
subcommand.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path

from agentshell.ai.client import LLMError
from agentshell.ai.prompt import PromptError
from agentshell.app import CLI_SESSION_KEY, AgentShellApp, init_project
from agentshell.config import AppConfig, ConfigError, load_config
from agentshell.log import setup_logging
from agentshell.session.store import SessionKeyError
from agentshell.tools.dispatch import dispatch_tool, validate_tool_call
from agentshell.tools.errors import DispatchError, DispatchErrorKind, ToolValidationError

PROG = "agentshell"

SUBCOMMANDS = {
    "help": "Show this help",
    "config": "Print effective settings as KEY=value",
    "session": "Print the current session transcript",
    "reset": "Archive and clear the current session",
    "init": "Create agents/default/soul.md and config.yaml if missing",
    "tools": "List discovered tools",
    "call": "Validate and run a tool: call <tool> [json]",
    "bot": "Run the Telegram polling bot",
}

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_TOOL_FAILED = 2


class _HelpFormatter(argparse.RawDescriptionHelpFormatter):
    def add_usage(self, usage, actions, groups, prefix=None):
        return super().add_usage(usage, actions, groups, prefix or "Usage: ")


class _ArgumentParser(argparse.ArgumentParser):
    """Exits with status 1 and a plain message on bad arguments."""

    def error(self, message: str) -> None:  # type: ignore[override]
        if message.startswith("unrecognized arguments"):
            message = "unknown flag: " + message.split(":", 1)[1].strip()
        message = message.replace("expected one argument", "requires a value")
        self.print_usage(sys.stderr)
        self.exit(EXIT_ERROR, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    commands = "\n".join(f"  {name:<9} {text}" for name, text in SUBCOMMANDS.items())
    parser = _ArgumentParser(
        prog=PROG,
        usage=f"{PROG} [options] [message]\n       {PROG} <command> [args]",
        description="LLM agent runtime whose tools are plain executables.",
        epilog=f"Commands:\n{commands}\n\nWith no message, the message is read from stdin.",
        formatter_class=_HelpFormatter,
    )
    parser.add_argument("-s", "--system", metavar="<prompt>", help="System prompt text or file")
    parser.add_argument("-m", "--model", metavar="<model>", help="Model override")
    parser.add_argument(
        "-c", "--continue", dest="continue_conversation", action="store_true",
        help="Continue the previous conversation",
    )
    parser.add_argument("--agent", metavar="<id>", help="Agent id (default: from config)")
    parser.add_argument(
        "--config", metavar="<path>", default="config.yaml", help="Path to config file"
    )
    parser.add_argument("--env", metavar="<path>", default=".env", help="Path to .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    parser.add_argument("words", nargs="*", metavar="message", help=argparse.SUPPRESS)
    return parser


def _fail(message: str) -> int:
    print(f"{PROG}: error: {message}", file=sys.stderr)
    return EXIT_ERROR


def _read_message(words: list[str]) -> str | None:
    if words:
        return " ".join(words)
    if sys.stdin is None or sys.stdin.isatty():
        return None
    return sys.stdin.read().strip()


def _print_config(config: AppConfig, app: AgentShellApp) -> None:
    settings = {
        "AGENTSHELL_HOME": config.home_path,
        "AGENTSHELL_AGENT": app.agent_id,
        "AGENTSHELL_MODEL": app.model,
        "AGENTSHELL_LLM_BACKEND": config.llm.backend,
        "AGENTSHELL_LOG_LEVEL": config.log_level,
        "AGENTSHELL_TOOLS_ENABLED": int(config.tools.enabled),
        "AGENTSHELL_TOOLS_DIR": config.tools_dir,
        "AGENTSHELL_STUB": int(config.tools.stub),
        "AGENTSHELL_TELEGRAM_STUB": int(config.telegram.stub),
    }
    for key, value in settings.items():
        print(f"{key}={value}")


async def _show_session(app: AgentShellApp) -> int:
    lines = await app.session_store.load(CLI_SESSION_KEY)
    if not lines:
        print("No conversation history.")
        return EXIT_OK
    for line in lines:
        print(line)
    return EXIT_OK


async def _reset_session(app: AgentShellApp) -> int:
    archive = await app.session_store.clear(CLI_SESSION_KEY)
    if archive:
        print(f"Session cleared (archived as {archive}).")
    else:
        print("Session cleared.")
    return EXIT_OK


async def _list_tools(app: AgentShellApp) -> int:
    catalog = await app.discover()
    if not catalog and not catalog.warnings:
        print(f"No tools found in {app.config.tools_dir}")
        return EXIT_OK
    for descriptor in catalog:
        required = ", ".join(descriptor.required) or "-"
        print(f"{descriptor.name}\t{descriptor.description} (required: {required})")
    for warning in catalog.warnings:
        print(f"skipped {warning.tool_name}: {warning}", file=sys.stderr)
    return EXIT_OK


async def _call_tool(app: AgentShellApp, args: list[str]) -> int:
    if not args:
        return _fail("call requires a tool name")
    tool_name = args[0]
    arguments = args[1] if len(args) > 1 else "{}"

    catalog = await app.discover()
    try:
        validate_tool_call(catalog, tool_name, arguments)
        output = await dispatch_tool(
            app.config.tools_dir,
            tool_name,
            arguments,
            timeout=app.config.tools.call_timeout,
            env=app.config.tool_env(),
            event_log=app.event_log,
        )
    except ToolValidationError as e:
        return _fail(str(e))
    except DispatchError as e:
        print(f"{PROG}: error: {e.user_message}", file=sys.stderr)
        return EXIT_ERROR if e.kind is DispatchErrorKind.TOOL_NOT_FOUND else EXIT_TOOL_FAILED
    print(output)
    return EXIT_OK


def _run_bot(app: AgentShellApp) -> int:
    async def _async_main() -> None:
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(_signal_handler))

        await app.run_bot(stop_event)

    print(f"Bot started (agent={app.agent_id}). Press Ctrl-C to stop.", file=sys.stderr)
    asyncio.run(_async_main())
    print("Bot stopped.", file=sys.stderr)
    return EXIT_OK


def _dispatch_command(command: str, rest: list[str], args: argparse.Namespace) -> int:
    config_path = Path(args.config)
    if command == "init":
        created = init_project(config_path.resolve().parent, config_path)
        print(f"Initialized agentshell in {config_path.resolve().parent}")
        for path in created:
            print(f"  created {path}")
        return EXIT_OK

    config = load_config(config_path, args.env, require=command == "bot")
    setup_logging(
        "DEBUG" if args.verbose else (config.log_level if command == "bot" else "WARNING")
    )
    app = AgentShellApp(config, args.agent or (config.telegram.agent if command == "bot" else None))

    match command:
        case "config":
            _print_config(config, app)
            return EXIT_OK
        case "session":
            return asyncio.run(_show_session(app))
        case "reset":
            return asyncio.run(_reset_session(app))
        case "tools":
            return asyncio.run(_list_tools(app))
        case "call":
            return asyncio.run(_call_tool(app, rest))
        case "bot":
            return _run_bot(app)
    return _fail(f"unknown command: {command}")


def _filter(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    message = _read_message(args.words)
    if message is None:
        parser.print_help()
        return EXIT_OK
    if not message:
        return _fail("no message given")

    config = load_config(args.config, args.env)
    setup_logging("DEBUG" if args.verbose else "WARNING")
    app = AgentShellApp(config, args.agent)
    response = asyncio.run(
        app.send(
            message,
            system=args.system,
            model=args.model,
            continue_conversation=args.continue_conversation,
        )
    )
    print(response)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.words and args.words[0] in SUBCOMMANDS:
            command, rest = args.words[0], args.words[1:]
            if command == "help":
                parser.print_help()
                return EXIT_OK
            return _dispatch_command(command, rest, args)
        return _filter(args, parser)
    except (ConfigError, PromptError, LLMError, SessionKeyError) as e:
        return _fail(str(e))


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
