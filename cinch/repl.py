"""Interactive input and output collaborators for the agent loop."""

import sys
from collections import deque
from datetime import datetime
from typing import Callable, Iterable

from . import fmt
from .agent import EXIT_COMMAND, Agent, State
from .tools import ToolRegistry

DEFAULT_HISTORY_LIMIT = 10
HISTORY_SIZE = 100


def _repl_help() -> None:
    """Print available REPL commands."""
    fmt.info(
        "Available commands:\n"
        "  /help              Show this help message\n"
        "  /tools             List the tools the model can use\n"
        "  /config            Show the active settings\n"
        "  /clear             Reset the conversation\n"
        "  /history [N]       Show the last N inputs (default 10)\n"
        "  /exit, /quit       Exit (typing 'exit' works too)"
    )


def _repl_tools(registry: ToolRegistry) -> None:
    if not len(registry):
        fmt.info("No tools are currently available.")
        return
    lines = ["Available tools:"]
    for tool in registry:
        summary = tool.description.splitlines()[0] if tool.description else ""
        lines.append(f"  {tool.name:<14} - {summary}")
    fmt.info("\n".join(lines))


def _repl_config(settings: dict) -> None:
    if not settings:
        fmt.info("No settings available.")
        return
    lines = ["Current configuration:"]
    for key, value in settings.items():
        if value is None:
            value = "unlimited" if key == "max_rounds" else "default"
        lines.append(f"  {key:<14} = {value}")
    fmt.info("\n".join(lines))


def _repl_history(entries: Iterable[tuple[datetime, str]], arg: str) -> None:
    arg = arg.strip()
    limit = DEFAULT_HISTORY_LIMIT
    if arg:
        try:
            limit = int(arg)
        except ValueError:
            fmt.warning(f"invalid number: {arg}")
            return
        if limit < 1:
            fmt.warning("history limit must be at least 1")
            return

    recent = list(entries)[-limit:]
    if not recent:
        fmt.info("No input history available.")
        return
    lines = [f"Recent inputs (last {len(recent)}):"]
    for i, (stamp, line) in enumerate(recent, start=1):
        lines.append(f"  {i:>2}. [{stamp.strftime('%H:%M:%S')}] {line}")
    fmt.info("\n".join(lines))


class PromptInput:
    """``get_user_input`` backed by prompt_toolkit.

    Slash commands are handled here and never reach the agent. Unknown
    ``/foo`` lines pass through as regular input. Ctrl-D and Ctrl-C at the
    prompt end the session.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        on_clear: Callable[[], int] | None = None,
        read_line: Callable[[], str] | None = None,
        settings: dict | None = None,
    ):
        self.registry = registry
        self.on_clear = on_clear
        self.settings = settings or {}
        self.history: deque[tuple[datetime, str]] = deque(maxlen=HISTORY_SIZE)
        self._read_line = read_line

    def _prompt(self) -> str:
        if self._read_line is None:
            from prompt_toolkit import PromptSession
            from prompt_toolkit.formatted_text import FormattedText

            session = PromptSession(enable_history_search=True)
            prompt_text = FormattedText([("bold fg:ansiblue", "You: ")])
            self._read_line = lambda: session.prompt(prompt_text)
        return self._read_line()

    def __call__(self) -> str:
        while True:
            try:
                line = self._prompt()
            except (EOFError, KeyboardInterrupt):
                print(file=sys.stderr)  # newline after ^D / ^C
                return EXIT_COMMAND

            line = line.strip()
            if not line:
                continue
            if line in ("/exit", "/quit"):
                return EXIT_COMMAND
            if self.run_command(line):
                continue

            self.history.append((datetime.now(), line))
            return line

    def run_command(self, line: str) -> bool:
        """Handle a known slash command. Returns False for anything else."""
        cmd_parts = line.split(None, 1)
        cmd = cmd_parts[0].lower()
        cmd_arg = cmd_parts[1] if len(cmd_parts) > 1 else ""

        if cmd == "/help":
            _repl_help()
        elif cmd == "/tools":
            _repl_tools(self.registry)
        elif cmd == "/config":
            _repl_config(self.settings)
        elif cmd == "/clear":
            dropped = self.on_clear() if self.on_clear is not None else 0
            fmt.info(f"context cleared ({dropped} messages removed)")
        elif cmd == "/history":
            _repl_history(self.history, cmd_arg)
        else:
            return False
        return True


def print_response(text: str) -> None:
    print(text)


def run_repl(agent: Agent, *, verbose: bool = True) -> None:
    """Run an interactive session; Ctrl-C during a turn aborts only that turn."""
    if verbose:
        fmt.repl_banner()

    while agent.state is not State.STOPPED:
        try:
            agent.start()
        except KeyboardInterrupt:
            fmt.warning("interrupted, question aborted.")
            agent.abort_turn()
