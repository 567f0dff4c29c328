"""ANSI-formatted stderr output using Rich.

This module doubles as the default output channel of the agent loop: it
exposes ``llm_spinner``, ``tool_call``, ``tool_result``, ``error`` and ``info``.
"""

from rich.console import Console
from rich.text import Text

_console = Console(stderr=True)

MAX_PREVIEW = 500


def init(*, color: bool = False, no_color: bool = False) -> None:
    """Reconfigure the module-level console from CLI flags.

    Call once at startup, before any output.
    """
    global _console
    kwargs: dict = {"stderr": True}
    if color:
        kwargs["force_terminal"] = True
        kwargs["no_color"] = False
    if no_color:
        kwargs["no_color"] = True
    _console = Console(**kwargs)


def llm_spinner(label: str = "Thinking..."):
    """Return a Rich Status context manager that spins on stderr."""
    return _console.status(f"  {label}", spinner="dots")


# -- Tool calls --------------------------------------------------------------


def tool_call(name: str, args_json: str) -> None:
    header = Text()
    header.append("  ▶ ", style="bold cyan")
    header.append("Using tool: ", style="bright_cyan")
    header.append(name, style="bold magenta")
    _console.print(header)
    if args_json:
        for line in args_json.splitlines():
            _console.print(Text(f"    {line}", style="dim"))


def tool_result(name: str, result: str) -> None:
    preview = result
    if len(preview) > MAX_PREVIEW:
        preview = preview[:MAX_PREVIEW] + "... (truncated)"
    header = Text()
    header.append(f"  ✓ {name}", style="green")
    header.append("  Tool result:", style="bright_cyan")
    _console.print(header)
    for line in preview.splitlines():
        _console.print(Text(f"    {line}", style="dim"))


# -- Diagnostics -------------------------------------------------------------


def model_info(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="dim"))


def info(msg: str) -> None:
    _console.print(Text(f"  {msg}", style="dim"))


def warning(msg: str) -> None:
    line = Text()
    line.append("  ⚠ Warning: ", style="yellow")
    line.append(msg, style="yellow")
    _console.print(line)


def error(msg: str) -> None:
    line = Text()
    line.append("Error: ", style="bold red")
    line.append(msg, style="red")
    _console.print(line)


def repl_banner() -> None:
    _console.print(
        Text(
            "Interactive mode. Type 'exit', /exit or Ctrl-D to quit, /help for commands.",
            style="dim",
        )
    )
