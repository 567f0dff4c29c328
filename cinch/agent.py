import argparse
import contextlib
import enum
import json
import logging
import os
import sys
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
from typing import Callable, Iterable

from pydantic import ValidationError

from . import fmt
from .errors import AgentError, ConfigError
from .llm import LiteLLMClient, ModelClient, ModelResponse, ToolCall, extract_text
from .tools import Tool, ToolRegistry, default_registry

DEFAULT_SYSTEM_PROMPT_FILE = Path(__file__).parent / "system_prompt.txt"
EXIT_COMMAND = "exit"
MAX_ARG_LOG = 1000

logger = logging.getLogger(__name__)


class State(enum.Enum):
    AWAITING_INPUT = "awaiting_input"
    AWAITING_MODEL = "awaiting_model"
    STOPPED = "stopped"


@dataclass(frozen=True)
class AgentConfig:
    """Per-agent settings, fixed at construction.

    log_tool_use echoes every tool invocation and its result to the output
    channel. max_rounds caps model calls within one turn (None = no cap).
    show_progress shows the output channel's spinner while the model runs.
    """

    log_tool_use: bool = True
    max_rounds: int | None = None
    show_progress: bool = True


def load_system_prompt() -> str:
    return DEFAULT_SYSTEM_PROMPT_FILE.read_text(encoding="utf-8").strip()


def is_exit(text: str) -> bool:
    return text.strip().lower() == EXIT_COMMAND


def final_text(response: ModelResponse) -> str:
    """Text to display for a response without tool calls.

    Falls back to the last assistant message the client returned when the
    response carries no top-level text.
    """
    if response.text:
        return response.text
    for msg in reversed(response.messages):
        if msg.get("role") == "assistant":
            return extract_text(msg.get("content"))
    return ""


def _format_args(args: dict) -> str:
    pretty = json.dumps(args, indent=2, default=str)
    if len(pretty) > MAX_ARG_LOG:
        pretty = pretty[:MAX_ARG_LOG] + "\n... (truncated)"
    return pretty


def _validation_summary(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "input"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def execute_tool(tool: Tool, raw_input: dict) -> str:
    """Validate input and run a tool. Never raises; failures become strings."""
    try:
        args = tool.validate(raw_input)
    except ValidationError as e:
        return f"Error: Invalid input for tool {tool.name}: {_validation_summary(e)}"

    try:
        result = tool.execute(args)
    except Exception as e:
        logger.debug("tool %s raised", tool.name, exc_info=True)
        return f"Error: Tool {tool.name} failed: {e}"

    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


class Agent:
    """Turn-taking loop between the user, the model and the tools.

    The loop is an explicit state machine: ``step()`` performs one
    transition from the current ``State`` and ``start()`` steps until
    ``State.STOPPED``. The transcript (``messages``) is owned by the agent
    and only ever appended to while a session runs.

    ``output`` is the channel for tool echoes and errors; any object with
    ``tool_call(name, args_json)``, ``tool_result(name, result)`` and
    ``error(msg)`` works. An optional ``llm_spinner()`` context manager is
    entered around each model call. It defaults to the rich stderr formatter.
    """

    def __init__(
        self,
        get_user_input: Callable[[], str],
        handle_response: Callable[[str], object],
        tools: ToolRegistry | Iterable[Tool] | None = None,
        config: AgentConfig | None = None,
        *,
        client: ModelClient | None = None,
        system_prompt: str | None = None,
        output=fmt,
    ):
        self.get_user_input = get_user_input
        self.handle_response = handle_response
        if isinstance(tools, ToolRegistry):
            self.registry = tools
        else:
            self.registry = ToolRegistry(tools or ())
        self.config = config or AgentConfig()
        self.client = client if client is not None else LiteLLMClient()
        self.system_prompt = (
            system_prompt if system_prompt is not None else load_system_prompt()
        )
        self.output = output

        self.messages: list[dict] = []
        self.state = State.AWAITING_INPUT
        self.last_error: Exception | None = None
        self._rounds = 0

    # -- Driving the state machine -------------------------------------------

    def step(self) -> State:
        """Perform one transition and return the new state."""
        if self.state is State.AWAITING_INPUT:
            self.state = self._await_input()
        elif self.state is State.AWAITING_MODEL:
            self.state = self._await_model()
        return self.state

    def start(self) -> None:
        """Run until the user types the exit keyword."""
        if self.state is State.STOPPED:
            self.state = State.AWAITING_INPUT
        while self.state is not State.STOPPED:
            self.step()

    def run_turn(self, text: str) -> None:
        """Run a single turn for ``text`` without consulting get_user_input."""
        self._begin_turn(text)
        self.state = State.AWAITING_MODEL
        while self.state is State.AWAITING_MODEL:
            self.step()

    def clear(self) -> int:
        """Drop the transcript. Returns the number of messages removed."""
        dropped = len(self.messages)
        self.messages.clear()
        self.state = State.AWAITING_INPUT
        self.last_error = None
        return dropped

    def abort_turn(self) -> None:
        """Return to awaiting input after an interrupted turn.

        Tool calls left without results get a synthetic failure result so the
        transcript stays valid for the next model call.
        """
        if self.messages:
            last = self.messages[-1]
            content = last.get("content")
            if last.get("role") == "assistant" and isinstance(content, list):
                pending = [b for b in content if b.get("type") == "tool_use"]
                if pending:
                    self.messages.append(
                        {
                            "role": "user",
                            "content": [
                                {
                                    "type": "tool_result",
                                    "tool_use_id": block["id"],
                                    "content": "Error: Tool call interrupted.",
                                }
                                for block in pending
                            ],
                        }
                    )
        self.state = State.AWAITING_INPUT

    # -- States -------------------------------------------------------------

    def _begin_turn(self, text: str) -> None:
        self.messages.append({"role": "user", "content": text})
        self.last_error = None
        self._rounds = 0

    def _await_input(self) -> State:
        text = self.get_user_input()
        if is_exit(text):
            return State.STOPPED
        self._begin_turn(text)
        return State.AWAITING_MODEL

    def _await_model(self) -> State:
        max_rounds = self.config.max_rounds
        if max_rounds is not None and self._rounds >= max_rounds:
            self.last_error = AgentError(
                f"no final answer after {self._rounds} model rounds"
            )
            self.output.error(str(self.last_error))
            return State.AWAITING_INPUT
        self._rounds += 1

        try:
            with self._progress():
                response = self.client.generate(
                    self.system_prompt, self.messages, self.registry
                )
        except Exception as e:
            logger.debug(
                "model call failed (round %d, %d messages)",
                self._rounds,
                len(self.messages),
                exc_info=True,
            )
            self.last_error = e
            self.output.error(str(e))
            return State.AWAITING_INPUT

        if not response.tool_calls:
            text = final_text(response)
            self.messages.extend(
                response.messages or [{"role": "assistant", "content": text}]
            )
            if text:
                self.handle_response(text)
            else:
                logger.debug("final response carried no text")
            return State.AWAITING_INPUT

        self.messages.extend(response.messages or [_assistant_message(response)])
        results = [self.run_tool_call(call) for call in response.tool_calls]
        self.messages.append({"role": "user", "content": results})
        return State.AWAITING_MODEL

    def _progress(self):
        spinner = getattr(self.output, "llm_spinner", None)
        if spinner is None or not self.config.show_progress:
            return contextlib.nullcontext()
        return spinner()

    # -- Tools --------------------------------------------------------------

    def run_tool_call(self, call: ToolCall) -> dict:
        """Resolve one tool invocation into a tool_result block."""
        tool = self.registry.get(call.name)
        if tool is None:
            self.output.error(f"Tool {call.name} not found.")
            result = f"Error: Tool {call.name} not found."
        else:
            if self.config.log_tool_use:
                self.output.tool_call(call.name, _format_args(call.input))
            result = execute_tool(tool, call.input)
            if self.config.log_tool_use:
                self.output.tool_result(call.name, result)
        return {"type": "tool_result", "tool_use_id": call.id, "content": result}


def _assistant_message(response: ModelResponse) -> dict:
    blocks: list[dict] = []
    if response.text:
        blocks.append({"type": "text", "text": response.text})
    blocks.extend(call.to_block() for call in response.tool_calls)
    return {"role": "assistant", "content": blocks}


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


def build_parser():
    """Build and return the argument parser.

    Options that config files may also set default to the ``_UNSET``
    sentinel so ``apply_config_to_args`` can tell them apart.
    """
    from .config import _UNSET

    parser = argparse.ArgumentParser(
        prog="cinch",
        usage="%(prog)s [options] [question]",
        description="A chat client for coding tasks, with local file tools.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print the version and exit.",
    )
    parser.add_argument(
        "question",
        nargs="?",
        default=None,
        help="Answer a single question and exit instead of starting a chat.",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=_UNSET,
        help="LiteLLM model identifier (default: anthropic/claude-3-5-sonnet-20240620).",
    )
    parser.add_argument(
        "--api-key",
        type=str,
        default=_UNSET,
        help="API key for the provider (default: the provider's env var).",
    )
    parser.add_argument(
        "--base-url",
        default=_UNSET,
        help="Override the provider's API base URL.",
    )
    parser.add_argument(
        "--max-output-tokens",
        type=int,
        default=_UNSET,
        help="Maximum output tokens per model call (default: 4096).",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=_UNSET,
        help="Sampling temperature (default: provider default).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=_UNSET,
        help="Model request timeout in seconds (default: 120).",
    )
    parser.add_argument(
        "--max-rounds",
        type=int,
        default=_UNSET,
        help="Maximum model calls per question (default: unlimited).",
    )
    parser.add_argument(
        "--system-prompt",
        type=str,
        default=_UNSET,
        help="Replace the built-in system prompt.",
    )
    parser.add_argument(
        "--base-dir",
        type=str,
        default=".",
        help="Working directory for file tools and project config (default: current directory).",
    )
    parser.add_argument(
        "--no-log-tool-use",
        dest="log_tool_use",
        action="store_false",
        default=_UNSET,
        help="Don't echo tool calls and their results.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=_UNSET,
        help="Suppress all diagnostics; only print answers.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log debug messages to stderr.",
    )

    color_group = parser.add_mutually_exclusive_group()
    color_group.add_argument(
        "--color",
        action="store_true",
        default=_UNSET,
        help="Force ANSI color even when stderr is not a TTY.",
    )
    color_group.add_argument(
        "--no-color",
        action="store_true",
        default=_UNSET,
        help="Disable ANSI color even when stderr is a TTY.",
    )

    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a commented config template and exit.",
    )
    parser.add_argument(
        "--project",
        action="store_true",
        help="With --init-config, write <base-dir>/cinch.toml instead of the global config.",
    )

    return parser


def _handle_init_config(args) -> None:
    from .config import generate_config, global_config_dir

    if args.project:
        path = Path(args.base_dir).resolve() / "cinch.toml"
    else:
        path = global_config_dir() / "config.toml"
    if path.exists():
        raise ConfigError(f"{path} already exists, not overwriting")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(generate_config(project=args.project), encoding="utf-8")
    fmt.info(f"Wrote config template to {path}")


def main():
    parser = build_parser()
    args = parser.parse_args()

    if args.version:
        try:
            version = metadata.version("cinch")
        except metadata.PackageNotFoundError:
            version = "unknown"
        print(version)
        sys.exit(0)

    if args.debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s: %(message)s",
        )

    try:
        if args.init_config:
            _handle_init_config(args)
            return
        exit_code = _run_main(args)
    except AgentError as e:
        fmt.error(str(e))
        sys.exit(1)
    if exit_code:
        sys.exit(exit_code)


def _run_main(args) -> int:
    from .config import apply_config_to_args, load_config
    from .repl import PromptInput, print_response, run_repl

    base_dir = Path(args.base_dir)
    if not base_dir.is_dir():
        raise ConfigError(f"--base-dir is not a directory: {args.base_dir}")

    config = load_config(base_dir)
    apply_config_to_args(args, config)
    fmt.init(color=args.color, no_color=args.no_color)
    verbose = not args.quiet

    os.chdir(base_dir)

    client = LiteLLMClient(
        args.model,
        api_key=args.api_key,
        base_url=args.base_url,
        max_output_tokens=args.max_output_tokens,
        temperature=args.temperature,
        timeout=args.timeout,
    )
    agent_config = AgentConfig(
        log_tool_use=args.log_tool_use and verbose,
        max_rounds=args.max_rounds,
        show_progress=verbose,
    )
    system_prompt = args.system_prompt or load_system_prompt()
    registry = default_registry()
    if verbose:
        fmt.model_info(f"Using model {args.model}")

    if args.question is not None:
        agent = Agent(
            lambda: EXIT_COMMAND,
            print_response,
            registry,
            agent_config,
            client=client,
            system_prompt=system_prompt,
        )
        agent.run_turn(args.question)
        return 1 if agent.last_error is not None else 0

    settings = {
        "model": args.model,
        "log_tool_use": agent_config.log_tool_use,
        "max_rounds": agent_config.max_rounds,
        "base_dir": os.getcwd(),
    }
    prompt = PromptInput(registry, settings=settings)
    agent = Agent(
        prompt,
        print_response,
        registry,
        agent_config,
        client=client,
        system_prompt=system_prompt,
    )
    prompt.on_clear = agent.clear
    run_repl(agent, verbose=verbose)
    return 0


if __name__ == "__main__":
    main()
