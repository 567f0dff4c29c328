"""Public library API for cinch: Session class and Result dataclass."""

import copy
from dataclasses import dataclass
from pathlib import Path

from . import fmt
from .agent import EXIT_COMMAND, Agent, AgentConfig
from .errors import AgentError
from .llm import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT,
    LiteLLMClient,
    ModelClient,
)
from .tools import ToolRegistry, default_registry


@dataclass
class Result:
    """Result of a run or ask call."""

    answer: str | None
    messages: list[dict]


class Session:
    """Programmatic interface to the agent loop.

    Call .run() for independent questions or .ask() for a conversation that
    keeps its context between calls. A failed model call raises AgentError.
    """

    def __init__(
        self,
        *,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        temperature: float | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_rounds: int | None = None,
        system_prompt: str | None = None,
        log_tool_use: bool = False,
        show_progress: bool = False,
        tools: ToolRegistry | None = None,
        client: ModelClient | None = None,
        output=fmt,
    ):
        self.model = model
        self.system_prompt = system_prompt
        self.config = AgentConfig(
            log_tool_use=log_tool_use,
            max_rounds=max_rounds,
            show_progress=show_progress,
        )
        self.tools = tools if tools is not None else default_registry()
        self.client = client or LiteLLMClient(
            model,
            api_key=api_key,
            base_url=base_url,
            max_output_tokens=max_output_tokens,
            temperature=temperature,
            timeout=timeout,
        )
        self.output = output

        self._answers: list[str] = []
        self._agent: Agent | None = None

    @classmethod
    def from_config(cls, base_dir: str = ".", **overrides) -> "Session":
        """Build a session from the global and project config files."""
        from .config import config_to_session_kwargs, load_config

        kwargs = config_to_session_kwargs(load_config(Path(base_dir)))
        kwargs.update(overrides)
        return cls(**kwargs)

    def _make_agent(self) -> Agent:
        return Agent(
            lambda: EXIT_COMMAND,
            self._answers.append,
            self.tools,
            self.config,
            client=self.client,
            system_prompt=self.system_prompt,
            output=self.output,
        )

    def _run(self, agent: Agent, question: str) -> Result:
        self._answers.clear()
        agent.run_turn(question)
        if agent.last_error is not None:
            raise AgentError(str(agent.last_error)) from agent.last_error
        return Result(
            answer=self._answers[-1] if self._answers else None,
            messages=copy.deepcopy(agent.messages),
        )

    def run(self, question: str) -> Result:
        """Single-shot: answer with a fresh transcript. Each call is independent."""
        return self._run(self._make_agent(), question)

    def ask(self, question: str) -> Result:
        """Conversational: share context across questions (like the REPL)."""
        if self._agent is None:
            self._agent = self._make_agent()
        return self._run(self._agent, question)

    def reset(self) -> None:
        """Clear conversation state. Next ask() starts fresh."""
        self._agent = None
