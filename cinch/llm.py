"""Model client adapter: the boundary between the agent loop and the LLM API.

The agent keeps its transcript as block-structured messages::

    {"role": "user", "content": "plain text"}
    {"role": "assistant", "content": [
        {"type": "text", "text": "..."},
        {"type": "tool_use", "id": "call_1", "name": "read_file", "input": {...}},
    ]}
    {"role": "user", "content": [
        {"type": "tool_result", "tool_use_id": "call_1", "content": "..."},
    ]}

``LiteLLMClient`` translates that transcript into the OpenAI chat format that
LiteLLM speaks for every provider, and translates the reply back.
"""

import json
import logging
from dataclasses import dataclass, field

from .errors import AgentError
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "anthropic/claude-3-5-sonnet-20240620"
DEFAULT_MAX_OUTPUT_TOKENS = 4096
DEFAULT_TIMEOUT = 120


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    input: dict

    def to_block(self) -> dict:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


@dataclass
class ModelResponse:
    """What one model call produced.

    ``messages`` holds the assistant message(s) in transcript form, ready to be
    appended by the caller.
    """

    text: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    messages: list[dict] = field(default_factory=list)


class ModelClient:
    """Interface the agent loop uses to talk to a model."""

    def generate(
        self, system_prompt: str | None, messages: list[dict], registry: ToolRegistry
    ) -> ModelResponse:
        raise NotImplementedError


def extract_text(content) -> str:
    """Return the text of a message's content: a string or text blocks joined."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        )
    return ""


def to_litellm_messages(system_prompt: str | None, messages: list[dict]) -> list[dict]:
    """Convert a block-structured transcript to OpenAI-style chat messages."""
    out: list[dict] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})

    for msg in messages:
        role = msg["role"]
        content = msg["content"]
        if isinstance(content, str):
            out.append({"role": role, "content": content})
            continue

        text = extract_text(content)
        if role == "assistant":
            tool_calls = [
                {
                    "id": block["id"],
                    "type": "function",
                    "function": {
                        "name": block["name"],
                        "arguments": json.dumps(block.get("input") or {}),
                    },
                }
                for block in content
                if block.get("type") == "tool_use"
            ]
            converted: dict = {"role": "assistant", "content": text or None}
            if tool_calls:
                converted["tool_calls"] = tool_calls
            elif not text:
                converted["content"] = ""
            out.append(converted)
        else:
            # Tool results become role=tool messages, in block order
            for block in content:
                if block.get("type") == "tool_result":
                    out.append(
                        {
                            "role": "tool",
                            "tool_call_id": block["tool_use_id"],
                            "content": block.get("content", ""),
                        }
                    )
            if text:
                out.append({"role": "user", "content": text})
    return out


def _parse_arguments(name: str, raw) -> dict:
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw or "{}")
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("invalid JSON arguments for tool %r: %s", name, e)
        return {}
    if not isinstance(parsed, dict):
        logger.warning("non-object arguments for tool %r: %r", name, parsed)
        return {}
    return parsed


def parse_response(message) -> ModelResponse:
    """Build a ModelResponse from a LiteLLM (OpenAI-shaped) choice message."""
    text = getattr(message, "content", None) or ""
    tool_calls = [
        ToolCall(
            id=tc.id,
            name=tc.function.name,
            input=_parse_arguments(tc.function.name, tc.function.arguments),
        )
        for tc in (getattr(message, "tool_calls", None) or [])
    ]

    if tool_calls:
        blocks: list[dict] = []
        if text:
            blocks.append({"type": "text", "text": text})
        blocks.extend(call.to_block() for call in tool_calls)
        assistant = {"role": "assistant", "content": blocks}
    else:
        assistant = {"role": "assistant", "content": text}

    return ModelResponse(
        text=text or None, tool_calls=tool_calls, messages=[assistant]
    )


class LiteLLMClient(ModelClient):
    """Model client backed by ``litellm.completion``."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        temperature: float | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.max_output_tokens = max_output_tokens
        self.temperature = temperature
        self.timeout = timeout

    def completion_kwargs(
        self, system_prompt: str | None, messages: list[dict], registry: ToolRegistry
    ) -> dict:
        kwargs: dict = dict(
            model=self.model,
            messages=to_litellm_messages(system_prompt, messages),
            max_tokens=self.max_output_tokens,
            timeout=self.timeout,
        )
        tools = registry.function_specs()
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        for key, val in [
            ("api_key", self.api_key),
            ("api_base", self.base_url),
            ("temperature", self.temperature),
        ]:
            if val is not None:
                kwargs[key] = val
        return kwargs

    def generate(
        self, system_prompt: str | None, messages: list[dict], registry: ToolRegistry
    ) -> ModelResponse:
        """Call the model once. Raises AgentError on any provider failure."""
        import litellm

        litellm.suppress_debug_info = True

        kwargs = self.completion_kwargs(system_prompt, messages, registry)
        logger.debug(
            "calling %s with %d messages and %d tools",
            self.model,
            len(kwargs["messages"]),
            len(kwargs.get("tools", [])),
        )
        try:
            response = litellm.completion(**kwargs)
        except Exception as e:
            raise AgentError(f"LLM call failed: {e}") from e

        if not response.choices:
            raise AgentError("LLM call failed: response has no choices")
        choice = response.choices[0]
        logger.debug("finish_reason=%s", getattr(choice, "finish_reason", None))
        return parse_response(choice.message)
