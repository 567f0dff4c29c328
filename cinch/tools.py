"""Tool contract, tool registry and the built-in file tools.

Every tool returns a string. Failures are reported as strings starting with
``Error`` so the model can read them and adapt; nothing raises past the tool
boundary.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class Tool:
    """A named unit of work the model can invoke.

    ``input_model`` is a pydantic model: its JSON schema documents the tool
    for the model, and it validates the raw input before ``execute`` runs.
    """

    name: str
    description: str
    input_model: type[BaseModel]
    execute: Callable[[BaseModel], str]

    def input_schema(self) -> dict:
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        return schema

    def validate(self, raw_input: dict) -> BaseModel:
        """Validate raw model-supplied input. Raises pydantic.ValidationError."""
        return self.input_model.model_validate(raw_input)

    def function_spec(self) -> dict:
        """Return the OpenAI-style function definition for this tool."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema(),
            },
        }


class ToolRegistry:
    """Tools keyed by name, in registration order."""

    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"duplicate tool name: {tool.name!r}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def function_specs(self) -> list[dict]:
        return [tool.function_spec() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


def _describe(exc: Exception) -> str:
    """Human-readable error text without the errno/filename decoration."""
    if isinstance(exc, OSError) and exc.strerror:
        return exc.strerror
    return str(exc)


# ---------------------------------------------------------------------------
# read_file
# ---------------------------------------------------------------------------


class ReadFileInput(BaseModel):
    path: str = Field(
        description="The relative path of a file in the working directory."
    )


def _read_file(path: str) -> str:
    """Read a text file and return it inside a fenced block.

    Bytes that are not valid UTF-8 are replaced with U+FFFD.
    """
    try:
        with open(path, encoding="utf-8", errors="replace", newline="") as f:
            content = f.read()
    except FileNotFoundError:
        return f'Error: File not found at path "{path}"'
    except OSError as exc:
        return f'Error reading file "{path}": {_describe(exc)}'
    return f"File content of {path}:\n```\n{content}\n```"


# ---------------------------------------------------------------------------
# list_files
# ---------------------------------------------------------------------------


class ListFilesInput(BaseModel):
    path: str = Field(
        default=".",
        description=(
            "Optional relative path to list files from. "
            "Defaults to current directory if not provided."
        ),
    )


def _list_files(path: str = ".") -> str:
    """List directory entries, suffixing subdirectories with '/'.

    Entries keep the order the OS returns them in.
    """
    try:
        with os.scandir(path) as it:
            names = [
                entry.name + "/" if entry.is_dir() else entry.name for entry in it
            ]
    except FileNotFoundError:
        return f"Error: Path not found - {path}"
    except OSError as exc:
        return f"Error listing files: {_describe(exc)}"
    return "\n".join(names)


# ---------------------------------------------------------------------------
# edit_file
# ---------------------------------------------------------------------------

INVALID_EDIT_PARAMS = (
    "Error: Invalid input parameters. Path cannot be empty, "
    "and old_str must be different from new_str."
)


class EditFileInput(BaseModel):
    path: str = Field(description="The path to the file.")
    old_str: str = Field(
        description=(
            "Text to search for - must match exactly and must only have one "
            "match exactly."
        )
    )
    new_str: str = Field(description="Text to replace old_str with")


def _create_file(path: str, content: str) -> str:
    dir_name = os.path.dirname(path)
    if dir_name and dir_name != ".":
        try:
            os.makedirs(dir_name, exist_ok=True)
        except OSError as exc:
            return f"Error: Failed to create directory {dir_name}. {_describe(exc)}"
    try:
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
    except OSError as exc:
        return f"Error: Failed to write file {path}. {_describe(exc)}"
    return f"File created: {path}"


def _edit_file(path: str, old_str: str, new_str: str) -> str:
    """Replace the first occurrence of old_str, or create the file with new_str."""
    if not path or old_str == new_str:
        return INVALID_EDIT_PARAMS

    try:
        with open(path, encoding="utf-8", newline="") as f:
            old_content = f.read()
    except FileNotFoundError:
        return _create_file(path, new_str)
    except (OSError, UnicodeDecodeError) as exc:
        return f"Error: Failed to read file {path}. {_describe(exc)}"

    new_content = old_content.replace(old_str, new_str, 1)
    if new_content == old_content and old_str != "":
        return f"Error: '{old_str}' not found in file {path}."

    try:
        Path(path).write_text(new_content, encoding="utf-8", newline="")
    except OSError as exc:
        return f"Error: Failed to write file {path}. {_describe(exc)}"
    return f"File edited: {path}"


# ---------------------------------------------------------------------------
# Built-in tool set
# ---------------------------------------------------------------------------

READ_FILE_TOOL = Tool(
    name="read_file",
    description=(
        "Read the contents of a given relative file path. Use this when you want "
        "to see what's inside a file. Do not use this with directory names."
    ),
    input_model=ReadFileInput,
    execute=lambda args: _read_file(args.path),
)

LIST_FILES_TOOL = Tool(
    name="list_files",
    description=(
        "List files and directories at a given path. If no path is provided, "
        "lists files in the current directory."
    ),
    input_model=ListFilesInput,
    execute=lambda args: _list_files(args.path),
)

EDIT_FILE_TOOL = Tool(
    name="edit_file",
    description=(
        "Make edits to a text file.\n"
        "Replaces 'old_str' with 'new_str' in the given file. 'old_str' and "
        "'new_str' MUST be different from each other.\n"
        "If the file specified with path doesn't exist, it will be created."
    ),
    input_model=EditFileInput,
    execute=lambda args: _edit_file(args.path, args.old_str, args.new_str),
)

TOOLS = [READ_FILE_TOOL, LIST_FILES_TOOL, EDIT_FILE_TOOL]


def default_registry() -> ToolRegistry:
    """Return a fresh registry holding the built-in file tools."""
    return ToolRegistry(TOOLS)
