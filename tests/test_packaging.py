"""Tests for the project metadata in pyproject.toml."""

import tomllib
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def _project() -> dict:
    with open(ROOT / "pyproject.toml", "rb") as f:
        return tomllib.load(f)["project"]


class TestProjectMetadata:
    def test_readme_is_user_documentation(self):
        readme = _project()["readme"]
        assert readme == "README.md"
        text = (ROOT / readme).read_text(encoding="utf-8")
        assert text.startswith("# cinch")
        assert "cinch.session import Session" in text

    def test_readme_lists_repl_commands(self):
        text = (ROOT / _project()["readme"]).read_text(encoding="utf-8")
        for command in ("/help", "/tools", "/config", "/clear", "/history"):
            assert command in text
