"""Tests for the fmt module (ANSI-formatted output helpers)."""

from io import StringIO

from rich.console import Console

from cinch import fmt


def _capture(func, *args, **kwargs):
    """Call a fmt function with a captured console and return plain-text output."""
    buf = StringIO()
    old = fmt._console
    fmt._console = Console(file=buf, no_color=True, width=80)
    try:
        func(*args, **kwargs)
    finally:
        fmt._console = old
    return buf.getvalue()


class TestLlmSpinner:
    def test_is_context_manager(self):
        def spin():
            with fmt.llm_spinner() as status:
                assert "Thinking" in str(status.status)

        _capture(spin)

    def test_custom_label(self):
        def spin():
            with fmt.llm_spinner("Waiting for model") as status:
                assert "Waiting for model" in str(status.status)

        _capture(spin)


class TestToolCall:
    def test_basic(self):
        out = _capture(fmt.tool_call, "read_file", '{\n  "path": "a.txt"\n}')
        assert "Using tool: read_file" in out
        assert '"path": "a.txt"' in out

    def test_empty_args(self):
        out = _capture(fmt.tool_call, "list_files", "")
        assert "list_files" in out


class TestToolResult:
    def test_basic(self):
        out = _capture(fmt.tool_result, "read_file", "File content of a.txt")
        assert "read_file" in out
        assert "Tool result:" in out
        assert "File content of a.txt" in out

    def test_long_result_truncated(self):
        out = _capture(fmt.tool_result, "read_file", "x" * (fmt.MAX_PREVIEW + 100))
        assert "(truncated)" in out
        assert "x" * (fmt.MAX_PREVIEW + 1) not in out.replace("\n", "").replace(" ", "")

    def test_empty_result(self):
        out = _capture(fmt.tool_result, "list_files", "")
        assert "list_files" in out


class TestDiagnostics:
    def test_error(self):
        out = _capture(fmt.error, "Tool missing_tool not found.")
        assert "Error:" in out
        assert "Tool missing_tool not found." in out

    def test_warning(self):
        out = _capture(fmt.warning, "history limit must be at least 1")
        assert "Warning:" in out

    def test_info(self):
        assert "hello" in _capture(fmt.info, "hello")

    def test_model_info(self):
        assert "Using model m" in _capture(fmt.model_info, "Using model m")

    def test_banner(self):
        assert "Interactive mode" in _capture(fmt.repl_banner)


class TestMarkupEscaping:
    """Dynamic text containing Rich markup brackets should appear literally."""

    def test_brackets_in_tool_call_args(self):
        out = _capture(fmt.tool_call, "edit_file", '{"new_str": "[bold]not bold[/]"}')
        assert "[bold]not bold[/]" in out

    def test_brackets_in_tool_result(self):
        out = _capture(fmt.tool_result, "read_file", "list[int]")
        assert "list[int]" in out

    def test_brackets_in_error(self):
        out = _capture(fmt.error, "unexpected [tag] in response")
        assert "[tag]" in out


class TestInit:
    def test_no_color(self):
        old = fmt._console
        fmt.init(no_color=True)
        assert fmt._console._color_system is None
        fmt._console = old

    def test_color_overrides_no_color_env(self, monkeypatch):
        """--color must explicitly set no_color=False so it overrides NO_COLOR env."""
        monkeypatch.setenv("NO_COLOR", "1")
        old = fmt._console
        fmt.init(color=True)
        assert fmt._console.no_color is False
        fmt._console = old
