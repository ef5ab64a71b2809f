"""Tests for console formatting utilities."""

from __future__ import annotations

from codemind_terminal.storage.models import CommandStatus, OutputLine, OutputStream, RiskLevel
from codemind_terminal.utils.formatting import (
    format_completion,
    format_duration,
    format_output_line,
    risk_label,
    status_label,
    truncate,
)


class TestFormatDuration:
    def test_milliseconds(self):
        assert format_duration(500) == "500ms"

    def test_seconds(self):
        assert format_duration(2500) == "2.5s"

    def test_minutes(self):
        assert format_duration(125000) == "2m 5s"

    def test_zero(self):
        assert format_duration(0) == "0ms"


class TestTruncate:
    def test_short(self):
        assert truncate("ls", 10) == "ls"

    def test_long(self):
        result = truncate("a" * 100, 10)
        assert len(result) == 10
        assert result.endswith("...")


class TestLabels:
    def test_status_label(self):
        assert status_label(CommandStatus.FAILED) == "[red]failed[/red]"

    def test_status_label_from_string(self):
        assert status_label("completed") == "[green]completed[/green]"

    def test_risk_label(self):
        assert risk_label(RiskLevel.DANGEROUS) == "[bold red]dangerous[/bold red]"


class TestFormatOutput:
    def test_stdout_line(self):
        assert format_output_line(OutputLine("hello", OutputStream.STDOUT)) == "hello"

    def test_stderr_line(self):
        assert format_output_line(OutputLine("boom", OutputStream.STDERR)) == "! boom"

    def test_completion_ok(self):
        assert format_completion(CommandStatus.COMPLETED, 0, 1500) == "[OK] 1.5s"

    def test_completion_failed(self):
        assert format_completion(CommandStatus.FAILED, 3, 20) == "[FAILED(3)] 20ms"

    def test_completion_unverified(self):
        assert format_completion(CommandStatus.COMPLETED, 0, 1000, verified=False).endswith("(unverified)")
