"""Console formatting helpers for commands and their output."""

from __future__ import annotations

from codemind_terminal.storage.models import CommandStatus, OutputLine, OutputStream, RiskLevel

STATUS_STYLES = {
    CommandStatus.PENDING: "dim",
    CommandStatus.RUNNING: "cyan",
    CommandStatus.COMPLETED: "green",
    CommandStatus.FAILED: "red",
    CommandStatus.STOPPED: "yellow",
}

RISK_STYLES = {
    RiskLevel.SAFE: "green",
    RiskLevel.MODERATE: "yellow",
    RiskLevel.DANGEROUS: "bold red",
}


def format_duration(ms: int) -> str:
    """Format milliseconds to human-readable duration."""
    if ms < 1000:
        return f"{ms}ms"
    elif ms < 60000:
        return f"{ms / 1000:.1f}s"
    else:
        minutes = ms // 60000
        seconds = (ms % 60000) // 1000
        return f"{minutes}m {seconds}s"


def truncate(text: str, max_len: int = 60) -> str:
    """Shorten `text` to at most `max_len` characters, marking the cut."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def status_label(status: CommandStatus | str) -> str:
    """Rich markup for a command status."""
    status = CommandStatus(status)
    return f"[{STATUS_STYLES[status]}]{status.value}[/{STATUS_STYLES[status]}]"


def risk_label(level: RiskLevel | str) -> str:
    """Rich markup for a risk level."""
    level = RiskLevel(level)
    return f"[{RISK_STYLES[level]}]{level.value}[/{RISK_STYLES[level]}]"


def format_output_line(line: OutputLine) -> str:
    """Prefix stderr lines so they stand out in plain text."""
    if line.stream is OutputStream.STDERR:
        return f"! {line.content}"
    return line.content


def format_completion(status: CommandStatus, exit_code: int, duration_ms: int, verified: bool = True) -> str:
    """One-line summary printed when a command finishes."""
    icon = "OK" if status is CommandStatus.COMPLETED else f"{status.value.upper()}({exit_code})"
    summary = f"[{icon}] {format_duration(duration_ms)}"
    if not verified:
        summary += " (unverified)"
    return summary
