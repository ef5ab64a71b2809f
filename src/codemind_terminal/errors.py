"""Exception types raised to callers of the command pipeline."""

from __future__ import annotations


class CodeMindError(Exception):
    """Base class for all codemind-terminal errors."""


class SpawnError(CodeMindError):
    """The shell or executable could not be started."""


class UnknownCommandError(CodeMindError):
    """A command id is not present in the registry."""

    def __init__(self, command_id: str) -> None:
        super().__init__(f"Unknown command: {command_id}")
        self.command_id = command_id


class PermissionDeniedError(CodeMindError):
    """The permission gate refused to let a command run."""

    def __init__(self, command: str, reason: str = "") -> None:
        super().__init__(f"Command denied by user: {command}" + (f" ({reason})" if reason else ""))
        self.command = command
        self.reason = reason


class SupervisorClosedError(CodeMindError):
    """A command was submitted after the supervisor was shut down."""
