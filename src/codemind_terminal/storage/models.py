"""Data models for codemind-terminal."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class CommandStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (CommandStatus.COMPLETED, CommandStatus.FAILED, CommandStatus.STOPPED)


class RiskLevel(str, Enum):
    SAFE = "safe"
    MODERATE = "moderate"
    DANGEROUS = "dangerous"


class Location(str, Enum):
    """Which execution strategy owns a command."""

    BACKGROUND = "background"
    TERMINAL = "terminal"


class OutputStream(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


_TRANSITIONS: dict[CommandStatus, frozenset[CommandStatus]] = {
    CommandStatus.PENDING: frozenset({CommandStatus.RUNNING, CommandStatus.FAILED}),
    CommandStatus.RUNNING: frozenset({CommandStatus.COMPLETED, CommandStatus.FAILED, CommandStatus.STOPPED}),
    CommandStatus.COMPLETED: frozenset(),
    CommandStatus.FAILED: frozenset(),
    CommandStatus.STOPPED: frozenset(),
}


def new_command_id() -> str:
    return f"cmd_{uuid.uuid4().hex[:12]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OutputLine:
    """A single line of command output."""

    content: str
    stream: OutputStream
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "stream": self.stream.value,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Command:
    """One submitted, tracked execution attempt."""

    literal_command: str
    working_directory: str
    risk_level: RiskLevel
    location: Location = Location.BACKGROUND
    id: str = field(default_factory=new_command_id)
    status: CommandStatus = CommandStatus.PENDING
    start_time: datetime = field(default_factory=utcnow)
    end_time: datetime | None = None
    exit_code: int | None = None
    pid: int | None = None
    output: list[OutputLine] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    def can_transition(self, status: CommandStatus) -> bool:
        return status in _TRANSITIONS[self.status]

    def append_output(self, line: OutputLine) -> bool:
        """Append a line unless the command already reached a terminal state."""
        if self.is_terminal:
            return False
        self.output.append(line)
        return True

    def lines(self, stream: OutputStream | None = None) -> list[str]:
        return [line.content for line in self.output if stream is None or line.stream is stream]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "command": self.literal_command,
            "cwd": self.working_directory,
            "status": self.status.value,
            "riskLevel": self.risk_level.value,
            "location": self.location.value,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "exitCode": self.exit_code,
            "pid": self.pid,
            "output": [line.to_dict() for line in self.output],
        }


@dataclass
class ResolvedCommand:
    """Literal shell text produced from a free-form instruction."""

    command: str
    description: str = ""
    is_dangerous: bool = False
    requires_confirmation: bool = False
    risk_level: RiskLevel = RiskLevel.SAFE
    intent: str = "passthrough"


@dataclass
class CommandRecord:
    """A stored command history entry."""

    id: int = 0
    command_id: str = ""
    command: str = ""
    cwd: str = ""
    status: str = ""
    risk_level: str = ""
    location: str = ""
    exit_code: int | None = None
    execution_time_ms: int = 0
    output: str = ""
    created_at: str = ""
