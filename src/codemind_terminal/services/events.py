"""Events emitted by the process supervisor, and their wire messages."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Union

from codemind_terminal.storage.models import CommandStatus, OutputLine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusEvent:
    command_id: str
    status: CommandStatus
    pid: int | None = None

    def to_message(self) -> dict:
        return {"type": "terminalStatus", "commandId": self.command_id, "status": self.status.value, "pid": self.pid}


@dataclass(frozen=True)
class OutputEvent:
    command_id: str
    line: OutputLine

    def to_message(self) -> dict:
        return {"type": "terminalOutput", "commandId": self.command_id, "output": self.line.to_dict()}


@dataclass(frozen=True)
class CompleteEvent:
    """Emitted exactly once per command.

    `verified` is False for visible-terminal commands, whose completion is
    assumed after a fixed delay rather than observed.
    """

    command_id: str
    exit_code: int
    duration_ms: int
    status: CommandStatus
    verified: bool = True

    def to_message(self) -> dict:
        return {
            "type": "terminalComplete",
            "commandId": self.command_id,
            "exitCode": self.exit_code,
            "duration": self.duration_ms,
            "status": self.status.value,
            "verified": self.verified,
        }


CommandEvent = Union[StatusEvent, OutputEvent, CompleteEvent]
Observer = Callable[[CommandEvent], None]


class EventStream:
    """Async iterator over one command's events, ending after its CompleteEvent.

    Subscribes on construction, so no event emitted after creation is missed.
    """

    def __init__(self, command_id: str, subscribe: Callable[[Observer], Callable[[], None]]) -> None:
        self.command_id = command_id
        self._queue: asyncio.Queue[CommandEvent | None] = asyncio.Queue()
        self._finished = False
        self._unsubscribe = subscribe(self._on_event)

    def _on_event(self, event: CommandEvent) -> None:
        if event.command_id == self.command_id:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._finished:
            self._finished = True
            self._unsubscribe()
            # Wakes a consumer blocked in __anext__.
            self._queue.put_nowait(None)

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> CommandEvent:
        if self._finished and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        if isinstance(event, CompleteEvent):
            self.close()
        return event
