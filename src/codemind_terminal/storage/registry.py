"""In-memory store of tracked commands, keyed by command id."""

from __future__ import annotations

import logging

from codemind_terminal.storage.models import Command, CommandStatus

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Authoritative map of command id to Command.

    Entries are only removed by an explicit cleanup call, so finished commands
    stay inspectable until the caller clears them.
    """

    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, command_id: object) -> bool:
        return command_id in self._commands

    def add(self, command: Command) -> None:
        if command.id in self._commands:
            raise ValueError(f"Duplicate command id: {command.id}")
        self._commands[command.id] = command

    def get(self, command_id: str) -> Command | None:
        return self._commands.get(command_id)

    def all(self) -> list[Command]:
        return list(self._commands.values())

    def running(self) -> list[Command]:
        return [cmd for cmd in self._commands.values() if cmd.status is CommandStatus.RUNNING]

    def clear_completed(self) -> list[str]:
        """Evict every command in a terminal state. Returns the evicted ids."""
        evicted = [cid for cid, cmd in self._commands.items() if cmd.is_terminal]
        for cid in evicted:
            del self._commands[cid]
        if evicted:
            logger.debug("Evicted %d finished commands", len(evicted))
        return evicted

    def clear(self) -> None:
        self._commands.clear()
