"""Visible terminal surfaces.

A surface runs a command where the user can watch it, but gives the
supervisor no access to its output or exit status.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from codemind_terminal.utils.system import signal_process, spawn_shell

logger = logging.getLogger(__name__)


class TerminalSurface(Protocol):
    async def launch(self, command: str, cwd: str, env: dict[str, str] | None = None) -> int:
        """Start `command` visibly and return its pid."""
        ...

    def dispose(self) -> None:
        """Release every resource held by the surface."""
        ...


class InheritedStdioSurface:
    """Runs commands attached to the host process's own terminal."""

    def __init__(self, name: str = "CodeMind AI Terminal") -> None:
        self.name = name
        self._processes: list[asyncio.subprocess.Process] = []

    async def launch(self, command: str, cwd: str, env: dict[str, str] | None = None) -> int:
        proc = await spawn_shell(command, cwd=cwd, env=env, capture=False)
        self._processes = [p for p in self._processes if p.returncode is None]
        self._processes.append(proc)
        logger.info("[%s] launched pid %d: %s", self.name, proc.pid, command)
        return proc.pid

    async def wait_all(self) -> None:
        """Wait until every launched process has exited on its own."""
        await asyncio.gather(*(proc.wait() for proc in self._processes if proc.returncode is None))

    def dispose(self) -> None:
        for proc in self._processes:
            signal_process(proc, force=False, group=False)
        self._processes.clear()
