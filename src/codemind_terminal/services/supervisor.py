"""Process supervisor: spawns, tracks, times out and stops shell commands."""

from __future__ import annotations

import asyncio
import codecs
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from codemind_terminal.config import AppConfig
from codemind_terminal.errors import SpawnError, SupervisorClosedError
from codemind_terminal.services.events import (
    CommandEvent,
    CompleteEvent,
    EventStream,
    Observer,
    OutputEvent,
    StatusEvent,
)
from codemind_terminal.services.risk import RiskClassifier
from codemind_terminal.services.terminal import InheritedStdioSurface, TerminalSurface
from codemind_terminal.storage.models import (
    Command,
    CommandStatus,
    Location,
    OutputLine,
    OutputStream,
    RiskLevel,
    utcnow,
)
from codemind_terminal.storage.registry import CommandRegistry
from codemind_terminal.utils.system import describe_returncode, signal_process, spawn_shell

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096


class LineSplitter:
    """Turns raw output chunks into non-blank lines.

    Each chunk is split on its own, so text without a trailing newline is
    emitted as soon as it arrives. Only an incomplete multi-byte character is
    carried over to the next chunk.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    @staticmethod
    def _split(text: str) -> list[str]:
        return [line.rstrip("\r") for line in text.split("\n") if line.strip()]

    def feed(self, chunk: bytes | str) -> list[str]:
        return self._split(chunk if isinstance(chunk, str) else self._decoder.decode(chunk))

    def flush(self) -> list[str]:
        return self._split(self._decoder.decode(b"", final=True))


@dataclass
class ExecutionOptions:
    cwd: str | None = None
    env: dict[str, str] | None = None
    location: Location = Location.BACKGROUND
    timeout: float | None = None
    risk_level: RiskLevel | None = None


@dataclass
class _Execution:
    """Runtime state of one in-flight command."""

    command: Command
    process: asyncio.subprocess.Process | None = None
    stop_requested: bool = False
    timers: list[asyncio.TimerHandle] = field(default_factory=list)
    task: asyncio.Task | None = None

    def cancel_timers(self) -> None:
        for timer in self.timers:
            timer.cancel()
        self.timers.clear()


class ProcessSupervisor:
    """Runs shell commands as supervised child processes.

    All state is touched only from the event loop thread: spawning, output
    pumping, timers and exit handling are tasks and callbacks on that loop,
    so per-command transitions are strictly sequenced.

    Visible-terminal commands are handed to a `TerminalSurface`. The surface
    exposes neither output nor exit status, so such commands are reported
    `completed` after `terminal_complete_delay` seconds with
    ``CompleteEvent.verified = False``. That status is optimistic.
    """

    def __init__(
        self,
        config: AppConfig,
        registry: CommandRegistry | None = None,
        classifier: RiskClassifier | None = None,
        surface: TerminalSurface | None = None,
    ) -> None:
        self.config = config
        self.registry = registry if registry is not None else CommandRegistry()
        self.classifier = classifier or RiskClassifier()
        self.surface: TerminalSurface = surface or InheritedStdioSurface(config.supervisor.terminal_name)
        self._executions: dict[str, _Execution] = {}
        self._done: dict[str, asyncio.Event] = {}
        self._tasks: set[asyncio.Task] = set()
        self._observers: list[Observer] = []
        self._closed = False

    # --- Observers -------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register `observer` for every event. Returns an unsubscribe callable."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def open_stream(self, command_id: str) -> EventStream:
        """Async iterator over the events of one command."""
        stream = EventStream(command_id, self.subscribe)
        command = self.registry.get(command_id)
        if command is None or command.is_terminal:
            stream.close()
        return stream

    def _emit(self, event: CommandEvent) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("Observer failed on %s", type(event).__name__)

    # --- Submission ------------------------------------------------------

    def execute(self, literal_command: str, options: ExecutionOptions | None = None) -> str:
        """Register a command and schedule its execution. Returns the command id.

        Must be called from a running event loop; the process is spawned
        asynchronously and progress is reported through events.
        """
        if self._closed:
            raise SupervisorClosedError("Supervisor has been shut down")
        options = options or ExecutionOptions()
        loop = asyncio.get_running_loop()

        cwd = options.cwd or str(self.config.project_root())
        command = Command(
            literal_command=literal_command,
            working_directory=str(Path(cwd).expanduser().resolve()),
            risk_level=options.risk_level or self.classifier.assess(literal_command),
            location=options.location,
        )
        self.registry.add(command)
        self._done[command.id] = asyncio.Event()
        execution = _Execution(command=command)
        self._executions[command.id] = execution

        logger.info("Executing command %s: %s in %s", command.id, literal_command, command.working_directory)

        if options.location is Location.TERMINAL:
            coro = self._run_in_terminal(execution, options.env)
        else:
            coro = self._run_in_background(execution, options.env, self._failsafe_seconds(options.timeout))
        task = loop.create_task(coro, name=f"supervise-{command.id}")
        execution.task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return command.id

    def _failsafe_seconds(self, timeout: float | None) -> float:
        # Non-positive or missing values cannot disarm the fail-safe.
        if timeout is None or timeout <= 0:
            return self.config.supervisor.failsafe_timeout
        return timeout

    # --- Background strategy ---------------------------------------------

    async def _run_in_background(self, execution: _Execution, env: dict[str, str] | None, timeout: float) -> None:
        command = execution.command
        try:
            proc = await spawn_shell(command.literal_command, cwd=command.working_directory, env=env)
        except SpawnError as e:
            logger.error("Failed to spawn command %s: %s", command.id, e)
            self._add_output(command, f"Error: {e}", OutputStream.STDERR)
            self._finish(command, CommandStatus.FAILED, exit_code=1)
            return

        try:
            execution.process = proc
            if self._closed:
                execution.stop_requested = True
                signal_process(proc)
            self._mark_running(command, proc.pid)

            loop = asyncio.get_running_loop()
            execution.timers.append(loop.call_later(timeout, self._on_failsafe, execution, timeout))

            readers = [
                asyncio.create_task(self._pump(command, proc.stdout, OutputStream.STDOUT)),
                asyncio.create_task(self._pump(command, proc.stderr, OutputStream.STDERR)),
            ]
            returncode = await proc.wait()
            _, pending = await asyncio.wait(readers, timeout=self.config.supervisor.drain_timeout)
            for reader in pending:
                reader.cancel()
            self._on_exit(execution, returncode)
        except Exception as e:
            logger.exception("Supervision of command %s failed", command.id)
            signal_process(proc, force=True)
            self._add_output(command, f"Error: {e}", OutputStream.STDERR)
            self._finish(command, CommandStatus.FAILED, exit_code=1)

    async def _pump(self, command: Command, stream: asyncio.StreamReader | None, tag: OutputStream) -> None:
        if stream is None:
            return
        splitter = LineSplitter()
        while chunk := await stream.read(CHUNK_SIZE):
            for line in splitter.feed(chunk):
                self._add_output(command, line, tag)
        for line in splitter.flush():
            self._add_output(command, line, tag)

    def _on_exit(self, execution: _Execution, returncode: int) -> None:
        command = execution.command
        logger.info("Process exit for command %s: returncode=%s", command.id, returncode)
        if command.is_terminal:
            return

        if execution.stop_requested:
            self._add_output(command, f"Stopped ({describe_returncode(returncode)})", OutputStream.STDERR)
            self._finish(command, CommandStatus.STOPPED, returncode)
        elif returncode == 0:
            self._finish(command, CommandStatus.COMPLETED, 0)
        else:
            self._add_output(command, describe_returncode(returncode), OutputStream.STDERR)
            self._finish(command, CommandStatus.FAILED, returncode)

    def _on_failsafe(self, execution: _Execution, timeout: float) -> None:
        command = execution.command
        if command.is_terminal:
            return
        logger.error("Fail-safe timeout reached for command %s", command.id)
        if execution.process is not None:
            try:
                signal_process(execution.process, force=True)
            except OSError:
                logger.exception("Failed to kill process for command %s", command.id)
        self._add_output(command, f"Error: Command timed out after {timeout:g}s", OutputStream.STDERR)
        self._finish(command, CommandStatus.FAILED, exit_code=1)

    # --- Visible terminal strategy ---------------------------------------

    async def _run_in_terminal(self, execution: _Execution, env: dict[str, str] | None) -> None:
        command = execution.command
        try:
            pid = await self.surface.launch(command.literal_command, command.working_directory, env)
        except (SpawnError, OSError, ValueError) as e:
            logger.error("Failed to open terminal for command %s: %s", command.id, e)
            self._add_output(command, f"Error: {e}", OutputStream.STDERR)
            self._finish(command, CommandStatus.FAILED, exit_code=1)
            return

        self._mark_running(command, pid)
        if self._closed:
            self._close_terminal(command)
            return

        loop = asyncio.get_running_loop()
        execution.timers.append(
            loop.call_later(self.config.supervisor.terminal_complete_delay, self._assume_completed, command)
        )

    def _assume_completed(self, command: Command) -> None:
        self._finish(command, CommandStatus.COMPLETED, exit_code=0, verified=False)

    def _close_terminal(self, command: Command) -> None:
        self._add_output(command, "Terminal closed", OutputStream.STDERR)
        self._finish(command, CommandStatus.STOPPED, exit_code=1, verified=False)

    # --- State transitions -----------------------------------------------

    def _mark_running(self, command: Command, pid: int) -> None:
        command.pid = pid
        command.start_time = utcnow()
        command.started_at = time.monotonic()
        command.status = CommandStatus.RUNNING
        self._emit(StatusEvent(command.id, CommandStatus.RUNNING, pid))

    def _add_output(self, command: Command, content: str, stream: OutputStream) -> None:
        line = OutputLine(content=content, stream=stream)
        if command.append_output(line):
            self._emit(OutputEvent(command.id, line))

    def _finish(self, command: Command, status: CommandStatus, exit_code: int, verified: bool = True) -> bool:
        """Record the single terminal transition. Later calls are no-ops."""
        if command.is_terminal or not command.can_transition(status):
            return False

        command.status = status
        command.exit_code = exit_code
        command.end_time = utcnow()
        command.pid = None
        duration_ms = command.duration_ms

        execution = self._executions.pop(command.id, None)
        if execution is not None:
            execution.cancel_timers()
        done = self._done.get(command.id)
        if done is not None:
            done.set()

        logger.info("Command %s %s with code %s", command.id, status.value, exit_code)
        self._emit(StatusEvent(command.id, status))
        self._emit(CompleteEvent(command.id, exit_code, duration_ms, status, verified))
        return True

    # --- Control & queries -----------------------------------------------

    def stop(self, command_id: str) -> bool:
        """Ask a running command to terminate: SIGTERM, then SIGKILL after the grace period.

        Returns False, without any state change, for unknown or non-running
        commands and for terminal-surface commands the supervisor cannot signal.
        """
        command = self.registry.get(command_id)
        if command is None:
            logger.warning("Command %s not found", command_id)
            return False
        if command.status is not CommandStatus.RUNNING:
            logger.warning("Command %s is not running", command_id)
            return False

        execution = self._executions.get(command_id)
        if execution is None or execution.process is None:
            return False
        if execution.stop_requested:
            return True

        logger.info("Stopping command %s (PID: %s)", command_id, execution.process.pid)
        execution.stop_requested = True
        signal_process(execution.process)
        loop = asyncio.get_running_loop()
        execution.timers.append(
            loop.call_later(self.config.supervisor.stop_grace_period, self._escalate, execution)
        )
        return True

    def _escalate(self, execution: _Execution) -> None:
        if execution.command.is_terminal or execution.process is None:
            return
        logger.warning("Force killing command %s", execution.command.id)
        signal_process(execution.process, force=True)

    def get_command(self, command_id: str) -> Command | None:
        return self.registry.get(command_id)

    def get_running(self) -> list[Command]:
        return self.registry.running()

    def get_all(self) -> list[Command]:
        return self.registry.all()

    def clear_completed(self) -> int:
        evicted = self.registry.clear_completed()
        for command_id in evicted:
            self._done.pop(command_id, None)
        return len(evicted)

    async def wait_for(self, command_id: str) -> Command | None:
        """Wait until a command reaches a terminal state. None if unknown."""
        command = self.registry.get(command_id)
        done = self._done.get(command_id)
        if command is None or done is None:
            return command
        await done.wait()
        return command

    # --- Disposal --------------------------------------------------------

    def shutdown(self) -> None:
        """Terminate every tracked process and release terminal resources.

        Sends the graceful signal only; the fail-safe timers stay armed.
        Safe to call any number of times.
        """
        for execution in list(self._executions.values()):
            execution.stop_requested = True
            if execution.process is not None:
                logger.info("Disposing command %s", execution.command.id)
                signal_process(execution.process)
            elif execution.command.location is Location.TERMINAL and execution.command.status is CommandStatus.RUNNING:
                self._close_terminal(execution.command)
        self.surface.dispose()
        self.registry.clear()
        if not self._closed:
            logger.info("ProcessSupervisor disposed")
        self._closed = True

    async def wait_closed(self) -> None:
        """Wait for every supervision task to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
