"""CLI entry point using typer."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import signal
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from codemind_terminal import __version__
from codemind_terminal.config import CONFIG_FILE, PLATFORMS, AppConfig, load_config, save_config
from codemind_terminal.errors import CodeMindError, PermissionDeniedError
from codemind_terminal.services.events import CompleteEvent, OutputEvent
from codemind_terminal.services.executor import ClassifiedAction, CommandExecutor, PermissionDecision
from codemind_terminal.services.risk import RiskClassifier
from codemind_terminal.services.supervisor import ProcessSupervisor
from codemind_terminal.services.terminal import InheritedStdioSurface
from codemind_terminal.storage.database import close_db, get_recent_commands, init_db, save_command
from codemind_terminal.storage.models import CommandStatus, Location, RiskLevel
from codemind_terminal.utils.formatting import (
    format_completion,
    format_duration,
    format_output_line,
    risk_label,
    status_label,
    truncate,
)
from codemind_terminal.utils.system import check_project_dir, detect_platform

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="codemind-terminal",
    help="Resolve, classify and run project commands under supervision.",
    add_completion=False,
)
console = Console()


class ConsolePermissionGate:
    """Asks on the console before running anything that needs confirmation."""

    def __init__(self, assume_yes: bool = False) -> None:
        self.assume_yes = assume_yes

    async def request_permission(self, action: ClassifiedAction) -> PermissionDecision:
        if not action.requires_confirmation and action.risk_level is not RiskLevel.DANGEROUS:
            return PermissionDecision("allow")

        console.print(f"\n[bold]{escape(action.description or 'Command')}[/bold]")
        console.print(f"  $ {action.command}", markup=False, highlight=False)
        reason = f" ({escape(action.risk_reason)})" if action.risk_reason else ""
        console.print(f"  Risk: {risk_label(action.risk_level)}{reason}")
        if self.assume_yes:
            return PermissionDecision("allow")

        confirmed = await asyncio.to_thread(typer.confirm, "Run this command?", default=False)
        return PermissionDecision("allow") if confirmed else PermissionDecision("deny", "declined at prompt")


def _load() -> AppConfig:
    try:
        return load_config()
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(1)


def _setup_logging(cfg: AppConfig, verbose: bool) -> None:
    log_path = Path(cfg.logging.file).expanduser().resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    level = logging.DEBUG if verbose else getattr(logging, cfg.logging.level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(str(log_path)),
            *([logging.StreamHandler()] if verbose else []),
        ],
    )


async def _run_command(
    cfg: AppConfig,
    text: str,
    cwd: str | None,
    location: Location,
    assume_yes: bool,
    timeout: float | None,
) -> int:
    if cfg.storage.enabled:
        await init_db(cfg.storage.db_path)

    surface = InheritedStdioSurface(cfg.supervisor.terminal_name)
    supervisor = ProcessSupervisor(cfg, surface=surface)
    executor = CommandExecutor(supervisor, gate=ConsolePermissionGate(assume_yes))
    loop = asyncio.get_running_loop()
    try:
        result = await executor.submit(text, cwd=cwd, location=location, timeout=timeout)
        stream = supervisor.open_stream(result.command_id)
        console.print(f"[dim]$ {escape(result.resolved.command)}[/dim]", highlight=False)

        # Ctrl+C stops the command instead of tearing down the loop.
        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, supervisor.stop, result.command_id)

        completion: CompleteEvent | None = None
        async for event in stream:
            if isinstance(event, OutputEvent):
                console.print(format_output_line(event.line), markup=False, highlight=False)
            elif isinstance(event, CompleteEvent):
                completion = event

        if completion is None:
            return 1

        if location is Location.TERMINAL:
            await surface.wait_all()

        style = "green" if completion.status is CommandStatus.COMPLETED else "red"
        summary = format_completion(completion.status, completion.exit_code, completion.duration_ms, completion.verified)
        console.print(f"[{style}]{escape(summary)}[/{style}]")

        command = supervisor.get_command(result.command_id)
        if cfg.storage.enabled and command is not None:
            await save_command(command, completion.duration_ms)
        return completion.exit_code
    finally:
        if sys.platform != "win32":
            loop.remove_signal_handler(signal.SIGINT)
        supervisor.shutdown()
        await supervisor.wait_closed()
        await close_db()


@app.command()
def run(
    text: str = typer.Argument(..., help="Instruction or literal shell command"),
    cwd: str = typer.Option(None, "--cwd", "-C", help="Working directory (default: project root)"),
    terminal: bool = typer.Option(False, "--terminal", "-t", help="Run attached to this terminal, uncaptured"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    timeout: float = typer.Option(None, "--timeout", help="Fail-safe timeout in seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to the console as well"),
) -> None:
    """Resolve an instruction and run it under supervision."""
    cfg = _load()
    _setup_logging(cfg, verbose)

    if cwd is not None:
        valid, resolved = check_project_dir(cwd)
        if not valid:
            console.print(f"[red]{resolved}[/red]")
            raise typer.Exit(1)
        cwd = resolved

    location = Location.TERMINAL if terminal else Location.BACKGROUND
    try:
        exit_code = asyncio.run(_run_command(cfg, text, cwd, location, yes, timeout))
    except PermissionDeniedError as e:
        console.print(f"[yellow]{escape(str(e))}[/yellow]")
        raise typer.Exit(1)
    except CodeMindError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    raise typer.Exit(exit_code if 0 <= exit_code < 256 else 1)


@app.command()
def resolve(
    text: str = typer.Argument(..., help="Instruction to resolve"),
    cwd: str = typer.Option(None, "--cwd", "-C", help="Project directory (default: project root)"),
) -> None:
    """Show the command an instruction resolves to, without running it."""
    cfg = _load()
    executor = CommandExecutor(ProcessSupervisor(cfg))
    resolved, action = executor.preview(text, cwd)

    table = Table(title="Resolved Command", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("command", escape(resolved.command))
    table.add_row("intent", resolved.intent)
    table.add_row("description", escape(resolved.description) or "-")
    table.add_row("risk", risk_label(action.risk_level))
    table.add_row("dangerous", str(resolved.is_dangerous))
    table.add_row("confirmation", "required" if resolved.requires_confirmation else "not required")
    table.add_row("cwd", action.cwd)
    console.print(table)


@app.command()
def classify(command: str = typer.Argument(..., help="Literal shell command")) -> None:
    """Classify the risk of a literal shell command."""
    level, reason = RiskClassifier().explain(command)
    console.print(f"{risk_label(level)}" + (f": {reason}" if reason else ""))


async def _load_history(cfg: AppConfig, limit: int) -> list:
    await init_db(cfg.storage.db_path)
    try:
        return await get_recent_commands(limit)
    finally:
        await close_db()


@app.command()
def history(limit: int = typer.Option(10, "--limit", "-n", help="Number of entries")) -> None:
    """Show recently finished commands."""
    cfg = _load()
    records = asyncio.run(_load_history(cfg, limit))
    if not records:
        console.print("[dim]No command history.[/dim]")
        return

    table = Table(title="Command History")
    table.add_column("When", style="dim")
    table.add_column("Command", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Risk")
    table.add_column("Exit", justify="right")
    table.add_column("Time", justify="right")
    for record in records:
        table.add_row(
            record.created_at,
            escape(truncate(record.command)),
            status_label(record.status),
            risk_label(record.risk_level),
            "-" if record.exit_code is None else str(record.exit_code),
            format_duration(record.execution_time_ms),
        )
    console.print(table)


@app.command()
def config(
    key: str = typer.Argument(None, help="Config key (e.g., supervisor.failsafe_timeout)"),
    value: str = typer.Argument(None, help="New value"),
) -> None:
    """View or modify configuration."""
    cfg = _load()
    sections = {f.name: getattr(cfg, f.name) for f in dataclasses.fields(cfg)}

    if key is None:
        table = Table(title="Configuration")
        table.add_column("Key", style="cyan", no_wrap=True)
        table.add_column("Value", style="green")
        for name, section in sections.items():
            for f in dataclasses.fields(section):
                current = getattr(section, f.name)
                table.add_row(f"{name}.{f.name}", str(current) if current != "" else "(auto)")
        console.print(table)
        return

    if value is None:
        console.print("[red]Usage: codemind-terminal config <key> <value>[/red]")
        raise typer.Exit(1)

    parts = key.split(".")
    if len(parts) != 2:
        console.print("[red]Key format: section.key (e.g., supervisor.failsafe_timeout)[/red]")
        raise typer.Exit(1)

    section_name, attr = parts
    if section_name not in sections:
        console.print(f"[red]Unknown section: {section_name}[/red]")
        raise typer.Exit(1)

    obj = sections[section_name]
    if not hasattr(obj, attr):
        console.print(f"[red]Unknown key: {key}[/red]")
        raise typer.Exit(1)

    # Type coercion
    current = getattr(obj, attr)
    try:
        if isinstance(current, bool):
            typed_value = value.lower() in ("true", "1", "yes")
        elif isinstance(current, float):
            typed_value = float(value)
        elif isinstance(current, int):
            typed_value = int(value)
        else:
            typed_value = value
    except ValueError:
        console.print(f"[red]Invalid value type for {key}[/red]")
        raise typer.Exit(1)

    if key == "resolver.platform" and typed_value and typed_value not in PLATFORMS:
        console.print(f"[red]Platform must be one of: {', '.join(PLATFORMS)}[/red]")
        raise typer.Exit(1)

    setattr(obj, attr, typed_value)
    save_config(cfg)
    console.print(f"[green]{key} = {typed_value}[/green]")


@app.command()
def logs(lines: int = typer.Option(50, "--lines", "-n", help="Number of lines")) -> None:
    """View the log file."""
    cfg = _load()
    log_path = Path(cfg.logging.file).expanduser().resolve()
    if not log_path.exists():
        console.print("[dim]No log file found.[/dim]")
        return

    content = log_path.read_text()
    for line in content.strip().split("\n")[-lines:]:
        console.print(line, markup=False, highlight=False)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"codemind-terminal v{__version__}")
    console.print(f"Python: {sys.version.split()[0]}")
    console.print(f"Platform: {detect_platform()}")
    console.print(f"Config: {CONFIG_FILE}")


if __name__ == "__main__":
    app()
