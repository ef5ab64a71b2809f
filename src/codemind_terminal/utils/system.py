"""Platform, shell and signal helpers."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from codemind_terminal.errors import SpawnError

logger = logging.getLogger(__name__)


def detect_platform() -> str:
    """Return 'windows', 'macos' or 'linux' for the running interpreter."""
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


def shell_argv(command: str, platform: str | None = None) -> list[str]:
    """Wrap a literal command for the platform's command interpreter."""
    platform = platform or detect_platform()
    if platform == "windows":
        return ["cmd.exe", "/c", command]
    return ["/bin/sh", "-c", command]


def merge_env(overrides: dict[str, str] | None) -> dict[str, str]:
    """Own environment with caller overrides applied on top."""
    env = dict(os.environ)
    if overrides:
        env.update(overrides)
    return env


async def spawn_shell(
    command: str,
    cwd: str,
    env: dict[str, str] | None = None,
    capture: bool = True,
) -> asyncio.subprocess.Process:
    """Start `command` under the platform shell.

    With `capture`, stdout and stderr are pipes. On POSIX the child leads its
    own process group so signals reach the whole pipeline. Raises SpawnError
    when the shell cannot be started.
    """
    pipe = asyncio.subprocess.PIPE if capture else None
    kwargs: dict = {}
    if os.name == "posix":
        kwargs["start_new_session"] = capture
    try:
        return await asyncio.create_subprocess_exec(
            *shell_argv(command),
            stdin=asyncio.subprocess.DEVNULL if capture else None,
            stdout=pipe,
            stderr=pipe,
            cwd=cwd,
            env=merge_env(env),
            **kwargs,
        )
    except (OSError, ValueError) as e:
        raise SpawnError(str(e)) from e


def signal_process(proc: asyncio.subprocess.Process, force: bool = False, group: bool = True) -> bool:
    """Send a graceful (SIGTERM) or forced (SIGKILL) signal.

    With `group`, targets the process group on POSIX, falling back to the
    process itself. Returns False when the process is already gone.
    """
    if proc.returncode is not None:
        return False
    if group and os.name == "posix":
        sig = signal.SIGKILL if force else signal.SIGTERM
        try:
            os.killpg(proc.pid, sig)
            return True
        except ProcessLookupError:
            return False
        except PermissionError:
            logger.debug("killpg not permitted for pid %d, signalling process only", proc.pid)
    try:
        if force:
            proc.kill()
        else:
            proc.terminate()
    except ProcessLookupError:
        return False
    return True


def describe_returncode(returncode: int) -> str:
    """Human-readable explanation of a process return code."""
    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = f"signal {-returncode}"
        return f"Process terminated by {name}"
    return f"Process exited with code {returncode}"


def check_project_dir(path: str) -> tuple[bool, str]:
    """Validate a project directory path."""
    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        return False, f"Directory not found: {resolved}"
    if not resolved.is_dir():
        return False, f"Not a directory: {resolved}"
    return True, str(resolved)
