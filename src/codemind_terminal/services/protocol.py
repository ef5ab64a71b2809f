"""Inbound action messages from the UI or agent layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

from codemind_terminal.errors import CodeMindError, UnknownCommandError
from codemind_terminal.services.executor import CommandExecutor
from codemind_terminal.storage.models import Location

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunCommand:
    text: str
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    location: Location = Location.BACKGROUND


@dataclass(frozen=True)
class StopCommand:
    command_id: str


@dataclass(frozen=True)
class GetCommand:
    command_id: str


@dataclass(frozen=True)
class GetRunningCommands:
    pass


@dataclass(frozen=True)
class GetProjectStack:
    pass


@dataclass(frozen=True)
class CreateFile:
    path: str
    content: str


@dataclass(frozen=True)
class CreateFolder:
    path: str


AgentAction = Union[RunCommand, StopCommand, GetCommand, GetRunningCommands, GetProjectStack, CreateFile, CreateFolder]


def _str(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    return value if isinstance(value, str) else None


def parse_agent_action(payload: Any) -> AgentAction | None:
    """Validate an untrusted payload. Returns None when it is not a known, well-formed action."""
    if not isinstance(payload, dict):
        return None
    action = payload.get("action")

    if action == "runCommand":
        text = _str(payload, "command") or _str(payload, "text")
        if text is None:
            return None
        env = payload.get("env") or {}
        if not isinstance(env, dict) or not all(isinstance(k, str) and isinstance(v, str) for k, v in env.items()):
            return None
        try:
            location = Location(payload.get("location", Location.BACKGROUND.value))
        except ValueError:
            return None
        return RunCommand(text=text, cwd=_str(payload, "cwd"), env=env, location=location)
    if action in ("stopCommand", "getCommand"):
        command_id = _str(payload, "commandId")
        if command_id is None:
            return None
        return StopCommand(command_id) if action == "stopCommand" else GetCommand(command_id)
    if action == "getRunningCommands":
        return GetRunningCommands()
    if action == "getProjectStack":
        return GetProjectStack()
    if action == "createFile":
        path, content = _str(payload, "path"), _str(payload, "content")
        if path is None or content is None:
            return None
        return CreateFile(path, content)
    if action == "createFolder":
        path = _str(payload, "path")
        return CreateFolder(path) if path is not None else None
    return None


def _workspace_path(root: Path, relative: str) -> Path:
    root = root.resolve()
    target = (root / relative).resolve()
    if not target.is_relative_to(root):
        raise CodeMindError(f"Path escapes the workspace: {relative}")
    return target


class ActionDispatcher:
    """Turns parsed actions into calls on the executor and supervisor.

    Every reply is a plain dict with an ``ok`` flag; failures never raise.
    """

    def __init__(self, executor: CommandExecutor) -> None:
        self.executor = executor
        self.supervisor = executor.supervisor

    async def dispatch(self, payload: Any) -> dict:
        action = parse_agent_action(payload)
        if action is None:
            return {"ok": False, "error": "Invalid action payload"}
        try:
            return await self._handle(action)
        except CodeMindError as e:
            logger.warning("Action %s failed: %s", type(action).__name__, e)
            return {"ok": False, "error": str(e)}
        except OSError as e:
            logger.error("Action %s failed on the filesystem: %s", type(action).__name__, e)
            return {"ok": False, "error": str(e)}

    async def _handle(self, action: AgentAction) -> dict:
        root = self.supervisor.config.project_root()

        if isinstance(action, RunCommand):
            result = await self.executor.submit(
                action.text, cwd=action.cwd, env=action.env or None, location=action.location
            )
            return {
                "ok": True,
                "commandId": result.command_id,
                "command": result.resolved.command,
                "riskLevel": result.action.risk_level.value,
                "verified": action.location is Location.BACKGROUND,
            }
        if isinstance(action, StopCommand):
            return {"ok": self.supervisor.stop(action.command_id), "commandId": action.command_id}
        if isinstance(action, GetCommand):
            command = self.supervisor.get_command(action.command_id)
            if command is None:
                raise UnknownCommandError(action.command_id)
            return {"ok": True, "command": command.to_dict()}
        if isinstance(action, GetRunningCommands):
            return {"ok": True, "commands": [cmd.to_dict() for cmd in self.supervisor.get_running()]}
        if isinstance(action, GetProjectStack):
            return {"ok": True, "stack": self.executor.resolver.context_for(root).stack.to_dict()}
        if isinstance(action, CreateFile):
            target = _workspace_path(root, action.path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(action.content, encoding="utf-8")
            return {"ok": True, "path": str(target)}
        if isinstance(action, CreateFolder):
            target = _workspace_path(root, action.path)
            target.mkdir(parents=True, exist_ok=True)
            return {"ok": True, "path": str(target)}
        return {"ok": False, "error": "Unsupported action"}
