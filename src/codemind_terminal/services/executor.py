"""Command pipeline: resolve, classify, ask permission, execute."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from codemind_terminal.errors import PermissionDeniedError
from codemind_terminal.services.resolver import CommandResolver
from codemind_terminal.services.supervisor import ExecutionOptions, ProcessSupervisor
from codemind_terminal.storage.models import Location, ResolvedCommand, RiskLevel

logger = logging.getLogger(__name__)


@dataclass
class ClassifiedAction:
    """What the permission gate is asked to approve."""

    command: str
    cwd: str
    risk_level: RiskLevel
    requires_confirmation: bool
    description: str = ""
    risk_reason: str = ""


@dataclass
class PermissionDecision:
    decision: str  # "allow" | "deny"
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.decision == "allow"


class PermissionGate(Protocol):
    async def request_permission(self, action: ClassifiedAction) -> PermissionDecision: ...


class StaticPermissionGate:
    """Answers every request the same way, or denies anything needing confirmation."""

    def __init__(self, allow: bool = True, allow_confirmation: bool = True) -> None:
        self.allow = allow
        self.allow_confirmation = allow_confirmation
        self.requests: list[ClassifiedAction] = []

    async def request_permission(self, action: ClassifiedAction) -> PermissionDecision:
        self.requests.append(action)
        if not self.allow:
            return PermissionDecision("deny", "denied by policy")
        if action.requires_confirmation and not self.allow_confirmation:
            return PermissionDecision("deny", "confirmation required")
        return PermissionDecision("allow")


@dataclass
class SubmitResult:
    command_id: str
    resolved: ResolvedCommand
    action: ClassifiedAction


class CommandExecutor:
    """Wires the resolver, the permission gate and the supervisor together."""

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        resolver: CommandResolver | None = None,
        gate: PermissionGate | None = None,
    ) -> None:
        self.supervisor = supervisor
        self.resolver = resolver or CommandResolver(
            classifier=supervisor.classifier,
            cache_ttl=supervisor.config.resolver.cache_ttl,
            platform=supervisor.config.resolver.platform or None,
        )
        self.gate = gate

    def _cwd(self, cwd: str | None) -> str:
        if cwd:
            return str(Path(cwd).expanduser().resolve())
        return str(self.supervisor.config.project_root())

    def preview(self, text: str, cwd: str | None = None) -> tuple[ResolvedCommand, ClassifiedAction]:
        """Resolve and classify without running anything."""
        work_dir = self._cwd(cwd)
        resolved = self.resolver.resolve(text, self.resolver.context_for(work_dir))
        if resolved is None:
            # A named script the project does not define: run the text as typed.
            resolved = self.resolver.passthrough(text)
        level, reason = self.resolver.classifier.explain(resolved.command)
        action = ClassifiedAction(
            command=resolved.command,
            cwd=work_dir,
            risk_level=level,
            requires_confirmation=resolved.requires_confirmation,
            description=resolved.description,
            risk_reason=reason,
        )
        return resolved, action

    async def submit(
        self,
        text: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        location: Location = Location.BACKGROUND,
        timeout: float | None = None,
    ) -> SubmitResult:
        """Run `text` through the whole pipeline. Returns once the command is scheduled.

        Raises PermissionDeniedError when the gate refuses; nothing is executed then.
        """
        resolved, action = self.preview(text, cwd)

        if self.gate is not None:
            decision = await self.gate.request_permission(action)
            if not decision.allowed:
                logger.warning("Command denied: %s", resolved.command)
                raise PermissionDeniedError(resolved.command, decision.reason)
        elif action.requires_confirmation:
            logger.warning("Command requires confirmation but no permission gate is set: %s", resolved.command)
            raise PermissionDeniedError(resolved.command, "no permission gate configured")

        command_id = self.supervisor.execute(
            resolved.command,
            ExecutionOptions(
                cwd=action.cwd,
                env=env,
                location=location,
                timeout=timeout,
                risk_level=action.risk_level,
            ),
        )
        return SubmitResult(command_id=command_id, resolved=resolved, action=action)
