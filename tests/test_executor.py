"""Tests for the resolve, permission and execute pipeline."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from codemind_terminal.errors import PermissionDeniedError
from codemind_terminal.services.executor import CommandExecutor, StaticPermissionGate
from codemind_terminal.services.supervisor import ProcessSupervisor
from codemind_terminal.storage.models import CommandStatus, Location, RiskLevel


@pytest.fixture
def supervisor(app_config):
    sup = ProcessSupervisor(app_config)
    sup.execute = MagicMock(return_value="cmd_test")
    return sup


class TestPreview:
    def test_preview_resolves_and_classifies(self, supervisor, project_dir):
        executor = CommandExecutor(supervisor)
        resolved, action = executor.preview("delete folder dist")

        assert resolved.command == "rm -rf dist"
        assert action.cwd == str(project_dir.resolve())
        assert action.risk_level is RiskLevel.DANGEROUS
        assert action.risk_reason == "Recursive forced deletion"
        assert action.requires_confirmation

    def test_missing_script_falls_back_to_literal(self, supervisor, project_dir):
        (project_dir / "package.json").write_text(json.dumps({"scripts": {"lint": "eslint"}}))
        resolved, _ = CommandExecutor(supervisor).preview("run deploy")
        assert resolved.command == "run deploy"
        assert resolved.intent == "passthrough"

    def test_explicit_cwd(self, supervisor, tmp_path):
        _, action = CommandExecutor(supervisor).preview("list files", cwd=str(tmp_path))
        assert action.cwd == str(tmp_path.resolve())


class TestSubmit:
    @pytest.mark.asyncio
    async def test_allowed(self, supervisor, project_dir):
        gate = StaticPermissionGate()
        executor = CommandExecutor(supervisor, gate=gate)

        result = await executor.submit("run build", env={"CI": "1"}, timeout=30)

        assert result.command_id == "cmd_test"
        assert result.resolved.command == "npm run build"
        assert len(gate.requests) == 1
        literal, options = supervisor.execute.call_args.args
        assert literal == "npm run build"
        assert options.cwd == str(project_dir.resolve())
        assert options.env == {"CI": "1"}
        assert options.timeout == 30
        assert options.location is Location.BACKGROUND
        assert options.risk_level is RiskLevel.SAFE

    @pytest.mark.asyncio
    async def test_denied_never_executes(self, supervisor):
        executor = CommandExecutor(supervisor, gate=StaticPermissionGate(allow=False))

        with pytest.raises(PermissionDeniedError, match="Command denied by user"):
            await executor.submit("echo hi")
        supervisor.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_confirmation_denied(self, supervisor):
        executor = CommandExecutor(supervisor, gate=StaticPermissionGate(allow_confirmation=False))

        with pytest.raises(PermissionDeniedError):
            await executor.submit("delete file config.json")
        await executor.submit("echo hi")
        supervisor.execute.assert_called_once()

    @pytest.mark.asyncio
    async def test_no_gate_refuses_confirmation(self, supervisor):
        executor = CommandExecutor(supervisor)

        with pytest.raises(PermissionDeniedError, match="no permission gate"):
            await executor.submit("sudo reboot")
        supervisor.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_gate_runs_safe(self, supervisor):
        executor = CommandExecutor(supervisor)
        await executor.submit("echo hi", location=Location.TERMINAL)
        _, options = supervisor.execute.call_args.args
        assert options.location is Location.TERMINAL


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_submit_runs_command(self, app_config):
        supervisor = ProcessSupervisor(app_config)
        executor = CommandExecutor(supervisor, gate=StaticPermissionGate())

        result = await executor.submit("echo pipeline")
        command = await supervisor.wait_for(result.command_id)
        await supervisor.wait_closed()

        assert command.status is CommandStatus.COMPLETED
        assert command.lines() == ["pipeline"]
