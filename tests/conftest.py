"""Shared test fixtures."""

from __future__ import annotations

import pytest

from codemind_terminal.config import (
    AppConfig,
    LoggingConfig,
    ProjectConfig,
    ResolverConfig,
    StorageConfig,
    SupervisorConfig,
)


@pytest.fixture
def project_dir(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def app_config(tmp_path, project_dir):
    """Create a test configuration with short timers."""
    return AppConfig(
        supervisor=SupervisorConfig(
            failsafe_timeout=10.0,
            stop_grace_period=0.5,
            terminal_complete_delay=0.05,
            drain_timeout=1.0,
            terminal_name="Test Terminal",
        ),
        resolver=ResolverConfig(cache_ttl=60.0, platform="linux"),
        project=ProjectConfig(root=str(project_dir)),
        storage=StorageConfig(db_path=str(tmp_path / "test.db")),
        logging=LoggingConfig(level="DEBUG", file=str(tmp_path / "test.log")),
    )
