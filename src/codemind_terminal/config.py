"""Configuration management using TOML + environment variables."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]

import tomli_w

CONFIG_DIR = Path.home() / ".codemind-terminal"
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOG_FILE = CONFIG_DIR / "codemind.log"

PLATFORMS = ("linux", "macos", "windows")


@dataclass
class SupervisorConfig:
    failsafe_timeout: float = 300.0
    stop_grace_period: float = 5.0
    terminal_complete_delay: float = 1.0
    drain_timeout: float = 2.0
    terminal_name: str = "CodeMind AI Terminal"


@dataclass
class ResolverConfig:
    cache_ttl: float = 60.0
    platform: str = ""  # empty = detect from the running interpreter


@dataclass
class ProjectConfig:
    root: str = ""  # empty = current working directory


@dataclass
class StorageConfig:
    db_path: str = "~/.codemind-terminal/history.db"
    enabled: bool = True


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    file: str = "~/.codemind-terminal/codemind.log"


@dataclass
class AppConfig:
    supervisor: SupervisorConfig = field(default_factory=SupervisorConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    project: ProjectConfig = field(default_factory=ProjectConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def project_root(self) -> Path:
        """The default working directory for commands."""
        if self.project.root:
            return Path(self.project.root).expanduser().resolve()
        return Path.cwd()


def ensure_config_dir() -> None:
    """Create config directory with secure permissions."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    os.chmod(CONFIG_DIR, 0o700)


def load_config() -> AppConfig:
    """Load configuration from TOML file with env var overrides."""
    config = AppConfig()

    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "rb") as f:
            data = tomllib.load(f)

        supervisor = data.get("supervisor", {})
        config.supervisor.failsafe_timeout = supervisor.get("failsafe_timeout", config.supervisor.failsafe_timeout)
        config.supervisor.stop_grace_period = supervisor.get("stop_grace_period", config.supervisor.stop_grace_period)
        config.supervisor.terminal_complete_delay = supervisor.get(
            "terminal_complete_delay", config.supervisor.terminal_complete_delay
        )
        config.supervisor.drain_timeout = supervisor.get("drain_timeout", config.supervisor.drain_timeout)
        config.supervisor.terminal_name = supervisor.get("terminal_name", config.supervisor.terminal_name)

        resolver = data.get("resolver", {})
        config.resolver.cache_ttl = resolver.get("cache_ttl", config.resolver.cache_ttl)
        config.resolver.platform = resolver.get("platform", config.resolver.platform)

        project = data.get("project", {})
        config.project.root = project.get("root", config.project.root)

        storage = data.get("storage", {})
        config.storage.db_path = storage.get("db_path", config.storage.db_path)
        config.storage.enabled = storage.get("enabled", config.storage.enabled)

        logging_cfg = data.get("logging", {})
        config.logging.level = logging_cfg.get("level", config.logging.level)
        config.logging.file = logging_cfg.get("file", config.logging.file)

    # Environment variable overrides
    if env_failsafe := os.environ.get("CODEMIND_FAILSAFE_TIMEOUT"):
        config.supervisor.failsafe_timeout = float(env_failsafe)
    if env_grace := os.environ.get("CODEMIND_STOP_GRACE"):
        config.supervisor.stop_grace_period = float(env_grace)
    if env_root := os.environ.get("CODEMIND_PROJECT_ROOT"):
        config.project.root = env_root
    if env_platform := os.environ.get("CODEMIND_PLATFORM"):
        config.resolver.platform = env_platform
    if env_ttl := os.environ.get("CODEMIND_CACHE_TTL"):
        config.resolver.cache_ttl = float(env_ttl)
    if env_db := os.environ.get("CODEMIND_DB_PATH"):
        config.storage.db_path = env_db
    if env_log_level := os.environ.get("CODEMIND_LOG_LEVEL"):
        config.logging.level = env_log_level

    if config.resolver.platform and config.resolver.platform not in PLATFORMS:
        raise ValueError(f"Unknown platform '{config.resolver.platform}', expected one of {', '.join(PLATFORMS)}")

    return config


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML file."""
    ensure_config_dir()

    data = {
        "supervisor": {
            "failsafe_timeout": config.supervisor.failsafe_timeout,
            "stop_grace_period": config.supervisor.stop_grace_period,
            "terminal_complete_delay": config.supervisor.terminal_complete_delay,
            "drain_timeout": config.supervisor.drain_timeout,
            "terminal_name": config.supervisor.terminal_name,
        },
        "resolver": {
            "cache_ttl": config.resolver.cache_ttl,
            "platform": config.resolver.platform,
        },
        "project": {
            "root": config.project.root,
        },
        "storage": {
            "db_path": config.storage.db_path,
            "enabled": config.storage.enabled,
        },
        "logging": {
            "level": config.logging.level,
            "file": config.logging.file,
        },
    }

    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(data, f)

    os.chmod(CONFIG_FILE, 0o600)


# Global singleton
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or load the global config singleton."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Reset the global config (for testing)."""
    global _config
    _config = None
