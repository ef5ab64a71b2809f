"""Project context: stack detection and cached manifest readers."""

from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]

from codemind_terminal.utils.system import detect_platform

logger = logging.getLogger(__name__)

NODE_STACKS = frozenset({"node", "next", "react"})
PHP_STACKS = frozenset({"php", "laravel"})

# Lock file -> package manager, checked in order.
LOCK_FILES: list[tuple[str, str]] = [
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
    ("bun.lock", "bun"),
    ("package-lock.json", "npm"),
    ("poetry.lock", "poetry"),
]

MAVEN_GOALS = ["clean", "compile", "test", "package", "install", "deploy", "verify"]


@dataclass
class ProjectStack:
    primary: str = "unknown"
    package_manager: str = "npm"
    frameworks: list[str] = field(default_factory=list)

    @property
    def is_node(self) -> bool:
        return self.primary in NODE_STACKS

    @property
    def is_php(self) -> bool:
        return self.primary in PHP_STACKS

    def to_dict(self) -> dict:
        return {"primary": self.primary, "packageManager": self.package_manager, "frameworks": self.frameworks}


def _read_json(path: Path) -> dict:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, dict) else {}


def _string_map(value: object) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if isinstance(v, (str, int, float))}


def _table(data: object, *keys: str) -> object:
    """Walk nested manifest tables, yielding {} once a level is not a table."""
    for key in keys:
        if not isinstance(data, dict):
            return {}
        data = data.get(key, {})
    return data


def detect_stack(root: Path) -> ProjectStack:
    """Inspect marker files under `root` to work out the project stack."""
    stack = ProjectStack()

    package_json = root / "package.json"
    if package_json.is_file():
        stack.primary = "node"
        try:
            data = _read_json(package_json)
        except (OSError, ValueError):
            data = {}
        deps: dict = {}
        for key in ("dependencies", "devDependencies"):
            if isinstance(data.get(key), dict):
                deps.update(data[key])
        if "next" in deps:
            stack.primary = "next"
            stack.frameworks.append("next")
        elif "react" in deps:
            stack.primary = "react"
            stack.frameworks.append("react")
        if "vite" in deps:
            stack.frameworks.append("vite")
    elif (root / "pom.xml").is_file():
        stack.primary = "maven"
    elif (root / "artisan").is_file():
        stack.primary = "laravel"
        stack.frameworks.append("laravel")
    elif (root / "composer.json").is_file():
        stack.primary = "php"
    elif any((root / name).is_file() for name in ("pyproject.toml", "requirements.txt", "setup.py", "manage.py")):
        stack.primary = "python"
        if (root / "manage.py").is_file():
            stack.frameworks.append("django")
    elif (root / "Cargo.toml").is_file():
        stack.primary = "rust"
    elif (root / "go.mod").is_file():
        stack.primary = "go"

    for lock_file, manager in LOCK_FILES:
        if (root / lock_file).is_file():
            if stack.is_node and manager == "poetry":
                continue
            stack.package_manager = manager
            break
    else:
        if stack.primary == "python":
            stack.package_manager = "pip"

    if stack.primary == "python" and stack.package_manager not in ("pip", "poetry"):
        stack.package_manager = "pip"

    return stack


class ProjectContext:
    """Best-effort, cached view of a project's manifests.

    Every manifest reader returns an empty map on any read or parse failure.
    Script maps are cached per manifest kind for `cache_ttl` seconds.
    """

    def __init__(
        self,
        root: str | Path,
        platform: str | None = None,
        cache_ttl: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.platform = platform or detect_platform()
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._cache: dict[str, tuple[dict[str, str], float]] = {}
        self._stack: ProjectStack | None = None

    @property
    def stack(self) -> ProjectStack:
        if self._stack is None:
            self._stack = detect_stack(self.root)
            logger.debug("Detected stack for %s: %s", self.root, self._stack)
        return self._stack

    def has_file(self, name: str) -> bool:
        return (self.root / name).is_file()

    def clear_cache(self) -> None:
        self._cache.clear()
        self._stack = None

    def _cached(self, kind: str, loader: Callable[[Path], dict[str, str]]) -> dict[str, str]:
        now = self._clock()
        hit = self._cache.get(kind)
        if hit is not None and now - hit[1] < self.cache_ttl:
            return hit[0]

        path = self.root / kind
        try:
            scripts = loader(path)
        except FileNotFoundError:
            scripts = {}
        except (OSError, ValueError) as e:
            logger.warning("Failed to read %s: %s", path, e)
            scripts = {}
        else:
            logger.info("Found %d scripts in %s", len(scripts), kind)

        self._cache[kind] = (scripts, now)
        return scripts

    def package_scripts(self) -> dict[str, str]:
        return self._cached("package.json", lambda p: _string_map(_table(_read_json(p), "scripts")))

    def composer_scripts(self) -> dict[str, str]:
        return self._cached("composer.json", lambda p: _string_map(_table(_read_json(p), "scripts")))

    def python_scripts(self) -> dict[str, str]:
        def load(path: Path) -> dict[str, str]:
            with open(path, "rb") as f:
                data = tomllib.load(f)
            scripts = _string_map(_table(data, "project", "scripts"))
            scripts.update(_string_map(_table(data, "tool", "poetry", "scripts")))
            return scripts

        return self._cached("pyproject.toml", load)

    def maven_goals(self) -> list[str]:
        return list(MAVEN_GOALS) if self.has_file("pom.xml") else []
