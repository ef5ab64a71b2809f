"""Natural-language to shell command resolution.

Intents are tried in a fixed order and the first matcher whose predicate
fires produces the command. There is deliberately no scoring across
categories: a phrase that could mean two things resolves to whichever
matcher comes first. Explicit file-object phrases ("delete file ...",
"create folder ...") sit ahead of the project intents so that a file named
``build.log`` cannot be hijacked by the build matcher.
"""

from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from codemind_terminal.services.project import ProjectContext
from codemind_terminal.services.risk import RiskClassifier
from codemind_terminal.storage.models import ResolvedCommand, RiskLevel

logger = logging.getLogger(__name__)

Handler = Callable[["CommandResolver", str, ProjectContext], "ResolvedCommand | None"]

_I = re.IGNORECASE
_QUOTES = "\"'"

GENERIC_PACKAGE_WORDS = frozenset({"dependencies", "deps", "packages", "package", "requirements", "all", "everything"})


@dataclass(frozen=True)
class IntentMatcher:
    name: str
    predicate: re.Pattern[str]
    handler: Handler

    def matches(self, lowered: str) -> bool:
        return self.predicate.search(lowered) is not None


def _strip_quotes(value: str) -> str:
    return value.strip().strip(_QUOTES)


def _quote(value: str, platform: str) -> str:
    value = _strip_quotes(value)
    if platform == "windows":
        return f'"{value}"' if " " in value else value
    return shlex.quote(value)


def _sed_escape(value: str) -> str:
    return re.sub(r"([/&\\])", r"\\\1", value)


class _Dialect:
    """Literal shell primitives for one OS family."""

    def __init__(self, platform: str) -> None:
        self.platform = platform
        self.windows = platform == "windows"

    def q(self, value: str) -> str:
        return _quote(value, self.platform)

    def cat(self, path: str) -> str:
        return f"type {self.q(path)}" if self.windows else f"cat {self.q(path)}"

    def touch(self, path: str) -> str:
        return f"type nul > {self.q(path)}" if self.windows else f"touch {self.q(path)}"

    def write(self, path: str, content: str) -> str:
        if self.windows:
            return f"echo {_strip_quotes(content)} > {self.q(path)}"
        return f"echo {shlex.quote(_strip_quotes(content))} > {self.q(path)}"

    def replace(self, path: str, old: str, new: str) -> str:
        old, new = _strip_quotes(old), _strip_quotes(new)
        if self.windows:
            target = self.q(path)
            return (
                f"powershell -Command \"(Get-Content {target}) -replace '{old}', '{new}' "
                f'| Set-Content {target}"'
            )
        expression = shlex.quote(f"s/{_sed_escape(old)}/{_sed_escape(new)}/g")
        in_place = "-i ''" if self.platform == "macos" else "-i"
        return f"sed {in_place} {expression} {self.q(path)}"

    def remove(self, path: str) -> str:
        return f"del {self.q(path)}" if self.windows else f"rm {self.q(path)}"

    def remove_tree(self, path: str) -> str:
        return f"rmdir /s /q {self.q(path)}" if self.windows else f"rm -rf {self.q(path)}"

    def move(self, source: str, dest: str) -> str:
        verb = "move" if self.windows else "mv"
        return f"{verb} {self.q(source)} {self.q(dest)}"

    def copy(self, source: str, dest: str) -> str:
        if self.windows:
            return f"xcopy /e /i {self.q(source)} {self.q(dest)}"
        return f"cp -r {self.q(source)} {self.q(dest)}"

    def grep(self, text: str, location: str) -> str:
        if self.windows:
            return f'findstr /s /i "{_strip_quotes(text)}" {self.q(location)}'
        return f"grep -r {shlex.quote(_strip_quotes(text))} {self.q(location)}"

    def find(self, pattern: str) -> str:
        if self.windows:
            return f"dir /s /b {self.q(pattern)}"
        return f"find . -name {shlex.quote(_strip_quotes(pattern))}"

    def ls(self, directory: str) -> str:
        return f"dir {self.q(directory)}" if self.windows else f"ls -lah {self.q(directory)}"

    def mkdir(self, path: str) -> str:
        return f"mkdir {self.q(path)}" if self.windows else f"mkdir -p {self.q(path)}"


# --- Handlers -------------------------------------------------------------


def _delete_file(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    m = re.search(r"(?:delete|remove|rm)\s+(?:the\s+)?(?:file\s+)?(.+)", text, _I)
    path = m.group(1).strip() if m else ""
    return r.build(
        _Dialect(ctx.platform).remove(path), f"DELETE file: {path}", "delete_file", text, destructive=True
    )


def _delete_folder(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    m = re.search(r"(?:delete|remove|rm)\s+(?:the\s+)?(?:folder|directory|dir)\s+(.+)", text, _I)
    path = m.group(1).strip() if m else ""
    return r.build(
        _Dialect(ctx.platform).remove_tree(path),
        f"DELETE folder recursively: {path}",
        "delete_folder",
        text,
        destructive=True,
    )


def _mkdir(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    m = re.search(r"(?:create\s+(?:a\s+)?(?:new\s+)?folder|mkdir)\s+(.+)", text, _I)
    path = m.group(1).strip() if m else "newfolder"
    return r.build(_Dialect(ctx.platform).mkdir(path), f"Create folder: {path}", "mkdir", text)


def _read_file(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    m = re.search(r"(?:read|show|display|cat|view)\s+(?:the\s+)?(?:file\s+|contents?\s+(?:of\s+)?)?(.+)", text, _I)
    path = m.group(1).strip() if m else ""
    return r.build(_Dialect(ctx.platform).cat(path), f"Read file: {path}", "read_file", text)


def _edit_file(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    dialect = _Dialect(ctx.platform)
    m = re.search(r"edit\s+(?:file\s+)?(.+?)\s+replace\s+(.+?)\s+with\s+(.+)", text, _I)
    if m:
        path, old, new = (g.strip() for g in m.groups())
        return r.build(
            dialect.replace(path, old, new),
            f'Replace "{_strip_quotes(old)}" with "{_strip_quotes(new)}" in {path}',
            "edit_file",
            text,
            destructive=True,
        )

    m = re.search(r"edit\s+(?:file\s+)?(.+)", text, _I)
    path = m.group(1).strip() if m else ""
    return r.build(dialect.cat(path), f"View {path} for editing (use a specific replace command)", "edit_file", text)


def _create_file(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    dialect = _Dialect(ctx.platform)
    m = re.search(r"create\s+(?:a\s+)?(?:new\s+)?file\s+(\S+)\s+(?:with\s+)?(?:content\s+)?(.+)", text, _I)
    if m:
        path, content = m.group(1), m.group(2)
        return r.build(dialect.write(path, content), f"Create file {path} with content", "create_file", text)

    m = re.search(r"create\s+(?:a\s+)?(?:new\s+)?file\s+(.+)", text, _I)
    path = m.group(1).strip() if m else "newfile.txt"
    return r.build(dialect.touch(path), f"Create empty file: {path}", "create_file", text)


def _touch(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    m = re.search(r"touch\s+(.+)", text, _I)
    path = m.group(1).strip() if m else "newfile.txt"
    return r.build(_Dialect(ctx.platform).touch(path), f"Create file: {path}", "create_file", text)


def _move(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    m = re.search(r"(?:move|mv|rename)\s+(.+?)\s+(?:to\s+)?(\S+)$", text, _I)
    if not m:
        return r.passthrough(text)
    source, dest = m.group(1).strip(), m.group(2).strip()
    return r.build(_Dialect(ctx.platform).move(source, dest), f"Move/rename {source} -> {dest}", "move", text)


def _copy(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    m = re.search(r"(?:copy|cp)\s+(.+?)\s+(?:to\s+)?(\S+)$", text, _I)
    if not m:
        return r.passthrough(text)
    source, dest = m.group(1).strip(), m.group(2).strip()
    return r.build(_Dialect(ctx.platform).copy(source, dest), f"Copy {source} -> {dest}", "copy", text)


def _search(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    dialect = _Dialect(ctx.platform)
    m = re.search(r"(?:search|grep|find)\s+(?:for\s+)?([\"']?)(.+?)\1\s+in\s+(.+)", text, _I)
    if m:
        needle, location = m.group(2), m.group(3).strip()
        return r.build(dialect.grep(needle, location), f'Search for "{needle}" in {location}', "search", text)

    m = re.search(r"find\s+files?\s+(?:named|called|matching)\s+(.+)", text, _I)
    if m:
        pattern = m.group(1).strip()
        return r.build(dialect.find(pattern), f"Find files matching: {pattern}", "search", text)

    return r.passthrough(text)


def _list(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    m = re.search(r"(?:list|ls|show)\s+files(?:\s+in)?\s*(.*)", text, _I)
    directory = (m.group(1).strip() if m else "") or "."
    return r.build(_Dialect(ctx.platform).ls(directory), f"List files in: {directory}", "list", text)


def _install(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    stack = ctx.stack
    pm = stack.package_manager
    package = None
    m = re.search(r"\b(?:install|add)\s+(?:the\s+)?(?:package\s+)?([\w@./:=<>~^-]+)", text, _I)
    if m and m.group(1).lower() not in GENERIC_PACKAGE_WORDS:
        package = m.group(1)

    if stack.primary == "python":
        if package:
            command = f"poetry add {package}" if pm == "poetry" else f"pip install {package}"
        elif pm == "poetry":
            command = "poetry install"
        else:
            command = "pip install -r requirements.txt"
        return r.build(command, "Install Python dependencies", "install", text)
    if stack.primary == "maven":
        return r.build("mvn install", "Install Maven dependencies", "install", text)
    if stack.is_php:
        command = f"composer require {package}" if package else "composer install"
        return r.build(command, "Install Composer dependencies", "install", text)
    if stack.primary == "rust":
        command = f"cargo add {package}" if package else "cargo fetch"
        return r.build(command, "Install Cargo dependencies", "install", text)
    if stack.primary == "go":
        command = f"go get {package}" if package else "go mod download"
        return r.build(command, "Install Go modules", "install", text)

    if package:
        command = f"npm install {package}" if pm == "npm" else f"{pm} add {package}"
        return r.build(command, f"Add {package} using {pm}", "install", text)
    return r.build(f"{pm} install", f"Install dependencies using {pm}", "install", text)


def _build(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    stack = ctx.stack
    if stack.is_node:
        scripts = ctx.package_scripts()
        if "build" in scripts:
            pm = stack.package_manager
            return r.build(f"{pm} run build", f"Build project using {pm} (script: {scripts['build']})", "build", text)
    if stack.primary == "maven":
        return r.build("mvn package", "Build Maven project", "build", text)
    if stack.primary == "python":
        return r.build("python -m build", "Build Python package", "build", text)
    if stack.primary == "rust":
        return r.build("cargo build", "Build Cargo project", "build", text)
    if stack.primary == "go":
        return r.build("go build ./...", "Build Go module", "build", text)
    return r.build("npm run build", "Build project (fallback)", "build", text)


def _dev(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    stack = ctx.stack
    if stack.is_node:
        scripts = ctx.package_scripts()
        pm = stack.package_manager
        if "dev" in scripts:
            return r.build(f"{pm} run dev", f"Start development server ({scripts['dev']})", "dev", text)
        if "start" in scripts:
            return r.build(f"{pm} start", f"Start application ({scripts['start']})", "dev", text)
        if "serve" in scripts:
            return r.build(f"{pm} run serve", f"Serve application ({scripts['serve']})", "dev", text)

    if stack.primary == "python":
        if ctx.has_file("manage.py"):
            return r.build("python manage.py runserver", "Start Django development server", "dev", text)
        scripts = ctx.python_scripts()
        for name in ("dev", "start"):
            if name in scripts:
                return r.build(f"poetry run {name}", "Start development server", "dev", text)

    if stack.is_php:
        return r.build("php artisan serve", "Start Laravel development server", "dev", text)
    if stack.primary == "rust":
        return r.build("cargo run", "Run Cargo project", "dev", text)
    if stack.primary == "go":
        return r.build("go run .", "Run Go module", "dev", text)
    return r.build("npm run dev", "Start development server (fallback)", "dev", text)


def _test(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    stack = ctx.stack
    if stack.is_node:
        scripts = ctx.package_scripts()
        if "test" in scripts:
            pm = stack.package_manager
            return r.build(f"{pm} test", f"Run tests ({scripts['test']})", "test", text)
    if stack.primary == "maven":
        return r.build("mvn test", "Run Maven tests", "test", text)
    if stack.primary == "python":
        return r.build("pytest", "Run Python tests with pytest", "test", text)
    if stack.is_php:
        return r.build("php artisan test", "Run Laravel tests", "test", text)
    if stack.primary == "rust":
        return r.build("cargo test", "Run Cargo tests", "test", text)
    if stack.primary == "go":
        return r.build("go test ./...", "Run Go tests", "test", text)
    return r.build("npm test", "Run tests (fallback)", "test", text)


def _script(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand | None:
    m = re.search(r"(?:run|execute|start)\s+(?:script\s+)?([\w:-]+)", text, _I)
    if not m:
        return None
    name = m.group(1)
    stack = ctx.stack

    if stack.is_node:
        scripts = ctx.package_scripts()
        if name in scripts:
            pm = stack.package_manager
            return r.build(f"{pm} run {name}", f"Run '{name}' script: {scripts[name]}", "script", text)
    if stack.is_php:
        scripts = ctx.composer_scripts()
        if name in scripts:
            return r.build(f"composer run-script {name}", f"Run composer script: {scripts[name]}", "script", text)
    if stack.primary == "python":
        scripts = ctx.python_scripts()
        if name in scripts:
            return r.build(f"poetry run {name}", f"Run Python script: {scripts[name]}", "script", text)
    if stack.primary == "maven" and name in ctx.maven_goals():
        return r.build(f"mvn {name}", f"Run Maven goal: {name}", "script", text)

    logger.info("No script named '%s' in %s", name, ctx.root)
    return None


SCAFFOLDS: list[tuple[str, str, str]] = [
    (r"\bnext(\.?js)?\b", "npx create-next-app@latest .", "Create Next.js project"),
    (r"\bnest(js)?\b", "npx @nestjs/cli new .", "Create NestJS project"),
    (r"\breact\b", "npx create-react-app .", "Create React project"),
    (r"\bvite\b", "npm create vite@latest .", "Create Vite project"),
    (r"\bdjango\b", "django-admin startproject app .", "Create Django project"),
    (r"\blaravel\b", "composer create-project laravel/laravel .", "Create Laravel project"),
]


def _scaffold(r: CommandResolver, text: str, ctx: ProjectContext) -> ResolvedCommand:
    for pattern, command, description in SCAFFOLDS:
        if re.search(pattern, text, _I):
            return r.build(command, description, "scaffold", text, always_confirm=True)
    return r.passthrough(text)


def _m(name: str, pattern: str, handler: Handler) -> IntentMatcher:
    return IntentMatcher(name, re.compile(pattern), handler)


INTENT_TABLE: list[IntentMatcher] = [
    _m("delete_file", r"\b(?:delete|remove|rm)\s+(?:the\s+)?file\b", _delete_file),
    _m("delete_folder", r"\b(?:delete|remove|rm)\s+(?:the\s+)?(?:folder|directory|dir)\b", _delete_folder),
    _m("mkdir", r"\bcreate\s+(?:a\s+)?(?:new\s+)?folder\b|\bmkdir\b", _mkdir),
    _m("read_file", r"\b(?:read|show|display|cat|view)\s+(?:the\s+)?(?:file|contents?)\b", _read_file),
    _m("edit_file", r"\bedit\s+(?:file|content)\b|\breplace\s+in\s+file\b", _edit_file),
    _m("create_file", r"\bcreate\s+(?:a\s+)?(?:new\s+)?file\b", _create_file),
    _m("touch", r"^touch\s+", _touch),
    _m("move", r"^(?:please\s+)?(?:move|mv|rename)\s+", _move),
    _m("copy", r"^(?:please\s+)?(?:copy|cp)\s+", _copy),
    _m("search", r"\b(?:search|grep)\s+(?:for|in)\b|\bfind\s+files?\b", _search),
    _m("list", r"\b(?:list|ls|show)\s+files\b", _list),
    _m("install", r"\b(?:install|dependencies|deps)\b", _install),
    _m("build", r"\b(?:build|compile)\b", _build),
    _m("dev", r"\b(?:dev|start|serve|development|server)\b", _dev),
    _m("test", r"\b(?:tests?|spec)\b", _test),
    _m("script", r"\b(?:run|execute|start)\s+\w+", _script),
    _m("scaffold", r"\b(?:create|generate|scaffold)\b|\bnew\s+project\b", _scaffold),
]


class CommandResolver:
    """Resolve free-form instructions into literal shell commands."""

    def __init__(
        self,
        classifier: RiskClassifier | None = None,
        matchers: list[IntentMatcher] | None = None,
        cache_ttl: float = 60.0,
        platform: str | None = None,
    ) -> None:
        self.classifier = classifier or RiskClassifier()
        self.matchers = list(INTENT_TABLE if matchers is None else matchers)
        self.cache_ttl = cache_ttl
        self.platform = platform
        self._contexts: dict[Path, ProjectContext] = {}

    def context_for(self, root: str | Path) -> ProjectContext:
        """Return the cached project context for `root`, creating it on first use."""
        key = Path(root).expanduser().resolve()
        ctx = self._contexts.get(key)
        if ctx is None:
            ctx = ProjectContext(key, platform=self.platform, cache_ttl=self.cache_ttl)
            self._contexts[key] = ctx
        return ctx

    def clear_cache(self) -> None:
        for ctx in self._contexts.values():
            ctx.clear_cache()

    def resolve(self, text: str, context: ProjectContext) -> ResolvedCommand | None:
        """Map `text` to a command.

        Returns None only when a named-script request names a script the
        project does not define.
        """
        text = text.strip()
        if not text:
            return None
        lowered = text.lower()

        for matcher in self.matchers:
            if matcher.matches(lowered):
                logger.debug("Intent '%s' matched: %s", matcher.name, text)
                return matcher.handler(self, text, context)

        return self.passthrough(text)

    def passthrough(self, text: str) -> ResolvedCommand:
        return self.build(text, "", "passthrough", text)

    def build(
        self,
        command: str,
        description: str,
        intent: str,
        source_text: str,
        always_confirm: bool = False,
        destructive: bool = False,
    ) -> ResolvedCommand:
        """Classify `command` and apply the confirmation floor.

        `destructive` marks irreversible operations: they are flagged dangerous
        and always confirmed whatever the classifier says.
        """
        risk = self.classifier.assess(command)
        is_dangerous = (
            destructive
            or risk is RiskLevel.DANGEROUS
            or self.classifier.assess(source_text) is RiskLevel.DANGEROUS
        )
        return ResolvedCommand(
            command=command,
            description=description,
            is_dangerous=is_dangerous,
            requires_confirmation=is_dangerous or always_confirm,
            risk_level=risk,
            intent=intent,
        )
