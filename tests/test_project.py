"""Tests for project stack detection and manifest readers."""

from __future__ import annotations

import json

import pytest

from codemind_terminal.services.project import ProjectContext, detect_stack


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def write_package_json(root, scripts=None, **deps):
    data = {"name": "demo", "scripts": scripts or {}, "dependencies": deps}
    (root / "package.json").write_text(json.dumps(data))


class TestDetectStack:
    def test_unknown(self, project_dir):
        stack = detect_stack(project_dir)
        assert stack.primary == "unknown"
        assert stack.package_manager == "npm"

    def test_node_with_yarn(self, project_dir):
        write_package_json(project_dir)
        (project_dir / "yarn.lock").write_text("")
        stack = detect_stack(project_dir)
        assert stack.primary == "node"
        assert stack.package_manager == "yarn"

    def test_next(self, project_dir):
        write_package_json(project_dir, next="14.0.0", react="18.0.0")
        stack = detect_stack(project_dir)
        assert stack.primary == "next"
        assert "next" in stack.frameworks
        assert stack.is_node

    def test_pnpm_beats_npm_lock(self, project_dir):
        write_package_json(project_dir)
        (project_dir / "pnpm-lock.yaml").write_text("")
        (project_dir / "package-lock.json").write_text("{}")
        assert detect_stack(project_dir).package_manager == "pnpm"

    def test_django(self, project_dir):
        (project_dir / "manage.py").write_text("")
        stack = detect_stack(project_dir)
        assert stack.primary == "python"
        assert stack.package_manager == "pip"
        assert "django" in stack.frameworks

    def test_poetry(self, project_dir):
        (project_dir / "pyproject.toml").write_text("[tool.poetry]\nname = 'x'\n")
        (project_dir / "poetry.lock").write_text("")
        assert detect_stack(project_dir).package_manager == "poetry"

    def test_laravel(self, project_dir):
        (project_dir / "artisan").write_text("")
        (project_dir / "composer.json").write_text("{}")
        stack = detect_stack(project_dir)
        assert stack.primary == "laravel"
        assert stack.is_php

    @pytest.mark.parametrize(
        "marker, primary",
        [("pom.xml", "maven"), ("Cargo.toml", "rust"), ("go.mod", "go"), ("composer.json", "php")],
    )
    def test_marker_files(self, project_dir, marker, primary):
        (project_dir / marker).write_text("")
        assert detect_stack(project_dir).primary == primary

    def test_malformed_package_json(self, project_dir):
        (project_dir / "package.json").write_text("{not json")
        assert detect_stack(project_dir).primary == "node"


class TestProjectContext:
    def test_package_scripts(self, project_dir):
        write_package_json(project_dir, scripts={"build": "tsc", "dev": "vite"})
        ctx = ProjectContext(project_dir)
        assert ctx.package_scripts() == {"build": "tsc", "dev": "vite"}

    def test_missing_manifest_is_empty(self, project_dir):
        ctx = ProjectContext(project_dir)
        assert ctx.package_scripts() == {}
        assert ctx.composer_scripts() == {}
        assert ctx.python_scripts() == {}

    def test_malformed_json_is_empty(self, project_dir):
        (project_dir / "package.json").write_text("{not json")
        assert ProjectContext(project_dir).package_scripts() == {}

    def test_malformed_toml_is_empty(self, project_dir):
        (project_dir / "pyproject.toml").write_text("[project\nname=")
        assert ProjectContext(project_dir).python_scripts() == {}

    @pytest.mark.parametrize(
        "content",
        [
            'project = "x"\n',
            "tool = 1\n",
            '[tool]\npoetry = "x"\n',
            '[project]\nscripts = ["a", "b"]\n',
        ],
    )
    def test_unexpected_toml_shape_is_empty(self, project_dir, content):
        (project_dir / "pyproject.toml").write_text(content)
        assert ProjectContext(project_dir).python_scripts() == {}

    def test_scripts_not_a_table_is_empty(self, project_dir):
        (project_dir / "package.json").write_text(json.dumps({"scripts": ["build"]}))
        (project_dir / "composer.json").write_text(json.dumps(["scripts"]))
        ctx = ProjectContext(project_dir)
        assert ctx.package_scripts() == {}
        assert ctx.composer_scripts() == {}

    def test_python_scripts_merge_both_tables(self, project_dir):
        (project_dir / "pyproject.toml").write_text(
            '[project.scripts]\nserve = "app:main"\n\n[tool.poetry.scripts]\nlint = "app:lint"\n'
        )
        assert ProjectContext(project_dir).python_scripts() == {"serve": "app:main", "lint": "app:lint"}

    def test_composer_scripts(self, project_dir):
        (project_dir / "composer.json").write_text(json.dumps({"scripts": {"test": "phpunit"}}))
        assert ProjectContext(project_dir).composer_scripts() == {"test": "phpunit"}

    def test_cache_ttl(self, project_dir):
        clock = FakeClock()
        write_package_json(project_dir, scripts={"build": "tsc"})
        ctx = ProjectContext(project_dir, cache_ttl=60.0, clock=clock)
        assert ctx.package_scripts() == {"build": "tsc"}

        write_package_json(project_dir, scripts={"build": "webpack"})
        clock.now += 30
        assert ctx.package_scripts() == {"build": "tsc"}

        clock.now += 31
        assert ctx.package_scripts() == {"build": "webpack"}

    def test_cache_is_per_manifest_kind(self, project_dir):
        clock = FakeClock()
        ctx = ProjectContext(project_dir, clock=clock)
        assert ctx.package_scripts() == {}

        (project_dir / "composer.json").write_text(json.dumps({"scripts": {"lint": "phpcs"}}))
        assert ctx.composer_scripts() == {"lint": "phpcs"}

    def test_clear_cache(self, project_dir):
        ctx = ProjectContext(project_dir, clock=FakeClock())
        assert ctx.package_scripts() == {}
        write_package_json(project_dir, scripts={"build": "tsc"})
        ctx.clear_cache()
        assert ctx.package_scripts() == {"build": "tsc"}
        assert ctx.stack.primary == "node"

    def test_maven_goals(self, project_dir):
        ctx = ProjectContext(project_dir)
        assert ctx.maven_goals() == []
        (project_dir / "pom.xml").write_text("")
        assert "package" in ctx.maven_goals()
