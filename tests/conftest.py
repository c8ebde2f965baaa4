"""Shared test fixtures: sample findings, Craft project trees, temp git repos."""

from __future__ import annotations

import json
import subprocess
import textwrap
from pathlib import Path

import pytest

from craft_audit.findings.models import Evidence, Finding


@pytest.fixture
def make_finding():
    """Factory for findings with sensible defaults."""

    def _make(**overrides) -> Finding:
        fields = {
            "severity": "medium",
            "category": "template",
            "rule_id": "template/missing-limit",
            "message": "Query in loop without .limit() may fetch too many results",
            "file": "blog/index.twig",
            "line": 3,
        }
        fields.update(overrides)
        return Finding(**fields)

    return _make


@pytest.fixture
def sample_findings(make_finding) -> list:
    """One finding per template rule that presets touch."""
    return [
        make_finding(rule_id="template/n-plus-one-loop", severity="high", line=5),
        make_finding(rule_id="template/deprecated-api", severity="medium", line=7),
        make_finding(rule_id="template/missing-limit", severity="medium", line=2),
        make_finding(
            rule_id="security/dev-mode-enabled",
            category="security",
            severity="high",
            file="config/general.php",
            line=4,
            evidence=Evidence(snippet="'devMode' => true"),
        ),
    ]


@pytest.fixture
def n_plus_one_template() -> str:
    return textwrap.dedent("""\
        {% set posts = craft.entries.section('blog').all() %}
        <ul>
        {% for post in posts %}
          <li>{{ post.title }}</li>
          {% set author = post.authorField.one() %}
        {% endfor %}
        </ul>
    """)


@pytest.fixture
def craft_project(tmp_path: Path, n_plus_one_template: str) -> Path:
    """A small Craft project tree with composer.json and one template."""
    root = tmp_path / "site"
    (root / "templates" / "blog").mkdir(parents=True)
    (root / "config").mkdir()
    (root / "composer.json").write_text(json.dumps({
        "require": {"craftcms/cms": "^5.2.0", "php": ">=8.2"},
    }))
    (root / "templates" / "blog" / "index.twig").write_text(n_plus_one_template)
    (root / "config" / "general.php").write_text(
        "<?php\nreturn [\n    'devMode' => false,\n];\n"
    )
    return root


def _git(cwd: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=cwd, capture_output=True, check=True)


@pytest.fixture
def git():
    """Run a git command in a directory, failing the test on error."""
    return _git


@pytest.fixture
def craft_git_project(craft_project: Path) -> Path:
    """``craft_project`` committed to a fresh git repository on ``main``."""
    subprocess.run(["git", "init", str(craft_project)], capture_output=True, check=True)
    _git(craft_project, "symbolic-ref", "HEAD", "refs/heads/main")
    _git(craft_project, "config", "user.email", "test@test.com")
    _git(craft_project, "config", "user.name", "Test")
    _git(craft_project, "config", "commit.gpgsign", "false")
    _git(craft_project, "add", ".")
    _git(craft_project, "commit", "-m", "init")
    return craft_project
