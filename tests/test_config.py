"""Tests for config loading, validation, and env var overrides."""

from pathlib import Path

import pytest

from craft_audit.config.defaults import DEFAULT_TOML
from craft_audit.config.loader import (
    ConfigError,
    ValidationError,
    load_config,
    validate_config,
    validate_project_path,
)
from craft_audit.config.schema import AuditConfig, severity_at_or_above


class TestSeverityComparison:
    def test_at_or_above(self):
        assert severity_at_or_above("high", "high") is True
        assert severity_at_or_above("medium", "high") is False
        assert severity_at_or_above("high", "medium") is True

    def test_all_levels(self):
        assert severity_at_or_above("info", "info") is True
        assert severity_at_or_above("low", "info") is True
        assert severity_at_or_above("info", "low") is False


class TestConfigLoading:
    def test_default_config(self, tmp_path: Path):
        cfg = load_config(tmp_path)
        assert cfg.output.exit_threshold == "high"
        assert cfg.output.format == "console"
        assert cfg.baseline.enabled is True
        assert cfg.cache.enabled is False
        assert cfg.audit.security_file_limit == 2000

    def test_starter_template_loads(self, tmp_path: Path):
        (tmp_path / ".craft-audit.toml").write_text(DEFAULT_TOML)
        cfg = load_config(tmp_path)
        assert cfg == AuditConfig()

    def test_custom_toml(self, tmp_path: Path):
        (tmp_path / ".craft-audit.toml").write_text(
            'version = "1.0"\n'
            "[audit]\n"
            'templates = "site/templates"\n'
            "security_file_limit = 500\n"
            "[output]\n"
            'format = "sarif"\n'
            'exit_threshold = "medium"\n'
            "[rules]\n"
            'preset = "balanced"\n'
            '[rules.settings."template/missing-limit"]\n'
            'severity = "low"\n'
            'ignore_paths = ["_legacy/**"]\n'
        )
        cfg = load_config(tmp_path)
        assert cfg.output.format == "sarif"
        assert cfg.output.exit_threshold == "medium"
        assert cfg.audit.security_file_limit == 500
        assert cfg.audit.templates == str((tmp_path / "site" / "templates").resolve())
        assert cfg.rules.preset == "balanced"
        setting = cfg.rules.settings["template/missing-limit"]
        assert setting.severity == "low"
        assert setting.ignore_paths == ["_legacy/**"]
        assert setting.enabled is None

    def test_unknown_keys_ignored(self, tmp_path: Path):
        (tmp_path / ".craft-audit.toml").write_text("[audit]\nnot_a_setting = 1\n")
        assert load_config(tmp_path) == AuditConfig()

    def test_config_override_path(self, tmp_path: Path):
        custom = tmp_path / "custom.toml"
        custom.write_text('[output]\nexit_threshold = "low"\n')
        cfg = load_config(tmp_path, config_override=str(custom))
        assert cfg.output.exit_threshold == "low"

    def test_missing_override_raises(self, tmp_path: Path):
        with pytest.raises(ConfigError):
            load_config(tmp_path, config_override="/nonexistent/config.toml")

    def test_invalid_toml_raises(self, tmp_path: Path):
        (tmp_path / ".craft-audit.toml").write_text("this is not valid [toml")
        with pytest.raises(ConfigError):
            load_config(tmp_path)

    @pytest.mark.parametrize(
        "body, message",
        [
            ('[output]\nformat = "html"\n', "output.format"),
            ('[output]\nexit_threshold = "critical"\n', "output.exit_threshold"),
            ('[rules]\npreset = "lenient"\n', "rules.preset"),
            ("[audit]\nsecurity_file_limit = 0\n", "security_file_limit"),
            ('[rules.settings."x/y"]\nseverity = "critical"\n', "severity"),
            ('[rules.settings."x/y"]\nenabled = "no"\n', "enabled"),
            ('[rules.settings."x/y"]\nignore_paths = "a/**"\n', "ignore_paths"),
            ('audit = "nope"\n', "[audit] must be a table"),
        ],
    )
    def test_invalid_values(self, tmp_path: Path, body: str, message: str):
        (tmp_path / ".craft-audit.toml").write_text(body)
        with pytest.raises(ConfigError, match=message.replace("[", r"\[").replace("]", r"\]")):
            load_config(tmp_path)

    def test_validate_config_clean(self):
        assert validate_config(AuditConfig()) == []


class TestEnvVarOverrides:
    def test_preset_override(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("CRAFT_AUDIT_PRESET", "legacy-migration")
        assert load_config(tmp_path).rules.preset == "legacy-migration"

    def test_format_override(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("CRAFT_AUDIT_FORMAT", "json")
        assert load_config(tmp_path).output.format == "json"

    def test_invalid_format_ignored(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("CRAFT_AUDIT_FORMAT", "xml")
        assert load_config(tmp_path).output.format == "console"

    def test_exit_threshold_override(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("CRAFT_AUDIT_EXIT_THRESHOLD", "none")
        assert load_config(tmp_path).output.exit_threshold == "none"

    def test_disable_rules_override(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("CRAFT_AUDIT_DISABLE_RULES", "template/include-tag, template/dump-call")
        settings = load_config(tmp_path).rules.settings
        assert settings["template/include-tag"].enabled is False
        assert settings["template/dump-call"].enabled is False

    def test_env_beats_file(self, tmp_path: Path, monkeypatch):
        (tmp_path / ".craft-audit.toml").write_text('[audit]\nbase_ref = "develop"\n')
        monkeypatch.setenv("CRAFT_AUDIT_BASE_REF", "main")
        assert load_config(tmp_path).audit.base_ref == "main"


class TestProjectPath:
    def test_composer_project(self, craft_project: Path):
        assert validate_project_path(craft_project) == craft_project.resolve()

    def test_craft_executable(self, tmp_path: Path):
        (tmp_path / "craft").write_text("#!/usr/bin/env php\n")
        assert validate_project_path(tmp_path) == tmp_path.resolve()

    def test_not_a_directory(self, tmp_path: Path):
        with pytest.raises(ValidationError, match="not a directory"):
            validate_project_path(tmp_path / "missing")

    def test_not_craft(self, tmp_path: Path):
        with pytest.raises(ValidationError, match="Craft CMS"):
            validate_project_path(tmp_path)
