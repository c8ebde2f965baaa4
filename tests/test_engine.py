"""End-to-end tests for the audit pipeline."""

import textwrap
from pathlib import Path
from typing import List

import pytest

from craft_audit.analyzers.base import BuiltinAnalyzer
from craft_audit.config.schema import AuditConfig, RuleSettingConfig
from craft_audit.findings.models import Finding
from craft_audit.rules.presets import UnknownPresetError
from craft_audit.scanner.engine import effective_ruleset, rule_defaults, run_audit
from craft_audit.store.baseline import BASELINE_FILENAME
from craft_audit.store.cache import CACHE_FILENAME


def _rules(result):
    return sorted(f.rule_id for f in result.findings)


class ExplodingAnalyzer(BuiltinAnalyzer):
    name = "exploding"
    failure_message = "exploding analyzer failed"

    def produce_findings(self, target: Path) -> List[Finding]:
        raise RuntimeError("kaboom")


class TestPipeline:
    def test_default_run(self, craft_project: Path):
        result = run_audit(craft_project, AuditConfig(), env={})
        assert _rules(result) == ["template/missing-limit", "template/n-plus-one-loop"]
        assert result.raw_count == 2
        assert all(f.fingerprint for f in result.findings)
        assert result.changed_files is None
        assert result.duration_ms >= 0

    def test_preset_applied(self, craft_project: Path):
        cfg = AuditConfig()
        cfg.rules.preset = "legacy-migration"
        result = run_audit(craft_project, cfg, env={})
        assert {f.severity for f in result.findings} == {"low", "medium"}
        assert result.tuning_modified == 2

    def test_disabled_rule_removed(self, craft_project: Path):
        cfg = AuditConfig()
        cfg.rules.settings["template/missing-limit"] = RuleSettingConfig(enabled=False)
        result = run_audit(craft_project, cfg, env={})
        assert _rules(result) == ["template/n-plus-one-loop"]
        assert result.tuning_removed == 1

    def test_unknown_preset_fails_before_analysis(self, craft_project: Path):
        cfg = AuditConfig()
        cfg.rules.preset = "lenient"
        with pytest.raises(UnknownPresetError):
            run_audit(craft_project, cfg, env={})

    def test_unknown_preset_fails_before_plugins_load(self, craft_project: Path, tmp_path: Path):
        rules_dir = tmp_path / "rules"
        rules_dir.mkdir()
        marker = tmp_path / "imported"
        (rules_dir / "touch.py").write_text(f"open({str(marker)!r}, 'w').close()\n")
        cfg = AuditConfig()
        cfg.rules.preset = "lenient"
        cfg.audit.rules_dir = str(rules_dir)
        with pytest.raises(UnknownPresetError):
            run_audit(craft_project, cfg, env={})
        assert not marker.exists()

    def test_analyzer_failure_does_not_abort(self, craft_project: Path):
        result = run_audit(craft_project, AuditConfig(), env={}, extra_analyzers=[ExplodingAnalyzer()])
        assert "runtime/exploding-failed" in _rules(result)
        assert "template/n-plus-one-loop" in _rules(result)

    def test_missing_templates_reported(self, craft_project: Path):
        cfg = AuditConfig()
        cfg.audit.templates = str(craft_project / "nope")
        result = run_audit(craft_project, cfg, env={})
        assert _rules(result) == ["runtime/template-analyzer-failed"]

    def test_skip_flags(self, craft_project: Path):
        cfg = AuditConfig()
        cfg.audit.skip_templates = True
        assert run_audit(craft_project, cfg, env={}).findings == []

    def test_inline_suppressions_counted(self, craft_project: Path):
        (craft_project / "templates" / "debug.twig").write_text(
            "{# craft-audit-disable-next-line dump-call #}\n{{ dump(entry) }}\n"
        )
        result = run_audit(craft_project, AuditConfig(), env={})
        assert result.inline_suppressed == 1
        assert "template/dump-call" not in _rules(result)


class TestCustomRules:
    def test_plugin_findings_and_load_failures(self, craft_project: Path, tmp_path: Path):
        rules_dir = tmp_path / "rules"
        rules_dir.mkdir()
        (rules_dir / "titles.yaml").write_text(textwrap.dedent("""\
            id: custom/title-output
            defaultSeverity: info
            description: Entry titles printed in templates
            pattern: "post\\\\.title"
            message: Title printed
        """))
        (rules_dir / "broken.py").write_text("this is not python\n")
        cfg = AuditConfig()
        cfg.audit.rules_dir = str(rules_dir)
        result = run_audit(craft_project, cfg, env={})

        rules = _rules(result)
        assert "custom/title-output" in rules
        assert "runtime/plugin-load-failed" in rules
        title = next(f for f in result.findings if f.rule_id == "custom/title-output")
        assert title.file == "templates/blog/index.twig"
        assert title.line == 4

    def test_plugin_severity_tunable(self, craft_project: Path, tmp_path: Path):
        rules_dir = tmp_path / "rules"
        rules_dir.mkdir()
        (rules_dir / "r.rule.json").write_text(
            '{"id": "custom/r", "defaultSeverity": "info", "description": "d",'
            ' "pattern": "post", "message": "m"}'
        )
        cfg = AuditConfig()
        cfg.audit.rules_dir = str(rules_dir)
        cfg.rules.settings["custom/r"] = RuleSettingConfig(severity="high")
        result = run_audit(craft_project, cfg, env={})
        assert {f.severity for f in result.findings if f.rule_id == "custom/r"} == {"high"}


class TestBaselineStage:
    def test_write_then_suppress(self, craft_project: Path):
        cfg = AuditConfig()
        cfg.baseline.write = True
        first = run_audit(craft_project, cfg, env={})
        assert first.baseline_written == 2
        assert first.findings == []
        assert (craft_project / BASELINE_FILENAME).is_file()

        second = run_audit(craft_project, AuditConfig(), env={})
        assert second.findings == []
        assert second.baseline_suppressed == 2

    def test_new_finding_survives_baseline(self, craft_project: Path):
        cfg = AuditConfig()
        cfg.baseline.write = True
        run_audit(craft_project, cfg, env={})
        (craft_project / "templates" / "news.twig").write_text("{{ craft.config.siteUrl }}\n")
        result = run_audit(craft_project, AuditConfig(), env={})
        assert _rules(result) == ["template/deprecated-api"]

    def test_custom_write_path(self, craft_project: Path, tmp_path: Path):
        cfg = AuditConfig()
        cfg.baseline.write = True
        cfg.baseline.enabled = False
        target = tmp_path / "elsewhere.json"
        result = run_audit(craft_project, cfg, env={}, baseline_write_path=str(target))
        assert target.is_file()
        assert not (craft_project / BASELINE_FILENAME).exists()
        assert len(result.findings) == 2

    def test_disabled_baseline_ignored(self, craft_project: Path):
        cfg = AuditConfig()
        cfg.baseline.write = True
        run_audit(craft_project, cfg, env={})
        cfg = AuditConfig()
        cfg.baseline.enabled = False
        assert len(run_audit(craft_project, cfg, env={}).findings) == 2


class TestCacheStage:
    def test_second_run_hits(self, craft_project: Path):
        cfg = AuditConfig()
        cfg.cache.enabled = True
        first = run_audit(craft_project, cfg, env={})
        assert (first.cache_hits, first.cache_misses) == (0, 1)
        assert (craft_project / CACHE_FILENAME).is_file()

        second = run_audit(craft_project, cfg, env={})
        assert (second.cache_hits, second.cache_misses) == (1, 0)
        assert second.findings == first.findings

    def test_clear_cache(self, craft_project: Path):
        cfg = AuditConfig()
        cfg.cache.enabled = True
        run_audit(craft_project, cfg, env={})
        result = run_audit(craft_project, cfg, env={}, clear_cache=True)
        assert (result.cache_hits, result.cache_misses) == (0, 1)


class TestChangedOnly:
    def test_narrows_template_findings(self, craft_git_project: Path):
        root = craft_git_project
        (root / "templates" / "news.twig").write_text("{{ craft.config.siteUrl }}\n")
        cfg = AuditConfig()
        cfg.audit.changed_only = True
        result = run_audit(root, cfg, env={})
        assert _rules(result) == ["template/deprecated-api"]
        assert result.changed_files == 1
        assert result.narrowed_out == 2

    def test_security_rules_in_unchanged_templates_narrowed(self, craft_git_project: Path, git):
        root = craft_git_project
        (root / "templates" / "old.twig").write_text("{{ entry.body|raw }}\n")
        git(root, "add", ".")
        git(root, "commit", "-m", "old template")
        (root / "templates" / "news.twig").write_text("{{ craft.config.siteUrl }}\n")

        cfg = AuditConfig()
        cfg.audit.changed_only = True
        result = run_audit(root, cfg, env={})
        assert [(f.rule_id, f.file) for f in result.findings] == [
            ("template/deprecated-api", "news.twig"),
        ]

    def test_outside_repo_runs_full_analysis(self, craft_project: Path):
        cfg = AuditConfig()
        cfg.audit.changed_only = True
        result = run_audit(craft_project, cfg, env={})
        assert len(result.findings) == 2
        assert result.changed_files is None


class TestRuleset:
    def test_rule_defaults_include_builtins(self):
        defaults = rule_defaults()
        assert defaults["template/n-plus-one-loop"] == "high"

    def test_effective_ruleset_preset(self):
        cfg = AuditConfig()
        cfg.rules.preset = "balanced"
        rule = effective_ruleset(cfg).get("template/missing-limit")
        assert rule.severity == "low"
        assert rule.severity_overridden is True
