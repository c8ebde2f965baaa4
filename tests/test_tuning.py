"""Tests for presets and rule tuning."""

import pytest

from craft_audit.config.schema import RuleSettingConfig
from craft_audit.rules.metadata import BUILTIN_RULES, default_severities, get_rule_info
from craft_audit.rules.presets import PRESET_NAMES, UnknownPresetError, get_preset
from craft_audit.rules.tuning import apply, resolve


class TestPresets:
    def test_names(self):
        assert PRESET_NAMES == ("strict", "balanced", "legacy-migration")

    def test_strict_is_empty(self):
        assert dict(get_preset("strict")) == {}

    def test_unknown_raises(self):
        with pytest.raises(UnknownPresetError):
            get_preset("lenient")


class TestResolve:
    def test_defaults_only(self):
        ruleset = resolve({"template/missing-limit": "medium"})
        rule = ruleset.get("template/missing-limit")
        assert rule.enabled is True
        assert rule.severity == "medium"
        assert rule.ignore_paths == ()
        assert rule.severity_overridden is False

    def test_preset_overrides_default(self):
        ruleset = resolve({"template/missing-limit": "medium"}, preset="balanced")
        assert ruleset.get("template/missing-limit").severity == "low"

    def test_user_beats_preset(self):
        ruleset = resolve(
            {"template/missing-limit": "medium"},
            preset="balanced",
            user_settings={"template/missing-limit": RuleSettingConfig(severity="high")},
        )
        assert ruleset.get("template/missing-limit").severity == "high"

    def test_field_by_field_overlay(self):
        ruleset = resolve(
            {"template/missing-limit": "medium"},
            preset="balanced",
            user_settings={"template/missing-limit": RuleSettingConfig(ignore_paths=["_legacy/**"])},
        )
        rule = ruleset.get("template/missing-limit")
        assert rule.severity == "low"  # from the preset
        assert rule.ignore_paths == ("_legacy/**",)

    def test_total_over_all_layers(self):
        ruleset = resolve(
            {"a/one": "low"},
            user_settings={"custom/two": RuleSettingConfig(enabled=False)},
        )
        assert "a/one" in ruleset
        assert "custom/two" in ruleset
        assert len(ruleset) == 2

    def test_unknown_preset(self):
        with pytest.raises(UnknownPresetError):
            resolve({}, preset="nope")


class TestApply:
    def test_enabled_false_beats_preset(self, sample_findings):
        ruleset = resolve(
            default_severities(),
            preset="legacy-migration",
            user_settings={"template/n-plus-one-loop": RuleSettingConfig(enabled=False)},
        )
        result = apply(sample_findings, ruleset)
        assert all(f.rule_id != "template/n-plus-one-loop" for f in result.findings)
        assert result.removed_count == 1

    def test_legacy_migration_scenario(self, sample_findings):
        ruleset = resolve(default_severities(), preset="legacy-migration")
        result = apply(sample_findings, ruleset)
        by_rule = {f.rule_id: f.severity for f in result.findings}
        assert by_rule == {
            "template/n-plus-one-loop": "medium",
            "template/deprecated-api": "low",
            "template/missing-limit": "low",
            "security/dev-mode-enabled": "high",
        }
        assert result.modified_count == 3
        assert result.removed_count == 0

    def test_ignore_paths(self, make_finding):
        ruleset = resolve(
            default_severities(),
            user_settings={"template/missing-limit": RuleSettingConfig(ignore_paths=["blog/**"])},
        )
        result = apply([make_finding(file="blog/index.twig"), make_finding(file="news/index.twig")], ruleset)
        assert [f.file for f in result.findings] == ["news/index.twig"]
        assert result.removed_count == 1

    def test_no_change_not_counted(self, make_finding):
        ruleset = resolve(
            default_severities(),
            user_settings={"template/missing-limit": RuleSettingConfig(severity="medium")},
        )
        result = apply([make_finding(severity="medium")], ruleset)
        assert result.modified_count == 0

    def test_unknown_rule_passes_through(self, make_finding):
        f = make_finding(rule_id="custom/unlisted", severity="high")
        result = apply([f], resolve(default_severities(), preset="balanced"))
        assert result.findings == [f]

    def test_input_not_mutated(self, sample_findings):
        before = list(sample_findings)
        apply(sample_findings, resolve(default_severities(), preset="legacy-migration"))
        assert sample_findings == before


class TestMetadata:
    def test_every_builtin_has_valid_severity(self):
        for rule_id, info in BUILTIN_RULES.items():
            assert info.default_severity in ("info", "low", "medium", "high"), rule_id

    def test_runtime_rules_resolve(self):
        assert get_rule_info("runtime/plugin-load-failed").default_severity == "low"
        assert get_rule_info("nope/nothing") is None
