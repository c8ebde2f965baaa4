"""Compose defaults, a preset and user settings, then apply them to findings.

Layers overlay field by field: user settings beat the preset, the preset
beats the defaults. A field left unset in a layer inherits from the layer
below. Defaults are always enabled with no ignore paths.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from craft_audit import globs
from craft_audit.config.schema import RuleSettingConfig
from craft_audit.findings.models import Finding
from craft_audit.rules.presets import UnknownPresetError, get_preset

__all__ = [
    "EffectiveRuleset",
    "ResolvedRule",
    "TuningResult",
    "UnknownPresetError",
    "apply",
    "resolve",
]


@dataclass(frozen=True)
class ResolvedRule:
    enabled: bool
    severity: str
    ignore_paths: Tuple[str, ...] = ()
    severity_overridden: bool = False  # set by a preset or the user


@dataclass
class EffectiveRuleset:
    rules: Dict[str, ResolvedRule] = field(default_factory=dict)
    preset: Optional[str] = None

    def get(self, rule_id: str) -> Optional[ResolvedRule]:
        return self.rules.get(rule_id)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self.rules

    def __len__(self) -> int:
        return len(self.rules)


@dataclass
class TuningResult:
    findings: List[Finding]
    removed_count: int = 0
    modified_count: int = 0


def _overlay(base: ResolvedRule, setting: Optional[RuleSettingConfig]) -> ResolvedRule:
    if setting is None:
        return base
    changes = {}
    if setting.enabled is not None:
        changes["enabled"] = setting.enabled
    if setting.severity is not None:
        changes["severity"] = setting.severity
        changes["severity_overridden"] = True
    if setting.ignore_paths is not None:
        changes["ignore_paths"] = tuple(setting.ignore_paths)
    return dataclasses.replace(base, **changes) if changes else base


def resolve(
    defaults: Mapping[str, str],
    preset: Optional[str] = None,
    user_settings: Optional[Mapping[str, RuleSettingConfig]] = None,
) -> EffectiveRuleset:
    """Return the effective ruleset for every rule id in any layer.

    *defaults* maps rule id to default severity. Raises
    :class:`UnknownPresetError` for an unknown preset name.
    """
    preset_settings = get_preset(preset) if preset is not None else {}
    user_settings = user_settings or {}

    rule_ids = set(defaults) | set(preset_settings) | set(user_settings)

    rules: Dict[str, ResolvedRule] = {}
    for rule_id in sorted(rule_ids):
        # Rules only named by a preset or the user default to "info" until a layer sets a severity.
        base = ResolvedRule(enabled=True, severity=defaults.get(rule_id, "info"))
        resolved = _overlay(base, preset_settings.get(rule_id))
        rules[rule_id] = _overlay(resolved, user_settings.get(rule_id))
    return EffectiveRuleset(rules=rules, preset=preset)


def apply(findings: List[Finding], ruleset: EffectiveRuleset) -> TuningResult:
    """Drop disabled or ignored findings, then re-severity the survivors.

    Per finding: enabled check, then ignore-path globs, then severity
    overwrite. Findings for rules outside *ruleset* pass through.
    """
    kept: List[Finding] = []
    removed = 0
    modified = 0

    for finding in findings:
        rule = ruleset.get(finding.rule_id)
        if rule is None:
            kept.append(finding)
            continue
        if not rule.enabled:
            removed += 1
            continue
        if finding.file and rule.ignore_paths and globs.match_any(finding.file, rule.ignore_paths):
            removed += 1
            continue
        if rule.severity_overridden and rule.severity != finding.severity:
            kept.append(dataclasses.replace(finding, severity=rule.severity))
            modified += 1
            continue
        kept.append(finding)

    return TuningResult(findings=kept, removed_count=removed, modified_count=modified)
