"""Rule plugins, presets, and tuning."""

from craft_audit.rules.models import PluginError, RuleContext, RuleMeta, RulePlugin
from craft_audit.rules.presets import PRESETS, UnknownPresetError
from craft_audit.rules.registry import RuleRegistry
from craft_audit.rules.tuning import EffectiveRuleset, ResolvedRule, TuningResult, apply, resolve

__all__ = [
    "PRESETS",
    "EffectiveRuleset",
    "PluginError",
    "ResolvedRule",
    "RuleContext",
    "RuleMeta",
    "RulePlugin",
    "RuleRegistry",
    "TuningResult",
    "UnknownPresetError",
    "apply",
    "resolve",
]
