"""Built-in rule presets. Pure data."""

from __future__ import annotations

from typing import Dict, Mapping, Tuple

from craft_audit.config.schema import RuleSettingConfig

PRESETS: Dict[str, Dict[str, RuleSettingConfig]] = {
    "strict": {},
    "balanced": {
        "template/deprecated-api": RuleSettingConfig(severity="low"),
        "template/missing-limit": RuleSettingConfig(severity="low"),
    },
    "legacy-migration": {
        "template/n-plus-one-loop": RuleSettingConfig(severity="medium"),
        "template/deprecated-api": RuleSettingConfig(severity="low"),
        "template/missing-limit": RuleSettingConfig(severity="low"),
    },
}

PRESET_NAMES: Tuple[str, ...] = tuple(PRESETS)


class UnknownPresetError(ValueError):
    """Raised for a preset name that is not built in."""


def get_preset(name: str) -> Mapping[str, RuleSettingConfig]:
    try:
        return PRESETS[name]
    except KeyError:
        raise UnknownPresetError(
            f"Unknown preset {name!r}. Valid presets: {', '.join(PRESET_NAMES)}"
        ) from None
