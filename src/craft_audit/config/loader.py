"""Load and merge configuration from .craft-audit.toml and env vars."""

from __future__ import annotations

import dataclasses
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from craft_audit.config.schema import (
    EXIT_THRESHOLDS,
    OUTPUT_FORMATS,
    SEVERITIES,
    AuditConfig,
    AuditSection,
    BaselineSection,
    CacheSection,
    OutputSection,
    RuleSettingConfig,
    RulesSection,
)
from craft_audit.rules.presets import PRESET_NAMES

CONFIG_FILENAME = ".craft-audit.toml"


class ConfigError(Exception):
    """Raised when config is malformed or unreadable."""


class ValidationError(ValueError):
    """Raised for invalid command-line input."""


def validate_project_path(path: Path) -> Path:
    """Resolve *path* and check that it looks like a Craft project."""
    resolved = path.resolve()
    if not resolved.is_dir():
        raise ValidationError(f"Project path does not exist or is not a directory: {path}")
    if not ((resolved / "craft").exists() or (resolved / "composer.json").is_file()):
        raise ValidationError(
            f"{path} does not look like a Craft CMS project (expected a `craft` executable or composer.json)"
        )
    return resolved


def find_config_file(project_path: Path, override: Optional[str] = None) -> Optional[Path]:
    """Locate the config file. *override* takes precedence."""
    if override:
        p = Path(override)
        if not p.is_file():
            raise ConfigError(f"Config file not found: {override}")
        return p
    candidate = project_path / CONFIG_FILENAME
    return candidate if candidate.is_file() else None


def _parse_toml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to parse {path}: {exc}") from exc


def _build_section(data: Dict[str, Any], cls: type, section: str):
    """Build a dataclass from a TOML section dict, ignoring unknown keys."""
    raw = data.get(section, {})
    if not isinstance(raw, dict):
        raise ConfigError(f"[{section}] must be a table")
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


def _parse_rule_settings(raw: Any, errors: List[str]) -> Dict[str, RuleSettingConfig]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        errors.append("[rules.settings] must be a table keyed by rule id")
        return {}

    settings: Dict[str, RuleSettingConfig] = {}
    for rule_id, value in raw.items():
        if not isinstance(value, dict):
            errors.append(f'rules.settings."{rule_id}" must be a table')
            continue
        setting = RuleSettingConfig()
        if "enabled" in value:
            if isinstance(value["enabled"], bool):
                setting.enabled = value["enabled"]
            else:
                errors.append(f'rules.settings."{rule_id}".enabled must be a boolean')
        if "severity" in value:
            if value["severity"] in SEVERITIES:
                setting.severity = value["severity"]
            else:
                errors.append(
                    f'rules.settings."{rule_id}".severity must be one of: {", ".join(SEVERITIES)}'
                )
        if "ignore_paths" in value:
            paths = value["ignore_paths"]
            if isinstance(paths, list) and all(isinstance(p, str) for p in paths):
                setting.ignore_paths = list(paths)
            else:
                errors.append(f'rules.settings."{rule_id}".ignore_paths must be a list of strings')
        settings[rule_id] = setting
    return settings


def validate_config(cfg: AuditConfig) -> List[str]:
    """Return human-readable problems with *cfg* (empty list = valid)."""
    errors: List[str] = []
    if cfg.output.format not in OUTPUT_FORMATS:
        errors.append(f"output.format must be one of: {', '.join(OUTPUT_FORMATS)}")
    if cfg.output.exit_threshold not in EXIT_THRESHOLDS:
        errors.append(f"output.exit_threshold must be one of: {', '.join(EXIT_THRESHOLDS)}")
    if cfg.rules.preset is not None and cfg.rules.preset not in PRESET_NAMES:
        errors.append(f"rules.preset must be one of: {', '.join(PRESET_NAMES)}")
    limit = cfg.audit.security_file_limit
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        errors.append("audit.security_file_limit must be a positive integer")
    timeout = cfg.audit.timeout
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
        errors.append("audit.timeout must be a positive number of seconds")
    return errors


def _merge_env_overrides(cfg: AuditConfig) -> None:
    """Apply CRAFT_AUDIT_* environment variable overrides."""
    if val := os.environ.get("CRAFT_AUDIT_PRESET"):
        cfg.rules.preset = val
    if val := os.environ.get("CRAFT_AUDIT_FORMAT"):
        if val in OUTPUT_FORMATS:
            cfg.output.format = val  # type: ignore[assignment]
    if val := os.environ.get("CRAFT_AUDIT_EXIT_THRESHOLD"):
        if val in EXIT_THRESHOLDS:
            cfg.output.exit_threshold = val  # type: ignore[assignment]
    if val := os.environ.get("CRAFT_AUDIT_BASE_REF"):
        cfg.audit.base_ref = val
    if val := os.environ.get("CRAFT_AUDIT_DISABLE_RULES"):
        for rule_id in (r.strip() for r in val.split(",")):
            if rule_id:
                cfg.rules.settings.setdefault(rule_id, RuleSettingConfig()).enabled = False


def load_config(
    project_path: Path,
    config_override: Optional[str] = None,
) -> AuditConfig:
    """Load, validate, and return an AuditConfig."""
    config_path = find_config_file(project_path, config_override)

    if config_path is None:
        cfg = AuditConfig()
    else:
        raw = _parse_toml(config_path)
        errors: List[str] = []
        rules_raw = raw.get("rules", {})
        if not isinstance(rules_raw, dict):
            raise ConfigError(f"{config_path}: [rules] must be a table")
        try:
            cfg = AuditConfig(
                version=str(raw.get("version", "1.0")),
                audit=_build_section(raw, AuditSection, "audit"),
                output=_build_section(raw, OutputSection, "output"),
                baseline=_build_section(raw, BaselineSection, "baseline"),
                cache=_build_section(raw, CacheSection, "cache"),
                rules=RulesSection(
                    preset=rules_raw.get("preset"),
                    settings=_parse_rule_settings(rules_raw.get("settings"), errors),
                ),
            )
        except ConfigError as exc:
            raise ConfigError(f"{config_path}: {exc}") from exc
        _resolve_relative_paths(cfg, config_path.parent)
        errors.extend(validate_config(cfg))
        if errors:
            raise ConfigError(f"{config_path}: " + "; ".join(errors))

    _merge_env_overrides(cfg)
    return cfg


def _resolve_relative_paths(cfg: AuditConfig, base: Path) -> None:
    """Paths in a config file are relative to the file's directory."""

    def _resolve(value: Optional[str]) -> Optional[str]:
        if value is None or Path(value).is_absolute():
            return value
        return str((base / value).resolve())

    cfg.audit.templates = _resolve(cfg.audit.templates)
    cfg.audit.rules_dir = _resolve(cfg.audit.rules_dir)
    cfg.output.output_file = _resolve(cfg.output.output_file)
    cfg.baseline.path = _resolve(cfg.baseline.path)
    cfg.cache.location = _resolve(cfg.cache.location)
