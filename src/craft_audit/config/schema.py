"""Configuration schema: dataclasses for every config section."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

Severity = Literal["info", "low", "medium", "high"]
Category = Literal["template", "system", "security", "visual"]
OutputFormat = Literal["console", "json", "sarif"]
ExitThreshold = Literal["none", "high", "medium", "low", "info"]

SEVERITIES: tuple[str, ...] = ("info", "low", "medium", "high")
CATEGORIES: tuple[str, ...] = ("template", "system", "security", "visual")
OUTPUT_FORMATS: tuple[str, ...] = ("console", "json", "sarif")
EXIT_THRESHOLDS: tuple[str, ...] = ("none", "high", "medium", "low", "info")

SEVERITY_ORDER: dict[str, int] = {
    "info": 0,
    "low": 1,
    "medium": 2,
    "high": 3,
}


def severity_at_or_above(finding_sev: str, threshold: str) -> bool:
    """Return True if *finding_sev* is at or above *threshold*."""
    return SEVERITY_ORDER.get(finding_sev, 0) >= SEVERITY_ORDER.get(threshold, 0)


def is_severity(value: object) -> bool:
    return isinstance(value, str) and value in SEVERITY_ORDER


@dataclass
class RuleSettingConfig:
    """Per-rule override as written in the config file. ``None`` = inherit."""

    enabled: Optional[bool] = None
    severity: Optional[Severity] = None
    ignore_paths: Optional[List[str]] = None


@dataclass
class AuditSection:
    templates: Optional[str] = None  # defaults to <project>/templates
    changed_only: bool = False
    base_ref: Optional[str] = None  # explicit ref, or "auto" for CI variables
    skip_templates: bool = False
    skip_system: bool = False
    skip_security: bool = False
    security_file_limit: int = 2000
    site_url: Optional[str] = None
    rules_dir: Optional[str] = None
    timeout: Optional[float] = None  # seconds for the whole analyzer stage


@dataclass
class OutputSection:
    format: OutputFormat = "console"
    output_file: Optional[str] = None
    exit_threshold: ExitThreshold = "high"


@dataclass
class BaselineSection:
    enabled: bool = True
    path: Optional[str] = None  # defaults to <project>/.craft-audit-baseline.json
    write: bool = False


@dataclass
class CacheSection:
    enabled: bool = False
    location: Optional[str] = None  # defaults to <project>/.craft-audit-cache.json


@dataclass
class RulesSection:
    preset: Optional[str] = None
    settings: Dict[str, RuleSettingConfig] = field(default_factory=dict)


@dataclass
class AuditConfig:
    version: str = "1.0"
    audit: AuditSection = field(default_factory=AuditSection)
    output: OutputSection = field(default_factory=OutputSection)
    baseline: BaselineSection = field(default_factory=BaselineSection)
    cache: CacheSection = field(default_factory=CacheSection)
    rules: RulesSection = field(default_factory=RulesSection)
