"""Configuration loading and schema."""

from craft_audit.config.loader import ConfigError, ValidationError, load_config, validate_project_path
from craft_audit.config.schema import AuditConfig, Severity, severity_at_or_above

__all__ = [
    "AuditConfig",
    "ConfigError",
    "Severity",
    "ValidationError",
    "load_config",
    "severity_at_or_above",
    "validate_project_path",
]
