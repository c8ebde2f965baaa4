"""Built-in analyzers shipped with craft-audit."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from craft_audit.analyzers.base import BuiltinAnalyzer
from craft_audit.analyzers.http_headers import HttpHeadersAnalyzer
from craft_audit.analyzers.plugin_security import PluginSecurityAnalyzer
from craft_audit.analyzers.security import SecurityAnalyzer
from craft_audit.analyzers.system import SystemAnalyzer
from craft_audit.analyzers.templates import TemplateAnalyzer
from craft_audit.config.schema import AuditConfig
from craft_audit.store.cache import AnalysisCache


def templates_path(project_path: Path, cfg: AuditConfig) -> Path:
    if not cfg.audit.templates:
        return project_path / "templates"
    path = Path(cfg.audit.templates)
    return path if path.is_absolute() else project_path / path


def build_builtin_analyzers(
    project_path: Path,
    cfg: AuditConfig,
    cache: Optional[AnalysisCache] = None,
) -> List[BuiltinAnalyzer]:
    """Built-in analyzers in their fixed registration order, minus skipped ones."""
    analyzers: List[BuiltinAnalyzer] = []
    if not cfg.audit.skip_templates:
        analyzers.append(TemplateAnalyzer(templates_path(project_path, cfg), cache=cache))
    if not cfg.audit.skip_system:
        analyzers.append(SystemAnalyzer())
    if not cfg.audit.skip_security:
        analyzers.append(SecurityAnalyzer(file_limit=cfg.audit.security_file_limit))
        analyzers.append(PluginSecurityAnalyzer())
        if cfg.audit.site_url:
            analyzers.append(HttpHeadersAnalyzer(cfg.audit.site_url))
    return analyzers


__all__ = [
    "BuiltinAnalyzer",
    "HttpHeadersAnalyzer",
    "PluginSecurityAnalyzer",
    "SecurityAnalyzer",
    "SystemAnalyzer",
    "TemplateAnalyzer",
    "build_builtin_analyzers",
    "templates_path",
]
