"""Shared plumbing for built-in analyzers."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from craft_audit.findings.fingerprint import KeyStrategy
from craft_audit.findings.models import Finding
from craft_audit.rules.metadata import get_rule_info


class BuiltinAnalyzer:
    """Base class for the analyzers shipped with craft-audit.

    Subclasses set ``name`` and ``failure_message`` and
    implement :meth:`produce_findings`. Raising from it is fine: the
    aggregator turns the exception into a ``runtime/<name>-failed`` finding.
    """

    name: str = ""
    failure_message: str = ""
    key_strategies: Dict[str, KeyStrategy] = {}

    @property
    def failure_rule_id(self) -> str:
        return f"runtime/{self.name}-failed"

    def produce_findings(self, target: Path) -> List[Finding]:
        raise NotImplementedError


def rule_finding(
    rule_id: str,
    category: str,
    message: str,
    severity: Optional[str] = None,
    **fields: Any,
) -> Finding:
    """Build a finding with severity and docs link taken from the catalogue."""
    info = get_rule_info(rule_id)
    if severity is None:
        severity = info.default_severity if info else "medium"
    fields.setdefault("docs_url", info.help_uri if info else None)
    return Finding(severity=severity, category=category, rule_id=rule_id, message=message, **fields)
