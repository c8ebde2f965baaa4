"""Severity summary and exit-threshold evaluation."""

from __future__ import annotations

from typing import Dict, List

from craft_audit.config.schema import SEVERITIES, severity_at_or_above
from craft_audit.findings.models import Finding


def summarize(findings: List[Finding]) -> Dict[str, int]:
    """Counts per severity plus ``total``."""
    counts = {sev: 0 for sev in reversed(SEVERITIES)}
    for f in findings:
        counts[f.severity] = counts.get(f.severity, 0) + 1
    counts["total"] = len(findings)
    return counts


def blocking_findings(findings: List[Finding], threshold: str) -> List[Finding]:
    if threshold == "none":
        return []
    return [f for f in findings if severity_at_or_above(f.severity, threshold)]


def should_fail(findings: List[Finding], threshold: str) -> bool:
    """True when any finding is at or above *threshold* (``none`` never fails)."""
    return bool(blocking_findings(findings, threshold))
