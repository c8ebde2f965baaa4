"""SARIF v2.1.0 reporter for GitHub code scanning.

``partialFingerprints`` carries the finding fingerprint so code scanning
tracks alerts across runs the same way the baseline does.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from craft_audit import __version__
from craft_audit.findings.models import AuditResult, Finding
from craft_audit.rules.metadata import get_rule_info

SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
FINGERPRINT_KEY = "craftAuditFingerprint/v1"

_SEVERITY_MAP = {
    "high": "error",
    "medium": "warning",
    "low": "note",
    "info": "note",
}


def _rule(f: Finding) -> Dict[str, Any]:
    info = get_rule_info(f.rule_id)
    title = info.title if info else f.rule_id
    rule: Dict[str, Any] = {
        "id": f.rule_id,
        "name": f.rule_id,
        "shortDescription": {"text": title},
        "fullDescription": {"text": info.description if info else f.message},
        "defaultConfiguration": {
            "level": _SEVERITY_MAP.get(info.default_severity if info else f.severity, "warning"),
        },
        "properties": {
            "category": f.category,
            "security-severity": _security_severity(f.severity),
        },
    }
    help_uri = f.docs_url or (info.help_uri if info else None)
    if help_uri:
        rule["helpUri"] = help_uri
    return rule


def _result(f: Finding, rule_index: int) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "ruleId": f.rule_id,
        "ruleIndex": rule_index,
        "level": _SEVERITY_MAP.get(f.severity, "warning"),
        "message": {"text": f.message if not f.suggestion else f"{f.message} {f.suggestion}"},
    }
    if f.file:
        region: Dict[str, Any] = {"startLine": f.line or 1}
        if f.evidence is not None and f.evidence.snippet:
            region["snippet"] = {"text": f.evidence.snippet}
        entry["locations"] = [{
            "physicalLocation": {
                "artifactLocation": {"uri": f.file, "uriBaseId": "%SRCROOT%"},
                "region": region,
            }
        }]
    if f.fingerprint:
        entry["partialFingerprints"] = {FINGERPRINT_KEY: f.fingerprint}
    properties: Dict[str, Any] = {"severity": f.severity}
    if f.confidence is not None:
        properties["confidence"] = f.confidence
    entry["properties"] = properties
    return entry


def to_dict(result: AuditResult) -> Dict[str, Any]:
    """Convert an AuditResult to a SARIF v2.1.0 dict."""
    rules: List[Dict[str, Any]] = []
    index: Dict[str, int] = {}
    results: List[Dict[str, Any]] = []

    for f in result.findings:
        if f.rule_id not in index:
            index[f.rule_id] = len(rules)
            rules.append(_rule(f))
        results.append(_result(f, index[f.rule_id]))

    return {
        "$schema": SARIF_SCHEMA,
        "version": "2.1.0",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "craft-audit",
                        "version": __version__,
                        "rules": rules,
                    }
                },
                "results": results,
            }
        ],
    }


def render(result: AuditResult) -> str:
    """Return SARIF JSON string."""
    return json.dumps(to_dict(result), indent=2)


def _security_severity(severity: str) -> str:
    """Map severity to SARIF security-severity score (0.0 – 10.0)."""
    mapping = {
        "high": "7.5",
        "medium": "5.0",
        "low": "2.0",
        "info": "0.0",
    }
    return mapping.get(severity, "5.0")
