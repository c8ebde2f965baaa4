"""Finding data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Evidence:
    """Supporting material attached to a finding."""

    snippet: Optional[str] = None  # matched text
    details: Optional[str] = None
    url: Optional[str] = None
    command: Optional[str] = None
    advisory: Optional[str] = None  # advisory id, e.g. a CVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            k: v
            for k, v in (
                ("snippet", self.snippet),
                ("details", self.details),
                ("url", self.url),
                ("command", self.command),
                ("advisory", self.advisory),
            )
            if v is not None
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Evidence"]:
        if not isinstance(data, dict):
            return None
        return cls(
            snippet=data.get("snippet"),
            details=data.get("details"),
            url=data.get("url"),
            command=data.get("command"),
            advisory=data.get("advisory"),
        )


@dataclass(frozen=True)
class Fix:
    """Machine-applicable remediation hint."""

    safe: bool
    search: str
    replacement: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "safe": self.safe,
            "search": self.search,
            "replacement": self.replacement,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Fix"]:
        if not isinstance(data, dict):
            return None
        return cls(
            safe=bool(data.get("safe", False)),
            search=str(data.get("search", "")),
            replacement=str(data.get("replacement", "")),
            description=str(data.get("description", "")),
        )


@dataclass(frozen=True)
class Finding:
    """A single reported issue.

    Findings are immutable: every pipeline stage that changes one builds a
    copy with ``dataclasses.replace``.
    """

    severity: str  # info | low | medium | high
    category: str  # template | system | security | visual
    rule_id: str
    message: str
    file: Optional[str] = None  # project-relative, forward slashes
    line: Optional[int] = None  # 1-based
    suggestion: Optional[str] = None
    confidence: Optional[float] = None
    evidence: Optional[Evidence] = None
    fingerprint: Optional[str] = None
    fix: Optional[Fix] = None
    docs_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Return the camelCase JSON shape shared by reports and the cache."""
        data: Dict[str, Any] = {
            "severity": self.severity,
            "category": self.category,
            "ruleId": self.rule_id,
            "message": self.message,
        }
        if self.file is not None:
            data["file"] = self.file
        if self.line is not None:
            data["line"] = self.line
        if self.suggestion is not None:
            data["suggestion"] = self.suggestion
        if self.confidence is not None:
            data["confidence"] = self.confidence
        if self.evidence is not None:
            data["evidence"] = self.evidence.to_dict()
        if self.fingerprint is not None:
            data["fingerprint"] = self.fingerprint
        if self.fix is not None:
            data["fix"] = self.fix.to_dict()
        if self.docs_url is not None:
            data["docsUrl"] = self.docs_url
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Finding":
        """Inverse of :meth:`to_dict`. Raises KeyError/TypeError on bad input."""
        line = data.get("line")
        confidence = data.get("confidence")
        return cls(
            severity=data["severity"],
            category=data["category"],
            rule_id=data["ruleId"],
            message=data["message"],
            file=data.get("file"),
            line=int(line) if line is not None else None,
            suggestion=data.get("suggestion"),
            confidence=float(confidence) if confidence is not None else None,
            evidence=Evidence.from_dict(data.get("evidence")),
            fingerprint=data.get("fingerprint"),
            fix=Fix.from_dict(data.get("fix")),
            docs_url=data.get("docsUrl"),
        )


@dataclass
class AuditResult:
    """Complete result of an audit run."""

    findings: List[Finding] = field(default_factory=list)
    raw_count: int = 0
    tuning_removed: int = 0
    tuning_modified: int = 0
    baseline_suppressed: int = 0
    narrowed_out: int = 0
    inline_suppressed: int = 0
    changed_files: Optional[int] = None  # None = full analysis
    cache_hits: int = 0
    cache_misses: int = 0
    baseline_written: Optional[int] = None
    duration_ms: float = 0.0

    @property
    def total_findings(self) -> int:
        return len(self.findings)

    def count_by_severity(self) -> Dict[str, int]:
        counts = {"high": 0, "medium": 0, "low": 0, "info": 0}
        for f in self.findings:
            counts[f.severity] = counts.get(f.severity, 0) + 1
        return counts
