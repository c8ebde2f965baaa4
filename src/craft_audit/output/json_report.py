"""JSON reporter for CI pipelines."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from craft_audit import __version__
from craft_audit.findings.models import AuditResult
from craft_audit.findings.summary import should_fail, summarize


def to_dict(result: AuditResult, *, project_path: Optional[str] = None, exit_threshold: str = "high") -> Dict[str, Any]:
    """Convert an AuditResult to a JSON-serialisable dict."""
    stats: Dict[str, Any] = {
        "rawFindings": result.raw_count,
        "tuningRemoved": result.tuning_removed,
        "tuningModified": result.tuning_modified,
        "inlineSuppressed": result.inline_suppressed,
        "narrowedOut": result.narrowed_out,
        "baselineSuppressed": result.baseline_suppressed,
        "durationMs": result.duration_ms,
    }
    if result.changed_files is not None:
        stats["changedFiles"] = result.changed_files
    if result.cache_hits or result.cache_misses:
        stats["cache"] = {"hits": result.cache_hits, "misses": result.cache_misses}
    if result.baseline_written is not None:
        stats["baselineWritten"] = result.baseline_written

    return {
        "tool": "craft-audit",
        "version": __version__,
        "generatedAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        **({"projectPath": project_path} if project_path else {}),
        "summary": summarize(result.findings),
        "exitThreshold": exit_threshold,
        "failed": should_fail(result.findings, exit_threshold),
        "stats": stats,
        "issues": [f.to_dict() for f in result.findings],
    }


def render(result: AuditResult, *, project_path: Optional[str] = None, exit_threshold: str = "high") -> str:
    """Return formatted JSON string."""
    return json.dumps(to_dict(result, project_path=project_path, exit_threshold=exit_threshold), indent=2)
