"""Baseline file: fingerprints of acknowledged findings.

File format (schema 1.1.0)::

    {
      "schemaVersion": "1.1.0",
      "generatedAt": "<ISO 8601>",
      "fingerprints": ["...", ...],
      "suppressions": [
        {"fingerprint": "...", "addedAt": "...", "addedBy": "...",
         "reason": "...", "expiresAt": "...", "ruleId": "..."}
      ]
    }

A bare JSON array of fingerprints is also accepted. Suppressions whose
``expiresAt`` has passed are dropped on load.
"""

from __future__ import annotations

import getpass
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from craft_audit.findings.models import Finding

logger = logging.getLogger(__name__)

BASELINE_SCHEMA_VERSION = "1.1.0"
BASELINE_FILENAME = ".craft-audit-baseline.json"


@dataclass
class BaselineResult:
    findings: List[Finding]
    suppressed_count: int = 0


def resolve_baseline_path(project_path: Path, custom: Optional[str] = None) -> Path:
    if custom:
        return Path(custom).resolve()
    return project_path / BASELINE_FILENAME


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _fingerprints_from(data: Any, now: datetime) -> Set[str]:
    if isinstance(data, list):
        return {item for item in data if isinstance(item, str)}
    if not isinstance(data, dict):
        return set()

    raw = data.get("fingerprints")
    fingerprints = {item for item in raw if isinstance(item, str)} if isinstance(raw, list) else set()

    suppressions = data.get("suppressions")
    if isinstance(suppressions, list):
        for supp in suppressions:
            if not isinstance(supp, dict) or not isinstance(supp.get("fingerprint"), str):
                continue
            fingerprint = supp["fingerprint"]
            expires = supp.get("expiresAt")
            if isinstance(expires, str):
                expiry = _parse_timestamp(expires)
                if expiry is not None and expiry <= now:
                    logger.info("Baseline suppression expired: %s", fingerprint)
                    fingerprints.discard(fingerprint)
                    continue
            fingerprints.add(fingerprint)
    return fingerprints


def load_baseline(path: Path, now: Optional[datetime] = None) -> Set[str]:
    """Return the active fingerprints in *path*. Empty on any problem."""
    if not path.is_file():
        return set()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable baseline %s: %s", path, exc)
        return set()
    return _fingerprints_from(data, now or datetime.now(timezone.utc))


def filter_baseline(findings: List[Finding], fingerprints: Set[str]) -> BaselineResult:
    """Drop findings whose fingerprint is in the baseline.

    Findings without a fingerprint are always kept.
    """
    if not fingerprints:
        return BaselineResult(findings=list(findings))
    kept: List[Finding] = []
    suppressed = 0
    for finding in findings:
        if finding.fingerprint and finding.fingerprint in fingerprints:
            suppressed += 1
            continue
        kept.append(finding)
    return BaselineResult(findings=kept, suppressed_count=suppressed)


def current_user() -> str:
    """Best-effort identity for the suppression audit trail."""
    for var in (
        "GITHUB_ACTOR",
        "GITLAB_USER_LOGIN",
        "BITBUCKET_STEP_TRIGGERER_UUID",
        "CI_COMMITTER_NAME",
        "USER",
        "USERNAME",
    ):
        if val := os.environ.get(var):
            return val
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def write_baseline(
    path: Path,
    findings: List[Finding],
    include_metadata: bool = False,
    reason: Optional[str] = None,
) -> int:
    """Replace *path* with the fingerprints of *findings*. Returns the count written."""
    now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    by_fingerprint: Dict[str, Finding] = {}
    for finding in findings:
        if finding.fingerprint and finding.fingerprint not in by_fingerprint:
            by_fingerprint[finding.fingerprint] = finding
    fingerprints = sorted(by_fingerprint)

    payload: Dict[str, Any] = {
        "schemaVersion": BASELINE_SCHEMA_VERSION,
        "generatedAt": now,
        "fingerprints": fingerprints,
    }
    if include_metadata:
        added_by = current_user()
        suppressions = []
        for fingerprint in fingerprints:
            entry: Dict[str, Any] = {
                "fingerprint": fingerprint,
                "addedAt": now,
                "addedBy": added_by,
                "ruleId": by_fingerprint[fingerprint].rule_id,
            }
            if reason:
                entry["reason"] = reason
            suppressions.append(entry)
        payload["suppressions"] = suppressions

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.debug("Wrote %d baseline fingerprints to %s", len(fingerprints), path)
    return len(fingerprints)
