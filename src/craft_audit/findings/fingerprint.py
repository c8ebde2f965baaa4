"""Stable finding identities.

A fingerprint is the first 32 hex characters of a SHA-256 digest over
``FINGERPRINT_VERSION`` and the key material chosen by the rule's
:class:`KeyStrategy`. Baselines and integration state store fingerprints,
so bumping ``FINGERPRINT_VERSION`` or changing what a strategy hashes
invalidates every stored file.
"""

from __future__ import annotations

import dataclasses
import hashlib
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from craft_audit.findings.models import Finding

FINGERPRINT_VERSION = "1"
FINGERPRINT_LENGTH = 32

_SEPARATOR = "\x1f"


class KeyStrategy(str, Enum):
    LOCATION = "location"  # rule id, file, line
    CONTENT = "content"  # rule id, file, matched snippet
    TARGET = "target"  # rule id, probed url
    ADVISORY = "advisory"  # rule id, advisory id


def normalize_path(path: Optional[str]) -> str:
    if not path:
        return ""
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def _location_key(finding: Finding) -> Tuple[str, ...]:
    line = "" if finding.line is None else str(finding.line)
    return (finding.rule_id, normalize_path(finding.file), line)


def key_material(finding: Finding, strategy: KeyStrategy = KeyStrategy.LOCATION) -> Tuple[str, ...]:
    """Return the tuple hashed for *finding* under *strategy*.

    Falls back to the location key when the strategy's material is missing.
    """
    evidence = finding.evidence
    if strategy is KeyStrategy.CONTENT and evidence is not None and evidence.snippet:
        return ("content", finding.rule_id, normalize_path(finding.file), evidence.snippet.strip())
    if strategy is KeyStrategy.TARGET and evidence is not None and evidence.url:
        return ("target", finding.rule_id, evidence.url)
    if strategy is KeyStrategy.ADVISORY and evidence is not None and evidence.advisory:
        return ("advisory", finding.rule_id, evidence.advisory)
    return _location_key(finding)


def compute_fingerprint(finding: Finding, strategy: KeyStrategy = KeyStrategy.LOCATION) -> str:
    payload = _SEPARATOR.join((FINGERPRINT_VERSION, *key_material(finding, strategy)))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


class Fingerprinter:
    """Assigns fingerprints using per-rule key strategies."""

    def __init__(self, strategies: Optional[Mapping[str, KeyStrategy]] = None) -> None:
        self._strategies: Dict[str, KeyStrategy] = dict(strategies or {})

    def register(self, rule_id: str, strategy: KeyStrategy) -> None:
        self._strategies[rule_id] = strategy

    def strategy_for(self, rule_id: str) -> KeyStrategy:
        return self._strategies.get(rule_id, KeyStrategy.LOCATION)

    def fingerprint(self, finding: Finding) -> str:
        return compute_fingerprint(finding, self.strategy_for(finding.rule_id))

    def assign(self, findings: List[Finding]) -> List[Finding]:
        """Return copies of *findings* with missing fingerprints filled in."""
        return [
            f if f.fingerprint else dataclasses.replace(f, fingerprint=self.fingerprint(f))
            for f in findings
        ]
