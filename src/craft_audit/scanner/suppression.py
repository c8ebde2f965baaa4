"""Inline suppression comments in Twig templates.

Conventions:
  - ``{# craft-audit-disable-next-line #}`` suppresses every rule on the
    following line.
  - ``{# craft-audit-disable-line #}`` suppresses every rule on its own line.
  - A list of tags narrows either form:
    ``{# craft-audit-disable-next-line n+1, template/missing-limit #}``.
    Tags are full rule ids or the short names in ``SUPPRESSION_TAGS``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple

from craft_audit.findings.models import Finding

_SUPPRESS_RE = re.compile(
    r"\{#-?\s*craft-audit-disable-(next-line|line)"
    r"(?:\s+([^#]*?))?"  # optional tag list
    r"\s*-?#\}"
)

# Short tags accepted in place of full rule ids.
SUPPRESSION_TAGS: Dict[str, str] = {
    "template/n-plus-one-loop": "n+1",
    "template/deprecated-api": "deprecated",
    "template/missing-limit": "missing-limit",
    "template/mixed-loading-strategy": "mixed-loading-strategy",
    "security/xss-raw-output": "xss-raw-output",
    "security/ssti-dynamic-include": "ssti-dynamic-include",
    "template/dump-call": "dump-call",
    "template/include-tag": "include-tag",
}


def suppression_tag(rule_id: str) -> str:
    return SUPPRESSION_TAGS.get(rule_id, rule_id)


@dataclass(frozen=True)
class Suppression:
    """Audit record of a suppressed finding."""

    rule_id: str
    file: str
    line: int
    source: str  # the comment text that matched


def parse_inline_suppression(line: str) -> Optional[Tuple[str, Optional[FrozenSet[str]], str]]:
    """Return ``(kind, tags, comment)`` for a suppression comment, else None.

    *tags* is None when the comment suppresses every rule.
    """
    m = _SUPPRESS_RE.search(line)
    if m is None:
        return None
    scope = m.group(2)
    tags: Optional[FrozenSet[str]] = None
    if scope and scope.strip():
        tags = frozenset(t for t in re.split(r"[\s,]+", scope.strip()) if t)
    return m.group(1), tags, m.group(0)


class SuppressionChecker:
    """Maps a template's line numbers to the suppressions that cover them."""

    def __init__(self, file: str, lines: List[str]) -> None:
        self.file = file
        self._by_line: Dict[int, List[Tuple[Optional[FrozenSet[str]], str]]] = {}
        for index, content in enumerate(lines, 1):
            parsed = parse_inline_suppression(content)
            if parsed is None:
                continue
            kind, tags, comment = parsed
            target = index + 1 if kind == "next-line" else index
            self._by_line.setdefault(target, []).append((tags, comment))

    def is_suppressed(self, line: Optional[int], rule_id: str) -> Optional[Suppression]:
        if line is None:
            return None
        for tags, comment in self._by_line.get(line, ()):
            if tags is None or rule_id in tags or suppression_tag(rule_id) in tags:
                return Suppression(rule_id=rule_id, file=self.file, line=line, source=comment)
        return None

    def __bool__(self) -> bool:
        return bool(self._by_line)


def apply_inline_suppressions(
    file: str, content: str, findings: List[Finding]
) -> Tuple[List[Finding], List[Suppression]]:
    """Split *findings* for one template into kept and suppressed."""
    checker = SuppressionChecker(file, content.splitlines())
    if not checker:
        return list(findings), []
    kept: List[Finding] = []
    suppressed: List[Suppression] = []
    for finding in findings:
        sup = checker.is_suppressed(finding.line, finding.rule_id)
        if sup is not None:
            suppressed.append(sup)
            continue
        kept.append(finding)
    return kept, suppressed
