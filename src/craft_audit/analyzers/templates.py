"""Twig template analyzer.

Line-oriented pattern checks for common Craft CMS template problems:
N+1 relation queries inside loops, unbounded queries, deprecated APIs,
mixed eager-loading styles, leftover ``dump()`` calls, unescaped ``|raw``
output, dynamic includes, and the legacy ``{% include %}`` tag.

Findings carry paths relative to the template root. Per-file results are
cached by content hash when an :class:`AnalysisCache` is supplied.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple

from craft_audit.analyzers.base import BuiltinAnalyzer, rule_finding
from craft_audit.findings.models import Evidence, Finding, Fix
from craft_audit.scanner.suppression import Suppression, apply_inline_suppressions
from craft_audit.store.cache import AnalysisCache

logger = logging.getLogger(__name__)

TEMPLATE_EXTENSIONS = (".twig", ".html")

QUERY_SOURCES = (
    "craft.entries",
    "craft.assets",
    "craft.users",
    "craft.categories",
    "craft.tags",
    "craft.globalSets",
    "craft.matrixBlocks",
)
LIMITABLE_SOURCES = ("craft.entries", "craft.assets", "craft.users")

TERMINAL_LIMITERS = (".limit(", ".one()", ".first()", ".count()", ".exists()", ".ids()")

NARROWING_METHODS = (
    ".id(", ".slug(", ".relatedTo(", ".siteId(", ".level(", ".uri(", ".search(",
    ".eventDate(", ".postDate(", ".dateCreated(", ".dateUpdated(", ".ancestorOf(",
    ".descendantOf(", ".type(", ".group(", ".fixedOrder(", ".kind(", ".status(",
)

NON_RELATION_FIELDS = frozenset(
    {"id", "title", "slug", "url", "status", "dateCreated", "dateUpdated", "author"}
)

DEPRECATED_PATTERNS: Tuple[Tuple[re.Pattern[str], str, str], ...] = (
    (re.compile(r"craft\.request\."), "craft.request is deprecated", "Use craft.app.request instead"),
    (re.compile(r"\|date_modify\b"), "|date_modify filter is deprecated", "Use native Twig date functions"),
    (re.compile(r"getUrl\(\)"), "getUrl() is deprecated for assets", "Use .url property instead"),
    (re.compile(r"craft\.config\."), "craft.config is deprecated", "Use craft.app.config.general instead"),
    (re.compile(r"\{%-?\s*includeJsFile"), "includeJsFile tag is deprecated",
     "Use craft.app.view.registerJsFile() instead"),
    (re.compile(r"\{%-?\s*includeCssFile"), "includeCssFile tag is deprecated",
     "Use craft.app.view.registerCssFile() instead"),
)

CONFIDENCE = {
    "template/n-plus-one-loop": 0.82,
    "template/deprecated-api": 0.95,
    "template/missing-limit": 0.74,
    "template/mixed-loading-strategy": 0.90,
    "security/xss-raw-output": 0.88,
    "security/ssti-dynamic-include": 0.92,
    "template/dump-call": 0.98,
    "template/include-tag": 0.95,
}

# Every rule the template analyzer can emit, whatever its category.
RULE_IDS = frozenset(CONFIDENCE)

_SET_RE = re.compile(r"\{%-?\s*set\s+(\w+)\s*=\s*(.+?)\s*-?%\}")
_CHAIN_RE = re.compile(r"^(\w+)(\..+)$")
_FOR_RE = re.compile(r"\{%-?\s*for\s+(\w+)\s+in\s+(.+?)\s*-?%\}")
_ENDFOR_RE = re.compile(r"\{%-?\s*endfor\s*-?%\}")
_WITH_RE = re.compile(r"\.with\(")
_EAGERLY_RE = re.compile(r"\.eagerly\(\)")
_DUMP_RE = re.compile(r"\{\{-?\s*dump\s*\([^}]*\)\s*-?\}\}|\{%-?\s*dump\b[^%]*-?%\}")
_RAW_RE = re.compile(r"\{\{-?\s*(.+?)\s*\|\s*raw\b[^}]*-?\}\}")
_LITERAL_RE = re.compile(r"""^(?:'[^']*'|"[^"]*")$""")
_DYNAMIC_INCLUDE_RE = re.compile(
    r"\{%-?\s*(?:include|embed)\s+(?!['\"\[])([\w.]+)"
    r"|\binclude\(\s*(?!['\"\[])([\w.]+)"
    r"|\btemplate_from_string\("
)
_INCLUDE_TAG_RE = re.compile(r"\{%-?\s*include\s+(['\"][^'\"]+['\"])\s*(.*?)\s*-?%\}")


@dataclass
class _Loop:
    var: str
    query_line: int
    eager: bool


def iter_templates(root: Path) -> Iterator[Path]:
    """Template files under *root* in sorted order, skipping symlinks."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not os.path.islink(os.path.join(dirpath, d)))
        for name in sorted(filenames):
            if not name.endswith(TEMPLATE_EXTENSIONS):
                continue
            full = Path(dirpath) / name
            if full.is_symlink():
                continue
            yield full


def _finding(rule_id: str, file: str, line: int, message: str, suggestion: str, code: str, **extra) -> Finding:
    return rule_finding(
        rule_id,
        "template" if rule_id.startswith("template/") else "security",
        message,
        file=file,
        line=line,
        suggestion=suggestion,
        confidence=CONFIDENCE.get(rule_id),
        evidence=Evidence(snippet=code.strip()),
        **extra,
    )


def _missing_limit(source: str) -> bool:
    if not any(s in source for s in LIMITABLE_SOURCES):
        return False
    if any(t in source for t in TERMINAL_LIMITERS):
        return False
    return not any(m in source for m in NARROWING_METHODS)


def analyze_template(file: str, content: str) -> List[Finding]:
    """Run every template rule over one file's *content*."""
    findings: List[Finding] = []
    lines = content.splitlines()

    assignments: Dict[str, Tuple[str, int]] = {}  # var -> (query source, line)
    loops: List[_Loop] = []
    seen_relations: Set[Tuple[int, str, str, str]] = set()

    for line_no, line in enumerate(lines, 1):
        # {% set q = craft.entries... %} and {% set q = q.relatedTo(...) %}
        set_match = _SET_RE.search(line)
        if set_match:
            var, expr = set_match.group(1), set_match.group(2).strip()
            chain = _CHAIN_RE.match(expr)
            if chain and chain.group(1) in assignments:
                base_source, _ = assignments[chain.group(1)]
                assignments[var] = (base_source + chain.group(2), line_no)
            elif any(src in expr for src in QUERY_SOURCES):
                assignments[var] = (expr, line_no)

        for_match = _FOR_RE.search(line)
        if for_match:
            var, source = for_match.group(1), for_match.group(2).strip()
            query_line = line_no
            if source in assignments:
                source, query_line = assignments[source]
            loops.append(_Loop(var=var, query_line=query_line, eager=".with(" in source))
            if _missing_limit(source):
                findings.append(_finding(
                    "template/missing-limit", file, query_line,
                    "Query in loop without .limit() may fetch too many results",
                    "Add .limit(n) to paginate results",
                    source,
                ))

        for loop in loops:
            if loop.eager:
                continue
            relation_re = re.compile(re.escape(loop.var) + r"\.(\w+)\.(one|all|first|last)\(\)")
            for m in relation_re.finditer(line):
                field_name, method = m.group(1), m.group(2)
                if field_name in NON_RELATION_FIELDS:
                    continue
                key = (loop.query_line, loop.var, field_name, method)
                if key in seen_relations:
                    continue
                seen_relations.add(key)
                findings.append(_finding(
                    "template/n-plus-one-loop", file, line_no,
                    f"Potential N+1 query: {loop.var}.{field_name}.{method}() inside loop",
                    f"Add .with(['{field_name}']) to the query on line {loop.query_line}",
                    line,
                ))

        if _ENDFOR_RE.search(line) and loops:
            loops.pop()

        for pattern, message, suggestion in DEPRECATED_PATTERNS:
            if pattern.search(line):
                findings.append(_finding("template/deprecated-api", file, line_no, message, suggestion, line))

        dump = _DUMP_RE.search(line)
        if dump:
            findings.append(_finding(
                "template/dump-call", file, line_no,
                "dump() call left in template",
                "Remove the dump() call before deploying",
                line,
                fix=Fix(safe=True, search=dump.group(0), replacement="", description="Remove the dump() call"),
            ))

        for raw in _RAW_RE.finditer(line):
            if _LITERAL_RE.match(raw.group(1).strip()):
                continue
            findings.append(_finding(
                "security/xss-raw-output", file, line_no,
                f"Unescaped output: {raw.group(1).strip()}|raw",
                "Remove |raw or sanitize the value first (e.g. |purify)",
                line,
            ))

        if _DYNAMIC_INCLUDE_RE.search(line):
            findings.append(_finding(
                "security/ssti-dynamic-include", file, line_no,
                "Template name is built from a variable",
                "Include templates by literal name or validate against an allow-list",
                line,
            ))

        include = _INCLUDE_TAG_RE.search(line)
        if include:
            fix = None
            if not include.group(2):
                fix = Fix(
                    safe=True,
                    search=include.group(0),
                    replacement="{{ include(%s) }}" % include.group(1),
                    description="Replace the include tag with the include() function",
                )
            findings.append(_finding(
                "template/include-tag", file, line_no,
                "{% include %} tag can be replaced with the include() function",
                "Use {{ include('template') }} instead",
                line,
                fix=fix,
            ))

    if _WITH_RE.search(content) and _EAGERLY_RE.search(content):
        first = next(i for i, text in enumerate(lines, 1) if _EAGERLY_RE.search(text))
        findings.append(_finding(
            "template/mixed-loading-strategy", file, first,
            "Template mixes .with() and .eagerly() eager loading",
            "Standardize on one eager loading approach per template",
            lines[first - 1],
        ))

    return findings


class TemplateAnalyzer(BuiltinAnalyzer):
    name = "template-analyzer"
    failure_message = "Template analysis failed; template findings are incomplete."

    def __init__(self, templates_path: Path, cache: Optional[AnalysisCache] = None) -> None:
        self.templates_path = templates_path
        self.cache = cache
        self.suppressed: List[Suppression] = []
        self.files_analyzed = 0

    def produce_findings(self, target: Path) -> List[Finding]:
        if not self.templates_path.is_dir():
            raise FileNotFoundError(f"Templates path not found: {self.templates_path}")

        findings: List[Finding] = []
        self.suppressed = []
        for path in iter_templates(self.templates_path):
            rel = path.relative_to(self.templates_path).as_posix()
            try:
                content = path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.warning("Skipping unreadable template %s: %s", rel, exc)
                continue

            raw = self.cache.get(rel, content) if self.cache is not None else None
            if raw is None:
                raw = analyze_template(rel, content)
                if self.cache is not None:
                    self.cache.set(rel, content, raw)

            kept, suppressed = apply_inline_suppressions(rel, content, raw)
            findings.extend(kept)
            self.suppressed.extend(suppressed)
            self.files_analyzed += 1

        logger.debug(
            "Analyzed %d templates under %s (%d inline suppressions)",
            self.files_analyzed, self.templates_path, len(self.suppressed),
        )
        return findings
