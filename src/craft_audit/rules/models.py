"""Rule plugin data model: metadata, execution context, plugin kinds.

A plugin only ever sees a :class:`RuleContext`. The context can list
project files, read one project file, and report a finding. It holds no
reference to the pipeline, the config, or other plugins.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional

from craft_audit import globs
from craft_audit.config.schema import CATEGORIES, SEVERITIES, is_severity
from craft_audit.findings.fingerprint import KeyStrategy
from craft_audit.findings.models import Evidence, Finding, Fix

logger = logging.getLogger(__name__)

SKIPPED_DIRS = frozenset({"vendor", "node_modules", ".git"})

DEFAULT_FILE_PATTERN = "**/*.twig"


class PluginError(Exception):
    """Raised when a plugin definition or a reported finding is invalid."""


@dataclass(frozen=True)
class RuleMeta:
    id: str
    category: str
    default_severity: str
    description: str
    docs_url: Optional[str] = None
    fixable: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RuleMeta":
        """Build from a ``meta`` mapping (camelCase or snake_case keys)."""
        rule_id = data.get("id")
        if not isinstance(rule_id, str) or not rule_id.strip():
            raise PluginError("meta.id must be a non-empty string")
        category = data.get("category", "template")
        if category not in CATEGORIES:
            raise PluginError(f"meta.category must be one of: {', '.join(CATEGORIES)}")
        severity = data.get("defaultSeverity", data.get("default_severity"))
        if not is_severity(severity):
            raise PluginError(f"meta.defaultSeverity must be one of: {', '.join(SEVERITIES)}")
        description = data.get("description")
        if not isinstance(description, str) or not description:
            raise PluginError("meta.description must be a non-empty string")
        return cls(
            id=rule_id,
            category=category,
            default_severity=severity,
            description=description,
            docs_url=data.get("docsUrl", data.get("docs_url")),
            fixable=bool(data.get("fixable", False)),
        )


class ProjectFiles:
    """Lazy, thread-safe listing of every regular file under a project root.

    The tree is walked once on first use and shared by every context built
    from this instance.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()
        self._files: Optional[List[str]] = None
        self._lock = threading.Lock()

    def all(self) -> List[str]:
        with self._lock:
            if self._files is None:
                self._files = self._walk()
                logger.debug("Indexed %d project files under %s", len(self._files), self.root)
            return self._files

    def _walk(self) -> List[str]:
        found: List[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(
                d for d in dirnames
                if d not in SKIPPED_DIRS and not os.path.islink(os.path.join(dirpath, d))
            )
            for name in sorted(filenames):
                full = os.path.join(dirpath, name)
                if os.path.islink(full) or not os.path.isfile(full):
                    continue
                found.append(Path(full).relative_to(self.root).as_posix())
        return found


class RuleContext:
    """The only capability handed to a plugin's ``create`` function."""

    def __init__(self, meta: RuleMeta, files: ProjectFiles) -> None:
        self._meta = meta
        self._files = files
        self._reported: List[Finding] = []

    def list_files(self, pattern: str) -> List[str]:
        """Project-relative posix paths matching *pattern*."""
        return [p for p in self._files.all() if globs.match(p, pattern)]

    def read_file(self, path: str) -> Optional[str]:
        """Read a project file as text. None when outside the root or unreadable."""
        root = self._files.root
        try:
            resolved = (root / path).resolve()
        except (OSError, RuntimeError):
            return None
        if resolved != root and root not in resolved.parents:
            logger.warning("Rule %s tried to read outside the project: %s", self._meta.id, path)
            return None
        try:
            return resolved.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None

    def report(self, partial: Mapping[str, Any]) -> None:
        """Record a finding. ``rule_id`` and ``category`` come from the rule meta."""
        self._reported.append(_finding_from_partial(self._meta, partial))

    @property
    def findings(self) -> List[Finding]:
        return list(self._reported)


def _finding_from_partial(meta: RuleMeta, partial: Mapping[str, Any]) -> Finding:
    if not isinstance(partial, Mapping):
        raise PluginError(f"{meta.id}: report() expects a mapping")

    message = partial.get("message")
    if not isinstance(message, str) or not message.strip():
        raise PluginError(f"{meta.id}: reported finding needs a non-empty message")

    severity = partial.get("severity", meta.default_severity)
    if not is_severity(severity):
        raise PluginError(f"{meta.id}: invalid severity {severity!r}")

    line = partial.get("line")
    if line is not None and (isinstance(line, bool) or not isinstance(line, int) or line < 1):
        raise PluginError(f"{meta.id}: line must be a positive integer")

    file = partial.get("file")
    if file is not None and not isinstance(file, str):
        raise PluginError(f"{meta.id}: file must be a string")

    confidence = partial.get("confidence")
    if confidence is not None:
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or not 0 <= confidence <= 1:
            raise PluginError(f"{meta.id}: confidence must be between 0 and 1")
        confidence = float(confidence)

    evidence = partial.get("evidence")
    if isinstance(evidence, str):
        evidence = Evidence(details=evidence)
    elif isinstance(evidence, Mapping):
        evidence = Evidence.from_dict(dict(evidence))
    elif evidence is not None and not isinstance(evidence, Evidence):
        raise PluginError(f"{meta.id}: evidence must be a string or mapping")

    fix = partial.get("fix")
    if isinstance(fix, Mapping):
        fix = Fix.from_dict(dict(fix))
    elif fix is not None and not isinstance(fix, Fix):
        raise PluginError(f"{meta.id}: fix must be a mapping")

    return Finding(
        severity=severity,
        category=meta.category,
        rule_id=meta.id,
        message=message,
        file=globs.normalize(file) if file else None,
        line=line,
        suggestion=partial.get("suggestion"),
        confidence=confidence,
        evidence=evidence,
        fix=fix,
        docs_url=partial.get("docs_url", partial.get("docsUrl", meta.docs_url)),
    )


@dataclass
class RulePlugin:
    """Base for loaded plugins. Conforms to the analyzer contract."""

    meta: RuleMeta
    source: Path

    key_strategies: ClassVar[Dict[str, KeyStrategy]] = {}

    def __post_init__(self) -> None:
        self._files: Optional[ProjectFiles] = None

    @property
    def name(self) -> str:
        return self.meta.id

    @property
    def failure_rule_id(self) -> str:
        return f"runtime/{self.meta.id.replace('/', '-')}-failed"

    @property
    def failure_message(self) -> str:
        return f'Custom rule "{self.meta.id}" failed during execution.'

    def run(self, context: RuleContext) -> None:
        raise NotImplementedError

    def bind(self, files: ProjectFiles) -> None:
        """Share one file index between plugins auditing the same project."""
        self._files = files

    def produce_findings(self, target: Path) -> List[Finding]:
        files = self._files
        if files is None or files.root != target.resolve():
            files = ProjectFiles(target)
        context = RuleContext(self.meta, files)
        self.run(context)
        return context.findings


@dataclass
class ScriptedRule(RulePlugin):
    """A Python module exporting ``meta`` and ``create(context)``."""

    create: Callable[[RuleContext], Any]

    def run(self, context: RuleContext) -> None:
        self.create(context)


@dataclass
class DeclarativeRule(RulePlugin):
    """A regex rule loaded from YAML or JSON. Runs no plugin code."""

    pattern: str = ""
    message: str = ""
    suggestion: Optional[str] = None
    file_pattern: str = DEFAULT_FILE_PATTERN

    _compiled: Optional[re.Pattern[str]] = field(
        default=None, init=False, repr=False, compare=False
    )

    @property
    def compiled_pattern(self) -> re.Pattern[str]:
        if self._compiled is None:
            self._compiled = re.compile(self.pattern)
        return self._compiled

    def run(self, context: RuleContext) -> None:
        regex = self.compiled_pattern
        for path in context.list_files(self.file_pattern):
            content = context.read_file(path)
            if not content:
                continue
            for line_no, line in enumerate(content.splitlines(), 1):
                m = regex.search(line)
                if m is None:
                    continue
                partial: Dict[str, Any] = {
                    "file": path,
                    "line": line_no,
                    "message": self.message,
                    "evidence": {"snippet": m.group(0)},
                }
                if self.suggestion:
                    partial["suggestion"] = self.suggestion
                context.report(partial)
