"""Match installed Craft plugins in ``composer.lock`` against known advisories."""

from __future__ import annotations

import json
import logging
import operator
import re
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from packaging.version import InvalidVersion, Version

from craft_audit.analyzers.base import BuiltinAnalyzer, rule_finding
from craft_audit.findings.fingerprint import KeyStrategy
from craft_audit.findings.models import Evidence, Finding

logger = logging.getLogger(__name__)

RULE_ID = "security/plugin-cve"
ADVISORY_FILE = "known-plugin-cves.json"

CRAFT_VENDORS = frozenset(
    {"craftcms", "verbb", "putyourlightson", "nystudio107", "spicyweb", "doublesecretagency"}
)

_CONSTRAINT_RE = re.compile(r"^(<=|>=|<|>|==|=)?\s*(\S+)$")

_COMPARATORS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "=": operator.eq,
    "==": operator.eq,
}


@dataclass(frozen=True)
class Advisory:
    package: str
    cve: str
    title: str
    severity: str
    affected_versions: str
    fixed_in: str
    url: Optional[str] = None

    @classmethod
    def from_mapping(cls, raw: Dict[str, Any]) -> "Advisory":
        return cls(
            package=raw["package"],
            cve=raw["cve"],
            title=raw["title"],
            severity=raw.get("severity", "high"),
            affected_versions=raw["affectedVersions"],
            fixed_in=raw["fixedIn"],
            url=raw.get("url"),
        )


def parse_version(value: str) -> Optional[Version]:
    """Composer version string to a comparable ``Version``.

    A leading ``v`` is dropped and Composer pre-release suffixes
    (``-beta.1``, ``-RC2``) keep their ordering. Branch aliases such as
    ``dev-main`` are not versions and yield None.
    """
    try:
        return Version(value.strip().lstrip("vV"))
    except InvalidVersion:
        return None


def satisfies(version: Version, constraint: str) -> bool:
    """True when *version* meets every space-separated clause of *constraint*."""
    clauses = constraint.split()
    if not clauses:
        return False
    for clause in clauses:
        m = _CONSTRAINT_RE.match(clause)
        if m is None:
            return False
        op, bound_text = m.group(1) or "==", m.group(2)
        bound = parse_version(bound_text)
        if bound is None:
            return False
        if not _COMPARATORS[op](version, bound):
            return False
    return True


def load_advisories(path: Optional[Path] = None) -> List[Advisory]:
    if path is not None:
        text = path.read_text(encoding="utf-8")
    else:
        text = resources.files("craft_audit").joinpath("data", ADVISORY_FILE).read_text(encoding="utf-8")
    return [Advisory.from_mapping(item) for item in json.loads(text)]


def is_craft_package(package: Dict[str, Any]) -> bool:
    if package.get("type") == "craft-plugin":
        return True
    name = package.get("name", "")
    return isinstance(name, str) and name.split("/", 1)[0] in CRAFT_VENDORS


class PluginSecurityAnalyzer(BuiltinAnalyzer):
    name = "plugin-security"
    failure_message = "Plugin advisory check failed; plugin findings are incomplete."
    key_strategies = {RULE_ID: KeyStrategy.ADVISORY}

    def __init__(self, advisories: Optional[Sequence[Advisory]] = None) -> None:
        self._advisories = list(advisories) if advisories is not None else None

    @property
    def advisories(self) -> List[Advisory]:
        if self._advisories is None:
            self._advisories = load_advisories()
        return self._advisories

    def produce_findings(self, target: Path) -> List[Finding]:
        lock_path = target / "composer.lock"
        if not lock_path.is_file():
            logger.debug("No composer.lock in %s; skipping plugin advisories", target)
            return []

        lock = json.loads(lock_path.read_text(encoding="utf-8"))
        packages = list(lock.get("packages") or []) + list(lock.get("packages-dev") or [])

        by_package: Dict[str, List[Advisory]] = {}
        for advisory in self.advisories:
            by_package.setdefault(advisory.package, []).append(advisory)

        findings: List[Finding] = []
        for package in packages:
            if not isinstance(package, dict) or not is_craft_package(package):
                continue
            name = package.get("name", "")
            version = parse_version(str(package.get("version", "")))
            if version is None:
                continue
            for advisory in by_package.get(name, ()):
                if not satisfies(version, advisory.affected_versions):
                    continue
                installed = str(package.get("version"))
                findings.append(rule_finding(
                    RULE_ID,
                    "security",
                    f"{advisory.cve}: {advisory.title}. Installed {name}@{installed} is affected.",
                    severity="high" if advisory.severity in ("critical", "high") else "medium",
                    file="composer.lock",
                    suggestion=f"Update {name} to {advisory.fixed_in} or later to resolve {advisory.cve}.",
                    confidence=0.95,
                    docs_url=advisory.url,
                    evidence=Evidence(
                        advisory=f"{advisory.cve}:{name}",
                        details=f"affected={advisory.affected_versions} fixedIn={advisory.fixed_in}",
                    ),
                ))
        return findings
