"""Configuration and code-path security checks."""

from __future__ import annotations

import logging
import os
import re
from collections import deque
from pathlib import Path
from typing import List, Set

from craft_audit.analyzers.base import BuiltinAnalyzer, rule_finding
from craft_audit.findings.models import Evidence, Finding

logger = logging.getLogger(__name__)

DEFAULT_FILE_LIMIT = 2000

SKIP_DIRS = frozenset({"vendor", "node_modules", ".git", ".svn", ".hg"})
SCAN_EXTENSIONS = frozenset({".php", ".twig", ".html", ".env", ".txt", ".yaml", ".yml"})

_DEV_MODE_RE = re.compile(r"""['"]devMode['"]\s*=>\s*true""", re.IGNORECASE)
_ADMIN_CHANGES_RE = re.compile(r"""['"]allowAdminChanges['"]\s*=>\s*true""", re.IGNORECASE)
_PRODUCTION_RE = re.compile(r"^\s*CRAFT_ENVIRONMENT\s*=\s*['\"]?production['\"]?\s*$", re.IGNORECASE | re.MULTILINE)
_ENV_DEV_MODE_RE = re.compile(r"^\s*(?:CRAFT_)?DEV_MODE\s*=\s*['\"]?(?:true|1)['\"]?\s*$", re.IGNORECASE | re.MULTILINE)
_DEBUG_CALL_RE = re.compile(r"\b(dump|dd|var_dump)\s*\(")


def _line_of(content: str, pos: int) -> int:
    return content.count("\n", 0, pos) + 1


def _scannable(name: str) -> bool:
    if name == ".env" or name.startswith(".env."):
        return True
    return os.path.splitext(name)[1].lower() in SCAN_EXTENSIONS


class SecurityAnalyzer(BuiltinAnalyzer):
    name = "security-analyzer"
    failure_message = "Security analysis failed; security findings are incomplete."

    def __init__(self, file_limit: int = DEFAULT_FILE_LIMIT) -> None:
        self.file_limit = file_limit

    def produce_findings(self, target: Path) -> List[Finding]:
        findings = self._config_findings(target)
        findings.extend(self._env_findings(target))
        findings.extend(self._debug_findings(target))
        return findings

    # ── config/general.php ────────────────────────────────────────────────

    def _config_findings(self, target: Path) -> List[Finding]:
        general = target / "config" / "general.php"
        if not general.is_file():
            return []
        content = general.read_text(encoding="utf-8", errors="replace")
        findings: List[Finding] = []

        m = _DEV_MODE_RE.search(content)
        if m:
            findings.append(rule_finding(
                "security/dev-mode-enabled",
                "security",
                "devMode is hardcoded to true in config/general.php",
                file="config/general.php",
                line=_line_of(content, m.start()),
                suggestion="Drive devMode from an environment variable and keep it off in production",
                confidence=0.93,
                evidence=Evidence(snippet=m.group(0)),
            ))

        m = _ADMIN_CHANGES_RE.search(content)
        if m:
            findings.append(rule_finding(
                "security/admin-changes-enabled",
                "security",
                "allowAdminChanges is hardcoded to true in config/general.php",
                file="config/general.php",
                line=_line_of(content, m.start()),
                suggestion="Disable allowAdminChanges outside development environments",
                confidence=0.87,
                evidence=Evidence(snippet=m.group(0)),
            ))
        return findings

    # ── .env ──────────────────────────────────────────────────────────────

    def _env_findings(self, target: Path) -> List[Finding]:
        env = target / ".env"
        if not env.is_file():
            return []
        content = env.read_text(encoding="utf-8", errors="replace")
        dev = _ENV_DEV_MODE_RE.search(content)
        if not (_PRODUCTION_RE.search(content) and dev):
            return []
        return [rule_finding(
            "security/dev-mode-enabled-in-production",
            "security",
            "DEV_MODE is enabled while CRAFT_ENVIRONMENT is production",
            file=".env",
            line=_line_of(content, dev.start()),
            suggestion="Set DEV_MODE=false for production environments",
            confidence=0.98,
            evidence=Evidence(snippet=dev.group(0).strip()),
        )]

    # ── debug helpers across the tree ─────────────────────────────────────

    def _debug_findings(self, target: Path) -> List[Finding]:
        findings: List[Finding] = []
        scanned = 0
        truncated = False
        visited: Set[str] = set()
        queue = deque([target])

        while queue and not truncated:
            directory = queue.popleft()
            real = os.path.realpath(directory)
            if real in visited:
                continue
            visited.add(real)
            try:
                entries = sorted(os.scandir(directory), key=lambda e: e.name)
            except OSError as exc:
                logger.debug("Skipping unreadable directory %s: %s", directory, exc)
                continue

            for entry in entries:
                if entry.is_symlink():
                    continue
                if entry.is_dir():
                    if entry.name not in SKIP_DIRS:
                        queue.append(Path(entry.path))
                    continue
                if not _scannable(entry.name):
                    continue
                if scanned >= self.file_limit:
                    truncated = True
                    break
                scanned += 1
                findings.extend(self._scan_file(target, Path(entry.path)))

        if truncated:
            logger.warning("Security scan stopped at the %d file limit", self.file_limit)
            findings.append(rule_finding(
                "security/file-scan-truncated",
                "security",
                f"Security scan hit file limit ({self.file_limit} files). Results may be incomplete.",
                suggestion="Raise audit.security_file_limit or narrow the project path",
                confidence=0.6,
                evidence=Evidence(details=f"scannedFiles={scanned} limit={self.file_limit}"),
            ))
        return findings

    def _scan_file(self, target: Path, path: Path) -> List[Finding]:
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return []
        rel = path.relative_to(target).as_posix()
        findings = []
        for line_no, line in enumerate(content.splitlines(), 1):
            if _DEBUG_CALL_RE.search(line):
                findings.append(rule_finding(
                    "security/debug-output-pattern",
                    "security",
                    "Debug output helper found in template/code path.",
                    file=rel,
                    line=line_no,
                    suggestion="Remove debug helpers before deploying",
                    confidence=0.75,
                    evidence=Evidence(snippet=line.strip()[:200]),
                ))
        return findings
