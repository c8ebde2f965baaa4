"""Project-level checks based on ``composer.json``."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from craft_audit.analyzers.base import BuiltinAnalyzer, rule_finding
from craft_audit.findings.models import Evidence, Finding

logger = logging.getLogger(__name__)

_MAJOR_RE = re.compile(r"(\d+)(?:\.(\d+))?")


def constraint_major(constraint: str) -> Optional[int]:
    """First major version number mentioned in a composer constraint."""
    m = _MAJOR_RE.search(constraint)
    return int(m.group(1)) if m else None


def _php_constraint(composer: Dict[str, Any]) -> Optional[str]:
    platform = (composer.get("config") or {}).get("platform") or {}
    if isinstance(platform, dict) and isinstance(platform.get("php"), str):
        return platform["php"]
    require = composer.get("require") or {}
    if isinstance(require, dict) and isinstance(require.get("php"), str):
        return require["php"]
    return None


class SystemAnalyzer(BuiltinAnalyzer):
    name = "system-analyzer"
    failure_message = "System analysis failed; dependency findings are incomplete."

    def produce_findings(self, target: Path) -> List[Finding]:
        composer_path = target / "composer.json"
        if not composer_path.is_file():
            return [
                rule_finding(
                    "system/composer-missing",
                    "system",
                    "composer.json not found in project root",
                    file="composer.json",
                    suggestion="Run the audit from the Craft project root",
                    confidence=1.0,
                    evidence=Evidence(details="Expected file", snippet=str(composer_path)),
                )
            ]

        # Malformed JSON propagates and is reported as an analyzer failure.
        composer = json.loads(composer_path.read_text(encoding="utf-8"))
        if not isinstance(composer, dict):
            raise ValueError("composer.json does not contain a JSON object")

        findings: List[Finding] = []
        require = composer.get("require") or {}
        craft = require.get("craftcms/cms") if isinstance(require, dict) else None

        if not isinstance(craft, str):
            findings.append(rule_finding(
                "system/craft-not-detected",
                "system",
                "craftcms/cms is not listed in composer.json require",
                file="composer.json",
                suggestion="Confirm this is a Craft CMS project",
                confidence=0.95,
            ))
        else:
            major = constraint_major(craft)
            logger.debug("craftcms/cms constraint %r (major %s)", craft, major)
            if major is not None and major <= 3:
                findings.append(rule_finding(
                    "system/craft-version-legacy",
                    "system",
                    f"Craft CMS {craft} is a legacy major version",
                    file="composer.json",
                    suggestion="Plan an upgrade to a supported Craft CMS major version",
                    confidence=0.8,
                    evidence=Evidence(snippet=f'"craftcms/cms": "{craft}"'),
                ))
            elif major == 4:
                findings.append(rule_finding(
                    "system/craft-major-upgrade-candidate",
                    "system",
                    f"Craft CMS {craft} can be upgraded to 5.x",
                    file="composer.json",
                    suggestion="Review the Craft 5 upgrade guide",
                    confidence=0.7,
                    evidence=Evidence(snippet=f'"craftcms/cms": "{craft}"'),
                ))

        php = _php_constraint(composer)
        if php is not None:
            php_major = constraint_major(php)
            if php_major is not None and php_major < 8:
                findings.append(rule_finding(
                    "system/php-version-old",
                    "system",
                    f"PHP constraint {php} targets a PHP version older than 8",
                    file="composer.json",
                    suggestion="Move the project to PHP 8.2 or later",
                    confidence=0.85,
                    evidence=Evidence(snippet=f'"php": "{php}"'),
                ))
        return findings
