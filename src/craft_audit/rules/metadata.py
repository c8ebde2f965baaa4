"""Built-in rule catalogue: default severity, title and docs link per rule id."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

_CRAFT_DOCS = "https://craftcms.com/docs/5.x"


@dataclass(frozen=True)
class RuleInfo:
    default_severity: str
    title: str
    description: str
    help_uri: Optional[str] = None


BUILTIN_RULES: Dict[str, RuleInfo] = {
    # template-analyzer
    "template/n-plus-one-loop": RuleInfo(
        "high",
        "Potential N+1 query in loop",
        "Relation field query methods are used inside loops without eager loading.",
        f"{_CRAFT_DOCS}/development/performance",
    ),
    "template/missing-limit": RuleInfo(
        "medium",
        "Unbounded query in loop",
        "Element query in loop is missing a limit and may fetch excessive rows.",
        f"{_CRAFT_DOCS}/development/element-queries",
    ),
    "template/deprecated-api": RuleInfo(
        "medium",
        "Deprecated Craft/Twig API usage",
        "Template uses deprecated API patterns that should be updated.",
        f"{_CRAFT_DOCS}/upgrade",
    ),
    "template/mixed-loading-strategy": RuleInfo(
        "low",
        "Mixed eager loading strategies",
        "Template uses both .with() and .eagerly(). Consider standardizing on one approach.",
        f"{_CRAFT_DOCS}/development/eager-loading.html",
    ),
    "template/dump-call": RuleInfo(
        "low",
        "dump() call left in template",
        "Template calls dump(), which leaks debug output when devMode is on.",
        f"{_CRAFT_DOCS}/development/twig#debugging",
    ),
    "template/include-tag": RuleInfo(
        "info",
        "Legacy include tag",
        "The {% include %} tag can be replaced with the include() function.",
        "https://twig.symfony.com/doc/3.x/functions/include.html",
    ),
    "security/xss-raw-output": RuleInfo(
        "medium",
        "Unescaped output with |raw",
        "A dynamic value is printed with the |raw filter and bypasses auto-escaping.",
        f"{_CRAFT_DOCS}/development/twig#escaping",
    ),
    "security/ssti-dynamic-include": RuleInfo(
        "high",
        "Dynamic template include",
        "A template name built from a variable may allow server-side template injection.",
        "https://owasp.org/www-project-web-security-testing-guide/",
    ),
    # system-analyzer
    "system/composer-missing": RuleInfo(
        "high",
        "composer.json missing",
        "Project root did not include a composer.json file.",
        f"{_CRAFT_DOCS}/installation",
    ),
    "system/craft-not-detected": RuleInfo(
        "medium",
        "Craft CMS dependency not detected",
        "craftcms/cms was not found in composer requirements.",
        f"{_CRAFT_DOCS}/installation",
    ),
    "system/craft-version-legacy": RuleInfo(
        "high",
        "Legacy Craft CMS major version detected",
        "Craft CMS major version appears to be 3.x or lower.",
        f"{_CRAFT_DOCS}/upgrade",
    ),
    "system/craft-major-upgrade-candidate": RuleInfo(
        "info",
        "Craft CMS major upgrade available",
        "Craft CMS appears to be on a 4.x release and can be upgraded to 5.x.",
        f"{_CRAFT_DOCS}/upgrade",
    ),
    "system/php-version-old": RuleInfo(
        "medium",
        "Outdated PHP version detected",
        "PHP constraint appears to be older than modern Craft CMS requirements.",
        f"{_CRAFT_DOCS}/requirements",
    ),
    # security-analyzer
    "security/dev-mode-enabled": RuleInfo(
        "high",
        "Dev mode enabled in config",
        "Dev mode appears hardcoded to true.",
        f"{_CRAFT_DOCS}/reference/config/general",
    ),
    "security/admin-changes-enabled": RuleInfo(
        "medium",
        "Admin changes enabled in config",
        "allowAdminChanges is enabled in config/general.php.",
        f"{_CRAFT_DOCS}/reference/config/general",
    ),
    "security/dev-mode-enabled-in-production": RuleInfo(
        "high",
        "Dev mode enabled in production env",
        "Environment indicates production while DEV_MODE is enabled.",
        f"{_CRAFT_DOCS}/development/configuration",
    ),
    "security/debug-output-pattern": RuleInfo(
        "low",
        "Debug output helper in code",
        "dump/dd/var_dump calls were found in template or code files.",
        f"{_CRAFT_DOCS}/development/debugging",
    ),
    "security/file-scan-truncated": RuleInfo(
        "info",
        "Security scan truncated by file limit",
        "Security scan hit the configured file limit and may not have inspected all files.",
    ),
    # plugin-security
    "security/plugin-cve": RuleInfo(
        "high",
        "Plugin with known vulnerability",
        "An installed Craft plugin version is affected by a published advisory.",
        "https://github.com/advisories",
    ),
    # http-headers
    "security/missing-hsts": RuleInfo(
        "high",
        "Strict-Transport-Security missing or weak",
        "The site does not send HSTS with a max-age of at least one year.",
        "https://developer.mozilla.org/docs/Web/HTTP/Headers/Strict-Transport-Security",
    ),
    "security/missing-x-content-type-options": RuleInfo(
        "medium",
        "X-Content-Type-Options missing",
        "The site does not send X-Content-Type-Options: nosniff.",
        "https://developer.mozilla.org/docs/Web/HTTP/Headers/X-Content-Type-Options",
    ),
    "security/missing-x-frame-options": RuleInfo(
        "medium",
        "X-Frame-Options missing",
        "The site can be framed by other origins.",
        "https://developer.mozilla.org/docs/Web/HTTP/Headers/X-Frame-Options",
    ),
    "security/missing-csp": RuleInfo(
        "medium",
        "Content-Security-Policy missing",
        "The site does not send a Content-Security-Policy header.",
        "https://developer.mozilla.org/docs/Web/HTTP/CSP",
    ),
    "security/missing-referrer-policy": RuleInfo(
        "low",
        "Referrer-Policy missing",
        "The site does not send a Referrer-Policy header.",
        "https://developer.mozilla.org/docs/Web/HTTP/Headers/Referrer-Policy",
    ),
    "security/missing-permissions-policy": RuleInfo(
        "low",
        "Permissions-Policy missing",
        "The site does not send a Permissions-Policy header.",
        "https://developer.mozilla.org/docs/Web/HTTP/Headers/Permissions-Policy",
    ),
    "security/server-header-exposed": RuleInfo(
        "low",
        "Server software disclosed",
        "The Server header reveals web server software and version.",
    ),
    "security/x-powered-by-exposed": RuleInfo(
        "low",
        "Technology stack disclosed",
        "The X-Powered-By header reveals the technology stack.",
        f"{_CRAFT_DOCS}/reference/config/general#sendpoweredbyheader",
    ),
    "security/deprecated-x-xss-protection": RuleInfo(
        "info",
        "Deprecated X-XSS-Protection header",
        "X-XSS-Protection is ignored by modern browsers and should be removed.",
    ),
    "security/hsts-preload-not-eligible": RuleInfo(
        "info",
        "HSTS not preload eligible",
        "The HSTS header lacks includeSubDomains, preload, or a one year max-age.",
        "https://hstspreload.org/",
    ),
    "security/csp-report-only-mode": RuleInfo(
        "info",
        "CSP in report-only mode",
        "Content-Security-Policy-Report-Only is sent without an enforcing policy.",
    ),
    "security/cors-wildcard-origin": RuleInfo(
        "medium",
        "CORS allows any origin",
        "Access-Control-Allow-Origin is set to *.",
    ),
    "security/cors-credentials-wildcard": RuleInfo(
        "high",
        "CORS credentials with wildcard origin",
        "Credentials are allowed while the allowed origin is *.",
    ),
    "security/http-header-check-failed": RuleInfo(
        "info",
        "Site unreachable for header check",
        "The site URL could not be fetched to check security headers.",
    ),
}

# Emitted by the pipeline itself rather than by an analyzer rule.
RUNTIME_RULES: Dict[str, RuleInfo] = {
    "runtime/template-analyzer-failed": RuleInfo(
        "high",
        "Template analyzer execution failed",
        "Template scan did not complete and findings are incomplete.",
    ),
    "runtime/system-analyzer-failed": RuleInfo(
        "high",
        "System analyzer execution failed",
        "System/dependency scan did not complete and findings are incomplete.",
    ),
    "runtime/security-analyzer-failed": RuleInfo(
        "high",
        "Security analyzer execution failed",
        "Security scan did not complete and findings are incomplete.",
    ),
    "runtime/plugin-security-failed": RuleInfo(
        "high",
        "Plugin security check failed",
        "Plugin advisory check did not complete and findings are incomplete.",
    ),
    "runtime/http-headers-failed": RuleInfo(
        "high",
        "HTTP header check failed",
        "The site could not be probed for security headers.",
    ),
    "runtime/plugin-load-failed": RuleInfo(
        "low",
        "Custom rule file could not be loaded",
        "A file in the rules directory was skipped.",
    ),
}


def default_severities() -> Dict[str, str]:
    """Rule id -> default severity for every built-in analyzer rule."""
    return {rule_id: info.default_severity for rule_id, info in BUILTIN_RULES.items()}


def get_rule_info(rule_id: str) -> Optional[RuleInfo]:
    return BUILTIN_RULES.get(rule_id) or RUNTIME_RULES.get(rule_id)
