"""Security header checks against a live site URL."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional

import httpx

from craft_audit.analyzers.base import BuiltinAnalyzer, rule_finding
from craft_audit.findings.fingerprint import KeyStrategy
from craft_audit.findings.models import Evidence, Finding

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
HSTS_MIN_MAX_AGE = 31536000
USER_AGENT = "craft-audit"

HEADER_RULES = (
    "security/missing-hsts",
    "security/missing-x-content-type-options",
    "security/missing-x-frame-options",
    "security/missing-csp",
    "security/missing-referrer-policy",
    "security/missing-permissions-policy",
    "security/server-header-exposed",
    "security/x-powered-by-exposed",
    "security/deprecated-x-xss-protection",
    "security/hsts-preload-not-eligible",
    "security/csp-report-only-mode",
    "security/cors-wildcard-origin",
    "security/cors-credentials-wildcard",
    "security/http-header-check-failed",
)

_MAX_AGE_RE = re.compile(r"max-age\s*=\s*\"?(\d+)", re.IGNORECASE)


def hsts_max_age(value: str) -> Optional[int]:
    m = _MAX_AGE_RE.search(value)
    return int(m.group(1)) if m else None


class HttpHeadersAnalyzer(BuiltinAnalyzer):
    """Fetches *site_url* once and inspects the response headers.

    *transport* is handed to :class:`httpx.Client`, which lets tests use
    ``httpx.MockTransport``.
    """

    name = "http-headers"
    failure_message = "HTTP header check failed; header findings are incomplete."
    key_strategies = {rule: KeyStrategy.TARGET for rule in HEADER_RULES}

    def __init__(
        self,
        site_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.site_url = site_url
        self.timeout = timeout
        self.transport = transport

    def _finding(self, rule_id: str, message: str, suggestion: str, confidence: float = 0.9,
                 header: Optional[str] = None, details: Optional[str] = None) -> Finding:
        return rule_finding(
            rule_id,
            "security",
            message,
            suggestion=suggestion,
            confidence=confidence,
            evidence=Evidence(url=self.site_url, snippet=header, details=details),
        )

    def produce_findings(self, target: Path) -> List[Finding]:
        try:
            with httpx.Client(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
                headers={"User-Agent": USER_AGENT},
            ) as client:
                response = client.get(self.site_url)
        except httpx.HTTPError as exc:
            logger.warning("Could not fetch %s: %s", self.site_url, exc)
            return [self._finding(
                "security/http-header-check-failed",
                f"Could not fetch {self.site_url} to check security headers",
                "Check that the site URL is reachable from where the audit runs",
                confidence=1.0,
                details=f"{type(exc).__name__}: {exc}",
            )]

        logger.debug("Fetched %s -> %s", response.url, response.status_code)
        return self.check_headers(response.headers)

    def check_headers(self, headers: httpx.Headers) -> List[Finding]:
        findings: List[Finding] = []

        hsts = headers.get("strict-transport-security")
        if hsts is None:
            findings.append(self._finding(
                "security/missing-hsts",
                "Strict-Transport-Security header is missing",
                "Send Strict-Transport-Security: max-age=31536000; includeSubDomains",
            ))
        else:
            max_age = hsts_max_age(hsts)
            if max_age is None or max_age < HSTS_MIN_MAX_AGE:
                findings.append(self._finding(
                    "security/missing-hsts",
                    f"Strict-Transport-Security max-age is below one year ({max_age or 0}s)",
                    "Raise max-age to at least 31536000",
                    header=f"Strict-Transport-Security: {hsts}",
                ))
            directives = {part.strip().lower() for part in hsts.split(";")}
            if not (
                "includesubdomains" in directives
                and "preload" in directives
                and (max_age or 0) >= HSTS_MIN_MAX_AGE
            ):
                findings.append(self._finding(
                    "security/hsts-preload-not-eligible",
                    "HSTS header is not eligible for the browser preload list",
                    "Add includeSubDomains and preload with a max-age of at least one year",
                    confidence=0.8,
                    header=f"Strict-Transport-Security: {hsts}",
                ))

        nosniff = headers.get("x-content-type-options")
        if nosniff is None or nosniff.strip().lower() != "nosniff":
            findings.append(self._finding(
                "security/missing-x-content-type-options",
                "X-Content-Type-Options header is missing or not set to nosniff",
                "Send X-Content-Type-Options: nosniff",
                header=None if nosniff is None else f"X-Content-Type-Options: {nosniff}",
            ))

        if "x-frame-options" not in headers:
            findings.append(self._finding(
                "security/missing-x-frame-options",
                "X-Frame-Options header is missing",
                "Send X-Frame-Options: SAMEORIGIN or use CSP frame-ancestors",
            ))

        if "content-security-policy" not in headers:
            if "content-security-policy-report-only" in headers:
                findings.append(self._finding(
                    "security/csp-report-only-mode",
                    "Content-Security-Policy is only sent in report-only mode",
                    "Promote the report-only policy to an enforcing Content-Security-Policy",
                    header="Content-Security-Policy-Report-Only: "
                    + headers["content-security-policy-report-only"],
                ))
            findings.append(self._finding(
                "security/missing-csp",
                "Content-Security-Policy header is missing",
                "Define a Content-Security-Policy for the site",
            ))

        if "referrer-policy" not in headers:
            findings.append(self._finding(
                "security/missing-referrer-policy",
                "Referrer-Policy header is missing",
                "Send Referrer-Policy: strict-origin-when-cross-origin",
            ))

        if "permissions-policy" not in headers:
            findings.append(self._finding(
                "security/missing-permissions-policy",
                "Permissions-Policy header is missing",
                "Send a Permissions-Policy that disables unused browser features",
            ))

        server = headers.get("server")
        if server:
            findings.append(self._finding(
                "security/server-header-exposed",
                f"Server header exposes web server software: {server}",
                "Hide the Server header or strip its version details",
                header=f"Server: {server}",
            ))

        powered_by = headers.get("x-powered-by")
        if powered_by:
            findings.append(self._finding(
                "security/x-powered-by-exposed",
                f"X-Powered-By header discloses the stack: {powered_by}",
                "Set sendPoweredByHeader to false in config/general.php",
                header=f"X-Powered-By: {powered_by}",
            ))

        xss = headers.get("x-xss-protection")
        if xss is not None:
            findings.append(self._finding(
                "security/deprecated-x-xss-protection",
                "X-XSS-Protection header is deprecated",
                "Remove X-XSS-Protection and rely on Content-Security-Policy",
                header=f"X-XSS-Protection: {xss}",
            ))

        origin = headers.get("access-control-allow-origin")
        if origin is not None and origin.strip() == "*":
            credentials = headers.get("access-control-allow-credentials", "")
            if credentials.strip().lower() == "true":
                findings.append(self._finding(
                    "security/cors-credentials-wildcard",
                    "CORS allows credentials from any origin",
                    "Allow credentials only for an explicit list of origins",
                    confidence=0.95,
                    header="Access-Control-Allow-Origin: *",
                ))
            else:
                findings.append(self._finding(
                    "security/cors-wildcard-origin",
                    "CORS allows requests from any origin",
                    "Restrict Access-Control-Allow-Origin to trusted origins",
                    header="Access-Control-Allow-Origin: *",
                ))

        return findings
