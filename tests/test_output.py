"""Tests for the JSON, SARIF, and terminal reporters."""

import json

from rich.console import Console

from craft_audit import __version__
from craft_audit.findings.fingerprint import Fingerprinter
from craft_audit.findings.models import AuditResult, Evidence, Finding
from craft_audit.output import json_report, sarif, terminal


def _make_result(findings=None, **stats) -> AuditResult:
    """Build an AuditResult with sample data."""
    if findings is None:
        findings = Fingerprinter().assign([
            Finding(
                severity="high",
                category="template",
                rule_id="template/n-plus-one-loop",
                message="Potential N+1 query: post.authorField.one() inside loop",
                file="blog/index.twig",
                line=5,
                suggestion="Add .with(['authorField']) to the query on line 1",
                confidence=0.82,
                evidence=Evidence(snippet="{% set author = post.authorField.one() %}"),
            ),
            Finding(
                severity="low",
                category="security",
                rule_id="security/missing-referrer-policy",
                message="Referrer-Policy header is missing",
                evidence=Evidence(url="https://craft.example.test"),
            ),
        ])
    return AuditResult(findings=findings, raw_count=len(findings), **stats)


class TestJsonReport:
    def test_valid_json(self):
        data = json.loads(json_report.render(_make_result(), project_path="/srv/site"))
        assert data["tool"] == "craft-audit"
        assert data["version"] == __version__
        assert data["projectPath"] == "/srv/site"
        assert data["generatedAt"].endswith("Z")
        assert data["summary"] == {"high": 1, "medium": 0, "low": 1, "info": 0, "total": 2}

    def test_exit_threshold(self):
        data = json.loads(json_report.render(_make_result(), exit_threshold="high"))
        assert data["exitThreshold"] == "high"
        assert data["failed"] is True
        data = json.loads(json_report.render(_make_result(), exit_threshold="none"))
        assert data["failed"] is False

    def test_issue_shape(self):
        data = json.loads(json_report.render(_make_result()))
        issue = data["issues"][0]
        assert issue["ruleId"] == "template/n-plus-one-loop"
        assert issue["file"] == "blog/index.twig"
        assert issue["line"] == 5
        assert issue["confidence"] == 0.82
        assert issue["evidence"] == {"snippet": "{% set author = post.authorField.one() %}"}
        assert len(issue["fingerprint"]) > 0
        assert "file" not in data["issues"][1]

    def test_stats(self):
        result = _make_result(
            tuning_removed=2, baseline_suppressed=3, changed_files=1, cache_hits=4, cache_misses=1,
        )
        stats = json.loads(json_report.render(result))["stats"]
        assert stats["rawFindings"] == 2
        assert stats["tuningRemoved"] == 2
        assert stats["baselineSuppressed"] == 3
        assert stats["changedFiles"] == 1
        assert stats["cache"] == {"hits": 4, "misses": 1}
        assert "baselineWritten" not in stats

    def test_empty_result(self):
        data = json.loads(json_report.render(AuditResult()))
        assert data["issues"] == []
        assert data["failed"] is False
        assert "changedFiles" not in data["stats"]


class TestSarif:
    def test_valid_sarif(self):
        data = json.loads(sarif.render(_make_result()))
        assert data["version"] == "2.1.0"
        driver = data["runs"][0]["tool"]["driver"]
        assert driver["name"] == "craft-audit"
        assert [r["id"] for r in driver["rules"]] == [
            "template/n-plus-one-loop",
            "security/missing-referrer-policy",
        ]
        assert driver["rules"][0]["helpUri"].startswith("https://")

    def test_results(self):
        result = _make_result()
        data = json.loads(sarif.render(result))
        first, second = data["runs"][0]["results"]

        assert first["level"] == "error"
        assert first["ruleIndex"] == 0
        loc = first["locations"][0]["physicalLocation"]
        assert loc["artifactLocation"] == {"uri": "blog/index.twig", "uriBaseId": "%SRCROOT%"}
        assert loc["region"]["startLine"] == 5
        assert loc["region"]["snippet"]["text"].startswith("{% set author")
        assert first["partialFingerprints"] == {sarif.FINGERPRINT_KEY: result.findings[0].fingerprint}

        assert second["level"] == "note"
        assert "locations" not in second

    def test_rules_deduplicated(self, make_finding):
        findings = [make_finding(line=1), make_finding(line=2)]
        data = json.loads(sarif.render(AuditResult(findings=findings)))
        run = data["runs"][0]
        assert len(run["tool"]["driver"]["rules"]) == 1
        assert [r["ruleIndex"] for r in run["results"]] == [0, 0]
        assert "partialFingerprints" not in run["results"][0]


class TestTerminal:
    def _render(self, result, threshold="high") -> str:
        console = Console(record=True, width=160, force_terminal=False)
        terminal.render(result, exit_threshold=threshold, console=console)
        return console.export_text()

    def test_findings_table(self):
        text = self._render(_make_result())
        assert "template/n-plus-one-loop" in text
        assert "blog/index.twig:5" in text
        assert "FAILED" in text

    def test_clean(self):
        text = self._render(AuditResult())
        assert "No issues found" in text
        assert "FAILED" not in text
