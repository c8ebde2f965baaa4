"""Tests for finding fingerprints and key strategies."""

import re

from craft_audit.findings.fingerprint import (
    FINGERPRINT_LENGTH,
    Fingerprinter,
    KeyStrategy,
    compute_fingerprint,
    key_material,
    normalize_path,
)
from craft_audit.findings.models import Evidence


class TestComputeFingerprint:
    def test_fixed_length_lowercase_hex(self, make_finding):
        fp = compute_fingerprint(make_finding())
        assert len(fp) == FINGERPRINT_LENGTH
        assert re.fullmatch(r"[0-9a-f]+", fp)

    def test_deterministic(self, make_finding):
        assert compute_fingerprint(make_finding()) == compute_fingerprint(make_finding())

    def test_ignores_message_and_severity(self, make_finding):
        a = make_finding(message="one", severity="low")
        b = make_finding(message="two", severity="high")
        assert compute_fingerprint(a) == compute_fingerprint(b)

    def test_location_changes_fingerprint(self, make_finding):
        assert compute_fingerprint(make_finding(line=3)) != compute_fingerprint(make_finding(line=4))

    def test_path_separators_normalized(self, make_finding):
        a = make_finding(file="blog\\index.twig")
        b = make_finding(file="./blog/index.twig")
        assert compute_fingerprint(a) == compute_fingerprint(b)


class TestKeyStrategies:
    def test_content_survives_line_shift(self, make_finding):
        ev = Evidence(snippet="{{ dump(entry) }}")
        a = make_finding(line=10, evidence=ev)
        b = make_finding(line=42, evidence=ev)
        assert compute_fingerprint(a, KeyStrategy.CONTENT) == compute_fingerprint(b, KeyStrategy.CONTENT)

    def test_target_uses_url(self, make_finding):
        a = make_finding(file=None, line=None, evidence=Evidence(url="https://a.test"))
        b = make_finding(file=None, line=None, evidence=Evidence(url="https://b.test"))
        assert compute_fingerprint(a, KeyStrategy.TARGET) != compute_fingerprint(b, KeyStrategy.TARGET)

    def test_advisory_ignores_location(self, make_finding):
        ev = Evidence(advisory="CVE-2023-41892:craftcms/cms")
        a = make_finding(file="composer.lock", line=1, evidence=ev)
        b = make_finding(file="composer.lock", line=900, evidence=ev)
        assert compute_fingerprint(a, KeyStrategy.ADVISORY) == compute_fingerprint(b, KeyStrategy.ADVISORY)

    def test_missing_material_falls_back_to_location(self, make_finding):
        f = make_finding(evidence=None)
        assert key_material(f, KeyStrategy.CONTENT) == key_material(f, KeyStrategy.LOCATION)
        assert compute_fingerprint(f, KeyStrategy.TARGET) == compute_fingerprint(f)


class TestFingerprinter:
    def test_assign_fills_missing(self, sample_findings):
        assigned = Fingerprinter().assign(sample_findings)
        assert all(f.fingerprint for f in assigned)
        assert all(f.fingerprint is None for f in sample_findings)

    def test_assign_keeps_existing(self, make_finding):
        f = make_finding(fingerprint="preset")
        assert Fingerprinter().assign([f])[0].fingerprint == "preset"

    def test_per_rule_strategy(self, make_finding):
        fp = Fingerprinter({"template/dump-call": KeyStrategy.CONTENT})
        assert fp.strategy_for("template/dump-call") is KeyStrategy.CONTENT
        assert fp.strategy_for("template/missing-limit") is KeyStrategy.LOCATION

    def test_register(self):
        fp = Fingerprinter()
        fp.register("security/plugin-cve", KeyStrategy.ADVISORY)
        assert fp.strategy_for("security/plugin-cve") is KeyStrategy.ADVISORY


def test_normalize_path():
    assert normalize_path(None) == ""
    assert normalize_path("./a\\b.twig") == "a/b.twig"
