"""Tests for inline template suppressions."""

from craft_audit.scanner.suppression import (
    SuppressionChecker,
    apply_inline_suppressions,
    parse_inline_suppression,
)


class TestInlineParsing:
    def test_next_line(self):
        kind, tags, comment = parse_inline_suppression("{# craft-audit-disable-next-line #}")
        assert kind == "next-line"
        assert tags is None  # suppress all
        assert comment == "{# craft-audit-disable-next-line #}"

    def test_same_line(self):
        kind, tags, _ = parse_inline_suppression("{{ dump(x) }} {# craft-audit-disable-line #}")
        assert kind == "line"
        assert tags is None

    def test_rule_scoped(self):
        _, tags, _ = parse_inline_suppression(
            "{# craft-audit-disable-next-line n+1, template/missing-limit #}"
        )
        assert tags == frozenset({"n+1", "template/missing-limit"})

    def test_whitespace_control(self):
        assert parse_inline_suppression("{#- craft-audit-disable-line dump-call -#}") is not None

    def test_no_suppression(self):
        assert parse_inline_suppression("{# just a comment #}") is None


class TestSuppressionChecker:
    def test_next_line_suppression(self):
        checker = SuppressionChecker("a.twig", [
            "{# craft-audit-disable-next-line #}",
            "{{ dump(entry) }}",
            "{{ dump(other) }}",
        ])
        sup = checker.is_suppressed(2, "template/dump-call")
        assert sup is not None
        assert sup.file == "a.twig"
        assert sup.line == 2
        assert checker.is_suppressed(3, "template/dump-call") is None

    def test_short_tag_matches_rule(self):
        checker = SuppressionChecker("a.twig", ["x {# craft-audit-disable-line n+1 #}"])
        assert checker.is_suppressed(1, "template/n-plus-one-loop") is not None
        assert checker.is_suppressed(1, "template/missing-limit") is None

    def test_full_rule_id_matches(self):
        checker = SuppressionChecker("a.twig", ["x {# craft-audit-disable-line custom/my-rule #}"])
        assert checker.is_suppressed(1, "custom/my-rule") is not None

    def test_fileless_finding_never_suppressed(self):
        checker = SuppressionChecker("a.twig", ["{# craft-audit-disable-line #}"])
        assert checker.is_suppressed(None, "template/dump-call") is None


def test_apply_inline_suppressions(make_finding):
    content = "{# craft-audit-disable-next-line missing-limit #}\n{% for e in craft.entries.all() %}\n"
    suppressed_one = make_finding(file="a.twig", line=2)
    other_rule = make_finding(file="a.twig", line=2, rule_id="template/dump-call")
    kept, suppressed = apply_inline_suppressions("a.twig", content, [suppressed_one, other_rule])
    assert kept == [other_rule]
    assert [s.rule_id for s in suppressed] == ["template/missing-limit"]


def test_no_comments_keeps_everything(make_finding):
    findings = [make_finding()]
    kept, suppressed = apply_inline_suppressions("a.twig", "{{ x }}\n", findings)
    assert kept == findings
    assert suppressed == []
