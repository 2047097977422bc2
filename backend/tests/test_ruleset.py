"""Tests for the detection ruleset and its predicates."""

import pytest
from pydantic import ValidationError

from exportgate.rules.ruleset import (
    DescriptionQuantityCondition,
    Ruleset,
    ThresholdRule,
    contains_term,
    load_ruleset,
    normalize_hs_code,
    spec_number,
)


class TestDefaultRuleset:
    def test_loads_builtin(self):
        ruleset = load_ruleset()
        assert ruleset.version == "2025.1"
        assert ruleset.strategic_threshold == 60
        assert ruleset.manual_review_below == 70
        assert ruleset.exact_match.confidence == 95
        assert ruleset.semantic.similarity_threshold == 0.85
        assert [r.code for r in ruleset.threshold_rules] == ["3A001.a.1", "5A002.a", "3A001.a.3"]
        assert ruleset.hs_code.similarity_threshold == 0.65
        assert ruleset.keyword.confidence == 60

    def test_hs_prefix_lookup(self):
        ruleset = load_ruleset()
        assert ruleset.hs_code.match_prefix("8473.30.90").prefix == "8473"
        assert ruleset.hs_code.match_prefix("3919.10") is None
        assert ruleset.hs_code.match_prefix(None) is None

    def test_load_from_file(self, tmp_path):
        custom = Ruleset(
            version="2026.2",
            strategic_threshold=50,
            rules=[{"kind": "exact_match", "confidence": 99}],
        )
        path = tmp_path / "ruleset.json"
        path.write_text(custom.model_dump_json(), encoding="utf-8")

        loaded = load_ruleset(str(path))
        assert loaded.version == "2026.2"
        assert loaded.strategic_threshold == 50
        assert loaded.exact_match.confidence == 99
        assert loaded.semantic is None
        assert loaded.threshold_rules == []

    def test_unknown_rule_kind_rejected(self):
        with pytest.raises(ValidationError):
            Ruleset.model_validate({"version": "x", "rules": [{"kind": "astrology"}]})


class TestPredicates:
    def test_contains_term_whole_word(self):
        assert contains_term("Server with AI cards", "AI")
        assert not contains_term("Ergonomic chair", "AI")
        assert contains_term("Core network switch", "network")

    def test_keyword_terms_are_word_bounded(self):
        rule = load_ruleset().keyword
        assert rule.found_terms("Programmable semiconductor test rig") == ["semiconductor"]
        assert rule.found_terms("Paramilitary-style costume") == []

    def test_normalize_hs_code(self):
        assert normalize_hs_code("8542.31.00") == "85423100"
        assert normalize_hs_code(None) == ""

    def test_spec_number_accepts_units_and_camel_case(self):
        assert spec_number({"processNode": "7nm"}, "process_node") == 7.0
        assert spec_number({"tpp": 5285}, "tpp") == 5285.0
        assert spec_number({"tpp": True}, "tpp") is None
        assert spec_number({}, "tpp") is None

    def test_description_quantity(self):
        cond = DescriptionQuantityCondition(unit="GB", at_least=64)
        assert cond.holds("DDR5 server memory 128 GB", "", {})
        assert not cond.holds("DDR5 laptop memory 16GB", "", {})

    def test_threshold_rule_all_vs_any(self):
        rule = ThresholdRule(
            code="5A002.a",
            confidence=85,
            reason="network",
            match="all",
            conditions=[
                {"type": "keyword_any", "terms": ["switch"]},
                {"type": "hs_prefix", "prefixes": ["8517"]},
            ],
        )
        assert rule.satisfied("Managed switch", "8517.62.00", {})
        assert not rule.satisfied("Managed switch", "8471.50", {})

        rule.match = "any"
        assert rule.satisfied("Managed switch", "8471.50", {})
