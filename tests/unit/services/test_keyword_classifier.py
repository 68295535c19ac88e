"""Tests for branded and funnel-stage keyword classification."""

import pytest

from gscnav_mcp.models import BrandedKeywordRule, KeywordCategory, KeywordType
from gscnav_mcp.services.keyword_classifier import KeywordClassifier, match_branded_rules
from gscnav_mcp.services.user_settings import InMemoryUserSettings


def rule(rule_type: str, value: str) -> BrandedKeywordRule:
    return BrandedKeywordRule(type=rule_type, value=value)


class TestMatchBrandedRules:
    """Test the pure rule matcher."""

    @pytest.mark.parametrize("query", ["Acme Widgets", "best acme deals", "ACME"])
    def test_contains_is_case_insensitive(self, query):
        assert match_branded_rules(query, [rule("contains", "acme")]) == KeywordType.BRANDED

    def test_no_match_is_non_branded(self):
        assert match_branded_rules("widget", [rule("contains", "acme")]) == KeywordType.NON_BRANDED

    def test_no_rules_is_non_branded(self):
        assert match_branded_rules("acme", []) == KeywordType.NON_BRANDED

    @pytest.mark.parametrize(
        "rule_type, value, query, expected",
        [
            ("starts_with", "acme", "acme shoes", KeywordType.BRANDED),
            ("starts_with", "acme", "buy acme", KeywordType.NON_BRANDED),
            ("ends_with", "acme", "buy acme", KeywordType.BRANDED),
            ("ends_with", "acme", "acme shoes", KeywordType.NON_BRANDED),
            ("exact_match", "Acme", "acme", KeywordType.BRANDED),
            ("exact_match", "acme", "acme shoes", KeywordType.NON_BRANDED),
        ],
    )
    def test_rule_types(self, rule_type, value, query, expected):
        assert match_branded_rules(query, [rule(rule_type, value)]) == expected

    def test_empty_value_never_matches(self):
        assert match_branded_rules("anything", [rule("contains", "")]) == KeywordType.NON_BRANDED

    def test_first_match_wins(self):
        """Test that later rules are not consulted once one matches."""
        rules = [rule("exact_match", "acme"), rule("contains", "acme")]
        assert match_branded_rules("acme", rules) == KeywordType.BRANDED
        assert match_branded_rules("acme shoes", rules) == KeywordType.BRANDED


class TestKeywordClassifier:
    """Test classification driven by user settings."""

    def test_reads_rules_on_every_call(self):
        settings = InMemoryUserSettings()
        classifier = KeywordClassifier(settings)

        assert classifier.classify_keyword_type("acme shoes") == KeywordType.NON_BRANDED

        settings.branded_rules = [rule("contains", "acme")]

        assert classifier.classify_keyword_type("acme shoes") == KeywordType.BRANDED

    @pytest.mark.parametrize(
        "query, expected",
        [
            ("What is a running shoe", KeywordCategory.TOFU),
            ("best running shoes", KeywordCategory.MOFU),
            ("buy running shoes", KeywordCategory.BOFU),
            ("running shoes", KeywordCategory.UNKNOWN),
        ],
    )
    def test_categories(self, user_settings, query, expected):
        assert KeywordClassifier(user_settings).classify_keyword_category(query) == expected

    def test_tofu_checked_before_bofu(self, user_settings):
        classifier = KeywordClassifier(user_settings)
        assert classifier.classify_keyword_category("how to buy shoes") == KeywordCategory.TOFU

    def test_invalid_pattern_is_skipped(self):
        settings = InMemoryUserSettings(category_patterns={"tofu": ["(unclosed"], "bofu": ["buy"]})
        classifier = KeywordClassifier(settings)

        assert classifier.classify_keyword_category("buy shoes") == KeywordCategory.BOFU

    def test_snapshot_matches_per_query_classification(self, user_settings):
        classifier = KeywordClassifier(user_settings)
        snapshot = classifier.snapshot()

        for query in ["acme shoes", "how to buy shoes", "best boots", "socks"]:
            assert snapshot.keyword_type(query) == classifier.classify_keyword_type(query)
            assert snapshot.keyword_category(query) == classifier.classify_keyword_category(query)

    def test_snapshot_ignores_later_rule_changes(self):
        settings = InMemoryUserSettings()
        snapshot = KeywordClassifier(settings).snapshot()

        settings.branded_rules = [rule("contains", "acme")]

        assert snapshot.keyword_type("acme shoes") == KeywordType.NON_BRANDED
