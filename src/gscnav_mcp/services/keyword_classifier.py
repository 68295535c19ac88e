"""Branded and funnel-stage classification of search queries."""

import logging
import re
from collections.abc import Iterable

from gscnav_mcp.models.keyword_rules import (
    BrandedKeywordRule,
    KeywordCategoryPatterns,
    KeywordCategory,
    KeywordType,
    RuleType,
)
from gscnav_mcp.services.user_settings import UserSettingsProvider

logger = logging.getLogger(__name__)


def _rule_matches(rule: BrandedKeywordRule, keyword: str) -> bool:
    value = rule.value.lower()
    if not value:
        return False

    if rule.type == RuleType.CONTAINS:
        return value in keyword
    if rule.type == RuleType.STARTS_WITH:
        return keyword.startswith(value)
    if rule.type == RuleType.EXACT_MATCH:
        return keyword == value
    if rule.type == RuleType.ENDS_WITH:
        return keyword.endswith(value)
    return False


def match_branded_rules(
    query: str, rules: Iterable[BrandedKeywordRule]
) -> KeywordType:
    """Classify ``query`` against ordered rules; the first match wins.

    Matching is case-insensitive. With no matching rule the query is
    non-branded.
    """
    keyword = query.lower()
    for rule in rules:
        if _rule_matches(rule, keyword):
            return KeywordType.BRANDED
    return KeywordType.NON_BRANDED


def compile_category_patterns(
    patterns: KeywordCategoryPatterns,
) -> list[tuple[KeywordCategory, re.Pattern[str]]]:
    """Compile funnel patterns in ToFu, MoFu, BoFu order, skipping invalid ones."""
    compiled = []
    for category, stage_patterns in (
        (KeywordCategory.TOFU, patterns.tofu),
        (KeywordCategory.MOFU, patterns.mofu),
        (KeywordCategory.BOFU, patterns.bofu),
    ):
        for pattern in stage_patterns:
            try:
                compiled.append((category, re.compile(pattern, re.IGNORECASE)))
            except re.error as e:
                logger.warning(f"Skipping invalid keyword pattern {pattern!r}: {e}")
    return compiled


def match_category_patterns(
    query: str, compiled: Iterable[tuple[KeywordCategory, re.Pattern[str]]]
) -> KeywordCategory:
    """Funnel stage of the first matching pattern, or unknown."""
    for category, pattern in compiled:
        if pattern.search(query):
            return category
    return KeywordCategory.UNKNOWN


class KeywordSnapshot:
    """Rules and compiled patterns read once for a batch of queries."""

    def __init__(
        self, rules: list[BrandedKeywordRule], patterns: KeywordCategoryPatterns
    ):
        self.rules = rules
        self.compiled_patterns = compile_category_patterns(patterns)

    def keyword_type(self, query: str) -> KeywordType:
        return match_branded_rules(query, self.rules)

    def keyword_category(self, query: str) -> KeywordCategory:
        return match_category_patterns(query, self.compiled_patterns)


class KeywordClassifier:
    """Classifies queries using rules read from the user's settings."""

    def __init__(self, settings_provider: UserSettingsProvider):
        self.settings_provider = settings_provider

    def snapshot(self) -> KeywordSnapshot:
        """Read the current rules and patterns for classifying a batch of rows."""
        return KeywordSnapshot(
            self.settings_provider.get_branded_keyword_rules(),
            self.settings_provider.get_keyword_category_patterns(),
        )

    def classify_keyword_type(self, query: str) -> KeywordType:
        """Tag a query as branded or non-branded with the current rules."""
        return match_branded_rules(
            query, self.settings_provider.get_branded_keyword_rules()
        )

    def classify_keyword_category(self, query: str) -> KeywordCategory:
        """Assign a funnel stage; ToFu patterns are checked first, then MoFu, then BoFu."""
        return match_category_patterns(
            query,
            compile_category_patterns(
                self.settings_provider.get_keyword_category_patterns()
            ),
        )
