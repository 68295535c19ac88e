"""Data models for GSCNav."""

from gscnav_mcp.models.base import BaseGSCModel
from gscnav_mcp.models.keyword_rules import (
    BrandedKeywordRule,
    KeywordCategory,
    KeywordCategoryPatterns,
    KeywordType,
    KeywordTypeFilter,
    RuleType,
)
from gscnav_mcp.models.search_analytics import (
    MAX_ROW_LIMIT,
    AggregatedMetrics,
    CountryOption,
    DataPoint,
    Dimension,
    DimensionFilterGroup,
    RankingDistribution,
    SearchAnalyticsRequest,
    SearchType,
    TrendData,
)

__all__ = [
    "MAX_ROW_LIMIT",
    "AggregatedMetrics",
    "BaseGSCModel",
    "BrandedKeywordRule",
    "CountryOption",
    "DataPoint",
    "Dimension",
    "DimensionFilterGroup",
    "KeywordCategory",
    "KeywordCategoryPatterns",
    "KeywordType",
    "KeywordTypeFilter",
    "RankingDistribution",
    "RuleType",
    "SearchAnalyticsRequest",
    "SearchType",
    "TrendData",
]
