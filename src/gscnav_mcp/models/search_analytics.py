"""Search Analytics request and result models."""

import json
from datetime import date
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field, field_validator, model_validator

from gscnav_mcp.models.base import BaseGSCModel
from gscnav_mcp.models.keyword_rules import (
    KeywordCategory,
    KeywordType,
    KeywordTypeFilter,
)

MAX_ROW_LIMIT = 25000

# Opaque Search Console filter expression, forwarded verbatim.
DimensionFilterGroup = dict[str, Any]


class Dimension(str, Enum):
    """Grouping axes supported by the Search Analytics API."""

    QUERY = "query"
    PAGE = "page"
    DEVICE = "device"
    COUNTRY = "country"
    DATE = "date"


class SearchType(str, Enum):
    """Search surfaces that can be queried."""

    WEB = "web"
    IMAGE = "image"
    VIDEO = "video"
    NEWS = "news"
    DISCOVER = "discover"
    GOOGLE_NEWS = "googleNews"


class SearchAnalyticsRequest(BaseGSCModel):
    """Parameters for one Search Analytics query."""

    site_url: str = Field(..., min_length=1, description="Search Console property")
    start_date: date = Field(..., description="First day of the range (inclusive)")
    end_date: date = Field(..., description="Last day of the range (inclusive)")
    dimensions: list[Dimension] = Field(
        default_factory=lambda: [Dimension.QUERY],
        description="Ordered dimensions; row keys map onto them positionally",
    )
    row_limit: int = Field(default=MAX_ROW_LIMIT, ge=1, le=MAX_ROW_LIMIT)
    search_type: SearchType = SearchType.WEB
    dimension_filter_groups: list[DimensionFilterGroup] | None = None
    start_row: int = Field(default=0, ge=0)
    keyword_type: KeywordTypeFilter = KeywordTypeFilter.ALL

    @field_validator("dimensions")
    @classmethod
    def dedupe_dimensions(cls, v: list[str]) -> list[str]:
        """Drop repeated dimensions while keeping first-seen order."""
        if not v:
            return [Dimension.QUERY.value]
        return list(dict.fromkeys(v))

    @field_validator("dimension_filter_groups")
    @classmethod
    def ensure_serializable(
        cls, v: list[DimensionFilterGroup] | None
    ) -> list[DimensionFilterGroup] | None:
        """Filter groups must be JSON so they can be forwarded and hashed."""
        if v is not None:
            try:
                json.dumps(v)
            except (TypeError, ValueError) as e:
                raise ValueError(f"dimension_filter_groups must be JSON serializable: {e}")
        return v

    @model_validator(mode="after")
    def check_date_order(self) -> "SearchAnalyticsRequest":
        """Reject ranges that end before they start."""
        if self.end_date < self.start_date:
            raise ValueError("start_date must be on or before end_date")
        return self

    @property
    def filter_key(self) -> str | None:
        """Canonical JSON for the filter groups, used in cache keys."""
        if self.dimension_filter_groups is None:
            return None
        return json.dumps(
            self.dimension_filter_groups, sort_keys=True, separators=(",", ":")
        )

    def to_api_body(self) -> dict[str, Any]:
        """Build the JSON body expected by the searchAnalytics/query endpoint."""
        return {
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "dimensions": list(self.dimensions),
            "rowLimit": self.row_limit,
            "searchType": self.search_type,
            "dimensionFilterGroups": self.dimension_filter_groups or [],
            "startRow": self.start_row,
        }


class DataPoint(BaseGSCModel):
    """One aggregated Search Analytics row."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    query: str = ""
    page: str | None = None
    device: str | None = None
    country: str | None = None
    date: str | None = None
    clicks: int = 0
    impressions: int = 0
    ctr: float = 0.0
    position: float = 0.0
    type: KeywordType | None = None
    category: KeywordCategory | None = None


class AggregatedMetrics(BaseGSCModel):
    """Site-wide totals for a date range."""

    total_clicks: int
    total_impressions: int
    avg_ctr: float
    avg_position: float


class TrendData(BaseGSCModel):
    """Daily metrics as parallel series aligned with ``labels``."""

    labels: list[str] = Field(default_factory=list)
    clicks: list[int] = Field(default_factory=list)
    impressions: list[int] = Field(default_factory=list)
    ctr: list[float] = Field(default_factory=list)
    position: list[float] = Field(default_factory=list)


class RankingDistribution(BaseGSCModel):
    """Query counts per ranking bucket."""

    top3: int = 0
    top10: int = 0
    top20: int = 0
    top50: int = 0
    below50: int = 0

    @property
    def total(self) -> int:
        return self.top3 + self.top10 + self.top20 + self.top50 + self.below50


class CountryOption(BaseGSCModel):
    """Selectable country entry."""

    label: str
    value: str
