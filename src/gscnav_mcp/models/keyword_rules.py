"""Keyword classification rule models."""

from enum import Enum

from pydantic import Field

from gscnav_mcp.models.base import BaseGSCModel


class RuleType(str, Enum):
    """How a branded keyword rule matches a query."""

    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    EXACT_MATCH = "exact_match"
    ENDS_WITH = "ends_with"


class KeywordType(str, Enum):
    """Branded classification stored on each query row."""

    BRANDED = "branded"
    NON_BRANDED = "non-branded"


class KeywordTypeFilter(str, Enum):
    """Keyword-type view requested by a caller."""

    ALL = "all"
    BRANDED = "branded"
    NON_BRANDED = "non-branded"


class KeywordCategory(str, Enum):
    """Marketing funnel stage of a query."""

    TOFU = "tofu"
    MOFU = "mofu"
    BOFU = "bofu"
    UNKNOWN = "unknown"


class BrandedKeywordRule(BaseGSCModel):
    """A user-configured rule marking matching queries as branded."""

    id: str | None = Field(None, description="Rule identifier assigned by the editor")
    type: RuleType = Field(..., description="Match type")
    value: str = Field(..., description="Text to match, compared case-insensitively")


class KeywordCategoryPatterns(BaseGSCModel):
    """Regular expressions assigning queries to a funnel stage."""

    tofu: list[str] = Field(default_factory=list)
    mofu: list[str] = Field(default_factory=list)
    bofu: list[str] = Field(default_factory=list)
