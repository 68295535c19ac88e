"""FastMCP server exposing Google Search Console analytics."""

import logging
import re
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import httpx
from fastmcp import FastMCP
from pydantic import BaseModel, Field

from gscnav_mcp.clients.cache import create_cache_store
from gscnav_mcp.clients.gsc.auth import create_token_provider
from gscnav_mcp.clients.gsc.client import GSCService
from gscnav_mcp.core.config import Settings, get_settings, setup_logging
from gscnav_mcp.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    UpstreamApiError,
    ValidationError,
)
from gscnav_mcp.models import (
    MAX_ROW_LIMIT,
    Dimension,
    DimensionFilterGroup,
    KeywordTypeFilter,
    SearchAnalyticsRequest,
    SearchType,
)
from gscnav_mcp.services.user_settings import create_user_settings

logger = logging.getLogger(__name__)

SERVER_NAME = "GSCNav MCP Server"
SERVER_VERSION = "1.0.0"

TOOL_NAMES = [
    "get_search_analytics",
    "get_top_queries",
    "get_top_pages",
    "get_aggregated_metrics",
    "get_trend_data",
    "get_ranking_distribution",
    "get_available_countries",
    "sync_gsc_data",
    "clear_cache",
]


# ============================================================================
# Error Codes
# ============================================================================


class ErrorCode(str, Enum):
    """Error codes for programmatic error handling."""

    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_INPUT = "INVALID_INPUT"
    UPSTREAM_API_ERROR = "UPSTREAM_API_ERROR"
    DATA_VALIDATION_ERROR = "DATA_VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# ============================================================================
# Helper Functions
# ============================================================================


def sanitize_error_message(msg: str) -> str:
    """Remove potential credentials from error messages.

    Args:
        msg: Original error message

    Returns:
        Sanitized error message with credentials redacted

    Examples:
        >>> sanitize_error_message("Token ya29abcdefghijklmnopqrstuv failed")
        "Token [REDACTED] failed"
        >>> sanitize_error_message("user@example.com authentication failed")
        "[EMAIL_REDACTED] authentication failed"
    """
    # Anything that looks like a token (20+ alphanumeric/dash/underscore)
    msg = re.sub(r"[A-Za-z0-9_-]{20,}", "[REDACTED]", msg)

    msg = re.sub(r"\b[\w.-]+@[\w.-]+\.\w+\b", "[EMAIL_REDACTED]", msg)

    msg = re.sub(r"Bearer\s+\S+", "Bearer [REDACTED]", msg, flags=re.IGNORECASE)

    msg = re.sub(
        r"(api[_-]?key|token|secret|password|credential)[\"']?\s*[:=]\s*[\"']?[^\s\"']+",
        r"\1=[REDACTED]",
        msg,
        flags=re.IGNORECASE,
    )

    return msg


def _error_response(
    code: ErrorCode,
    message: str,
    error_type: str,
    retry_allowed: bool | None = None,
    **details: Any,
) -> dict[str, Any]:
    detail = {"error_type": error_type, **details}
    if retry_allowed is not None:
        detail["retry_allowed"] = retry_allowed
    return {
        "status": "error",
        "error_code": code,
        "message": message,
        "details": detail,
        "data": [],
    }


async def run_tool(
    operation: str, call: Callable[[], Awaitable[Any]]
) -> dict[str, Any]:
    """Run a service call and wrap the outcome in the tool response envelope.

    Args:
        operation: Human-readable operation name used in messages
        call: Zero-argument coroutine function returning JSON-ready data

    Returns:
        ``{"status": "success", ...}`` or an error payload with an ``ErrorCode``
    """
    try:
        data = await call()
        count = len(data) if isinstance(data, list) else None
        message = (
            f"Retrieved {count} records for {operation}"
            if count is not None
            else f"Completed {operation}"
        )
        return {
            "status": "success",
            "message": message,
            "metadata": {"operation": operation, "record_count": count},
            "data": data,
        }

    except ValueError as e:
        logger.error(f"Invalid input for {operation}: {sanitize_error_message(str(e))}")
        return _error_response(
            ErrorCode.INVALID_INPUT,
            f"Invalid input: {sanitize_error_message(str(e))}",
            "validation",
            retry_allowed=False,
        )
    except AuthenticationError as e:
        logger.error(f"Authentication failed: {sanitize_error_message(str(e))}")
        return _error_response(
            ErrorCode.INVALID_CREDENTIALS,
            "Authentication failed. Please reconnect to Google Search Console.",
            "authentication",
            retry_allowed=False,
        )
    except UpstreamApiError as e:
        logger.error(
            f"Search Console API error: {sanitize_error_message(str(e))}", exc_info=True
        )
        status_code = e.status_code
        return _error_response(
            ErrorCode.UPSTREAM_API_ERROR,
            sanitize_error_message(str(e)),
            "api_error",
            retry_allowed=status_code is None or status_code == 429 or status_code >= 500,
            status_code=status_code,
        )
    except httpx.HTTPError as e:
        logger.error(
            f"Search Console transport error: {sanitize_error_message(str(e))}",
            exc_info=True,
        )
        return _error_response(
            ErrorCode.UPSTREAM_API_ERROR,
            "Could not reach Google Search Console. Please try again later.",
            "transport",
            retry_allowed=True,
        )
    except ValidationError as e:
        logger.error(f"Data validation failed: {sanitize_error_message(str(e))}")
        return _error_response(
            ErrorCode.DATA_VALIDATION_ERROR,
            f"Data validation failed: {sanitize_error_message(str(e))}",
            "data_validation",
            retry_allowed=False,
        )
    except ConfigurationError as e:
        logger.error(f"Configuration error: {sanitize_error_message(str(e))}")
        return _error_response(
            ErrorCode.CONFIGURATION_ERROR,
            str(e),
            "configuration",
            retry_allowed=False,
        )
    except Exception as e:
        logger.error(
            f"Unexpected error: {sanitize_error_message(str(e))}", exc_info=True
        )
        return _error_response(
            ErrorCode.INTERNAL_ERROR,
            "An unexpected error occurred. Please contact support if this persists.",
            "unexpected",
        )


# ============================================================================
# Models
# ============================================================================


class DateRangeRequest(BaseModel):
    """Request model for a property and date range."""

    site_url: str = Field(
        ..., description="Search Console property (URL prefix or sc-domain:)"
    )
    start_date: str = Field(..., description="Start date in YYYY-MM-DD format")
    end_date: str = Field(..., description="End date in YYYY-MM-DD format")


class SearchAnalyticsToolRequest(DateRangeRequest):
    """Request model for raw Search Analytics rows."""

    dimensions: list[Dimension] = Field(
        default_factory=lambda: [Dimension.QUERY], description="Grouping dimensions"
    )
    row_limit: int = Field(MAX_ROW_LIMIT, ge=1, le=MAX_ROW_LIMIT)
    search_type: SearchType = SearchType.WEB
    keyword_type: KeywordTypeFilter = Field(
        KeywordTypeFilter.ALL, description="Restrict query rows to branded or non-branded"
    )
    dimension_filter_groups: list[DimensionFilterGroup] | None = Field(
        None, description="Search Console filter groups, forwarded verbatim"
    )
    start_row: int = Field(0, ge=0)


class TopItemsRequest(DateRangeRequest):
    """Request model for top queries or pages."""

    limit: int = Field(10, ge=1, le=MAX_ROW_LIMIT, description="Number of rows to return")


class CountriesRequest(DateRangeRequest):
    """Request model for the country list."""

    locale: str | None = Field(None, description="Locale for country names, e.g. 'de'")


class SyncRequest(BaseModel):
    """Request model for a full data sync."""

    start_date: str = Field(..., description="Start date in YYYY-MM-DD format")
    end_date: str = Field(..., description="End date in YYYY-MM-DD format")
    site_url: str | None = Field(
        None, description="Property to sync; defaults to the configured property"
    )


class ClearCacheRequest(BaseModel):
    """Request model for cache invalidation."""

    prefix: str | None = Field(
        None, description="Only remove keys starting with this prefix"
    )


# ============================================================================
# Service Wiring
# ============================================================================


def build_service(settings: Settings) -> GSCService:
    """Build a ``GSCService`` from settings."""
    return GSCService(
        token_provider=create_token_provider(settings),
        cache=create_cache_store(settings),
        settings_provider=create_user_settings(settings),
        config=settings.gsc,
        cache_config=settings.cache,
    )


def create_mcp_server(
    service: GSCService | None = None, settings: Settings | None = None
) -> FastMCP:
    """
    Create the MCP server with tools bound to one ``GSCService``.

    Args:
        service: Service to expose; built from ``settings`` when omitted
        settings: Application settings; loaded from the environment when omitted

    Returns:
        FastMCP: The configured server instance ready to run.
    """
    settings = settings or get_settings()
    service = service or build_service(settings)
    mcp = FastMCP(SERVER_NAME)

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    @mcp.tool()
    async def get_search_analytics(request: SearchAnalyticsToolRequest) -> dict[str, Any]:
        """
        Fetch Search Analytics rows for a property and date range.

        Rows carry clicks, impressions, CTR and average position for each
        combination of the requested dimensions. Query rows are tagged as
        branded or non-branded and with a funnel stage.
        """

        async def call() -> list[dict[str, Any]]:
            query = SearchAnalyticsRequest(**request.model_dump())
            rows = await service.fetch_search_analytics_data(query)
            return [row.model_dump() for row in rows]

        return await run_tool("search analytics", call)

    @mcp.tool()
    async def get_top_queries(request: TopItemsRequest) -> dict[str, Any]:
        """Fetch the queries with the most clicks."""

        async def call() -> list[dict[str, Any]]:
            rows = await service.get_top_queries(
                request.site_url, request.start_date, request.end_date, request.limit
            )
            return [row.model_dump() for row in rows]

        return await run_tool("top queries", call)

    @mcp.tool()
    async def get_top_pages(request: TopItemsRequest) -> dict[str, Any]:
        """Fetch the pages with the most clicks."""

        async def call() -> list[dict[str, Any]]:
            rows = await service.get_top_pages(
                request.site_url, request.start_date, request.end_date, request.limit
            )
            return [row.model_dump() for row in rows]

        return await run_tool("top pages", call)

    @mcp.tool()
    async def get_aggregated_metrics(request: DateRangeRequest) -> dict[str, Any]:
        """
        Fetch total clicks and impressions with overall CTR and average position.

        Average position is weighted by impressions.
        """

        async def call() -> dict[str, Any]:
            metrics = await service.get_aggregated_metrics(
                request.site_url, request.start_date, request.end_date
            )
            return metrics.model_dump()

        return await run_tool("aggregated metrics", call)

    @mcp.tool()
    async def get_trend_data(request: DateRangeRequest) -> dict[str, Any]:
        """Fetch the daily clicks, impressions, CTR and position series."""

        async def call() -> dict[str, Any]:
            trend = await service.get_trend_data(
                request.site_url, request.start_date, request.end_date
            )
            return trend.model_dump()

        return await run_tool("trend data", call)

    @mcp.tool()
    async def get_ranking_distribution(request: DateRangeRequest) -> dict[str, Any]:
        """Count queries ranking in the top 3, 10, 20, 50 and below."""

        async def call() -> dict[str, Any]:
            distribution = await service.get_ranking_distribution(
                request.site_url, request.start_date, request.end_date
            )
            return {**distribution.model_dump(), "total": distribution.total}

        return await run_tool("ranking distribution", call)

    @mcp.tool()
    async def get_available_countries(request: CountriesRequest) -> dict[str, Any]:
        """
        List countries with search traffic for the property.

        The first entry is always "All Countries"; lookup failures return
        only that entry.
        """

        async def call() -> list[dict[str, Any]]:
            options = await service.get_available_countries(
                request.site_url, request.start_date, request.end_date, request.locale
            )
            return [option.model_dump() for option in options]

        return await run_tool("available countries", call)

    @mcp.tool()
    async def sync_gsc_data(request: SyncRequest) -> dict[str, Any]:
        """
        Refresh cached query, page, device, country and daily data for a property.

        Records the sync time in the user settings.
        """

        async def call() -> dict[str, Any]:
            await service.sync_gsc_data(
                request.start_date, request.end_date, request.site_url
            )
            last_sync = service.settings_provider.get_last_sync()
            return {"last_sync": last_sync.isoformat() if last_sync else None}

        return await run_tool("data sync", call)

    @mcp.tool()
    async def clear_cache(request: ClearCacheRequest) -> dict[str, Any]:
        """Remove cached Search Analytics responses."""

        async def call() -> dict[str, Any]:
            removed = await service.clear_cache(request.prefix)
            return {"removed": removed}

        return await run_tool("cache clear", call)

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    @mcp.resource("resource://health")
    def health_check() -> dict[str, Any]:
        """
        Provides server health status and request statistics.
        """
        return {
            "status": "healthy",
            "version": SERVER_VERSION,
            "server": SERVER_NAME,
            "stats": service.get_request_stats(),
            "tools_available": TOOL_NAMES,
        }

    @mcp.resource("resource://config")
    def get_config() -> dict[str, Any]:
        """
        Provides the server's configuration status (without exposing secrets).
        """
        return {
            "server_version": SERVER_VERSION,
            "environment": settings.environment,
            "features": {
                "search_console": {
                    "oauth_refresh_configured": settings.oauth.can_refresh,
                    "rate_limit_per_second": settings.gsc.rate_limit,
                    "api_base_url": settings.gsc.api_base_url,
                },
                "caching": {
                    "backend": "redis" if settings.redis.enabled else "memory",
                    "ttl_seconds": settings.cache.ttl_seconds,
                },
            },
        }

    return mcp


# ============================================================================
# Entry Point
# ============================================================================


def main() -> None:
    """Load settings and run the MCP server."""
    settings = Settings.from_env()
    setup_logging(settings)
    settings.validate_required_settings()
    create_mcp_server(settings=settings).run()


if __name__ == "__main__":
    main()
