"""Google Search Console Search Analytics client."""

from gscnav_mcp.clients.gsc.auth import (
    GoogleOAuthTokenProvider,
    StaticTokenProvider,
    TokenProvider,
    create_token_provider,
)
from gscnav_mcp.clients.gsc.client import GSCService, ProgressCallback
from gscnav_mcp.clients.gsc.request_queue import RequestQueue
from gscnav_mcp.clients.gsc.validation import (
    validate_metrics,
    validate_search_analytics_data,
)

__all__ = [
    "GSCService",
    "GoogleOAuthTokenProvider",
    "ProgressCallback",
    "RequestQueue",
    "StaticTokenProvider",
    "TokenProvider",
    "create_token_provider",
    "validate_metrics",
    "validate_search_analytics_data",
]
