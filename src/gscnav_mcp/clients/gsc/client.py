"""Google Search Console Search Analytics client.

``GSCService`` turns Search Analytics queries into validated ``DataPoint``
rows and the aggregations built on them (top queries and pages, totals,
daily trend, ranking distribution, country list).

Every fetch goes through the same path: build a cache key from the query
shape, return cached rows on a hit, otherwise obtain a token, run the HTTP
call through the rate-limited request queue, transform the raw rows and
write them to the cache unfiltered. Keyword-type filtering and row
validation are applied on the way out, so one cached fetch serves every
keyword-type view.
"""

import gettext
import logging
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Any
from urllib.parse import quote

import httpx
import pycountry

from gscnav_mcp.clients.cache import CacheStore
from gscnav_mcp.clients.gsc.auth import TokenProvider
from gscnav_mcp.clients.gsc.request_queue import RequestQueue
from gscnav_mcp.clients.gsc.validation import (
    validate_metrics,
    validate_search_analytics_data,
)
from gscnav_mcp.core.config import CacheConfig, GSCConfig
from gscnav_mcp.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    UpstreamApiError,
    ValidationError,
)
from gscnav_mcp.models.keyword_rules import KeywordTypeFilter
from gscnav_mcp.models.search_analytics import (
    AggregatedMetrics,
    CountryOption,
    DataPoint,
    Dimension,
    RankingDistribution,
    SearchAnalyticsRequest,
    TrendData,
)
from gscnav_mcp.services.keyword_classifier import KeywordClassifier
from gscnav_mcp.services.user_settings import UserSettingsProvider

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

SC_DOMAIN_PREFIX = "sc-domain:"
_PROTOCOL_RE = re.compile(r"^https?://", re.IGNORECASE)

ALL_COUNTRIES_LABEL = "All Countries"
ALL_COUNTRIES_VALUE = "all"
UNKNOWN_COUNTRY_CODE = "zzz"
COUNTRY_ROW_LIMIT = 1000
COUNTRY_FALLBACK_ROW_LIMIT = 5000
SYNC_BREAKDOWN_ROW_LIMIT = 1000


def _all_countries_option() -> CountryOption:
    return CountryOption(label=ALL_COUNTRIES_LABEL, value=ALL_COUNTRIES_VALUE)


def _valid_country_codes(codes: Iterable[str | None]) -> list[str]:
    """Unique, sorted, lowercase three-letter codes without the unknown sentinel."""
    valid = {
        code.lower()
        for code in codes
        if isinstance(code, str)
        and len(code) == 3
        and code.isalpha()
        and code.lower() != UNKNOWN_COUNTRY_CODE
    }
    return sorted(valid)


@lru_cache(maxsize=16)
def _country_translation(locale: str) -> gettext.NullTranslations:
    return gettext.translation(
        "iso3166-1", pycountry.LOCALES_DIR, languages=[locale], fallback=True
    )


def country_label(code: str, locale: str = "en") -> str:
    """Display name for an ISO 3166 alpha-3 code, or the uppercased code."""
    try:
        country = pycountry.countries.get(alpha_3=code.upper())
    except LookupError:
        country = None

    if country is None:
        return code.upper()

    if locale and not locale.lower().startswith("en"):
        return _country_translation(locale).gettext(country.name)
    return getattr(country, "common_name", None) or country.name


class GSCService:
    """Client for Search Console Search Analytics data."""

    def __init__(
        self,
        token_provider: TokenProvider,
        cache: CacheStore,
        settings_provider: UserSettingsProvider,
        *,
        config: GSCConfig | None = None,
        cache_config: CacheConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        request_queue: RequestQueue | None = None,
        classifier: KeywordClassifier | None = None,
    ):
        """Initialize the Search Analytics client.

        Args:
            token_provider: Supplies bearer tokens for the Search Console API
            cache: Store for fetched rows
            settings_provider: Source of keyword rules, default property and
                last-sync timestamp
            config: Search Console API configuration
            cache_config: Cache key prefix and TTL
            http_client: Optional shared HTTP client; one is created (and
                owned) lazily otherwise
            request_queue: Optional queue, defaults to one built from
                ``config.rate_limit``
            classifier: Optional keyword classifier
        """
        self.config = config or GSCConfig()
        self.cache_config = cache_config or CacheConfig()
        self.token_provider = token_provider
        self.cache = cache
        self.settings_provider = settings_provider
        self.request_queue = request_queue or RequestQueue(self.config.rate_limit)
        self.classifier = classifier or KeywordClassifier(settings_provider)

        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._request_count = 0
        self._cache_hits = 0
        self._last_request_time: datetime | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """HTTP client used for Search Console calls."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.config.request_timeout_seconds
            )
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "GSCService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    def build_cache_key(self, request: SearchAnalyticsRequest) -> str:
        """Deterministic cache key for a request, ignoring its keyword type."""
        # Search type, row limit and start row select different result sets
        key = ":".join(
            [
                self.cache_config.key_prefix,
                request.site_url,
                request.start_date.isoformat(),
                request.end_date.isoformat(),
                ",".join(request.dimensions),
                str(request.search_type),
                f"rows={request.row_limit}",
                f"start={request.start_row}",
            ]
        )
        filter_key = request.filter_key
        if filter_key is not None:
            key += f":filters:{filter_key}"
        return key

    def build_api_url(self, site_url: str) -> str:
        """Endpoint URL for a property.

        ``sc-domain:`` properties are used as-is; URL-prefix properties are
        normalized to include a protocol and percent-escaped.
        """
        site = site_url.strip()
        bare = _PROTOCOL_RE.sub("", site)

        if bare.startswith(SC_DOMAIN_PREFIX):
            segment = bare
        else:
            prefixed = site if _PROTOCOL_RE.match(site) else f"https://{site}"
            segment = quote(prefixed, safe="")

        return f"{self.config.api_base_url}/sites/{segment}/searchAnalytics/query"

    def _build_request(
        self,
        site_url: str,
        start_date: date | str,
        end_date: date | str,
        dimensions: list[Dimension] | None = None,
        row_limit: int | None = None,
    ) -> SearchAnalyticsRequest:
        return SearchAnalyticsRequest(
            site_url=site_url,
            start_date=start_date,
            end_date=end_date,
            dimensions=dimensions or [Dimension.QUERY],
            row_limit=row_limit or self.config.default_row_limit,
        )

    @staticmethod
    def _report(progress: ProgressCallback | None, percent: int, label: str) -> None:
        if progress is None:
            return
        try:
            progress(percent, label)
        except Exception as e:
            logger.warning(f"Progress callback failed at {percent}%: {e}")

    def _track_request(self) -> None:
        self._request_count += 1
        self._last_request_time = datetime.now(timezone.utc)
        logger.debug(f"GSC API request #{self._request_count} completed")

    @staticmethod
    def _extract_error_message(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, Mapping):
            error = payload.get("error")
            if isinstance(error, Mapping) and error.get("message"):
                return str(error["message"])

        return response.reason_phrase or f"HTTP {response.status_code}"

    async def _post_query(
        self, api_url: str, token: str, request: SearchAnalyticsRequest
    ) -> list[Any]:
        response = await self.http_client.post(
            api_url,
            json=request.to_api_body(),
            headers={"Authorization": f"Bearer {token}"},
        )
        self._track_request()

        if not response.is_success:
            message = self._extract_error_message(response)
            logger.error(f"GSC API error ({response.status_code}): {message}")
            raise UpstreamApiError(
                f"GSC API Error: {message}", status_code=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ValidationError(f"Malformed Search Analytics response: {e}") from e

        if not isinstance(payload, Mapping):
            raise ValidationError("Malformed Search Analytics response: expected object")

        rows = payload.get("rows")
        if rows is None:
            logger.warning("No data returned from GSC API")
            return []
        if not isinstance(rows, list):
            raise ValidationError("Malformed Search Analytics response: rows is not a list")
        return rows

    def _transform_rows(
        self, rows: Sequence[Any], dimensions: Sequence[str]
    ) -> list[dict[str, Any]]:
        """Map raw rows onto dimension fields and tag query classifications."""
        has_query = Dimension.QUERY in dimensions
        keywords = self.classifier.snapshot() if has_query else None
        transformed = []

        for index, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise ValidationError(f"Malformed Search Analytics row {index}")
            keys = row.get("keys") or []
            if not isinstance(keys, list):
                raise ValidationError(f"Malformed keys in Search Analytics row {index}")

            point: dict[str, Any] = {
                "query": "",
                "clicks": row.get("clicks"),
                "impressions": row.get("impressions"),
                "ctr": row.get("ctr"),
                "position": row.get("position"),
            }
            for key_index, dimension in enumerate(dimensions):
                if key_index < len(keys):
                    point[str(dimension)] = keys[key_index]

            if has_query:
                query = str(point["query"] or "")
                point["query"] = query
                point["type"] = keywords.keyword_type(query).value
                point["category"] = keywords.keyword_category(query).value

            transformed.append(point)

        return transformed

    @staticmethod
    def _filter_by_keyword_type(
        rows: Sequence[Mapping[str, Any]], request: SearchAnalyticsRequest
    ) -> list[Mapping[str, Any]]:
        if request.keyword_type == KeywordTypeFilter.ALL:
            return list(rows)
        if Dimension.QUERY not in request.dimensions:
            logger.debug("Keyword type filter ignored: query dimension not requested")
            return list(rows)
        return [row for row in rows if row.get("type") == request.keyword_type]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_search_analytics_data(
        self,
        request: SearchAnalyticsRequest,
        progress: ProgressCallback | None = None,
    ) -> list[DataPoint]:
        """Fetch Search Analytics rows, served from cache when possible.

        Args:
            request: Query parameters
            progress: Optional ``(percent, label)`` callback; observational only

        Returns:
            Validated rows, filtered by ``request.keyword_type``

        Raises:
            AuthenticationError: If no valid token is available
            UpstreamApiError: If the API answers with a non-2xx status
            ValidationError: If the response is malformed
        """
        cache_key = self.build_cache_key(request)

        self._report(progress, 10, "Checking cache")
        cached = await self.cache.get(cache_key)
        if cached is not None:
            self._cache_hits += 1
            logger.debug(f"Returning cached search analytics for {cache_key}")
            self._report(progress, 95, "Validating data")
            result = validate_search_analytics_data(
                self._filter_by_keyword_type(cached, request)
            )
            self._report(progress, 100, "Done")
            return result

        self._report(progress, 20, "Authenticating with Google Search Console")
        token = await self.token_provider.validate_and_refresh_token()
        if not token:
            logger.error("Failed to get valid GSC token")
            raise AuthenticationError(
                "Invalid or expired GSC token. Please reconnect to Google Search Console."
            )

        api_url = self.build_api_url(request.site_url)
        logger.info(
            f"Requesting search analytics for {request.site_url} from "
            f"{request.start_date} to {request.end_date} "
            f"(dimensions={','.join(request.dimensions)})"
        )

        self._report(progress, 40, "Requesting data from Google Search Console")
        rows = await self.request_queue.enqueue(
            lambda: self._post_query(api_url, token, request)
        )

        self._report(progress, 70, "Processing rows")
        data = self._transform_rows(rows, request.dimensions)

        self._report(progress, 85, "Caching results")
        await self.cache.set(cache_key, data, ttl=self.cache_config.ttl_seconds)

        self._report(progress, 95, "Validating data")
        result = validate_search_analytics_data(
            self._filter_by_keyword_type(data, request)
        )
        self._report(progress, 100, "Done")
        return result

    async def get_top_queries(
        self,
        site_url: str,
        start_date: date | str,
        end_date: date | str,
        limit: int = 10,
    ) -> list[DataPoint]:
        """Queries with the most clicks, highest first."""
        data = await self.fetch_search_analytics_data(
            self._build_request(
                site_url, start_date, end_date, [Dimension.QUERY], row_limit=limit
            )
        )
        return sorted(data, key=lambda item: item.clicks, reverse=True)[:limit]

    async def get_top_pages(
        self,
        site_url: str,
        start_date: date | str,
        end_date: date | str,
        limit: int = 10,
    ) -> list[DataPoint]:
        """Pages with the most clicks, highest first."""
        data = await self.fetch_search_analytics_data(
            self._build_request(
                site_url, start_date, end_date, [Dimension.PAGE], row_limit=limit
            )
        )
        return sorted(data, key=lambda item: item.clicks, reverse=True)[:limit]

    async def get_aggregated_metrics(
        self, site_url: str, start_date: date | str, end_date: date | str
    ) -> AggregatedMetrics:
        """Totals with click-through rate and impression-weighted position.

        Raises:
            ValidationError: If the computed totals are inconsistent
        """
        data = await self.fetch_search_analytics_data(
            self._build_request(site_url, start_date, end_date)
        )

        total_clicks = sum(item.clicks for item in data)
        total_impressions = sum(item.impressions for item in data)

        if total_impressions > 0:
            avg_ctr = total_clicks / total_impressions
            avg_position = (
                sum(item.position * item.impressions for item in data)
                / total_impressions
            )
        else:
            avg_ctr = 0.0
            avg_position = 0.0

        return validate_metrics(
            AggregatedMetrics(
                total_clicks=total_clicks,
                total_impressions=total_impressions,
                avg_ctr=avg_ctr,
                avg_position=avg_position,
            )
        )

    async def get_trend_data(
        self, site_url: str, start_date: date | str, end_date: date | str
    ) -> TrendData:
        """Daily series ordered by date."""
        data = await self.fetch_search_analytics_data(
            self._build_request(site_url, start_date, end_date, [Dimension.DATE])
        )
        data = sorted(data, key=lambda item: item.date or "")

        return TrendData(
            labels=[item.date or "" for item in data],
            clicks=[item.clicks for item in data],
            impressions=[item.impressions for item in data],
            ctr=[item.ctr for item in data],
            position=[item.position for item in data],
        )

    async def get_ranking_distribution(
        self, site_url: str, start_date: date | str, end_date: date | str
    ) -> RankingDistribution:
        """Count queries per ranking bucket."""
        data = await self.fetch_search_analytics_data(
            self._build_request(
                site_url,
                start_date,
                end_date,
                [Dimension.QUERY],
                row_limit=self.config.max_row_limit,
            )
        )

        distribution = {"top3": 0, "top10": 0, "top20": 0, "top50": 0, "below50": 0}
        for item in data:
            if item.position <= 3:
                distribution["top3"] += 1
            elif item.position <= 10:
                distribution["top10"] += 1
            elif item.position <= 20:
                distribution["top20"] += 1
            elif item.position <= 50:
                distribution["top50"] += 1
            else:
                distribution["below50"] += 1

        return RankingDistribution(**distribution)

    async def _discover_country_codes(
        self, site_url: str, start_date: date | str, end_date: date | str
    ) -> list[str]:
        try:
            primary = await self.fetch_search_analytics_data(
                self._build_request(
                    site_url,
                    start_date,
                    end_date,
                    [Dimension.COUNTRY],
                    row_limit=COUNTRY_ROW_LIMIT,
                )
            )
        except Exception as e:
            logger.warning(f"Country lookup by impressions failed: {e}")
            primary = []

        codes = _valid_country_codes(
            item.country for item in primary if item.impressions > 1
        )
        if codes:
            return codes

        logger.info("No countries above the impression threshold; trying broader fetch")
        fallback = await self.fetch_search_analytics_data(
            self._build_request(
                site_url,
                start_date,
                end_date,
                [Dimension.COUNTRY, Dimension.QUERY],
                row_limit=COUNTRY_FALLBACK_ROW_LIMIT,
            )
        )
        return _valid_country_codes(item.country for item in fallback)

    async def get_available_countries(
        self,
        site_url: str,
        start_date: date | str,
        end_date: date | str,
        locale: str | None = None,
    ) -> list[CountryOption]:
        """Countries with traffic, preceded by an "All Countries" option.

        Never raises: any failure yields the "All Countries" option alone.
        """
        if not site_url or not start_date or not end_date:
            logger.warning("Missing site or date range for country lookup")
            return [_all_countries_option()]

        try:
            codes = await self._discover_country_codes(site_url, start_date, end_date)
        except Exception as e:
            logger.warning(f"Country discovery failed for {site_url}: {e}")
            return [_all_countries_option()]

        if not codes:
            logger.warning(f"No valid country codes found for {site_url}")
            return [_all_countries_option()]

        locale = locale or self.config.country_label_locale
        return [_all_countries_option()] + [
            CountryOption(label=country_label(code, locale), value=code)
            for code in codes
        ]

    async def sync_gsc_data(
        self,
        start_date: date | str,
        end_date: date | str,
        site_url: str | None = None,
    ) -> None:
        """Warm the cache for a property and record the sync time.

        Raises:
            ConfigurationError: If no site is given and no default is configured
        """
        target_site = site_url or self.settings_provider.get_default_property()
        if not target_site:
            raise ConfigurationError("No GSC property specified for sync")

        logger.info(
            f"Starting GSC data sync for {target_site} from {start_date} to {end_date}"
        )

        max_rows = self.config.max_row_limit
        queries = await self.fetch_search_analytics_data(
            self._build_request(
                target_site, start_date, end_date, [Dimension.QUERY], max_rows
            )
        )
        pages = await self.fetch_search_analytics_data(
            self._build_request(
                target_site, start_date, end_date, [Dimension.PAGE], max_rows
            )
        )
        devices = await self.fetch_search_analytics_data(
            self._build_request(
                target_site,
                start_date,
                end_date,
                [Dimension.DEVICE],
                SYNC_BREAKDOWN_ROW_LIMIT,
            )
        )
        countries = await self.fetch_search_analytics_data(
            self._build_request(
                target_site,
                start_date,
                end_date,
                [Dimension.COUNTRY],
                SYNC_BREAKDOWN_ROW_LIMIT,
            )
        )
        trend = await self.get_trend_data(target_site, start_date, end_date)

        logger.info(
            f"Sync completed: {len(queries)} queries, {len(pages)} pages, "
            f"{len(devices)} devices, {len(countries)} countries, "
            f"{len(trend.labels)} days"
        )
        self.settings_provider.set_last_sync(datetime.now(timezone.utc))

    async def clear_cache(self, prefix: str | None = None) -> int:
        """Remove cached rows, optionally only keys starting with ``prefix``."""
        return await self.cache.clear(prefix)

    def get_request_stats(self) -> dict[str, Any]:
        """Get request statistics for monitoring."""
        return {
            "total_requests": self._request_count,
            "cache_hits": self._cache_hits,
            "last_request_time": (
                self._last_request_time.isoformat() if self._last_request_time else None
            ),
            "rate_limit_per_second": self.request_queue.rate_limit,
            "queue_pending": self.request_queue.pending,
            "queue_processed": self.request_queue.processed_count,
        }
