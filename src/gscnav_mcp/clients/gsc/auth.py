"""Access-token providers for the Search Console API.

The search-analytics client only needs a bearer token. Token acquisition
and refresh belong to the provider; a ``None`` token is unrecoverable for
the current call.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from gscnav_mcp.core.config import OAuthConfig, Settings

logger = logging.getLogger(__name__)

# Refresh tokens expiring within this window
REFRESH_MARGIN = timedelta(minutes=5)


@runtime_checkable
class TokenProvider(Protocol):
    """Supplies a valid bearer token, refreshing it when stale."""

    async def validate_and_refresh_token(self) -> str | None: ...


class StaticTokenProvider:
    """Returns a fixed access token."""

    def __init__(self, token: str | None):
        self._token = token

    async def validate_and_refresh_token(self) -> str | None:
        return self._token


class GoogleOAuthTokenProvider:
    """Token provider backed by a Google OAuth2 refresh token."""

    def __init__(self, config: OAuthConfig, credentials: Credentials | None = None):
        """Initialize the provider.

        Args:
            config: OAuth client configuration with a refresh token
            credentials: Pre-built credentials, mainly for tests
        """
        self.config = config
        self._credentials = credentials or self._build_credentials(config)
        self._refresh_lock = asyncio.Lock()

    @staticmethod
    def _build_credentials(config: OAuthConfig) -> Credentials:
        return Credentials(
            token=config.access_token.get_secret_value() if config.access_token else None,
            refresh_token=(
                config.refresh_token.get_secret_value() if config.refresh_token else None
            ),
            token_uri=config.token_uri,
            client_id=config.client_id,
            client_secret=(
                config.client_secret.get_secret_value() if config.client_secret else None
            ),
            scopes=config.scopes,
        )

    def _needs_refresh(self) -> bool:
        creds = self._credentials
        if not creds.token:
            return True
        if not creds.expiry:
            return False
        # google-auth stores expiry as naive UTC
        return bool(creds.expiry <= datetime.utcnow() + REFRESH_MARGIN)

    async def validate_and_refresh_token(self) -> str | None:
        """Return a usable access token, refreshing it when needed.

        Returns:
            Access token, or None when no valid token can be obtained
        """
        async with self._refresh_lock:
            if not self._needs_refresh():
                return self._credentials.token

            if not self._credentials.refresh_token:
                logger.error("Search Console token expired and no refresh token is configured")
                return None

            try:
                await asyncio.to_thread(self._credentials.refresh, Request())
            except (RefreshError, TransportError) as e:
                logger.error(f"Search Console token refresh failed: {e}")
                return None

            logger.info("Search Console access token refreshed")
            return self._credentials.token


def create_token_provider(settings: Settings) -> TokenProvider:
    """Build the token provider selected by the OAuth settings."""
    oauth = settings.oauth
    if oauth.can_refresh:
        return GoogleOAuthTokenProvider(oauth)

    token = oauth.access_token.get_secret_value() if oauth.access_token else None
    if token is None:
        logger.warning("No Search Console credentials configured")
    return StaticTokenProvider(token)
