"""Custom exceptions for GSCNav."""


class GSCNavError(Exception):
    """Base exception for all GSCNav errors."""

    pass


class APIError(GSCNavError):
    """Raised when API calls fail."""

    pass


class AuthenticationError(APIError):
    """Raised when no valid Search Console credential is available.

    Not retried locally; callers should prompt the user to reconnect
    their Google account.
    """

    pass


class UpstreamApiError(APIError):
    """Raised when the Search Analytics endpoint answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        """Initialize upstream API error.

        Args:
            message: Error message taken from the provider payload when present
            status_code: HTTP status code returned by the endpoint
        """
        super().__init__(message)
        self.status_code = status_code


class ValidationError(GSCNavError):
    """Raised when data validation fails."""

    pass


class ConfigurationError(GSCNavError):
    """Raised when configuration is invalid."""

    pass


class StorageError(GSCNavError):
    """Raised when cache or settings storage operations fail."""

    pass
