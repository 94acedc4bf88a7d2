from __future__ import annotations


class ProviderError(Exception):
    """Base error for completion failures."""


class ConfigurationError(ProviderError):
    """Missing credentials or an unusable request, raised before any network call."""


class ProviderUnavailable(ProviderError):
    """Transport-level failure: connection errors, timeouts, upstream 5xx."""

    def __init__(self, message: str = "Provider unavailable", *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RequestTimeoutError(ProviderUnavailable):
    """Attempt timeout or overall deadline exceeded."""


class ProviderRejected(ProviderError):
    kind = "invalid_request"

    def __init__(self, message: str = "Provider rejected the request", *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(ProviderRejected):
    kind = "authentication"


class RateLimitError(ProviderRejected):
    kind = "rate_limit"

    def __init__(
        self,
        retry_after_seconds: int | None = None,
        message: str = "Rate limited",
        *,
        status_code: int | None = 429,
    ):
        super().__init__(message, status_code=status_code)
        self.retry_after_seconds = retry_after_seconds


class MalformedResponse(ProviderError):
    """Unexpected upstream response shape / contract mismatch."""
