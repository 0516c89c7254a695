"""Error taxonomy for symbol loading and mapping discovery.

Providers classify upstream failures into these types so the loader's retry
policy and the mapping service's discovery loop can branch on the kind of
failure rather than on message text.
"""

from __future__ import annotations

from typing import Optional


class CryptoLoaderError(Exception):
    """Base class for every error raised by the loader stack."""

    retryable = False

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class RequestFailed(CryptoLoaderError):
    """Transport level failure: connection refused, DNS, timeout."""

    retryable = True

    def __init__(self, source: str, message: str):
        super().__init__(f"HTTP request to {source} failed: {message}", source)


class RateLimitExceeded(CryptoLoaderError):
    """HTTP 429 from the upstream API."""

    retryable = True

    def __init__(self, source: str, retry_after: Optional[float] = None):
        super().__init__(f"Rate limit exceeded for source: {source}", source)
        self.retry_after = retry_after


class ApiKeyMissing(CryptoLoaderError):
    """The provider needs credentials and none (or an invalid one) was configured."""

    def __init__(self, source: str):
        super().__init__(f"API key missing for source: {source}", source)


class InvalidResponse(CryptoLoaderError):
    """Non-2xx status or a body that does not match the expected shape."""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"Invalid response format from {source}: {message}", source)
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        # Upstream 5xx are transient; schema mismatches and 4xx are not.
        return self.status_code is not None and self.status_code >= 500


class SourceUnavailable(CryptoLoaderError):
    """The requested source is not configured or has no discovery endpoint."""

    def __init__(self, source: str):
        super().__init__(f"Source not available: {source}", source)


class BatchProcessingError(CryptoLoaderError):
    """A batch item failed while continue_on_error was disabled."""


class InvalidSymbol(CryptoLoaderError):
    """A fetched symbol record failed validation before persistence."""


class RepositoryError(CryptoLoaderError):
    """Persistence collaborator failure."""
