"""Abstract provider interface for symbol ingestion."""

from __future__ import annotations

from abc import ABC, abstractmethod
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional

import httpx
from pydantic import ValidationError

from cryptoloader.core.errors import ApiKeyMissing, InvalidResponse, RateLimitExceeded, RequestFailed
from cryptoloader.core.logging import get_logger
from cryptoloader.schemas.crypto import CryptoDataSource, CryptoSymbol

log = get_logger("ingestion.base")

# Longest response excerpt written to the log when a body cannot be parsed.
SNIPPET_LENGTH = 200


class CryptoDataProvider(ABC):
    """Fetches the symbol universe from one upstream API."""

    source: CryptoDataSource

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key

    @abstractmethod
    async def fetch_symbols(self, client: httpx.AsyncClient) -> List[CryptoSymbol]:
        """Fetch and normalize symbols; raise a CryptoLoaderError on failure."""

    @abstractmethod
    def rate_limit_delay(self) -> int:
        """Minimum milliseconds to wait after calling this provider."""

    def source_name(self) -> str:
        return self.source.display_name

    def requires_api_key(self) -> bool:
        return False

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise ApiKeyMissing(self.source_name())
        return self.api_key

    async def _request(self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and classify non-2xx statuses into the error taxonomy."""
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise RequestFailed(self.source_name(), f"{type(exc).__name__}: {exc}") from exc

        if resp.status_code == 429:
            raise RateLimitExceeded(self.source_name(), self._parse_retry_after(resp.headers.get("Retry-After")))
        if resp.status_code == 401:
            raise ApiKeyMissing(self.source_name())
        if not resp.is_success:
            raise InvalidResponse(self.source_name(), f"HTTP {resp.status_code}", status_code=resp.status_code)
        return resp

    def _parse_json(self, resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            log.error(f"{self.source_name()} returned a non-JSON body: {resp.text[:SNIPPET_LENGTH]!r}")
            raise InvalidResponse(self.source_name(), f"Invalid JSON response: {exc}") from exc

    def _malformed(self, message: str, payload: Any) -> InvalidResponse:
        log.error(f"{self.source_name()} response structure mismatch ({message}): {str(payload)[:SNIPPET_LENGTH]}")
        return InvalidResponse(self.source_name(), message)

    def _build_symbol(self, **fields: Any) -> CryptoSymbol:
        try:
            return CryptoSymbol(**fields)
        except ValidationError as exc:
            raise self._malformed(
                f"invalid record {fields.get('source_id')!r}: {exc.error_count()} validation error(s)", fields
            ) from exc

    @staticmethod
    def _entries(items: Iterable[Any]) -> Iterator[Dict[str, Any]]:
        """Listing entries that are JSON objects; nulls and scalars are skipped."""
        return (item for item in items if isinstance(item, dict))

    @staticmethod
    def _parse_retry_after(value: Optional[str]) -> Optional[float]:
        if not value:
            return None
        try:
            return max(float(value), 0.0)
        except ValueError:
            pass
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return max((when - datetime.now(timezone.utc)).total_seconds(), 0.0)
