"""Async client for a MangaDex-compatible metadata API.

Usage:
    async with MDClient() as client:
        candidates = await client.search("Solo Leveling", limit=5)
        series = await client.fetch_by_id(candidates[0].external_id)
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from chaptertrack_common import get_logger
from chaptertrack_contracts import MetadataCandidate

from md_client.errors import (
    MDAPIError,
    MDConfigError,
    MDNetworkError,
    MDNotFoundError,
    MDRateLimitError,
)
from md_client.rate_limiter import RateLimiter

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.mangadex.org"
COVER_BASE_URL = "https://uploads.mangadex.org/covers"
CONTENT_RATINGS = ["safe", "suggestive", "erotica"]


class MDClient:
    """Rate-limited metadata provider client.

    Args:
        base_url: API root
        api_key: Optional bearer token
        requests_per_second: Client-side rate limit
        timeout: Per-request timeout in seconds
        http_client: Pre-built httpx client (tests, shared pools)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: Optional[str] = None,
        requests_per_second: float = 5.0,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if requests_per_second <= 0:
            raise MDConfigError(f"requests_per_second must be positive, got {requests_per_second}")

        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.rate_limiter = RateLimiter(requests_per_second=requests_per_second)
        self._client = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls) -> "MDClient":
        from chaptertrack_common import get_settings

        settings = get_settings()
        return cls(
            base_url=settings.metadata_api_url,
            api_key=settings.metadata_api_key,
            requests_per_second=settings.metadata_requests_per_second,
            timeout=settings.metadata_timeout_seconds,
        )

    async def __aenter__(self) -> "MDClient":
        if self._client is None:
            headers = {"User-Agent": "chaptertrack/1.0"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=self.timeout)
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, path: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        if self._client is None:
            raise MDConfigError("Client not started; use 'async with MDClient()'")

        await self.rate_limiter.acquire()

        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise MDNetworkError(f"Request timed out: {e}", endpoint=path) from e
        except httpx.RequestError as e:
            raise MDNetworkError(str(e), endpoint=path) from e

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning("metadata_rate_limited", endpoint=path, retry_after=retry_after)
            raise MDRateLimitError(
                retry_after=float(retry_after) if retry_after else None,
                endpoint=path,
            )
        if response.status_code == 404:
            raise MDNotFoundError(resource_id=path.rstrip("/").rsplit("/", 1)[-1])
        if response.status_code >= 400:
            raise MDAPIError(response.status_code, _error_detail(response), endpoint=path)

        return response.json()

    async def search(self, title: str, *, limit: int = 10) -> list[MetadataCandidate]:
        """Search series by title, most-followed first.

        ``popularity`` on each candidate reflects the provider's ordering so
        callers can break similarity ties deterministically.
        """
        params = {
            "title": title,
            "limit": limit,
            "includes[]": ["cover_art"],
            "contentRating[]": CONTENT_RATINGS,
            "order[followedCount]": "desc",
        }
        body = await self._request("/manga", params=params)
        data = body.get("data") or []

        candidates = [parse_manga(item, popularity=len(data) - rank) for rank, item in enumerate(data)]
        logger.debug("metadata_search_completed", title=title[:50], results=len(candidates))
        return candidates

    async def fetch_by_id(self, external_id: str) -> Optional[MetadataCandidate]:
        """Fetch one series. Returns None when the provider has no such id."""
        try:
            body = await self._request(f"/manga/{external_id}", params={"includes[]": ["cover_art"]})
        except MDNotFoundError:
            logger.info("metadata_series_not_found", external_id=external_id)
            return None
        return parse_manga(body["data"])


def _error_detail(response: httpx.Response) -> str:
    try:
        errors = response.json().get("errors") or []
    except ValueError:
        return response.reason_phrase or "error"
    if errors:
        return errors[0].get("detail") or errors[0].get("title") or "error"
    return response.reason_phrase or "error"


def _pick_localized(values: dict[str, str]) -> Optional[str]:
    if not values:
        return None
    return values.get("en") or next(iter(values.values()))


def parse_manga(item: dict[str, Any], popularity: int = 0) -> MetadataCandidate:
    """Convert a provider manga resource into a MetadataCandidate."""
    attributes = item.get("attributes") or {}
    external_id = item.get("id") or ""

    alt_titles = []
    for entry in attributes.get("altTitles") or []:
        alt_titles.extend(v for v in entry.values() if v)

    genres = [
        _pick_localized(tag.get("attributes", {}).get("name") or {})
        for tag in attributes.get("tags") or []
        if tag.get("attributes", {}).get("group") == "genre"
    ]

    cover_url = None
    for rel in item.get("relationships") or []:
        if rel.get("type") == "cover_art" and rel.get("attributes", {}).get("fileName"):
            cover_url = f"{COVER_BASE_URL}/{external_id}/{rel['attributes']['fileName']}"
            break

    return MetadataCandidate(
        external_id=external_id,
        title=_pick_localized(attributes.get("title") or {}) or "",
        alternative_titles=alt_titles,
        description=_pick_localized(attributes.get("description") or {}),
        status=attributes.get("status"),
        year=attributes.get("year"),
        original_language=attributes.get("originalLanguage"),
        genres=[g for g in genres if g],
        cover_url=cover_url,
        popularity=popularity,
    )
