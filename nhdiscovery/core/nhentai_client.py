"""
Async client for the upstream nhentai gallery API.

The client only knows how to fetch: it deduplicates identical requests
through a bounded TTL cache and retries rate-limited calls with backoff.
Scoring, item deduplication and pagination live in the services layer.
"""

import asyncio
import logging
import re
from typing import Any

import httpx

from nhdiscovery.config import Settings
from nhdiscovery.core.cache import TTLCache
from nhdiscovery.core.errors import (
    GalleryNotFoundError,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from nhdiscovery.core.retry import RetryConfig, async_retry

logger = logging.getLogger(__name__)

SEARCH_ENDPOINT = "/api/galleries/search"
GALLERY_ENDPOINT = "/api/gallery/{id}"
RANDOM_ENDPOINT = "/random/"

_GALLERY_URL = re.compile(r"/g/(\d+)")


def _parse_retry_after(value: str | None) -> float | None:
    """Retry-After in seconds; the HTTP-date form is ignored."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class NhentaiClient:
    """Async client for the nhentai API with caching and rate-limit retries."""

    def __init__(
        self,
        settings: Settings,
        cache: TTLCache[Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = settings.nhentai_api_url
        self.user_agent = settings.nhentai_user_agent
        self.timeout = settings.http_request_timeout
        self.cache = cache if cache is not None else TTLCache(
            max_entries=settings.search_cache_max_entries,
            ttl_seconds=settings.search_cache_ttl_seconds,
        )
        self.retry_config = RetryConfig.for_rate_limits(
            max_retries=settings.rate_limit_max_retries,
            base_delay=settings.retry_base_delay,
        )
        self._semaphore = asyncio.Semaphore(settings.max_concurrent_requests)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _send(self, endpoint: str, params: dict | None = None) -> httpx.Response:
        """
        Make a GET request to the upstream API and return the raw response.

        429 responses raise UpstreamRateLimited and are retried with
        exponential backoff. Every other failure raises UpstreamUnavailable
        immediately. Redirects are not followed.
        """

        @async_retry(self.retry_config)
        async def do_request() -> httpx.Response:
            client = await self._get_client()
            async with self._semaphore:
                try:
                    response = await client.get(endpoint, params=params)
                except httpx.HTTPError as e:
                    raise UpstreamUnavailable(f"{endpoint}: {type(e).__name__}: {e}") from e

            if response.status_code == 429:
                raise UpstreamRateLimited(
                    f"{endpoint} rate limited",
                    retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                )
            if response.is_error:
                raise UpstreamUnavailable(
                    f"{endpoint} returned {response.status_code}",
                    status_code=response.status_code,
                )
            return response

        return await do_request()

    async def _request(self, endpoint: str, params: dict | None = None) -> dict:
        """GET a JSON endpoint."""
        response = await self._send(endpoint, params)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"{endpoint} returned invalid JSON") from e

    async def search(
        self,
        query: str,
        page: int = 1,
        per_page: int = 25,
        sort: str = "popular",
    ) -> dict:
        """
        Run a catalog search and return the raw payload.

        The payload carries ``result`` (records), ``num_pages``, ``per_page``
        and, when upstream sends it, ``total``.
        """
        return await self.cache.get_or_fetch(
            (SEARCH_ENDPOINT, query, page, per_page, sort),
            lambda: self._request(
                SEARCH_ENDPOINT,
                params={"query": query, "page": page, "per_page": per_page, "sort": sort},
            ),
        )

    async def fetch_search_page(
        self,
        query: str,
        page: int = 1,
        per_page: int = 25,
        sort: str = "popular",
    ) -> list[dict]:
        """Fetch one page of search results as raw records."""
        payload = await self.search(query, page=page, per_page=per_page, sort=sort)
        return list(payload.get("result") or [])

    async def get_gallery(self, gallery_id: int) -> dict:
        """Fetch a single gallery record by id."""

        async def fetch() -> dict:
            try:
                return await self._request(GALLERY_ENDPOINT.format(id=gallery_id))
            except UpstreamUnavailable as e:
                if e.status_code == 404:
                    raise GalleryNotFoundError(gallery_id) from e
                raise

        return await self.cache.get_or_fetch((GALLERY_ENDPOINT, gallery_id), fetch)

    async def random_gallery_id(self) -> int:
        """
        Ask upstream for a random gallery.

        The random endpoint answers with a redirect to ``/g/{id}/``; the id is
        read from the Location header (or the final URL if a proxy already
        followed it). Never cached.
        """
        response = await self._send(RANDOM_ENDPOINT)
        target = response.headers.get("Location") or str(response.url)
        match = _GALLERY_URL.search(target)
        if match is None:
            raise UpstreamUnavailable(f"{RANDOM_ENDPOINT} did not point at a gallery: {target!r}")
        return int(match.group(1))

    async def get_galleries(self, gallery_ids: list[int]) -> list[dict]:
        """
        Fetch several galleries concurrently.

        Ids that fail to resolve are dropped and logged; the order of the
        surviving records follows gallery_ids.
        """
        if not gallery_ids:
            return []

        results = await asyncio.gather(
            *(self.get_gallery(gid) for gid in gallery_ids),
            return_exceptions=True,
        )

        records = []
        for gid, result in zip(gallery_ids, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to fetch gallery {gid}: {result}")
                continue
            records.append(result)
        return records
