import asyncio
import math
import re

import httpx
import pytest
import pytest_asyncio

from nhdiscovery.config import Settings
from nhdiscovery.core.cache import TTLCache
from nhdiscovery.core.nhentai_client import NhentaiClient
from nhdiscovery.services.normalizer import Normalizer

_GALLERY_PATH = re.compile(r"^/api/gallery/(\d+)$")


class FakeUpstream:
    """In-memory stand-in for the catalog API, served through httpx.MockTransport."""

    def __init__(self):
        self.galleries: dict[int, dict] = {}
        self.searches: dict[str, list[dict]] = {}
        self.failing_queries: set[str] = set()
        self.rate_limited: dict[str, int] = {}  # query -> number of 429s before success
        self.fail_all_searches = False
        self.slow_galleries: dict[int, float] = {}  # id -> seconds before answering
        self.random_id: int | None = None
        self.requests: list[httpx.Request] = []

    def add_gallery(self, record: dict) -> dict:
        self.galleries[record["id"]] = record
        return record

    def search_queries(self) -> list[str]:
        return [r.url.params["query"] for r in self.requests if r.url.path == "/api/galleries/search"]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path == "/random/":
            if self.random_id is None:
                return httpx.Response(302, headers={"Location": "/"})
            return httpx.Response(302, headers={"Location": f"/g/{self.random_id}/"})

        if request.url.path == "/api/galleries/search":
            query = request.url.params["query"]
            page = int(request.url.params.get("page", 1))
            per_page = int(request.url.params.get("per_page", 25))

            if self.fail_all_searches or query in self.failing_queries:
                return httpx.Response(500, json={"error": "boom"})
            if self.rate_limited.get(query, 0) > 0:
                self.rate_limited[query] -= 1
                return httpx.Response(429, json={"error": "slow down"})

            records = self.searches.get(query, [])
            start = (page - 1) * per_page
            return httpx.Response(200, json={
                "result": records[start:start + per_page],
                "num_pages": max(1, math.ceil(len(records) / per_page)),
                "per_page": per_page,
                "total": len(records),
            })

        match = _GALLERY_PATH.match(request.url.path)
        if match and int(match.group(1)) in self.slow_galleries:
            await asyncio.sleep(self.slow_galleries[int(match.group(1))])
        if match and int(match.group(1)) in self.galleries:
            return httpx.Response(200, json=self.galleries[int(match.group(1))])
        return httpx.Response(404, json={"error": "does not exist"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def settings() -> Settings:
    return Settings(retry_base_delay=0.0, tags_catalog_path="does-not-exist.json")


@pytest.fixture
def normalizer(settings) -> Normalizer:
    return Normalizer(settings)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest_asyncio.fixture
async def client(settings, upstream):
    nh = NhentaiClient(settings, cache=TTLCache(max_entries=500, ttl_seconds=600), transport=upstream.transport())
    yield nh
    await nh.close()
