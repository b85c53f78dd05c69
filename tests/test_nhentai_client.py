import httpx
import pytest

from factories import make_record
from nhdiscovery.core.errors import GalleryNotFoundError, UpstreamRateLimited, UpstreamUnavailable
from nhdiscovery.core.nhentai_client import NhentaiClient
from nhdiscovery.core.retry import RetryConfig, calculate_delay


@pytest.mark.asyncio
async def test_search_sends_query_params(client, upstream):
    upstream.searches['character:"hero"'] = [make_record(1), make_record(2)]

    records = await client.fetch_search_page('character:"hero"', page=1, per_page=50)

    assert [r["id"] for r in records] == [1, 2]
    params = upstream.requests[0].url.params
    assert params["page"] == "1"
    assert params["per_page"] == "50"
    assert params["sort"] == "popular"


@pytest.mark.asyncio
async def test_identical_searches_are_served_from_cache(client, upstream):
    upstream.searches["q"] = [make_record(1)]

    first = await client.search("q")
    second = await client.search("q")
    await client.search("q", page=2)

    assert first == second
    assert len(upstream.requests) == 2


@pytest.mark.asyncio
async def test_rate_limited_request_is_retried(client, upstream):
    upstream.searches["q"] = [make_record(1)]
    upstream.rate_limited["q"] = 3

    records = await client.fetch_search_page("q")

    assert [r["id"] for r in records] == [1]
    assert len(upstream.requests) == 4


@pytest.mark.asyncio
async def test_rate_limit_gives_up_after_three_retries(client, upstream):
    upstream.rate_limited["q"] = 10

    with pytest.raises(UpstreamRateLimited):
        await client.fetch_search_page("q")
    assert len(upstream.requests) == 4


@pytest.mark.asyncio
async def test_server_error_is_not_retried(client, upstream):
    upstream.failing_queries.add("q")

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await client.fetch_search_page("q")
    assert exc_info.value.status_code == 500
    assert len(upstream.requests) == 1


@pytest.mark.asyncio
async def test_failed_requests_are_not_cached(client, upstream):
    upstream.failing_queries.add("q")
    with pytest.raises(UpstreamUnavailable):
        await client.search("q")

    upstream.failing_queries.clear()
    upstream.searches["q"] = [make_record(1)]
    payload = await client.search("q")

    assert payload["result"][0]["id"] == 1


@pytest.mark.asyncio
async def test_transport_error_becomes_upstream_unavailable(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    nh = NhentaiClient(settings, transport=httpx.MockTransport(handler))
    try:
        with pytest.raises(UpstreamUnavailable):
            await nh.search("q")
    finally:
        await nh.close()


@pytest.mark.asyncio
async def test_invalid_json_becomes_upstream_unavailable(settings):
    nh = NhentaiClient(settings, transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>")))
    try:
        with pytest.raises(UpstreamUnavailable):
            await nh.get_gallery(1)
    finally:
        await nh.close()


@pytest.mark.asyncio
async def test_missing_gallery_raises_not_found(client):
    with pytest.raises(GalleryNotFoundError) as exc_info:
        await client.get_gallery(404404)
    assert exc_info.value.gallery_id == 404404


@pytest.mark.asyncio
async def test_get_galleries_drops_unresolvable_ids(client, upstream):
    upstream.add_gallery(make_record(1))
    upstream.add_gallery(make_record(3))

    records = await client.get_galleries([3, 2, 1])

    assert [r["id"] for r in records] == [3, 1]


def test_backoff_doubles_per_attempt():
    config = RetryConfig.for_rate_limits(max_retries=3, base_delay=1.0)

    assert config.max_attempts == 4
    assert [calculate_delay(a, config) for a in range(3)] == [1.0, 2.0, 4.0]


def test_retry_after_hint_extends_the_wait():
    config = RetryConfig.for_rate_limits(max_retries=3, base_delay=1.0)

    assert calculate_delay(0, config, retry_after=5.0) == 5.0
    assert calculate_delay(2, config, retry_after=0.5) == 4.0
    assert calculate_delay(0, config, retry_after=600.0) == config.max_delay


@pytest.mark.asyncio
async def test_random_gallery_id_reads_the_redirect(client, upstream):
    upstream.random_id = 177013

    assert await client.random_gallery_id() == 177013
    assert upstream.requests[0].url.path == "/random/"


@pytest.mark.asyncio
async def test_random_redirect_without_gallery_is_unavailable(client, upstream):
    with pytest.raises(UpstreamUnavailable):
        await client.random_gallery_id()
