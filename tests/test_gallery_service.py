import pytest

from factories import make_record, make_tag
from nhdiscovery.core.errors import EmptyInputError, GalleryNotFoundError
from nhdiscovery.services.gallery_service import GalleryService, build_search_query, resolve_sort
from nhdiscovery.services.models import Tag, TagType


@pytest.fixture
def service(client, normalizer):
    return GalleryService(client, normalizer)


def test_build_search_query():
    tags = [Tag(0, TagType.ARTIST, "inker"), Tag(0, TagType.TAG, "big breasts")]

    assert build_search_query("  school ", tags) == 'school artist:"inker" tag:"big breasts"'
    assert build_search_query("", []) == " "


@pytest.mark.parametrize(
    "sort,content_type,expected",
    [
        ("", "new", "date"),
        ("popular-week", "popular", "popular-week"),
        ("date", "popular", "popular"),
        ("popular-today", None, "popular-today"),
    ],
)
def test_resolve_sort(sort, content_type, expected):
    assert resolve_sort(sort, content_type) == expected


@pytest.mark.asyncio
async def test_search_normalizes_results(service, upstream):
    upstream.searches['maid artist:"inker"'] = [make_record(1), make_record(2, token="x"), make_record(3)]

    page = await service.search("maid", [Tag(0, TagType.ARTIST, "inker")], page=1, per_page=25)

    assert [i.id for i in page.items] == [1, 3]
    assert page.total_pages == 1
    assert page.total_items == 3


@pytest.mark.asyncio
async def test_get_gallery(service, upstream):
    upstream.add_gallery(make_record(9, tags=[make_tag(1, "artist", "inker")]))

    item = await service.get_gallery(9)

    assert item.id == 9
    assert [t.name for t in item.artists] == ["inker"]

    with pytest.raises(GalleryNotFoundError):
        await service.get_gallery(10)


@pytest.mark.asyncio
async def test_random_gallery_id(service, upstream):
    upstream.random_id = 42

    assert await service.random_gallery_id() == 42


@pytest.mark.asyncio
async def test_list_favorites_sorted_by_popularity(service, upstream):
    upstream.add_gallery(make_record(1, favorites=10))
    upstream.add_gallery(make_record(2, favorites=500))
    upstream.add_gallery(make_record(3, favorites=50))

    relevance = await service.list_favorites([1, 2, 3, 4])
    popular = await service.list_favorites([1, 2, 3], sort="popular", per_page=2)

    assert [i.id for i in relevance.items] == [1, 2, 3]
    assert [i.id for i in popular.items] == [2, 3]
    assert popular.total_pages == 2


@pytest.mark.asyncio
async def test_list_favorites_requires_ids(service):
    with pytest.raises(EmptyInputError):
        await service.list_favorites([])
