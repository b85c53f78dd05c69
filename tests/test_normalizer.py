from datetime import datetime, timezone

import pytest

from factories import make_record, make_tag
from nhdiscovery.core.errors import UnknownImageTokenError
from nhdiscovery.services.models import TagType
from nhdiscovery.services.normalizer import extension_for_token, pick_host


def test_page_urls_follow_host_rotation(normalizer):
    item = normalizer.normalize(make_record(7, media_id=100, num_pages=3))

    assert [p.page_number for p in item.pages] == [1, 2, 3]
    # (100 + 3) % 3 == 1
    assert item.pages[2].full_url == "https://i2.nhentai.net/galleries/100/3.jpg"
    assert item.pages[0].full_url == "https://i4.nhentai.net/galleries/100/1.jpg"
    assert item.pages[2].thumb_url == "https://t1.nhentai.net/galleries/100/3t.jpg"
    assert item.cover_url == "https://t3.nhentai.net/galleries/100/cover.jpg"
    assert item.thumbnail_url == "https://t3.nhentai.net/galleries/100/thumb.jpg"


def test_pick_host_wraps_around():
    hosts = ["i1", "i2", "i4"]
    assert pick_host(100, 3, hosts) == "i2"
    assert pick_host(0, 3, hosts) == "i1"


def test_normalize_is_deterministic(normalizer):
    record = make_record(7, tags=[make_tag(1, "tag", "a"), make_tag(2, "artist", "b")])
    assert normalizer.normalize(record) == normalizer.normalize(record)


@pytest.mark.parametrize(
    "token,expected",
    [("j", "jpg"), ("p", "png"), ("w", "webp"), ("g", "gif"), ("P", "png.webp"), (None, "jpg"), ("", "jpg")],
)
def test_extension_for_token(token, expected):
    assert extension_for_token(token) == expected


def test_unknown_token_raises(normalizer):
    with pytest.raises(UnknownImageTokenError) as exc_info:
        normalizer.normalize(make_record(7, token="x"))
    assert exc_info.value.token == "x"


def test_normalize_many_drops_bad_records(normalizer):
    items = normalizer.normalize_many([make_record(1), make_record(2, token="x"), make_record(3)])
    assert [i.id for i in items] == [1, 3]


def test_missing_page_tokens_default_to_jpg(normalizer):
    record = make_record(7, media_id=100, num_pages=3)
    record["images"]["pages"] = record["images"]["pages"][:1]

    item = normalizer.normalize(record)

    assert item.page_count == 3
    assert item.pages[2].full_url.endswith("/3.jpg")


def test_duplicate_tags_collapse_keeping_first(normalizer):
    record = make_record(7, tags=[
        make_tag(5, "tag", "first"),
        make_tag(5, "tag", "second"),
        make_tag(5, "artist", "same id other type"),
    ])

    item = normalizer.normalize(record)

    assert [(t.id, t.type, t.name) for t in item.tags] == [
        (5, TagType.TAG, "first"),
        (5, TagType.ARTIST, "same id other type"),
    ]


def test_tags_are_grouped_by_type(normalizer):
    record = make_record(7, tags=[
        make_tag(1, "artist", "someone"),
        make_tag(2, "character", "hero"),
        make_tag(3, "language", "english"),
        make_tag(4, "mystery", "unknown type"),
    ])

    item = normalizer.normalize(record)

    assert [t.name for t in item.artists] == ["someone"]
    assert [t.name for t in item.characters] == ["hero"]
    assert [t.name for t in item.languages] == ["english"]
    assert [t.name for t in item.generic_tags] == ["unknown type"]


def test_upload_date_and_missing_fields(normalizer):
    record = make_record(7, upload_date=1_700_000_000)
    record["title"] = {"english": "Only English"}
    del record["num_favorites"]

    item = normalizer.normalize(record)

    assert item.uploaded_at == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    assert item.title_english == "Only English"
    assert item.title_pretty == ""
    assert item.favorites_count == 0

    assert normalizer.normalize(make_record(8, upload_date=None)).uploaded_at is None


def test_to_dict_uses_renderer_field_names(normalizer):
    data = normalizer.normalize(make_record(7, num_pages=1, tags=[make_tag(1, "artist", "x")])).to_dict()

    assert data["mediaId"] == 70
    assert data["pageCount"] == 1
    assert data["pages"][0]["pageNumber"] == 1
    assert set(data["pages"][0]) == {"pageNumber", "url", "urlThumb"}
    assert data["artists"] == [{"id": 1, "type": "artist", "name": "x", "count": 100}]


def test_normalize_many_drops_malformed_records(normalizer):
    no_media = make_record(2)
    del no_media["media_id"]
    bad_date = make_record(3, upload_date="yesterday")

    items = normalizer.normalize_many([make_record(1), no_media, bad_date, make_record(4)])

    assert [i.id for i in items] == [1, 4]
