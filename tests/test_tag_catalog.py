import json
import math

from nhdiscovery.services.models import Tag, TagType
from nhdiscovery.services.tag_catalog import DEFAULT_TOTAL_TAG_USAGE, TagCatalog


def _write_catalog(tmp_path, data) -> str:
    path = tmp_path / "tags.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_load_accepts_singular_and_plural_sections(tmp_path):
    path = _write_catalog(tmp_path, {
        "updated": "2026-01-01",
        "totalTagUsage": 1000,
        "tag": [{"id": 1, "name": "glasses", "count": 99}],
        "artists": [{"id": 2, "name": "someone", "count": 9}],
        "parodies": [{"id": 3, "name": "original", "count": 500}],
    })

    catalog = TagCatalog.load(path)

    assert len(catalog) == 3
    assert catalog.updated == "2026-01-01"
    assert catalog.usage_count(Tag(2, TagType.ARTIST, "someone")) == 9
    assert catalog.usage_count(Tag(3, TagType.PARODY, "original")) == 500
    assert catalog.inverse_frequency(Tag(1, TagType.TAG, "glasses")) == math.log(1001 / 100)


def test_missing_file_yields_empty_catalog(tmp_path):
    catalog = TagCatalog.load(tmp_path / "missing.json")

    assert len(catalog) == 0
    assert catalog.total_usage == DEFAULT_TOTAL_TAG_USAGE


def test_broken_file_yields_empty_catalog(tmp_path):
    path = tmp_path / "tags.json"
    path.write_text("{not json", encoding="utf-8")

    assert len(TagCatalog.load(path)) == 0


def test_usage_falls_back_to_tag_count_then_one():
    catalog = TagCatalog()

    assert catalog.usage_count(Tag(1, TagType.TAG, "a", count=42)) == 42
    assert catalog.usage_count(Tag(1, TagType.TAG, "a")) == 1


def test_rarer_tags_weigh_more():
    catalog = TagCatalog()
    rare = Tag(1, TagType.TAG, "rare", count=10)
    common = Tag(2, TagType.TAG, "common", count=100_000)

    assert catalog.inverse_frequency(rare) > catalog.inverse_frequency(common) > 0


def test_as_dict_uses_plural_section_names():
    catalog = TagCatalog(entries={TagType.CATEGORY: [{"id": 1, "name": "doujinshi", "count": 5}]})

    data = catalog.as_dict()

    assert data["categories"] == [{"id": 1, "name": "doujinshi", "count": 5}]
    assert data["parodies"] == []
    assert "updated" in data
