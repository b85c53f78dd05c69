"""Canonical catalog value types shared by the discovery services."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class TagType(str, Enum):
    """Upstream tag categories."""
    TAG = "tag"
    ARTIST = "artist"
    CHARACTER = "character"
    PARODY = "parody"
    GROUP = "group"
    CATEGORY = "category"
    LANGUAGE = "language"

    @classmethod
    def parse(cls, value: Optional[str]) -> "TagType":
        """Parse a singular or plural type name, falling back to the generic bucket."""
        if not value:
            return cls.TAG
        name = str(value).strip().lower()
        return _TAG_TYPE_ALIASES.get(name, cls.TAG)


_TAG_TYPE_ALIASES = {t.value: t for t in TagType}
_TAG_TYPE_ALIASES.update({
    "tags": TagType.TAG,
    "artists": TagType.ARTIST,
    "characters": TagType.CHARACTER,
    "parodies": TagType.PARODY,
    "groups": TagType.GROUP,
    "categories": TagType.CATEGORY,
    "languages": TagType.LANGUAGE,
})


class ScoringBucket(str, Enum):
    """Tag buckets the recommenders weight separately.

    Languages and generic tags share the OTHER bucket.
    """
    CHARACTER = "character"
    ARTIST = "artist"
    PARODY = "parody"
    GROUP = "group"
    CATEGORY = "category"
    OTHER = "tag"

    @classmethod
    def for_tag_type(cls, tag_type: TagType) -> "ScoringBucket":
        return _BUCKET_BY_TAG_TYPE.get(tag_type, cls.OTHER)


_BUCKET_BY_TAG_TYPE = {
    TagType.CHARACTER: ScoringBucket.CHARACTER,
    TagType.ARTIST: ScoringBucket.ARTIST,
    TagType.PARODY: ScoringBucket.PARODY,
    TagType.GROUP: ScoringBucket.GROUP,
    TagType.CATEGORY: ScoringBucket.CATEGORY,
}


@dataclass(frozen=True)
class Tag:
    """A catalog tag. Identity is (id, type); names are not unique."""
    id: int
    type: TagType
    name: str
    count: Optional[int] = None  # Global usage frequency, when upstream sends it

    @property
    def key(self) -> tuple[int, TagType]:
        return (self.id, self.type)

    @property
    def qualified_name(self) -> str:
        return f"{self.type.value}:{self.name}"

    @property
    def query_term(self) -> str:
        """Search syntax for this tag, e.g. ``artist:"name"``."""
        return f'{self.type.value}:"{self.name}"'

    def to_dict(self) -> dict:
        data = {"id": self.id, "type": self.type.value, "name": self.name}
        if self.count is not None:
            data["count"] = self.count
        return data


@dataclass(frozen=True)
class Page:
    """One gallery page with its full-size and thumbnail URLs."""
    page_number: int
    full_url: str
    thumb_url: str


@dataclass(frozen=True)
class Item:
    """A normalized catalog gallery."""
    id: int
    title_pretty: str
    title_english: str
    title_native: str
    uploaded_at: Optional[datetime]
    media_id: int
    favorites_count: int
    page_count: int
    pages: tuple[Page, ...]
    tags: tuple[Tag, ...]
    cover_url: str = ""
    thumbnail_url: str = ""
    scanlator: str = ""

    def tags_of(self, tag_type: TagType) -> list[Tag]:
        return [t for t in self.tags if t.type == tag_type]

    @property
    def artists(self) -> list[Tag]:
        return self.tags_of(TagType.ARTIST)

    @property
    def characters(self) -> list[Tag]:
        return self.tags_of(TagType.CHARACTER)

    @property
    def parodies(self) -> list[Tag]:
        return self.tags_of(TagType.PARODY)

    @property
    def groups(self) -> list[Tag]:
        return self.tags_of(TagType.GROUP)

    @property
    def categories(self) -> list[Tag]:
        return self.tags_of(TagType.CATEGORY)

    @property
    def languages(self) -> list[Tag]:
        return self.tags_of(TagType.LANGUAGE)

    @property
    def generic_tags(self) -> list[Tag]:
        return self.tags_of(TagType.TAG)

    def to_dict(self) -> dict:
        """Wire representation sent to the renderer."""
        return {
            "id": self.id,
            "title": {
                "pretty": self.title_pretty,
                "english": self.title_english,
                "japanese": self.title_native,
            },
            "uploadedAt": self.uploaded_at.isoformat() if self.uploaded_at else "",
            "mediaId": self.media_id,
            "favoritesCount": self.favorites_count,
            "pageCount": self.page_count,
            "scanlator": self.scanlator,
            "cover": self.cover_url,
            "thumbnail": self.thumbnail_url,
            "pages": [
                {"pageNumber": p.page_number, "url": p.full_url, "urlThumb": p.thumb_url}
                for p in self.pages
            ],
            "tags": [t.to_dict() for t in self.tags],
            "artists": [t.to_dict() for t in self.artists],
            "characters": [t.to_dict() for t in self.characters],
            "parodies": [t.to_dict() for t in self.parodies],
            "groups": [t.to_dict() for t in self.groups],
            "categories": [t.to_dict() for t in self.categories],
            "languages": [t.to_dict() for t in self.languages],
        }


@dataclass
class ScoredCandidate:
    """A candidate item with its score for one recommendation computation."""
    item: Item
    score: float
    explain: list[str] = field(default_factory=list)


class FrequencyProfile:
    """Per-bucket occurrence counts of tag names across a set of items."""

    def __init__(self):
        self._counts: dict[ScoringBucket, Counter] = {b: Counter() for b in ScoringBucket}

    @classmethod
    def from_items(cls, items: list[Item]) -> "FrequencyProfile":
        profile = cls()
        for item in items:
            profile.add(item)
        return profile

    def add(self, item: Item) -> None:
        for tag in item.tags:
            self._counts[ScoringBucket.for_tag_type(tag.type)][tag.name] += 1

    def count(self, bucket: ScoringBucket, name: str) -> int:
        return self._counts[bucket].get(name, 0)

    def top(self, bucket: ScoringBucket, n: int) -> list[str]:
        """Most frequent names in a bucket; ties keep first-seen order."""
        return [name for name, _ in self._counts[bucket].most_common(n)]

    def is_empty(self) -> bool:
        return not any(self._counts.values())

    def as_dict(self) -> dict[str, dict[str, int]]:
        return {bucket.value: dict(counter) for bucket, counter in self._counts.items()}


@dataclass
class ProgressEvent:
    """Advisory progress notification for long-running fan-outs."""
    stage: str
    completed: int
    total: int
    message: str

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "completed": self.completed,
            "total": self.total,
            "message": self.message,
        }
