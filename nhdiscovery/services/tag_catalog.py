"""
Global tag usage catalog.

The catalog is a scraped JSON snapshot of every tag listing on the upstream
site with its usage count. The related-items recommender uses it to reward
rare shared tags over common ones. The file looks like:

    {"updated": "...", "totalTagUsage": 12345678,
     "tag": [{"id": 1, "type": "tag", "name": "...", "count": 42, "url": "..."}],
     "artist": [...], ...}

Section keys may be singular or plural.
"""

import json
import logging
import math
from pathlib import Path
from typing import Optional

from nhdiscovery.services.models import Tag, TagType

logger = logging.getLogger(__name__)

DEFAULT_TOTAL_TAG_USAGE = 1e7

# Section names the renderer expects in the tags payload
_SECTION_NAMES = {
    TagType.TAG: "tags",
    TagType.ARTIST: "artists",
    TagType.CHARACTER: "characters",
    TagType.PARODY: "parodies",
    TagType.GROUP: "groups",
    TagType.CATEGORY: "categories",
    TagType.LANGUAGE: "languages",
}


class TagCatalog:
    """Lookup of global tag usage counts keyed by (type, id)."""

    def __init__(
        self,
        entries: Optional[dict[TagType, list[dict]]] = None,
        total_usage: Optional[float] = None,
        updated: Optional[str] = None,
    ):
        self.entries: dict[TagType, list[dict]] = {t: [] for t in TagType}
        self._counts: dict[tuple[TagType, int], int] = {}
        for tag_type, rows in (entries or {}).items():
            for row in rows:
                self._add(tag_type, row)
        self.total_usage = total_usage or DEFAULT_TOTAL_TAG_USAGE
        self.updated = updated

    def _add(self, tag_type: TagType, row: dict) -> None:
        try:
            tag_id = int(row["id"])
        except (KeyError, TypeError, ValueError):
            return
        self.entries[tag_type].append(row)
        self._counts[(tag_type, tag_id)] = int(row.get("count") or 0)

    @classmethod
    def load(cls, path: str | Path) -> "TagCatalog":
        """Load the catalog file; a missing or broken file yields an empty catalog."""
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load tag catalog {path}: {e}")
            return cls()

        entries: dict[TagType, list[dict]] = {}
        for key, value in data.items():
            if not isinstance(value, list):
                continue
            tag_type = TagType.parse(key)
            entries.setdefault(tag_type, []).extend(v for v in value if isinstance(v, dict))

        catalog = cls(
            entries=entries,
            total_usage=data.get("totalTagUsage"),
            updated=data.get("updated"),
        )
        logger.info(f"Tag catalog loaded: {len(catalog)} tags, updated {catalog.updated}")
        return catalog

    def __len__(self) -> int:
        return len(self._counts)

    def usage_count(self, tag: Tag) -> int:
        """Usage count from the catalog, else the tag's own count, else 1."""
        count = self._counts.get((tag.type, tag.id))
        if count is not None:
            return count
        if tag.count is not None:
            return tag.count
        return 1

    def inverse_frequency(self, tag: Tag) -> float:
        """Rarity weight: ln((total + 1) / (usage + 1))."""
        return math.log((self.total_usage + 1) / (self.usage_count(tag) + 1))

    def as_dict(self) -> dict:
        data: dict = {"updated": self.updated}
        for tag_type, rows in self.entries.items():
            data[_SECTION_NAMES[tag_type]] = rows
        return data
