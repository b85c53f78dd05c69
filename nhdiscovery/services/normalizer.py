"""
Convert raw upstream gallery records into canonical Items.

Image URLs are derived, not copied: every page, the cover and the thumbnail
carry a one-letter format token, and page images are spread over several
hosts by a fixed formula so the same record always yields the same URLs.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from nhdiscovery.config import Settings
from nhdiscovery.core.errors import UnknownImageTokenError
from nhdiscovery.services.models import Item, Page, Tag, TagType

logger = logging.getLogger(__name__)

# Lowercase tokens are served directly; uppercase ones are the same format
# re-encoded inside a webp container.
_EXTENSION_BY_TOKEN = {
    "j": "jpg",
    "p": "png",
    "w": "webp",
    "g": "gif",
    "J": "jpg.webp",
    "P": "png.webp",
    "W": "webp.webp",
    "G": "gif.webp",
}

DEFAULT_IMAGE_TOKEN = "j"


def extension_for_token(token: Optional[str]) -> str:
    """Map an image format token to its file extension."""
    if token is None or token == "":
        token = DEFAULT_IMAGE_TOKEN
    try:
        return _EXTENSION_BY_TOKEN[token]
    except (KeyError, TypeError):
        raise UnknownImageTokenError(token) from None


def pick_host(media_id: int, page_number: int, hosts: list[str]) -> str:
    """Deterministically pick the image host for a page."""
    return hosts[(media_id + page_number) % len(hosts)]


def _image_token(image: Optional[dict]) -> Optional[str]:
    if not image:
        return None
    return image.get("t")


def _parse_upload_date(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _parse_tags(raw_tags: Iterable[dict]) -> tuple[Tag, ...]:
    """Parse tags, collapsing duplicates by (id, type) and keeping the first."""
    tags: list[Tag] = []
    seen: set[tuple[int, TagType]] = set()
    for raw in raw_tags or []:
        count = raw.get("count")
        tag = Tag(
            id=int(raw["id"]),
            type=TagType.parse(raw.get("type")),
            name=str(raw.get("name", "")),
            count=int(count) if count is not None else None,
        )
        if tag.key in seen:
            continue
        seen.add(tag.key)
        tags.append(tag)
    return tuple(tags)


class Normalizer:
    """Builds Items from upstream records using the configured image hosts."""

    def __init__(self, settings: Settings):
        self.image_domain = settings.image_domain
        self.image_hosts = list(settings.image_hosts)

    def normalize(self, raw: dict) -> Item:
        """
        Normalize one upstream record.

        Raises UnknownImageTokenError if any image token is unrecognized.
        """
        media_id = int(raw["media_id"])
        images = raw.get("images") or {}
        page_images = images.get("pages") or []
        page_count = int(raw.get("num_pages") or 0)

        gallery_base = f"galleries/{media_id}"
        cover_ext = extension_for_token(_image_token(images.get("cover")))
        thumb_ext = extension_for_token(_image_token(images.get("thumbnail")))

        pages = []
        for i in range(page_count):
            page_number = i + 1
            token = _image_token(page_images[i]) if i < len(page_images) else None
            ext = extension_for_token(token)
            host = pick_host(media_id, page_number, self.image_hosts)
            pages.append(Page(
                page_number=page_number,
                full_url=f"https://{host}.{self.image_domain}/{gallery_base}/{page_number}.{ext}",
                thumb_url=f"https://t1.{self.image_domain}/{gallery_base}/{page_number}t.{ext}",
            ))

        title = raw.get("title") or {}
        return Item(
            id=int(raw["id"]),
            title_pretty=title.get("pretty") or "",
            title_english=title.get("english") or "",
            title_native=title.get("japanese") or "",
            uploaded_at=_parse_upload_date(raw.get("upload_date")),
            media_id=media_id,
            favorites_count=max(0, int(raw.get("num_favorites") or 0)),
            page_count=page_count,
            pages=tuple(pages),
            tags=_parse_tags(raw.get("tags")),
            cover_url=f"https://t3.{self.image_domain}/{gallery_base}/cover.{cover_ext}",
            thumbnail_url=f"https://t3.{self.image_domain}/{gallery_base}/thumb.{thumb_ext}",
            scanlator=raw.get("scanlator") or "",
        )

    def normalize_many(self, raws: Iterable[dict]) -> list[Item]:
        """Normalize a batch, dropping malformed records."""
        items = []
        for raw in raws:
            try:
                items.append(self.normalize(raw))
            except (UnknownImageTokenError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Dropping gallery {raw.get('id')}: {e}")
        return items
