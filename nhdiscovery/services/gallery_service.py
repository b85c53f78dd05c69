"""Plain catalog browsing: search, single gallery, favorites listing."""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from nhdiscovery.core.errors import EmptyInputError
from nhdiscovery.core.nhentai_client import NhentaiClient
from nhdiscovery.services.models import Item, Tag
from nhdiscovery.services.normalizer import Normalizer
from nhdiscovery.services.pagination import paginate, total_pages_for

logger = logging.getLogger(__name__)

POPULAR_SORTS = ("popular", "popular-week", "popular-today", "popular-month")


@dataclass
class SearchPage:
    items: list[Item]
    total_pages: int
    current_page: int
    per_page: int
    total_items: int


def build_search_query(text: str = "", filter_tags: Iterable[Tag] = ()) -> str:
    """Combine free text with tag filters; upstream rejects an empty query."""
    tags_part = " ".join(t.query_term for t in filter_tags)
    return f"{(text or '').strip()} {tags_part}".strip() or " "


def resolve_sort(sort: str = "", content_type: Optional[str] = None) -> str:
    """Map a renderer sort/content type pair to an upstream sort key."""
    if content_type == "new":
        return "date"
    if content_type == "popular" and sort not in POPULAR_SORTS:
        return "popular"
    return sort


class GalleryService:
    """Catalog browsing on top of the upstream client."""

    def __init__(self, client: NhentaiClient, normalizer: Normalizer):
        self.client = client
        self.normalizer = normalizer

    async def search(
        self,
        text: str = "",
        filter_tags: Iterable[Tag] = (),
        page: int = 1,
        per_page: int = 25,
        sort: str = "",
        content_type: Optional[str] = None,
    ) -> SearchPage:
        query = build_search_query(text, filter_tags)
        payload = await self.client.search(
            query,
            page=page,
            per_page=per_page,
            sort=resolve_sort(sort, content_type),
        )
        items = self.normalizer.normalize_many(payload.get("result") or [])
        return SearchPage(
            items=items,
            total_pages=payload.get("num_pages") or 1,
            current_page=page,
            per_page=per_page,
            total_items=payload.get("total") or len(items),
        )

    async def get_gallery(self, gallery_id: int) -> Item:
        return self.normalizer.normalize(await self.client.get_gallery(gallery_id))

    async def random_gallery_id(self) -> int:
        return await self.client.random_gallery_id()

    async def list_favorites(
        self,
        gallery_ids: list[int],
        sort: str = "relevance",
        page: int = 1,
        per_page: int = 25,
    ) -> SearchPage:
        """Resolve favorited ids to galleries, optionally sorted by popularity."""
        if not gallery_ids:
            raise EmptyInputError("No favorites given")

        items = self.normalizer.normalize_many(await self.client.get_galleries(gallery_ids))
        if sort == "popular":
            items = sorted(items, key=lambda i: i.favorites_count, reverse=True)

        return SearchPage(
            items=paginate(items, page, per_page),
            total_pages=total_pages_for(len(items), per_page),
            current_page=page,
            per_page=per_page,
            total_items=len(items),
        )
