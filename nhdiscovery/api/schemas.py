"""Pydantic schemas for API request/response validation.

The desktop renderer speaks camelCase, so every schema serializes by alias.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from nhdiscovery.services.models import Item, Tag, TagType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============ Gallery Schemas ============

class TagSchema(CamelModel):
    """A catalog tag."""
    id: int
    type: str
    name: str
    count: int | None = None


class TitleSchema(CamelModel):
    pretty: str = ""
    english: str = ""
    japanese: str = ""


class PageSchema(CamelModel):
    """One gallery page."""
    page_number: int
    url: str
    url_thumb: str


class GallerySchema(CamelModel):
    """A normalized gallery."""
    id: int
    title: TitleSchema
    uploaded_at: str = ""  # ISO timestamp, "" when unknown
    media_id: int
    favorites_count: int
    page_count: int
    scanlator: str = ""
    cover: str
    thumbnail: str
    pages: list[PageSchema]
    tags: list[TagSchema]
    artists: list[TagSchema] = []
    characters: list[TagSchema] = []
    parodies: list[TagSchema] = []
    groups: list[TagSchema] = []
    categories: list[TagSchema] = []
    languages: list[TagSchema] = []

    @classmethod
    def from_item(cls, item: Item) -> "GallerySchema":
        return cls.model_validate(item.to_dict())


class GalleryResponse(CamelModel):
    gallery: GallerySchema


class RandomGalleryResponse(CamelModel):
    id: int


class PagedGalleriesResponse(CamelModel):
    """A page of galleries."""
    items: list[GallerySchema]
    total_pages: int
    current_page: int
    per_page: int
    total_items: int


# ============ Discovery Schemas ============

class TagFilter(CamelModel):
    """A tag the user picked in the filter modal."""
    id: int = 0
    type: str
    name: str

    def to_tag(self) -> Tag:
        return Tag(id=self.id, type=TagType.parse(self.type), name=self.name)


class RelatedResponse(CamelModel):
    items: list[GallerySchema]


class FavoritesRequest(CamelModel):
    ids: list[int] = []
    sort: str = "relevance"
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=25, ge=1, le=100)


class RecommendationsRequest(CamelModel):
    """Personalized feed request."""
    ids: list[int] = []  # Favorited gallery ids
    sent_ids: list[int] = []  # Already delivered on earlier pages
    filter_tags: list[TagFilter] = []  # Every result must carry these
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=25, ge=1, le=100)
    debug: bool = False


class RecommendationsResponse(CamelModel):
    items: list[GallerySchema]
    total_pages: int
    current_page: int
    total_items: int
    debug: dict | None = None


class TagCatalogResponse(CamelModel):
    updated: str | None = None
    tags: dict[str, list[dict]]
