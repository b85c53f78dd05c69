"""Gallery endpoints: search, random pick, details and related galleries."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from nhdiscovery.api import schemas
from nhdiscovery.api.deps import get_gallery_service, get_related_recommender
from nhdiscovery.api.limiter import limiter
from nhdiscovery.config import get_settings
from nhdiscovery.core.errors import (
    GalleryNotFoundError,
    RecommendationsUnavailableError,
    UnknownImageTokenError,
    UpstreamError,
)
from nhdiscovery.services.gallery_service import GalleryService
from nhdiscovery.services.models import Tag, TagType
from nhdiscovery.services.related_recommender import RelatedRecommender

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()

MAX_FILTER_TAGS = 30


def _parse_tag_filters(values: list[str]) -> list[Tag]:
    """Parse ``type:name`` filter values with a safety cap."""
    if len(values) > MAX_FILTER_TAGS:
        raise HTTPException(status_code=400, detail=f"Too many tag filters (max {MAX_FILTER_TAGS})")

    tags = []
    for value in values:
        tag_type, sep, name = value.partition(":")
        if not sep or not name.strip():
            raise HTTPException(status_code=400, detail=f"Invalid tag filter: {value!r}")
        tags.append(Tag(id=0, type=TagType.parse(tag_type), name=name.strip()))
    return tags


# NOTE: Route order matters in FastAPI! /search and /random must precede /{gallery_id}.

@router.get("/search", response_model=schemas.PagedGalleriesResponse)
async def search_galleries(
    query: str = Query(default="", description="Free-text search"),
    tag: list[str] = Query(default=[], description="Tag filters as type:name"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=25, ge=1, le=100),
    sort: str = Query(default="", description="Upstream sort key"),
    content_type: Optional[str] = Query(default=None, description="new, popular or omitted for search"),
    service: GalleryService = Depends(get_gallery_service),
):
    """Search the catalog."""
    try:
        result = await service.search(
            text=query,
            filter_tags=_parse_tag_filters(tag),
            page=page,
            per_page=per_page,
            sort=sort,
            content_type=content_type,
        )
    except UpstreamError as e:
        logger.error(f"Search failed for {query!r}: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch search results")

    return schemas.PagedGalleriesResponse(
        items=[schemas.GallerySchema.from_item(i) for i in result.items],
        total_pages=result.total_pages,
        current_page=result.current_page,
        per_page=result.per_page,
        total_items=result.total_items,
    )


@router.get("/random", response_model=schemas.RandomGalleryResponse)
async def get_random_gallery(service: GalleryService = Depends(get_gallery_service)):
    """Id of a random gallery."""
    try:
        gallery_id = await service.random_gallery_id()
    except UpstreamError as e:
        logger.error(f"Failed to fetch a random gallery: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch random gallery")

    return schemas.RandomGalleryResponse(id=gallery_id)


@router.get("/{gallery_id}", response_model=schemas.GalleryResponse)
async def get_gallery(
    gallery_id: int,
    service: GalleryService = Depends(get_gallery_service),
):
    """Get one gallery."""
    try:
        item = await service.get_gallery(gallery_id)
    except GalleryNotFoundError:
        raise HTTPException(status_code=404, detail=f"Gallery {gallery_id} not found")
    except UnknownImageTokenError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except UpstreamError as e:
        logger.error(f"Failed to fetch gallery {gallery_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch gallery")

    return schemas.GalleryResponse(gallery=schemas.GallerySchema.from_item(item))


@router.get("/{gallery_id}/related", response_model=schemas.RelatedResponse)
@limiter.limit("20/minute")
async def get_related_galleries(
    request: Request,
    gallery_id: int,
    service: GalleryService = Depends(get_gallery_service),
    recommender: RelatedRecommender = Depends(get_related_recommender),
):
    """Galleries related to one seed gallery."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + settings.recommendation_timeout

    try:
        seed = await asyncio.wait_for(service.get_gallery(gallery_id), settings.recommendation_timeout)
    except asyncio.TimeoutError:
        raise HTTPException(status_code=504, detail=f"Timed out fetching gallery {gallery_id}")
    except GalleryNotFoundError:
        raise HTTPException(status_code=404, detail=f"Gallery {gallery_id} not found")
    except (UnknownImageTokenError, UpstreamError) as e:
        logger.error(f"Failed to fetch related seed {gallery_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch gallery")

    try:
        items = await recommender.find_related(
            seed,
            max_results=settings.related_max_results,
            timeout=max(0.0, deadline - loop.time()),
        )
    except RecommendationsUnavailableError as e:
        logger.error(f"Related galleries failed for {gallery_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch recommendations")

    return schemas.RelatedResponse(items=[schemas.GallerySchema.from_item(i) for i in items])
