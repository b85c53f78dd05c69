"""Favorites listing endpoint."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from nhdiscovery.api import schemas
from nhdiscovery.api.deps import get_gallery_service
from nhdiscovery.core.errors import EmptyInputError
from nhdiscovery.services.gallery_service import GalleryService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=schemas.PagedGalleriesResponse)
async def list_favorites(
    body: schemas.FavoritesRequest,
    service: GalleryService = Depends(get_gallery_service),
):
    """
    Resolve the user's locally stored favorite ids to galleries.

    Ids that no longer resolve upstream are silently dropped.
    sort=popular orders by favorites count; anything else keeps the given order.
    """
    try:
        result = await service.list_favorites(
            body.ids, sort=body.sort, page=body.page, per_page=body.per_page
        )
    except EmptyInputError:
        raise HTTPException(status_code=400, detail="Ids array required")

    return schemas.PagedGalleriesResponse(
        items=[schemas.GallerySchema.from_item(i) for i in result.items],
        total_pages=result.total_pages,
        current_page=result.current_page,
        per_page=result.per_page,
        total_items=result.total_items,
    )
