"""Tag catalog endpoint."""

from fastapi import APIRouter, Depends

from nhdiscovery.api import schemas
from nhdiscovery.api.deps import get_tag_catalog
from nhdiscovery.services.tag_catalog import TagCatalog

router = APIRouter()


@router.get("", response_model=schemas.TagCatalogResponse)
async def get_tags(catalog: TagCatalog = Depends(get_tag_catalog)):
    """All known tags by section, for the tag filter modal."""
    data = catalog.as_dict()
    updated = data.pop("updated", None)
    return schemas.TagCatalogResponse(updated=updated, tags=data)
