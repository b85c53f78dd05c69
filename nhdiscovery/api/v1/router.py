"""API v1 router - aggregates all endpoint routers."""

from fastapi import APIRouter

from nhdiscovery.api.v1 import favorites, galleries, recommendations, tags

api_router = APIRouter()

api_router.include_router(galleries.router, prefix="/galleries", tags=["galleries"])
api_router.include_router(favorites.router, prefix="/favorites", tags=["favorites"])
api_router.include_router(recommendations.router, prefix="/recommendations", tags=["recommendations"])
api_router.include_router(tags.router, prefix="/tags", tags=["tags"])
