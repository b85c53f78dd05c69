"""FastAPI dependencies.

Services are built once in the application lifespan and stored on
app.state; endpoints receive them through Depends so tests can override
any of them.
"""

from fastapi import Request

from nhdiscovery.services.favorites_recommender import FavoritesRecommender
from nhdiscovery.services.gallery_service import GalleryService
from nhdiscovery.services.related_recommender import RelatedRecommender
from nhdiscovery.services.tag_catalog import TagCatalog


def get_gallery_service(request: Request) -> GalleryService:
    return request.app.state.gallery_service


def get_related_recommender(request: Request) -> RelatedRecommender:
    return request.app.state.related_recommender


def get_favorites_recommender(request: Request) -> FavoritesRecommender:
    return request.app.state.favorites_recommender


def get_tag_catalog(request: Request) -> TagCatalog:
    return request.app.state.tag_catalog
