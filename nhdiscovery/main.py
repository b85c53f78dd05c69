"""nhentai Discovery API - FastAPI Application."""

import logging
from contextlib import asynccontextmanager

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from nhdiscovery.middleware import CorrelationIDMiddleware, CorrelationIdFilter

# Configure logging - cleaner output for development
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] [%(correlation_id)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(CorrelationIdFilter())

# Suppress noisy loggers
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)
logging.getLogger("watchfiles").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nhdiscovery.api.limiter import limiter
from nhdiscovery.api.v1.router import api_router
from nhdiscovery.config import get_settings
from nhdiscovery.core.nhentai_client import NhentaiClient
from nhdiscovery.services.favorites_recommender import FavoritesRecommender
from nhdiscovery.services.gallery_service import GalleryService
from nhdiscovery.services.normalizer import Normalizer
from nhdiscovery.services.related_recommender import RelatedRecommender
from nhdiscovery.services.tag_catalog import TagCatalog

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared client and services; close the client on shutdown."""
    client = NhentaiClient(settings)
    normalizer = Normalizer(settings)
    catalog = TagCatalog.load(settings.tags_catalog_path)

    app.state.tag_catalog = catalog
    app.state.gallery_service = GalleryService(client, normalizer)
    app.state.related_recommender = RelatedRecommender(client, normalizer, catalog)
    app.state.favorites_recommender = FavoritesRecommender(client, normalizer)
    logger.info(f"Discovery services ready (upstream {settings.nhentai_api_url})")

    yield

    logger.info("Shutting down application...")
    await client.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Catalog browsing, related galleries and favorites-based recommendations",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Correlation-ID"],
    expose_headers=["X-Correlation-ID"],
)
app.add_middleware(CorrelationIDMiddleware)

app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}
