"""
Recommendation endpoints.

============================================================================
DATA SOURCE: UPSTREAM CATALOG API, COMPUTED PER REQUEST
============================================================================
The renderer keeps favorites locally and sends their ids with every
request. Each request fans out into up to ~70 upstream searches (cached for
10 minutes), so these endpoints carry the strictest rate limits.

- POST /recommendations          one page of the personalized feed
- POST /recommendations/stream   same, as Server-Sent Events with progress
============================================================================
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from nhdiscovery.api import schemas
from nhdiscovery.api.deps import get_favorites_recommender
from nhdiscovery.api.limiter import limiter
from nhdiscovery.config import get_settings
from nhdiscovery.core.errors import (
    EmptyInputError,
    RecommendationsUnavailableError,
    UpstreamError,
)
from nhdiscovery.services.favorites_recommender import FavoritesRecommender, RecommendationPage
from nhdiscovery.services.models import ProgressEvent

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()

NOTHING_TO_RECOMMEND = "Nothing to recommend from: add some favorites first"
FETCH_FAILED = "Failed to fetch recommendations"


def _to_response(page: RecommendationPage) -> schemas.RecommendationsResponse:
    return schemas.RecommendationsResponse(
        items=[schemas.GallerySchema.from_item(i) for i in page.items],
        total_pages=page.total_pages,
        current_page=page.current_page,
        total_items=page.total_items,
        debug=page.debug,
    )


def _run(recommender: FavoritesRecommender, body: schemas.RecommendationsRequest, on_progress=None):
    return recommender.recommend(
        body.ids,
        sent_ids=body.sent_ids,
        required_tags=[t.to_tag() for t in body.filter_tags],
        page=body.page,
        per_page=body.per_page,
        debug=body.debug,
        on_progress=on_progress,
        timeout=settings.recommendation_timeout,
    )


@router.post("", response_model=schemas.RecommendationsResponse, response_model_exclude_none=True)
@limiter.limit("10/minute")
async def get_recommendations(
    request: Request,
    body: schemas.RecommendationsRequest,
    recommender: FavoritesRecommender = Depends(get_favorites_recommender),
):
    """
    Get one page of recommendations built from the user's favorites.

    Pass every id delivered on earlier pages in sentIds so the next page
    doesn't repeat them. filterTags act as a hard filter.
    """
    try:
        page = await _run(recommender, body)
    except EmptyInputError:
        raise HTTPException(status_code=400, detail=NOTHING_TO_RECOMMEND)
    except (RecommendationsUnavailableError, UpstreamError) as e:
        logger.error(f"Recommendations failed for {len(body.ids)} favorites: {e}")
        raise HTTPException(status_code=502, detail=FETCH_FAILED)

    return _to_response(page)


@router.post("/stream")
@limiter.limit("10/minute")
async def stream_recommendations(
    request: Request,
    body: schemas.RecommendationsRequest,
    recommender: FavoritesRecommender = Depends(get_favorites_recommender),
):
    """
    Server-Sent Events variant of POST /recommendations.

    Emits ``progress`` events while the upstream fan-out runs, then exactly
    one ``result`` or ``error`` event.
    """
    if not body.ids:
        raise HTTPException(status_code=400, detail=NOTHING_TO_RECOMMEND)

    async def event_generator():
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        task = asyncio.create_task(_run(recommender, body, on_progress=queue.put_nowait))

        try:
            while not task.done() or not queue.empty():
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=0.5)
                except asyncio.TimeoutError:
                    continue
                yield f"event: progress\ndata: {json.dumps(event.to_dict())}\n\n"

            try:
                page = task.result()
            except EmptyInputError:
                yield f"event: error\ndata: {json.dumps({'error': NOTHING_TO_RECOMMEND})}\n\n"
                return
            except (RecommendationsUnavailableError, UpstreamError) as e:
                logger.error(f"Streamed recommendations failed: {e}")
                yield f"event: error\ndata: {json.dumps({'error': FETCH_FAILED})}\n\n"
                return

            payload = _to_response(page).model_dump(by_alias=True, exclude_none=True)
            yield f"event: result\ndata: {json.dumps(payload)}\n\n"

        except asyncio.CancelledError:
            logger.info("Recommendation stream cancelled by client")
            raise
        finally:
            if not task.done():
                task.cancel()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
