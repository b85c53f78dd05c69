"""
Personalized feed built from a user's local favorites.

The favorites are reduced to a frequency profile of their tags. The top
characters, artists and generic tags are turned into speculative search
queries, and the merged candidate pool is scored by how strongly its tags
recur across the favorites:

    score = favorites / 15000 + sum(bucket_weight * count ** 1.3)

Favorites that come back as candidates are kept but their score is halved.
The head of the ranking is lightly shuffled so repeated calls don't go stale.
"""

import asyncio
import logging
import math
import random
from dataclasses import dataclass, field
from typing import Iterable, Optional

from nhdiscovery.core.errors import EmptyInputError, RecommendationsUnavailableError
from nhdiscovery.core.nhentai_client import NhentaiClient
from nhdiscovery.services.fanout import FetchJob, ProgressCallback, all_failed, fan_out
from nhdiscovery.services.models import (
    FrequencyProfile,
    Item,
    ScoredCandidate,
    ScoringBucket,
    Tag,
)
from nhdiscovery.services.normalizer import Normalizer
from nhdiscovery.services.pagination import paginate, total_pages_for

logger = logging.getLogger(__name__)

# Query plan
TOP_CHARACTERS = 7
TOP_ARTISTS = 5
TOP_TAGS = 12
CHARACTER_ARTIST_PAIRS = 3
QUERY_PAGES = (1, 2, 3)
SORT = "popular"
CANDIDATE_CAP_FACTOR = 10  # Candidate pool is capped at per_page * this

# Scoring
BUCKET_WEIGHTS = {
    ScoringBucket.CHARACTER: 4.0,
    ScoringBucket.ARTIST: 3.0,
    ScoringBucket.PARODY: 2.0,
    ScoringBucket.GROUP: 2.0,
    ScoringBucket.CATEGORY: 1.5,
    ScoringBucket.OTHER: 1.0,
}
FREQUENCY_EXPONENT = 1.3  # Super-linear reward for tags recurring across favorites
POPULARITY_DIVISOR = 15000.0
SELF_DEMOTION_FACTOR = 0.5

# Only the head of the ranking is shuffled
SHUFFLE_WINDOW = 20


@dataclass
class RecommendationPage:
    """One page of the personalized feed."""
    items: list[Item]
    total_pages: int
    current_page: int
    total_items: int
    debug: Optional[dict] = None


@dataclass
class QueryPlan:
    queries: list[str] = field(default_factory=list)
    top_characters: list[str] = field(default_factory=list)
    top_artists: list[str] = field(default_factory=list)
    top_tags: list[str] = field(default_factory=list)


def required_query_prefix(required_tags: Iterable[Tag]) -> str:
    return " ".join(t.query_term for t in required_tags)


def build_query_plan(profile: FrequencyProfile, required_tags: Iterable[Tag] = ()) -> QueryPlan:
    """Derive the speculative search queries from a frequency profile."""
    plan = QueryPlan(
        top_characters=profile.top(ScoringBucket.CHARACTER, TOP_CHARACTERS),
        top_artists=profile.top(ScoringBucket.ARTIST, TOP_ARTISTS),
        top_tags=profile.top(ScoringBucket.OTHER, TOP_TAGS),
    )

    queries = [f'character:"{c}"' for c in plan.top_characters]
    for i, character in enumerate(plan.top_characters[:CHARACTER_ARTIST_PAIRS]):
        if i < len(plan.top_artists):
            queries.append(f'character:"{character}" artist:"{plan.top_artists[i]}"')

    if plan.top_tags:
        queries.append(" ".join(plan.top_tags))
        queries.extend(f'"{t}"' for t in plan.top_tags)

    prefix = required_query_prefix(required_tags)
    seen = set()
    for query in queries:
        query = f"{prefix} {query}".strip() if prefix else query.strip()
        if query and query not in seen:
            seen.add(query)
            plan.queries.append(query)
    return plan


def has_required_tags(item: Item, required_tags: Iterable[Tag]) -> bool:
    """Hard gate: every required (type, name) must be present on the item."""
    present = {(t.type, t.name) for t in item.tags}
    return all((t.type, t.name) in present for t in required_tags)


def score_candidate(
    item: Item,
    profile: FrequencyProfile,
    favorite_ids: set[int],
    explain: bool = False,
) -> ScoredCandidate:
    """Score a candidate against the favorites' frequency profile."""
    score = item.favorites_count / POPULARITY_DIVISOR
    reasons: list[str] = []
    if explain and item.favorites_count:
        reasons.append(f"popularity {item.favorites_count} -> +{score:.3f}")

    for tag in item.tags:
        bucket = ScoringBucket.for_tag_type(tag.type)
        count = profile.count(bucket, tag.name)
        if not count:
            continue
        contribution = BUCKET_WEIGHTS[bucket] * count ** FREQUENCY_EXPONENT
        score += contribution
        if explain:
            reasons.append(f"{bucket.value}:{tag.name} x{count} -> +{contribution:.2f}")

    if item.id in favorite_ids:
        score *= SELF_DEMOTION_FACTOR
        if explain:
            reasons.append("already a favorite -> x0.5")

    return ScoredCandidate(item=item, score=score, explain=reasons)


def bounded_shuffle(items: list, rng: random.Random, window: int = SHUFFLE_WINDOW) -> None:
    """Shuffle the first `window` positions in place; the tail keeps its order."""
    limit = min(window, len(items))
    for i in range(min(window, len(items) - 1)):
        j = i + math.floor(rng.random() * (limit - i))
        items[i], items[j] = items[j], items[i]


class FavoritesRecommender:
    """Recommend galleries from a set of favorited gallery ids."""

    def __init__(
        self,
        client: NhentaiClient,
        normalizer: Normalizer,
        rng: Optional[random.Random] = None,
    ):
        self.client = client
        self.normalizer = normalizer
        self.rng = rng or random.Random()

    async def _fetch_one(self, gallery_id: int) -> list[dict]:
        return [await self.client.get_gallery(gallery_id)]

    async def _load_favorites(
        self,
        favorite_ids: list[int],
        on_progress: Optional[ProgressCallback],
        timeout: Optional[float],
    ) -> list[Item]:
        jobs = [
            FetchJob(
                label=f"favorite {gid}",
                fetch=lambda gid=gid: self._fetch_one(gid),
            )
            for gid in favorite_ids
        ]
        results = await fan_out(jobs, stage="favorites", on_progress=on_progress, timeout=timeout)
        records = [record for r in results for record in r.records]
        if not records:
            raise RecommendationsUnavailableError(
                "Failed to fetch recommendations: none of the favorites could be loaded"
            )
        return self.normalizer.normalize_many(records)

    async def _gather_candidates(
        self,
        queries: list[str],
        exclude: set[int],
        cap: int,
        per_page: int,
        on_progress: Optional[ProgressCallback],
        timeout: Optional[float],
    ) -> list[dict]:
        jobs = [
            FetchJob(
                label=f"{query!r} p{page}",
                fetch=lambda query=query, page=page: self.client.fetch_search_page(
                    query, page=page, per_page=per_page, sort=SORT
                ),
            )
            for query in queries
            for page in QUERY_PAGES
        ]
        results = await fan_out(jobs, stage="recommendations", on_progress=on_progress, timeout=timeout)
        if all_failed(results):
            raise RecommendationsUnavailableError()

        failed = sum(1 for r in results if not r.ok)
        if failed:
            logger.warning(f"{failed} of {len(results)} recommendation fetches returned nothing")

        candidates: dict[int, dict] = {}
        for result in results:
            for raw in result.records:
                raw_id = raw.get("id")
                if raw_id is None:
                    continue
                raw_id = int(raw_id)
                if raw_id in exclude or raw_id in candidates:
                    continue
                if len(candidates) >= cap:
                    break
                candidates[raw_id] = raw
        return list(candidates.values())

    async def recommend(
        self,
        favorite_ids: list[int],
        sent_ids: Iterable[int] = (),
        required_tags: Iterable[Tag] = (),
        page: int = 1,
        per_page: int = 25,
        *,
        debug: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> RecommendationPage:
        """
        Build one page of recommendations.

        Args:
            favorite_ids: Gallery ids the user has favorited
            sent_ids: Ids already delivered on earlier pages of this feed
            required_tags: Tags every result must carry
            page: 1-based page number
            per_page: Page size; also bounds the candidate pool
            debug: Include frequencies, queries and score explanations
            timeout: Seconds for the whole call, favorites loading included.
                Whatever has arrived at the deadline is ranked and returned.

        Raises:
            EmptyInputError: favorite_ids is empty
            RecommendationsUnavailableError: every upstream fetch failed
        """
        if not favorite_ids:
            raise EmptyInputError("Nothing to recommend from: no favorites given")
        if page < 1 or per_page < 1:
            raise ValueError("page and per_page must be positive")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None

        def remaining() -> Optional[float]:
            return None if deadline is None else max(0.0, deadline - loop.time())

        required = list(required_tags)
        liked = await self._load_favorites(list(favorite_ids), on_progress, remaining())
        profile = FrequencyProfile.from_items(liked)
        plan = build_query_plan(profile, required)
        logger.info(
            f"Recommending from {len(liked)}/{len(favorite_ids)} favorites "
            f"with {len(plan.queries)} queries"
        )

        raw_candidates = await self._gather_candidates(
            plan.queries,
            exclude=set(sent_ids),
            cap=per_page * CANDIDATE_CAP_FACTOR,
            per_page=per_page,
            on_progress=on_progress,
            timeout=remaining(),
        )

        favorite_set = set(favorite_ids)
        scored = [
            score_candidate(item, profile, favorite_set, explain=debug)
            for item in self.normalizer.normalize_many(raw_candidates)
            if has_required_tags(item, required)
        ]
        scored.sort(key=lambda c: c.score, reverse=True)
        bounded_shuffle(scored, self.rng)

        items = [c.item for c in scored]
        result = RecommendationPage(
            items=paginate(items, page, per_page),
            total_pages=total_pages_for(len(items), per_page),
            current_page=page,
            total_items=len(items),
        )
        if debug:
            result.debug = {
                "tagFrequencies": profile.as_dict(),
                "queries": plan.queries,
                "scores": [
                    {"id": c.item.id, "score": round(c.score, 4), "explain": c.explain}
                    for c in scored
                ],
            }
        return result
