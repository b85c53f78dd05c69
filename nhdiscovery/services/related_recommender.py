"""
"Related to this gallery" recommendations.

One seed gallery is expanded into several query buckets, one per prominent
character plus an optional tag-based fallback. Each bucket is scored and
sorted on its own. The final list is built by taking turns across buckets,
so a large bucket cannot crowd out the others:

- Shared tags score by type weight x rarity (ln of inverse global usage)
- Shared characters add a flat bonus, more when several overlap
- Shared artist/parody/group/category/language names add flat weights
- A small popularity term, then a recency decay floored at 40%
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from nhdiscovery.core.nhentai_client import NhentaiClient
from nhdiscovery.core.errors import RecommendationsUnavailableError
from nhdiscovery.services.fanout import FetchJob, FetchResult, ProgressCallback, all_failed, fan_out
from nhdiscovery.services.models import Item, ScoredCandidate, TagType
from nhdiscovery.services.normalizer import Normalizer
from nhdiscovery.services.tag_catalog import TagCatalog

logger = logging.getLogger(__name__)

# Query plan
MAX_CHARACTER_BUCKETS = 7
PAGE_SIZE = 50
SORT = "popular"
CHARACTER_PAGES = (1, 2, 3)
FALLBACK_PAGES = (1, 2, 3, 4)
FALLBACK_BUCKET = "_tags"
FALLBACK_MIN_CANDIDATES = 60  # Below this raw yield, add the fallback bucket
FALLBACK_TAG_LIMIT = 10
DEFAULT_MAX_RESULTS = 12

# Rarity-weighted score per shared tag, by tag type
TYPE_WEIGHTS = {
    TagType.CHARACTER: 7.0,
    TagType.ARTIST: 4.0,
    TagType.PARODY: 3.0,
    TagType.GROUP: 2.0,
    TagType.CATEGORY: 2.0,
    TagType.TAG: 1.0,
    TagType.LANGUAGE: 0.5,
}

# Flat per-name bonuses
CHARACTER_WEIGHT = 7.0
MULTI_CHARACTER_BONUS = 3.0  # x matched characters, when more than one matches
ARTIST_WEIGHT = 4.0
PARODY_WEIGHT = 3.0
GROUP_WEIGHT = 2.0
CATEGORY_WEIGHT = 2.0
LANGUAGE_WEIGHT = 0.5

POPULARITY_DIVISOR = 15000.0

# Recency decay: lose 10% per 30 days, never below 40%
DECAY_PER_PERIOD = 0.1
DECAY_PERIOD_DAYS = 30.0
DECAY_FLOOR = 0.4


def recency_decay(uploaded_at: Optional[datetime], now: Optional[datetime] = None) -> float:
    """Multiplier in [0.4, 1.0]; undated galleries get the floor."""
    if uploaded_at is None:
        return DECAY_FLOOR
    now = now or datetime.now(timezone.utc)
    age_days = max(0.0, (now - uploaded_at).total_seconds() / 86400)
    return max(DECAY_FLOOR, 1 - DECAY_PER_PERIOD * (age_days / DECAY_PERIOD_DAYS))


@dataclass
class SeedProfile:
    """Name sets describing the seed gallery."""
    qualified_tags: set[str]
    artists: set[str]
    parodies: set[str]
    characters: set[str]
    groups: set[str]
    categories: set[str]
    languages: set[str]

    @classmethod
    def from_item(cls, item: Item) -> "SeedProfile":
        def names(tags):
            return {t.name for t in tags}

        return cls(
            qualified_tags={t.qualified_name for t in item.tags},
            artists=names(item.artists),
            parodies=names(item.parodies),
            characters=names(item.characters),
            groups=names(item.groups),
            categories=names(item.categories),
            languages=names(item.languages),
        )


@dataclass
class QueryBucket:
    name: str
    query: str
    pages: tuple[int, ...]
    records: list[dict] = field(default_factory=list)


def score_candidate(
    item: Item,
    seed: SeedProfile,
    catalog: TagCatalog,
    now: Optional[datetime] = None,
) -> float:
    """Score one candidate against the seed profile."""
    score = 0.0

    for tag in item.tags:
        if tag.qualified_name in seed.qualified_tags:
            score += TYPE_WEIGHTS[tag.type] * catalog.inverse_frequency(tag)

    matched_characters = sum(1 for t in item.characters if t.name in seed.characters)
    score += matched_characters * CHARACTER_WEIGHT
    if matched_characters > 1:
        score += matched_characters * MULTI_CHARACTER_BONUS

    for tags, names, weight in (
        (item.artists, seed.artists, ARTIST_WEIGHT),
        (item.parodies, seed.parodies, PARODY_WEIGHT),
        (item.groups, seed.groups, GROUP_WEIGHT),
        (item.categories, seed.categories, CATEGORY_WEIGHT),
        (item.languages, seed.languages, LANGUAGE_WEIGHT),
    ):
        score += weight * sum(1 for t in tags if t.name in names)

    score += item.favorites_count / POPULARITY_DIVISOR
    return score * recency_decay(item.uploaded_at, now)


def _title_key(item: Item) -> str:
    return item.title_pretty.strip().casefold()


def interleave_buckets(
    buckets: list[list[Item]],
    max_results: int,
    seed_languages: set[str],
) -> list[Item]:
    """
    Round-robin across ranked buckets with title-collision resolution.

    Takes the best remaining item from each non-empty bucket in turn. An item
    whose title was already taken is skipped, unless it shares a language with
    the seed and the kept edition doesn't; then it replaces that edition in
    place.
    """
    queues = [list(b) for b in buckets]
    result: list[Item] = []
    seen_titles: dict[str, tuple[int, bool]] = {}  # key -> (position, language match)

    while len(result) < max_results and any(queues):
        for queue in queues:
            if len(result) >= max_results:
                break
            if not queue:
                continue
            item = queue.pop(0)
            key = _title_key(item)
            lang_match = any(t.name in seed_languages for t in item.languages)

            existing = seen_titles.get(key)
            if existing is None:
                seen_titles[key] = (len(result), lang_match)
                result.append(item)
            elif lang_match and not existing[1]:
                position = existing[0]
                result[position] = item
                seen_titles[key] = (position, True)

    return result


class RelatedRecommender:
    """Find galleries related to a seed gallery."""

    def __init__(
        self,
        client: NhentaiClient,
        normalizer: Normalizer,
        catalog: TagCatalog,
    ):
        self.client = client
        self.normalizer = normalizer
        self.catalog = catalog

    def _page_jobs(self, bucket: QueryBucket) -> list[FetchJob]:
        return [
            FetchJob(
                label=f"{bucket.name} p{page}",
                fetch=lambda page=page: self.client.fetch_search_page(
                    bucket.query, page=page, per_page=PAGE_SIZE, sort=SORT
                ),
            )
            for page in bucket.pages
        ]

    async def _fill(
        self,
        buckets: list[QueryBucket],
        stage: str,
        on_progress: Optional[ProgressCallback],
        timeout: Optional[float],
    ) -> list[FetchResult]:
        jobs: list[FetchJob] = []
        owners: list[QueryBucket] = []
        for bucket in buckets:
            bucket_jobs = self._page_jobs(bucket)
            jobs.extend(bucket_jobs)
            owners.extend([bucket] * len(bucket_jobs))

        results = await fan_out(jobs, stage=stage, on_progress=on_progress, timeout=timeout)
        for bucket, result in zip(owners, results):
            bucket.records.extend(result.records)
        return results

    def _fallback_query(self, seed: Item) -> str:
        parts = [t.query_term for t in seed.artists + seed.parodies + seed.categories]
        if parts:
            return " ".join(parts)
        return " ".join(t.name for t in seed.tags[:FALLBACK_TAG_LIMIT])

    def _rank_bucket(
        self,
        bucket: QueryBucket,
        seed: Item,
        profile: SeedProfile,
        now: datetime,
    ) -> list[Item]:
        unique: dict[int, dict] = {}
        for raw in bucket.records:
            raw_id = raw.get("id")
            if raw_id is None or int(raw_id) == seed.id:
                continue
            unique[int(raw_id)] = raw

        scored = [
            ScoredCandidate(item=item, score=score_candidate(item, profile, self.catalog, now))
            for item in self.normalizer.normalize_many(unique.values())
        ]
        scored.sort(key=lambda c: c.score, reverse=True)
        return [c.item for c in scored]

    async def find_related(
        self,
        seed: Item,
        *,
        max_results: int = DEFAULT_MAX_RESULTS,
        on_progress: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> list[Item]:
        """
        Find up to max_results galleries related to seed.

        Failed fetches count as empty pages; nothing matching is [] rather
        than an error. With a timeout, whatever has been fetched when the
        deadline hits is ranked and returned.

        Raises:
            RecommendationsUnavailableError: every bucket fetch failed
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        profile = SeedProfile.from_item(seed)

        buckets = [
            QueryBucket(name=c.name, query=c.query_term, pages=CHARACTER_PAGES)
            for c in seed.characters[:MAX_CHARACTER_BUCKETS]
        ]
        results = await self._fill(buckets, "characters", on_progress, timeout)

        raw_total = sum(len(b.records) for b in buckets)
        if raw_total < FALLBACK_MIN_CANDIDATES:
            query = self._fallback_query(seed)
            remaining = None if deadline is None else deadline - loop.time()
            if query and (remaining is None or remaining > 0):
                logger.info(
                    f"[related {seed.id}] {raw_total} character candidates, "
                    f"adding fallback bucket: {query}"
                )
                fallback = QueryBucket(name=FALLBACK_BUCKET, query=query, pages=FALLBACK_PAGES)
                results += await self._fill([fallback], "fallback", on_progress, remaining)
                buckets.append(fallback)

        if all_failed(results):
            raise RecommendationsUnavailableError()

        now = datetime.now(timezone.utc)
        ranked = [self._rank_bucket(b, seed, profile, now) for b in buckets]
        result = interleave_buckets(ranked, max_results, profile.languages)

        logger.info(
            f"[related {seed.id}] {len(buckets)} buckets, "
            f"{sum(len(r) for r in ranked)} candidates -> {len(result)} results"
        )
        return result
