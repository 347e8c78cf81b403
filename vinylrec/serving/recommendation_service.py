"""
Recommendation ranking pipeline.

Implements the three recommendation requests served to the storefront:
1. Similar items: score candidates sharing a genre or artist with a release
2. New arrivals: recently listed live items, newest first
3. Personalized: score candidates against the genres and artists of a wishlist

Each request validates its options, checks the result cache, fetches
candidates from the catalog collaborator, scores them, sorts them
(stable, highest score first), truncates and stores the result.
"""

import json
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, TypeVar

import numpy as np

from ..config.settings import Settings, get_settings
from ..data.catalog import CatalogAccess
from ..data.schemas import (
    CandidateItem,
    RecommendationKind,
    RecommendationResult,
    ScoredCandidate,
)
from ..utils.logging_utils import get_logger, log_block, log_extra, request_context
from .errors import InvalidArgument, NotFound, RecommendationError, UpstreamFailure
from .result_cache import CacheKey, ResultCache, create_result_cache
from .scoring import (
    CONTROL,
    days_since,
    get_variant_weights,
    score_personalization,
    score_similarity,
)
from .serving_config import (
    NewArrivalsOptions,
    PersonalizedOptions,
    RecommendationConfig,
    SimilarItemsOptions,
)

logger = get_logger(__name__)

T = TypeVar("T")

SIMILARITY_ALGORITHM = "similarity-scoring"
NEW_ARRIVALS_ALGORITHM = "new-arrivals"
PERSONALIZED_ALGORITHM = "personalized"

WISHLIST_REFERENCE = "wishlist"
ALL_GENRES = "all"


class CachedRecommendation(NamedTuple):
    """A cached result plus the request parameters it was computed for.

    The cache key does not include the limit (or days_back), so a hit is
    only served when the cached result can answer the request: same
    parameters return the stored object itself, a smaller limit returns
    its leading slice, anything else is treated as a miss.
    """

    result: RecommendationResult
    limit: int
    days_back: Optional[int] = None


class RecommendationService:
    """Recommendation ranking pipeline.

    Example:
        >>> service = RecommendationService(catalog, cache=create_result_cache())
        >>> result = service.get_similar_items("release-1", limit=5)
        >>> [c.item_id for c in result.recommendations]
    """

    def __init__(
        self,
        catalog: CatalogAccess,
        config: Optional[RecommendationConfig] = None,
        cache: Optional[ResultCache] = None,
        random_source: Optional[Any] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """Initialize the recommendation service.

        Args:
            catalog: Catalog access collaborator.
            config: Service configuration.
            cache: Result cache; created from config.cache when omitted.
            random_source: Jitter source for experimental scoring
                (anything with uniform(low, high)).
            clock: Returns the current UTC time.
        """
        self.catalog = catalog
        self.config = config or RecommendationConfig()
        self.cache = cache if cache is not None else create_result_cache(self.config.cache)
        self.random_source = random_source if random_source is not None else np.random.default_rng()
        self._clock = clock
        self._request_counter = 0
        self._counter_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Similar items
    # ------------------------------------------------------------------

    def get_similar_items(
        self,
        release_id: str,
        limit: int = 5,
        variant: str = CONTROL,
        options: Optional[SimilarItemsOptions] = None,
    ) -> RecommendationResult:
        """Get items similar to a release.

        Args:
            release_id: Reference release id.
            limit: Number of recommendations (at most max_similar_items).
            variant: Scoring variant.
            options: Options record; overrides limit and variant when given.

        Returns:
            RecommendationResult with algorithm "similarity-scoring".

        Raises:
            InvalidArgument: Limit out of range or unknown variant.
            NotFound: The release does not exist.
            UpstreamFailure: The catalog failed.
        """
        if options is not None:
            limit, variant = options.limit, options.variant

        self._validate_limit(limit, self.config.max_similar_items)
        get_variant_weights(variant)
        self._count_request()

        with request_context(operation="similar-items"):
            reference = self._fetch(
                "find reference release",
                lambda: self.catalog.find_release(release_id),
                release_id=release_id,
            )
            if reference is None:
                raise NotFound("Release not found", details={"release_id": release_id})

            key = CacheKey(release_id, variant, RecommendationKind.SIMILAR.value)
            cached = self._lookup(key, limit)
            if cached is not None:
                return cached

            candidates = self._fetch(
                "fetch similar candidates",
                lambda: self.catalog.find_live_candidates_by_genre_or_artist(
                    release_id,
                    reference.genre,
                    reference.artist,
                    limit * self.config.similar_items_overfetch,
                ),
                release_id=release_id,
            )

            with log_block(logger, "score_similar_items", release_id=release_id, variant=variant):
                scored = [
                    ScoredCandidate(
                        item=item,
                        relevance_score=score_similarity(
                            reference, item.release, variant, self.random_source
                        ),
                        variant=variant,
                    )
                    for item in self._eligible(candidates, exclude_release_ids={release_id})
                ]
                ranked = rank_candidates(scored, limit)

            result = RecommendationResult(
                reference_id=release_id,
                recommendations=tuple(ranked),
                algorithm=SIMILARITY_ALGORITHM,
                variant=variant,
                generated_at=self._clock(),
            )

            self.cache.set(
                key,
                CachedRecommendation(result, limit),
                self.config.cache.similar_items_ttl_seconds,
            )
            log_extra(
                logger,
                logging.DEBUG,
                "Similar items computed",
                release_id=release_id,
                variant=variant,
                num_candidates=len(candidates),
                count=result.count,
            )
            return result

    # ------------------------------------------------------------------
    # New arrivals
    # ------------------------------------------------------------------

    def get_new_arrivals(
        self,
        limit: int = 10,
        days_back: Optional[int] = None,
        genre: Optional[str] = None,
        variant: str = CONTROL,
        options: Optional[NewArrivalsOptions] = None,
    ) -> RecommendationResult:
        """Get recently listed live items, newest first.

        Args:
            limit: Number of recommendations (at most max_new_arrivals).
            days_back: Listing window in days (default from config).
            genre: Optional genre filter.
            variant: Variant tag (no scoring is applied).
            options: Options record; overrides the other arguments when given.

        Returns:
            RecommendationResult with algorithm "new-arrivals".
        """
        if options is not None:
            limit, days_back, genre, variant = (
                options.limit, options.days_back, options.genre, options.variant
            )
        if days_back is None:
            days_back = self.config.default_days_back

        self._validate_limit(limit, self.config.max_new_arrivals)
        if not isinstance(days_back, int) or isinstance(days_back, bool) or days_back < 0:
            raise InvalidArgument("days_back must be a non-negative integer", details={"days_back": days_back})
        get_variant_weights(variant)
        self._count_request()

        with request_context(operation="new-arrivals"):
            subject = genre or ALL_GENRES
            key = CacheKey(subject, variant, RecommendationKind.NEW_ARRIVALS.value)
            cached = self._lookup(key, limit, days_back)
            if cached is not None:
                return cached

            now = self._clock()
            cutoff = now - timedelta(days=days_back)
            items = self._fetch(
                "fetch new arrivals",
                lambda: self.catalog.find_live_items_listed_since(cutoff, genre=genre, limit=limit),
                genre=subject,
            )

            eligible = [item for item in self._eligible(items) if item.listed_at is not None]
            eligible = sorted(eligible, key=lambda item: item.listed_at, reverse=True)[:limit]

            result = RecommendationResult(
                reference_id=subject,
                recommendations=tuple(
                    ScoredCandidate(
                        item=item,
                        relevance_score=0.0,
                        variant=variant,
                        days_listed=days_since(item.listed_at, now),
                    )
                    for item in eligible
                ),
                algorithm=NEW_ARRIVALS_ALGORITHM,
                variant=variant,
                generated_at=now,
            )

            self.cache.set(
                key,
                CachedRecommendation(result, limit, days_back),
                self.config.cache.new_arrivals_ttl_seconds,
            )
            log_extra(
                logger,
                logging.DEBUG,
                "New arrivals computed",
                genre=subject,
                days_back=days_back,
                count=result.count,
            )
            return result

    # ------------------------------------------------------------------
    # Personalized
    # ------------------------------------------------------------------

    def get_personalized_recommendations(
        self,
        wishlist_item_ids: Optional[Sequence[str]],
        limit: int = 10,
        variant: str = CONTROL,
        options: Optional[PersonalizedOptions] = None,
    ) -> RecommendationResult:
        """Get recommendations matching a buyer's wishlist.

        An empty wishlist, or one where no id resolves, falls back to
        new arrivals instead of failing.

        Args:
            wishlist_item_ids: Inventory item ids on the wishlist.
            limit: Number of recommendations (at most max_personalized).
            variant: Variant tag.
            options: Options record; overrides limit and variant when given.

        Returns:
            RecommendationResult with algorithm "personalized" (or
            "new-arrivals" on fallback).
        """
        if options is not None:
            limit, variant = options.limit, options.variant

        if not wishlist_item_ids:
            logger.debug("Empty wishlist, falling back to new arrivals")
            return self.get_new_arrivals(limit=limit, variant=variant)

        self._validate_limit(limit, self.config.max_personalized)
        get_variant_weights(variant)
        self._count_request()
        wishlist_ids = list(dict.fromkeys(wishlist_item_ids))

        with request_context(operation="personalized"):
            # JSON keeps ids containing commas distinct from separate ids
            key = CacheKey(json.dumps(sorted(wishlist_ids)), variant, RecommendationKind.PERSONALIZED.value)
            if self.config.cache_personalized:
                cached = self._lookup(key, limit)
                if cached is not None:
                    return cached

            wishlist_items = self._fetch(
                "resolve wishlist items",
                lambda: self.catalog.find_releases_for_items(wishlist_ids),
                wishlist_size=len(wishlist_ids),
            )
            if not wishlist_items:
                log_extra(
                    logger,
                    logging.INFO,
                    "No wishlist items resolved, falling back to new arrivals",
                    wishlist_size=len(wishlist_ids),
                )
                return self.get_new_arrivals(limit=limit, variant=variant)

            wished_genres = {i.release.genre for i in wishlist_items if i.release.genre is not None}
            wished_artists = {i.release.artist for i in wishlist_items if i.release.artist is not None}
            wished_release_ids = {i.release.id for i in wishlist_items}

            candidates = self._fetch(
                "fetch personalized candidates",
                lambda: self.catalog.find_live_candidates_by_genres_or_artists(
                    wished_release_ids,
                    wished_genres,
                    wished_artists,
                    limit * self.config.personalized_overfetch,
                ),
                wishlist_size=len(wishlist_ids),
            )

            now = self._clock()
            scored = [
                ScoredCandidate(
                    item=item,
                    relevance_score=score_personalization(
                        item.release, wished_genres, wished_artists, now
                    ),
                    variant=variant,
                )
                for item in self._eligible(candidates, exclude_release_ids=wished_release_ids)
            ]

            result = RecommendationResult(
                reference_id=WISHLIST_REFERENCE,
                recommendations=tuple(rank_candidates(scored, limit)),
                algorithm=PERSONALIZED_ALGORITHM,
                variant=variant,
                generated_at=now,
            )

            if self.config.cache_personalized:
                self.cache.set(
                    key,
                    CachedRecommendation(result, limit),
                    self.config.cache.personalized_ttl_seconds,
                )
            log_extra(
                logger,
                logging.DEBUG,
                "Personalized recommendations computed",
                wishlist_size=len(wishlist_ids),
                num_genres=len(wished_genres),
                num_artists=len(wished_artists),
                count=result.count,
            )
            return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _count_request(self) -> None:
        with self._counter_lock:
            self._request_counter += 1

    @staticmethod
    def _validate_limit(limit: int, maximum: int) -> None:
        if not isinstance(limit, int) or isinstance(limit, bool):
            raise InvalidArgument("Limit must be an integer", details={"limit": limit})
        if limit > maximum:
            raise InvalidArgument(f"Limit cannot exceed {maximum}", details={"limit": limit})
        if limit < 1:
            raise InvalidArgument("Limit must be at least 1", details={"limit": limit})

    def _lookup(
        self,
        key: CacheKey,
        limit: int,
        days_back: Optional[int] = None,
    ) -> Optional[RecommendationResult]:
        entry = self.cache.get(key)
        if entry is None:
            return None

        if entry.days_back != days_back or entry.limit < limit:
            logger.debug(f"Cache entry {key} does not cover request (limit={limit}), recomputing")
            return None

        log_extra(logger, logging.DEBUG, "Cache hit", cache_key=str(key))
        if entry.limit == limit:
            return entry.result

        cached = entry.result
        return RecommendationResult(
            reference_id=cached.reference_id,
            recommendations=cached.recommendations[:limit],
            algorithm=cached.algorithm,
            variant=cached.variant,
            generated_at=cached.generated_at,
        )

    @staticmethod
    def _eligible(
        items: Iterable[CandidateItem],
        exclude_release_ids: Iterable[str] = (),
    ) -> List[CandidateItem]:
        """Drop non-live items and items of excluded releases."""
        excluded = set(exclude_release_ids)
        eligible = []
        dropped = 0
        for item in items:
            if not item.is_live or item.release.id in excluded:
                dropped += 1
                continue
            eligible.append(item)

        if dropped:
            logger.debug(f"Dropped {dropped} ineligible candidates")
        return eligible

    def _fetch(self, operation: str, fetch: Callable[[], T], **context: Any) -> T:
        """Call the catalog, translating collaborator failures."""
        try:
            return fetch()
        except RecommendationError:
            raise
        except Exception as e:
            log_extra(
                logger,
                logging.ERROR,
                f"Catalog access failed: {operation}",
                exc_info=True,
                operation=operation,
                error=str(e),
                **context,
            )
            raise UpstreamFailure(
                f"Failed to {operation}",
                details={"operation": operation, **context},
            ) from e

    def get_stats(self) -> Dict[str, Any]:
        """Get service statistics.

        Returns:
            Statistics dictionary.
        """
        return {
            "request_count": self._request_counter,
            "cache_stats": self.cache.get_stats(),
        }


def rank_candidates(scored: Iterable[ScoredCandidate], limit: int) -> List[ScoredCandidate]:
    """Sort by score, highest first, and keep the top limit.

    The sort is stable: candidates with equal scores keep their
    retrieval order.
    """
    return sorted(scored, key=lambda c: c.relevance_score, reverse=True)[:limit]


def create_recommendation_service(
    catalog: CatalogAccess,
    settings: Optional[Settings] = None,
    random_source: Optional[Any] = None,
) -> RecommendationService:
    """Factory function to create a recommendation service from settings.

    Args:
        catalog: Catalog access collaborator.
        settings: Application settings; loaded from the environment when omitted.
        random_source: Jitter source for experimental scoring.

    Returns:
        RecommendationService instance.
    """
    settings = settings or get_settings()
    config = RecommendationConfig.from_settings(settings)
    return RecommendationService(
        catalog,
        config=config,
        cache=create_result_cache(config.cache),
        random_source=random_source,
    )
