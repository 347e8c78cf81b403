"""
Relevance scoring functions.

Scores are point-additive and unbounded above. A variant is a named
parameterization of the same similarity function (VariantWeights),
not a separate algorithm: "experimental" only changes the genre weight
and adds a small random jitter for result diversity.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Collection, Dict, Optional

import numpy as np

from ..data.schemas import Release
from .errors import InvalidArgument

CONTROL = "control"
EXPERIMENTAL = "experimental"

# Personalization weights
WISHED_GENRE_POINTS = 50.0
WISHED_ARTIST_POINTS = 40.0
RECENCY_WINDOW_DAYS = 30
RECENCY_MAX_BONUS = 10
RECENCY_STEP_DAYS = 3

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class VariantWeights:
    """Weights for one similarity-scoring variant.

    Attributes:
        name: Variant name used in requests, cache keys and click events.
        genre_points: Points for a genre match.
        artist_points: Points for an artist match.
        era_points: Points when release years are within era_window_years.
        era_window_years: Maximum year distance for the era bonus.
        jitter: Upper bound (exclusive) of the random bonus; 0 disables it.
        description: Human-readable description shown in variant bundles.
        algorithm_label: Label reported in variant bundles.
    """

    name: str
    genre_points: float
    artist_points: float = 30.0
    era_points: float = 15.0
    era_window_years: int = 10
    jitter: float = 0.0
    description: str = ""
    algorithm_label: str = "similarity-scoring"

    @property
    def is_deterministic(self) -> bool:
        return self.jitter <= 0

    @property
    def max_deterministic_score(self) -> float:
        return self.genre_points + self.artist_points + self.era_points


# "similarity-scoring-v2" is a label only; both variants run score_similarity.
_VARIANTS: Dict[str, VariantWeights] = {
    CONTROL: VariantWeights(
        name=CONTROL,
        genre_points=40.0,
        description="Standard similarity scoring",
        algorithm_label="similarity-scoring",
    ),
    EXPERIMENTAL: VariantWeights(
        name=EXPERIMENTAL,
        genre_points=60.0,
        jitter=5.0,
        description="Enhanced genre-weighted scoring",
        algorithm_label="similarity-scoring-v2",
    ),
}


def register_variant(weights: VariantWeights) -> None:
    """Register (or replace) a scoring variant."""
    _VARIANTS[weights.name] = weights


def get_variant_weights(variant: str) -> VariantWeights:
    """Look up the weights for a variant name.

    Raises:
        InvalidArgument: If the variant is not registered.
    """
    try:
        return _VARIANTS[variant]
    except KeyError:
        raise InvalidArgument(
            f"Unknown variant: {variant!r}. Must be one of: {', '.join(sorted(_VARIANTS))}",
            details={"variant": variant},
        ) from None


def available_variants() -> Dict[str, VariantWeights]:
    return dict(_VARIANTS)


def default_random_source() -> np.random.Generator:
    return np.random.default_rng()


def score_similarity(
    reference: Release,
    candidate: Release,
    variant: str = CONTROL,
    random_source: Optional[Any] = None,
) -> float:
    """Score a candidate release against a reference release.

    Args:
        reference: Release the recommendations are for.
        candidate: Release of the candidate item.
        variant: Registered variant name.
        random_source: Object with uniform(low, high) returning a float in
            [low, high), such as numpy.random.Generator. Only used by
            variants with jitter; defaults to a fresh numpy generator.

    Returns:
        Non-negative relevance score.
    """
    weights = get_variant_weights(variant)
    score = 0.0

    if reference.genre is not None and candidate.genre == reference.genre:
        score += weights.genre_points

    if reference.artist is not None and candidate.artist == reference.artist:
        score += weights.artist_points

    if (
        reference.release_year is not None
        and candidate.release_year is not None
        and abs(reference.release_year - candidate.release_year) <= weights.era_window_years
    ):
        score += weights.era_points

    if weights.jitter > 0:
        rng = random_source if random_source is not None else default_random_source()
        score += float(rng.uniform(0.0, weights.jitter))

    return score


def days_since(timestamp: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """Whole days elapsed since a timestamp, or None without a timestamp."""
    if timestamp is None:
        return None
    now = now or datetime.utcnow()
    return math.floor((now - timestamp).total_seconds() / SECONDS_PER_DAY)


def recency_bonus(created_at: Optional[datetime], now: Optional[datetime] = None) -> float:
    """Linearly decaying bonus for recently added releases.

    10 points on day 0, one point less every 3 days, nothing from day 30.
    Timestamps in the future count as day 0.
    """
    days_old = days_since(created_at, now)
    if days_old is None:
        return 0.0

    days_old = max(days_old, 0)
    if days_old >= RECENCY_WINDOW_DAYS:
        return 0.0
    return float(max(RECENCY_MAX_BONUS - days_old // RECENCY_STEP_DAYS, 0))


def score_personalization(
    candidate: Release,
    wished_genres: Collection[str],
    wished_artists: Collection[str],
    now: Optional[datetime] = None,
) -> float:
    """Score a candidate release against a buyer's wishlist.

    Args:
        candidate: Release of the candidate item.
        wished_genres: Genres referenced by the wishlist.
        wished_artists: Artists referenced by the wishlist.
        now: Reference time for the recency bonus.

    Returns:
        Non-negative relevance score.
    """
    score = 0.0

    if candidate.genre is not None and candidate.genre in wished_genres:
        score += WISHED_GENRE_POINTS

    if candidate.artist is not None and candidate.artist in wished_artists:
        score += WISHED_ARTIST_POINTS

    score += recency_bonus(candidate.created_at, now)

    return score
