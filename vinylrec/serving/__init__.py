"""
Serving module for vinyl recommendations.

Provides:
- Scoring functions and variant weights
- Thread-safe TTL result cache
- Ranking pipeline (similar items, new arrivals, personalized)
- Typed errors
"""

from .errors import (
    RecommendationError,
    InvalidArgument,
    NotFound,
    UpstreamFailure,
    RecordingFailure,
)
from .scoring import (
    CONTROL,
    EXPERIMENTAL,
    VariantWeights,
    score_similarity,
    score_personalization,
    recency_bonus,
    days_since,
    get_variant_weights,
    register_variant,
    available_variants,
)
from .result_cache import (
    CacheKey,
    ResultCache,
    ResultCacheConfig,
    InMemoryResultCache,
    NullResultCache,
    create_result_cache,
)
from .serving_config import (
    RecommendationConfig,
    SimilarItemsOptions,
    NewArrivalsOptions,
    PersonalizedOptions,
)
from .recommendation_service import (
    RecommendationService,
    create_recommendation_service,
    CachedRecommendation,
    rank_candidates,
    SIMILARITY_ALGORITHM,
    NEW_ARRIVALS_ALGORITHM,
    PERSONALIZED_ALGORITHM,
)

__all__ = [
    # Errors
    "RecommendationError",
    "InvalidArgument",
    "NotFound",
    "UpstreamFailure",
    "RecordingFailure",
    # Scoring
    "CONTROL",
    "EXPERIMENTAL",
    "VariantWeights",
    "score_similarity",
    "score_personalization",
    "recency_bonus",
    "days_since",
    "get_variant_weights",
    "register_variant",
    "available_variants",
    # Cache
    "CacheKey",
    "ResultCache",
    "ResultCacheConfig",
    "InMemoryResultCache",
    "NullResultCache",
    "create_result_cache",
    # Config
    "RecommendationConfig",
    "SimilarItemsOptions",
    "NewArrivalsOptions",
    "PersonalizedOptions",
    # Pipeline
    "RecommendationService",
    "create_recommendation_service",
    "CachedRecommendation",
    "rank_candidates",
    "SIMILARITY_ALGORITHM",
    "NEW_ARRIVALS_ALGORITHM",
    "PERSONALIZED_ALGORITHM",
]
