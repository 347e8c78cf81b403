"""
Configuration and request option records for the ranking pipeline.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

from ..config.settings import Settings
from .errors import InvalidArgument
from .result_cache import ResultCacheConfig
from .scoring import CONTROL

T = TypeVar("T")

# camelCase keys accepted from hosts that forward request payloads as-is
_KEY_ALIASES = {
    "abVariant": "variant",
    "ab_variant": "variant",
    "daysBack": "days_back",
}


@dataclass
class RecommendationConfig:
    """Configuration for the recommendation service."""

    # Limits
    max_similar_items: int = 50
    max_new_arrivals: int = 100
    max_personalized: int = 100

    # Over-fetch factors applied before scoring and truncation
    similar_items_overfetch: int = 3
    personalized_overfetch: int = 2

    default_days_back: int = 30

    # Personalized results are request-specific; caching them is opt-in
    cache_personalized: bool = False

    cache: ResultCacheConfig = field(default_factory=ResultCacheConfig)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RecommendationConfig":
        recs = settings.recommendations
        return cls(
            max_similar_items=recs.max_similar_items,
            max_new_arrivals=recs.max_new_arrivals,
            max_personalized=recs.max_personalized,
            similar_items_overfetch=recs.similar_items_overfetch,
            personalized_overfetch=recs.personalized_overfetch,
            default_days_back=recs.default_days_back,
            cache_personalized=recs.cache_personalized,
            cache=ResultCacheConfig.from_settings(settings.cache),
        )


def _from_mapping(cls: Type[T], data: Optional[Mapping[str, Any]]) -> T:
    allowed = {f.name for f in fields(cls)}
    kwargs: Dict[str, Any] = {}
    unknown = []

    for key, value in (data or {}).items():
        name = _KEY_ALIASES.get(key, key)
        if name not in allowed:
            unknown.append(key)
            continue
        kwargs[name] = value

    if unknown:
        raise InvalidArgument(
            f"Unknown option(s) for {cls.__name__}: {', '.join(sorted(unknown))}",
            details={"unknown": sorted(unknown), "allowed": sorted(allowed)},
        )
    return cls(**kwargs)


@dataclass(frozen=True)
class SimilarItemsOptions:
    """Options for a similar-items request."""

    limit: int = 5
    variant: str = CONTROL

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SimilarItemsOptions":
        """Build options from a request mapping, rejecting unknown keys."""
        return _from_mapping(cls, data)


@dataclass(frozen=True)
class NewArrivalsOptions:
    """Options for a new-arrivals request."""

    limit: int = 10
    days_back: int = 30
    genre: Optional[str] = None
    variant: str = CONTROL

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "NewArrivalsOptions":
        """Build options from a request mapping, rejecting unknown keys."""
        return _from_mapping(cls, data)


@dataclass(frozen=True)
class PersonalizedOptions:
    """Options for a personalized request."""

    limit: int = 10
    variant: str = CONTROL

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "PersonalizedOptions":
        """Build options from a request mapping, rejecting unknown keys."""
        return _from_mapping(cls, data)
