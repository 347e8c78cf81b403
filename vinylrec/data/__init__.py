"""Data model and catalog access for the recommendation core."""

from .schemas import (
    ListingStatus,
    RecommendationKind,
    Release,
    CandidateItem,
    ScoredCandidate,
    RecommendationResult,
    VariantRecommendations,
    VariantBundle,
    ClickEvent,
)
from .catalog import CatalogAccess, InMemoryCatalog
from .synthetic_generator import SyntheticCatalogGenerator

__all__ = [
    "ListingStatus",
    "RecommendationKind",
    "Release",
    "CandidateItem",
    "ScoredCandidate",
    "RecommendationResult",
    "VariantRecommendations",
    "VariantBundle",
    "ClickEvent",
    "CatalogAccess",
    "InMemoryCatalog",
    "SyntheticCatalogGenerator",
]
