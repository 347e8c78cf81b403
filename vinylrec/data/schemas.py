"""
Data schemas for the vinyl recommendation core.

Defines dataclasses for the catalog entities handed to the engine
(Release, CandidateItem) and the values the engine produces
(ScoredCandidate, RecommendationResult, VariantBundle, ClickEvent).

Produced values are frozen: a cached RecommendationResult is shared
between callers and must not be mutated after it is written.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ListingStatus(str, Enum):
    """Listing status of an inventory item."""

    DRAFT = "DRAFT"
    LIVE = "LIVE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"
    REMOVED = "REMOVED"


class RecommendationKind(str, Enum):
    """Kind of recommendation request, used in cache keys."""

    SIMILAR = "similar"
    NEW_ARRIVALS = "new-arrivals"
    PERSONALIZED = "personalized"


@dataclass(frozen=True)
class Release:
    """Release entity schema (read-only reference data).

    Attributes:
        id: Release identifier.
        title: Release title.
        artist: Artist name, if known.
        genre: Primary genre, if known.
        release_year: Year of release, if known.
        cover_art_url: Cover art location.
        created_at: When the release was added to the catalog.
    """

    id: str
    title: str = ""
    artist: Optional[str] = None
    genre: Optional[str] = None
    release_year: Optional[int] = None
    cover_art_url: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "genre": self.genre,
            "release_year": self.release_year,
            "cover_art_url": self.cover_art_url,
        }


@dataclass(frozen=True)
class CandidateItem:
    """A live inventory item eligible for recommendation.

    Attributes:
        id: Inventory item identifier.
        release: Release the item is a copy of.
        status: Listing status; only LIVE items are eligible.
        listed_at: When the item went live.
        price: Current list price.
    """

    id: str
    release: Release
    status: ListingStatus = ListingStatus.LIVE
    listed_at: Optional[datetime] = None
    price: Optional[float] = None

    @property
    def is_live(self) -> bool:
        return self.status == ListingStatus.LIVE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "status": self.status.value,
            "listed_at": self.listed_at.isoformat() if self.listed_at else None,
            "price": self.price,
            "release": self.release.to_dict(),
        }


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate item with its computed relevance score."""

    item: CandidateItem
    relevance_score: float
    variant: str
    days_listed: Optional[int] = None

    @property
    def item_id(self) -> str:
        return self.item.id

    @property
    def release_id(self) -> str:
        return self.item.release.id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = self.item.to_dict()
        data["relevance_score"] = self.relevance_score
        data["variant"] = self.variant
        if self.days_listed is not None:
            data["days_listed"] = self.days_listed
        return data


@dataclass(frozen=True)
class RecommendationResult:
    """Ordered recommendations for one request shape.

    Attributes:
        reference_id: Release id, genre (or "all") for new arrivals, or "wishlist".
        recommendations: Scored candidates in rank order, best first.
        algorithm: Algorithm label.
        variant: Variant used for scoring.
        generated_at: When the result was computed.
    """

    reference_id: str
    recommendations: Tuple[ScoredCandidate, ...]
    algorithm: str
    variant: str
    generated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def count(self) -> int:
        return len(self.recommendations)

    @property
    def item_ids(self) -> Tuple[str, ...]:
        return tuple(c.item_id for c in self.recommendations)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "reference_id": self.reference_id,
            "recommendations": [c.to_dict() for c in self.recommendations],
            "algorithm": self.algorithm,
            "variant": self.variant,
            "count": self.count,
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass(frozen=True)
class VariantRecommendations:
    """One named variant inside a variant bundle."""

    name: str
    description: str
    algorithm: str
    result: RecommendationResult

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "description": self.description,
            "algorithm": self.algorithm,
            "recommendations": [c.to_dict() for c in self.result.recommendations],
        }


@dataclass(frozen=True)
class VariantBundle:
    """Side-by-side variant results for A/B comparison."""

    reference_id: str
    tracking_id: str
    variants: Tuple[VariantRecommendations, ...]
    generated_at: datetime = field(default_factory=datetime.utcnow)

    def get_variant(self, name: str) -> Optional[VariantRecommendations]:
        for variant in self.variants:
            if variant.name == name:
                return variant
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "reference_id": self.reference_id,
            "tracking_id": self.tracking_id,
            "variants": [v.to_dict() for v in self.variants],
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass(frozen=True)
class ClickEvent:
    """A buyer click on a shown recommendation. Append-only."""

    tracking_id: str
    variant_name: str
    item_id: str
    buyer_id: str = "anonymous"
    recorded_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "tracking_id": self.tracking_id,
            "variant_name": self.variant_name,
            "item_id": self.item_id,
            "buyer_id": self.buyer_id,
            "recorded_at": self.recorded_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClickEvent":
        """Create from dictionary."""
        data = dict(data)
        recorded_at = data.pop("recorded_at", None)
        if isinstance(recorded_at, str):
            recorded_at = datetime.fromisoformat(recorded_at)
        if recorded_at is None:
            return cls(**data)
        return cls(recorded_at=recorded_at, **data)
