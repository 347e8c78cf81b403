"""
Catalog access collaborator.

The recommendation engine never queries storage itself; it asks a
CatalogAccess implementation for releases and live candidate items.
InMemoryCatalog backs local development, the demo script and tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ..utils.logging_utils import get_logger
from .schemas import CandidateItem, Release

logger = get_logger(__name__)


class CatalogAccess(ABC):
    """Abstract base class for catalog data providers."""

    @abstractmethod
    def find_release(self, release_id: str) -> Optional[Release]:
        """Get a release by id.

        Args:
            release_id: Release identifier.

        Returns:
            Release or None if it does not exist.
        """
        pass

    @abstractmethod
    def find_live_candidates_by_genre_or_artist(
        self,
        exclude_release_id: str,
        genre: Optional[str],
        artist: Optional[str],
        limit: int,
    ) -> List[CandidateItem]:
        """Get live items sharing a genre or an artist with a release.

        Args:
            exclude_release_id: Release whose items must not be returned.
            genre: Genre to match (ignored when None).
            artist: Artist to match (ignored when None).
            limit: Maximum number of items.

        Returns:
            Candidate items in retrieval order.
        """
        pass

    @abstractmethod
    def find_live_candidates_by_genres_or_artists(
        self,
        exclude_release_ids: Iterable[str],
        genres: Iterable[str],
        artists: Iterable[str],
        limit: int,
    ) -> List[CandidateItem]:
        """Get live items whose genre or artist is in the given sets.

        Args:
            exclude_release_ids: Releases whose items must not be returned.
            genres: Genres to match.
            artists: Artists to match.
            limit: Maximum number of items.

        Returns:
            Candidate items in retrieval order.
        """
        pass

    @abstractmethod
    def find_live_items_listed_since(
        self,
        cutoff: datetime,
        genre: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[CandidateItem]:
        """Get live items listed at or after a cutoff, newest first.

        Args:
            cutoff: Earliest listing time.
            genre: Optional genre filter.
            limit: Optional maximum number of items.

        Returns:
            Candidate items ordered by listed_at descending.
        """
        pass

    @abstractmethod
    def find_releases_for_items(self, item_ids: Sequence[str]) -> List[CandidateItem]:
        """Resolve inventory item ids to items with their releases.

        Unknown ids are skipped. Listing status is not filtered.

        Args:
            item_ids: Inventory item identifiers.

        Returns:
            Items that exist, with their releases.
        """
        pass


class InMemoryCatalog(CatalogAccess):
    """In-memory catalog for local development and testing.

    Items are returned in insertion order, which plays the role of the
    database's natural retrieval order.

    Example:
        >>> catalog = InMemoryCatalog()
        >>> catalog.add_release(Release(id="r1", genre="Jazz"))
        >>> catalog.add_item(CandidateItem(id="i1", release=catalog.find_release("r1")))
    """

    def __init__(
        self,
        releases: Optional[Iterable[Release]] = None,
        items: Optional[Iterable[CandidateItem]] = None,
    ):
        self._releases: Dict[str, Release] = {}
        self._items: Dict[str, CandidateItem] = {}

        for release in releases or []:
            self.add_release(release)
        for item in items or []:
            self.add_item(item)

    def add_release(self, release: Release) -> None:
        self._releases[release.id] = release

    def add_item(self, item: CandidateItem) -> None:
        """Add an inventory item, registering its release if needed."""
        self._releases.setdefault(item.release.id, item.release)
        self._items[item.id] = item

    @property
    def num_items(self) -> int:
        return len(self._items)

    def find_release(self, release_id: str) -> Optional[Release]:
        return self._releases.get(release_id)

    def find_live_candidates_by_genre_or_artist(
        self,
        exclude_release_id: str,
        genre: Optional[str],
        artist: Optional[str],
        limit: int,
    ) -> List[CandidateItem]:
        genres = {genre} if genre is not None else set()
        artists = {artist} if artist is not None else set()
        return self.find_live_candidates_by_genres_or_artists(
            [exclude_release_id], genres, artists, limit
        )

    def find_live_candidates_by_genres_or_artists(
        self,
        exclude_release_ids: Iterable[str],
        genres: Iterable[str],
        artists: Iterable[str],
        limit: int,
    ) -> List[CandidateItem]:
        excluded: Set[str] = set(exclude_release_ids)
        genre_set = set(genres)
        artist_set = set(artists)

        matches = []
        for item in self._items.values():
            if len(matches) >= limit:
                break
            release = item.release
            if not item.is_live or release.id in excluded:
                continue
            if (release.genre is not None and release.genre in genre_set) or (
                release.artist is not None and release.artist in artist_set
            ):
                matches.append(item)

        return matches

    def find_live_items_listed_since(
        self,
        cutoff: datetime,
        genre: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[CandidateItem]:
        matches = [
            item for item in self._items.values()
            if item.is_live
            and item.listed_at is not None
            and item.listed_at >= cutoff
            and (genre is None or item.release.genre == genre)
        ]
        matches.sort(key=lambda item: item.listed_at, reverse=True)

        if limit is not None:
            matches = matches[:limit]
        return matches

    def find_releases_for_items(self, item_ids: Sequence[str]) -> List[CandidateItem]:
        found = [self._items[item_id] for item_id in item_ids if item_id in self._items]
        if len(found) < len(item_ids):
            logger.debug(f"Resolved {len(found)} of {len(item_ids)} wishlist items")
        return found
