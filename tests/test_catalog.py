"""
Unit tests for catalog access and the synthetic catalog generator.
"""

from datetime import datetime, timedelta

import pytest

from vinylrec.data import (
    CandidateItem,
    ClickEvent,
    InMemoryCatalog,
    ListingStatus,
    Release,
    SyntheticCatalogGenerator,
)
from vinylrec.serving import RecommendationService


NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def catalog():
    jazz = Release(id="r1", artist="Miles Davis", genre="Jazz")
    jazz_other = Release(id="r2", artist="Sun Ra", genre="Jazz")
    unknown = Release(id="r3")
    rock = Release(id="r4", artist="Miles Davis", genre="Rock")
    return InMemoryCatalog(items=[
        CandidateItem(id="i1", release=jazz, listed_at=NOW - timedelta(days=1)),
        CandidateItem(id="i2", release=jazz_other, listed_at=NOW - timedelta(days=3)),
        CandidateItem(id="i3", release=unknown, listed_at=NOW - timedelta(days=2)),
        CandidateItem(id="i4", release=rock, listed_at=NOW - timedelta(days=40)),
        CandidateItem(id="i5", release=jazz_other, status=ListingStatus.RESERVED, listed_at=NOW),
    ])


class TestInMemoryCatalog:
    """Tests for InMemoryCatalog."""

    def test_find_release(self, catalog):
        """Test release lookup."""
        assert catalog.find_release("r1").artist == "Miles Davis"
        assert catalog.find_release("missing") is None
        assert catalog.num_items == 5

    def test_genre_or_artist_candidates(self, catalog):
        """Test live candidates sharing a genre or artist, in insertion order."""
        items = catalog.find_live_candidates_by_genre_or_artist("r1", "Jazz", "Miles Davis", limit=10)

        assert [i.id for i in items] == ["i2", "i4"]

    def test_none_values_do_not_match(self, catalog):
        """Test that a release with no genre or artist matches nothing."""
        assert catalog.find_live_candidates_by_genre_or_artist("r3", None, None, limit=10) == []

    def test_candidate_limit(self, catalog):
        """Test the retrieval limit."""
        items = catalog.find_live_candidates_by_genres_or_artists([], {"Jazz"}, {"Miles Davis"}, limit=2)

        assert [i.id for i in items] == ["i1", "i2"]

    def test_listed_since(self, catalog):
        """Test newest-first listing window."""
        items = catalog.find_live_items_listed_since(NOW - timedelta(days=30))

        assert [i.id for i in items] == ["i1", "i3", "i2"]

    def test_listed_since_genre_and_limit(self, catalog):
        """Test genre filter and limit on the listing window."""
        items = catalog.find_live_items_listed_since(NOW - timedelta(days=30), genre="Jazz", limit=1)

        assert [i.id for i in items] == ["i1"]

    def test_find_releases_for_items(self, catalog):
        """Test resolving wishlist ids, skipping unknown ones."""
        items = catalog.find_releases_for_items(["i5", "missing", "i1"])

        assert [i.release.id for i in items] == ["r2", "r1"]


class TestClickEvent:
    """Tests for ClickEvent serialization."""

    def test_from_dict_parses_timestamp(self):
        """Test that ISO timestamps are parsed."""
        event = ClickEvent.from_dict({
            "tracking_id": "t1",
            "variant_name": "control",
            "item_id": "i1",
            "buyer_id": "b1",
            "recorded_at": "2024-06-01T12:00:00",
        })

        assert event.recorded_at == NOW


class TestSyntheticCatalogGenerator:
    """Tests for SyntheticCatalogGenerator."""

    def test_generate_releases(self):
        """Test release generation."""
        generator = SyntheticCatalogGenerator(seed=1, now=NOW)

        df = generator.generate_releases(50)

        assert len(df) == 50
        assert df["id"].is_unique
        assert set(df["genre"]).issubset({g for g, _ in SyntheticCatalogGenerator.GENRES})

    def test_reproducible(self):
        """Test that the same seed yields the same catalog."""
        first = SyntheticCatalogGenerator(seed=3, now=NOW).generate_releases(20)
        second = SyntheticCatalogGenerator(seed=3, now=NOW).generate_releases(20)

        assert first["artist"].tolist() == second["artist"].tolist()

    def test_build_catalog_serves_recommendations(self):
        """Test that a generated catalog works end to end."""
        catalog = SyntheticCatalogGenerator(seed=7, now=NOW).build_catalog(num_releases=40, num_items=150)
        service = RecommendationService(catalog, clock=lambda: NOW)

        assert catalog.num_items == 150
        for n in range(1, 41):
            result = service.get_similar_items(f"release-{n}", limit=5)
            assert result.count <= 5
            assert all(c.item.is_live for c in result.recommendations)
            assert all(c.release_id != f"release-{n}" for c in result.recommendations)

        arrivals = service.get_new_arrivals(limit=20, days_back=14)
        listed = [c.item.listed_at for c in arrivals.recommendations]
        assert listed == sorted(listed, reverse=True)
        assert all(c.days_listed <= 14 for c in arrivals.recommendations)
