"""
Synthetic catalog generator for demos and tests.

Generates releases and inventory items with skewed genre frequencies,
a handful of prolific artists per genre, and listing dates spread over
the last few months.
"""

import random
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from .catalog import InMemoryCatalog
from .schemas import CandidateItem, ListingStatus, Release


class SyntheticCatalogGenerator:
    """Generate a synthetic vinyl catalog.

    Example:
        >>> generator = SyntheticCatalogGenerator(seed=7)
        >>> catalog = generator.build_catalog(num_releases=200, num_items=500)
    """

    # Genres with relative frequency weights
    GENRES = [
        ("Rock", 25), ("Jazz", 15), ("Soul", 10), ("Electronic", 12),
        ("Hip-Hop", 10), ("Folk", 8), ("Classical", 6), ("Reggae", 5),
        ("Blues", 5), ("Pop", 4),
    ]

    ARTISTS = {
        "Rock": ["The Kinks", "Television", "Wire", "Can", "Pixies"],
        "Jazz": ["Miles Davis", "John Coltrane", "Alice Coltrane", "Art Blakey"],
        "Soul": ["Curtis Mayfield", "Aretha Franklin", "Al Green"],
        "Electronic": ["Kraftwerk", "Aphex Twin", "Boards of Canada"],
        "Hip-Hop": ["A Tribe Called Quest", "De La Soul", "MF DOOM"],
        "Folk": ["Nick Drake", "Joni Mitchell", "Vashti Bunyan"],
        "Classical": ["Glenn Gould", "Martha Argerich"],
        "Reggae": ["Lee Perry", "Burning Spear"],
        "Blues": ["Howlin' Wolf", "Muddy Waters"],
        "Pop": ["ABBA", "Prince"],
    }

    TITLE_WORDS = [
        "Blue", "Night", "Garden", "Signal", "River", "Electric", "Silent",
        "Golden", "Velvet", "Echo", "Paper", "Sun", "Glass", "Northern",
    ]

    # Weights for non-live statuses mixed into the inventory
    STATUSES = [
        (ListingStatus.LIVE, 80), (ListingStatus.SOLD, 8), (ListingStatus.RESERVED, 5),
        (ListingStatus.DRAFT, 5), (ListingStatus.REMOVED, 2),
    ]

    def __init__(self, seed: int = 42, now: Optional[datetime] = None):
        """Initialize the generator with a random seed.

        Args:
            seed: Random seed for reproducibility.
            now: Reference time for listing dates.
        """
        self.seed = seed
        self.now = now or datetime.utcnow()
        self._random = random.Random(seed)
        self._rng = np.random.default_rng(seed)

    def _weighted_choice(self, choices: List[Tuple]):
        values, weights = zip(*choices)
        return self._random.choices(values, weights=weights, k=1)[0]

    def _generate_title(self) -> str:
        words = self._random.sample(self.TITLE_WORDS, k=self._random.randint(1, 3))
        return " ".join(words)

    def generate_releases(self, num_releases: int) -> pd.DataFrame:
        """Generate synthetic releases.

        Args:
            num_releases: Number of releases to generate.

        Returns:
            DataFrame with release data.
        """
        releases = []
        for i in range(1, num_releases + 1):
            genre = self._weighted_choice(self.GENRES)
            release = {
                "id": f"release-{i}",
                "title": self._generate_title(),
                "artist": self._random.choice(self.ARTISTS[genre]),
                "genre": genre,
                "release_year": int(np.clip(self._rng.normal(1978, 14), 1950, 2024)),
                "cover_art_url": f"https://covers.example.com/{i}.jpg",
                "created_at": self.now - timedelta(days=int(self._rng.integers(0, 120))),
            }
            # Some catalog entries are incomplete
            if self._random.random() < 0.05:
                release["artist"] = None
            if self._random.random() < 0.05:
                release["release_year"] = None
            releases.append(release)

        return pd.DataFrame(releases)

    def generate_items(self, releases_df: pd.DataFrame, num_items: int) -> pd.DataFrame:
        """Generate synthetic inventory items for existing releases.

        Args:
            releases_df: Releases from generate_releases.
            num_items: Number of items to generate.

        Returns:
            DataFrame with item data.
        """
        release_ids = releases_df["id"].tolist()
        items = []
        for i in range(1, num_items + 1):
            # Days listed follows an exponential distribution; most stock is recent
            days_listed = float(min(self._rng.exponential(20), 180))
            items.append({
                "id": f"item-{i}",
                "release_id": self._random.choice(release_ids),
                "status": self._weighted_choice(self.STATUSES).value,
                "listed_at": self.now - timedelta(days=days_listed),
                "price": round(float(self._rng.lognormal(3.0, 0.6)), 2),
            })

        return pd.DataFrame(items)

    def build_catalog(self, num_releases: int = 100, num_items: int = 300) -> InMemoryCatalog:
        """Generate releases and items and load them into an in-memory catalog."""
        releases_df = self.generate_releases(num_releases)
        items_df = self.generate_items(releases_df, num_items)

        catalog = InMemoryCatalog()
        releases = {}
        for row in releases_df.to_dict("records"):
            release = Release(
                id=row["id"],
                title=row["title"],
                artist=row["artist"] if isinstance(row["artist"], str) else None,
                genre=row["genre"],
                release_year=None if pd.isna(row["release_year"]) else int(row["release_year"]),
                cover_art_url=row["cover_art_url"],
                created_at=pd.Timestamp(row["created_at"]).to_pydatetime(),
            )
            releases[release.id] = release
            catalog.add_release(release)

        for row in items_df.to_dict("records"):
            catalog.add_item(
                CandidateItem(
                    id=row["id"],
                    release=releases[row["release_id"]],
                    status=ListingStatus(row["status"]),
                    listed_at=pd.Timestamp(row["listed_at"]).to_pydatetime(),
                    price=row["price"],
                )
            )

        return catalog
