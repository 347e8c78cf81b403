"""
Market price statistics for pricing.

A MarketDataProvider returns low/median/high prices for a release from
one marketplace. HybridMarketData resolves the single statistic a
policy asks for, averaging Discogs and eBay for the HYBRID source.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional, Tuple

from .pricing_config import MARKET_STATISTICS, MarketSource
from ..utils.logging_utils import get_logger, log_extra

logger = get_logger(__name__)

PriceStatistics = Dict[str, float]


class MarketDataProvider(ABC):
    """Abstract base class for marketplace price feeds."""

    @abstractmethod
    def get_price_statistics(self, release_id: str, source: MarketSource) -> Optional[PriceStatistics]:
        """Get price statistics for a release from one marketplace.

        Args:
            release_id: Catalog release id.
            source: DISCOGS or EBAY.

        Returns:
            Mapping with some of "low", "median", "high", or None.
        """
        pass


class InMemoryMarketData(MarketDataProvider):
    """Static price feed for development and tests."""

    def __init__(self, statistics: Optional[Mapping[Tuple[MarketSource, str], PriceStatistics]] = None):
        self._statistics: Dict[Tuple[MarketSource, str], PriceStatistics] = dict(statistics or {})
        self._lock = threading.Lock()

    def set_statistics(self, source: MarketSource, release_id: str, **statistics: float) -> None:
        with self._lock:
            self._statistics[(MarketSource(source), release_id)] = dict(statistics)

    def get_price_statistics(self, release_id: str, source: MarketSource) -> Optional[PriceStatistics]:
        with self._lock:
            stats = self._statistics.get((MarketSource(source), release_id))
        return dict(stats) if stats is not None else None


class HybridMarketData:
    """Resolves one market statistic for a release.

    Provider errors are logged and treated as missing data, so a flaky
    marketplace never fails a quote on its own.
    """

    def __init__(self, provider: MarketDataProvider):
        self.provider = provider

    def _stat_from(self, source: MarketSource, release_id: str, statistic: str) -> Optional[float]:
        try:
            stats = self.provider.get_price_statistics(release_id, source)
        except Exception as e:
            log_extra(
                logger,
                logging.WARNING,
                "Market data lookup failed",
                source=source.value,
                release_id=release_id,
                error=str(e),
            )
            return None
        if not stats:
            return None
        value = stats.get(statistic)
        # Zero prices carry no signal
        return float(value) if value else None

    def get_market_stat(
        self,
        release_id: str,
        source: MarketSource = MarketSource.HYBRID,
        statistic: str = "median",
    ) -> Optional[float]:
        """Get one market statistic.

        Args:
            release_id: Catalog release id.
            source: DISCOGS, EBAY, or HYBRID.
            statistic: "low", "median" or "high".

        Returns:
            The statistic, or None when no source has it.
        """
        statistic = statistic.lower()
        if statistic not in MARKET_STATISTICS:
            raise ValueError(f"Unknown market statistic: {statistic}")

        source = MarketSource(source)
        if source is not MarketSource.HYBRID:
            return self._stat_from(source, release_id, statistic)

        discogs = self._stat_from(MarketSource.DISCOGS, release_id, statistic)
        ebay = self._stat_from(MarketSource.EBAY, release_id, statistic)
        if discogs is not None and ebay is not None:
            return (discogs + ebay) / 2
        return discogs if discogs is not None else ebay
