#!/usr/bin/env python3
"""
Script for running the vinyl recommendation pipeline on a synthetic catalog.

This script demonstrates how to:
1. Build a recommendation service from settings
2. Serve similar items, new arrivals and personalized recommendations
3. Run an A/B bundle, record clicks and analyze conversion
4. Quote a seller submission with the pricing engine

Usage:
    python scripts/serve_recommendations.py --num-releases 200 --num-items 600

    # Simulate buyer clicks and print the conversion report
    python scripts/serve_recommendations.py --simulate-clicks 300
"""

import argparse
import json
import random

from vinylrec.config import Settings
from vinylrec.data import SyntheticCatalogGenerator
from vinylrec.data_collection import ClickRecorder, ClickTrackingConfig
from vinylrec.monitoring import ConversionAnalyzer, VariantSelector
from vinylrec.pricing import (
    InMemoryMarketData,
    MarketSource,
    PricingEngine,
    PricingPolicy,
    quote_submission_item,
    submission_total,
)
from vinylrec.serving import EXPERIMENTAL, create_recommendation_service
from vinylrec.utils.logging_utils import get_logger

logger = get_logger(__name__)


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run the vinyl recommendation pipeline on synthetic data"
    )

    parser.add_argument("--num-releases", type=int, default=100, help="Number of synthetic releases")
    parser.add_argument("--num-items", type=int, default=300, help="Number of synthetic inventory items")
    parser.add_argument("--limit", type=int, default=5, help="Recommendations per request")
    parser.add_argument("--days-back", type=int, default=30, help="New arrivals window in days")
    parser.add_argument("--wishlist-size", type=int, default=3, help="Items on the sample wishlist")
    parser.add_argument(
        "--simulate-clicks",
        type=int,
        default=0,
        help="Number of A/B bundles to simulate clicks for",
    )
    parser.add_argument("--seed", type=int, default=42, help="Random seed")

    return parser.parse_args()


def print_section(title: str, payload) -> None:
    print(f"\n{'='*60}")
    print(title)
    print("=" * 60)
    print(json.dumps(payload, indent=2, default=str))


def simulate_clicks(selector, recorder, analyzer, release_ids, limit: int, num_bundles: int, rng):
    """Serve A/B bundles and click on some of the shown items.

    The experimental variant is clicked slightly more often so the
    report has something to detect.
    """
    click_rates = {"control": 0.05, EXPERIMENTAL: 0.08}

    for _ in range(num_bundles):
        bundle = selector.get_recommendation_variants(rng.choice(release_ids), limit=limit)
        analyzer.record_impressions(bundle)

        for entry in bundle.variants:
            for item_id in entry.result.item_ids:
                if rng.random() < click_rates.get(entry.name, 0.05):
                    recorder.record_recommendation_click(
                        tracking_id=bundle.tracking_id,
                        variant_name=entry.name,
                        item_id=item_id,
                        buyer_id=f"buyer-{rng.randint(1, 50)}",
                    )


def main():
    """Main function."""
    args = parse_args()
    rng = random.Random(args.seed)

    settings = Settings()
    generator = SyntheticCatalogGenerator(seed=args.seed)
    catalog = generator.build_catalog(args.num_releases, args.num_items)
    logger.info(f"Built synthetic catalog with {catalog.num_items} items")

    service = create_recommendation_service(catalog, settings)
    release_ids = [f"release-{i}" for i in range(1, args.num_releases + 1)]

    similar = service.get_similar_items(release_ids[0], limit=args.limit)
    print_section(f"Similar items for {release_ids[0]}", similar.to_dict())

    arrivals = service.get_new_arrivals(limit=args.limit, days_back=args.days_back)
    print_section(f"New arrivals (last {args.days_back} days)", arrivals.to_dict())

    wishlist = [f"item-{rng.randint(1, args.num_items)}" for _ in range(args.wishlist_size)]
    personalized = service.get_personalized_recommendations(wishlist, limit=args.limit)
    print_section(f"Personalized for wishlist {wishlist}", personalized.to_dict())

    selector = VariantSelector(service)
    recorder = ClickRecorder(config=ClickTrackingConfig.from_settings(settings.click_tracking))
    analyzer = ConversionAnalyzer()

    bundle = selector.get_recommendation_variants(release_ids[0], limit=args.limit)
    analyzer.record_impressions(bundle)
    print_section(
        f"A/B bundle {bundle.tracking_id}",
        [entry.to_dict() for entry in bundle.variants],
    )

    if args.simulate_clicks:
        simulate_clicks(selector, recorder, analyzer, release_ids, args.limit, args.simulate_clicks, rng)
        print_section("Conversion report", analyzer.analyze(recorder.get_clicks()).to_dict())

    # Pricing: quote a small seller submission against synthetic market data
    market = InMemoryMarketData()
    for release_id in release_ids[:3]:
        median = round(rng.uniform(10, 80), 2)
        market.set_statistics(MarketSource.DISCOGS, release_id, low=median * 0.6, median=median, high=median * 1.5)
    engine = PricingEngine(market, policy=PricingPolicy.from_settings(settings.pricing))

    quotes = [
        quote_submission_item(engine, f"submission-item-{n}", release_id, "NM", "VG_PLUS")
        for n, release_id in enumerate(release_ids[:4], start=1)
    ]
    print_section(
        "Seller submission quote",
        {"items": [q.to_dict() for q in quotes], "total": submission_total(quotes)},
    )

    print_section("Service stats", service.get_stats())


if __name__ == "__main__":
    main()
