"""
Unit tests for the A/B testing harness and conversion analysis.
"""

import itertools
import threading
from datetime import datetime, timedelta

import pytest

from vinylrec.data.catalog import InMemoryCatalog
from vinylrec.data.schemas import CandidateItem, ClickEvent, Release
from vinylrec.monitoring.ab_testing import (
    ConversionAnalyzer,
    VariantSelector,
    generate_tracking_id,
)
from vinylrec.serving.errors import InvalidArgument, NotFound
from vinylrec.serving.recommendation_service import RecommendationService
from vinylrec.serving.scoring import CONTROL, EXPERIMENTAL


NOW = datetime(2024, 6, 1, 12, 0, 0)


class ZeroJitter:
    def uniform(self, low, high):
        return low


@pytest.fixture
def service():
    reference = Release(id="r1", artist="Miles Davis", genre="Jazz", release_year=1959)
    releases = [
        Release(id="r2", artist="Miles Davis", genre="Jazz", release_year=1961),
        Release(id="r3", artist="John Coltrane", genre="Jazz", release_year=1965),
        Release(id="r4", artist="Sun Ra", genre="Jazz", release_year=1990),
        Release(id="r5", artist="Miles Davis", genre="Rock", release_year=1985),
    ]
    items = [CandidateItem(id="i1", release=reference, listed_at=NOW)]
    items += [
        CandidateItem(id=f"i{n}", release=release, listed_at=NOW - timedelta(days=n))
        for n, release in enumerate(releases, start=2)
    ]
    return RecommendationService(InMemoryCatalog(items=items), random_source=ZeroJitter(), clock=lambda: NOW)


def sequential_ids():
    counter = itertools.count(1)
    return lambda reference_id: f"{reference_id}-t{next(counter)}"


class TestTrackingId:
    """Tests for tracking id generation."""

    def test_prefixed_with_reference(self):
        """Test that tracking ids start with the reference id."""
        assert generate_tracking_id("r1").startswith("r1-")

    def test_unique_under_concurrency(self):
        """Test that concurrent generation never collides."""
        ids = []
        lock = threading.Lock()

        def worker():
            generated = [generate_tracking_id("r1") for _ in range(200)]
            with lock:
                ids.extend(generated)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(ids) == 1600
        assert len(set(ids)) == 1600


class TestVariantSelector:
    """Tests for VariantSelector."""

    def test_bundle_shape(self, service):
        """Test one entry per variant with labels and descriptions."""
        bundle = VariantSelector(service).get_recommendation_variants("r1", limit=3)

        assert bundle.reference_id == "r1"
        assert [v.name for v in bundle.variants] == [CONTROL, EXPERIMENTAL]

        control = bundle.get_variant(CONTROL)
        experimental = bundle.get_variant(EXPERIMENTAL)
        assert control.description == "Standard similarity scoring"
        assert control.algorithm == "similarity-scoring"
        assert experimental.description == "Enhanced genre-weighted scoring"
        assert experimental.algorithm == "similarity-scoring-v2"
        assert control.result.variant == CONTROL
        assert experimental.result.variant == EXPERIMENTAL
        assert control.result.count == 3
        assert bundle.get_variant("missing") is None

    def test_variants_score_differently(self, service):
        """Test that each variant is scored with its own weights."""
        bundle = VariantSelector(service).get_recommendation_variants("r1", limit=4)

        control_scores = [c.relevance_score for c in bundle.get_variant(CONTROL).result.recommendations]
        experimental_scores = [c.relevance_score for c in bundle.get_variant(EXPERIMENTAL).result.recommendations]

        assert control_scores == [85, 55, 40, 30]
        assert experimental_scores == [105, 75, 60, 30]

    def test_fresh_tracking_id_per_bundle(self, service):
        """Test that repeated bundles for one release get distinct ids."""
        selector = VariantSelector(service)

        ids = {selector.get_recommendation_variants("r1").tracking_id for _ in range(20)}

        assert len(ids) == 20

    def test_custom_tracking_id_factory(self, service):
        """Test injecting the tracking id factory."""
        selector = VariantSelector(service, tracking_id_factory=sequential_ids())

        assert selector.get_recommendation_variants("r1").tracking_id == "r1-t1"
        assert selector.get_recommendation_variants("r1").tracking_id == "r1-t2"

    def test_missing_release(self, service):
        """Test that NotFound propagates."""
        with pytest.raises(NotFound):
            VariantSelector(service).get_recommendation_variants("missing")

    def test_requires_two_variants(self, service):
        """Test that a single-variant experiment is rejected."""
        with pytest.raises(ValueError):
            VariantSelector(service, variants=(CONTROL,))

    def test_unknown_variant(self, service):
        """Test that unregistered variants are rejected at construction."""
        with pytest.raises(InvalidArgument):
            VariantSelector(service, variants=(CONTROL, "treatment-b"))

    def test_bundle_to_dict(self, service):
        """Test the serialized bundle."""
        bundle = VariantSelector(service, tracking_id_factory=sequential_ids()).get_recommendation_variants("r1")

        data = bundle.to_dict()

        assert data["tracking_id"] == "r1-t1"
        assert [v["name"] for v in data["variants"]] == [CONTROL, EXPERIMENTAL]
        assert "recommendations" in data["variants"][0]


class TestConversionAnalyzer:
    """Tests for ConversionAnalyzer."""

    @pytest.fixture
    def selector(self, service):
        return VariantSelector(service, tracking_id_factory=sequential_ids())

    def test_click_through_rates(self, selector):
        """Test attribution, deduplication and click-through rates."""
        analyzer = ConversionAnalyzer()
        bundle = selector.get_recommendation_variants("r1", limit=4)
        analyzer.record_impressions(bundle)

        clicks = [
            ClickEvent(bundle.tracking_id, CONTROL, "i2", buyer_id="b1"),
            ClickEvent(bundle.tracking_id, CONTROL, "i2", buyer_id="b1"),
            ClickEvent(bundle.tracking_id, EXPERIMENTAL, "i3", buyer_id="b2"),
            ClickEvent(bundle.tracking_id, EXPERIMENTAL, "i4", buyer_id="b3"),
            ClickEvent(bundle.tracking_id, CONTROL, "i1"),
            ClickEvent("unknown-tracking-id", CONTROL, "i2"),
        ]

        report = analyzer.analyze(clicks)

        control = report.variant_metrics[CONTROL]
        experimental = report.variant_metrics[EXPERIMENTAL]
        assert control.impressions == 4
        assert control.clicks == 1
        assert control.click_through_rate == pytest.approx(0.25)
        assert experimental.clicks == 2
        assert experimental.unique_buyers == 2
        assert experimental.click_through_rate == pytest.approx(0.5)
        assert report.unattributed_clicks == 2
        assert report.baseline == CONTROL
        assert report.challenger == EXPERIMENTAL
        assert report.relative_improvement == pytest.approx(1.0)
        assert not report.is_significant
        assert report.winner is None

    def test_no_clicks(self, selector):
        """Test a report with impressions but no clicks."""
        analyzer = ConversionAnalyzer()
        analyzer.record_impressions(selector.get_recommendation_variants("r1", limit=2))

        report = analyzer.analyze([])

        assert report.variant_metrics[CONTROL].clicks == 0
        assert report.variant_metrics[CONTROL].impressions == 2
        assert report.p_value == 1.0
        assert report.unattributed_clicks == 0

    def test_significant_difference(self, selector):
        """Test that a large click-through gap is reported as significant."""
        analyzer = ConversionAnalyzer(confidence_level=0.95)
        clicks = []

        for n in range(200):
            bundle = selector.get_recommendation_variants("r1", limit=4)
            analyzer.record_impressions(bundle)

            experimental_items = bundle.get_variant(EXPERIMENTAL).result.item_ids
            clicks.append(ClickEvent(bundle.tracking_id, EXPERIMENTAL, experimental_items[0]))
            if n % 20 == 0:
                control_items = bundle.get_variant(CONTROL).result.item_ids
                clicks.append(ClickEvent(bundle.tracking_id, CONTROL, control_items[0]))

        report = analyzer.analyze(clicks)

        assert report.variant_metrics[CONTROL].bundles == 200
        assert report.variant_metrics[EXPERIMENTAL].clicks == 200
        assert report.is_significant
        assert report.p_value < 0.05
        assert report.winner == EXPERIMENTAL
        assert report.z_score > 0

        low, high = report.variant_metrics[EXPERIMENTAL].ctr_confidence_interval
        assert low < 0.25 < high

    def test_report_to_dict(self, selector):
        """Test the serialized report."""
        analyzer = ConversionAnalyzer()
        analyzer.record_impressions(selector.get_recommendation_variants("r1"))

        data = analyzer.analyze([]).to_dict()

        assert set(data["variant_metrics"]) == {CONTROL, EXPERIMENTAL}
        assert data["confidence_level"] == 0.95
