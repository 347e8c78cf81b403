"""
A/B testing harness for recommendation variants.

VariantSelector builds side-by-side similar-item results for several
scoring variants and tags them with a tracking id. ConversionAnalyzer
joins recorded clicks back to the impressions of those bundles and
compares click-through rates between variants.
"""

import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..data.schemas import ClickEvent, VariantBundle, VariantRecommendations
from ..serving.recommendation_service import RecommendationService
from ..serving.scoring import CONTROL, EXPERIMENTAL, get_variant_weights
from ..utils.logging_utils import get_logger, request_context, timed

logger = get_logger(__name__)


def generate_tracking_id(reference_id: str) -> str:
    """Tracking id: the reference id plus a random UUID suffix.

    The random component keeps ids distinct for concurrent requests on
    the same release within one clock tick.
    """
    return f"{reference_id}-{uuid.uuid4().hex}"


class VariantSelector:
    """Builds A/B comparison bundles of similar-item recommendations.

    Example:
        >>> selector = VariantSelector(service)
        >>> bundle = selector.get_recommendation_variants("release-1", limit=5)
        >>> bundle.tracking_id
    """

    def __init__(
        self,
        service: RecommendationService,
        variants: Sequence[str] = (CONTROL, EXPERIMENTAL),
        tracking_id_factory: Callable[[str], str] = generate_tracking_id,
    ):
        """Initialize the variant selector.

        Args:
            service: Ranking pipeline to invoke once per variant.
            variants: Registered variant names, in presentation order.
            tracking_id_factory: Builds a tracking id from a release id.
        """
        if len(variants) < 2:
            raise ValueError("At least two variants are required for an A/B bundle")
        for name in variants:
            get_variant_weights(name)

        self.service = service
        self.variants = tuple(variants)
        self._tracking_id_factory = tracking_id_factory

    def get_recommendation_variants(self, release_id: str, limit: int = 5) -> VariantBundle:
        """Get similar items for every variant of the experiment.

        Args:
            release_id: Reference release id.
            limit: Recommendations per variant.

        Returns:
            VariantBundle with one entry per variant and a fresh tracking id.
        """
        with request_context(operation="recommendation-variants"):
            logger.debug(f"Generating A/B test variants for {release_id}")

            entries = []
            for name in self.variants:
                weights = get_variant_weights(name)
                result = self.service.get_similar_items(release_id, limit=limit, variant=name)
                entries.append(
                    VariantRecommendations(
                        name=name,
                        description=weights.description,
                        algorithm=weights.algorithm_label,
                        result=result,
                    )
                )

            return VariantBundle(
                reference_id=release_id,
                tracking_id=self._tracking_id_factory(release_id),
                variants=tuple(entries),
            )


@dataclass
class VariantMetrics:
    """Conversion metrics for a single variant."""

    variant_name: str
    bundles: int = 0
    impressions: int = 0
    clicks: int = 0
    unique_buyers: int = 0
    click_through_rate: float = 0.0

    ctr_std_error: float = 0.0
    ctr_confidence_interval: Tuple[float, float] = (0.0, 0.0)

    def to_dict(self) -> Dict:
        return {
            "variant_name": self.variant_name,
            "bundles": self.bundles,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "unique_buyers": self.unique_buyers,
            "click_through_rate": self.click_through_rate,
            "ctr_std_error": self.ctr_std_error,
            "ctr_confidence_interval": self.ctr_confidence_interval,
        }


@dataclass
class ConversionReport:
    """Per-variant conversion metrics with a significance test."""

    generated_at: str
    variant_metrics: Dict[str, VariantMetrics] = field(default_factory=dict)
    unattributed_clicks: int = 0

    # Two-proportion z-test between the first two variants
    baseline: Optional[str] = None
    challenger: Optional[str] = None
    z_score: float = 0.0
    p_value: float = 1.0
    relative_improvement: float = 0.0
    is_significant: bool = False
    winner: Optional[str] = None
    confidence_level: float = 0.95

    def to_dict(self) -> Dict:
        return {
            "generated_at": self.generated_at,
            "variant_metrics": {k: v.to_dict() for k, v in self.variant_metrics.items()},
            "unattributed_clicks": self.unattributed_clicks,
            "baseline": self.baseline,
            "challenger": self.challenger,
            "z_score": self.z_score,
            "p_value": self.p_value,
            "relative_improvement": self.relative_improvement,
            "is_significant": self.is_significant,
            "winner": self.winner,
            "confidence_level": self.confidence_level,
        }


class ConversionAnalyzer:
    """Computes click-through rates per variant from bundles and clicks.

    An impression is one recommended item shown under one variant of a
    bundle. A conversion is a distinct (tracking id, variant, item)
    click on an item that bundle actually showed; clicks that cannot be
    joined to a recorded bundle are reported as unattributed.
    """

    def __init__(self, confidence_level: float = 0.95):
        self.confidence_level = confidence_level
        self._shown: Dict[Tuple[str, str], frozenset] = {}
        self._variant_order: List[str] = []
        self._lock = threading.Lock()

    def record_impressions(self, bundle: VariantBundle) -> None:
        """Remember what a bundle showed under each variant."""
        with self._lock:
            for entry in bundle.variants:
                self._shown[(bundle.tracking_id, entry.name)] = frozenset(entry.result.item_ids)
                if entry.name not in self._variant_order:
                    self._variant_order.append(entry.name)

    @timed(logger, name="conversion_analysis")
    def analyze(self, clicks: Iterable[ClickEvent]) -> ConversionReport:
        """Analyze recorded clicks against recorded impressions.

        Args:
            clicks: Click events (typically ClickRecorder.get_clicks()).

        Returns:
            ConversionReport.
        """
        with self._lock:
            shown = dict(self._shown)
            variant_order = list(self._variant_order)

        report = ConversionReport(
            generated_at=datetime.utcnow().isoformat(),
            confidence_level=self.confidence_level,
        )

        bundles: Dict[str, int] = defaultdict(int)
        impressions: Dict[str, int] = defaultdict(int)
        for (_, variant), items in shown.items():
            bundles[variant] += 1
            impressions[variant] += len(items)

        df = pd.DataFrame(
            [c.to_dict() for c in clicks],
            columns=["tracking_id", "variant_name", "item_id", "buyer_id", "recorded_at"],
        )
        if not df.empty:
            attributed = df.apply(
                lambda row: row["item_id"] in shown.get((row["tracking_id"], row["variant_name"]), ()),
                axis=1,
            )
            report.unattributed_clicks = int((~attributed).sum())
            df = df[attributed].drop_duplicates(subset=["tracking_id", "variant_name", "item_id"])

        clicks_by_variant = df.groupby("variant_name").size() if not df.empty else pd.Series(dtype=int)
        buyers_by_variant = (
            df.groupby("variant_name")["buyer_id"].nunique() if not df.empty else pd.Series(dtype=int)
        )

        for variant in variant_order:
            metrics = VariantMetrics(
                variant_name=variant,
                bundles=bundles[variant],
                impressions=impressions[variant],
                clicks=int(clicks_by_variant.get(variant, 0)),
                unique_buyers=int(buyers_by_variant.get(variant, 0)),
            )
            self._compute_rate(metrics)
            report.variant_metrics[variant] = metrics

        if len(variant_order) >= 2:
            self._compare(report, variant_order[0], variant_order[1])

        return report

    @staticmethod
    def _compute_rate(metrics: VariantMetrics) -> None:
        if metrics.impressions == 0:
            return

        p = metrics.clicks / metrics.impressions
        n = metrics.impressions
        metrics.click_through_rate = p
        metrics.ctr_std_error = float(np.sqrt(p * (1 - p) / n))

        margin = 1.96 * metrics.ctr_std_error
        metrics.ctr_confidence_interval = (max(0.0, p - margin), min(1.0, p + margin))

    def _compare(self, report: ConversionReport, baseline: str, challenger: str) -> None:
        """Two-proportion z-test of challenger against baseline."""
        report.baseline = baseline
        report.challenger = challenger

        control = report.variant_metrics[baseline]
        treatment = report.variant_metrics[challenger]
        n1, n2 = control.impressions, treatment.impressions
        if n1 == 0 or n2 == 0:
            return

        p1 = control.click_through_rate
        p2 = treatment.click_through_rate
        p_pool = (control.clicks + treatment.clicks) / (n1 + n2)
        se = np.sqrt(p_pool * (1 - p_pool) * (1 / n1 + 1 / n2))

        if p1 > 0:
            report.relative_improvement = (p2 - p1) / p1
        if se <= 0:
            return

        from scipy import stats

        report.z_score = float((p2 - p1) / se)
        report.p_value = float(2 * (1 - stats.norm.cdf(abs(report.z_score))))
        report.is_significant = report.p_value < (1 - self.confidence_level)
        if report.is_significant:
            report.winner = challenger if p2 > p1 else baseline
