"""
Monitoring module for recommendation experiments.

Provides the A/B harness that builds variant bundles and the
conversion analysis that compares variants from recorded clicks.
"""

from .ab_testing import (
    VariantSelector,
    ConversionAnalyzer,
    ConversionReport,
    VariantMetrics,
    generate_tracking_id,
)

__all__ = [
    "VariantSelector",
    "ConversionAnalyzer",
    "ConversionReport",
    "VariantMetrics",
    "generate_tracking_id",
]
