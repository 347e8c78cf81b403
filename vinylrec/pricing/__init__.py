"""
Pricing module.

Buy offers for seller submissions, list prices with margin protection,
and markdowns for aging inventory, all driven by a versioned policy.
"""

from .pricing_config import (
    ConditionGrade,
    MarketSource,
    BuyFormula,
    SellFormula,
    ConditionWeights,
    PricingPolicy,
)
from .market_data import MarketDataProvider, InMemoryMarketData, HybridMarketData
from .pricing_engine import PricingEngine, PriceQuote, MarkdownResult
from .quotes import (
    ItemStatus,
    SubmissionItemQuote,
    quote_submission_item,
    counter_offer,
    review_item,
    final_offer_price,
    submission_total,
    submission_status,
)

__all__ = [
    "ConditionGrade",
    "MarketSource",
    "BuyFormula",
    "SellFormula",
    "ConditionWeights",
    "PricingPolicy",
    "MarketDataProvider",
    "InMemoryMarketData",
    "HybridMarketData",
    "PricingEngine",
    "PriceQuote",
    "MarkdownResult",
    "ItemStatus",
    "SubmissionItemQuote",
    "quote_submission_item",
    "counter_offer",
    "review_item",
    "final_offer_price",
    "submission_total",
    "submission_status",
]
