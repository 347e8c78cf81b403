"""
Pricing engine for buy offers, list prices and markdowns.

Buy price:  market stat x buy_percentage x condition blend, rounded and
            clamped to the buy floor/ceiling.
Sell price: market stat x sell_percentage x condition blend, rounded,
            raised to the minimum profit margin over cost basis, then
            clamped to the sell floor/ceiling.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .market_data import HybridMarketData, MarketDataProvider
from .pricing_config import ConditionGrade, MarketSource, PricingPolicy
from ..serving.errors import InvalidArgument, NotFound, RecommendationError, UpstreamFailure
from ..utils.logging_utils import get_logger, log_extra

logger = get_logger(__name__)

Grade = Union[ConditionGrade, str]


def _money(value: float) -> float:
    return round(value, 2)


@dataclass(frozen=True)
class PriceQuote:
    """A computed price with the steps that produced it."""

    price: float
    breakdown: Dict[str, Any] = field(default_factory=dict)
    policy_used: str = "default"
    margin_percent: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "price": self.price,
            "breakdown": dict(self.breakdown),
            "policy_used": self.policy_used,
        }
        if self.margin_percent is not None:
            result["margin_percent"] = self.margin_percent
        return result


@dataclass(frozen=True)
class MarkdownResult:
    """Outcome of applying the markdown schedule to a listing."""

    new_price: float
    discount_percent: float
    days_listed: int
    original_price: float
    margin_protected: bool


class PricingEngine:
    """Computes buy offers, sell prices and markdowns under a pricing policy.

    Example:
        >>> engine = PricingEngine(InMemoryMarketData())
        >>> quote = engine.calculate_buy_price("release-1", "NM", "VG_PLUS")
        >>> quote.price
    """

    def __init__(
        self,
        market_data: MarketDataProvider,
        policy: Optional[PricingPolicy] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.market = HybridMarketData(market_data)
        self.policy = policy or PricingPolicy()
        self._clock = clock

    def apply_condition_curve(
        self,
        base_price: float,
        media_condition: Grade,
        sleeve_condition: Grade,
        policy: Optional[PricingPolicy] = None,
    ) -> float:
        """Blend the media and sleeve multipliers by the policy weights."""
        policy = policy or self.policy
        media = ConditionGrade.parse(media_condition)
        sleeve = ConditionGrade.parse(sleeve_condition)

        media_adjustment = base_price * policy.multiplier(media) * policy.weights.media
        sleeve_adjustment = base_price * policy.multiplier(sleeve) * policy.weights.sleeve
        return media_adjustment + sleeve_adjustment

    @staticmethod
    def round_to_increment(price: float, increment: float = 0.25) -> float:
        """Round half-up to the nearest increment; non-positive increments are a no-op."""
        if increment <= 0:
            return price
        return math.floor(price / increment + 0.5) * increment

    @staticmethod
    def apply_floor_and_ceiling(price: float, floor: float, ceiling: float) -> float:
        if price < floor:
            return floor
        if price > ceiling:
            return ceiling
        return price

    @staticmethod
    def calculate_profit_margin(sell_price: float, cost_basis: float) -> float:
        """Profit margin as a percentage of cost basis."""
        if cost_basis <= 0:
            return 0.0
        return (sell_price - cost_basis) / cost_basis * 100

    def validate_minimum_margin(self, sell_price: float, cost_basis: float, min_margin: float = 0.30) -> bool:
        return self.calculate_profit_margin(sell_price, cost_basis) >= min_margin * 100

    def _market_stat(self, release_id: str, policy: PricingPolicy, source, statistic) -> Dict[str, Any]:
        source = MarketSource(source or policy.market_source)
        statistic = statistic or policy.market_statistic
        stat = self.market.get_market_stat(release_id, source, statistic)
        if stat is None:
            raise NotFound(
                "Market data not available for pricing",
                details={"release_id": release_id, "market_source": source.value},
            )
        return {"market_stat": stat, "market_source": source.value, "market_statistic": statistic}

    def calculate_buy_price(
        self,
        release_id: str,
        media_condition: Grade,
        sleeve_condition: Grade,
        policy: Optional[PricingPolicy] = None,
        market_source: Optional[MarketSource] = None,
        market_statistic: Optional[str] = None,
    ) -> PriceQuote:
        """Calculate the offer price for a seller's copy.

        Args:
            release_id: Catalog release id.
            media_condition: Grade of the record itself.
            sleeve_condition: Grade of the sleeve.
            policy: Policy override; the engine policy when omitted.
            market_source: Source override.
            market_statistic: Statistic override.

        Returns:
            PriceQuote with a step-by-step breakdown.

        Raises:
            InvalidArgument: Unknown condition grade.
            NotFound: No market data for the release.
            UpstreamFailure: Any other failure while pricing.
        """
        policy = policy or self.policy
        media = ConditionGrade.parse(media_condition)
        sleeve = ConditionGrade.parse(sleeve_condition)
        formula = policy.buy_formula

        try:
            market = self._market_stat(release_id, policy, market_source, market_statistic)
            base_offer = market["market_stat"] * formula.buy_percentage
            adjusted = self.apply_condition_curve(base_offer, media, sleeve, policy)
            rounded = self.round_to_increment(adjusted, formula.round_increment)
            final = self.apply_floor_and_ceiling(rounded, formula.floor, formula.ceiling)
        except RecommendationError:
            raise
        except Exception as e:
            log_extra(logger, logging.ERROR, "Buy price calculation failed", release_id=release_id, error=str(e))
            raise UpstreamFailure("Failed to calculate buy price", details={"release_id": release_id}) from e

        log_extra(
            logger,
            logging.DEBUG,
            "Buy price calculated",
            release_id=release_id,
            media=media.value,
            sleeve=sleeve.value,
            market_stat=market["market_stat"],
            final_price=final,
        )

        breakdown = dict(market)
        breakdown.update(
            {
                "base_offer": _money(base_offer),
                "media_condition": media.value,
                "sleeve_condition": sleeve.value,
                "media_adjustment": _money(base_offer * policy.multiplier(media) * policy.weights.media),
                "sleeve_adjustment": _money(base_offer * policy.multiplier(sleeve) * policy.weights.sleeve),
                "before_rounding": _money(adjusted),
                "after_rounding": _money(rounded),
                "floor_applied": final == formula.floor,
                "ceiling_applied": final == formula.ceiling,
            }
        )
        return PriceQuote(price=_money(final), breakdown=breakdown, policy_used=policy.label)

    def calculate_sell_price(
        self,
        release_id: str,
        media_condition: Grade,
        sleeve_condition: Grade,
        cost_basis: float,
        policy: Optional[PricingPolicy] = None,
        market_source: Optional[MarketSource] = None,
        market_statistic: Optional[str] = None,
    ) -> PriceQuote:
        """Calculate the list price for an inventory item.

        The price never falls below cost_basis x (1 + min_profit_margin)
        before the floor and ceiling are applied.

        Raises:
            InvalidArgument: Non-positive cost basis or unknown grade.
            NotFound: No market data for the release.
            UpstreamFailure: Any other failure while pricing.
        """
        if cost_basis is None or cost_basis <= 0:
            raise InvalidArgument(
                "Valid cost basis is required for sell price calculation",
                details={"cost_basis": cost_basis},
            )

        policy = policy or self.policy
        media = ConditionGrade.parse(media_condition)
        sleeve = ConditionGrade.parse(sleeve_condition)
        formula = policy.sell_formula

        try:
            market = self._market_stat(release_id, policy, market_source, market_statistic)
            list_suggestion = market["market_stat"] * formula.sell_percentage
            adjusted = self.apply_condition_curve(list_suggestion, media, sleeve, policy)
            rounded = self.round_to_increment(adjusted, formula.round_increment)

            min_acceptable = cost_basis * (1 + formula.min_profit_margin)
            if rounded < min_acceptable:
                rounded = min_acceptable

            final = self.apply_floor_and_ceiling(rounded, formula.floor, formula.ceiling)
            margin_percent = self.calculate_profit_margin(final, cost_basis)
        except RecommendationError:
            raise
        except Exception as e:
            log_extra(logger, logging.ERROR, "Sell price calculation failed", release_id=release_id, error=str(e))
            raise UpstreamFailure("Failed to calculate sell price", details={"release_id": release_id}) from e

        log_extra(
            logger,
            logging.DEBUG,
            "Sell price calculated",
            release_id=release_id,
            cost_basis=cost_basis,
            market_stat=market["market_stat"],
            final_price=final,
            margin_percent=margin_percent,
        )

        breakdown = dict(market)
        breakdown.update(
            {
                "cost_basis": _money(cost_basis),
                "list_suggestion": _money(list_suggestion),
                "media_condition": media.value,
                "sleeve_condition": sleeve.value,
                "before_rounding": _money(adjusted),
                "min_acceptable_price": _money(min_acceptable),
                "min_margin_met": final >= min_acceptable,
                "after_rounding": _money(rounded),
                "floor_applied": final == formula.floor,
                "ceiling_applied": final == formula.ceiling,
            }
        )
        return PriceQuote(
            price=_money(final),
            breakdown=breakdown,
            policy_used=policy.label,
            margin_percent=_money(margin_percent),
        )

    def calculate_markdown(
        self,
        current_price: float,
        listed_at: datetime,
        cost_basis: float,
        markdown_schedule: Optional[Mapping[int, float]] = None,
    ) -> MarkdownResult:
        """Apply the highest markdown step the listing age has reached.

        Args:
            current_price: Current list price.
            listed_at: When the item went live.
            cost_basis: What was paid for the item.
            markdown_schedule: Days listed -> discount fraction override.

        Returns:
            MarkdownResult; the new price never exceeds the current price.
        """
        if current_price is None or current_price <= 0:
            raise InvalidArgument("Valid current price is required", details={"current_price": current_price})
        if not isinstance(listed_at, datetime):
            raise InvalidArgument("Valid listed_at datetime is required", details={"listed_at": listed_at})

        days_listed = max((self._clock() - listed_at).days, 0)
        schedule = markdown_schedule if markdown_schedule is not None else self.policy.markdown_schedule

        discount = 0.0
        for threshold in sorted(schedule, reverse=True):
            if days_listed >= int(threshold):
                discount = schedule[threshold]
                break

        new_price = min(current_price * (1 - discount), current_price)

        return MarkdownResult(
            new_price=_money(new_price),
            discount_percent=round(discount * 100, 1),
            days_listed=days_listed,
            original_price=_money(current_price),
            margin_protected=new_price >= cost_basis,
        )
