"""
Unit tests for the pricing engine, pricing policies and submission quotes.
"""

from datetime import datetime, timedelta

import pytest

from vinylrec.config.settings import PricingSettings
from vinylrec.pricing import (
    BuyFormula,
    ConditionGrade,
    ConditionWeights,
    HybridMarketData,
    InMemoryMarketData,
    ItemStatus,
    MarketDataProvider,
    MarketSource,
    PricingEngine,
    PricingPolicy,
    counter_offer,
    final_offer_price,
    quote_submission_item,
    review_item,
    submission_status,
    submission_total,
)
from vinylrec.serving.errors import InvalidArgument, NotFound


NOW = datetime(2024, 6, 1, 12, 0, 0)


class FlakyEbay(MarketDataProvider):
    """Discogs answers, eBay raises."""

    def get_price_statistics(self, release_id, source):
        if source == MarketSource.EBAY:
            raise TimeoutError("eBay timed out")
        return {"low": 20.0, "median": 40.0, "high": 80.0}


@pytest.fixture
def market():
    market = InMemoryMarketData()
    market.set_statistics(MarketSource.DISCOGS, "r1", low=20.0, median=40.0, high=80.0)
    market.set_statistics(MarketSource.EBAY, "r1", low=30.0, median=60.0, high=90.0)
    market.set_statistics(MarketSource.DISCOGS, "r-discogs-only", median=40.0)
    market.set_statistics(MarketSource.DISCOGS, "r-cheap", median=5.0)
    market.set_statistics(MarketSource.DISCOGS, "r-rare", median=2000.0)
    return market


@pytest.fixture
def engine(market):
    return PricingEngine(market, clock=lambda: NOW)


class TestPricingPolicy:
    """Tests for PricingPolicy."""

    def test_defaults(self):
        """Test default formulas, curve and weights."""
        policy = PricingPolicy()

        assert policy.buy_formula.buy_percentage == 0.55
        assert policy.buy_formula.floor == 5.0
        assert policy.sell_formula.sell_percentage == 1.25
        assert policy.sell_formula.ceiling == 999.99
        assert policy.multiplier(ConditionGrade.VG_PLUS) == 0.85
        assert policy.weights.media == 0.6
        assert policy.markdown_schedule == {30: 0.10, 60: 0.20}
        assert policy.label == "default@v1"

    def test_from_dict(self):
        """Test building a stored policy with partial nested formulas."""
        policy = PricingPolicy.from_dict({
            "policy_id": "summer-sale",
            "version": 3,
            "buy_formula": {"buy_percentage": 0.5},
            "condition_curve": {"NM": 0.95},
            "markdown_schedule": {"14": 0.05},
            "market_source": "DISCOGS",
        })

        assert policy.label == "summer-sale@v3"
        assert policy.buy_formula.buy_percentage == 0.5
        assert policy.buy_formula.ceiling == 500.0
        assert policy.multiplier(ConditionGrade.NM) == 0.95
        assert policy.multiplier(ConditionGrade.MINT) == 1.0
        assert policy.markdown_schedule == {14: 0.05}
        assert policy.market_source is MarketSource.DISCOGS

    def test_to_dict_reloads(self):
        """Test that a serialized policy loads back unchanged."""
        policy = PricingPolicy(policy_id="p", version=2)

        assert PricingPolicy.from_dict(policy.to_dict()) == policy

    @pytest.mark.parametrize(
        "data",
        [
            {"policy_id": "p", "discount": 0.1},
            {"buy_formula": {"buy_pct": 0.5}},
            {"weights": {"media": 0.5, "cover": 0.5}},
        ],
    )
    def test_unknown_fields_rejected(self, data):
        """Test that unknown keys are rejected at every level."""
        with pytest.raises(InvalidArgument):
            PricingPolicy.from_dict(data)

    def test_invalid_condition_in_curve(self):
        """Test that unknown grades in a curve are rejected."""
        with pytest.raises(InvalidArgument):
            PricingPolicy.from_dict({"condition_curve": {"EXCELLENT": 0.9}})

    def test_weights_must_sum_to_one(self):
        """Test weight validation."""
        with pytest.raises(InvalidArgument):
            PricingPolicy(weights=ConditionWeights(media=0.7, sleeve=0.4))

    def test_unknown_statistic(self):
        """Test statistic validation."""
        with pytest.raises(InvalidArgument):
            PricingPolicy(market_statistic="mean")

    def test_from_settings(self):
        """Test building the default policy from settings."""
        policy = PricingPolicy.from_settings(PricingSettings(market_source="EBAY", market_statistic="low"))

        assert policy.market_source is MarketSource.EBAY
        assert policy.market_statistic == "low"


class TestHybridMarketData:
    """Tests for market statistic resolution."""

    def test_hybrid_average(self, market):
        """Test averaging Discogs and eBay."""
        assert HybridMarketData(market).get_market_stat("r1") == 50.0

    def test_hybrid_fallback(self, market):
        """Test falling back to the only available source."""
        assert HybridMarketData(market).get_market_stat("r-discogs-only") == 40.0

    def test_single_source(self, market):
        """Test reading one marketplace."""
        data = HybridMarketData(market)

        assert data.get_market_stat("r1", MarketSource.EBAY, "high") == 90.0
        assert data.get_market_stat("r1", MarketSource.DISCOGS, "LOW") == 20.0

    def test_provider_error_treated_as_missing(self):
        """Test that a failing marketplace does not fail the lookup."""
        data = HybridMarketData(FlakyEbay())

        assert data.get_market_stat("r1") == 40.0
        assert data.get_market_stat("r1", MarketSource.EBAY) is None

    def test_no_data(self, market):
        """Test a release without market data."""
        assert HybridMarketData(market).get_market_stat("unknown") is None

    def test_unknown_statistic(self, market):
        """Test statistic validation."""
        with pytest.raises(ValueError):
            HybridMarketData(market).get_market_stat("r1", statistic="mean")


class TestPricingArithmetic:
    """Tests for the pricing building blocks."""

    @pytest.mark.parametrize(
        "media,sleeve,expected",
        [
            ("MINT", "MINT", 110.0),
            ("NM", "NM", 100.0),
            ("VG", "VG", 60.0),
            ("POOR", "POOR", 10.0),
            ("NM", "VG_PLUS", 94.0),
            ("MINT", "POOR", 70.0),
        ],
    )
    def test_condition_curve(self, engine, media, sleeve, expected):
        """Test the weighted media/sleeve blend."""
        assert engine.apply_condition_curve(100, media, sleeve) == pytest.approx(expected)

    def test_round_to_increment(self, engine):
        """Test half-up rounding to quarter increments."""
        assert engine.round_to_increment(25.85, 0.25) == pytest.approx(25.75)
        assert engine.round_to_increment(10.125, 0.25) == pytest.approx(10.25)
        assert engine.round_to_increment(10.1, 0) == 10.1

    def test_floor_and_ceiling(self, engine):
        """Test clamping."""
        assert engine.apply_floor_and_ceiling(2, 5, 500) == 5
        assert engine.apply_floor_and_ceiling(600, 5, 500) == 500
        assert engine.apply_floor_and_ceiling(42, 5, 500) == 42

    def test_profit_margin(self, engine):
        """Test margin percentage and minimum margin validation."""
        assert engine.calculate_profit_margin(15, 10) == pytest.approx(50.0)
        assert engine.calculate_profit_margin(15, 0) == 0.0
        assert engine.validate_minimum_margin(13.5, 10)
        assert not engine.validate_minimum_margin(12.9, 10)


class TestBuyPrice:
    """Tests for calculate_buy_price."""

    def test_breakdown(self, engine):
        """Test the offer and its breakdown."""
        quote = engine.calculate_buy_price("r1", "NM", "VG_PLUS")

        assert quote.price == 25.75
        assert quote.policy_used == "default@v1"
        assert quote.breakdown["market_stat"] == 50.0
        assert quote.breakdown["market_source"] == "HYBRID"
        assert quote.breakdown["base_offer"] == 27.5
        assert quote.breakdown["media_adjustment"] == 16.5
        assert quote.breakdown["sleeve_adjustment"] == 9.35
        assert quote.breakdown["before_rounding"] == 25.85
        assert quote.breakdown["after_rounding"] == 25.75
        assert quote.breakdown["floor_applied"] is False
        assert quote.breakdown["ceiling_applied"] is False

    def test_floor(self, engine):
        """Test that cheap releases are offered the floor."""
        quote = engine.calculate_buy_price("r-cheap", "NM", "NM")

        assert quote.price == 5.0
        assert quote.breakdown["floor_applied"] is True

    def test_ceiling(self, engine):
        """Test that rare releases are capped at the ceiling."""
        quote = engine.calculate_buy_price("r-rare", "NM", "NM")

        assert quote.price == 500.0
        assert quote.breakdown["ceiling_applied"] is True

    def test_source_override(self, engine):
        """Test pricing from a single marketplace."""
        quote = engine.calculate_buy_price("r1", ConditionGrade.NM, ConditionGrade.NM, market_source=MarketSource.EBAY)

        assert quote.breakdown["market_stat"] == 60.0
        assert quote.price == 33.0

    def test_policy_override(self, engine):
        """Test pricing under a different policy."""
        policy = PricingPolicy(policy_id="lean", buy_formula=BuyFormula(buy_percentage=0.4))

        quote = engine.calculate_buy_price("r1", "NM", "NM", policy=policy)

        assert quote.price == 20.0
        assert quote.policy_used == "lean@v1"

    def test_missing_market_data(self, engine):
        """Test NotFound without market data."""
        with pytest.raises(NotFound):
            engine.calculate_buy_price("unknown", "NM", "NM")

    def test_invalid_condition(self, engine):
        """Test InvalidArgument for an unknown grade."""
        with pytest.raises(InvalidArgument) as exc_info:
            engine.calculate_buy_price("r1", "EXCELLENT", "NM")

        assert "Must be one of" in exc_info.value.message


class TestSellPrice:
    """Tests for calculate_sell_price."""

    def test_market_price_above_margin(self, engine):
        """Test a list price driven by the market."""
        quote = engine.calculate_sell_price("r1", "NM", "NM", cost_basis=10)

        assert quote.price == 62.5
        assert quote.margin_percent == 525.0
        assert quote.breakdown["min_acceptable_price"] == 13.0
        assert quote.breakdown["min_margin_met"] is True

    def test_minimum_margin_enforced(self, engine):
        """Test that the list price is raised to the minimum margin."""
        quote = engine.calculate_sell_price("r1", "NM", "NM", cost_basis=50)

        assert quote.price == 65.0
        assert quote.margin_percent == 30.0

    def test_ceiling(self, engine):
        """Test the sell ceiling."""
        quote = engine.calculate_sell_price("r1", "NM", "NM", cost_basis=1000)

        assert quote.price == 999.99
        assert quote.breakdown["ceiling_applied"] is True

    @pytest.mark.parametrize("cost_basis", [0, -5, None])
    def test_invalid_cost_basis(self, engine, cost_basis):
        """Test cost basis validation."""
        with pytest.raises(InvalidArgument):
            engine.calculate_sell_price("r1", "NM", "NM", cost_basis=cost_basis)

    def test_missing_market_data(self, engine):
        """Test NotFound without market data."""
        with pytest.raises(NotFound):
            engine.calculate_sell_price("unknown", "NM", "NM", cost_basis=10)


class TestMarkdown:
    """Tests for calculate_markdown."""

    def test_no_markdown_before_first_step(self, engine):
        """Test a fresh listing."""
        result = engine.calculate_markdown(20.0, NOW - timedelta(days=10), cost_basis=15)

        assert result.new_price == 20.0
        assert result.discount_percent == 0.0
        assert result.days_listed == 10

    def test_first_step(self, engine):
        """Test the 30 day markdown."""
        result = engine.calculate_markdown(20.0, NOW - timedelta(days=45), cost_basis=15)

        assert result.new_price == 18.0
        assert result.discount_percent == 10.0
        assert result.margin_protected is True

    def test_highest_step_applies(self, engine):
        """Test that the 60 day step wins over the 30 day step."""
        result = engine.calculate_markdown(20.0, NOW - timedelta(days=61), cost_basis=17)

        assert result.new_price == 16.0
        assert result.discount_percent == 20.0
        assert result.margin_protected is False
        assert result.original_price == 20.0

    def test_custom_schedule(self, engine):
        """Test an explicit schedule."""
        result = engine.calculate_markdown(20.0, NOW - timedelta(days=8), cost_basis=5, markdown_schedule={7: 0.5})

        assert result.new_price == 10.0

    def test_future_listing(self, engine):
        """Test that a listing date in the future counts as day 0."""
        result = engine.calculate_markdown(20.0, NOW + timedelta(days=3), cost_basis=5)

        assert result.days_listed == 0
        assert result.new_price == 20.0

    def test_invalid_inputs(self, engine):
        """Test price and date validation."""
        with pytest.raises(InvalidArgument):
            engine.calculate_markdown(0, NOW, cost_basis=5)
        with pytest.raises(InvalidArgument):
            engine.calculate_markdown(20.0, "2024-01-01", cost_basis=5)


class TestSubmissionQuotes:
    """Tests for seller submission quotes."""

    def test_auto_offer(self, engine):
        """Test the automatic offer for a priced item."""
        quote = quote_submission_item(engine, "s1", "r1", "NM", "VG_PLUS", quantity=2)

        assert quote.auto_offer_price == 51.5
        assert quote.status is ItemStatus.QUOTED
        assert quote.policy_used == "default@v1"
        assert final_offer_price(quote) == 51.5

    def test_unpriced_item_needs_review(self, engine):
        """Test that missing market data flags the item instead of failing."""
        quote = quote_submission_item(engine, "s2", "unknown", "VG", "VG")

        assert quote.auto_offer_price == 0.0
        assert quote.status is ItemStatus.NEEDS_REVIEW

    def test_invalid_quantity(self, engine):
        """Test quantity validation."""
        with pytest.raises(InvalidArgument):
            quote_submission_item(engine, "s1", "r1", "NM", "NM", quantity=0)

    def test_counter_offer(self, engine):
        """Test that a counter-offer replaces the auto-offer."""
        quote = quote_submission_item(engine, "s1", "r1", "NM", "NM")

        countered = counter_offer(quote, 40)

        assert countered.status is ItemStatus.COUNTER_OFFERED
        assert final_offer_price(countered) == 40.0
        assert quote.counter_offer_price is None

    def test_counter_offer_validation(self, engine):
        """Test negative prices and reviewed items are rejected."""
        quote = quote_submission_item(engine, "s1", "r1", "NM", "NM")

        with pytest.raises(InvalidArgument):
            counter_offer(quote, -1)
        with pytest.raises(InvalidArgument):
            counter_offer(review_item(quote, "accept"), 10)

    def test_review(self, engine):
        """Test accepting and rejecting offers."""
        quote = quote_submission_item(engine, "s1", "r1", "NM", "NM")

        accepted = review_item(counter_offer(quote, 40), "accept")
        rejected = review_item(quote, "reject")

        assert accepted.status is ItemStatus.ACCEPTED
        assert accepted.final_offer == 40.0
        assert rejected.final_offer == 0.0
        with pytest.raises(InvalidArgument):
            review_item(quote, "maybe")

    def test_submission_total_and_status(self, engine):
        """Test totals and overall status across items."""
        first = quote_submission_item(engine, "s1", "r1", "NM", "NM")
        second = quote_submission_item(engine, "s2", "r-discogs-only", "NM", "NM")

        assert submission_total([first, second]) == 27.5 + 22.0
        assert submission_status([first, second]) == "PENDING_REVIEW"

        reviewed = [review_item(first, "accept"), review_item(second, "reject")]
        assert submission_total(reviewed) == 27.5
        assert submission_status(reviewed) == "PARTIALLY_ACCEPTED"
        assert submission_status([review_item(first, "accept")]) == "ACCEPTED"
        assert submission_status([review_item(first, "reject")]) == "REJECTED"

    def test_to_dict(self, engine):
        """Test the serialized quote."""
        data = quote_submission_item(engine, "s1", "r1", "NM", "VG").to_dict()

        assert data["status"] == "QUOTED"
        assert data["media_condition"] == "NM"
