"""
Pricing policy configuration.

A pricing policy is a versioned record holding the buy formula (offers
to sellers), the sell formula (list prices), the condition curve and
the media/sleeve weights used to blend the two condition grades.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Mapping, Union

from ..config.settings import PricingSettings
from ..serving.errors import InvalidArgument


class ConditionGrade(str, Enum):
    """Goldmine-style grading for media and sleeves."""

    MINT = "MINT"
    NM = "NM"
    VG_PLUS = "VG_PLUS"
    VG = "VG"
    VG_MINUS = "VG_MINUS"
    G = "G"
    FAIR = "FAIR"
    POOR = "POOR"

    @classmethod
    def parse(cls, value: Union["ConditionGrade", str]) -> "ConditionGrade":
        """Parse a grade, raising InvalidArgument for unknown values."""
        if isinstance(value, ConditionGrade):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(g.value for g in cls)
            raise InvalidArgument(
                f"Invalid condition: {value}. Must be one of: {valid}",
                details={"condition": value},
            ) from None


class MarketSource(str, Enum):
    """Where market price statistics come from."""

    DISCOGS = "DISCOGS"
    EBAY = "EBAY"
    HYBRID = "HYBRID"


MARKET_STATISTICS = ("low", "median", "high")

DEFAULT_CONDITION_CURVE: Dict[ConditionGrade, float] = {
    ConditionGrade.MINT: 1.1,
    ConditionGrade.NM: 1.0,
    ConditionGrade.VG_PLUS: 0.85,
    ConditionGrade.VG: 0.6,
    ConditionGrade.VG_MINUS: 0.45,
    ConditionGrade.G: 0.3,
    ConditionGrade.FAIR: 0.2,
    ConditionGrade.POOR: 0.1,
}

# Days listed -> discount fraction
DEFAULT_MARKDOWN_SCHEDULE: Dict[int, float] = {30: 0.10, 60: 0.20}


def _reject_unknown(cls: type, data: Mapping[str, Any]) -> None:
    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise InvalidArgument(
            f"Unknown field(s) for {cls.__name__}: {', '.join(unknown)}",
            details={"unknown": unknown},
        )


@dataclass(frozen=True)
class BuyFormula:
    """Offer price = market stat x buy_percentage x condition blend."""

    buy_percentage: float = 0.55
    round_increment: float = 0.25
    floor: float = 5.0
    ceiling: float = 500.0


@dataclass(frozen=True)
class SellFormula:
    """List price = market stat x sell_percentage x condition blend, margin protected."""

    sell_percentage: float = 1.25
    min_profit_margin: float = 0.30
    round_increment: float = 0.25
    floor: float = 10.0
    ceiling: float = 999.99


@dataclass(frozen=True)
class ConditionWeights:
    """Weights blending the media and sleeve grade multipliers."""

    media: float = 0.6
    sleeve: float = 0.4


@dataclass(frozen=True)
class PricingPolicy:
    """A versioned pricing policy."""

    policy_id: str = "default"
    version: int = 1
    buy_formula: BuyFormula = field(default_factory=BuyFormula)
    sell_formula: SellFormula = field(default_factory=SellFormula)
    condition_curve: Dict[ConditionGrade, float] = field(
        default_factory=lambda: dict(DEFAULT_CONDITION_CURVE)
    )
    weights: ConditionWeights = field(default_factory=ConditionWeights)
    markdown_schedule: Dict[int, float] = field(
        default_factory=lambda: dict(DEFAULT_MARKDOWN_SCHEDULE)
    )
    market_source: MarketSource = MarketSource.HYBRID
    market_statistic: str = "median"

    def __post_init__(self):
        if self.market_statistic not in MARKET_STATISTICS:
            raise InvalidArgument(
                f"market_statistic must be one of: {', '.join(MARKET_STATISTICS)}",
                details={"market_statistic": self.market_statistic},
            )
        if abs(self.weights.media + self.weights.sleeve - 1.0) > 0.01:
            raise InvalidArgument(
                "Condition weights must sum to 1.0",
                details={"media": self.weights.media, "sleeve": self.weights.sleeve},
            )

    @property
    def label(self) -> str:
        return f"{self.policy_id}@v{self.version}"

    def multiplier(self, grade: ConditionGrade) -> float:
        """Condition curve multiplier; grades missing from the curve count as 1.0."""
        return self.condition_curve.get(grade, 1.0)

    @classmethod
    def from_settings(cls, settings: PricingSettings) -> "PricingPolicy":
        return cls(
            policy_id=settings.default_policy_id,
            market_source=MarketSource(settings.market_source),
            market_statistic=settings.market_statistic,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PricingPolicy":
        """Build a policy from a stored record, rejecting unknown fields."""
        _reject_unknown(cls, data)
        kwargs: Dict[str, Any] = dict(data)

        nested = {"buy_formula": BuyFormula, "sell_formula": SellFormula, "weights": ConditionWeights}
        for name, nested_cls in nested.items():
            if isinstance(kwargs.get(name), Mapping):
                _reject_unknown(nested_cls, kwargs[name])
                kwargs[name] = nested_cls(**kwargs[name])

        if "condition_curve" in kwargs:
            kwargs["condition_curve"] = {
                ConditionGrade.parse(k): float(v) for k, v in kwargs["condition_curve"].items()
            }
        if "markdown_schedule" in kwargs:
            kwargs["markdown_schedule"] = {
                int(k): float(v) for k, v in kwargs["markdown_schedule"].items()
            }
        if "market_source" in kwargs:
            kwargs["market_source"] = MarketSource(kwargs["market_source"])

        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy_id": self.policy_id,
            "version": self.version,
            "buy_formula": vars(self.buy_formula).copy(),
            "sell_formula": vars(self.sell_formula).copy(),
            "condition_curve": {k.value: v for k, v in self.condition_curve.items()},
            "weights": vars(self.weights).copy(),
            "markdown_schedule": {str(k): v for k, v in self.markdown_schedule.items()},
            "market_source": self.market_source.value,
            "market_statistic": self.market_statistic,
        }
