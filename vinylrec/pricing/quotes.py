"""
Seller submission item quotes.

Each submitted copy gets an automatic offer from the pricing engine.
Staff may counter-offer, and the seller then accepts or rejects.
"""

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from .pricing_config import ConditionGrade
from .pricing_engine import Grade, PricingEngine
from ..serving.errors import InvalidArgument, NotFound, UpstreamFailure
from ..utils.logging_utils import get_logger, log_extra

logger = get_logger(__name__)


class ItemStatus(str, Enum):
    QUOTED = "QUOTED"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    COUNTER_OFFERED = "COUNTER_OFFERED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class SubmissionItemQuote:
    """Quote state for one submitted item."""

    item_id: str
    release_id: str
    media_condition: ConditionGrade
    sleeve_condition: ConditionGrade
    quantity: int
    auto_offer_price: float
    status: ItemStatus
    counter_offer_price: Optional[float] = None
    final_offer: Optional[float] = None
    policy_used: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "release_id": self.release_id,
            "media_condition": self.media_condition.value,
            "sleeve_condition": self.sleeve_condition.value,
            "quantity": self.quantity,
            "auto_offer_price": self.auto_offer_price,
            "counter_offer_price": self.counter_offer_price,
            "final_offer": self.final_offer,
            "status": self.status.value,
            "policy_used": self.policy_used,
        }


def quote_submission_item(
    engine: PricingEngine,
    item_id: str,
    release_id: str,
    media_condition: Grade,
    sleeve_condition: Grade,
    quantity: int = 1,
) -> SubmissionItemQuote:
    """Compute the automatic offer for a submitted item.

    When the release cannot be priced the item is quoted at zero and
    flagged for manual review instead of failing the submission.

    Raises:
        InvalidArgument: Unknown condition grade or quantity below 1.
    """
    media = ConditionGrade.parse(media_condition)
    sleeve = ConditionGrade.parse(sleeve_condition)
    if not isinstance(quantity, int) or quantity < 1:
        raise InvalidArgument("quantity must be a positive integer", details={"quantity": quantity})

    try:
        quote = engine.calculate_buy_price(release_id, media, sleeve)
    except (NotFound, UpstreamFailure) as e:
        log_extra(
            logger,
            logging.WARNING,
            "Auto-offer unavailable, item needs review",
            item_id=item_id,
            release_id=release_id,
            error=e.message,
        )
        return SubmissionItemQuote(
            item_id=item_id,
            release_id=release_id,
            media_condition=media,
            sleeve_condition=sleeve,
            quantity=quantity,
            auto_offer_price=0.0,
            status=ItemStatus.NEEDS_REVIEW,
        )

    return SubmissionItemQuote(
        item_id=item_id,
        release_id=release_id,
        media_condition=media,
        sleeve_condition=sleeve,
        quantity=quantity,
        auto_offer_price=round(quote.price * quantity, 2),
        status=ItemStatus.QUOTED,
        policy_used=quote.policy_used,
    )


def counter_offer(item: SubmissionItemQuote, price: float) -> SubmissionItemQuote:
    """Replace the auto-offer with a staff counter-offer."""
    if price is None or price < 0:
        raise InvalidArgument("counter offer price must be non-negative", details={"price": price})
    if item.status in (ItemStatus.ACCEPTED, ItemStatus.REJECTED):
        raise InvalidArgument(
            f"Cannot counter-offer an item with status: {item.status.value}",
            details={"item_id": item.item_id},
        )

    log_extra(logger, logging.INFO, "Item quote updated", item_id=item.item_id, counter_offer_price=price)
    return dataclasses.replace(item, counter_offer_price=float(price), status=ItemStatus.COUNTER_OFFERED)


def review_item(item: SubmissionItemQuote, action: str) -> SubmissionItemQuote:
    """Seller accepts or rejects the current offer."""
    if action not in ("accept", "reject"):
        raise InvalidArgument("Action must be accept or reject", details={"action": action})

    if action == "accept":
        return dataclasses.replace(item, status=ItemStatus.ACCEPTED, final_offer=final_offer_price(item))
    return dataclasses.replace(item, status=ItemStatus.REJECTED, final_offer=0.0)


def final_offer_price(item: SubmissionItemQuote) -> float:
    """The price paid for an item: settled offer, else counter-offer, else auto-offer."""
    if item.final_offer is not None:
        return item.final_offer
    if item.counter_offer_price is not None:
        return item.counter_offer_price
    return item.auto_offer_price


def submission_total(items: Iterable[SubmissionItemQuote]) -> float:
    return round(sum(final_offer_price(item) for item in items), 2)


def submission_status(items: Iterable[SubmissionItemQuote]) -> str:
    """Overall status once every item is reviewed, PENDING_REVIEW before that."""
    statuses = [item.status for item in items]
    reviewed = (ItemStatus.ACCEPTED, ItemStatus.REJECTED)
    if not statuses or any(s not in reviewed for s in statuses):
        return "PENDING_REVIEW"

    accepted = sum(1 for s in statuses if s is ItemStatus.ACCEPTED)
    if accepted == len(statuses):
        return "ACCEPTED"
    if accepted == 0:
        return "REJECTED"
    return "PARTIALLY_ACCEPTED"
