"""
Recommendation click recording for conversion tracking.

A click carries the tracking id of the variant bundle it came from, so
clicks can later be joined back to the variant that was shown.
Events are append-only; nothing here updates or deletes them.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional

import pandas as pd

from ..data.schemas import ClickEvent
from ..serving.errors import InvalidArgument, RecordingFailure
from ..utils.logging_utils import get_logger, log_extra
from .collection_config import ClickTrackingConfig

logger = get_logger(__name__)

CLICK_COLUMNS = ["tracking_id", "variant_name", "item_id", "buyer_id", "recorded_at"]


class ClickStore(ABC):
    """Abstract base class for click event persistence."""

    @abstractmethod
    def append(self, event: ClickEvent) -> None:
        """Persist one click event.

        Args:
            event: Event to append.
        """
        pass

    @abstractmethod
    def list_events(self, tracking_id: Optional[str] = None) -> List[ClickEvent]:
        """List stored events in recording order.

        Args:
            tracking_id: Only return events for this tracking id.

        Returns:
            List of click events.
        """
        pass


class InMemoryClickStore(ClickStore):
    """Thread-safe in-memory click store for development and tests."""

    def __init__(self):
        self._events: List[ClickEvent] = []
        self._lock = threading.Lock()

    def append(self, event: ClickEvent) -> None:
        with self._lock:
            self._events.append(event)

    def list_events(self, tracking_id: Optional[str] = None) -> List[ClickEvent]:
        with self._lock:
            events = list(self._events)
        if tracking_id is not None:
            events = [e for e in events if e.tracking_id == tracking_id]
        return events


class JsonlClickStore(ClickStore):
    """Append-only JSON lines file store.

    Example:
        >>> store = JsonlClickStore("data/recommendation_clicks.jsonl")
        >>> store.append(event)
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def append(self, event: ClickEvent) -> None:
        line = json.dumps(event.to_dict())
        with self._lock:
            with open(self.path, "a") as f:
                f.write(line + "\n")

    def list_events(self, tracking_id: Optional[str] = None) -> List[ClickEvent]:
        if not self.path.exists():
            return []

        events = []
        with self._lock:
            with open(self.path) as f:
                for line in f:
                    if line.strip():
                        events.append(ClickEvent.from_dict(json.loads(line)))

        if tracking_id is not None:
            events = [e for e in events if e.tracking_id == tracking_id]
        return events


def create_click_store(config: ClickTrackingConfig) -> ClickStore:
    """Factory function to create a click store.

    Args:
        config: Click tracking configuration.

    Returns:
        ClickStore instance.
    """
    if config.store_type == "jsonl":
        return JsonlClickStore(config.jsonl_path)
    if config.store_type == "memory":
        return InMemoryClickStore()
    raise ValueError(f"Unknown click store type: {config.store_type}")


def _require(name: str, value: Any) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidArgument(
            "trackingId, variant, and itemId are required",
            details={"missing": name},
        )
    return str(value)


class ClickRecorder:
    """Records recommendation clicks for later conversion analysis.

    Example:
        >>> recorder = ClickRecorder(InMemoryClickStore())
        >>> event = recorder.record_recommendation_click(
        ...     tracking_id=bundle.tracking_id,
        ...     variant_name="experimental",
        ...     item_id="item-42",
        ... )
    """

    def __init__(
        self,
        store: Optional[ClickStore] = None,
        config: Optional[ClickTrackingConfig] = None,
    ):
        """Initialize the click recorder.

        Args:
            store: Click persistence; created from config when omitted.
            config: Click tracking configuration.
        """
        self.config = config or ClickTrackingConfig()
        self.store = store if store is not None else create_click_store(self.config)
        self._recorded = 0
        self._failed = 0

    def record_recommendation_click(
        self,
        tracking_id: str,
        variant_name: str,
        item_id: str,
        buyer_id: Optional[str] = None,
    ) -> ClickEvent:
        """Record a click on a shown recommendation.

        Args:
            tracking_id: Tracking id of the variant bundle.
            variant_name: Variant the clicked item was shown under.
            item_id: Clicked inventory item id.
            buyer_id: Buyer identifier; anonymous when omitted.

        Returns:
            The recorded click event.

        Raises:
            InvalidArgument: A required field is missing or empty.
            RecordingFailure: Persistence failed and raise_on_failure is set.
        """
        event = ClickEvent(
            tracking_id=_require("tracking_id", tracking_id),
            variant_name=_require("variant_name", variant_name),
            item_id=_require("item_id", item_id),
            buyer_id=buyer_id or self.config.anonymous_buyer_id,
        )

        try:
            self.store.append(event)
        except Exception as e:
            self._failed += 1
            log_extra(
                logger,
                logging.ERROR,
                "Error recording recommendation click",
                exc_info=True,
                tracking_id=event.tracking_id,
                variant=event.variant_name,
                item_id=event.item_id,
                error=str(e),
            )
            if self.config.raise_on_failure:
                raise RecordingFailure(
                    "Failed to record click",
                    details={"tracking_id": event.tracking_id},
                ) from e
            return event

        self._recorded += 1
        log_extra(
            logger,
            logging.INFO,
            "Recommendation click recorded",
            tracking_id=event.tracking_id,
            variant=event.variant_name,
            item_id=event.item_id,
            buyer_id=event.buyer_id,
        )
        return event

    def get_clicks(self, tracking_id: Optional[str] = None) -> List[ClickEvent]:
        """Get recorded clicks, optionally for one tracking id."""
        return self.store.list_events(tracking_id)

    def to_dataframe(self, events: Optional[List[ClickEvent]] = None) -> pd.DataFrame:
        """Convert click events to a DataFrame.

        Args:
            events: Events to convert; all stored events when omitted.

        Returns:
            DataFrame with one row per click.
        """
        events = self.get_clicks() if events is None else events
        if not events:
            return pd.DataFrame(columns=CLICK_COLUMNS)

        df = pd.DataFrame([e.to_dict() for e in events], columns=CLICK_COLUMNS)
        df["recorded_at"] = pd.to_datetime(df["recorded_at"])
        return df

    def get_stats(self):
        return {"recorded": self._recorded, "failed": self._failed}
