"""
Configuration for click tracking components.
"""

from dataclasses import dataclass

from ..config.settings import ClickTrackingSettings


@dataclass
class ClickTrackingConfig:
    """Configuration for recommendation click recording.

    raise_on_failure selects the failure policy. The default (False) is
    fire-and-forget: persistence errors are logged and the event is
    still returned, so a buyer's click-through redirect is never
    blocked. True surfaces RecordingFailure to the caller.
    """

    store_type: str = "memory"  # memory or jsonl
    jsonl_path: str = "data/recommendation_clicks.jsonl"
    raise_on_failure: bool = False
    anonymous_buyer_id: str = "anonymous"

    @classmethod
    def from_settings(cls, settings: ClickTrackingSettings) -> "ClickTrackingConfig":
        return cls(
            store_type=settings.store_type,
            jsonl_path=settings.jsonl_path,
            raise_on_failure=settings.raise_on_failure,
            anonymous_buyer_id=settings.anonymous_buyer_id,
        )
