"""
Data collection module for recommendation click tracking.

Clicks on shown recommendations are recorded with the tracking id of
the variant bundle they came from, for conversion-rate analysis.
"""

from .collection_config import ClickTrackingConfig
from .click_recorder import (
    ClickRecorder,
    ClickStore,
    InMemoryClickStore,
    JsonlClickStore,
    create_click_store,
)

__all__ = [
    "ClickTrackingConfig",
    "ClickRecorder",
    "ClickStore",
    "InMemoryClickStore",
    "JsonlClickStore",
    "create_click_store",
]
