"""
Unit tests for recommendation click recording.
"""

import json

import pandas as pd
import pytest

from vinylrec.config.settings import ClickTrackingSettings
from vinylrec.data.schemas import ClickEvent
from vinylrec.data_collection import (
    ClickRecorder,
    ClickStore,
    ClickTrackingConfig,
    InMemoryClickStore,
    JsonlClickStore,
    create_click_store,
)
from vinylrec.serving.errors import InvalidArgument, RecordingFailure


class BrokenStore(ClickStore):
    """Store whose writes always fail."""

    def append(self, event):
        raise IOError("disk full")

    def list_events(self, tracking_id=None):
        return []


class TestClickTrackingConfig:
    """Tests for ClickTrackingConfig."""

    def test_defaults(self):
        """Test the fire-and-forget default."""
        config = ClickTrackingConfig()

        assert config.store_type == "memory"
        assert config.raise_on_failure is False
        assert config.anonymous_buyer_id == "anonymous"

    def test_from_settings(self):
        """Test building the config from settings."""
        settings = ClickTrackingSettings(store_type="jsonl", jsonl_path="/tmp/clicks.jsonl", raise_on_failure=True)

        config = ClickTrackingConfig.from_settings(settings)

        assert config.store_type == "jsonl"
        assert config.jsonl_path == "/tmp/clicks.jsonl"
        assert config.raise_on_failure is True


class TestClickStores:
    """Tests for click stores."""

    def test_in_memory_filter_by_tracking_id(self):
        """Test listing events for one tracking id."""
        store = InMemoryClickStore()
        store.append(ClickEvent("t1", "control", "i1"))
        store.append(ClickEvent("t2", "control", "i2"))
        store.append(ClickEvent("t1", "experimental", "i3"))

        assert [e.item_id for e in store.list_events("t1")] == ["i1", "i3"]
        assert len(store.list_events()) == 3

    def test_jsonl_store(self, tmp_path):
        """Test appending to and reading back a JSON lines file."""
        path = tmp_path / "nested" / "clicks.jsonl"
        store = JsonlClickStore(str(path))

        store.append(ClickEvent("t1", "control", "i1", buyer_id="b1"))
        store.append(ClickEvent("t2", "experimental", "i2"))

        lines = path.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["buyer_id"] == "b1"

        events = store.list_events("t2")
        assert len(events) == 1
        assert events[0].variant_name == "experimental"
        assert events[0].buyer_id == "anonymous"

    def test_jsonl_store_missing_file(self, tmp_path):
        """Test reading before anything was written."""
        assert JsonlClickStore(str(tmp_path / "clicks.jsonl")).list_events() == []

    def test_factory(self, tmp_path):
        """Test store selection by type."""
        assert isinstance(create_click_store(ClickTrackingConfig()), InMemoryClickStore)
        jsonl = create_click_store(
            ClickTrackingConfig(store_type="jsonl", jsonl_path=str(tmp_path / "c.jsonl"))
        )
        assert isinstance(jsonl, JsonlClickStore)

        with pytest.raises(ValueError):
            create_click_store(ClickTrackingConfig(store_type="kafka"))


class TestClickRecorder:
    """Tests for ClickRecorder."""

    def test_record_click(self):
        """Test recording a click with a buyer id."""
        recorder = ClickRecorder(InMemoryClickStore())

        event = recorder.record_recommendation_click("r1-abc", "experimental", "i42", buyer_id="buyer-7")

        assert event.tracking_id == "r1-abc"
        assert event.buyer_id == "buyer-7"
        assert recorder.get_clicks() == [event]
        assert recorder.get_stats() == {"recorded": 1, "failed": 0}

    def test_anonymous_buyer(self):
        """Test the anonymous default buyer id."""
        recorder = ClickRecorder(InMemoryClickStore())

        event = recorder.record_recommendation_click("r1-abc", "control", "i1")

        assert event.buyer_id == "anonymous"

    @pytest.mark.parametrize(
        "tracking_id,variant,item_id",
        [(None, "control", "i1"), ("t1", "", "i1"), ("t1", "control", "  "), ("t1", None, None)],
    )
    def test_required_fields(self, tracking_id, variant, item_id):
        """Test that missing fields are rejected."""
        recorder = ClickRecorder(InMemoryClickStore())

        with pytest.raises(InvalidArgument) as exc_info:
            recorder.record_recommendation_click(tracking_id, variant, item_id)

        assert exc_info.value.message == "trackingId, variant, and itemId are required"
        assert recorder.get_clicks() == []

    def test_store_failure_is_swallowed(self):
        """Test that persistence errors do not reach the caller by default."""
        recorder = ClickRecorder(BrokenStore())

        event = recorder.record_recommendation_click("t1", "control", "i1")

        assert event.item_id == "i1"
        assert recorder.get_stats() == {"recorded": 0, "failed": 1}

    def test_store_failure_raised_when_configured(self):
        """Test the strict failure policy."""
        recorder = ClickRecorder(BrokenStore(), ClickTrackingConfig(raise_on_failure=True))

        with pytest.raises(RecordingFailure) as exc_info:
            recorder.record_recommendation_click("t1", "control", "i1")

        assert isinstance(exc_info.value.__cause__, IOError)

    def test_store_created_from_config(self, tmp_path):
        """Test that the recorder builds its store from config."""
        config = ClickTrackingConfig(store_type="jsonl", jsonl_path=str(tmp_path / "clicks.jsonl"))
        recorder = ClickRecorder(config=config)

        recorder.record_recommendation_click("t1", "control", "i1")

        assert isinstance(recorder.store, JsonlClickStore)
        assert len(recorder.get_clicks("t1")) == 1

    def test_to_dataframe(self):
        """Test converting clicks to a DataFrame."""
        recorder = ClickRecorder(InMemoryClickStore())
        recorder.record_recommendation_click("t1", "control", "i1")
        recorder.record_recommendation_click("t1", "experimental", "i2", buyer_id="b1")

        df = recorder.to_dataframe()

        assert len(df) == 2
        assert list(df.columns) == ["tracking_id", "variant_name", "item_id", "buyer_id", "recorded_at"]
        assert pd.api.types.is_datetime64_any_dtype(df["recorded_at"])

    def test_to_dataframe_empty(self):
        """Test an empty DataFrame when nothing was recorded."""
        df = ClickRecorder(InMemoryClickStore()).to_dataframe()

        assert df.empty
        assert "tracking_id" in df.columns
