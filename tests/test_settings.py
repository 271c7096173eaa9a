"""Tests for runtime emote settings."""

import threading

import pytest

from emotestream.aggregator.settings import EmoteSettings
from emotestream.errors import ConfigurationRejected


class TestEmoteSettings:
    def test_defaults(self):
        settings = EmoteSettings()

        assert settings.interval == 100
        assert settings.threshold == 0.5
        assert settings.allowed_emotes == frozenset({"❤️", "👍", "😢", "😡"})

    @pytest.mark.parametrize("value", [0, -5, 2.5, "10", True, None])
    def test_rejects_invalid_interval(self, settings, value):
        with pytest.raises(ConfigurationRejected) as exc_info:
            settings.set_interval(value)

        assert exc_info.value.field == "interval"
        assert settings.interval == 4

    @pytest.mark.parametrize("value", [0, 1, 1.2, -0.1, "0.5", False, None])
    def test_rejects_invalid_threshold(self, settings, value):
        with pytest.raises(ConfigurationRejected):
            settings.set_threshold(value)

        assert settings.threshold == 0.5

    def test_accepts_threshold_inside_range(self, settings):
        assert settings.set_threshold(0.25) == 0.25

    @pytest.mark.parametrize("value", ["👍", ["👍", 3], None, {"👍": True}])
    def test_rejects_invalid_allowed_emotes(self, settings, value):
        with pytest.raises(ConfigurationRejected):
            settings.set_allowed_emotes(value)

        assert settings.allowed_emotes == frozenset({"❤️", "👍", "😢", "😡"})

    def test_empty_allow_list_is_accepted(self, settings):
        assert settings.set_allowed_emotes([]) == frozenset()

    def test_update_is_all_or_nothing(self, settings):
        """A single invalid field leaves every field unchanged."""
        with pytest.raises(ConfigurationRejected):
            settings.update(interval=10, threshold=2.0)

        assert settings.interval == 4
        assert settings.threshold == 0.5

    def test_update_applies_several_fields(self, settings):
        snapshot = settings.update(interval=10, allowed_emotes=["🍕"])

        assert snapshot.interval == 10
        assert snapshot.threshold == 0.5
        assert snapshot.allowed_emotes == frozenset({"🍕"})

    def test_snapshot_is_stable_across_updates(self, settings):
        snapshot = settings.snapshot()
        settings.set_interval(50)

        assert snapshot.interval == 4
        assert settings.snapshot().interval == 50

    def test_invalid_initial_values_are_rejected(self):
        with pytest.raises(ConfigurationRejected):
            EmoteSettings(interval=0)

    def test_wire_form_sorts_allowed_emotes(self):
        settings = EmoteSettings(interval=3, threshold=0.4, allowed_emotes=["😡", "👍"])

        assert settings.snapshot().to_wire() == {
            "interval": 3,
            "threshold": 0.4,
            "allowedEmotes": sorted(["😡", "👍"]),
        }

    def test_concurrent_updates_never_mix_fields(self, settings):
        """Readers only ever see interval/threshold pairs that were written together."""
        pairs = {(10, 0.1), (20, 0.2)}
        seen = set()
        stop = threading.Event()

        def writer(interval, threshold):
            while not stop.is_set():
                settings.update(interval=interval, threshold=threshold)

        writers = [threading.Thread(target=writer, args=pair) for pair in pairs]
        for thread in writers:
            thread.start()
        try:
            for _ in range(2000):
                snapshot = settings.snapshot()
                seen.add((snapshot.interval, snapshot.threshold))
        finally:
            stop.set()
            for thread in writers:
                thread.join()

        seen.discard((4, 0.5))
        assert seen <= pairs
