"""Tests for reaction filtering and buffering."""

from unittest.mock import MagicMock

import pytest
from conftest import make_event

from emotestream.aggregator.analyzer import SignificanceAnalyzer
from emotestream.aggregator.ingestor import EventIngestor


@pytest.fixture
def ingestor(settings):
    return EventIngestor(settings, SignificanceAnalyzer(settings))


class TestEventIngestor:
    def test_disallowed_emotes_are_dropped(self, ingestor):
        assert ingestor.ingest(make_event("🍕")) == []

        assert ingestor.buffer_size == 0
        assert ingestor.dropped == 1
        assert ingestor.accepted == 0

    def test_flushes_when_interval_reached(self, ingestor):
        """The fourth allowed event triggers analysis and empties the buffer."""
        for emote in ("😢", "😢", "😢"):
            assert ingestor.ingest(make_event(emote)) == []
        assert ingestor.buffer_size == 3

        moments = ingestor.ingest(make_event("👍"))

        assert [(m.emote_symbol, m.count, m.total_in_window) for m in moments] == [("😢", 3, 4)]
        assert ingestor.buffer_size == 0
        assert ingestor.flushes == 1

    def test_dropped_events_do_not_count_toward_interval(self, ingestor):
        for emote in ("👍", "🍕", "🍕", "👍", "👍"):
            ingestor.ingest(make_event(emote))

        assert ingestor.buffer_size == 3
        assert ingestor.flushes == 0

    def test_flush_without_moments_still_clears_buffer(self, ingestor):
        for emote in ("👍", "👍", "😡", "😡"):
            ingestor.ingest(make_event(emote))

        assert ingestor.buffer_size == 0
        assert ingestor.flushes == 1

    def test_lowering_interval_flushes_on_next_event(self, ingestor, settings):
        for emote in ("😢", "😢", "😢"):
            ingestor.ingest(make_event(emote))

        settings.set_interval(2)
        moments = ingestor.ingest(make_event("😢"))

        assert [m.count for m in moments] == [4]
        assert ingestor.buffer_size == 0

    def test_allow_list_change_applies_to_next_event(self, ingestor, settings):
        settings.set_allowed_emotes(["🍕"])

        ingestor.ingest(make_event("👍"))
        ingestor.ingest(make_event("🍕"))

        assert ingestor.dropped == 1
        assert ingestor.accepted == 1

    def test_buffer_cleared_even_if_analysis_fails(self, settings):
        analyzer = MagicMock()
        analyzer.analyze.side_effect = RuntimeError("boom")
        ingestor = EventIngestor(settings, analyzer)

        for emote in ("👍", "👍", "👍"):
            ingestor.ingest(make_event(emote))
        with pytest.raises(RuntimeError):
            ingestor.ingest(make_event("👍"))

        assert ingestor.buffer_size == 0

    def test_closed_ingestor_ignores_events(self, ingestor):
        ingestor.ingest(make_event("👍"))
        ingestor.close()

        assert ingestor.ingest(make_event("👍")) == []
        assert ingestor.buffer_size == 0
        assert ingestor.closed

        ingestor.reopen()
        ingestor.ingest(make_event("👍"))
        assert ingestor.buffer_size == 1

    def test_get_stats(self, ingestor):
        ingestor.ingest(make_event("👍"))
        ingestor.ingest(make_event("🍕"))

        assert ingestor.get_stats() == {
            "buffer_size": 1,
            "interval": 4,
            "accepted": 1,
            "dropped": 1,
            "flushes": 0,
        }
