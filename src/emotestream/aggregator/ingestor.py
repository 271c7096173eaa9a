"""Filtering and buffering of raw reaction events."""

from ..events import ReactionEvent, SignificantMoment
from ..shared.logger import get_logger
from .analyzer import SignificanceAnalyzer
from .settings import EmoteSettings

logger = get_logger(__name__)


class EventIngestor:
    """Buffers allowed reactions and runs the analyzer each time the buffer fills.

    Owns the reaction buffer exclusively. Not safe for concurrent ``ingest``
    calls; the aggregator drives it from a single consumer task.
    """

    def __init__(self, settings: EmoteSettings, analyzer: SignificanceAnalyzer):
        self.settings = settings
        self.analyzer = analyzer

        self._buffer: list[ReactionEvent] = []
        self._closed = False

        # Counters surfaced on /health
        self.accepted = 0
        self.dropped = 0
        self.flushes = 0

    @property
    def buffer_size(self) -> int:
        """Events waiting for the next flush."""
        return len(self._buffer)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop accepting events. Buffered events are discarded."""
        self._closed = True
        self._buffer = []

    def reopen(self) -> None:
        """Accept events again after ``close``. Called on every (re)start, with an empty buffer."""
        self._closed = False

    def ingest(self, event: ReactionEvent) -> list[SignificantMoment]:
        """Buffer one event; returns the moments found if this event triggered a flush."""
        if self._closed:
            logger.debug("Ingestor closed, ignoring event", emote=event.emote_symbol)
            return []

        settings = self.settings.snapshot()
        if event.emote_symbol not in settings.allowed_emotes:
            self.dropped += 1
            return []

        self._buffer.append(event)
        self.accepted += 1

        if len(self._buffer) < settings.interval:
            return []

        return self.flush()

    def flush(self) -> list[SignificantMoment]:
        """Analyze the current buffer and clear it, whatever the outcome."""
        events, self._buffer = self._buffer, []
        if not events:
            return []

        # Buffer is already empty here, even if analysis raises
        self.flushes += 1
        moments = self.analyzer.analyze(events)
        logger.debug("Reaction buffer flushed", events=len(events), moments=len(moments))

        if moments:
            logger.info(
                "Significant moments detected",
                moments=[m.to_wire() for m in moments],
                buffered_events=len(events),
            )
        return moments

    def get_stats(self) -> dict[str, int]:
        """Buffer fill against the current interval, plus accepted/dropped/flush counters."""
        return {
            "buffer_size": self.buffer_size,
            "interval": self.settings.interval,
            "accepted": self.accepted,
            "dropped": self.dropped,
            "flushes": self.flushes,
        }
