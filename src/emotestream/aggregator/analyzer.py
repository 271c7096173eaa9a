"""Threshold-crossing detection over minute windows of reactions."""

from collections import Counter
from collections.abc import Iterable, Sequence

from ..events import ReactionEvent, SignificantMoment
from .settings import EmoteSettings


def tally_windows(events: Iterable[ReactionEvent]) -> dict[str, Counter[str]]:
    """Count emotes per minute window.

    Windows keep the order in which they were first seen, and emotes keep
    their first-seen order within a window.
    """
    tallies: dict[str, Counter[str]] = {}
    for event in events:
        tallies.setdefault(event.window_key, Counter())[event.emote_symbol] += 1
    return tallies


def find_significant_moments(events: Iterable[ReactionEvent], threshold: float) -> list[SignificantMoment]:
    """Every (window, emote) pair whose share of the window exceeds ``threshold``.

    Several emotes in one window may qualify. Output order is windows as first
    observed, then emotes in insertion order.
    """
    moments: list[SignificantMoment] = []

    for key, counts in tally_windows(events).items():
        total = sum(counts.values())
        for emote, count in counts.items():
            if count / total > threshold:
                moments.append(
                    SignificantMoment(
                        window_key=key,
                        emote_symbol=emote,
                        count=count,
                        total_in_window=total,
                    )
                )

    return moments


class SignificanceAnalyzer:
    """Applies the configured threshold to a flushed reaction buffer."""

    def __init__(self, settings: EmoteSettings):
        self.settings = settings

    def analyze(self, events: Sequence[ReactionEvent]) -> list[SignificantMoment]:
        return find_significant_moments(events, self.settings.threshold)
