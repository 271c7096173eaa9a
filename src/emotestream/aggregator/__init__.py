"""Aggregator service: buffers raw reactions and publishes significant moments."""

from .analyzer import SignificanceAnalyzer, find_significant_moments
from .ingestor import EventIngestor
from .publisher import AggregatePublisher
from .settings import EmoteSettings, SettingsSnapshot

__all__ = [
    "AggregatePublisher",
    "EmoteSettings",
    "EventIngestor",
    "SettingsSnapshot",
    "SignificanceAnalyzer",
    "find_significant_moments",
]
