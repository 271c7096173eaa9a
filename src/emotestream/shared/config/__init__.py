"""Configuration management for EmoteStream services."""

from .settings import AggregatorConfig, CommonConfig, ProducerConfig, RelayConfig

__all__ = ["AggregatorConfig", "CommonConfig", "ProducerConfig", "RelayConfig"]
