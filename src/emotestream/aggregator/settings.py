"""Runtime emote settings shared by the ingestor, the analyzer and the settings API."""

import threading
from collections.abc import Iterable
from dataclasses import dataclass
from numbers import Real
from typing import Any

from ..errors import ConfigurationRejected
from ..shared.logger import get_logger

logger = get_logger(__name__)

DEFAULT_INTERVAL = 100
DEFAULT_THRESHOLD = 0.5
DEFAULT_ALLOWED_EMOTES = ("❤️", "👍", "😢", "😡")

_UNSET: Any = object()


@dataclass(frozen=True)
class SettingsSnapshot:
    """Immutable view of the settings at one point in time."""

    interval: int
    threshold: float
    allowed_emotes: frozenset[str]

    def to_wire(self) -> dict[str, Any]:
        """JSON body of the settings API, emotes sorted for stable output."""
        return {
            "interval": self.interval,
            "threshold": self.threshold,
            "allowedEmotes": sorted(self.allowed_emotes),
        }


def validate_interval(value: Any) -> int:
    """Return ``value`` if it is a positive int, else raise ``ConfigurationRejected``."""
    # bool is an int subclass; True is not an interval
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationRejected("interval", value, "must be a positive integer")
    return value


def validate_threshold(value: Any) -> float:
    """Coerce a real number in the open interval (0, 1) to float."""
    if isinstance(value, bool) or not isinstance(value, Real) or not (0 < value < 1):
        raise ConfigurationRejected("threshold", value, "must be a number strictly between 0 and 1")
    return float(value)


def validate_allowed_emotes(value: Any) -> frozenset[str]:
    """Accept a list or tuple of strings. An empty list is valid and disables detection."""
    if not isinstance(value, (list, tuple)) or not all(isinstance(emote, str) for emote in value):
        raise ConfigurationRejected("allowedEmotes", value, "must be a list of strings")
    return frozenset(value)


class EmoteSettings:
    """Process-wide emote settings owned by the service root.

    Every mutation goes through ``update`` under one lock; readers take a
    ``SettingsSnapshot`` so a single ingestion or analysis pass sees consistent
    values.
    """

    def __init__(
        self,
        interval: int = DEFAULT_INTERVAL,
        threshold: float = DEFAULT_THRESHOLD,
        allowed_emotes: Iterable[str] = DEFAULT_ALLOWED_EMOTES,
    ):
        self._lock = threading.Lock()
        self._snapshot = SettingsSnapshot(
            interval=validate_interval(interval),
            threshold=validate_threshold(threshold),
            allowed_emotes=validate_allowed_emotes(list(allowed_emotes)),
        )

    def snapshot(self) -> SettingsSnapshot:
        """Current settings as one immutable value.

        Take one snapshot per pass rather than reading the properties one by one;
        an ``update`` between two property reads would otherwise be half visible.
        """
        return self._snapshot

    @property
    def interval(self) -> int:
        return self._snapshot.interval

    @property
    def threshold(self) -> float:
        return self._snapshot.threshold

    @property
    def allowed_emotes(self) -> frozenset[str]:
        return self._snapshot.allowed_emotes

    def update(
        self,
        *,
        interval: Any = _UNSET,
        threshold: Any = _UNSET,
        allowed_emotes: Any = _UNSET,
    ) -> SettingsSnapshot:
        """Validate and apply any subset of fields atomically.

        Raises:
            ConfigurationRejected: If any supplied value is invalid; nothing is applied.
        """
        with self._lock:
            current = self._snapshot
            updated = SettingsSnapshot(
                interval=current.interval if interval is _UNSET else validate_interval(interval),
                threshold=current.threshold if threshold is _UNSET else validate_threshold(threshold),
                allowed_emotes=(
                    current.allowed_emotes if allowed_emotes is _UNSET else validate_allowed_emotes(allowed_emotes)
                ),
            )
            self._snapshot = updated

        logger.info(
            "Emote settings updated",
            interval=updated.interval,
            threshold=updated.threshold,
            allowed_emotes=sorted(updated.allowed_emotes),
        )
        return updated

    def set_interval(self, value: Any) -> int:
        """Validate and apply a new buffer size. Returns the applied value."""
        return self.update(interval=value).interval

    def set_threshold(self, value: Any) -> float:
        """Validate and apply a new significance ratio. Returns the applied value."""
        return self.update(threshold=value).threshold

    def set_allowed_emotes(self, value: Any) -> frozenset[str]:
        """Replace the allow-list. Events already buffered are not re-filtered."""
        return self.update(allowed_emotes=value).allowed_emotes
