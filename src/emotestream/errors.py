"""Exception types shared by the EmoteStream services."""

from typing import Any


class EmoteStreamError(Exception):
    """Base exception for EmoteStream errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class MalformedInputError(EmoteStreamError):
    """Raised when an inbound event, moment or chunk payload cannot be parsed."""

    pass


class ConfigurationRejected(EmoteStreamError):
    """Raised when a settings update is invalid. Settings are left unchanged."""

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(f"Invalid {field} value: {reason}", {"field": field, "value": value})
        self.field = field
        self.value = value
        self.reason = reason


class PublishError(EmoteStreamError):
    """Raised when a batch of moments could not be handed to the broker."""

    pass


class TransportConnectFailure(EmoteStreamError):
    """Raised when a consumer or producer cannot reach the broker."""

    pass


class MediaSourceError(EmoteStreamError):
    """Raised when the media source file is missing or unreadable."""

    pass
