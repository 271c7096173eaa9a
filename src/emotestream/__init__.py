"""EmoteStream: emote spike detection and live fan-out for shared video streams."""

__version__ = "0.1.0"
