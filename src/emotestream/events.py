"""Event models exchanged between the EmoteStream services."""

import json
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MalformedInputError

WINDOW_KEY_FORMAT = "%Y-%m-%dT%H:%M"


def window_key(occurred_at: datetime) -> str:
    """Minute bucket for a timestamp, e.g. ``2024-05-01T20:15``.

    The wall clock of the timestamp is kept as written; no timezone conversion.
    """
    return occurred_at.strftime(WINDOW_KEY_FORMAT)


class ReactionEvent(BaseModel):
    """A single emote reaction sent by a viewer."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    emote_symbol: str = Field(alias="emote", min_length=1)
    occurred_at: datetime = Field(alias="timestamp")

    @property
    def window_key(self) -> str:
        return window_key(self.occurred_at)

    @classmethod
    def from_json(cls, raw: bytes | str) -> "ReactionEvent":
        """Parse a ``raw-emote-data`` message value."""
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedInputError("Unparseable reaction event", {"errors": e.errors(include_url=False)}) from e


class SignificantMoment(BaseModel):
    """A (window, emote) pair whose share of the window's reactions crossed the threshold."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    window_key: str = Field(alias="timestamp")
    emote_symbol: str = Field(alias="emote")
    count: int = Field(ge=1)
    total_in_window: int = Field(alias="totalEmotes", ge=1)

    @property
    def ratio(self) -> float:
        return self.count / self.total_in_window

    def to_wire(self) -> dict:
        """Outbound ``aggregated-emote-data`` form."""
        return self.model_dump(by_alias=True)

    def to_json(self) -> bytes:
        return json.dumps(self.to_wire(), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_json(cls, raw: bytes | str) -> "SignificantMoment":
        """Parse an ``aggregated-emote-data`` message value."""
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedInputError("Unparseable significant moment", {"errors": e.errors(include_url=False)}) from e


class MediaChunk(BaseModel):
    """One slice of the shared video stream."""

    model_config = ConfigDict(frozen=True)

    sequence_index: int = Field(ge=0)
    payload: bytes

    @classmethod
    def from_record(cls, value: bytes | None, headers: list[tuple[str, bytes]] | None) -> "MediaChunk":
        """Build a chunk from a ``video-stream`` record; a missing index header means 0."""
        if value is None:
            raise MalformedInputError("Video record has no payload")

        index = 0
        for key, header_value in headers or ():
            if key == "index":
                try:
                    index = int(header_value.decode("ascii"))
                except (AttributeError, UnicodeDecodeError, ValueError) as e:
                    raise MalformedInputError("Invalid video chunk index header", {"index": header_value}) from e
                break

        try:
            return cls(sequence_index=index, payload=value)
        except ValidationError as e:
            raise MalformedInputError("Invalid video chunk", {"index": index}) from e
