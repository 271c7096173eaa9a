"""File-backed media source that publishes fixed-size chunks forever."""

import asyncio
from collections.abc import Iterator
from pathlib import Path

from aiokafka import AIOKafkaProducer
from aiokafka.errors import MessageSizeTooLargeError

from ..errors import MediaSourceError
from ..events import MediaChunk
from ..shared.logger import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 50_000


def iter_chunks(path: str | Path, chunk_size: int = CHUNK_SIZE) -> Iterator[MediaChunk]:
    """Yield the file as chunks indexed from 0."""
    try:
        handle = open(path, "rb")
    except OSError as e:
        raise MediaSourceError(f"Video file not found at {path}", {"path": str(path)}) from e

    with handle:
        index = 0
        while payload := handle.read(chunk_size):
            yield MediaChunk(sequence_index=index, payload=payload)
            index += 1


class VideoStreamer:
    """Publishes a video file chunk by chunk, restarting from index 0 at the end.

    ``stop()`` sets a flag that is checked between chunks.
    """

    def __init__(
        self,
        producer: AIOKafkaProducer,
        topic: str,
        video_path: str | Path,
        chunk_size: int = CHUNK_SIZE,
        chunk_delay: float = 0.05,
    ):
        self.producer = producer
        self.topic = topic
        self.video_path = Path(video_path)
        self.chunk_size = chunk_size
        self.chunk_delay = chunk_delay

        self._stop_event = asyncio.Event()
        self.passes = 0
        self.chunks_sent = 0
        self.chunks_skipped = 0

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Ask ``run`` to return; pacing sleeps wake immediately."""
        self._stop_event.set()

    async def run(self, max_passes: int | None = None) -> None:
        """Stream until stopped, or for ``max_passes`` complete passes."""
        logger.info("Reading video", path=str(self.video_path), chunk_size=self.chunk_size)

        while not self.stopped and (max_passes is None or self.passes < max_passes):
            chunks_read = await self._stream_once()
            if self.stopped:
                break
            if chunks_read == 0:
                raise MediaSourceError(f"Video file is empty: {self.video_path}", {"path": str(self.video_path)})

            self.passes += 1
            logger.info("Video streaming completed, restarting", passes=self.passes, chunks=chunks_read)

    async def _stream_once(self) -> int:
        """One pass over the file; returns the number of chunks read."""
        read = 0
        for chunk in iter_chunks(self.video_path, self.chunk_size):
            if self.stopped:
                break
            read += 1

            try:
                await self.producer.send_and_wait(
                    self.topic,
                    value=chunk.payload,
                    headers=[("index", str(chunk.sequence_index).encode("ascii"))],
                )
            except MessageSizeTooLargeError:
                self.chunks_skipped += 1
                logger.error("Chunk too large for the broker, skipping", index=chunk.sequence_index)
                continue

            self.chunks_sent += 1

            # Pacing; wakes early on stop
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.chunk_delay)
            except TimeoutError:
                pass

        return read

    def get_stats(self) -> dict[str, int]:
        return {"passes": self.passes, "chunks_sent": self.chunks_sent, "chunks_skipped": self.chunks_skipped}
