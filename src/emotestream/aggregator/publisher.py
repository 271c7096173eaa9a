"""Publishes significant moments to the aggregated topic."""

import asyncio
from collections.abc import Sequence

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from ..errors import PublishError
from ..events import SignificantMoment
from ..shared.logger import get_logger

logger = get_logger(__name__)


class AggregatePublisher:
    """Sends batches of moments as JSON messages.

    A batch either goes out as a whole or raises ``PublishError``; the caller
    decides whether to retry.
    """

    def __init__(self, producer: AIOKafkaProducer, topic: str, timeout: float = 10.0):
        self.producer = producer
        self.topic = topic
        self.timeout = timeout
        self.published = 0

    async def publish(self, moments: Sequence[SignificantMoment]) -> None:
        if not moments:
            return

        try:
            async with asyncio.timeout(self.timeout):
                pending = [await self.producer.send(self.topic, value=moment.to_json()) for moment in moments]
                await asyncio.gather(*pending)
        except (KafkaError, TimeoutError) as e:
            raise PublishError(
                f"Failed to publish {len(moments)} moments to {self.topic}",
                {"topic": self.topic, "batch_size": len(moments), "error": repr(e)},
            ) from e

        self.published += len(moments)
        logger.info("Significant moments sent", topic=self.topic, count=len(moments))
