"""Tests for the Kafka transport helpers."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiokafka.errors import KafkaConnectionError, TopicAlreadyExistsError

from emotestream.errors import TransportConnectFailure
from emotestream.shared.config import AggregatorConfig
from emotestream.shared.kafka import consume, ensure_topic, start_consumer, start_producer, stop_quietly

pytestmark = pytest.mark.asyncio


class FakeConsumer:
    def __init__(self, records):
        self.records = records

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for record in self.records:
            yield record


class TestConnect:
    async def test_unreachable_broker_raises_transport_failure(self):
        consumer = MagicMock(start=AsyncMock(side_effect=KafkaConnectionError("no broker")), stop=AsyncMock())

        with patch("emotestream.shared.kafka.AIOKafkaConsumer", return_value=consumer):
            with pytest.raises(TransportConnectFailure):
                await start_consumer(AggregatorConfig(), ["raw-emote-data"], "aggregator-group")

        consumer.stop.assert_awaited_once()

    async def test_consumer_reads_from_earliest(self):
        consumer = MagicMock(start=AsyncMock(), stop=AsyncMock())

        with patch("emotestream.shared.kafka.AIOKafkaConsumer", return_value=consumer) as consumer_class:
            assert await start_consumer(AggregatorConfig(), ["raw-emote-data"], "aggregator-group") is consumer

        assert consumer_class.call_args.args == ("raw-emote-data",)
        assert consumer_class.call_args.kwargs["auto_offset_reset"] == "earliest"
        assert consumer_class.call_args.kwargs["group_id"] == "aggregator-group"

    async def test_producer_connection_failure(self):
        producer = MagicMock(start=AsyncMock(side_effect=OSError("refused")), stop=AsyncMock())

        with patch("emotestream.shared.kafka.AIOKafkaProducer", return_value=producer):
            with pytest.raises(TransportConnectFailure):
                await start_producer(AggregatorConfig())


class TestEnsureTopic:
    async def test_creates_missing_topic(self):
        admin = MagicMock(start=AsyncMock(), close=AsyncMock(), list_topics=AsyncMock(return_value=set()))
        admin.create_topics = AsyncMock()

        with patch("emotestream.shared.kafka.AIOKafkaAdminClient", return_value=admin):
            assert await ensure_topic(AggregatorConfig(), "video-stream") is True

        admin.create_topics.assert_awaited_once()

    async def test_existing_topic_is_left_alone(self):
        admin = MagicMock(start=AsyncMock(), close=AsyncMock(), list_topics=AsyncMock(return_value={"video-stream"}))
        admin.create_topics = AsyncMock()

        with patch("emotestream.shared.kafka.AIOKafkaAdminClient", return_value=admin):
            assert await ensure_topic(AggregatorConfig(), "video-stream") is False

        admin.create_topics.assert_not_awaited()

    async def test_creation_race_is_not_an_error(self):
        admin = MagicMock(start=AsyncMock(), close=AsyncMock(), list_topics=AsyncMock(return_value=set()))
        admin.create_topics = AsyncMock(side_effect=TopicAlreadyExistsError())

        with patch("emotestream.shared.kafka.AIOKafkaAdminClient", return_value=admin):
            assert await ensure_topic(AggregatorConfig(), "video-stream") is False


class TestConsume:
    async def test_handles_records_in_order(self):
        seen = []

        async def handler(record):
            seen.append(record)

        await consume(FakeConsumer(["a", "b", "c"]), handler)

        assert seen == ["a", "b", "c"]

    async def test_stop_quietly_ignores_errors(self):
        client = MagicMock(stop=AsyncMock(side_effect=RuntimeError("already closed")))

        await stop_quietly(client)
        await stop_quietly(None)

        client.stop.assert_awaited_once()

    async def test_stop_quietly_closes_admin_clients(self):
        admin = MagicMock(close=AsyncMock())

        await stop_quietly(admin, "close")

        admin.close.assert_awaited_once()
