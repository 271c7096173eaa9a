"""Kafka transport helpers shared by the services."""

from collections.abc import Awaitable, Callable

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.admin import AIOKafkaAdminClient, NewTopic
from aiokafka.errors import KafkaError, TopicAlreadyExistsError
from aiokafka.structs import ConsumerRecord

from ..errors import TransportConnectFailure
from .config import CommonConfig
from .logger import get_logger

logger = get_logger(__name__)

RecordHandler = Callable[[ConsumerRecord], Awaitable[None]]


async def start_consumer(config: CommonConfig, topics: list[str], group_id: str) -> AIOKafkaConsumer:
    """Connect a consumer subscribed to ``topics`` from the earliest offset.

    Raises:
        TransportConnectFailure: If the broker cannot be reached.
    """
    consumer = AIOKafkaConsumer(
        *topics,
        bootstrap_servers=config.bootstrap_servers,
        group_id=group_id,
        client_id=config.service_name,
        auto_offset_reset="earliest",
    )
    try:
        await consumer.start()
    except (KafkaError, OSError) as e:
        await stop_quietly(consumer)
        raise TransportConnectFailure(
            f"Consumer could not connect to {config.kafka_broker}", {"topics": topics, "error": str(e)}
        ) from e

    logger.info("Connected to Kafka", role="consumer", topics=topics, group_id=group_id)
    return consumer


async def start_producer(config: CommonConfig) -> AIOKafkaProducer:
    """Connect a producer.

    Raises:
        TransportConnectFailure: If the broker cannot be reached.
    """
    producer = AIOKafkaProducer(
        bootstrap_servers=config.bootstrap_servers,
        client_id=config.service_name,
    )
    try:
        await producer.start()
    except (KafkaError, OSError) as e:
        await stop_quietly(producer)
        raise TransportConnectFailure(
            f"Producer could not connect to {config.kafka_broker}", {"error": str(e)}
        ) from e

    logger.info("Connected to Kafka", role="producer")
    return producer


async def ensure_topic(config: CommonConfig, topic: str, partitions: int = 1, replication_factor: int = 1) -> bool:
    """Create ``topic`` if the broker does not have it yet. Returns True if created."""
    admin = AIOKafkaAdminClient(bootstrap_servers=config.bootstrap_servers, client_id=config.service_name)
    try:
        await admin.start()
    except (KafkaError, OSError) as e:
        await stop_quietly(admin, "close")
        raise TransportConnectFailure(f"Admin client could not connect to {config.kafka_broker}") from e

    try:
        if topic in await admin.list_topics():
            return False
        await admin.create_topics(
            [NewTopic(name=topic, num_partitions=partitions, replication_factor=replication_factor)]
        )
        logger.info("Created topic", topic=topic)
        return True
    except TopicAlreadyExistsError:
        return False
    finally:
        await stop_quietly(admin, "close")


async def consume(consumer: AIOKafkaConsumer, handler: RecordHandler) -> None:
    """Feed records to ``handler`` one at a time, each to completion before the next."""
    async for record in consumer:
        await handler(record)


async def stop_quietly(client, method: str = "stop") -> None:
    """Stop a consumer or producer (or ``close`` an admin client), logging instead of raising."""
    if client is None:
        return
    try:
        await getattr(client, method)()
    except Exception as e:
        logger.warning(f"Kafka client shutdown error (non-critical): {e}")
