"""Main entry point for the aggregator service."""

import asyncio
import logging
import sys

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.structs import ConsumerRecord
from dotenv import load_dotenv

from ..errors import MalformedInputError
from ..events import ReactionEvent
from ..shared.config import AggregatorConfig
from ..shared.error_boundary import error_boundary
from ..shared.health import HealthRunner, start_web_app
from ..shared.kafka import consume, start_consumer, start_producer, stop_quietly
from ..shared.logger import configure_logging_from_env, get_logger
from ..shared.supervisor import RestartStrategy, ServiceConfig, SupervisedService, run_with_supervisor
from .analyzer import SignificanceAnalyzer
from .ingestor import EventIngestor
from .publisher import AggregatePublisher
from .settings import EmoteSettings
from .settings_api import create_settings_app

logger = get_logger(__name__)


class AggregatorService(SupervisedService):
    """Consumes raw reactions, detects significant moments and publishes them.

    The settings API outlives consumer restarts so that settings survive a
    broker outage; only the Kafka side is torn down and rebuilt.
    """

    def __init__(self, config: AggregatorConfig, settings: EmoteSettings | None = None):
        self.config = config
        if settings is None:
            settings = EmoteSettings(
                interval=config.initial_interval,
                threshold=config.initial_threshold,
                allowed_emotes=config.initial_allowed_emotes,
            )
        self.settings = settings
        self.analyzer = SignificanceAnalyzer(self.settings)
        self.ingestor = EventIngestor(self.settings, self.analyzer)

        self.consumer: AIOKafkaConsumer | None = None
        self.producer: AIOKafkaProducer | None = None
        self.publisher: AggregatePublisher | None = None
        self.api_runner: HealthRunner | None = None
        self.consume_task: asyncio.Task | None = None

        self.running = False

    async def start(self) -> None:
        """Connect to the broker, subscribe and start consuming."""
        logger.info("Starting aggregator...")

        if self.api_runner is None:
            app = create_settings_app(self.settings, self.ingestor)
            self.api_runner = await start_web_app(app, self.config.port, self.config.bind_host)

        self.producer = await start_producer(self.config)
        self.publisher = AggregatePublisher(self.producer, self.config.aggregated_topic, self.config.publish_timeout)
        self.consumer = await start_consumer(self.config, [self.config.raw_topic], self.config.group_id)

        self.ingestor.reopen()
        self.consume_task = asyncio.create_task(consume(self.consumer, self.handle_record), name="aggregator-consume")
        self.running = True
        logger.info(f"Aggregator running, settings API on port {self.config.port}")

    async def stop(self) -> None:
        """Stop ingestion first, then release the broker clients."""
        logger.info("Stopping aggregator...")
        self.running = False
        self.ingestor.close()

        if self.consume_task and not self.consume_task.done():
            self.consume_task.cancel()
            try:
                await self.consume_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Consumer task ended with error during shutdown: {e}")
        self.consume_task = None

        await stop_quietly(self.consumer)
        self.consumer = None
        await stop_quietly(self.producer)
        self.producer = None
        self.publisher = None

        logger.info("Aggregator stopped")

    async def shutdown(self) -> None:
        """Final teardown: stop ingestion, then the settings API, then the broker clients."""
        self.ingestor.close()
        if self.api_runner:
            await self.api_runner.cleanup()
            self.api_runner = None
        if self.holds_broker_clients:
            await self.stop()

    @property
    def holds_broker_clients(self) -> bool:
        """True until ``stop`` has released the consumer task and both Kafka clients."""
        return self.consume_task is not None or self.consumer is not None or self.producer is not None

    async def wait(self) -> None:
        """Block on the consumer task so the supervisor sees it die."""
        if self.consume_task:
            await self.consume_task

    async def health_check(self) -> bool:
        return self.running and self.consume_task is not None and not self.consume_task.done()

    @error_boundary(log_level=logging.WARNING, catch_exceptions=(MalformedInputError,))
    async def handle_record(self, record: ConsumerRecord) -> None:
        """Process one ``raw-emote-data`` record. Malformed payloads are logged and skipped."""
        event = ReactionEvent.from_json(record.value or b"")
        moments = self.ingestor.ingest(event)
        if moments and self.publisher:
            await self.publisher.publish(moments)


def build_supervisor_config(config: AggregatorConfig) -> ServiceConfig:
    """Restart forever with a fixed delay of ``RESTART_DELAY_SECONDS``."""
    return ServiceConfig(
        name="aggregator",
        restart_strategy=RestartStrategy.ON_FAILURE,
        max_restarts=None,
        restart_delay_seconds=config.restart_delay_seconds,
        backoff_multiplier=1.0,
        health_check_interval=30.0,
        shutdown_timeout=15.0,
    )


async def main() -> None:
    """Run the aggregator under the supervisor until SIGINT/SIGTERM."""
    load_dotenv()
    configure_logging_from_env("aggregator")

    config = AggregatorConfig()
    validation_errors = config.validate()
    if validation_errors:
        for error in validation_errors:
            logger.error(f"Configuration error: {error}")
        sys.exit(1)

    service = AggregatorService(config)
    try:
        await run_with_supervisor([(service, build_supervisor_config(config))])
    finally:
        await service.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
