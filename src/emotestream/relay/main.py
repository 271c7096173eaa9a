"""Main entry point for the relay service."""

import asyncio
import logging
import sys

from aiokafka import AIOKafkaConsumer
from aiokafka.structs import ConsumerRecord
from dotenv import load_dotenv

from ..errors import MalformedInputError
from ..events import MediaChunk, SignificantMoment
from ..shared.config import RelayConfig
from ..shared.error_boundary import error_boundary
from ..shared.kafka import consume, start_consumer, stop_quietly
from ..shared.logger import configure_logging_from_env, get_logger
from ..shared.supervisor import RestartStrategy, ServiceConfig, SupervisedService, run_with_supervisor
from .registry import ConnectionRegistry
from .relay import BroadcastRelay
from .websocket_server import RelayServer

logger = get_logger(__name__)


class RelayService(SupervisedService):
    """Consumes moments and video chunks and relays both to every viewer.

    Both topics share one consumer and one relay path; there is no priority
    between moments and chunks. Viewer connections survive consumer restarts.
    """

    def __init__(self, config: RelayConfig, registry: ConnectionRegistry | None = None):
        self.config = config
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.relay = BroadcastRelay(self.registry, send_timeout=config.send_timeout)
        self.server = RelayServer(
            self.registry,
            host=config.bind_host,
            port=config.port,
            path=config.path,
            server_name=config.service_name,
            max_message_size=config.max_message_size,
            status_provider=self._relay_status,
        )
        self.server_started = False

        self.consumer: AIOKafkaConsumer | None = None
        self.consume_task: asyncio.Task | None = None
        self.running = False

    async def start(self) -> None:
        logger.info("Starting relay...")

        if not self.server_started:
            await self.server.start()
            self.server_started = True

        self.consumer = await start_consumer(
            self.config, [self.config.video_topic, self.config.aggregated_topic], self.config.group_id
        )
        self.consume_task = asyncio.create_task(consume(self.consumer, self.handle_record), name="relay-consume")
        self.running = True
        logger.info(f"Relay listening on port {self.config.port}")

    async def _stop_consuming(self) -> None:
        self.running = False
        if self.consume_task and not self.consume_task.done():
            self.consume_task.cancel()
            try:
                await self.consume_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"Consumer task ended with error during shutdown: {e}")
        self.consume_task = None

    async def stop(self) -> None:
        """Stop consuming and release the broker connection; viewers stay connected."""
        logger.info("Stopping relay consumer...")
        await self._stop_consuming()
        await stop_quietly(self.consumer)
        self.consumer = None

    async def shutdown(self) -> None:
        """Stop consuming, close every viewer, stop the acceptor, then release the broker."""
        await self._stop_consuming()
        await self.relay.wait_closed()
        if self.server_started:
            await self.server.stop(close_timeout=self.config.send_timeout)
            self.server_started = False
        await stop_quietly(self.consumer)
        self.consumer = None
        logger.info("Relay stopped")

    def _relay_status(self) -> dict:
        return {"registry": self.registry.get_stats(), "relay": self.relay.get_stats()}

    async def wait(self) -> None:
        """Returns or raises when the record consumer ends; viewers stay connected either way."""
        if self.consume_task:
            await self.consume_task

    async def health_check(self) -> bool:
        return self.running and self.consume_task is not None and not self.consume_task.done()

    @error_boundary(log_level=logging.WARNING, catch_exceptions=(MalformedInputError,))
    async def handle_record(self, record: ConsumerRecord) -> None:
        """Relay one record from either topic. Malformed payloads are logged and skipped."""
        if record.topic == self.config.video_topic:
            chunk = MediaChunk.from_record(record.value, record.headers)
            await self.relay.relay_chunk(chunk)
        else:
            moment = SignificantMoment.from_json(record.value or b"")
            logger.info("Received emote data", moment=moment.to_wire())
            await self.relay.relay_moment(moment)


def build_supervisor_config(config: RelayConfig) -> ServiceConfig:
    """Restart forever with a fixed delay of ``RESTART_DELAY_SECONDS``."""
    return ServiceConfig(
        name="relay",
        restart_strategy=RestartStrategy.ON_FAILURE,
        max_restarts=None,
        restart_delay_seconds=config.restart_delay_seconds,
        backoff_multiplier=1.0,
        health_check_interval=30.0,
        shutdown_timeout=15.0,
    )


async def main() -> None:
    """Run the relay under the supervisor until SIGINT/SIGTERM."""
    load_dotenv()
    configure_logging_from_env("relay")

    config = RelayConfig()
    validation_errors = config.validate()
    if validation_errors:
        for error in validation_errors:
            logger.error(f"Configuration error: {error}")
        sys.exit(1)

    service = RelayService(config)
    try:
        await run_with_supervisor([(service, build_supervisor_config(config))])
    finally:
        await service.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
