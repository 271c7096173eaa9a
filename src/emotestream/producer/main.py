"""Main entry point for the video producer."""

import asyncio
import sys

from aiokafka import AIOKafkaProducer
from dotenv import load_dotenv

from ..shared.config import ProducerConfig
from ..shared.health import HealthRunner, create_basic_health_app
from ..shared.kafka import ensure_topic, start_producer, stop_quietly
from ..shared.logger import configure_logging_from_env, get_logger
from ..shared.supervisor import RestartStrategy, ServiceConfig, SupervisedService, run_with_supervisor
from .video_source import VideoStreamer

logger = get_logger(__name__)


class ProducerService(SupervisedService):
    """Creates the video topic if needed and streams the video file into it."""

    def __init__(self, config: ProducerConfig):
        self.config = config
        self.producer: AIOKafkaProducer | None = None
        self.streamer: VideoStreamer | None = None
        self.stream_task: asyncio.Task | None = None
        self.health_runner: HealthRunner | None = None

    async def start(self) -> None:
        logger.info("Starting video producer...")

        if self.health_runner is None and self.config.health_port:
            self.health_runner = await create_basic_health_app(
                self.config.health_port,
                "producer",
                host=self.config.bind_host,
                status_provider=self._stream_status,
            )

        await ensure_topic(self.config, self.config.video_topic)
        self.producer = await start_producer(self.config)

        self.streamer = VideoStreamer(
            self.producer,
            self.config.video_topic,
            self.config.video_path,
            chunk_size=self.config.chunk_size,
            chunk_delay=self.config.chunk_delay,
        )
        self.stream_task = asyncio.create_task(self.streamer.run(), name="video-stream")

    async def stop(self) -> None:
        logger.info("Stopping video producer...")
        if self.streamer:
            self.streamer.stop()

        if self.stream_task and not self.stream_task.done():
            try:
                await asyncio.wait_for(self.stream_task, timeout=5.0)
            except TimeoutError:
                logger.warning("Video stream did not stop in time, cancelling")
            except Exception as e:
                logger.warning(f"Video stream ended with error during shutdown: {e}")
        self.stream_task = None

        await stop_quietly(self.producer)
        self.producer = None

    async def shutdown(self) -> None:
        """Final teardown; skips the stream when the supervisor already stopped it."""
        if self.stream_task is not None or self.producer is not None:
            await self.stop()
        if self.health_runner:
            await self.health_runner.cleanup()
            self.health_runner = None

    async def wait(self) -> None:
        if self.stream_task:
            await self.stream_task

    async def health_check(self) -> bool:
        """Healthy while the stream task is alive."""
        return self.stream_task is not None and not self.stream_task.done()

    def _stream_status(self) -> dict:
        if not self.streamer:
            return {"status": "starting"}
        return {"stream": self.streamer.get_stats()}


def build_supervisor_config(config: ProducerConfig) -> ServiceConfig:
    """Restart forever with a fixed delay of ``RESTART_DELAY_SECONDS``."""
    return ServiceConfig(
        name="producer",
        restart_strategy=RestartStrategy.ON_FAILURE,
        max_restarts=None,
        restart_delay_seconds=config.restart_delay_seconds,
        backoff_multiplier=1.0,
        health_check_interval=30.0,
        shutdown_timeout=15.0,
    )


async def main() -> None:
    """Run the producer under the supervisor until SIGINT/SIGTERM."""
    load_dotenv()
    configure_logging_from_env("producer")

    config = ProducerConfig()
    validation_errors = config.validate()
    if validation_errors:
        for error in validation_errors:
            logger.error(f"Configuration error: {error}")
        sys.exit(1)

    service = ProducerService(config)
    try:
        await run_with_supervisor([(service, build_supervisor_config(config))])
    finally:
        await service.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
