"""Environment-based configuration for all EmoteStream services."""

import os

from ..logger import get_logger

logger = get_logger(__name__)

RAW_EMOTE_TOPIC = "raw-emote-data"
AGGREGATED_EMOTE_TOPIC = "aggregated-emote-data"
VIDEO_STREAM_TOPIC = "video-stream"


class CommonConfig:
    """Base configuration class for all EmoteStream services."""

    def __init__(self):
        self.service_name: str = "emotestream"

        # Broker
        self.kafka_broker: str = self.get_env("KAFKA_BROKER", "kafka:9092")
        self.raw_topic: str = self.get_env("RAW_EMOTE_TOPIC", RAW_EMOTE_TOPIC)
        self.aggregated_topic: str = self.get_env("AGGREGATED_EMOTE_TOPIC", AGGREGATED_EMOTE_TOPIC)
        self.video_topic: str = self.get_env("VIDEO_STREAM_TOPIC", VIDEO_STREAM_TOPIC)

        # Restart policy applied by the supervisor on transport failures
        self.restart_delay_seconds: float = self.get_env_float("RESTART_DELAY_SECONDS", 5.0)

        self.bind_host: str = self.get_env("BIND_HOST", "0.0.0.0")

    @property
    def bootstrap_servers(self) -> list[str]:
        """Broker addresses as a list for the Kafka clients."""
        return [server.strip() for server in self.kafka_broker.split(",") if server.strip()]

    def get_env(self, key: str, default: str | None = None) -> str | None:
        """Get an environment variable."""
        return os.getenv(key, default)

    def get_env_int(self, key: str, default: int = 0) -> int:
        """Get an environment variable as integer with validation."""
        value = os.getenv(key, str(default))
        try:
            parsed = int(value)
            if parsed < 0:
                logger.warning(f"Negative value for {key}: {parsed}, using default: {default}")
                return default
            return parsed
        except ValueError:
            logger.error(
                f"Invalid integer value for environment variable '{key}': '{value}'. "
                f"Expected a valid integer, using default: {default}"
            )
            return default

    def get_env_float(self, key: str, default: float = 0.0) -> float:
        """Get an environment variable as float with validation."""
        value = os.getenv(key, str(default))
        try:
            parsed = float(value)
            if parsed < 0:
                logger.warning(f"Negative value for {key}: {parsed}, using default: {default}")
                return default
            return parsed
        except ValueError:
            logger.error(
                f"Invalid float value for environment variable '{key}': '{value}'. "
                f"Expected a number, using default: {default}"
            )
            return default

    def _validate_common(self, errors: list[str]) -> None:
        if not self.bootstrap_servers:
            errors.append("KAFKA_BROKER must name at least one broker address")
        for name, topic in (
            ("raw", self.raw_topic),
            ("aggregated", self.aggregated_topic),
            ("video", self.video_topic),
        ):
            if not topic:
                errors.append(f"The {name} topic name cannot be empty")

    def _validate_port(self, label: str, port: int, errors: list[str]) -> None:
        if not (1 <= port <= 65535):
            errors.append(f"{label} port {port} is out of valid range (1-65535)")


class AggregatorConfig(CommonConfig):
    """Configuration for the aggregator service (emote analysis and settings API)."""

    def __init__(self):
        super().__init__()
        self.service_name = "aggregator"

        self.port: int = self.get_env_int("PORT", 3001)
        self.group_id: str = self.get_env("AGGREGATOR_GROUP_ID", "aggregator-group")
        self.publish_timeout: float = self.get_env_float("PUBLISH_TIMEOUT_SECONDS", 10.0)

        # Initial emote settings; the settings API changes them at runtime
        self.initial_interval: int = self.get_env_int("EMOTE_INTERVAL", 100)
        self.initial_threshold: float = self.get_env_float("EMOTE_THRESHOLD", 0.5)
        self.initial_allowed_emotes: list[str] = [
            emote.strip()
            for emote in self.get_env("ALLOWED_EMOTES", "❤️,👍,😢,😡").split(",")
            if emote.strip()
        ]

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            list[str]: List of validation error messages, empty if valid
        """
        errors: list[str] = []
        self._validate_common(errors)
        self._validate_port("Aggregator", self.port, errors)

        if self.initial_interval <= 0:
            errors.append(f"EMOTE_INTERVAL must be a positive integer, got {self.initial_interval}")
        if not (0 < self.initial_threshold < 1):
            errors.append(f"EMOTE_THRESHOLD must be strictly between 0 and 1, got {self.initial_threshold}")
        if not self.initial_allowed_emotes:
            logger.warning("ALLOWED_EMOTES is empty, every emote will be dropped until the allow-list is set")
        if self.publish_timeout <= 0:
            errors.append(f"PUBLISH_TIMEOUT_SECONDS must be positive, got {self.publish_timeout}")

        return errors


class RelayConfig(CommonConfig):
    """Configuration for the relay service (viewer WebSocket fan-out)."""

    def __init__(self):
        super().__init__()
        self.service_name = "relay"

        self.port: int = self.get_env_int("PORT", 3003)
        self.path: str = self.get_env("RELAY_PATH", "/ws")
        self.group_id: str = self.get_env("RELAY_GROUP_ID", "relay-group")
        self.send_timeout: float = self.get_env_float("SEND_TIMEOUT_SECONDS", 5.0)
        self.max_message_size: int = self.get_env_int("MAX_MESSAGE_SIZE", 1024 * 1024)

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            list[str]: List of validation error messages, empty if valid
        """
        errors: list[str] = []
        self._validate_common(errors)
        self._validate_port("Relay", self.port, errors)

        if not self.path.startswith("/"):
            errors.append(f"RELAY_PATH must start with '/', got {self.path!r}")
        if self.path == "/health":
            errors.append("RELAY_PATH cannot be /health, that path serves the health check")
        if self.send_timeout <= 0:
            errors.append(f"SEND_TIMEOUT_SECONDS must be positive, got {self.send_timeout}")

        return errors


class ProducerConfig(CommonConfig):
    """Configuration for the video producer."""

    def __init__(self):
        super().__init__()
        self.service_name = "producer"

        self.video_path: str = self.get_env("VIDEO_PATH", "/app/videos/video.mp4")
        self.chunk_size: int = self.get_env_int("CHUNK_SIZE", 50_000)
        self.chunk_delay: float = self.get_env_float("CHUNK_DELAY_SECONDS", 0.05)
        # 0 disables the health endpoint
        self.health_port: int = self.get_env_int("HEALTH_PORT", 3005)

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            list[str]: List of validation error messages, empty if valid
        """
        errors: list[str] = []
        self._validate_common(errors)

        if not os.path.isfile(self.video_path):
            errors.append(f"Video file not found at {self.video_path}")
        if not (1 <= self.chunk_size <= 1_000_000):
            errors.append(f"Chunk size {self.chunk_size} out of reasonable range (1-1000000 bytes)")
        if self.health_port:
            self._validate_port("Health check", self.health_port, errors)

        return errors

