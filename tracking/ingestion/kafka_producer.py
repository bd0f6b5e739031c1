"""Kafka producer for the ingestion service.

This module provides the stream publisher used to relay event logs to
Kafka. Publishing is synchronous from the caller's point of view: it
returns only once the broker has acknowledged the write on all in-sync
replicas, or raises ``PublishError``. Retrying is the caller's job.

Includes a mock implementation for running without Kafka.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tracking.common.config import Settings, get_settings
from tracking.common.logger import get_logger

logger = get_logger(__name__)

Headers = Sequence[Tuple[str, bytes]]


class ProducerError(Exception):
    """Raised when the producer cannot be used (not started, closed)."""
    pass


class PublishError(ProducerError):
    """Raised when a message was not acknowledged by the broker."""
    pass


class BaseProducer(ABC):
    """Abstract base class for stream producers.

    This allows us to swap between real Kafka and mock implementations.
    """

    @abstractmethod
    async def start(self) -> None:
        """Connect to the broker."""
        pass

    @abstractmethod
    async def publish(self, key: str, value: bytes, headers: Optional[Headers] = None) -> None:
        """Send one message and wait for the broker acknowledgement.

        Args:
            key: Message key, used by the broker for partitioning
            value: Encoded payload
            headers: Optional message headers

        Raises:
            PublishError: If the message was not acknowledged
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the producer and cleanup resources."""
        pass


class MockKafkaProducer(BaseProducer):
    """Mock Kafka producer for running without Kafka.

    This implementation:
    - Stores messages in memory instead of sending them
    - Logs each publish
    - Fails like a real producer once closed

    Useful for local development and tests.
    """

    def __init__(self, topic: str = "tracking"):
        self.topic = topic
        self.messages: List[Dict[str, Any]] = []
        self.is_closed = False

        logger.info("Mock Kafka producer initialized (no actual Kafka connection)")

    async def start(self) -> None:
        self.is_closed = False

    async def publish(self, key: str, value: bytes, headers: Optional[Headers] = None) -> None:
        if self.is_closed:
            raise PublishError("Producer is closed")

        self.messages.append({
            "topic": self.topic,
            "key": key,
            "value": value,
            "headers": list(headers or []),
        })

        logger.info(
            "Mock: message sent to Kafka",
            topic=self.topic,
            key=key,
            size_bytes=len(value),
        )

    async def close(self) -> None:
        self.is_closed = True
        logger.info("Mock producer closed", total_messages=len(self.messages))

    def clear(self) -> None:
        """Clear sent messages (for testing)."""
        self.messages.clear()


class KafkaProducer(BaseProducer):
    """Real Kafka producer using aiokafka.

    Configured with ``acks="all"`` for maximal durability. The underlying
    client is started lazily on first publish and stopped on ``close()``.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str = "tracking",
        client_id: str = "tracking-service",
    ):
        """Initialize Kafka producer.

        Args:
            bootstrap_servers: Comma-separated broker addresses (e.g. "kafka-1:9092,kafka-2:9092")
            topic: Topic event logs are written to
            client_id: Client id reported to the brokers
        """
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.client_id = client_id
        self.producer: Optional[Any] = None
        self._started = False

        logger.info(
            "Kafka producer initializing",
            bootstrap_servers=bootstrap_servers,
            topic=topic,
        )

    async def start(self) -> None:
        """Ensure producer is started and connected to Kafka."""
        if self._started and self.producer is not None:
            return

        from aiokafka import AIOKafkaProducer

        producer = AIOKafkaProducer(
            bootstrap_servers=self.bootstrap_servers.split(","),
            client_id=self.client_id,
            key_serializer=lambda k: k.encode("utf-8") if k else None,
            acks="all",
        )

        try:
            await producer.start()
        except Exception as e:
            logger.error(
                "Failed to start Kafka producer",
                error=str(e),
                error_type=type(e).__name__,
                bootstrap_servers=self.bootstrap_servers,
            )
            # aiokafka leaves background tasks behind on a failed start
            await producer.stop()
            raise PublishError(f"Kafka producer start failed: {e}") from e

        self.producer = producer
        self._started = True

        logger.info(
            "Kafka producer started successfully",
            bootstrap_servers=self.bootstrap_servers,
        )

    async def publish(self, key: str, value: bytes, headers: Optional[Headers] = None) -> None:
        await self.start()

        try:
            metadata = await self.producer.send_and_wait(
                self.topic,
                value=value,
                key=key,
                headers=list(headers) if headers else None,
            )
        except Exception as e:
            logger.error(
                "Failed to send message to Kafka",
                error=str(e),
                error_type=type(e).__name__,
                topic=self.topic,
                key=key,
            )
            raise PublishError(f"Kafka send failed: {e}") from e

        logger.debug(
            "Message acknowledged by Kafka",
            topic=self.topic,
            key=key,
            partition=metadata.partition,
            offset=metadata.offset,
        )

    async def close(self) -> None:
        """Flush pending messages and close the Kafka producer."""
        if self.producer and self._started:
            try:
                await self.producer.stop()
                logger.info("Kafka producer closed")
            except Exception as e:
                logger.error(
                    "Error closing Kafka producer",
                    error=str(e),
                    error_type=type(e).__name__,
                )
            finally:
                self._started = False
                self.producer = None


class ProducerFactory:
    """Factory for creating producers.

    Selects mock or real producer based on the ``kafka_enabled`` setting.
    """

    @staticmethod
    def create_producer(settings: Optional[Settings] = None) -> BaseProducer:
        """Create a producer based on settings.

        Returns:
            KafkaProducer if Kafka is enabled, otherwise MockKafkaProducer
        """
        settings = settings or get_settings()

        if settings.kafka_enabled:
            logger.info(
                "Using real KafkaProducer",
                bootstrap_servers=settings.kafka_bootstrap_servers,
            )
            return KafkaProducer(
                bootstrap_servers=settings.kafka_bootstrap_servers,
                topic=settings.kafka_topic,
                client_id=settings.kafka_client_id,
            )

        logger.info("Using MockKafkaProducer (Kafka not enabled)")
        return MockKafkaProducer(topic=settings.kafka_topic)
