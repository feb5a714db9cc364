"""
Kafka event publisher for the Todo service.
"""

import asyncio
import json
from typing import List, Optional

from kafka import KafkaProducer
from kafka.errors import KafkaError

from shared.errors import EventPublishError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..models import TodoEvent


class KafkaEventPublisher:
    """Fire-and-forget publisher of todo change events.

    Delivery is at most once: failed sends raise ``EventPublishError`` and are
    never retried.
    """

    def __init__(
        self,
        bootstrap_servers: List[str],
        topic: str,
        publish_timeout: float = 5.0,
        metrics: Optional[MetricsCollector] = None
    ):
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.publish_timeout = publish_timeout
        self.metrics = metrics
        self.logger = get_logger("todo.events.kafka")
        self.producer: Optional[KafkaProducer] = None

    async def start(self):
        """Start the Kafka producer."""
        timeout_ms = int(self.publish_timeout * 1000)
        try:
            # Bootstrapping blocks on broker metadata
            self.producer = await asyncio.to_thread(
                KafkaProducer,
                bootstrap_servers=self.bootstrap_servers,
                value_serializer=lambda x: json.dumps(x).encode("utf-8"),
                key_serializer=lambda x: x.encode("utf-8") if x else None,
                acks="all",
                retries=0,
                linger_ms=5,
                request_timeout_ms=timeout_ms,
                max_block_ms=timeout_ms
            )
        except KafkaError as e:
            raise EventPublishError("Failed to start Kafka producer", str(e)) from e

        self.logger.info("Kafka producer started", brokers=self.bootstrap_servers, topic=self.topic)

    async def stop(self):
        """Stop the Kafka producer."""
        if self.producer:
            producer, self.producer = self.producer, None
            await asyncio.to_thread(producer.flush, self.publish_timeout)
            await asyncio.to_thread(producer.close, self.publish_timeout)
            self.logger.info("Kafka producer stopped")

    def _send_and_wait(self, event: TodoEvent):
        future = self.producer.send(
            self.topic,
            value=event.model_dump(mode="json"),
            key=event.key
        )
        return future.get(timeout=self.publish_timeout)

    async def publish(self, event: TodoEvent):
        """Publish a todo event to the configured topic."""
        if not self.producer:
            raise EventPublishError("Kafka producer not started")

        try:
            record_metadata = await asyncio.to_thread(self._send_and_wait, event)
        except KafkaError as e:
            raise EventPublishError("Failed to publish event", str(e)) from e

        if self.metrics:
            self.metrics.increment_counter("kafka_messages_published_total")

        self.logger.info(
            "Todo event published",
            type=event.type.value,
            todo_id=event.todo_id,
            partition=record_metadata.partition,
            offset=record_metadata.offset
        )
