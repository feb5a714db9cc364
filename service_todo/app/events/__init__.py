"""
Event publishing for the Todo Service.
"""

from .kafka_producer import KafkaEventPublisher

__all__ = [
    "KafkaEventPublisher",
]
