"""
Event publisher for fulfillment notifications.

Publishing is fire-and-forget from the pipeline's point of view: events are
queued with ``transaction.on_commit`` and a failing publisher is logged, it
never rolls back the business transaction.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Tuple

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

logger = logging.getLogger(__name__)


class EventPublisherInterface(ABC):
    """Contract for the pub/sub mechanism (opaque, at-least-once)."""

    @abstractmethod
    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        """
        Publish one event.

        Args:
            topic: Dotted event name, e.g. ``order.allocated``
            payload: JSON-serialisable event body
        """
        pass


class LoggingEventPublisher(EventPublisherInterface):
    """Writes every event to the log. Default when no broker is configured."""

    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Event {topic}: {json.dumps(payload, cls=DjangoJSONEncoder, sort_keys=True)}")


class InMemoryEventPublisher(EventPublisherInterface):
    """Keeps published events in a list, for tests."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        self.events.append((topic, payload))

    def topics(self) -> List[str]:
        return [topic for topic, _ in self.events]

    def clear(self):
        self.events.clear()


def publish_after_commit(publisher: EventPublisherInterface, topic: str, payload: Dict[str, Any]):
    """
    Queue an event to be published once the current transaction commits.

    Outside a transaction the event is published immediately. A failing
    publisher is reported by Django's robust on_commit handler, which logs
    the error and carries on with the remaining callbacks.
    """
    def _publish():
        publisher.publish(topic, payload)

    transaction.on_commit(_publish, robust=True)
