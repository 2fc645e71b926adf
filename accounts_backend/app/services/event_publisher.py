"""
Event Publisher.

One generic ``publish(topic, key, payload)`` entry point over Redis pub/sub.
Publishing happens strictly after commit and is fire-and-forget: a failure
is logged and never propagates into the already committed settlement.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Protocol

from fastapi import Depends

from accounts_backend.app.core.config import settings
from accounts_backend.app.core.redis_client import get_redis
from accounts_backend.app.domain.events import DomainEvent, EventTopic

logger = logging.getLogger("accounts.events")


class EventPublisher(Protocol):
    async def publish(self, topic: EventTopic, key: str, payload: Dict[str, Any]) -> None:
        ...


class RedisEventPublisher:
    """Publishes each event on channel ``<prefix>:<topic>`` as a JSON message."""

    def __init__(self, client, channel_prefix: str = None):
        self.client = client
        self.channel_prefix = channel_prefix or settings.event_channel_prefix

    def channel_for(self, topic: EventTopic) -> str:
        return f"{self.channel_prefix}:{topic.value}"

    async def publish(self, topic: EventTopic, key: str, payload: Dict[str, Any]) -> None:
        message = json.dumps(
            {
                "topic": topic.value,
                "key": key,
                "payload": payload,
                "published_at": datetime.now(timezone.utc).isoformat(),
            },
            default=str,
        )
        await self.client.publish(self.channel_for(topic), message)


class NullEventPublisher:
    """Drops every event. Used when events are disabled."""

    async def publish(self, topic: EventTopic, key: str, payload: Dict[str, Any]) -> None:
        logger.debug("Event dropped", extra={"topic": topic.value, "event_key": key})


async def publish_events(publisher: EventPublisher, events: Iterable[DomainEvent]) -> int:
    """
    Publish committed events one by one.

    Returns:
        Number of events successfully handed to the publisher
    """
    published = 0
    for event in events:
        try:
            await publisher.publish(event.topic, event.key, event.payload)
            published += 1
        except Exception:
            logger.error(
                "Failed to publish event",
                exc_info=True,
                extra={"topic": event.topic.value, "event_key": event.key},
            )
    return published


async def get_event_publisher(client=Depends(get_redis)) -> EventPublisher:
    """FastAPI dependency returning the configured publisher."""
    if not settings.events_enabled:
        return NullEventPublisher()
    return RedisEventPublisher(client)
