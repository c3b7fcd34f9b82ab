"""
Domain events.

Every event is published to the ``domain_events`` topic exchange with its
``event_type`` as the routing key, e.g. ``booking.created``. Publishing is
optional: without RABBIT_URL the publisher is disabled and ``emit`` is a no-op.
"""
import json
import uuid
from datetime import datetime, timezone

import aio_pika

from .config import RABBIT_URL

EXCHANGE_NAME = "domain_events"


def build_event(event_type: str, data: dict) -> dict:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def to_json(event: dict) -> str:
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False, default=str)


class EventPublisher:
    def __init__(self, url: str | None = RABBIT_URL, exchange_name: str = EXCHANGE_NAME):
        self.url = url
        self.exchange_name = exchange_name
        self.enabled = bool(url)
        self._connection: aio_pika.abc.AbstractRobustConnection | None = None
        self._exchange: aio_pika.abc.AbstractExchange | None = None

    @property
    def connected(self) -> bool:
        return self._exchange is not None and self._connection is not None and not self._connection.is_closed

    async def connect(self):
        if not self.enabled or self.connected:
            return

        try:
            self._connection = await aio_pika.connect_robust(self.url)
            channel = await self._connection.channel()
            self._exchange = await channel.declare_exchange(
                self.exchange_name,
                aio_pika.ExchangeType.TOPIC,
                durable=True,
            )
        except Exception as e:
            print(f"[localnest] RabbitMQ connect failed: {e}")
            self._connection = None
            self._exchange = None
            raise

    async def publish(self, event: dict) -> bool:
        """Send one event envelope. False means it was dropped."""
        if not self.enabled:
            return False

        try:
            await self.connect()
        except Exception:
            return False

        message = aio_pika.Message(
            body=to_json(event).encode("utf-8"),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            message_id=event["event_id"],
            type=event["event_type"],
        )
        try:
            await self._exchange.publish(message, routing_key=event["event_type"])
        except Exception as e:
            print(f"[localnest] RabbitMQ publish of {event['event_type']} failed: {e}")
            return False
        return True

    async def close(self):
        try:
            if self._connection and not self._connection.is_closed:
                await self._connection.close()
        finally:
            self._connection = None
            self._exchange = None


publisher = EventPublisher()


async def emit(event_type: str, data: dict) -> bool:
    return await publisher.publish(build_event(event_type, data))
