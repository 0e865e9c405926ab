"""FastStream exchange and queue definitions.

Producers publish to one durable topic exchange; the routing key is the
topic name. Each topic gets a durable queue owned by this service.
"""

from __future__ import annotations

from faststream.rabbit import ExchangeType, RabbitExchange, RabbitQueue

from notification_engine.core.settings import get_rabbit_settings

rabbit_settings = get_rabbit_settings()

DOMAIN_EVENTS_EXCHANGE = RabbitExchange(
    name=rabbit_settings.exchange_name,
    type=ExchangeType.TOPIC,
    durable=True,
    auto_delete=False,
)


def topic_queue(topic: str) -> RabbitQueue:
    """Durable queue bound to ``topic`` on the domain events exchange."""
    return RabbitQueue(
        name=rabbit_settings.get_prefixed_queue(topic),
        durable=True,
        auto_delete=False,
        routing_key=topic,
    )


TASK_EVENTS_QUEUE = topic_queue(rabbit_settings.task_events_topic)
AUTH_EVENTS_QUEUE = topic_queue(rabbit_settings.auth_events_topic)
SYSTEM_EVENTS_QUEUE = topic_queue(rabbit_settings.system_events_topic)
