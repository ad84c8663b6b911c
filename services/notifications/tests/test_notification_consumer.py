# services/notifications/tests/test_notification_consumer.py
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from aio_pika import ExchangeType

import consumer
from consumer import NotificationConsumer, SeenEvents


class RecordingSender:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send(self, notification):
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append(notification)


def _message(body, type_="order.created", routing_key="order.created.key"):
    msg = MagicMock()
    msg.body = body if isinstance(body, bytes) else json.dumps(body).encode()
    msg.type = type_
    msg.routing_key = routing_key
    msg.message_id = "m-1"
    msg.ack = AsyncMock()
    msg.reject = AsyncMock()
    return msg


def _created(event_id=None):
    return {
        "eventId": str(event_id or uuid4()),
        "orderId": str(uuid4()),
        "userId": str(uuid4()),
        "userEmail": "ada@example.com",
        "userName": "Ada Lovelace",
        "totalAmount": "20.00",
        "orderItems": [],
    }


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def nc(sender):
    return NotificationConsumer(url="amqp://test/", sender=sender, dedupe_window=3)


def test_created_event_is_sent_and_acked(nc, sender):
    msg = _message(_created())
    asyncio.run(nc.handle(msg))

    assert len(sender.sent) == 1
    assert sender.sent[0].recipient == "ada@example.com"
    msg.ack.assert_awaited_once()


def test_status_event_routed_by_routing_key(nc, sender):
    body = dict(_created(), oldStatus="PENDING", newStatus="CONFIRMED")
    msg = _message(body, type_=None, routing_key="order.status.changed.key")
    asyncio.run(nc.handle(msg))

    assert "Onaylandı" in sender.sent[0].subject


def test_duplicate_delivery_is_skipped(nc, sender):
    body = _created()
    first, second = _message(body), _message(body)
    asyncio.run(nc.handle(first))
    asyncio.run(nc.handle(second))

    assert len(sender.sent) == 1
    second.ack.assert_awaited_once()


def test_malformed_message_is_acked_not_sent(nc, sender, caplog):
    msg = _message(b"{not json")
    with caplog.at_level("ERROR", logger="notifications"):
        asyncio.run(nc.handle(msg))

    assert sender.sent == []
    msg.ack.assert_awaited_once()
    msg.reject.assert_not_awaited()
    assert "malformed event" in caplog.text


def test_missing_email_is_malformed(nc, sender):
    body = dict(_created(), userEmail="")
    msg = _message(body)
    asyncio.run(nc.handle(msg))
    assert sender.sent == []
    msg.ack.assert_awaited_once()


def test_unknown_type_is_acked(nc, sender):
    msg = _message(_created(), type_="order.deleted", routing_key="other.key")
    asyncio.run(nc.handle(msg))
    assert sender.sent == []
    msg.ack.assert_awaited_once()


def test_failed_send_is_requeued_and_not_remembered():
    failing = NotificationConsumer(url="amqp://test/", sender=RecordingSender(fail=True))
    body = _created()
    msg = _message(body)
    asyncio.run(failing.handle(msg))

    msg.reject.assert_awaited_once_with(requeue=True)
    msg.ack.assert_not_awaited()

    # la reentrega sí se procesa
    failing.sender = RecordingSender()
    retry = _message(body)
    asyncio.run(failing.handle(retry))
    assert len(failing.sender.sent) == 1


def test_seen_window_is_bounded():
    seen = SeenEvents(size=2)
    a, b, c = uuid4(), uuid4(), uuid4()
    for eid in (a, b, c):
        seen.add(eid)
    assert len(seen) == 2
    assert a not in seen
    assert b in seen and c in seen


def test_connect_declares_topology(nc):
    channel = MagicMock()
    channel.set_qos = AsyncMock()
    exchange = MagicMock()
    channel.declare_exchange = AsyncMock(return_value=exchange)
    queue = MagicMock()
    queue.bind = AsyncMock()
    queue.consume = AsyncMock()
    channel.declare_queue = AsyncMock(return_value=queue)
    connection = MagicMock()
    connection.channel = AsyncMock(return_value=channel)
    connection.close = AsyncMock()

    with patch.object(consumer.aio_pika, "connect_robust", AsyncMock(return_value=connection)) as connect:
        asyncio.run(nc.connect())
        asyncio.run(nc.close())

    connect.assert_awaited_once_with("amqp://test/")
    channel.declare_exchange.assert_awaited_once_with(
        name="order.events.exchange", type=ExchangeType.DIRECT, durable=True
    )
    names = [c.kwargs["name"] for c in channel.declare_queue.await_args_list]
    assert names == ["order.created", "order.status.changed"]
    keys = [c.kwargs["routing_key"] for c in queue.bind.await_args_list]
    assert keys == ["order.created.key", "order.status.changed.key"]
    assert queue.consume.await_count == 2
    connection.close.assert_awaited_once()
