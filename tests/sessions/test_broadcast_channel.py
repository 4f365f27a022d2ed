from __future__ import annotations

from convoflow.errors import DeliveryError
from convoflow.sessions.broker import BroadcastChannel
from convoflow.sessions.models import AssistantMessageEvent, ErrorEvent
from convoflow.testkit import RecordingSubscriber


class _ExplodingSubscriber:
    def __init__(self) -> None:
        self.attempts = 0

    def send(self, event: object) -> None:
        self.attempts += 1
        raise ConnectionResetError("peer went away")


def test_publish_preserves_order_for_every_subscriber() -> None:
    channel = BroadcastChannel("s1")
    first = RecordingSubscriber()
    second = RecordingSubscriber()
    channel.add(first)
    channel.add(second)

    for index in range(5):
        delivered = channel.publish(AssistantMessageEvent(content=f"m{index}", session_id="s1"))
        assert delivered == 2

    expected = [f"m{index}" for index in range(5)]
    assert [event.content for event in first.events] == expected
    assert [event.content for event in second.events] == expected


def test_add_has_set_semantics() -> None:
    channel = BroadcastChannel("s1")
    subscriber = RecordingSubscriber()

    assert channel.add(subscriber) is True
    assert channel.add(subscriber) is False
    assert len(channel) == 1
    assert subscriber in channel

    channel.publish(ErrorEvent(error="x", session_id="s1"))
    assert len(subscriber.events) == 1


def test_failed_send_removes_subscriber_without_retry() -> None:
    channel = BroadcastChannel("s1")
    healthy = RecordingSubscriber()
    exploding = _ExplodingSubscriber()
    closed = RecordingSubscriber(fail=True)
    for subscriber in (healthy, exploding, closed):
        channel.add(subscriber)

    delivered = channel.publish(AssistantMessageEvent(content="one", session_id="s1"))
    channel.publish(AssistantMessageEvent(content="two", session_id="s1"))

    assert delivered == 1
    assert exploding.attempts == 1
    assert len(channel) == 1
    assert closed not in channel
    assert [event.content for event in healthy.events] == ["one", "two"]


def test_deliver_targets_single_subscriber() -> None:
    channel = BroadcastChannel("s1")
    target = RecordingSubscriber()
    bystander = RecordingSubscriber()
    channel.add(target)
    channel.add(bystander)

    assert channel.deliver(target, ErrorEvent(error="only you", session_id="s1")) is True
    assert len(target.events) == 1
    assert bystander.events == []


def test_discard_and_clear() -> None:
    channel = BroadcastChannel("s1")
    subscriber = RecordingSubscriber()
    channel.add(subscriber)

    assert channel.discard(subscriber) is True
    assert channel.discard(subscriber) is False

    channel.add(subscriber)
    channel.clear()
    assert len(channel) == 0


def test_delivery_error_reason_is_preserved() -> None:
    error = DeliveryError("send queue full")
    assert error.reason == "send queue full"
    assert str(error) == "send queue full"
