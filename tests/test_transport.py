"""Summary: Tests for the in-process transport and scheduler.

Importance: Ensures messages are encoded, dispatched by action, and always acked.
Alternatives: Test against a hosted broker emulator.
"""

from __future__ import annotations

import asyncio

import pytest

from accountpulse.transport import InProcessTransport, IntervalScheduler


@pytest.mark.asyncio
async def test_pull_dispatches_and_acks_everything() -> None:
    """Summary: Verify handler failures and unknown actions are still acked.

    Importance: A poison message must not block the subscription.
    Alternatives: Nack and redeliver failures.
    """

    received = []

    async def handler(message: dict) -> None:
        received.append(message)
        if message.get("fail"):
            raise RuntimeError("handler broke")

    transport = InProcessTransport()
    topic = transport.create_topic("invoke-load-test")
    subscription = transport.create_pull_subscription(topic, "sub", {"load": handler})

    transport.publish(topic, {"action": "load", "timestamp": 1})
    transport.publish(topic, {"action": "load", "fail": True})
    transport.publish(topic, {"action": "unknown"})
    subscription.deliver(b"not json")

    assert await subscription.pull() == 4
    assert subscription.acked == 4
    assert [message.get("timestamp") for message in received] == [1, None]
    assert subscription.backlog == 0


def test_publish_to_unknown_topic_fails() -> None:
    with pytest.raises(ValueError):
        InProcessTransport().publish("missing", {"action": "load"})


def test_subscription_is_reused_by_name() -> None:
    transport = InProcessTransport()
    topic = transport.create_topic("t")
    first = transport.create_pull_subscription(topic, "sub", {})
    second = transport.create_pull_subscription(topic, "sub", {})
    assert first is second


@pytest.mark.asyncio
async def test_scheduler_publishes_timestamped_messages() -> None:
    received = []

    async def handler(message: dict) -> None:
        received.append(message)

    transport = InProcessTransport()
    topic = transport.create_topic("t")
    transport.create_pull_subscription(topic, "sub", {"snapshot": handler})
    scheduler = IntervalScheduler(transport, clock=lambda: 42)
    scheduler.add_job("daily", topic, "snapshot", 60_000)

    transport.start()
    scheduler.start()
    for _ in range(20):
        if received:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()
    await transport.stop()

    assert received == [{"action": "snapshot", "timestamp": 42}]
