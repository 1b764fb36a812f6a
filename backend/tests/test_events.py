"""Tests for the event bus and offer events."""

import asyncio
import contextlib

import pytest
from httpx import AsyncClient

from naafe.core.events import EventBus, event_bus


async def start_listening(subscription):
    """Begin waiting for the next event; the subscriber registers on first poll."""
    task = asyncio.create_task(subscription.__anext__())
    await asyncio.sleep(0)
    return task


@pytest.mark.asyncio
async def test_broadcast_reaches_every_subscriber():
    bus = EventBus()
    first = bus.subscribe()
    second = bus.subscribe("user-2")
    first_task = await start_listening(first)
    second_task = await start_listening(second)
    assert bus.subscriber_count == 2

    await bus.publish("negotiation:update", {"offer_id": "offer-1"})

    for task in (first_task, second_task):
        event = await asyncio.wait_for(task, timeout=1)
        assert event["type"] == "negotiation:update"
        assert event["data"] == {"offer_id": "offer-1"}
        assert event["audience"] is None

    await first.aclose()
    await second.aclose()
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_audience_filters_user_subscribers():
    bus = EventBus()
    subscription = bus.subscribe("user-2")
    task = await start_listening(subscription)

    await bus.publish("service:cancelled", {"offer_id": "offer-1"}, audience=["user-1"])
    await bus.publish("service:cancelled", {"offer_id": "offer-2"}, audience=["user-1", "user-2"])

    event = await asyncio.wait_for(task, timeout=1)
    assert event["data"] == {"offer_id": "offer-2"}
    assert event["audience"] == ["user-1", "user-2"]

    await subscription.aclose()


@pytest.mark.asyncio
async def test_overflowing_subscriber_stream_ends():
    """A subscriber that falls behind is dropped and its stream finishes."""
    bus = EventBus(queue_size=2)
    subscription = bus.subscribe("user-1")
    task = await start_listening(subscription)

    await bus.publish("negotiation:update", {"offer_id": "offer-1"})
    await asyncio.wait_for(task, timeout=1)

    for n in range(2, 5):
        await bus.publish("negotiation:update", {"offer_id": f"offer-{n}"})

    assert bus.subscriber_count == 0
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(subscription.__anext__(), timeout=1)


@pytest.mark.asyncio
async def test_negotiation_update_is_published_to_parties(client: AsyncClient, offer, seeker, provider):
    seeker_user, _ = seeker
    _, provider_headers = provider
    subscription = event_bus.subscribe(seeker_user["id"])
    task = await start_listening(subscription)

    try:
        response = await client.patch(
            f"/api/offers/{offer['id']}/negotiation",
            headers=provider_headers,
            json={"scope": "two rooms"}
        )
        assert response.status_code == 200

        event = await asyncio.wait_for(task, timeout=1)
        assert event["type"] == "negotiation:update"
        assert event["data"]["offer_id"] == offer["id"]
        assert event["data"]["status"] == "negotiating"
        assert event["data"]["version"] == response.json()["version"]
        assert seeker_user["id"] in event["audience"]
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        await subscription.aclose()
