"""
Tests for per-session event channels.
"""

import asyncio
from uuid import uuid4

import pytest

from causal_nba_agent.events import EventNotifier, EventType


async def drain(subscription) -> list:
    return [event async for event in subscription]


class TestEventNotifier:
    """Tests for EventNotifier."""

    @pytest.mark.asyncio
    async def test_events_arrive_in_order_until_close(self) -> None:
        notifier = EventNotifier(queue_size=16)
        session_id = uuid4()
        notifier.open(session_id)
        subscription = notifier.subscribe(session_id)

        notifier.publish(session_id, EventType.PHASE, {"phase": "Iteration 1 - Strategic Planning"})
        notifier.publish(session_id, EventType.THOUGHT, {"sequence_number": 1})
        notifier.publish(session_id, EventType.COMPLETED, {"confidence": 80.0})
        notifier.close(session_id)

        events = await asyncio.wait_for(drain(subscription), timeout=1)
        assert [e.type for e in events] == [EventType.PHASE, EventType.THOUGHT, EventType.COMPLETED]
        assert all(e.session_id == session_id for e in events)
        assert not notifier.is_open(session_id)

    @pytest.mark.asyncio
    async def test_events_before_subscribe_are_not_replayed(self) -> None:
        notifier = EventNotifier(queue_size=16)
        session_id = uuid4()
        notifier.open(session_id)

        notifier.publish(session_id, EventType.PHASE, {"phase": "early"})
        subscription = notifier.subscribe(session_id)
        notifier.publish(session_id, EventType.PHASE, {"phase": "late"})
        notifier.close(session_id)

        events = await asyncio.wait_for(drain(subscription), timeout=1)
        assert [e.payload["phase"] for e in events] == ["late"]

    @pytest.mark.asyncio
    async def test_unknown_session_stream_is_already_finished(self) -> None:
        notifier = EventNotifier(queue_size=16)

        subscription = notifier.subscribe(uuid4())

        assert subscription.closed
        assert await asyncio.wait_for(drain(subscription), timeout=1) == []

    @pytest.mark.asyncio
    async def test_cancel_only_affects_one_subscriber(self) -> None:
        notifier = EventNotifier(queue_size=16)
        session_id = uuid4()
        channel = notifier.open(session_id)
        first = notifier.subscribe(session_id)
        second = notifier.subscribe(session_id)

        first.cancel()
        notifier.publish(session_id, EventType.THOUGHT, {"sequence_number": 1})
        notifier.close(session_id)

        assert channel.subscriber_count == 0
        assert await asyncio.wait_for(drain(first), timeout=1) == []
        assert len(await asyncio.wait_for(drain(second), timeout=1)) == 1

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self) -> None:
        notifier = EventNotifier(queue_size=2)
        session_id = uuid4()
        notifier.open(session_id)
        subscription = notifier.subscribe(session_id)

        for n in range(1, 4):
            notifier.publish(session_id, EventType.THOUGHT, {"sequence_number": n})
        notifier.close(session_id)

        events = await asyncio.wait_for(drain(subscription), timeout=1)
        assert [e.payload["sequence_number"] for e in events] == [2, 3]

    @pytest.mark.asyncio
    async def test_context_manager_cancels_on_exit(self) -> None:
        notifier = EventNotifier(queue_size=4)
        session_id = uuid4()
        channel = notifier.open(session_id)

        async with notifier.subscribe(session_id) as subscription:
            assert channel.subscriber_count == 1

        assert subscription.closed
        assert channel.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_publish_to_unknown_session_is_ignored(self) -> None:
        notifier = EventNotifier(queue_size=4)
        unknown = uuid4()

        notifier.publish(unknown, EventType.THOUGHT, {})

        assert not notifier.is_open(unknown)
        assert await asyncio.wait_for(drain(notifier.subscribe(unknown)), timeout=1) == []

    @pytest.mark.asyncio
    async def test_events_stay_within_their_session(self) -> None:
        notifier = EventNotifier(queue_size=16)
        first, second = uuid4(), uuid4()
        notifier.open(first)
        notifier.open(second)
        first_events = notifier.subscribe(first)
        second_events = notifier.subscribe(second)

        notifier.publish(second, EventType.THOUGHT, {"sequence_number": 1})
        notifier.publish(second, EventType.COMPLETED, {"confidence": 80.0})
        notifier.close(second)
        notifier.close(first)

        assert await asyncio.wait_for(drain(first_events), timeout=1) == []
        received = await asyncio.wait_for(drain(second_events), timeout=1)
        assert [e.type for e in received] == [EventType.THOUGHT, EventType.COMPLETED]
        assert all(e.session_id == second for e in received)
