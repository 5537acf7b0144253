"""
Per-session event broadcasting.

Each running session owns a channel. Subscribers get their own bounded
queue, so a slow reader never blocks the session; when a queue is full
the oldest buffered event is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from causal_nba_agent.config import get_settings

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Kinds of session events."""

    THOUGHT = "thought"
    ACTION = "action"
    PHASE = "phase"
    COMPLETED = "completed"
    FAILED = "failed"


class SessionEvent(BaseModel):
    """One event published on a session channel."""

    session_id: UUID
    type: EventType
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# Marks the end of a subscription's stream
_CLOSED = object()


class Subscription:
    """
    An async stream of events for one session.

    Iterate with ``async for``. The stream ends when the session's channel
    closes or when ``cancel()`` is called.
    """

    def __init__(self, session_id: UUID, maxsize: int, channel: SessionChannel | None = None) -> None:
        self._session_id = session_id
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize + 1)
        self._maxsize = maxsize
        self._channel = channel
        self._closed = False

    @property
    def session_id(self) -> UUID:
        return self._session_id

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, event: SessionEvent) -> None:
        if self._closed:
            return
        if self._queue.qsize() >= self._maxsize:
            dropped = self._queue.get_nowait()
            logger.debug(f"Subscriber queue full for session {self._session_id}; dropped {dropped.type.value} event")
        self._queue.put_nowait(event)

    def _finish(self) -> None:
        if self._closed:
            return
        self._closed = True
        # One slot is reserved for the sentinel
        self._queue.put_nowait(_CLOSED)

    def cancel(self) -> None:
        """Stop receiving events. Other subscriptions are unaffected."""
        if self._channel is not None:
            self._channel.remove(self)
        self._finish()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> SessionEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the stream finished for any later readers
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.cancel()


class SessionChannel:
    """Broadcast channel for a single session."""

    def __init__(self, session_id: UUID, queue_size: int) -> None:
        self._session_id = session_id
        self._queue_size = queue_size
        self._subscribers: list[Subscription] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self._session_id, self._queue_size, channel=self)
        if self._closed:
            subscription._finish()
        else:
            self._subscribers.append(subscription)
        return subscription

    def remove(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def publish(self, event: SessionEvent) -> None:
        if self._closed:
            return
        for subscription in list(self._subscribers):
            subscription._deliver(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscribers:
            subscription._finish()
        self._subscribers.clear()


class EventNotifier:
    """Registry of per-session channels."""

    def __init__(self, queue_size: int | None = None) -> None:
        self._queue_size = queue_size or get_settings().event_queue_size
        self._channels: dict[UUID, SessionChannel] = {}

    def open(self, session_id: UUID) -> SessionChannel:
        """Open (or return the already open) channel for a session."""
        channel = self._channels.get(session_id)
        if channel is None or channel.closed:
            channel = SessionChannel(session_id, self._queue_size)
            self._channels[session_id] = channel
        return channel

    def publish(self, session_id: UUID, event_type: EventType, payload: dict[str, Any] | None = None) -> None:
        """Publish an event to a session's subscribers. Unknown sessions are ignored."""
        channel = self._channels.get(session_id)
        if channel is None:
            return
        channel.publish(SessionEvent(session_id=session_id, type=event_type, payload=payload or {}))

    def subscribe(self, session_id: UUID) -> Subscription:
        """
        Subscribe to a session's events.

        Subscribing to an unknown or closed session returns a stream that
        is already finished.
        """
        channel = self._channels.get(session_id)
        if channel is None:
            subscription = Subscription(session_id, self._queue_size)
            subscription._finish()
            return subscription
        return channel.subscribe()

    def close(self, session_id: UUID) -> None:
        """Close a session's channel, ending every subscription on it."""
        channel = self._channels.pop(session_id, None)
        if channel is not None:
            channel.close()

    def is_open(self, session_id: UUID) -> bool:
        channel = self._channels.get(session_id)
        return channel is not None and not channel.closed
