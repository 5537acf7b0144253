"""
Events module for streaming session progress to subscribers.
"""

from causal_nba_agent.events.notifier import (
    EventNotifier,
    EventType,
    SessionChannel,
    SessionEvent,
    Subscription,
)

__all__ = [
    "EventNotifier",
    "EventType",
    "SessionChannel",
    "SessionEvent",
    "Subscription",
]
