"""
Session bookkeeping.

Records a session's thoughts, actions and phase changes to the store and
mirrors each one onto the session's event channel.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from causal_nba_agent.db.store import SessionStore
from causal_nba_agent.events.notifier import EventNotifier, EventType
from causal_nba_agent.orchestrator.schemas import (
    ActionRecord,
    ActionType,
    AgentType,
    FeedbackRecord,
    RecommendationRecord,
    SessionRecord,
    SessionStatus,
    ThoughtKind,
    ThoughtRecord,
)

logger = logging.getLogger(__name__)


class SessionRecorder:
    """
    Writes the reasoning trace of one session.

    Thought sequence numbers are owned by the recorder and start at 1
    (or continue after the last stored thought when a session is resumed).
    """

    def __init__(self, store: SessionStore, notifier: EventNotifier, session_id: UUID) -> None:
        """
        Initialize the recorder.

        Args:
            store: Session store to write to.
            notifier: Notifier whose channel for ``session_id`` receives events.
            session_id: Session being recorded.
        """
        self._store = store
        self._notifier = notifier
        self._session_id = session_id
        self._sequence = 0

    @property
    def session_id(self) -> UUID:
        return self._session_id

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def last_sequence(self) -> int:
        return self._sequence

    async def open(self) -> SessionRecord:
        """Load the session and resume sequence numbering after any stored thoughts."""
        session = await self._store.get_session(self._session_id)
        thoughts = await self._store.list_thoughts(self._session_id)
        self._sequence = max((t.sequence_number for t in thoughts), default=0)
        return session

    async def thought(
        self,
        agent_type: AgentType,
        kind: ThoughtKind,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> ThoughtRecord:
        """Append a thought with the next sequence number."""
        # Reserve the number before awaiting so concurrent writers never collide
        self._sequence += 1
        record = ThoughtRecord(
            session_id=self._session_id,
            sequence_number=self._sequence,
            agent_type=agent_type,
            kind=kind,
            content=content,
            metadata=metadata or {},
        )
        await self._store.append_thought(record)
        self._notifier.publish(self._session_id, EventType.THOUGHT, record.model_dump(mode="json"))
        return record

    async def action(
        self,
        agent_type: AgentType,
        action_type: ActionType,
        description: str,
        params: dict[str, Any] | None = None,
        result: dict[str, Any] | None = None,
        success: bool = True,
        error_message: str | None = None,
    ) -> ActionRecord:
        """Append an action."""
        record = ActionRecord(
            session_id=self._session_id,
            agent_type=agent_type,
            action_type=action_type,
            description=description,
            params=params or {},
            result=result or {},
            success=success,
            error_message=error_message,
        )
        await self._store.append_action(record)
        self._notifier.publish(self._session_id, EventType.ACTION, record.model_dump(mode="json"))
        return record

    async def phase(self, label: str) -> None:
        """Persist the current phase label and announce it."""
        await self._store.update_session(self._session_id, current_phase=label)
        self._notifier.publish(self._session_id, EventType.PHASE, {"phase": label})
        logger.debug(f"Session {self._session_id}: {label}")

    async def save_recommendation(self, recommendation: RecommendationRecord) -> RecommendationRecord:
        return await self._store.create_recommendation(recommendation)

    async def save_feedback(self, feedback: FeedbackRecord) -> None:
        await self._store.append_feedback(feedback)

    async def mark_started(self) -> SessionRecord:
        return await self._store.update_session(self._session_id, status=SessionStatus.IN_PROGRESS)

    async def complete(self, confidence: float, final_outcome: str) -> SessionRecord:
        """Mark the session completed with a clamped confidence."""
        confidence = max(0.0, min(100.0, float(confidence)))
        session = await self._store.update_session(
            self._session_id,
            status=SessionStatus.COMPLETED,
            confidence=confidence,
            final_outcome=final_outcome,
            completed_at=datetime.now(timezone.utc),
        )
        self._notifier.publish(
            self._session_id,
            EventType.COMPLETED,
            {"confidence": confidence, "final_outcome": final_outcome},
        )
        return session

    async def fail(self, message: str) -> SessionRecord:
        """Mark the session failed."""
        final_outcome = f"Error: {message}"
        session = await self._store.update_session(
            self._session_id,
            status=SessionStatus.FAILED,
            final_outcome=final_outcome,
            completed_at=datetime.now(timezone.utc),
        )
        self._notifier.publish(self._session_id, EventType.FAILED, {"error": message})
        return session

    async def is_halted(self) -> bool:
        """Whether the stored session has already reached a terminal status."""
        session = await self._store.get_session(self._session_id)
        return session.status.is_terminal
