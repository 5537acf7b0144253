"""
Session store interface.

The engine persists sessions, their reasoning trace, recommendations,
investigations and confirmations through this interface. Writes are
last-writer-wins.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any
from uuid import UUID

from causal_nba_agent.errors import InsightAgentError
from causal_nba_agent.orchestrator.schemas import (
    ActionRecord,
    FeedbackRecord,
    RecommendationRecord,
    SessionRecord,
    ThoughtRecord,
)
from causal_nba_agent.reasoning.hypotheses import ConfirmationRecord, InvestigationRecord


class SessionNotFound(InsightAgentError):
    """Raised when a session id is unknown to the store."""

    def __init__(self, session_id: UUID) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class SessionStore(ABC):
    """Abstract persistence for sessions and their artefacts."""

    @abstractmethod
    async def create_session(self, session: SessionRecord) -> SessionRecord:
        ...

    @abstractmethod
    async def get_session(self, session_id: UUID) -> SessionRecord:
        """
        Get a session.

        Raises:
            SessionNotFound: If the session does not exist.
        """
        ...

    @abstractmethod
    async def update_session(self, session_id: UUID, **changes: Any) -> SessionRecord:
        """
        Apply field changes to a session and return the updated record.

        Raises:
            SessionNotFound: If the session does not exist.
        """
        ...

    @abstractmethod
    async def append_thought(self, thought: ThoughtRecord) -> None:
        ...

    @abstractmethod
    async def list_thoughts(self, session_id: UUID) -> list[ThoughtRecord]:
        """List thoughts ordered by sequence number."""
        ...

    @abstractmethod
    async def append_action(self, action: ActionRecord) -> None:
        ...

    @abstractmethod
    async def list_actions(self, session_id: UUID) -> list[ActionRecord]:
        ...

    @abstractmethod
    async def append_feedback(self, feedback: FeedbackRecord) -> None:
        ...

    @abstractmethod
    async def list_feedback(self, session_id: UUID) -> list[FeedbackRecord]:
        ...

    @abstractmethod
    async def create_recommendation(self, recommendation: RecommendationRecord) -> RecommendationRecord:
        ...

    @abstractmethod
    async def list_recommendations(self, subject_id: int) -> list[RecommendationRecord]:
        """List a subject's recommendations, newest first."""
        ...

    @abstractmethod
    async def save_investigation(self, investigation: InvestigationRecord) -> None:
        ...

    @abstractmethod
    async def get_latest_investigation(self, subject_id: int) -> InvestigationRecord | None:
        ...

    @abstractmethod
    async def save_confirmation(self, confirmation: ConfirmationRecord) -> None:
        ...

    @abstractmethod
    async def get_confirmation(self, session_id: UUID) -> ConfirmationRecord | None:
        """Get the latest confirmation recorded for an investigation session."""
        ...

    async def close(self) -> None:
        """Release any held resources."""


class InMemorySessionStore(SessionStore):
    """
    Dictionary-backed store.

    Records are copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._sessions: dict[UUID, SessionRecord] = {}
        self._thoughts: dict[UUID, list[ThoughtRecord]] = {}
        self._actions: dict[UUID, list[ActionRecord]] = {}
        self._feedback: dict[UUID, list[FeedbackRecord]] = {}
        self._recommendations: list[RecommendationRecord] = []
        self._investigations: list[InvestigationRecord] = []
        self._confirmations: dict[UUID, ConfirmationRecord] = {}

    def _require(self, session_id: UUID) -> SessionRecord:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def create_session(self, session: SessionRecord) -> SessionRecord:
        self._sessions[session.id] = session.model_copy(deep=True)
        return session.model_copy(deep=True)

    async def get_session(self, session_id: UUID) -> SessionRecord:
        return self._require(session_id).model_copy(deep=True)

    async def update_session(self, session_id: UUID, **changes: Any) -> SessionRecord:
        current = self._require(session_id)
        updated = SessionRecord.model_validate({**current.model_dump(), **changes})
        self._sessions[session_id] = updated
        return updated.model_copy(deep=True)

    async def append_thought(self, thought: ThoughtRecord) -> None:
        self._require(thought.session_id)
        self._thoughts.setdefault(thought.session_id, []).append(thought.model_copy(deep=True))

    async def list_thoughts(self, session_id: UUID) -> list[ThoughtRecord]:
        thoughts = sorted(self._thoughts.get(session_id, []), key=lambda t: t.sequence_number)
        return [t.model_copy(deep=True) for t in thoughts]

    async def append_action(self, action: ActionRecord) -> None:
        self._require(action.session_id)
        self._actions.setdefault(action.session_id, []).append(action.model_copy(deep=True))

    async def list_actions(self, session_id: UUID) -> list[ActionRecord]:
        return [a.model_copy(deep=True) for a in self._actions.get(session_id, [])]

    async def append_feedback(self, feedback: FeedbackRecord) -> None:
        self._require(feedback.session_id)
        self._feedback.setdefault(feedback.session_id, []).append(feedback.model_copy(deep=True))

    async def list_feedback(self, session_id: UUID) -> list[FeedbackRecord]:
        return [f.model_copy(deep=True) for f in self._feedback.get(session_id, [])]

    async def create_recommendation(self, recommendation: RecommendationRecord) -> RecommendationRecord:
        self._recommendations.append(recommendation.model_copy(deep=True))
        return recommendation.model_copy(deep=True)

    async def list_recommendations(self, subject_id: int) -> list[RecommendationRecord]:
        matches = [r for r in self._recommendations if r.subject_id == subject_id]
        return [r.model_copy(deep=True) for r in reversed(matches)]

    async def save_investigation(self, investigation: InvestigationRecord) -> None:
        self._investigations.append(investigation.model_copy(deep=True))

    async def get_latest_investigation(self, subject_id: int) -> InvestigationRecord | None:
        for investigation in reversed(self._investigations):
            if investigation.subject_id == subject_id:
                return investigation.model_copy(deep=True)
        return None

    async def save_confirmation(self, confirmation: ConfirmationRecord) -> None:
        self._confirmations[confirmation.session_id] = confirmation.model_copy(deep=True)

    async def get_confirmation(self, session_id: UUID) -> ConfirmationRecord | None:
        confirmation = self._confirmations.get(session_id)
        return confirmation.model_copy(deep=True) if confirmation else None
