"""
Pydantic schemas for the orchestrator module.

Defines session records and the append-only thought/action/feedback
log that makes up a session's reasoning trace.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _now_utc() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    """Lifecycle status of a reasoning session."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)


class GoalType(str, Enum):
    """What a session is trying to produce."""

    NBA_GENERATION = "nba_generation"
    CAUSAL_INVESTIGATION = "causal_investigation"


class AgentType(str, Enum):
    """Agent that authored a thought or action."""

    ORCHESTRATOR = "orchestrator"
    PLANNER = "planner"
    ANALYST = "analyst"
    SYNTHESIZER = "synthesizer"
    REFLECTOR = "reflector"
    HYPOTHESIS_GENERATOR = "hypothesis_generator"
    EVIDENCE_GATHERER = "evidence_gatherer"


class ThoughtKind(str, Enum):
    """Kind of recorded thought."""

    OBSERVATION = "observation"
    REASONING = "reasoning"
    CRITIQUE = "critique"


class ActionType(str, Enum):
    """Kind of recorded action."""

    QUERY_DATA = "query_data"
    ANALYZE_PATTERN = "analyze_pattern"
    GENERATE_NBA = "generate_nba"
    GENERATE_HYPOTHESES = "generate_hypotheses"
    GATHER_EVIDENCE = "gather_evidence"


ActionCategory = Literal["meeting", "email", "call", "event"]
Priority = Literal["High", "Medium", "Low"]
RecommendationBasis = Literal["confirmed", "proven", "none"]


class SessionRecord(BaseModel):
    """A persisted reasoning session."""

    id: UUID = Field(default_factory=uuid4, description="Unique session identifier")
    goal_description: str = Field(..., description="Human-readable goal")
    goal_type: GoalType = Field(..., description="Kind of session")
    status: SessionStatus = Field(default=SessionStatus.PENDING)
    current_phase: str | None = Field(default=None, description="Label of the phase in progress")
    context: dict[str, Any] = Field(default_factory=dict, description="Session inputs (holds subject_id)")
    confidence: float | None = Field(default=None, ge=0.0, le=100.0, description="Final confidence (0-100)")
    final_outcome: str | None = Field(default=None, description="Outcome summary or error text")
    human_confirmed: bool = Field(default=False, description="Whether a human confirmed the findings")
    started_at: datetime = Field(default_factory=_now_utc)
    completed_at: datetime | None = Field(default=None)

    @property
    def subject_id(self) -> int | None:
        value = self.context.get("subject_id")
        return int(value) if value is not None else None


class ThoughtRecord(BaseModel):
    """One step of recorded reasoning."""

    session_id: UUID
    sequence_number: int = Field(..., ge=1, description="Strictly increasing within a session")
    agent_type: AgentType
    kind: ThoughtKind
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now_utc)


class ActionRecord(BaseModel):
    """A data query, analysis or generation step taken by an agent."""

    session_id: UUID
    agent_type: AgentType
    action_type: ActionType
    description: str
    params: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] = Field(default_factory=dict)
    success: bool = True
    error_message: str | None = None
    executed_at: datetime = Field(default_factory=_now_utc)


class FeedbackRecord(BaseModel):
    """Self-critique produced by the reflector."""

    session_id: UUID
    feedback_type: Literal["self_critique"] = "self_critique"
    agent_type: AgentType = AgentType.REFLECTOR
    critique: str
    improvements: list[str] = Field(default_factory=list)
    improvement_suggestion: str = Field(default="", description="Improvements joined with '; '")
    lessons_learned: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now_utc)


class RecommendationRecord(BaseModel):
    """A Next Best Action produced by the synthesizer."""

    id: UUID = Field(default_factory=uuid4)
    subject_id: int
    session_id: UUID
    action: str
    category: ActionCategory
    priority: Priority
    reason: str
    insight: str
    confidence: float = Field(..., ge=0.0, le=100.0)
    expected_outcome: str = ""
    timeframe: str = ""
    status: Literal["pending", "completed", "dismissed"] = "pending"
    based_on: RecommendationBasis = "none"
    generated_at: datetime = Field(default_factory=_now_utc)


class SessionDetails(BaseModel):
    """A session with its full reasoning trace."""

    session: SessionRecord
    thoughts: list[ThoughtRecord] = Field(default_factory=list)
    actions: list[ActionRecord] = Field(default_factory=list)
    feedback: list[FeedbackRecord] = Field(default_factory=list)
