"""
SQLAlchemy models for database persistence.

Defines the schema for sessions, their reasoning trace, recommendations,
investigations and confirmations.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class SessionModel(Base):
    """Database model for reasoning sessions."""

    __tablename__ = "agent_sessions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    goal_description: Mapped[str] = mapped_column(Text, nullable=False)
    goal_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    current_phase: Mapped[str | None] = mapped_column(String(255), nullable=True)
    context: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    final_outcome: Mapped[str | None] = mapped_column(Text, nullable=True)
    human_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    thoughts: Mapped[list["ThoughtModel"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ThoughtModel.sequence_number",
    )


class ThoughtModel(Base):
    """Database model for recorded thoughts."""

    __tablename__ = "agent_thoughts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    session_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("agent_sessions.id"), nullable=False, index=True)
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)
    agent_type: Mapped[str] = mapped_column(String(50), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        default=dict,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)

    # Relationships
    session: Mapped["SessionModel"] = relationship(back_populates="thoughts")


class ActionModel(Base):
    """Database model for recorded actions."""

    __tablename__ = "agent_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("agent_sessions.id"), nullable=False, index=True)
    agent_type: Mapped[str] = mapped_column(String(50), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    params: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    result: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    executed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)


class FeedbackModel(Base):
    """Database model for reflector self-critique."""

    __tablename__ = "agent_feedback"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("agent_sessions.id"), nullable=False, index=True)
    feedback_type: Mapped[str] = mapped_column(String(50), nullable=False, default="self_critique")
    agent_type: Mapped[str] = mapped_column(String(50), nullable=False)
    critique: Mapped[str] = mapped_column(Text, nullable=False)
    improvements: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    improvement_suggestion: Mapped[str] = mapped_column(Text, default="", nullable=False)
    lessons_learned: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)


class RecommendationModel(Base):
    """Database model for Next Best Action recommendations."""

    __tablename__ = "recommendations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    subject_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    session_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("agent_sessions.id"), nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    insight: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    expected_outcome: Mapped[str] = mapped_column(Text, default="", nullable=False)
    timeframe: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    based_on: Mapped[str] = mapped_column(String(20), default="none", nullable=False)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)


class InvestigationModel(Base):
    """Database model for completed causal investigations."""

    __tablename__ = "investigations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("agent_sessions.id"), nullable=False)
    subject_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # Full ranked/partitioned investigation as JSON
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)


class ConfirmationModel(Base):
    """Database model for human confirmations of proven hypotheses."""

    __tablename__ = "confirmations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("agent_sessions.id"), nullable=False, index=True)
    subject_id: Mapped[int] = mapped_column(Integer, nullable=False)
    hypothesis_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)
    confirmed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)
