"""
Repository pattern for database operations.

Provides a clean abstraction over SQLAlchemy for CRUD operations, and a
``SessionStore`` implementation built on the repositories.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from causal_nba_agent.db.models import (
    ActionModel,
    Base,
    ConfirmationModel,
    FeedbackModel,
    InvestigationModel,
    RecommendationModel,
    SessionModel,
    ThoughtModel,
)
from causal_nba_agent.db.store import SessionNotFound, SessionStore
from causal_nba_agent.orchestrator.schemas import (
    ActionRecord,
    FeedbackRecord,
    RecommendationRecord,
    SessionRecord,
    ThoughtRecord,
)
from causal_nba_agent.reasoning.hypotheses import ConfirmationRecord, InvestigationRecord

T = TypeVar("T", bound=Base)


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository with common CRUD operations."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize the repository.

        Args:
            session: SQLAlchemy async session.
        """
        self._session = session

    @property
    @abstractmethod
    def _model_class(self) -> type[T]:
        """Get the model class for this repository."""
        ...

    async def get_by_id(self, entity_id: Any) -> T | None:
        """
        Get an entity by its ID.

        Args:
            entity_id: The entity's primary key.

        Returns:
            The entity if found, None otherwise.
        """
        return await self._session.get(self._model_class, entity_id)

    async def create(self, entity: T) -> T:
        """
        Create a new entity.

        Args:
            entity: The entity to create.

        Returns:
            The created entity.
        """
        self._session.add(entity)
        await self._session.flush()
        await self._session.refresh(entity)
        return entity

    async def update(self, entity: T) -> T:
        """
        Update an existing entity.

        Args:
            entity: The entity to update.

        Returns:
            The updated entity.
        """
        await self._session.flush()
        await self._session.refresh(entity)
        return entity


class SessionRepository(BaseRepository[SessionModel]):
    """Repository for reasoning sessions."""

    @property
    def _model_class(self) -> type[SessionModel]:
        return SessionModel

    async def create_from_record(self, record: SessionRecord) -> SessionModel:
        session = SessionModel(id=record.id)
        self.apply_record(session, record)
        return await self.create(session)

    @staticmethod
    def apply_record(model: SessionModel, record: SessionRecord) -> None:
        """Copy every field of a session record onto the model."""
        model.goal_description = record.goal_description
        model.goal_type = record.goal_type.value
        model.status = record.status.value
        model.current_phase = record.current_phase
        model.context = dict(record.context)
        model.confidence = record.confidence
        model.final_outcome = record.final_outcome
        model.human_confirmed = record.human_confirmed
        model.started_at = record.started_at
        model.completed_at = record.completed_at

    @staticmethod
    def to_record(model: SessionModel) -> SessionRecord:
        return SessionRecord(
            id=model.id,
            goal_description=model.goal_description,
            goal_type=model.goal_type,
            status=model.status,
            current_phase=model.current_phase,
            context=model.context or {},
            confidence=model.confidence,
            final_outcome=model.final_outcome,
            human_confirmed=model.human_confirmed,
            started_at=model.started_at,
            completed_at=model.completed_at,
        )


class ThoughtRepository(BaseRepository[ThoughtModel]):
    """Repository for recorded thoughts."""

    @property
    def _model_class(self) -> type[ThoughtModel]:
        return ThoughtModel

    async def list_for_session(self, session_id: UUID) -> list[ThoughtModel]:
        stmt = (
            select(ThoughtModel)
            .where(ThoughtModel.session_id == session_id)
            .order_by(ThoughtModel.sequence_number)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class ActionRepository(BaseRepository[ActionModel]):
    """Repository for recorded actions."""

    @property
    def _model_class(self) -> type[ActionModel]:
        return ActionModel

    async def list_for_session(self, session_id: UUID) -> list[ActionModel]:
        stmt = select(ActionModel).where(ActionModel.session_id == session_id).order_by(ActionModel.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class FeedbackRepository(BaseRepository[FeedbackModel]):
    """Repository for reflector feedback."""

    @property
    def _model_class(self) -> type[FeedbackModel]:
        return FeedbackModel

    async def list_for_session(self, session_id: UUID) -> list[FeedbackModel]:
        stmt = select(FeedbackModel).where(FeedbackModel.session_id == session_id).order_by(FeedbackModel.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class RecommendationRepository(BaseRepository[RecommendationModel]):
    """Repository for recommendations."""

    @property
    def _model_class(self) -> type[RecommendationModel]:
        return RecommendationModel

    async def list_for_subject(self, subject_id: int, limit: int = 100) -> list[RecommendationModel]:
        stmt = (
            select(RecommendationModel)
            .where(RecommendationModel.subject_id == subject_id)
            .order_by(RecommendationModel.generated_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class InvestigationRepository(BaseRepository[InvestigationModel]):
    """Repository for causal investigations."""

    @property
    def _model_class(self) -> type[InvestigationModel]:
        return InvestigationModel

    async def get_latest_for_subject(self, subject_id: int) -> InvestigationModel | None:
        stmt = (
            select(InvestigationModel)
            .where(InvestigationModel.subject_id == subject_id)
            .order_by(InvestigationModel.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class ConfirmationRepository(BaseRepository[ConfirmationModel]):
    """Repository for human confirmations."""

    @property
    def _model_class(self) -> type[ConfirmationModel]:
        return ConfirmationModel

    async def get_latest_for_session(self, session_id: UUID) -> ConfirmationModel | None:
        stmt = (
            select(ConfirmationModel)
            .where(ConfirmationModel.session_id == session_id)
            .order_by(ConfirmationModel.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class SqlSessionStore(SessionStore):
    """
    ``SessionStore`` backed by SQLAlchemy.

    Every store call runs in its own database session and transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], engine: AsyncEngine | None = None) -> None:
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    def from_url(cls, database_url: str, **engine_kwargs: Any) -> SqlSessionStore:
        """Create a store with its own engine."""
        engine = create_async_engine(database_url, **engine_kwargs)
        return cls(async_sessionmaker(engine, expire_on_commit=False), engine=engine)

    async def create_all(self) -> None:
        """Create all tables (development and tests; production uses migrations)."""
        if self._engine is None:
            raise RuntimeError("create_all requires a store created with an engine")
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    async def create_session(self, session: SessionRecord) -> SessionRecord:
        async with self._session_factory() as db, db.begin():
            model = await SessionRepository(db).create_from_record(session)
            return SessionRepository.to_record(model)

    async def get_session(self, session_id: UUID) -> SessionRecord:
        async with self._session_factory() as db:
            model = await SessionRepository(db).get_by_id(session_id)
            if model is None:
                raise SessionNotFound(session_id)
            return SessionRepository.to_record(model)

    async def update_session(self, session_id: UUID, **changes: Any) -> SessionRecord:
        async with self._session_factory() as db, db.begin():
            repo = SessionRepository(db)
            model = await repo.get_by_id(session_id)
            if model is None:
                raise SessionNotFound(session_id)
            current = SessionRepository.to_record(model)
            updated = SessionRecord.model_validate({**current.model_dump(), **changes})
            SessionRepository.apply_record(model, updated)
            await repo.update(model)
            return updated

    async def _require_session(self, db: AsyncSession, session_id: UUID) -> None:
        if await SessionRepository(db).get_by_id(session_id) is None:
            raise SessionNotFound(session_id)

    async def append_thought(self, thought: ThoughtRecord) -> None:
        async with self._session_factory() as db, db.begin():
            await self._require_session(db, thought.session_id)
            await ThoughtRepository(db).create(
                ThoughtModel(
                    session_id=thought.session_id,
                    sequence_number=thought.sequence_number,
                    agent_type=thought.agent_type.value,
                    kind=thought.kind.value,
                    content=thought.content,
                    metadata_=thought.metadata,
                    created_at=thought.created_at,
                )
            )

    async def list_thoughts(self, session_id: UUID) -> list[ThoughtRecord]:
        async with self._session_factory() as db:
            models = await ThoughtRepository(db).list_for_session(session_id)
            return [
                ThoughtRecord(
                    session_id=m.session_id,
                    sequence_number=m.sequence_number,
                    agent_type=m.agent_type,
                    kind=m.kind,
                    content=m.content,
                    metadata=m.metadata_ or {},
                    created_at=m.created_at,
                )
                for m in models
            ]

    async def append_action(self, action: ActionRecord) -> None:
        async with self._session_factory() as db, db.begin():
            await self._require_session(db, action.session_id)
            await ActionRepository(db).create(
                ActionModel(
                    session_id=action.session_id,
                    agent_type=action.agent_type.value,
                    action_type=action.action_type.value,
                    description=action.description,
                    params=action.params,
                    result=action.result,
                    success=action.success,
                    error_message=action.error_message,
                    executed_at=action.executed_at,
                )
            )

    async def list_actions(self, session_id: UUID) -> list[ActionRecord]:
        async with self._session_factory() as db:
            models = await ActionRepository(db).list_for_session(session_id)
            return [
                ActionRecord(
                    session_id=m.session_id,
                    agent_type=m.agent_type,
                    action_type=m.action_type,
                    description=m.description,
                    params=m.params or {},
                    result=m.result or {},
                    success=m.success,
                    error_message=m.error_message,
                    executed_at=m.executed_at,
                )
                for m in models
            ]

    async def append_feedback(self, feedback: FeedbackRecord) -> None:
        async with self._session_factory() as db, db.begin():
            await self._require_session(db, feedback.session_id)
            await FeedbackRepository(db).create(
                FeedbackModel(
                    session_id=feedback.session_id,
                    feedback_type=feedback.feedback_type,
                    agent_type=feedback.agent_type.value,
                    critique=feedback.critique,
                    improvements=feedback.improvements,
                    improvement_suggestion=feedback.improvement_suggestion,
                    lessons_learned=feedback.lessons_learned,
                    created_at=feedback.created_at,
                )
            )

    async def list_feedback(self, session_id: UUID) -> list[FeedbackRecord]:
        async with self._session_factory() as db:
            models = await FeedbackRepository(db).list_for_session(session_id)
            return [
                FeedbackRecord(
                    session_id=m.session_id,
                    agent_type=m.agent_type,
                    critique=m.critique,
                    improvements=m.improvements or [],
                    improvement_suggestion=m.improvement_suggestion,
                    lessons_learned=m.lessons_learned or [],
                    created_at=m.created_at,
                )
                for m in models
            ]

    async def create_recommendation(self, recommendation: RecommendationRecord) -> RecommendationRecord:
        async with self._session_factory() as db, db.begin():
            await RecommendationRepository(db).create(
                RecommendationModel(**recommendation.model_dump())
            )
            return recommendation

    async def list_recommendations(self, subject_id: int) -> list[RecommendationRecord]:
        async with self._session_factory() as db:
            models = await RecommendationRepository(db).list_for_subject(subject_id)
            return [
                RecommendationRecord(
                    id=m.id,
                    subject_id=m.subject_id,
                    session_id=m.session_id,
                    action=m.action,
                    category=m.category,
                    priority=m.priority,
                    reason=m.reason,
                    insight=m.insight,
                    confidence=m.confidence,
                    expected_outcome=m.expected_outcome,
                    timeframe=m.timeframe,
                    status=m.status,
                    based_on=m.based_on,
                    generated_at=m.generated_at,
                )
                for m in models
            ]

    async def save_investigation(self, investigation: InvestigationRecord) -> None:
        async with self._session_factory() as db, db.begin():
            await InvestigationRepository(db).create(
                InvestigationModel(
                    session_id=investigation.session_id,
                    subject_id=investigation.subject_id,
                    data=investigation.model_dump(mode="json"),
                    created_at=investigation.created_at,
                )
            )

    async def get_latest_investigation(self, subject_id: int) -> InvestigationRecord | None:
        async with self._session_factory() as db:
            model = await InvestigationRepository(db).get_latest_for_subject(subject_id)
            if model is None:
                return None
            return InvestigationRecord.model_validate(model.data)

    async def save_confirmation(self, confirmation: ConfirmationRecord) -> None:
        async with self._session_factory() as db, db.begin():
            await ConfirmationRepository(db).create(
                ConfirmationModel(
                    session_id=confirmation.session_id,
                    subject_id=confirmation.subject_id,
                    hypothesis_ids=list(confirmation.hypothesis_ids),
                    notes=confirmation.notes,
                    confirmed_at=confirmation.confirmed_at,
                )
            )

    async def get_confirmation(self, session_id: UUID) -> ConfirmationRecord | None:
        async with self._session_factory() as db:
            model = await ConfirmationRepository(db).get_latest_for_session(session_id)
            if model is None:
                return None
            return ConfirmationRecord(
                session_id=model.session_id,
                subject_id=model.subject_id,
                hypothesis_ids=model.hypothesis_ids,
                notes=model.notes,
                confirmed_at=model.confirmed_at,
            )
