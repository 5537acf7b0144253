"""
Insight service.

Public entry points: start investigations and recommendation runs in the
background, read session traces and investigations, confirm proven
hypotheses, and subscribe to live session events.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from uuid import UUID

from causal_nba_agent.agents.evidence_analyst import EvidenceAnalyst
from causal_nba_agent.agents.evidence_gatherer import EvidenceGatherer
from causal_nba_agent.agents.hypothesis_generator import HypothesisGenerator
from causal_nba_agent.agents.planner import Planner
from causal_nba_agent.agents.reflector import Reflector
from causal_nba_agent.agents.synthesizer import Synthesizer
from causal_nba_agent.config import get_settings
from causal_nba_agent.data.provider import DomainDataProvider
from causal_nba_agent.db.store import SessionStore
from causal_nba_agent.errors import InsightAgentError
from causal_nba_agent.events.notifier import EventNotifier, Subscription
from causal_nba_agent.models.llm_client import LLMClient, LLMClientBase
from causal_nba_agent.models.structured import StructuredGenerator
from causal_nba_agent.orchestrator.iteration_controller import IterationController, SessionHalted
from causal_nba_agent.orchestrator.schemas import (
    GoalType,
    RecommendationRecord,
    SessionDetails,
    SessionRecord,
    SessionStatus,
)
from causal_nba_agent.orchestrator.session_recorder import SessionRecorder
from causal_nba_agent.reasoning.confirmation import (
    ConfirmationGate,
    InvestigationNotFound,
    build_investigation_view,
    resolve_causal_basis,
)
from causal_nba_agent.reasoning.discovery_engine import CausalDiscoveryEngine
from causal_nba_agent.reasoning.hypotheses import ConfirmationRecord, InvestigationView

logger = logging.getLogger(__name__)


class SessionConflict(InsightAgentError):
    """Raised when an existing session cannot be reused."""


class InsightService:
    """
    Facade over the iteration controller and the causal discovery engine.

    Start calls return a session id immediately; the work runs in a
    background task whose failures are recorded on the session and never
    escape the event loop.
    """

    def __init__(
        self,
        store: SessionStore,
        data: DomainDataProvider,
        llm_client: LLMClientBase | None = None,
        notifier: EventNotifier | None = None,
        session_timeout_seconds: float | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            store: Session store.
            data: Domain data provider.
            llm_client: Inference client shared by all agents. Creates default if None.
            notifier: Event notifier. Creates one if None.
            session_timeout_seconds: Wall-clock bound per session (uses config if not provided).
        """
        settings = get_settings()
        self._store = store
        self._data = data
        self._owns_llm_client = llm_client is None
        self._llm_client = llm_client or LLMClient()
        self._notifier = notifier or EventNotifier()
        self._session_timeout = session_timeout_seconds or settings.session_timeout_seconds

        generator = StructuredGenerator(self._llm_client)
        self._planner = Planner(generator, data)
        self._analyst = EvidenceAnalyst(generator, data)
        self._synthesizer = Synthesizer(generator, data)
        self._reflector = Reflector(generator, data)
        self._engine = CausalDiscoveryEngine(
            HypothesisGenerator(generator, data),
            EvidenceGatherer(generator, data),
        )
        self._gate = ConfirmationGate(store)

        self._tasks: dict[UUID, asyncio.Task[None]] = {}

    @property
    def notifier(self) -> EventNotifier:
        return self._notifier

    async def start_investigation(self, subject_id: int) -> UUID:
        """
        Start a causal investigation for a prescriber.

        Raises:
            SubjectNotFound: The prescriber does not exist.
        """
        await self._data.get_subject(subject_id)
        session = await self._store.create_session(
            SessionRecord(
                goal_description=f"Investigate causal drivers of prescribing behaviour for subject {subject_id}",
                goal_type=GoalType.CAUSAL_INVESTIGATION,
                context={"subject_id": subject_id},
            )
        )
        logger.info(f"Starting investigation {session.id} for subject {subject_id}")
        self._spawn(session.id, lambda recorder: self._investigate(recorder, subject_id))
        return session.id

    async def start_recommendation(self, subject_id: int, existing_session_id: UUID | None = None) -> UUID:
        """
        Start a Next Best Action run for a prescriber.

        Args:
            subject_id: Prescriber to recommend for.
            existing_session_id: Reuse a pending session instead of creating one.

        Raises:
            SubjectNotFound: The prescriber does not exist.
            SessionNotFound: ``existing_session_id`` is unknown.
            SessionConflict: ``existing_session_id`` is running or no longer pending.
        """
        await self._data.get_subject(subject_id)

        if existing_session_id is not None:
            session = await self._store.get_session(existing_session_id)
            if session.id in self._tasks:
                raise SessionConflict(f"Session {session.id} is already running")
            if session.status != SessionStatus.PENDING:
                raise SessionConflict(f"Session {session.id} is already {session.status.value}")
        else:
            session = await self._store.create_session(
                SessionRecord(
                    goal_description=(
                        f"Generate optimal Next Best Action for subject {subject_id} with full reasoning trace"
                    ),
                    goal_type=GoalType.NBA_GENERATION,
                    context={"subject_id": subject_id},
                )
            )

        logger.info(f"Starting recommendation run {session.id} for subject {subject_id}")
        self._spawn(session.id, lambda recorder: self._recommend(recorder, subject_id))
        return session.id

    def _spawn(self, session_id: UUID, body: Callable[[SessionRecorder], Awaitable[None]]) -> None:
        # Open the channel before returning so callers can subscribe straight away
        self._notifier.open(session_id)
        recorder = SessionRecorder(self._store, self._notifier, session_id)
        task = asyncio.create_task(self._run_session(recorder, body), name=f"session-{session_id}")
        self._tasks[session_id] = task
        task.add_done_callback(lambda done: self._forget(session_id, done))

    def _forget(self, session_id: UUID, task: asyncio.Task[None]) -> None:
        if self._tasks.get(session_id) is task:
            del self._tasks[session_id]

    async def _run_session(
        self,
        recorder: SessionRecorder,
        body: Callable[[SessionRecorder], Awaitable[None]],
    ) -> None:
        session_id = recorder.session_id
        try:
            await recorder.open()
            await recorder.mark_started()
            if self._session_timeout:
                await asyncio.wait_for(body(recorder), timeout=self._session_timeout)
            else:
                await body(recorder)
        except SessionHalted as e:
            logger.warning(f"Session {session_id} stopped: {e}")
        except asyncio.TimeoutError:
            logger.error(f"Session {session_id} timed out after {self._session_timeout}s")
            await self._fail(recorder, f"Session timed out after {self._session_timeout} seconds")
        except asyncio.CancelledError:
            await self._fail(recorder, "Session cancelled")
            raise
        except Exception as e:
            logger.exception(f"Session {session_id} failed")
            await self._fail(recorder, str(e) or type(e).__name__)
        finally:
            self._notifier.close(session_id)

    async def _fail(self, recorder: SessionRecorder, message: str) -> None:
        try:
            await recorder.fail(message)
        except Exception:
            logger.exception(f"Could not record failure for session {recorder.session_id}")

    async def _investigate(self, recorder: SessionRecorder, subject_id: int) -> None:
        investigation = await self._engine.investigate(recorder, subject_id)

        top = investigation.headline or (investigation.ranked[0] if investigation.ranked else None)
        confidence = top.confidence if top else 0.0
        outcome = (
            f"Investigated {len(investigation.ranked) + len(investigation.unavailable)} hypotheses: "
            f"{len(investigation.proven_ids)} proven, {len(investigation.under_review_ids)} under review, "
            f"{len(investigation.ruled_out_ids)} ruled out, {len(investigation.unavailable)} unavailable"
        )
        if investigation.headline is not None:
            outcome += f". Headline: {investigation.headline.hypothesis.title}"
        await recorder.complete(confidence, outcome)

    async def _recommend(self, recorder: SessionRecorder, subject_id: int) -> None:
        causal_basis, based_on = await resolve_causal_basis(self._store, subject_id)
        controller = IterationController(
            recorder,
            subject_id,
            planner=self._planner,
            analyst=self._analyst,
            synthesizer=self._synthesizer,
            reflector=self._reflector,
            causal_basis=causal_basis,
            based_on=based_on,
        )
        await controller.run()

    async def get_session_details(self, session_id: UUID) -> SessionDetails:
        """
        Get a session with its thoughts, actions and feedback.

        Raises:
            SessionNotFound: The session does not exist.
        """
        session = await self._store.get_session(session_id)
        return SessionDetails(
            session=session,
            thoughts=await self._store.list_thoughts(session_id),
            actions=await self._store.list_actions(session_id),
            feedback=await self._store.list_feedback(session_id),
        )

    async def get_latest_investigation(self, subject_id: int) -> InvestigationView:
        """
        Get the latest investigation of a prescriber with its confirmation state.

        Raises:
            InvestigationNotFound: No investigation has completed for the subject.
        """
        investigation = await self._store.get_latest_investigation(subject_id)
        if investigation is None:
            raise InvestigationNotFound(subject_id)
        confirmation = await self._store.get_confirmation(investigation.session_id)
        return build_investigation_view(investigation, confirmation)

    async def confirm_investigation(
        self,
        subject_id: int,
        hypothesis_ids: list[str],
        notes: str = "",
    ) -> ConfirmationRecord:
        """Confirm proven hypotheses of the latest investigation."""
        return await self._gate.confirm(subject_id, hypothesis_ids, notes)

    async def get_recommendations(self, subject_id: int) -> list[RecommendationRecord]:
        """List a prescriber's recommendations, newest first."""
        return await self._store.list_recommendations(subject_id)

    def subscribe(self, session_id: UUID) -> Subscription:
        """Subscribe to a session's live events."""
        return self._notifier.subscribe(session_id)

    async def wait_for(self, session_id: UUID) -> SessionRecord:
        """Wait for a session's background work to finish and return the session."""
        task = self._tasks.get(session_id)
        if task is not None:
            await asyncio.wait({task})
        return await self._store.get_session(session_id)

    async def shutdown(self) -> None:
        """Cancel running sessions and release the inference client."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_llm_client:
            await self._llm_client.close()
