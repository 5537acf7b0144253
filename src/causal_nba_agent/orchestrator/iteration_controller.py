"""
Iteration controller.

Drives the Plan -> Evidence -> (Synthesize -> Reflect) loop for one
recommendation session as an explicit state machine. A new controller
is built for every session.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum

from causal_nba_agent.agents.evidence_analyst import EvidenceAnalyst, EvidenceResult
from causal_nba_agent.agents.planner import Planner, PlanResult
from causal_nba_agent.agents.reflector import ReflectionResult, Reflector
from causal_nba_agent.agents.synthesizer import SynthesisResult, Synthesizer
from causal_nba_agent.config import get_settings
from causal_nba_agent.errors import InsightAgentError
from causal_nba_agent.orchestrator.schemas import (
    AgentType,
    RecommendationBasis,
    RecommendationRecord,
    ThoughtKind,
)
from causal_nba_agent.orchestrator.session_recorder import SessionRecorder
from causal_nba_agent.reasoning.hypotheses import RankedHypothesis

logger = logging.getLogger(__name__)


class ControllerState(str, Enum):
    """States of the iteration loop."""

    PLANNING = "planning"
    EVIDENCE_GATHERING = "evidence_gathering"
    READINESS_CHECK = "readiness_check"
    SYNTHESIZING = "synthesizing"
    REFLECTING = "reflecting"
    TERMINATION_CHECK = "termination_check"
    DONE_SUCCESS = "done_success"
    DONE_FAILURE = "done_failure"


class IterationBoundExceeded(InsightAgentError):
    """No recommendation was produced within the iteration bound."""


class SessionHalted(InsightAgentError):
    """The session reached a terminal status outside the controller."""


@dataclass(frozen=True)
class IterationSnapshot:
    """Inputs and results of the iteration in progress."""

    iteration: int
    plan: PlanResult | None = None
    evidence: EvidenceResult | None = None
    prior_critique: ReflectionResult | None = None


@dataclass(frozen=True)
class ControllerOutcome:
    """Result of a successful loop."""

    nba: SynthesisResult
    recommendation: RecommendationRecord
    reflection: ReflectionResult
    iterations: int


class IterationController:
    """
    State machine for one recommendation session.

    Only the latest plan, evidence, synthesis and reflection are kept;
    each iteration starts from a fresh snapshot carrying the previous
    critique.
    """

    def __init__(
        self,
        recorder: SessionRecorder,
        subject_id: int,
        planner: Planner,
        analyst: EvidenceAnalyst,
        synthesizer: Synthesizer,
        reflector: Reflector,
        causal_basis: list[RankedHypothesis] | None = None,
        based_on: RecommendationBasis = "none",
        max_iterations: int | None = None,
        readiness_min_iteration: int | None = None,
        confidence_threshold: float | None = None,
    ) -> None:
        settings = get_settings()
        self._recorder = recorder
        self._subject_id = subject_id
        self._planner = planner
        self._analyst = analyst
        self._synthesizer = synthesizer
        self._reflector = reflector
        self._causal_basis = causal_basis or []
        self._based_on = based_on
        self._max_iterations = max_iterations or settings.max_iterations
        self._readiness_min_iteration = readiness_min_iteration or settings.readiness_min_iteration
        self._confidence_threshold = (
            settings.confidence_threshold if confidence_threshold is None else confidence_threshold
        )

        self._state = ControllerState.PLANNING
        self._snapshot = IterationSnapshot(iteration=0)
        self._nba: SynthesisResult | None = None
        self._recommendation: RecommendationRecord | None = None
        self._reflection: ReflectionResult | None = None

        self._handlers: dict[ControllerState, Callable[[], Awaitable[ControllerState]]] = {
            ControllerState.PLANNING: self._plan,
            ControllerState.EVIDENCE_GATHERING: self._gather_evidence,
            ControllerState.READINESS_CHECK: self._check_readiness,
            ControllerState.SYNTHESIZING: self._synthesize,
            ControllerState.REFLECTING: self._reflect,
            ControllerState.TERMINATION_CHECK: self._check_termination,
        }

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def iteration(self) -> int:
        return self._snapshot.iteration

    @property
    def snapshot(self) -> IterationSnapshot:
        return self._snapshot

    async def _phase(self, name: str) -> None:
        await self._recorder.phase(f"Iteration {self._snapshot.iteration} - {name}")

    async def _plan(self) -> ControllerState:
        if self._snapshot.iteration >= self._max_iterations:
            return ControllerState.DONE_FAILURE
        if await self._recorder.is_halted():
            raise SessionHalted(f"Session {self._recorder.session_id} was halted externally")

        # Only the critique crosses iteration boundaries
        self._snapshot = IterationSnapshot(
            iteration=self._snapshot.iteration + 1,
            prior_critique=self._snapshot.prior_critique,
        )
        iteration = self._snapshot.iteration
        await self._recorder.thought(
            AgentType.ORCHESTRATOR,
            ThoughtKind.OBSERVATION,
            f"Iteration {iteration}/{self._max_iterations}: Evaluating next step towards goal",
        )

        await self._phase("Strategic Planning")
        plan, _ = await self._planner.run(
            self._recorder,
            self._subject_id,
            iteration=iteration,
            max_iterations=self._max_iterations,
            prior_critique=self._snapshot.prior_critique,
        )
        self._snapshot = replace(self._snapshot, plan=plan)
        return ControllerState.EVIDENCE_GATHERING

    async def _gather_evidence(self) -> ControllerState:
        await self._phase("Evidence Analysis")
        evidence, _ = await self._analyst.run(self._recorder, self._subject_id, self._snapshot.iteration)
        self._snapshot = replace(self._snapshot, evidence=evidence)
        return ControllerState.READINESS_CHECK

    async def _check_readiness(self) -> ControllerState:
        evidence = self._snapshot.evidence
        if (evidence is not None and evidence.is_actionable) or (
            self._snapshot.iteration >= self._readiness_min_iteration
        ):
            return ControllerState.SYNTHESIZING

        await self._recorder.thought(
            AgentType.ORCHESTRATOR,
            ThoughtKind.REASONING,
            "Insufficient evidence gathered. Continuing to next iteration for more data.",
        )
        return ControllerState.PLANNING

    async def _synthesize(self) -> ControllerState:
        await self._phase("Action Synthesis")
        self._nba, self._recommendation = await self._synthesizer.run(
            self._recorder,
            self._subject_id,
            plan=self._snapshot.plan,
            evidence=self._snapshot.evidence,
            causal_basis=self._causal_basis,
            based_on=self._based_on,
        )
        return ControllerState.REFLECTING

    async def _reflect(self) -> ControllerState:
        await self._phase("Self-Reflection")
        self._reflection, _ = await self._reflector.run(
            self._recorder,
            nba=self._nba,
            evidence=self._snapshot.evidence,
            plan=self._snapshot.plan,
        )
        return ControllerState.TERMINATION_CHECK

    async def _check_termination(self) -> ControllerState:
        confidence = self._reflection.confidence
        iteration = self._snapshot.iteration
        if confidence >= self._confidence_threshold or iteration >= self._max_iterations - 1:
            await self._recorder.thought(
                AgentType.ORCHESTRATOR,
                ThoughtKind.REASONING,
                f"Goal achieved with confidence {confidence:g}%. Terminating loop.",
            )
            return ControllerState.DONE_SUCCESS

        await self._recorder.thought(
            AgentType.ORCHESTRATOR,
            ThoughtKind.REASONING,
            f"Confidence {confidence:g}% below threshold. Need another iteration.",
        )
        self._snapshot = replace(self._snapshot, prior_critique=self._reflection)
        return ControllerState.PLANNING

    async def run(self) -> ControllerOutcome:
        """
        Run the loop to completion and mark the session completed.

        Returns:
            The final recommendation and reflection.

        Raises:
            IterationBoundExceeded: No synthesis/reflection pair within the bound.
            SessionHalted: The session was failed externally.
        """
        logger.info(f"Starting iteration loop for subject {self._subject_id} (max {self._max_iterations})")

        while self._state not in (ControllerState.DONE_SUCCESS, ControllerState.DONE_FAILURE):
            handler = self._handlers[self._state]
            next_state = await handler()
            logger.debug(f"Iteration {self._snapshot.iteration}: {self._state.value} -> {next_state.value}")
            self._state = next_state

        if self._state is ControllerState.DONE_FAILURE or self._nba is None or self._reflection is None:
            raise IterationBoundExceeded(
                f"No result produced within {self._max_iterations} iterations"
            )

        iterations = self._snapshot.iteration
        confidence = self._reflection.confidence
        await self._recorder.complete(
            confidence,
            f"Generated NBA: {self._nba.action} (Confidence: {confidence:g}% after {iterations} iterations)",
        )
        return ControllerOutcome(
            nba=self._nba,
            recommendation=self._recommendation,
            reflection=self._reflection,
            iterations=iterations,
        )
