"""Causal discovery engine.

Runs one investigation: generate hypotheses, gather evidence for every
hypothesis concurrently, then rank and partition the scored results.

Evidence gathering is settled per hypothesis: a failed gatherer marks its
hypothesis as unavailable instead of aborting the investigation. Only
when every gatherer fails does the investigation fail.
"""

from __future__ import annotations

import asyncio
import logging

from causal_nba_agent.agents.base import SubjectSnapshot
from causal_nba_agent.agents.evidence_gatherer import EvidenceGatherer
from causal_nba_agent.agents.hypothesis_generator import HypothesisGenerator
from causal_nba_agent.errors import InsightAgentError
from causal_nba_agent.orchestrator.schemas import ActionType, AgentType, ThoughtKind
from causal_nba_agent.orchestrator.session_recorder import SessionRecorder
from causal_nba_agent.reasoning.hypotheses import (
    EvidenceScore,
    Hypothesis,
    InvestigationRecord,
    UnavailableHypothesis,
)
from causal_nba_agent.reasoning.ranking import rank_hypotheses

logger = logging.getLogger(__name__)


class EvidenceUnavailable(InsightAgentError):
    """Raised when evidence could not be gathered for any hypothesis."""


class CausalDiscoveryEngine:
    """Generates, scores and ranks causal hypotheses for one subject."""

    def __init__(self, generator: HypothesisGenerator, gatherer: EvidenceGatherer) -> None:
        self._generator = generator
        self._gatherer = gatherer

    async def _gather_all(
        self,
        recorder: SessionRecorder,
        hypotheses: list[Hypothesis],
        snapshot: SubjectSnapshot,
    ) -> tuple[list[tuple[Hypothesis, EvidenceScore]], list[UnavailableHypothesis]]:
        """Fan out one gatherer per hypothesis and wait for all of them to settle."""
        outcomes = await asyncio.gather(
            *(self._gatherer.run(recorder, h, snapshot) for h in hypotheses),
            return_exceptions=True,
        )

        scored: list[tuple[Hypothesis, EvidenceScore]] = []
        unavailable: list[UnavailableHypothesis] = []
        for hypothesis, outcome in zip(hypotheses, outcomes):
            if isinstance(outcome, EvidenceScore):
                scored.append((hypothesis, outcome))
                continue
            if not isinstance(outcome, Exception):
                # Cancellation and interpreter exits are not per-hypothesis failures
                raise outcome
            logger.warning(f"Evidence unavailable for {hypothesis.id}: {outcome}")
            unavailable.append(
                UnavailableHypothesis(hypothesis=hypothesis, error=str(outcome) or type(outcome).__name__)
            )
            await recorder.action(
                AgentType.EVIDENCE_GATHERER,
                ActionType.GATHER_EVIDENCE,
                f"Evidence unavailable for {hypothesis.id}",
                params={"hypothesis_id": hypothesis.id},
                success=False,
                error_message=str(outcome),
            )
        return scored, unavailable

    async def investigate(self, recorder: SessionRecorder, subject_id: int) -> InvestigationRecord:
        """
        Run a full investigation and persist it.

        Args:
            recorder: Recorder for the investigation session.
            subject_id: Prescriber under investigation.

        Returns:
            The stored investigation.

        Raises:
            EvidenceUnavailable: Every hypothesis failed evidence gathering.
        """
        await recorder.phase("Hypothesis Generation")
        hypotheses, snapshot = await self._generator.run(recorder, subject_id)

        await recorder.phase("Evidence Gathering")
        scored, unavailable = await self._gather_all(recorder, hypotheses, snapshot)
        if not scored:
            raise EvidenceUnavailable(f"Evidence unavailable for all {len(hypotheses)} hypotheses")

        await recorder.phase("Ranking")
        ranking = rank_hypotheses(scored)
        investigation = InvestigationRecord(
            session_id=recorder.session_id,
            subject_id=subject_id,
            ranked=ranking.ranked,
            proven_ids=[r.hypothesis.id for r in ranking.proven],
            ruled_out_ids=[r.hypothesis.id for r in ranking.ruled_out],
            under_review_ids=[r.hypothesis.id for r in ranking.under_review],
            unavailable=unavailable,
            headline=ranking.headline,
        )
        await recorder.store.save_investigation(investigation)

        if ranking.headline is not None:
            summary = (
                f"Top proven hypothesis {ranking.headline.hypothesis.id} "
                f"({ranking.headline.hypothesis.title}) at {ranking.headline.confidence:.0f}%"
            )
        else:
            summary = "No hypothesis reached the proven threshold"
        await recorder.thought(
            AgentType.ORCHESTRATOR,
            ThoughtKind.REASONING,
            f"{summary}. Proven: {len(ranking.proven)}, under review: {len(ranking.under_review)}, "
            f"ruled out: {len(ranking.ruled_out)}, unavailable: {len(unavailable)}. Awaiting human confirmation.",
        )
        return investigation
