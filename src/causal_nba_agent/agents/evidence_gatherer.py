"""
Evidence gatherer agent.

Evaluates one hypothesis: collects six to ten evidence items, each for
or against, and returns a final confidence and verdict. One gatherer
call runs per hypothesis, concurrently with the others.
"""

from __future__ import annotations

import logging

from causal_nba_agent.agents.base import (
    PhaseAgent,
    SubjectSnapshot,
    format_activity,
    format_events,
    format_list,
    format_patients,
    format_profile,
)
from causal_nba_agent.orchestrator.schemas import ActionType, AgentType, ThoughtKind
from causal_nba_agent.orchestrator.session_recorder import SessionRecorder
from causal_nba_agent.reasoning.hypotheses import EvidenceAssessment, EvidenceScore, Hypothesis

logger = logging.getLogger(__name__)


class EvidenceGatherer(PhaseAgent):
    """LLM-based evidence gatherer for a single hypothesis."""

    agent_type = AgentType.EVIDENCE_GATHERER

    GATHERING_PROMPT = """You are an Evidence Gathering Agent. Test the hypothesis below against the available data.

HYPOTHESIS ID: {hypothesis_id}
TITLE: {title}
DESCRIPTION: {description}
AFFECTED COHORT: {cohort}
CAUSAL CHAIN:
{causal_chain}
PREDICTED PATTERNS:
{predicted_patterns}

PRESCRIBER:
{profile}

PRESCRIPTION HISTORY (most recent first):
{activity}

PATIENTS:
{patients}

CLINICAL EVENT TIMELINE:
{events}

Collect between 6 and 10 evidence items. Use a mix of internal records (prescriptions,
patients, events above) and external references (publications, guidelines, payer
policy). Mark each with "source_kind": "internal" or "external". For each item say
whether it supports the hypothesis and how strongly (weak, moderate, strong).
Then give a final confidence (0-100) and a verdict: proven, likely, possible,
unlikely or disproven.

Respond with JSON:
{{
  "evidence": [
    {{
      "source": "<source>",
      "finding": "<what it shows>",
      "supports": <true|false>,
      "strength": "<weak|moderate|strong>",
      "source_kind": "<internal|external>"
    }}
  ],
  "final_confidence": <0-100>,
  "verdict": "<proven|likely|possible|unlikely|disproven>",
  "reasoning": "<how the evidence adds up>"
}}

Only return valid JSON."""

    async def run(
        self,
        recorder: SessionRecorder,
        hypothesis: Hypothesis,
        snapshot: SubjectSnapshot,
    ) -> EvidenceScore:
        """
        Score one hypothesis.

        Args:
            recorder: Session recorder.
            hypothesis: Hypothesis under test.
            snapshot: Prescriber data shared by all gatherers of the investigation.

        Returns:
            Immutable evidence score for the hypothesis.
        """
        metadata = {"hypothesis_id": hypothesis.id}
        await recorder.thought(
            self.agent_type,
            ThoughtKind.OBSERVATION,
            f"Gathering evidence for {hypothesis.id}: {hypothesis.title}",
            metadata=metadata,
        )

        prompt = self.GATHERING_PROMPT.format(
            hypothesis_id=hypothesis.id,
            title=hypothesis.title,
            description=hypothesis.description or hypothesis.title,
            cohort=hypothesis.affected_cohort or "All cohorts",
            causal_chain=format_list(hypothesis.causal_chain),
            predicted_patterns=format_list(hypothesis.predicted_patterns),
            profile=format_profile(snapshot.subject),
            activity=format_activity(snapshot.activity),
            patients=format_patients(snapshot.patients, limit=10),
            events=format_events(snapshot.events),
        )

        assessment = await self._generator.generate(
            prompt,
            EvidenceAssessment,
            label=f"evidence_gatherer[{hypothesis.id}]",
        )
        score = EvidenceScore(
            hypothesis_id=hypothesis.id,
            evidence=tuple(assessment.evidence),
            final_confidence=assessment.final_confidence,
            verdict=assessment.verdict,
            reasoning=assessment.reasoning,
        )

        await recorder.action(
            self.agent_type,
            ActionType.GATHER_EVIDENCE,
            f"Scored {hypothesis.id} against {len(score.evidence)} evidence items",
            params=metadata,
            result={
                "final_confidence": score.final_confidence,
                "verdict": score.verdict.value,
                "supporting": score.supporting_count,
                "synthetic": score.synthetic_count,
            },
        )
        await recorder.thought(
            self.agent_type,
            ThoughtKind.REASONING,
            (
                f"{hypothesis.id} verdict: {score.verdict.value} at {score.final_confidence:.0f}% confidence. "
                f"{score.reasoning}"
            ).strip(),
            metadata=metadata,
        )
        return score
