"""
Hypothesis generator agent.

Proposes three to five competing causal explanations for a prescriber's
behaviour. When the prescriber treats more than one patient cohort the
prompt steers toward cohort-scoped explanations.
"""

from __future__ import annotations

import logging

from causal_nba_agent.agents.base import (
    PhaseAgent,
    SubjectSnapshot,
    collect_subject_snapshot,
    format_activity,
    format_events,
    format_profile,
)
from causal_nba_agent.orchestrator.schemas import ActionType, AgentType, ThoughtKind
from causal_nba_agent.orchestrator.session_recorder import SessionRecorder
from causal_nba_agent.reasoning.hypotheses import Hypothesis, HypothesisSet

logger = logging.getLogger(__name__)


def assign_hypothesis_ids(hypotheses: list[Hypothesis]) -> list[Hypothesis]:
    """Give every hypothesis a unique id, replacing blanks and duplicates with ``H<n>``."""
    seen: set[str] = set()
    result: list[Hypothesis] = []
    for index, hypothesis in enumerate(hypotheses, start=1):
        hypothesis_id = hypothesis.id.strip()
        if not hypothesis_id or hypothesis_id in seen:
            hypothesis_id = f"H{index}"
            while hypothesis_id in seen:
                hypothesis_id = f"{hypothesis_id}b"
        seen.add(hypothesis_id)
        if hypothesis_id != hypothesis.id:
            hypothesis = hypothesis.model_copy(update={"id": hypothesis_id})
        result.append(hypothesis)
    return result


class HypothesisGenerator(PhaseAgent):
    """LLM-based causal hypothesis generator."""

    agent_type = AgentType.HYPOTHESIS_GENERATOR

    GENERATION_PROMPT = """You are a Hypothesis Generation Agent. Propose competing causal explanations for this prescriber's prescribing behaviour.

PRESCRIBER:
{profile}

PRESCRIPTION HISTORY (most recent first):
{activity}

PATIENT COHORTS: {cohorts}
SWITCHING: {switching}

CLINICAL EVENT TIMELINE:
{events}
{cohort_instruction}
Generate between 3 and 5 distinct, testable hypotheses. Each needs a causal chain
(cause to effect), the patterns the data should show if it is true, and the data
sources needed to test it.

Respond with JSON:
{{
  "hypotheses": [
    {{
      "id": "H1",
      "title": "<short title>",
      "description": "<explanation>",
      "causal_chain": ["<cause>", "<mechanism>", "<effect>"],
      "predicted_patterns": ["<pattern>"],
      "data_sources_needed": ["<source>"],
      "initial_confidence": <0-100>,
      "affected_cohort": "<cohort or null>"
    }}
  ]
}}

Only return valid JSON."""

    COHORT_INSTRUCTION = """
This prescriber treats several patient cohorts ({cohorts}). Prefer hypotheses scoped
to a single cohort and set "affected_cohort"; different cohorts may switch for
different reasons.
"""

    def _cohort_instruction(self, snapshot: SubjectSnapshot) -> str:
        cohorts = snapshot.cohort_breakdown
        if len(cohorts) > 1:
            return self.COHORT_INSTRUCTION.format(cohorts=", ".join(sorted(cohorts)))
        return ""

    async def run(self, recorder: SessionRecorder, subject_id: int) -> tuple[list[Hypothesis], SubjectSnapshot]:
        """
        Generate hypotheses for a prescriber.

        Returns:
            Hypotheses with unique ids and the data snapshot used.
        """
        await recorder.thought(
            self.agent_type,
            ThoughtKind.OBSERVATION,
            f"Generating competing causal hypotheses for subject {subject_id}",
        )

        snapshot = await collect_subject_snapshot(self._data, subject_id)
        switching = snapshot.switching_event
        cohorts = snapshot.cohort_breakdown

        prompt = self.GENERATION_PROMPT.format(
            profile=format_profile(snapshot.subject),
            activity=format_activity(snapshot.activity),
            cohorts=", ".join(f"{c}: {n}" for c, n in cohorts.items()) or "None",
            switching=f"{switching.from_product} -> {switching.to_product}" if switching else "None detected",
            events=format_events(snapshot.events),
            cohort_instruction=self._cohort_instruction(snapshot),
        )

        generated = await self._generator.generate(prompt, HypothesisSet, label="hypothesis_generator")
        hypotheses = assign_hypothesis_ids(generated.hypotheses)

        await recorder.action(
            self.agent_type,
            ActionType.GENERATE_HYPOTHESES,
            f"Generated {len(hypotheses)} causal hypotheses",
            params={"subject_id": subject_id, "cohorts": sorted(cohorts)},
            result={"hypothesis_ids": [h.id for h in hypotheses]},
        )
        await recorder.thought(
            self.agent_type,
            ThoughtKind.REASONING,
            "Hypotheses to test: " + "; ".join(f"{h.id} {h.title}" for h in hypotheses),
        )

        logger.info(f"Generated {len(hypotheses)} hypotheses for subject {subject_id}")
        return hypotheses, snapshot
