"""
Action synthesizer agent.

Turns the plan and evidence into one Next Best Action and persists it
as a recommendation. Human-confirmed causal findings take precedence
over merely proven ones.
"""

from __future__ import annotations

import logging

from pydantic import AliasChoices, BaseModel, Field, field_validator

from causal_nba_agent.agents.base import PhaseAgent, coerce_percent, coerce_text, format_list
from causal_nba_agent.agents.evidence_analyst import EvidenceResult
from causal_nba_agent.agents.planner import PlanResult
from causal_nba_agent.orchestrator.schemas import (
    ActionCategory,
    ActionType,
    AgentType,
    Priority,
    RecommendationBasis,
    RecommendationRecord,
    ThoughtKind,
)
from causal_nba_agent.orchestrator.session_recorder import SessionRecorder
from causal_nba_agent.reasoning.hypotheses import RankedHypothesis

logger = logging.getLogger(__name__)


class SynthesisResult(BaseModel):
    """Synthesizer output: a single recommended action."""

    rationale: str = Field(..., validation_alias=AliasChoices("rationale", "thought"))
    action: str = Field(..., min_length=1)
    category: ActionCategory = Field(..., validation_alias=AliasChoices("category", "actionType", "action_type"))
    priority: Priority
    reason: str = Field(default="")
    insight: str = Field(default="", validation_alias=AliasChoices("insight", "aiInsight", "ai_insight"))
    confidence: float = Field(..., ge=0.0, le=100.0, validation_alias=AliasChoices("confidence", "confidenceScore"))
    expected_outcome: str = Field(
        default="",
        validation_alias=AliasChoices("expected_outcome", "expectedOutcome"),
    )
    timeframe: str = Field(default="")

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().capitalize()
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v: object) -> object:
        return coerce_percent(v)

    @field_validator("reason", "insight", "expected_outcome", "timeframe", mode="before")
    @classmethod
    def _join_lists(cls, v: object) -> object:
        return coerce_text(v)


class Synthesizer(PhaseAgent):
    """LLM-based action synthesizer."""

    agent_type = AgentType.SYNTHESIZER

    SYNTHESIS_PROMPT = """You are an Action Synthesis Agent. Produce the single best next action for the field team.

PRESCRIBER: {subject_name} ({specialty}, {hospital})

STRATEGY:
{strategy}
Goals:
{goals}

KEY FINDINGS:
{findings}

WORKING HYPOTHESES:
{hypotheses}

RISK FACTORS:
{risk_factors}

OPPORTUNITIES:
{opportunities}

CAUSAL FINDINGS ({basis_label}):
{causal_findings}

INSTRUCTIONS:
1. Explain distinct switching patterns across patient cohorts
2. Tie the action to the causal findings above when present
3. Choose category from: meeting, email, call, event
4. Choose priority from: High, Medium, Low

Respond with JSON:
{{
  "rationale": "<your reasoning>",
  "action": "<specific action title>",
  "category": "<meeting|email|call|event>",
  "priority": "<High|Medium|Low>",
  "reason": "<business justification with cohort-specific focus>",
  "insight": "<layered narrative of causal factors, cohort patterns and timing>",
  "confidence": <0-100>,
  "expected_outcome": "<expected result>",
  "timeframe": "<when to act>"
}}

Only return valid JSON."""

    _BASIS_LABELS = {
        "confirmed": "confirmed by a human reviewer",
        "proven": "proven by evidence, not yet confirmed",
        "none": "no causal investigation available",
    }

    def _render_causal_findings(self, basis: list[RankedHypothesis]) -> str:
        if not basis:
            return "  None"
        lines = []
        for item in basis:
            cohort = f" [cohort: {item.hypothesis.affected_cohort}]" if item.hypothesis.affected_cohort else ""
            lines.append(
                f"  - {item.hypothesis.id}: {item.hypothesis.title}{cohort} "
                f"({item.score.verdict.value}, {item.confidence:.0f}%)"
            )
        return "\n".join(lines)

    async def run(
        self,
        recorder: SessionRecorder,
        subject_id: int,
        plan: PlanResult,
        evidence: EvidenceResult,
        causal_basis: list[RankedHypothesis] | None = None,
        based_on: RecommendationBasis = "none",
    ) -> tuple[SynthesisResult, RecommendationRecord]:
        """
        Synthesize and persist a recommendation.

        Args:
            recorder: Session recorder.
            subject_id: Prescriber being analysed.
            plan: Plan for this iteration.
            evidence: Evidence analysis for this iteration.
            causal_basis: Confirmed (or else proven) hypotheses to ground the action.
            based_on: Which partition ``causal_basis`` came from.

        Returns:
            The synthesis and the stored recommendation.
        """
        causal_basis = causal_basis or []
        await recorder.thought(
            self.agent_type,
            ThoughtKind.OBSERVATION,
            f"Synthesizing next best action from {len(evidence.key_findings)} findings "
            f"and {len(causal_basis)} {based_on} causal hypotheses",
        )

        subject = await self._data.get_subject(subject_id)
        prompt = self.SYNTHESIS_PROMPT.format(
            subject_name=subject.name,
            specialty=subject.specialty,
            hospital=subject.hospital,
            strategy=plan.strategy or plan.rationale,
            goals=format_list(plan.goals),
            findings=format_list(evidence.key_findings),
            hypotheses=format_list(evidence.hypotheses),
            risk_factors=format_list(evidence.risk_factors),
            opportunities=format_list(evidence.opportunities),
            basis_label=self._BASIS_LABELS[based_on],
            causal_findings=self._render_causal_findings(causal_basis),
        )

        nba = await self._generator.generate(prompt, SynthesisResult, label="synthesizer")
        await recorder.thought(self.agent_type, ThoughtKind.REASONING, nba.rationale)

        recommendation = await recorder.save_recommendation(
            RecommendationRecord(
                subject_id=subject_id,
                session_id=recorder.session_id,
                action=nba.action,
                category=nba.category,
                priority=nba.priority,
                reason=nba.reason,
                insight=nba.insight,
                confidence=nba.confidence,
                expected_outcome=nba.expected_outcome,
                timeframe=nba.timeframe,
                based_on=based_on,
            )
        )

        await recorder.action(
            self.agent_type,
            ActionType.GENERATE_NBA,
            f"Generated NBA: {nba.action}",
            params={"subject_id": subject_id, "based_on": based_on},
            result={
                "recommendation_id": str(recommendation.id),
                "category": nba.category,
                "priority": nba.priority,
                "confidence": nba.confidence,
                "hypothesis_ids": [item.hypothesis.id for item in causal_basis],
            },
        )

        logger.info(f"Synthesized NBA for subject {subject_id}: {nba.action} ({nba.priority})")
        return nba, recommendation
