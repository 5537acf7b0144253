"""
Reflector / critic agent.

Critiques the synthesized action. Its confidence drives loop
termination and its critique is handed to the next planner.
"""

from __future__ import annotations

import logging

from pydantic import AliasChoices, BaseModel, Field, field_validator

from causal_nba_agent.agents.base import PhaseAgent, coerce_percent, coerce_text, format_list
from causal_nba_agent.agents.evidence_analyst import EvidenceResult
from causal_nba_agent.agents.planner import PlanResult
from causal_nba_agent.agents.synthesizer import SynthesisResult
from causal_nba_agent.orchestrator.schemas import AgentType, FeedbackRecord, ThoughtKind
from causal_nba_agent.orchestrator.session_recorder import SessionRecorder

logger = logging.getLogger(__name__)


class ReflectionResult(BaseModel):
    """Reflector output."""

    rationale: str = Field(..., validation_alias=AliasChoices("rationale", "thought", "critique"))
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=100.0, validation_alias=AliasChoices("confidence", "confidenceScore"))
    improvements: list[str] = Field(default_factory=list)
    lessons_learned: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("lessons_learned", "lessonsLearned"),
    )
    overall_assessment: str = Field(
        default="",
        validation_alias=AliasChoices("overall_assessment", "overallAssessment"),
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, v: object) -> object:
        return coerce_percent(v)

    @field_validator("overall_assessment", mode="before")
    @classmethod
    def _join_lists(cls, v: object) -> object:
        return coerce_text(v)


class Reflector(PhaseAgent):
    """LLM-based self-critic."""

    agent_type = AgentType.REFLECTOR

    REFLECTION_PROMPT = """You are a Reflector/Critic Agent. Critically evaluate the recommended action below.

RECOMMENDED ACTION:
- Action: {action}
- Category: {category}
- Priority: {priority}
- Reason: {reason}
- Insight: {insight}
- Stated confidence: {nba_confidence:.0f}%

STRATEGY: {strategy}

EVIDENCE USED:
{findings}

Evaluate: Is the action specific and grounded in the evidence? Does it address the causal drivers?
Are there gaps or unsupported claims?

Respond with JSON:
{{
  "rationale": "<your critical analysis>",
  "strengths": ["<strength>"],
  "weaknesses": ["<weakness>"],
  "confidence": <0-100, how confident you are this is the optimal action>,
  "improvements": ["<how to improve>"],
  "lessons_learned": ["<lesson>"],
  "overall_assessment": "<summary>"
}}

Only return valid JSON."""

    async def run(
        self,
        recorder: SessionRecorder,
        nba: SynthesisResult,
        evidence: EvidenceResult,
        plan: PlanResult,
    ) -> tuple[ReflectionResult, FeedbackRecord]:
        """
        Critique an action and persist the feedback.

        Returns:
            The reflection and the stored feedback record.
        """
        await recorder.thought(
            self.agent_type,
            ThoughtKind.OBSERVATION,
            f"Evaluating quality and confidence of recommended action: {nba.action}",
        )

        prompt = self.REFLECTION_PROMPT.format(
            action=nba.action,
            category=nba.category,
            priority=nba.priority,
            reason=nba.reason,
            insight=nba.insight,
            nba_confidence=nba.confidence,
            strategy=plan.strategy or plan.rationale,
            findings=format_list(evidence.key_findings),
        )

        reflection = await self._generator.generate(prompt, ReflectionResult, label="reflector")
        await recorder.thought(
            self.agent_type,
            ThoughtKind.CRITIQUE,
            reflection.rationale,
            metadata={"confidence": reflection.confidence},
        )

        feedback = FeedbackRecord(
            session_id=recorder.session_id,
            agent_type=self.agent_type,
            critique=reflection.rationale,
            improvements=reflection.improvements,
            improvement_suggestion="; ".join(reflection.improvements),
            lessons_learned=reflection.lessons_learned,
        )
        await recorder.save_feedback(feedback)

        logger.info(f"Reflection confidence {reflection.confidence:.0f}% for action: {nba.action}")
        return reflection, feedback
