"""
Strategic planner agent.

Decomposes the goal for one prescriber into a plan for the current
iteration, taking the previous iteration's self-critique into account.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import AliasChoices, BaseModel, Field, field_validator

from causal_nba_agent.agents.base import (
    PhaseAgent,
    SubjectSnapshot,
    coerce_text,
    collect_subject_snapshot,
    format_list,
    format_profile,
)
from causal_nba_agent.orchestrator.schemas import ActionType, AgentType, ThoughtKind
from causal_nba_agent.orchestrator.session_recorder import SessionRecorder

if TYPE_CHECKING:
    from causal_nba_agent.agents.reflector import ReflectionResult

logger = logging.getLogger(__name__)


class PlanResult(BaseModel):
    """Planner output."""

    rationale: str = Field(..., validation_alias=AliasChoices("rationale", "thought"))
    goals: list[str] = Field(default_factory=list)
    strategy: str = Field(default="")
    required_data: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("required_data", "requiredData"),
    )
    success_criteria: str = Field(
        default="",
        validation_alias=AliasChoices("success_criteria", "successCriteria"),
    )

    @field_validator("strategy", "success_criteria", mode="before")
    @classmethod
    def _join_lists(cls, v: object) -> object:
        return coerce_text(v)


@dataclass(frozen=True)
class PlanInputs:
    """Data the planner looked at."""

    snapshot: SubjectSnapshot
    iteration: int
    prior_critique: ReflectionResult | None = None


class Planner(PhaseAgent):
    """LLM-based strategic planner."""

    agent_type = AgentType.PLANNER

    PLANNING_PROMPT = """You are a Strategic Planning Agent. Analyze this prescriber and create a strategic intervention plan.

PRESCRIBER DATA:
{profile}
History: {history_months} months of prescription records
Switching: {switching}

ITERATION: {iteration} of {max_iterations}

PREVIOUS SELF-CRITIQUE:
{prior_critique}

Respond with JSON:
{{
  "rationale": "<your strategic reasoning>",
  "goals": ["<goal 1>", "<goal 2>", "<goal 3>"],
  "strategy": "<overall strategy>",
  "required_data": ["<data 1>", "<data 2>"],
  "success_criteria": "<how success is measured>"
}}

Only return valid JSON."""

    def _render_prior_critique(self, critique: ReflectionResult | None) -> str:
        if critique is None:
            return "  None (first pass)"
        lines = [
            f"  Confidence: {critique.confidence:.0f}%",
            f"  Assessment: {critique.overall_assessment or critique.rationale}",
            "  Weaknesses:",
            format_list(critique.weaknesses),
            "  Improvements to apply:",
            format_list(critique.improvements),
        ]
        return "\n".join(lines)

    async def run(
        self,
        recorder: SessionRecorder,
        subject_id: int,
        iteration: int,
        max_iterations: int,
        prior_critique: ReflectionResult | None = None,
    ) -> tuple[PlanResult, PlanInputs]:
        """
        Plan the current iteration.

        Args:
            recorder: Session recorder.
            subject_id: Prescriber being analysed.
            iteration: 1-based iteration number.
            max_iterations: Iteration bound, shown to the model.
            prior_critique: Reflection from the previous iteration, if any.

        Returns:
            The plan and the inputs it was built from.
        """
        await recorder.thought(
            self.agent_type,
            ThoughtKind.OBSERVATION,
            f"Analyzing subject {subject_id} to determine optimal intervention strategy",
        )

        snapshot = await collect_subject_snapshot(self._data, subject_id)
        switching = snapshot.switching_event

        await recorder.action(
            self.agent_type,
            ActionType.QUERY_DATA,
            "Retrieved prescriber profile, prescription history, and switching events",
            params={
                "subject_id": subject_id,
                "history_count": len(snapshot.activity),
                "has_switching_event": switching is not None,
            },
        )

        prompt = self.PLANNING_PROMPT.format(
            profile=format_profile(snapshot.subject),
            history_months=len({r.month for r in snapshot.activity}),
            switching=f"{switching.from_product} -> {switching.to_product}" if switching else "No",
            iteration=iteration,
            max_iterations=max_iterations,
            prior_critique=self._render_prior_critique(prior_critique),
        )

        plan = await self._generator.generate(prompt, PlanResult, label="planner")
        await recorder.thought(self.agent_type, ThoughtKind.REASONING, plan.rationale)

        return plan, PlanInputs(snapshot=snapshot, iteration=iteration, prior_critique=prior_critique)
