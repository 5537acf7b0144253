"""
Shared fixtures.

``ScriptedLLM`` answers each agent by the role line its prompt opens
with, so whole sessions can run without an inference server.
"""

import json
import re
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest

from causal_nba_agent.data.provider import InMemoryDataProvider
from causal_nba_agent.db.store import InMemorySessionStore
from causal_nba_agent.events.notifier import EventNotifier
from causal_nba_agent.models.llm_client import LLMClientBase, LLMResponse, Message
from causal_nba_agent.orchestrator.schemas import GoalType, SessionRecord
from causal_nba_agent.orchestrator.session_recorder import SessionRecorder

DATA_PATH = Path(__file__).resolve().parent.parent / "data" / "sample_subjects.json"

PLAN = {
    "rationale": "Switching is concentrated in the young RCC cohort after the ASCO readout",
    "goals": ["Understand the switch", "Re-engage the prescriber"],
    "strategy": "Lead with cohort-specific efficacy data",
    "required_data": ["prescriptions", "patients"],
    "success_criteria": "Onco-Pro share recovers in young_rcc",
}

FINDINGS = {
    "rationale": "Young RCC patients moved to Onco-Rival within two months",
    "key_findings": ["3 of 5 patients switched", "Switches follow the ASCO presentation"],
    "hypotheses": ["Competitor trial data drove the switch"],
    "risk_factors": ["Cardiac adverse events"],
    "opportunities": ["Share subgroup efficacy data"],
}

EMPTY_FINDINGS = {
    "rationale": "Not enough signal yet",
    "key_findings": [],
    "hypotheses": [],
}

NBA = {
    "rationale": "A face-to-face review of subgroup data addresses the trigger",
    "action": "Schedule an efficacy data review with Dr. Chen",
    "category": "Meeting",
    "priority": "high",
    "reason": "Young RCC cohort is switching",
    "insight": "Switching follows the competitor readout",
    "confidence": "82%",
    "expected_outcome": "Stabilise young RCC prescriptions",
    "timeframe": "Within 2 weeks",
}


def reflection(confidence: float) -> dict[str, Any]:
    return {
        "rationale": f"Critique at {confidence}",
        "strengths": ["Specific"],
        "weaknesses": ["Cardiac cohort not addressed"],
        "confidence": confidence,
        "improvements": ["Address cardiac safety questions"],
        "lessons_learned": ["Split by cohort"],
        "overall_assessment": "Reasonable",
    }


HYPOTHESES = {
    "hypotheses": [
        {
            "id": f"H{i}",
            "title": title,
            "causal_chain": ["cause", "mechanism", "switch"],
            "predicted_patterns": ["decline in Onco-Pro"],
            "initial_confidence": 50,
            "affected_cohort": cohort,
        }
        for i, (title, cohort) in enumerate(
            [
                ("Competitor trial data", "young_rcc"),
                ("Cardiac safety concerns", "cv_risk"),
                ("Payer formulary change", None),
                ("Rep visit gap", None),
                ("Patient preference", "stable"),
            ],
            start=1,
        )
    ]
}


def assessment(confidence: float, verdict: str, external: int = 2) -> dict[str, Any]:
    evidence = [
        {
            "source": f"source-{i}",
            "finding": f"finding {i}",
            "supports": i % 3 != 0,
            "strength": "Moderate",
            "source_kind": "external" if i < external else "internal",
        }
        for i in range(6)
    ]
    return {
        "evidence": evidence,
        "final_confidence": confidence,
        "verdict": verdict,
        "reasoning": f"Weighted {len(evidence)} items",
    }


# Confidences and verdicts for H1..H5
SCENARIO_C = {
    "H1": assessment(85, "proven"),
    "H2": assessment(72, "likely"),
    "H3": assessment(55, "possible"),
    "H4": assessment(38, "unlikely"),
    "H5": assessment(20, "disproven"),
}

ROLES = {
    "You are a Strategic Planning Agent.": "planner",
    "You are an Evidence Analyst Agent.": "analyst",
    "You are an Action Synthesis Agent.": "synthesizer",
    "You are a Reflector/Critic Agent.": "reflector",
    "You are a Hypothesis Generation Agent.": "hypothesis_generator",
    "You are an Evidence Gathering Agent.": "evidence_gatherer",
}


class ScriptedLLM(LLMClientBase):
    """
    Fake LLM that replays canned JSON per agent.

    Queues return their items in order and then keep repeating the last
    one. A gatherer entry of ``None`` makes that hypothesis fail.
    """

    def __init__(
        self,
        evidence: list[dict[str, Any]] | None = None,
        reflections: list[dict[str, Any]] | None = None,
        gatherer: dict[str, dict[str, Any] | None] | None = None,
        hypotheses: dict[str, Any] | None = None,
    ) -> None:
        self.evidence = list(evidence or [FINDINGS])
        self.reflections = list(reflections or [reflection(80)])
        self.gatherer = SCENARIO_C if gatherer is None else gatherer
        self.hypotheses = hypotheses or HYPOTHESES
        self.calls: list[str] = []
        self.prompts: list[str] = []

    @staticmethod
    def _next(queue: list[dict[str, Any]]) -> dict[str, Any]:
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def _payload(self, role: str, prompt: str) -> dict[str, Any] | None:
        if role == "planner":
            return PLAN
        if role == "analyst":
            return self._next(self.evidence)
        if role == "synthesizer":
            return NBA
        if role == "reflector":
            return self._next(self.reflections)
        if role == "hypothesis_generator":
            return self.hypotheses
        hypothesis_id = re.search(r"HYPOTHESIS ID: (\S+)", prompt).group(1)
        return self.gatherer.get(hypothesis_id)

    async def complete(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        role = next(name for line, name in ROLES.items() if prompt.startswith(line))
        self.calls.append(role)
        self.prompts.append(prompt)

        payload = self._payload(role, prompt)
        if payload is None:
            return LLMResponse(content="", finish_reason="error", raw_response={"error": "model unavailable"})
        return LLMResponse(content=json.dumps(payload), model="scripted")

    async def chat(
        self,
        messages: list[Message],
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        return await self.complete(messages[-1].content, temperature=temperature, max_tokens=max_tokens)


@pytest.fixture
def sample_data() -> InMemoryDataProvider:
    """Prescriber data shipped with the repository."""
    return InMemoryDataProvider.from_json(DATA_PATH)


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def notifier() -> EventNotifier:
    return EventNotifier(queue_size=64)


@pytest.fixture
def make_recorder(
    store: InMemorySessionStore,
    notifier: EventNotifier,
) -> Callable[..., Awaitable[SessionRecorder]]:
    """Factory creating a session for subject 1 and a recorder on it."""

    async def factory(goal_type: GoalType = GoalType.NBA_GENERATION, subject_id: int = 1) -> SessionRecorder:
        session = await store.create_session(
            SessionRecord(
                goal_description=f"Test session for subject {subject_id}",
                goal_type=goal_type,
                context={"subject_id": subject_id},
            )
        )
        notifier.open(session.id)
        recorder = SessionRecorder(store, notifier, session.id)
        await recorder.open()
        return recorder

    return factory
