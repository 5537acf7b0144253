"""
Evidence analyst agent.

Looks at prescription trends, patient cohorts, clinical events and the
territory peer group, and proposes findings and working hypotheses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import AliasChoices, BaseModel, Field

from causal_nba_agent.agents.base import (
    PhaseAgent,
    SubjectSnapshot,
    collect_subject_snapshot,
    format_activity,
    format_events,
    format_patients,
    format_profile,
)
from causal_nba_agent.orchestrator.schemas import ActionType, AgentType, ThoughtKind
from causal_nba_agent.orchestrator.session_recorder import SessionRecorder

logger = logging.getLogger(__name__)


class EvidenceResult(BaseModel):
    """Evidence analyst output."""

    rationale: str = Field(..., validation_alias=AliasChoices("rationale", "thought"))
    key_findings: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("key_findings", "keyFindings"),
    )
    hypotheses: list[str] = Field(default_factory=list)
    risk_factors: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("risk_factors", "riskFactors"),
    )
    opportunities: list[str] = Field(default_factory=list)

    @property
    def is_actionable(self) -> bool:
        """Both findings and hypotheses were produced."""
        return bool(self.key_findings) and bool(self.hypotheses)


@dataclass(frozen=True)
class EvidenceInputs:
    """Derived statistics the analyst worked from."""

    snapshot: SubjectSnapshot
    cohort_breakdown: dict[str, int]
    switched_count: int
    cv_risk_count: int
    peer_count: int
    peer_average_risk: float


class EvidenceAnalyst(PhaseAgent):
    """LLM-based evidence analyst."""

    agent_type = AgentType.ANALYST

    ANALYSIS_PROMPT = """You are an Evidence Analyst Agent. Examine the data below and identify what is driving this prescriber's behaviour.

PRESCRIBER:
{profile}

PRESCRIPTION HISTORY (most recent first):
{activity}

PATIENT COHORTS:
- Total Patients: {patient_count}
- Cohort Breakdown: {cohort_breakdown}
- Switched Patients: {switched_count} ({switched_pct}%)
- Cardiovascular Risk Patients: {cv_risk_count}
- Sample Patients:
{patients}

CLINICAL EVENT TIMELINE:
{events}

PEER COMPARISON:
- Prescribers in {territory}: {peer_count}
- Average peer risk score: {peer_average_risk:.1f}

INSTRUCTIONS:
1. Correlate prescription changes with the event timeline
2. Segment patients by cohort and analyze switching behavior per cohort
3. Compare against the territory peer group

Respond with JSON:
{{
  "rationale": "<your analysis>",
  "key_findings": ["<finding with timeline correlation>", "<finding about cohort patterns>"],
  "hypotheses": ["<working hypothesis>"],
  "risk_factors": ["<risk factor>"],
  "opportunities": ["<opportunity>"]
}}

Only return valid JSON."""

    async def run(
        self,
        recorder: SessionRecorder,
        subject_id: int,
        iteration: int,
    ) -> tuple[EvidenceResult, EvidenceInputs]:
        """
        Analyse the prescriber's data for the current iteration.

        Returns:
            The analysis and the statistics it was built from.
        """
        await recorder.thought(
            self.agent_type,
            ThoughtKind.OBSERVATION,
            f"Gathering evidence about prescription patterns, patient cohorts, and clinical events "
            f"for subject {subject_id}",
        )

        snapshot = await collect_subject_snapshot(self._data, subject_id)
        inputs = EvidenceInputs(
            snapshot=snapshot,
            cohort_breakdown=snapshot.cohort_breakdown,
            switched_count=len(snapshot.switched_patients),
            cv_risk_count=len(snapshot.cv_risk_patients),
            peer_count=len(snapshot.peers),
            peer_average_risk=snapshot.peer_average_risk,
        )

        await recorder.action(
            self.agent_type,
            ActionType.ANALYZE_PATTERN,
            "Analyzed prescription trends, patient cohorts, and clinical events",
            params={"subject_id": subject_id, "iteration": iteration},
            result={
                "history_count": len(snapshot.activity),
                "patient_count": len(snapshot.patients),
                "cohorts": sorted(inputs.cohort_breakdown),
                "switched_count": inputs.switched_count,
                "cv_risk_count": inputs.cv_risk_count,
                "event_count": len(snapshot.events),
                "peer_count": inputs.peer_count,
            },
        )

        patient_count = len(snapshot.patients)
        switched_pct = round(inputs.switched_count / patient_count * 100) if patient_count else 0
        cohort_text = ", ".join(f"{c}: {n}" for c, n in inputs.cohort_breakdown.items()) or "None"

        prompt = self.ANALYSIS_PROMPT.format(
            profile=format_profile(snapshot.subject),
            activity=format_activity(snapshot.activity),
            patient_count=patient_count,
            cohort_breakdown=cohort_text,
            switched_count=inputs.switched_count,
            switched_pct=switched_pct,
            cv_risk_count=inputs.cv_risk_count,
            patients=format_patients(snapshot.patients),
            events=format_events(snapshot.events),
            territory=snapshot.subject.territory,
            peer_count=inputs.peer_count,
            peer_average_risk=inputs.peer_average_risk,
        )

        evidence = await self._generator.generate(prompt, EvidenceResult, label="evidence_analyst")
        await recorder.thought(self.agent_type, ThoughtKind.REASONING, evidence.rationale)

        logger.debug(
            f"Evidence analysis for subject {subject_id}: "
            f"{len(evidence.key_findings)} findings, {len(evidence.hypotheses)} hypotheses"
        )
        return evidence, inputs
