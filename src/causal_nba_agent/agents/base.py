"""
Shared plumbing for LLM-backed agents.

Every agent renders one prompt from domain data, makes one structured
generation call, and records what it did on the session.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from causal_nba_agent.data.provider import DomainDataProvider
from causal_nba_agent.data.schemas import (
    ClinicalEvent,
    Patient,
    Prescriber,
    PrescriptionRecord,
    SwitchingEvent,
)
from causal_nba_agent.models.structured import StructuredGenerator
from causal_nba_agent.orchestrator.schemas import AgentType


@dataclass(frozen=True)
class SubjectSnapshot:
    """Domain data for one prescriber, read once per phase."""

    subject: Prescriber
    activity: list[PrescriptionRecord] = field(default_factory=list)
    patients: list[Patient] = field(default_factory=list)
    events: list[ClinicalEvent] = field(default_factory=list)
    switching_event: SwitchingEvent | None = None
    peers: list[Prescriber] = field(default_factory=list)

    @property
    def cohort_breakdown(self) -> dict[str, int]:
        return dict(Counter(p.cohort for p in self.patients))

    @property
    def switched_patients(self) -> list[Patient]:
        return [p for p in self.patients if p.switched_date is not None]

    @property
    def cv_risk_patients(self) -> list[Patient]:
        return [p for p in self.patients if p.has_cardiovascular_risk]

    @property
    def peer_average_risk(self) -> float:
        if not self.peers:
            return 0.0
        return sum(p.risk_score for p in self.peers) / len(self.peers)


async def collect_subject_snapshot(data: DomainDataProvider, subject_id: int) -> SubjectSnapshot:
    """Read everything the agents need about a prescriber."""
    subject = await data.get_subject(subject_id)
    return SubjectSnapshot(
        subject=subject,
        activity=await data.get_activity(subject_id),
        patients=await data.get_patients(subject_id),
        events=await data.get_events(subject_id),
        switching_event=await data.get_active_switching_event(subject_id),
        peers=await data.get_peers(subject.territory),
    )


def format_profile(subject: Prescriber) -> str:
    last_visit = subject.last_visit_date.date().isoformat() if subject.last_visit_date else "Never"
    return "\n".join(
        [
            f"Name: {subject.name}",
            f"Specialty: {subject.specialty}",
            f"Hospital: {subject.hospital}",
            f"Territory: {subject.territory}",
            f"Last Visit: {last_visit}",
            f"Engagement: {subject.engagement_level}",
            f"Risk Score: {subject.risk_score}/100 ({subject.risk_tier})",
            f"Risk Factors: {', '.join(subject.risk_reasons) or 'None'}",
        ]
    )


def format_activity(activity: list[PrescriptionRecord], limit: int = 10) -> str:
    if not activity:
        return "  (no prescription history)"
    lines = []
    for record in activity[:limit]:
        cohort = f" [Cohort: {record.cohort}]" if record.cohort else ""
        lines.append(f"  - {record.month}: {record.product_name} ({record.prescription_count} Rx){cohort}")
    return "\n".join(lines)


def format_patients(patients: list[Patient], limit: int = 5) -> str:
    if not patients:
        return "  (no patients on record)"
    lines = []
    for p in patients[:limit]:
        if p.switched_date:
            status = f"Switched to {p.switched_to_drug} on {p.switched_date.date().isoformat()}"
        else:
            status = f"Stable on {p.current_drug}"
        lines.append(f"  - {p.patient_code}: Age {p.age}, {p.cancer_type or 'n/a'}, {p.cohort} cohort, {status}")
    return "\n".join(lines)


def format_events(events: list[ClinicalEvent]) -> str:
    if not events:
        return "  (no clinical events)"
    return "\n".join(
        f"  - {e.event_date.date().isoformat()}: {e.title} ({e.event_type}, {e.impact} impact) - {e.description}"
        for e in events
    )


def format_list(items: list[str], empty: str = "None") -> str:
    if not items:
        return f"  {empty}"
    return "\n".join(f"  - {item}" for item in items)


_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


def coerce_percent(value: Any) -> Any:
    """
    Turn "80%", "80 / 100" or 0.8 into a 0-100 float; leave anything else for validation.

    A bare fraction in (0, 1) is read as a proportion, so 0.5 becomes 50.
    Text that spells out its scale ("0.5%", "0.5 / 100") is taken as written.
    """
    if isinstance(value, bool):
        return value
    scaled = False
    if isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if not match:
            return value
        scaled = "%" in value or "/" in value
        value = float(match.group())
    if isinstance(value, (int, float)):
        number = float(value)
        if not scaled and 0.0 < number < 1.0:
            number *= 100.0
        return number
    return value


def coerce_text(value: Any) -> Any:
    """Join list answers into a single string."""
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    return value


class PhaseAgent:
    """Base class holding the shared collaborators of an agent."""

    agent_type: AgentType = AgentType.ORCHESTRATOR

    def __init__(self, generator: StructuredGenerator, data: DomainDataProvider) -> None:
        """
        Initialize the agent.

        Args:
            generator: Structured generation client for the single model call.
            data: Domain data provider.
        """
        self._generator = generator
        self._data = data
