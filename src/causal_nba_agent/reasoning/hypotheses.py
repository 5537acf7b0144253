"""Causal hypothesis layer.

Hypotheses are candidate explanations for a prescriber's behaviour.
They are never treated as facts: each one is scored against gathered
evidence, ranked, and only the proven partition may be confirmed by a
human reviewer before it can drive a recommendation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Verdict(str, Enum):
    """Evidence-weighted verdict on a hypothesis."""

    PROVEN = "proven"
    LIKELY = "likely"
    POSSIBLE = "possible"
    UNLIKELY = "unlikely"
    DISPROVEN = "disproven"


class EvidenceStrength(str, Enum):
    """How strongly one evidence item bears on its hypothesis."""

    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"


SourceKind = Literal["internal", "external"]


class Hypothesis(BaseModel):
    """A candidate causal explanation (immutable once produced)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default="", description="Hypothesis id such as H1")
    title: str = Field(..., min_length=1)
    description: str = Field(default="")
    causal_chain: list[str] = Field(default_factory=list, description="Ordered cause-to-effect steps")
    predicted_patterns: list[str] = Field(default_factory=list, description="What the data should show if true")
    data_sources_needed: list[str] = Field(default_factory=list)
    initial_confidence: float = Field(default=50.0, ge=0.0, le=100.0)
    affected_cohort: str | None = Field(default=None, description="Patient cohort the hypothesis is scoped to")

    @field_validator("initial_confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: object) -> object:
        if isinstance(v, (int, float)):
            return max(0.0, min(100.0, float(v)))
        return v


class HypothesisSet(BaseModel):
    """Output of the hypothesis generator."""

    hypotheses: list[Hypothesis] = Field(..., min_length=3, max_length=5)


class EvidenceItem(BaseModel):
    """One piece of evidence for or against a hypothesis."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str = Field(..., description="Where the evidence comes from")
    finding: str = Field(..., description="What the source shows")
    supports: bool = Field(
        ...,
        validation_alias=AliasChoices("supports", "supports_hypothesis", "supportsHypothesis"),
    )
    strength: EvidenceStrength = EvidenceStrength.MODERATE
    source_kind: SourceKind = Field(
        default="internal",
        validation_alias=AliasChoices("source_kind", "sourceKind", "source_type"),
        description="internal records vs external references",
    )

    @field_validator("strength", mode="before")
    @classmethod
    def _normalize_strength(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("source_kind", mode="before")
    @classmethod
    def _normalize_source_kind(cls, v: object) -> object:
        if isinstance(v, str):
            v = v.strip().lower()
            return "external" if v.startswith("ext") else "internal"
        return v

    @property
    def synthetic(self) -> bool:
        """External references are model-produced and unverified."""
        return self.source_kind == "external"


class EvidenceAssessment(BaseModel):
    """Output of one evidence gatherer."""

    evidence: list[EvidenceItem] = Field(..., min_length=6, max_length=10)
    final_confidence: float = Field(..., ge=0.0, le=100.0)
    verdict: Verdict
    reasoning: str = Field(default="")

    @field_validator("verdict", mode="before")
    @classmethod
    def _normalize_verdict(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v


class EvidenceScore(BaseModel):
    """The scored outcome for exactly one hypothesis."""

    model_config = ConfigDict(frozen=True)

    hypothesis_id: str
    evidence: tuple[EvidenceItem, ...]
    final_confidence: float = Field(..., ge=0.0, le=100.0)
    verdict: Verdict
    reasoning: str = ""

    @property
    def supporting_count(self) -> int:
        return sum(1 for e in self.evidence if e.supports)

    @property
    def synthetic_count(self) -> int:
        return sum(1 for e in self.evidence if e.synthetic)


class RankedHypothesis(BaseModel):
    """A hypothesis together with its evidence score."""

    hypothesis: Hypothesis
    score: EvidenceScore

    @property
    def confidence(self) -> float:
        return self.score.final_confidence


class UnavailableHypothesis(BaseModel):
    """A hypothesis whose evidence could not be gathered."""

    hypothesis: Hypothesis
    error: str = Field(..., description="Why evidence is unavailable")


class InvestigationRecord(BaseModel):
    """A completed causal investigation for one subject."""

    session_id: UUID
    subject_id: int
    ranked: list[RankedHypothesis] = Field(default_factory=list, description="Sorted by confidence, descending")
    proven_ids: list[str] = Field(default_factory=list)
    ruled_out_ids: list[str] = Field(default_factory=list)
    under_review_ids: list[str] = Field(default_factory=list)
    unavailable: list[UnavailableHypothesis] = Field(default_factory=list)
    headline: RankedHypothesis | None = Field(default=None, description="Top proven hypothesis")
    created_at: datetime = Field(default_factory=_now_utc)

    @property
    def proven(self) -> list[RankedHypothesis]:
        ids = set(self.proven_ids)
        return [r for r in self.ranked if r.hypothesis.id in ids]


class ConfirmationRecord(BaseModel):
    """A human reviewer's confirmation of proven hypotheses."""

    session_id: UUID
    subject_id: int
    hypothesis_ids: list[str] = Field(..., min_length=1)
    notes: str = ""
    confirmed_at: datetime = Field(default_factory=_now_utc)


class InvestigationView(BaseModel):
    """Read model returned for the latest investigation of a subject."""

    session_id: UUID
    proven: list[RankedHypothesis] = Field(default_factory=list)
    all_ranked: list[RankedHypothesis] = Field(default_factory=list)
    confirmed: list[RankedHypothesis] = Field(default_factory=list)
    is_confirmed: bool = False
    unavailable: list[UnavailableHypothesis] = Field(default_factory=list)
