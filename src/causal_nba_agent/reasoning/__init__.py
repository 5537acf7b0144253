"""
Reasoning module for causal hypothesis discovery.

Exports the hypothesis and evidence models and the ranking step. The
discovery engine and confirmation gate live in their own modules.
"""

from causal_nba_agent.reasoning.hypotheses import (
    ConfirmationRecord,
    EvidenceAssessment,
    EvidenceItem,
    EvidenceScore,
    EvidenceStrength,
    Hypothesis,
    HypothesisSet,
    InvestigationRecord,
    InvestigationView,
    RankedHypothesis,
    UnavailableHypothesis,
    Verdict,
)
from causal_nba_agent.reasoning.ranking import RankingResult, rank_hypotheses

__all__ = [
    "ConfirmationRecord",
    "EvidenceAssessment",
    "EvidenceItem",
    "EvidenceScore",
    "EvidenceStrength",
    "Hypothesis",
    "HypothesisSet",
    "InvestigationRecord",
    "InvestigationView",
    "RankedHypothesis",
    "UnavailableHypothesis",
    "Verdict",
    "RankingResult",
    "rank_hypotheses",
]
