"""
Ranking and partitioning of scored hypotheses.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from causal_nba_agent.config import get_settings
from causal_nba_agent.reasoning.hypotheses import EvidenceScore, Hypothesis, RankedHypothesis, Verdict

_PROVEN_VERDICTS = frozenset({Verdict.PROVEN, Verdict.LIKELY})


@dataclass
class RankingResult:
    """Ranked hypotheses split into proven, ruled-out and under-review."""

    ranked: list[RankedHypothesis] = field(default_factory=list)
    proven: list[RankedHypothesis] = field(default_factory=list)
    ruled_out: list[RankedHypothesis] = field(default_factory=list)
    under_review: list[RankedHypothesis] = field(default_factory=list)

    @property
    def headline(self) -> RankedHypothesis | None:
        return self.proven[0] if self.proven else None


def rank_hypotheses(
    scored: list[tuple[Hypothesis, EvidenceScore]],
    proven_confidence: float | None = None,
    ruled_out_confidence: float | None = None,
) -> RankingResult:
    """
    Sort scored hypotheses by final confidence and partition them.

    A hypothesis is proven when its confidence reaches ``proven_confidence``
    and its verdict is proven or likely; ruled out below
    ``ruled_out_confidence``; otherwise under review. Ties keep the
    input order.
    """
    settings = get_settings()
    proven_at = settings.proven_confidence if proven_confidence is None else proven_confidence
    ruled_out_below = settings.ruled_out_confidence if ruled_out_confidence is None else ruled_out_confidence

    ranked = sorted(
        (RankedHypothesis(hypothesis=h, score=s) for h, s in scored),
        key=lambda r: r.confidence,
        reverse=True,
    )

    result = RankingResult(ranked=ranked)
    for item in ranked:
        if item.confidence >= proven_at and item.score.verdict in _PROVEN_VERDICTS:
            result.proven.append(item)
        elif item.confidence < ruled_out_below:
            result.ruled_out.append(item)
        else:
            result.under_review.append(item)
    return result
