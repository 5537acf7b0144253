"""
Human confirmation of proven hypotheses.

Only hypotheses in the proven partition of a subject's latest
investigation can be confirmed. A rejected confirmation changes nothing.
"""

from __future__ import annotations

import logging

from causal_nba_agent.db.store import SessionStore
from causal_nba_agent.errors import InsightAgentError
from causal_nba_agent.orchestrator.schemas import RecommendationBasis
from causal_nba_agent.reasoning.hypotheses import (
    ConfirmationRecord,
    InvestigationRecord,
    InvestigationView,
    RankedHypothesis,
)

logger = logging.getLogger(__name__)


class InvestigationNotFound(InsightAgentError):
    """Raised when a subject has no stored investigation."""

    def __init__(self, subject_id: int) -> None:
        super().__init__(f"No investigation found for subject {subject_id}")
        self.subject_id = subject_id


class ConfirmationRejected(InsightAgentError):
    """Raised when a confirmation request is empty or names non-proven hypotheses."""


def _dedupe(ids: list[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for hypothesis_id in ids:
        hypothesis_id = hypothesis_id.strip()
        if hypothesis_id and hypothesis_id not in seen:
            seen.add(hypothesis_id)
            ordered.append(hypothesis_id)
    return ordered


def build_investigation_view(
    investigation: InvestigationRecord,
    confirmation: ConfirmationRecord | None,
) -> InvestigationView:
    """Combine an investigation and its latest confirmation into a read model."""
    confirmed_ids = set(confirmation.hypothesis_ids) if confirmation else set()
    return InvestigationView(
        session_id=investigation.session_id,
        proven=investigation.proven,
        all_ranked=investigation.ranked,
        confirmed=[r for r in investigation.ranked if r.hypothesis.id in confirmed_ids],
        is_confirmed=confirmation is not None,
        unavailable=investigation.unavailable,
    )


async def resolve_causal_basis(
    store: SessionStore,
    subject_id: int,
) -> tuple[list[RankedHypothesis], RecommendationBasis]:
    """
    Pick the hypotheses a recommendation should be grounded on.

    Confirmed hypotheses win over proven ones; with neither, the basis
    is empty.
    """
    investigation = await store.get_latest_investigation(subject_id)
    if investigation is None:
        return [], "none"

    confirmation = await store.get_confirmation(investigation.session_id)
    if confirmation is not None:
        view = build_investigation_view(investigation, confirmation)
        if view.confirmed:
            return view.confirmed, "confirmed"

    proven = investigation.proven
    if proven:
        return proven, "proven"
    return [], "none"


class ConfirmationGate:
    """Validates and records human confirmation of proven hypotheses."""

    def __init__(self, store: SessionStore) -> None:
        self._store = store

    async def confirm(
        self,
        subject_id: int,
        hypothesis_ids: list[str],
        notes: str = "",
    ) -> ConfirmationRecord:
        """
        Confirm a subset of the proven hypotheses of the latest investigation.

        Args:
            subject_id: Prescriber whose investigation is being confirmed.
            hypothesis_ids: Non-empty subset of proven hypothesis ids.
            notes: Reviewer notes.

        Returns:
            The stored confirmation.

        Raises:
            ConfirmationRejected: Empty subset or any id outside the proven partition.
            InvestigationNotFound: The subject has no investigation.
        """
        ids = _dedupe(hypothesis_ids)
        if not ids:
            raise ConfirmationRejected("At least one hypothesis must be confirmed")

        investigation = await self._store.get_latest_investigation(subject_id)
        if investigation is None:
            raise InvestigationNotFound(subject_id)

        proven_ids = set(investigation.proven_ids)
        outside = [h for h in ids if h not in proven_ids]
        if outside:
            raise ConfirmationRejected(
                f"Only proven hypotheses can be confirmed; not proven: {', '.join(outside)}"
            )

        confirmation = ConfirmationRecord(
            session_id=investigation.session_id,
            subject_id=subject_id,
            hypothesis_ids=ids,
            notes=notes,
        )
        await self._store.save_confirmation(confirmation)
        await self._store.update_session(investigation.session_id, human_confirmed=True)

        logger.info(f"Subject {subject_id}: confirmed hypotheses {', '.join(ids)}")
        return confirmation
