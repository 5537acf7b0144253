"""
Domain data provider.

Read-only access to prescriber field data. The engine only depends on
the abstract interface; the in-memory implementation serves a JSON
fixture for local runs and tests.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from causal_nba_agent.data.schemas import (
    ClinicalEvent,
    Patient,
    Prescriber,
    PrescriptionRecord,
    SwitchingEvent,
)
from causal_nba_agent.errors import InsightAgentError

logger = logging.getLogger(__name__)


class SubjectNotFound(InsightAgentError):
    """Raised when a prescriber id is unknown to the data provider."""

    def __init__(self, subject_id: int) -> None:
        super().__init__(f"Subject {subject_id} not found")
        self.subject_id = subject_id


class DomainDataProvider(ABC):
    """Abstract source of prescriber data."""

    @abstractmethod
    async def get_subject(self, subject_id: int) -> Prescriber:
        """
        Get a prescriber profile.

        Raises:
            SubjectNotFound: If the prescriber does not exist.
        """
        ...

    @abstractmethod
    async def get_activity(self, subject_id: int) -> list[PrescriptionRecord]:
        """Get prescription history, most recent month first."""
        ...

    @abstractmethod
    async def get_patients(self, subject_id: int) -> list[Patient]:
        """Get the prescriber's patients."""
        ...

    @abstractmethod
    async def get_events(self, subject_id: int) -> list[ClinicalEvent]:
        """Get clinical events relevant to the prescriber, oldest first."""
        ...

    @abstractmethod
    async def get_active_switching_event(self, subject_id: int) -> SwitchingEvent | None:
        """Get the prescriber's active switching event, if any."""
        ...

    @abstractmethod
    async def get_peers(self, territory: str) -> list[Prescriber]:
        """Get all prescribers in a territory."""
        ...


class SubjectRecord(BaseModel):
    """Everything the in-memory provider holds for one prescriber."""

    profile: Prescriber
    activity: list[PrescriptionRecord] = Field(default_factory=list)
    patients: list[Patient] = Field(default_factory=list)
    events: list[ClinicalEvent] = Field(default_factory=list)
    switching_events: list[SwitchingEvent] = Field(default_factory=list)


class InMemoryDataProvider(DomainDataProvider):
    """Data provider backed by an in-process dictionary."""

    def __init__(self, records: list[SubjectRecord] | None = None) -> None:
        self._records: dict[int, SubjectRecord] = {}
        for record in records or []:
            self.add(record)

    @classmethod
    def from_json(cls, path: str | Path) -> InMemoryDataProvider:
        """
        Load subjects from a JSON file.

        The file holds ``{"subjects": [...]}`` where each entry matches
        ``SubjectRecord``.
        """
        raw: dict[str, Any] = json.loads(Path(path).read_text(encoding="utf-8"))
        records = [SubjectRecord.model_validate(item) for item in raw.get("subjects", [])]
        logger.info(f"Loaded {len(records)} subjects from {path}")
        return cls(records)

    def add(self, record: SubjectRecord) -> None:
        """Add or replace a subject."""
        self._records[record.profile.id] = record

    def _get(self, subject_id: int) -> SubjectRecord:
        record = self._records.get(subject_id)
        if record is None:
            raise SubjectNotFound(subject_id)
        return record

    async def get_subject(self, subject_id: int) -> Prescriber:
        return self._get(subject_id).profile

    async def get_activity(self, subject_id: int) -> list[PrescriptionRecord]:
        return sorted(self._get(subject_id).activity, key=lambda r: r.month, reverse=True)

    async def get_patients(self, subject_id: int) -> list[Patient]:
        return list(self._get(subject_id).patients)

    async def get_events(self, subject_id: int) -> list[ClinicalEvent]:
        return sorted(self._get(subject_id).events, key=lambda e: e.event_date)

    async def get_active_switching_event(self, subject_id: int) -> SwitchingEvent | None:
        for event in self._get(subject_id).switching_events:
            if event.status == "active":
                return event
        return None

    async def get_peers(self, territory: str) -> list[Prescriber]:
        return [r.profile for r in self._records.values() if r.profile.territory == territory]
