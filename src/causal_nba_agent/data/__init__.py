"""
Data module for prescriber field data access.
"""

from causal_nba_agent.data.provider import (
    DomainDataProvider,
    InMemoryDataProvider,
    SubjectNotFound,
    SubjectRecord,
)
from causal_nba_agent.data.schemas import (
    ClinicalEvent,
    Patient,
    Prescriber,
    PrescriptionRecord,
    SwitchingEvent,
)

__all__ = [
    "DomainDataProvider",
    "InMemoryDataProvider",
    "SubjectNotFound",
    "SubjectRecord",
    "ClinicalEvent",
    "Patient",
    "Prescriber",
    "PrescriptionRecord",
    "SwitchingEvent",
]
