"""
Pydantic schemas for prescriber domain data.

These mirror the records the field-data provider serves: prescriber
profiles, monthly prescription history, patients, clinical events and
detected switching events.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

EngagementLevel = Literal["low", "medium", "high"]
RiskTier = Literal["low", "medium", "high", "critical"]


class Prescriber(BaseModel):
    """Profile of a healthcare prescriber (the investigation subject)."""

    id: int = Field(..., description="Prescriber identifier")
    name: str = Field(..., description="Prescriber's full name")
    specialty: str = Field(..., description="Clinical specialty")
    hospital: str = Field(..., description="Primary hospital or practice")
    territory: str = Field(..., description="Sales territory")
    last_visit_date: datetime | None = Field(default=None, description="Last field visit")
    engagement_level: EngagementLevel = Field(default="medium", description="Engagement with the field team")
    risk_score: int = Field(default=0, ge=0, le=100, description="Externally computed switch-risk score")
    risk_tier: RiskTier = Field(default="low", description="Switch-risk tier")
    risk_reasons: list[str] = Field(default_factory=list, description="Factors behind the risk score")


class PrescriptionRecord(BaseModel):
    """Monthly prescription volume for one product."""

    month: str = Field(..., description="Month in YYYY-MM form")
    product_name: str = Field(..., description="Prescribed product")
    product_category: str = Field(default="", description="Therapeutic category")
    prescription_count: int = Field(..., ge=0, description="Prescriptions written in the month")
    is_our_product: bool = Field(default=True, description="Whether the product is ours or a competitor's")
    cohort: str | None = Field(default=None, description="Patient cohort the volume belongs to")


class Patient(BaseModel):
    """An anonymised patient treated by the prescriber."""

    patient_code: str = Field(..., description="Anonymous identifier such as P001")
    age: int = Field(..., ge=0)
    cancer_type: str = Field(default="")
    cancer_stage: str = Field(default="")
    has_cardiovascular_risk: bool = Field(default=False)
    cardiovascular_conditions: list[str] = Field(default_factory=list)
    current_drug: str = Field(..., description="Current prescription")
    cohort: str = Field(..., description="Cohort label, e.g. young_rcc or cv_risk")
    switched_date: datetime | None = Field(default=None, description="When the patient switched, if ever")
    switched_to_drug: str | None = Field(default=None)
    payer: str | None = Field(default=None)


class ClinicalEvent(BaseModel):
    """A conference, publication, adverse event or similar signal."""

    event_type: str = Field(..., description="conference, adverse_event, publication, webinar")
    title: str
    description: str = ""
    event_date: datetime
    impact: Literal["low", "medium", "high"] = "medium"
    related_drug: str | None = None


class SwitchingEvent(BaseModel):
    """A detected product switch for a prescriber."""

    from_product: str
    to_product: str
    detected_at: datetime
    confidence_score: int = Field(default=0, ge=0, le=100)
    switch_type: str = Field(default="gradual", description="gradual, sudden or complete")
    impact_level: str = Field(default="medium")
    status: str = Field(default="active", description="active, addressed or monitoring")
