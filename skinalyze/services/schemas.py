"""
Remote Wire Schemas

Pydantic models for backend response bodies. Field names accept the Python
snake_case form as well as the camelCase keys the backend has historically
emitted (``fitzpatrickType``, ``diagnosedCondition``, ``progressEntries``).
Unknown keys are ignored.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from skinalyze.core.catalog import RiskTier
from skinalyze.core.inference import normalize_percent
from skinalyze.core.storage import (
    DEFAULT_SKIN_TYPE,
    DiagnosisRecord,
    PatientDetail,
    PatientRecord,
    ProgressEntry,
    SyncState,
    parse_risk_tier,
)
from skinalyze.core.storage.records import utc_now
from skinalyze.utils import ValidationError


def _percent(value: Any) -> int:
    try:
        return normalize_percent(value)
    except ValidationError as e:
        # pydantic only collects ValueError / AssertionError
        raise ValueError(e.message) from e


class WireModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class WirePatient(WireModel):
    id: int
    name: str
    skin_type_category: str = Field(
        default=DEFAULT_SKIN_TYPE,
        validation_alias=AliasChoices(
            "skin_type_category", "skinTypeCategory", "fitzpatrickType", "fitzpatrick_type"
        ),
    )
    created_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("created_at", "createdAt"),
    )

    def to_record(self) -> PatientRecord:
        return PatientRecord(
            id=self.id,
            name=self.name,
            skin_type_category=self.skin_type_category,
            created_at=self.created_at or utc_now(),
        )


class WireDiagnosis(WireModel):
    patient_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("patient_id", "patientId"),
    )
    condition: str = Field(
        validation_alias=AliasChoices("condition", "diagnosedCondition", "diagnosed_condition"),
    )
    risk_tier: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("risk_tier", "riskTier", "riskLevel", "risk_level"),
    )
    confidence_percent: int = Field(
        validation_alias=AliasChoices("confidence_percent", "confidencePercent", "confidence"),
    )
    notes: str = Field(
        default="",
        validation_alias=AliasChoices("notes", "clinicalNotes", "clinical_notes"),
    )
    image_ref: str = Field(
        default="",
        validation_alias=AliasChoices("image_ref", "imageRef", "imagePath", "image_path"),
    )
    predictions: List[Dict[str, Any]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("predictions", "allPredictions", "all_predictions"),
    )
    clinical_metrics: Dict[str, Union[bool, float]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("clinical_metrics", "clinicalMetrics", "metrics"),
    )
    timestamp: Optional[datetime] = None

    @field_validator("confidence_percent", mode="before")
    @classmethod
    def _unify_confidence(cls, value: Any) -> int:
        return _percent(value)

    @field_validator("image_ref", "notes", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_record(self, patient_id: Optional[int] = None) -> DiagnosisRecord:
        resolved = self.patient_id if self.patient_id is not None else patient_id
        if resolved is None:
            raise ValueError("Diagnosis has no patient id")
        return DiagnosisRecord(
            patient_id=resolved,
            condition=self.condition,
            risk_tier=parse_risk_tier(self.risk_tier, RiskTier.LOW),
            confidence_percent=self.confidence_percent,
            notes=self.notes,
            image_ref=self.image_ref,
            predictions=[dict(p) for p in self.predictions],
            clinical_metrics=dict(self.clinical_metrics),
            timestamp=self.timestamp or utc_now(),
            sync_state=SyncState.SYNCED,
        )


class WireProgress(WireModel):
    patient_id: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("patient_id", "patientId"),
    )
    healing_score: int = Field(
        ge=0, le=100,
        validation_alias=AliasChoices("healing_score", "healingScore"),
    )
    notes: str = ""
    date: Optional[datetime] = None

    def to_entry(self, patient_id: int) -> ProgressEntry:
        return ProgressEntry(
            patient_id=self.patient_id if self.patient_id is not None else patient_id,
            healing_score=self.healing_score,
            notes=self.notes,
            date=self.date or utc_now(),
        )


# ----------------------------------------------------------------------
# Response envelopes
# ----------------------------------------------------------------------
class PatientListResponse(WireModel):
    patients: List[WirePatient]


class PatientDetailResponse(WireModel):
    patient: WirePatient
    diagnoses: List[WireDiagnosis] = Field(default_factory=list)
    progress: List[WireProgress] = Field(
        default_factory=list,
        validation_alias=AliasChoices("progress", "progressEntries", "progress_entries"),
    )

    def to_detail(self) -> PatientDetail:
        patient = self.patient.to_record()
        return PatientDetail(
            patient=patient,
            diagnoses=[d.to_record(patient.id) for d in self.diagnoses],
            progress=[p.to_entry(patient.id) for p in self.progress],
        )


class PatientCreatedResponse(WireModel):
    patient: WirePatient


class DiagnosisSavedResponse(WireModel):
    # Some backends acknowledge with ``{"success": true}`` only
    diagnosis: Optional[WireDiagnosis] = None


class DiagnosisHistoryResponse(WireModel):
    diagnoses: List[WireDiagnosis]


class ProgressResponse(WireModel):
    progress: List[WireProgress] = Field(
        validation_alias=AliasChoices("progress", "progressEntries", "progress_entries"),
    )
