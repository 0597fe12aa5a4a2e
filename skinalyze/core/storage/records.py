"""
Persistent Record Types

Patients, diagnoses and progress entries as they are cached on device.
Serialization is plain JSON with ISO-8601 timestamps.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from skinalyze.core.catalog import RiskTier
from skinalyze.utils import ValidationError

MetricValue = Union[float, bool]

FITZPATRICK_TYPES: Tuple[str, ...] = ("I", "II", "III", "IV", "V", "VI")
DEFAULT_SKIN_TYPE = "III"


class SyncState(str, Enum):
    """Whether a record is known to the remote backend."""
    SYNCED       = "Synced"
    PENDING_SYNC = "PendingSync"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        # fromisoformat only accepts a trailing "Z" from 3.11 on
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    return utc_now()


def parse_risk_tier(value: Any, default: Optional[RiskTier] = None) -> Optional[RiskTier]:
    """Case-insensitive RiskTier lookup; ``default`` when missing or unknown."""
    if isinstance(value, RiskTier):
        return value
    if isinstance(value, str):
        for tier in RiskTier:
            if tier.value.lower() == value.strip().lower():
                return tier
    return default


def validate_patient_fields(name: Any, skin_type_category: Any) -> Tuple[str, str]:
    """
    Check intake fields and return them cleaned.

    Raises:
        ValidationError: empty name or a category outside Fitzpatrick I-VI
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Patient name is required", field="name")

    category = DEFAULT_SKIN_TYPE if skin_type_category is None else skin_type_category
    if not isinstance(category, str) or category.strip().upper() not in FITZPATRICK_TYPES:
        raise ValidationError(
            f"Skin type must be one of Fitzpatrick {', '.join(FITZPATRICK_TYPES)}",
            field="skin_type_category",
            details={"value": skin_type_category},
        )
    return name.strip(), category.strip().upper()


@dataclass
class PatientRecord:
    """A patient created by clinician intake."""
    id: int
    name: str
    skin_type_category: str = DEFAULT_SKIN_TYPE
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "skin_type_category": self.skin_type_category,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PatientRecord":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            skin_type_category=data.get("skin_type_category", DEFAULT_SKIN_TYPE),
            created_at=parse_timestamp(data.get("created_at")),
        )


@dataclass(frozen=True)
class DiagnosisRecord:
    """
    A saved diagnosis. Immutable once written.

    ``predictions`` is a snapshot of the ranked prediction list with each
    confidence stored as an integer percentage.
    """
    patient_id: int
    condition: str
    risk_tier: RiskTier
    confidence_percent: int
    notes: str = ""
    image_ref: str = ""
    predictions: List[Dict[str, Any]] = field(default_factory=list)
    clinical_metrics: Dict[str, MetricValue] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)
    sync_state: SyncState = SyncState.PENDING_SYNC

    def with_sync_state(self, state: SyncState) -> "DiagnosisRecord":
        return replace(self, sync_state=state)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "condition": self.condition,
            "risk_tier": self.risk_tier.value,
            "confidence_percent": self.confidence_percent,
            "notes": self.notes,
            "image_ref": self.image_ref,
            "predictions": [dict(p) for p in self.predictions],
            "clinical_metrics": dict(self.clinical_metrics),
            "timestamp": self.timestamp.isoformat(),
            "sync_state": self.sync_state.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiagnosisRecord":
        return cls(
            patient_id=int(data["patient_id"]),
            condition=data["condition"],
            risk_tier=parse_risk_tier(data.get("risk_tier"), RiskTier.LOW),
            confidence_percent=int(data["confidence_percent"]),
            notes=data.get("notes", ""),
            image_ref=data.get("image_ref", ""),
            predictions=list(data.get("predictions", [])),
            clinical_metrics=dict(data.get("clinical_metrics", {})),
            timestamp=parse_timestamp(data.get("timestamp")),
            sync_state=SyncState(data.get("sync_state", SyncState.PENDING_SYNC.value)),
        )


@dataclass(frozen=True)
class ProgressEntry:
    """A healing-progress observation recorded by a clinician."""
    patient_id: int
    healing_score: int
    notes: str = ""
    date: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "healing_score": self.healing_score,
            "notes": self.notes,
            "date": self.date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProgressEntry":
        return cls(
            patient_id=int(data["patient_id"]),
            healing_score=int(data["healing_score"]),
            notes=data.get("notes", ""),
            date=parse_timestamp(data.get("date")),
        )


@dataclass
class PatientDetail:
    """A patient together with their diagnosis history and progress."""
    patient: PatientRecord
    diagnoses: List[DiagnosisRecord] = field(default_factory=list)
    progress: List[ProgressEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient": self.patient.to_dict(),
            "diagnoses": [d.to_dict() for d in self.diagnoses],
            "progress": [p.to_dict() for p in self.progress],
        }
