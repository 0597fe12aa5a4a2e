"""
Local Storage Module

Durable offline cache, typed record repositories and the baseline dataset
used to seed a fresh installation.
"""
from .records import (
    DiagnosisRecord,
    PatientDetail,
    PatientRecord,
    ProgressEntry,
    SyncState,
    FITZPATRICK_TYPES,
    DEFAULT_SKIN_TYPE,
    parse_risk_tier,
    validate_patient_fields,
)
from .baseline import BaselineDataset, generate_clinical_metrics
from .store import Namespace, OfflineStore, SEEDED_NAMESPACES
from .repositories import DiagnosisRepository, PatientRepository, ProgressRepository

__all__ = [
    "DiagnosisRecord",
    "PatientDetail",
    "PatientRecord",
    "ProgressEntry",
    "SyncState",
    "FITZPATRICK_TYPES",
    "DEFAULT_SKIN_TYPE",
    "parse_risk_tier",
    "validate_patient_fields",
    "BaselineDataset",
    "generate_clinical_metrics",
    "Namespace",
    "OfflineStore",
    "SEEDED_NAMESPACES",
    "DiagnosisRepository",
    "PatientRepository",
    "ProgressRepository",
]
