"""
Baseline Dataset

Example patients, diagnoses and progress entries written once into a fresh
offline store so the application is usable before any data is entered.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import numpy as np

from .records import (
    DiagnosisRecord,
    MetricValue,
    PatientRecord,
    ProgressEntry,
    SyncState,
    utc_now,
)
from skinalyze.core.catalog import RiskTier


def generate_clinical_metrics(rng: Optional[np.random.Generator] = None) -> Dict[str, MetricValue]:
    """ABCDE-inspired metrics and simple dermoscopic parameters."""
    rng = rng or np.random.default_rng()

    def rand(low: float, high: float, digits: int = 2) -> float:
        return round(float(rng.uniform(low, high)), digits)

    return {
        "asymmetry_score": rand(0, 1),
        "border_irregularity": rand(0, 1),
        "color_var_index": rand(0, 1),
        "diameter_mm": rand(2, 12, 1),
        "evolution_flag": bool(rng.random() < 0.3),
        "pigment_network_score": rand(0, 1),
        "blue_white_veil_score": rand(0, 1),
        "atypical_vessels_score": rand(0, 1),
    }


class BaselineDataset:
    """
    Builds the seed content for each data namespace.

    Timestamps are relative to ``now`` so the examples look recent on a
    fresh install.
    """

    def __init__(self, now: Optional[datetime] = None, seed: Optional[int] = None):
        self._now = now
        self._rng = np.random.default_rng(seed)

    def _days_ago(self, days: int) -> datetime:
        return (self._now or utc_now()) - timedelta(days=days)

    def patients(self) -> list:
        created = self._now or utc_now()
        return [
            PatientRecord(id=1, name="John Doe", skin_type_category="III", created_at=created).to_dict(),
            PatientRecord(id=2, name="Jane Smith", skin_type_category="II", created_at=created).to_dict(),
            PatientRecord(id=3, name="Rahul Verma", skin_type_category="V", created_at=created).to_dict(),
        ]

    def diagnoses_by_patient(self) -> Dict[str, Any]:
        return {
            "1": [
                DiagnosisRecord(
                    patient_id=1,
                    condition="Melanocytic Nevus",
                    risk_tier=RiskTier.LOW,
                    confidence_percent=86,
                    notes="Benign-appearing nevus. Advise routine monitoring.",
                    clinical_metrics=generate_clinical_metrics(self._rng),
                    timestamp=self._days_ago(7),
                    sync_state=SyncState.SYNCED,
                ).to_dict(),
            ],
            "2": [
                DiagnosisRecord(
                    patient_id=2,
                    condition="Actinic Keratosis",
                    risk_tier=RiskTier.MEDIUM,
                    confidence_percent=72,
                    notes="Pre-cancerous lesion suspected. Recommend cryotherapy if persistent.",
                    clinical_metrics=generate_clinical_metrics(self._rng),
                    timestamp=self._days_ago(3),
                    sync_state=SyncState.SYNCED,
                ).to_dict(),
            ],
            "3": [],
        }

    def progress_by_patient(self) -> Dict[str, Any]:
        return {
            "1": [
                ProgressEntry(
                    patient_id=1,
                    healing_score=65,
                    notes="Post-observation: stable appearance, no alarming changes.",
                    date=self._days_ago(6),
                ).to_dict(),
                ProgressEntry(
                    patient_id=1,
                    healing_score=74,
                    notes="Slight improvement in border regularity and color uniformity.",
                    date=self._days_ago(2),
                ).to_dict(),
            ],
            "2": [
                ProgressEntry(
                    patient_id=2,
                    healing_score=58,
                    notes="Erythema reduced; lesion surface less scaly than baseline.",
                    date=self._days_ago(2),
                ).to_dict(),
            ],
            "3": [],
        }
