"""
Persistence Gateway

Offline-first facade over the remote backend and the local store.

Every operation validates its input first, then asks the remote backend.
When the backend is unavailable (or offline mode is on, or no backend is
configured) the same operation is answered from the offline store. Results
of one call come from exactly one source; remote and local data are never
merged. Local storage failures are not absorbed.
"""
from __future__ import annotations

import numbers
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from skinalyze.config import settings
from skinalyze.core.catalog import RiskTier
from skinalyze.core.inference import Confidence, Prediction, PredictionSet
from skinalyze.core.storage import (
    DEFAULT_SKIN_TYPE,
    DiagnosisRecord,
    DiagnosisRepository,
    OfflineStore,
    PatientDetail,
    PatientRecord,
    PatientRepository,
    ProgressEntry,
    ProgressRepository,
    SyncState,
    generate_clinical_metrics,
    parse_risk_tier,
    validate_patient_fields,
)
from skinalyze.utils import get_logger, RemoteUnavailableError, ValidationError
from .remote import RemoteClient
from .session import SessionContext, SessionUser

logger = get_logger(__name__)

T = TypeVar("T")


def _validate_patient_id(patient_id: Any) -> int:
    if isinstance(patient_id, bool) or not isinstance(patient_id, numbers.Integral) or patient_id < 1:
        raise ValidationError(
            f"Patient id must be a positive integer, got {patient_id!r}",
            field="patient_id",
        )
    return int(patient_id)


def _snapshot_prediction(prediction: Any) -> Dict[str, Any]:
    """Stored form of one prediction: confidence as integer percent."""
    if isinstance(prediction, Prediction):
        return {
            "class_index": prediction.class_index,
            "class_name": prediction.class_name,
            "confidence": Confidence.coerce(prediction.confidence).percent,
            "risk_tier": prediction.risk_tier.value,
        }
    if isinstance(prediction, Mapping):
        snapshot = dict(prediction)
        snapshot["confidence"] = Confidence.coerce(
            prediction.get("confidence"), field="predictions"
        ).percent
        return snapshot
    raise ValidationError(
        f"Unsupported prediction entry: {type(prediction).__name__}",
        field="predictions",
    )


def _prediction_risk(prediction: Any) -> Optional[RiskTier]:
    if isinstance(prediction, Prediction):
        return prediction.risk_tier
    if isinstance(prediction, Mapping):
        return parse_risk_tier(
            prediction.get("risk_tier") or prediction.get("riskLevel") or prediction.get("riskTier")
        )
    return None


@dataclass
class DiagnosisRequest:
    """
    A diagnosis to be saved.

    ``confidence`` may be a fraction, a percentage or a numeric string.
    ``predictions`` holds Prediction objects or plain mappings.
    """
    patient_id: int
    condition: str
    confidence: Any
    risk_tier: Optional[Union[RiskTier, str]] = None
    notes: str = ""
    image_ref: str = ""
    predictions: List[Any] = field(default_factory=list)
    clinical_metrics: Optional[Dict[str, Union[float, bool]]] = None

    @classmethod
    def from_prediction_set(
        cls,
        patient_id: int,
        prediction_set: PredictionSet,
        notes: str = "",
        image_ref: str = "",
        clinical_metrics: Optional[Dict[str, Union[float, bool]]] = None,
    ) -> "DiagnosisRequest":
        """Build a request from a classification result; its top entry is the diagnosis."""
        if prediction_set.top is None:
            raise ValidationError(
                prediction_set.error or "Cannot save an empty prediction set",
                field="prediction_set",
            )
        top = prediction_set.top
        return cls(
            patient_id=patient_id,
            condition=top.class_name,
            confidence=top.confidence,
            risk_tier=top.risk_tier,
            notes=notes,
            image_ref=image_ref,
            predictions=list(prediction_set.all_predictions),
            clinical_metrics=clinical_metrics,
        )

    def validate(self) -> None:
        """
        Raises:
            ValidationError: on the first malformed field
        """
        _validate_patient_id(self.patient_id)
        if not isinstance(self.condition, str) or not self.condition.strip():
            raise ValidationError("Diagnosed condition is required", field="condition")
        Confidence.coerce(self.confidence)
        if self.risk_tier is not None and parse_risk_tier(self.risk_tier) is None:
            raise ValidationError(f"Unknown risk tier: {self.risk_tier!r}", field="risk_tier")
        if not isinstance(self.notes, str) or not isinstance(self.image_ref, str):
            raise ValidationError("Notes and image reference must be text", field="notes")
        for prediction in self.predictions:
            _snapshot_prediction(prediction)
        if self.clinical_metrics is not None:
            if not isinstance(self.clinical_metrics, Mapping):
                raise ValidationError("Clinical metrics must be a mapping", field="clinical_metrics")
            for name, value in self.clinical_metrics.items():
                if not isinstance(value, (bool, numbers.Real)):
                    raise ValidationError(
                        f"Metric '{name}' must be a number or flag",
                        field="clinical_metrics",
                    )

    def resolved_risk_tier(self) -> RiskTier:
        """Explicit tier, else the first prediction's tier, else Low."""
        tier = parse_risk_tier(self.risk_tier)
        if tier is None and self.predictions:
            tier = _prediction_risk(self.predictions[0])
        return tier or RiskTier.LOW

    def to_record(self, sync_state: SyncState) -> DiagnosisRecord:
        """Canonical stored form."""
        metrics = (
            dict(self.clinical_metrics)
            if self.clinical_metrics is not None
            else generate_clinical_metrics()
        )
        return DiagnosisRecord(
            patient_id=int(self.patient_id),
            condition=self.condition.strip(),
            risk_tier=self.resolved_risk_tier(),
            confidence_percent=Confidence.coerce(self.confidence).percent,
            notes=self.notes,
            image_ref=self.image_ref,
            predictions=[_snapshot_prediction(p) for p in self.predictions],
            clinical_metrics=metrics,
            sync_state=sync_state,
        )

    def to_wire(self) -> Dict[str, Any]:
        """POST /diagnosis body."""
        body: Dict[str, Any] = {
            "patientId": int(self.patient_id),
            "diagnosedCondition": self.condition.strip(),
            "riskLevel": self.resolved_risk_tier().value,
            "confidence": Confidence.coerce(self.confidence).percent,
            "clinicalNotes": self.notes,
            "imagePath": self.image_ref,
            "allPredictions": [_snapshot_prediction(p) for p in self.predictions],
        }
        if self.clinical_metrics is not None:
            body["metrics"] = dict(self.clinical_metrics)
        return body


class PersistenceGateway:
    """
    Single entry point for patient, diagnosis and progress data.

    Args:
        store: Local offline store
        remote: Backend client; None means local-only
        session: Session context shared with the remote client
        offline_mode: Skip the backend entirely; defaults to
            ``settings.offline_mode_enabled``
        max_offline_diagnoses: Per-patient local history cap
    """

    def __init__(
        self,
        store: OfflineStore,
        remote: Optional[RemoteClient] = None,
        session: Optional[SessionContext] = None,
        offline_mode: Optional[bool] = None,
        max_offline_diagnoses: Optional[int] = None,
    ):
        self.store = store
        self.remote = remote
        if session is None:
            session = remote.session if remote is not None and remote.session else SessionContext(store)
        self.session = session
        if remote is not None and remote.session is None:
            remote.session = session
        self.offline_mode = settings.offline_mode_enabled if offline_mode is None else offline_mode

        self.patients = PatientRepository(store)
        self.diagnoses = DiagnosisRepository(store, max_per_patient=max_offline_diagnoses)
        self.progress = ProgressRepository(store)

    @property
    def uses_remote(self) -> bool:
        return self.remote is not None and not self.offline_mode

    async def aclose(self) -> None:
        if self.remote is not None:
            await self.remote.aclose()
        self.store.close()

    async def __aenter__(self) -> "PersistenceGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Diagnoses
    # ------------------------------------------------------------------
    async def save_diagnosis(self, request: DiagnosisRequest) -> DiagnosisRecord:
        """
        Save a diagnosis remotely, or locally as PendingSync.

        Raises:
            ValidationError: malformed request (nothing is written)
            LocalStorageError: the local commit failed
        """
        if not isinstance(request, DiagnosisRequest):
            raise ValidationError("Expected a DiagnosisRequest", field="request")
        request.validate()

        async def remote_save() -> DiagnosisRecord:
            echoed = await self.remote.save_diagnosis(request.to_wire(), int(request.patient_id))
            if echoed is not None:
                return echoed
            return request.to_record(SyncState.SYNCED)

        async def local_save() -> DiagnosisRecord:
            record = await self.diagnoses.prepend(request.to_record(SyncState.PENDING_SYNC))
            logger.info(
                f"Diagnosis for patient {record.patient_id} stored locally "
                f"({record.condition}, {record.confidence_percent}%) - pending sync"
            )
            return record

        return await self._with_fallback("save_diagnosis", remote_save, local_save)

    async def get_diagnosis_history(self, patient_id: int) -> List[DiagnosisRecord]:
        """Newest-first diagnoses for one patient."""
        patient_id = _validate_patient_id(patient_id)
        return await self._with_fallback(
            "get_diagnosis_history",
            lambda: self.remote.get_diagnosis_history(patient_id),
            lambda: self.diagnoses.list_for(patient_id),
        )

    async def get_progress(self, patient_id: int) -> List[ProgressEntry]:
        patient_id = _validate_patient_id(patient_id)
        return await self._with_fallback(
            "get_progress",
            lambda: self.remote.get_progress(patient_id),
            lambda: self.progress.list_for(patient_id),
        )

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------
    async def get_patients(self) -> List[PatientRecord]:
        return await self._with_fallback(
            "get_patients",
            self.remote.list_patients if self.remote else None,
            self.patients.list,
        )

    async def get_patient_detail(self, patient_id: int) -> Optional[PatientDetail]:
        """Patient with history and progress; None if the patient is unknown."""
        patient_id = _validate_patient_id(patient_id)

        async def local_detail() -> Optional[PatientDetail]:
            patient = await self.patients.get(patient_id)
            if patient is None:
                return None
            return PatientDetail(
                patient=patient,
                diagnoses=await self.diagnoses.list_for(patient_id),
                progress=await self.progress.list_for(patient_id),
            )

        return await self._with_fallback(
            "get_patient_detail",
            lambda: self.remote.get_patient(patient_id),
            local_detail,
        )

    async def add_patient(self, name: str, skin_type_category: str = DEFAULT_SKIN_TYPE) -> PatientRecord:
        """
        Register a patient.

        Raises:
            ValidationError: empty name or a category outside Fitzpatrick I-VI
        """
        name, category = validate_patient_fields(name, skin_type_category)
        return await self._with_fallback(
            "add_patient",
            lambda: self.remote.create_patient(name, category),
            lambda: self.patients.add(name, category),
        )

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    async def start_session(self, token: str, user: SessionUser) -> None:
        await self.session.create(token, user)

    async def end_session(self) -> None:
        await self.session.destroy()

    async def restore_session(self) -> bool:
        return await self.session.restore()

    async def get_my_diagnoses(self) -> List[DiagnosisRecord]:
        """Diagnosis history of the signed-in patient."""
        return await self.get_diagnosis_history(self._session_patient_id())

    async def get_my_progress(self) -> List[ProgressEntry]:
        return await self.get_progress(self._session_patient_id())

    def _session_patient_id(self) -> int:
        patient_id = self.session.patient_id
        if patient_id is None:
            raise ValidationError("No patient is signed in", field="session")
        return patient_id

    # ------------------------------------------------------------------
    # Fallback policy
    # ------------------------------------------------------------------
    async def _with_fallback(
        self,
        operation: str,
        remote_call: Optional[Callable[[], Awaitable[T]]],
        local_call: Callable[[], Awaitable[T]],
    ) -> T:
        if self.uses_remote and remote_call is not None:
            try:
                result = await remote_call()
                logger.debug(f"{operation}: served by backend")
                return result
            except RemoteUnavailableError as e:
                logger.warning(
                    f"{operation}: backend unavailable ({e.message}) - using offline store"
                )
        return await local_call()


def create_gateway(
    store: Optional[OfflineStore] = None,
    backend_url: Optional[str] = None,
) -> PersistenceGateway:
    """Gateway wired from settings: diskcache store plus the configured backend."""
    store = store or OfflineStore()
    session = SessionContext(store)
    remote = None
    if not settings.offline_mode_enabled and (backend_url or settings.backend_url):
        remote = RemoteClient(base_url=backend_url, session=session)
    return PersistenceGateway(store, remote=remote, session=session)
