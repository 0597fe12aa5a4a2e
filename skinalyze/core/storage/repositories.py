"""
Typed Repositories

Record-level access to the OfflineStore namespaces. Each repository owns the
(de)serialization of one data family; the store owns the blobs.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from skinalyze.config import settings
from skinalyze.utils import get_logger, LocalStorageError
from .records import (
    DEFAULT_SKIN_TYPE,
    DiagnosisRecord,
    PatientRecord,
    ProgressEntry,
    SyncState,
    validate_patient_fields,
)
from .store import Namespace, OfflineStore

logger = get_logger(__name__)


def _decode(namespace: Namespace, decoder, items: List[Dict[str, Any]]) -> list:
    try:
        return [decoder(item) for item in items]
    except (KeyError, TypeError, ValueError) as e:
        raise LocalStorageError(
            f"Malformed record in '{namespace.value}': {e}",
            namespace=namespace.value,
        ) from e


class PatientRepository:
    """Patients, newest first."""

    def __init__(self, store: OfflineStore):
        self._store = store

    async def list(self) -> List[PatientRecord]:
        items = await self._store.get_json(Namespace.PATIENTS, default=[])
        return _decode(Namespace.PATIENTS, PatientRecord.from_dict, items)

    async def get(self, patient_id: int) -> Optional[PatientRecord]:
        for patient in await self.list():
            if patient.id == patient_id:
                return patient
        return None

    async def add(self, name: str, skin_type_category: str = DEFAULT_SKIN_TYPE) -> PatientRecord:
        """Create a patient with id ``max(existing) + 1`` (1 when empty)."""
        name, category = validate_patient_fields(name, skin_type_category)
        async with self._store.locked(Namespace.PATIENTS):
            patients = await self.list()
            next_id = max((p.id for p in patients), default=0) + 1

            record = PatientRecord(id=next_id, name=name, skin_type_category=category)
            await self._store.set_json(
                Namespace.PATIENTS,
                [record.to_dict()] + [p.to_dict() for p in patients],
            )
        logger.info(f"PatientRepository: stored patient {next_id} locally")
        return record


class DiagnosisRepository:
    """
    Per-patient diagnosis history, newest first.

    Each history holds at most ``max_per_patient`` entries. When full, the
    oldest Synced entry makes room; PendingSync entries are never evicted.
    """

    def __init__(self, store: OfflineStore, max_per_patient: Optional[int] = None):
        self._store = store
        self.max_per_patient = (
            max_per_patient if max_per_patient is not None else settings.max_offline_diagnoses
        )
        if self.max_per_patient < 1:
            raise ValueError(f"max_per_patient must be >= 1, got {self.max_per_patient}")

    async def list_for(self, patient_id: int) -> List[DiagnosisRecord]:
        histories = await self._store.get_json(Namespace.DIAGNOSES_BY_PATIENT, default={})
        items = histories.get(str(patient_id), [])
        return _decode(Namespace.DIAGNOSES_BY_PATIENT, DiagnosisRecord.from_dict, items)

    async def prepend(self, record: DiagnosisRecord) -> DiagnosisRecord:
        """
        Insert ``record`` at the head of its patient's history.

        Raises:
            LocalStorageError: the history is full of PendingSync entries
        """
        key = str(record.patient_id)
        async with self._store.locked(Namespace.DIAGNOSES_BY_PATIENT):
            histories = await self._store.get_json(Namespace.DIAGNOSES_BY_PATIENT, default={})
            history = _decode(
                Namespace.DIAGNOSES_BY_PATIENT, DiagnosisRecord.from_dict, histories.get(key, [])
            )

            while len(history) >= self.max_per_patient:
                evict_at = self._oldest_synced(history)
                if evict_at is None:
                    raise LocalStorageError(
                        f"Offline diagnosis limit reached for patient {record.patient_id} "
                        f"({self.max_per_patient} entries pending sync)",
                        namespace=Namespace.DIAGNOSES_BY_PATIENT.value,
                        details={"patient_id": record.patient_id, "limit": self.max_per_patient},
                    )
                evicted = history.pop(evict_at)
                logger.info(
                    f"DiagnosisRepository: evicted synced diagnosis from "
                    f"{evicted.timestamp.isoformat()} for patient {record.patient_id}"
                )

            history.insert(0, record)
            histories[key] = [entry.to_dict() for entry in history]
            await self._store.set_json(Namespace.DIAGNOSES_BY_PATIENT, histories)
        logger.debug(
            f"DiagnosisRepository: patient {record.patient_id} now has {len(history)} entries"
        )
        return record

    @staticmethod
    def _oldest_synced(history: List[DiagnosisRecord]) -> Optional[int]:
        for position in range(len(history) - 1, -1, -1):
            if history[position].sync_state == SyncState.SYNCED:
                return position
        return None


class ProgressRepository:
    """Read-only healing progress per patient."""

    def __init__(self, store: OfflineStore):
        self._store = store

    async def list_for(self, patient_id: int) -> List[ProgressEntry]:
        entries = await self._store.get_json(Namespace.PROGRESS_BY_PATIENT, default={})
        items = entries.get(str(patient_id), [])
        return _decode(Namespace.PROGRESS_BY_PATIENT, ProgressEntry.from_dict, items)
