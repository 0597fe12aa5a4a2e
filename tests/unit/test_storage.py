"""
Unit Tests for Local Storage

Offline store contract, one-time seeding, repositories and the per-patient
diagnosis cap.
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from skinalyze.core.catalog import RiskTier
from skinalyze.core.storage import (
    BaselineDataset,
    DiagnosisRecord,
    DiagnosisRepository,
    Namespace,
    OfflineStore,
    PatientRecord,
    PatientRepository,
    ProgressRepository,
    SyncState,
    generate_clinical_metrics,
)
from skinalyze.utils import LocalStorageError, ValidationError


def _diagnosis(patient_id: int, condition: str, state: SyncState, days_ago: int = 0) -> DiagnosisRecord:
    return DiagnosisRecord(
        patient_id=patient_id,
        condition=condition,
        risk_tier=RiskTier.LOW,
        confidence_percent=80,
        timestamp=datetime.now(timezone.utc) - timedelta(days=days_ago),
        sync_state=state,
    )


@pytest.mark.asyncio
class TestOfflineStore:
    """Tests for the blob contract."""

    async def test_set_get_round_trip(self, empty_store):
        await empty_store.set(Namespace.SESSION, '{"token": "abc"}')
        assert await empty_store.get(Namespace.SESSION) == '{"token": "abc"}'

    async def test_get_missing(self, empty_store):
        assert await empty_store.get(Namespace.PATIENTS) is None

    async def test_delete(self, empty_store):
        await empty_store.set(Namespace.SESSION, "{}")
        await empty_store.delete(Namespace.SESSION)
        assert await empty_store.get(Namespace.SESSION) is None

    async def test_namespace_by_name(self, empty_store):
        await empty_store.set("session", "{}")
        assert await empty_store.get(Namespace.SESSION) == "{}"

    async def test_blob_must_be_text(self, empty_store):
        with pytest.raises(LocalStorageError):
            await empty_store.set(Namespace.SESSION, {"token": "abc"})

    async def test_substrate_failure_wrapped(self, broken_store):
        with pytest.raises(LocalStorageError) as exc_info:
            await broken_store.get(Namespace.PATIENTS)
        assert exc_info.value.code == "LOCAL_STORAGE_ERROR"
        assert exc_info.value.namespace == "patients"

    async def test_corrupt_json(self, empty_store):
        await empty_store.set(Namespace.PATIENTS, "{not json")
        with pytest.raises(LocalStorageError, match="Corrupt"):
            await empty_store.get_json(Namespace.PATIENTS)

    async def test_diskcache_persists_across_instances(self, tmp_path):
        directory = str(tmp_path / "cache")
        first = OfflineStore(directory=directory, seed_baseline=False)
        await first.set_json(Namespace.SESSION, {"token": "t-1"})
        first.close()

        second = OfflineStore(directory=directory, seed_baseline=False)
        assert await second.get_json(Namespace.SESSION) == {"token": "t-1"}
        second.close()


@pytest.mark.asyncio
class TestSeeding:
    """Baseline data is written at most once."""

    async def test_first_access_seeds(self, store):
        patients = await store.get_json(Namespace.PATIENTS)
        assert [p["name"] for p in patients] == ["John Doe", "Jane Smith", "Rahul Verma"]
        assert [p["skin_type_category"] for p in patients] == ["III", "II", "V"]

    async def test_seeded_once(self, store, memory_substrate):
        await store.get(Namespace.PATIENTS)
        writes = memory_substrate.writes
        await store.get(Namespace.PATIENTS)
        await store.seed()
        assert memory_substrate.writes == writes + 2   # the two untouched namespaces

    async def test_populated_namespace_never_overwritten(self, store, memory_substrate):
        memory_substrate.data["patients"] = json.dumps([])
        assert await store.get_json(Namespace.PATIENTS) == []
        assert Namespace.PATIENTS not in await store.seed()

    async def test_session_not_seeded(self, store):
        assert await store.get(Namespace.SESSION) is None

    async def test_seeding_disabled(self, empty_store):
        assert await empty_store.seed() == []
        assert await empty_store.get(Namespace.DIAGNOSES_BY_PATIENT) is None

    async def test_seed_diagnoses(self, store):
        repository = DiagnosisRepository(store)
        history = await repository.list_for(1)
        assert len(history) == 1
        assert history[0].condition == "Melanocytic Nevus"
        assert history[0].risk_tier == RiskTier.LOW
        assert history[0].confidence_percent == 86
        assert history[0].sync_state == SyncState.SYNCED
        assert "asymmetry_score" in history[0].clinical_metrics
        assert (await repository.list_for(2))[0].condition == "Actinic Keratosis"
        assert await repository.list_for(3) == []

    async def test_seed_progress(self, store):
        repository = ProgressRepository(store)
        entries = await repository.list_for(1)
        assert [e.healing_score for e in entries] == [65, 74]
        assert (await repository.list_for(2))[0].healing_score == 58
        assert await repository.list_for(3) == []

    async def test_clear_reseeds(self, store):
        await PatientRepository(store).add("New Patient")
        await store.clear()
        assert len(await PatientRepository(store).list()) == 3


@pytest.mark.asyncio
class TestPatientRepository:
    """Tests for patient ids and intake."""

    async def test_add_uses_max_plus_one(self, store):
        repository = PatientRepository(store)
        patient = await repository.add("Asha Nair", "IV")
        assert patient.id == 4
        assert patient.skin_type_category == "IV"
        patients = await repository.list()
        assert patients[0].id == 4   # newest first

    async def test_first_patient_gets_id_one(self, empty_store):
        patient = await PatientRepository(empty_store).add("Only Patient")
        assert patient.id == 1
        assert patient.skin_type_category == "III"

    async def test_ids_never_reused(self, empty_store):
        repository = PatientRepository(empty_store)
        ids = [(await repository.add(f"P{i}")).id for i in range(3)]
        assert ids == [1, 2, 3]

    async def test_gap_in_ids(self, empty_store):
        await empty_store.set_json(Namespace.PATIENTS, [
            PatientRecord(id=9, name="Late").to_dict(),
            PatientRecord(id=2, name="Early").to_dict(),
        ])
        assert (await PatientRepository(empty_store).add("Next")).id == 10

    async def test_get(self, store):
        repository = PatientRepository(store)
        assert (await repository.get(2)).name == "Jane Smith"
        assert await repository.get(99) is None

    async def test_concurrent_adds_get_distinct_ids(self, empty_store):
        repository = PatientRepository(empty_store)
        first, second = await asyncio.gather(
            repository.add("Asha Nair", "II"),
            repository.add("Rahul Verma", "III"),
        )
        assert {first.id, second.id} == {1, 2}
        assert sorted(p.id for p in await repository.list()) == [1, 2]

    async def test_concurrent_first_access_seeds_once(self, store, memory_substrate):
        await asyncio.gather(*(store.get(Namespace.PATIENTS) for _ in range(3)))
        assert memory_substrate.writes == 1

    @pytest.mark.parametrize("name, category", [("", "III"), ("   ", "III"), ("Ok", "VII"), ("Ok", 3)])
    async def test_invalid_intake(self, empty_store, name, category):
        with pytest.raises(ValidationError):
            await PatientRepository(empty_store).add(name, category)


@pytest.mark.asyncio
class TestDiagnosisRepository:
    """Tests for history ordering and the offline cap."""

    async def test_prepend_newest_first(self, store):
        repository = DiagnosisRepository(store)
        record = _diagnosis(1, "Melanoma", SyncState.PENDING_SYNC)
        await repository.prepend(record)
        history = await repository.list_for(1)
        assert history[0] == record
        assert len(history) == 2

    async def test_cap_evicts_oldest_synced(self, empty_store):
        repository = DiagnosisRepository(empty_store, max_per_patient=3)
        await repository.prepend(_diagnosis(1, "Old synced", SyncState.SYNCED, days_ago=3))
        await repository.prepend(_diagnosis(1, "Pending", SyncState.PENDING_SYNC, days_ago=2))
        await repository.prepend(_diagnosis(1, "Newer synced", SyncState.SYNCED, days_ago=1))
        await repository.prepend(_diagnosis(1, "Latest", SyncState.PENDING_SYNC))

        conditions = [d.condition for d in await repository.list_for(1)]
        assert conditions == ["Latest", "Newer synced", "Pending"]

    async def test_cap_full_of_pending_raises(self, empty_store):
        repository = DiagnosisRepository(empty_store, max_per_patient=2)
        await repository.prepend(_diagnosis(1, "A", SyncState.PENDING_SYNC))
        await repository.prepend(_diagnosis(1, "B", SyncState.PENDING_SYNC))
        with pytest.raises(LocalStorageError, match="limit"):
            await repository.prepend(_diagnosis(1, "C", SyncState.PENDING_SYNC))
        assert [d.condition for d in await repository.list_for(1)] == ["B", "A"]

    async def test_cap_is_per_patient(self, empty_store):
        repository = DiagnosisRepository(empty_store, max_per_patient=1)
        await repository.prepend(_diagnosis(1, "A", SyncState.PENDING_SYNC))
        await repository.prepend(_diagnosis(2, "B", SyncState.PENDING_SYNC))
        assert len(await repository.list_for(2)) == 1

    async def test_concurrent_prepends_for_different_patients(self, store):
        repository = DiagnosisRepository(store)
        first = _diagnosis(1, "Melanoma", SyncState.PENDING_SYNC)
        second = _diagnosis(2, "Dermatofibroma", SyncState.PENDING_SYNC)
        await asyncio.gather(repository.prepend(first), repository.prepend(second))

        assert (await repository.list_for(1))[0] == first
        assert (await repository.list_for(2))[0] == second

    @pytest.mark.parametrize("limit", [0, -1])
    async def test_cap_must_be_positive(self, empty_store, limit):
        with pytest.raises(ValueError):
            DiagnosisRepository(empty_store, max_per_patient=limit)

    async def test_record_round_trip(self, empty_store):
        repository = DiagnosisRepository(empty_store)
        record = DiagnosisRecord(
            patient_id=5,
            condition="Melanoma",
            risk_tier=RiskTier.HIGH,
            confidence_percent=92,
            notes="Refer urgently",
            image_ref="file:///tmp/lesion.jpg",
            predictions=[{"class_index": 0, "class_name": "Melanoma", "confidence": 92}],
            clinical_metrics={"diameter_mm": 7.5, "evolution_flag": True},
        )
        await repository.prepend(record)
        assert (await repository.list_for(5))[0] == record


class TestClinicalMetrics:
    """Tests for generated ABCDE metrics."""

    def test_keys_and_ranges(self):
        metrics = generate_clinical_metrics(np.random.default_rng(1))
        assert set(metrics) == {
            "asymmetry_score", "border_irregularity", "color_var_index", "diameter_mm",
            "evolution_flag", "pigment_network_score", "blue_white_veil_score",
            "atypical_vessels_score",
        }
        assert 2 <= metrics["diameter_mm"] <= 12
        assert isinstance(metrics["evolution_flag"], bool)
        for key in ("asymmetry_score", "border_irregularity", "color_var_index"):
            assert 0 <= metrics[key] <= 1

    def test_baseline_relative_to_now(self):
        now = datetime(2025, 1, 10, tzinfo=timezone.utc)
        diagnoses = BaselineDataset(now=now).diagnoses_by_patient()
        assert diagnoses["1"][0]["timestamp"] == (now - timedelta(days=7)).isoformat()
