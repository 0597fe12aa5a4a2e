"""
Offline Store

Durable namespace -> JSON blob storage on top of a diskcache directory.
Blocking substrate calls are offloaded to a worker thread. Data namespaces
are filled from the baseline dataset the first time they are found empty.
Read-modify-write cycles on a namespace are serialized with a per-namespace
lock, since every patient of a data family shares one blob.
"""
from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from diskcache import Cache

from skinalyze.config import settings
from skinalyze.utils import get_logger, LocalStorageError
from .baseline import BaselineDataset

logger = get_logger(__name__)


class Namespace(str, Enum):
    """Keys under which each data family is stored."""
    PATIENTS             = "patients"
    DIAGNOSES_BY_PATIENT = "diagnoses_by_patient"
    PROGRESS_BY_PATIENT  = "progress_by_patient"
    SESSION              = "session"


# Namespaces that receive baseline content; the session is never seeded
SEEDED_NAMESPACES = (
    Namespace.PATIENTS,
    Namespace.DIAGNOSES_BY_PATIENT,
    Namespace.PROGRESS_BY_PATIENT,
)

_MISSING = object()


class OfflineStore:
    """
    Async key-value store of JSON text blobs.

    Args:
        directory: Cache directory; defaults to ``settings.offline_store_dir``
        substrate: Object with diskcache's ``get/set/delete/clear`` API.
            Overrides ``directory`` (tests pass an in-memory fake).
        baseline: Seed data source; defaults to a fresh BaselineDataset
        seed_baseline: Seed empty data namespaces on first access
    """

    def __init__(
        self,
        directory: Optional[str] = None,
        substrate: Any = None,
        baseline: Optional[BaselineDataset] = None,
        seed_baseline: Optional[bool] = None,
    ):
        if substrate is None:
            directory = directory or settings.offline_store_dir
            try:
                substrate = Cache(directory)
            except Exception as e:
                raise LocalStorageError(
                    f"Cannot open offline store at {directory}: {e}",
                    details={"directory": str(directory)},
                ) from e
            logger.info(f"OfflineStore opened at {directory}")
        self._substrate = substrate

        if seed_baseline is None:
            seed_baseline = settings.seed_baseline
        self._baseline = (baseline or BaselineDataset()) if seed_baseline else None

        self._locks: Dict[Namespace, asyncio.Lock] = {}
        self._lock_owners: Dict[Namespace, Optional[asyncio.Task]] = {}

    @property
    def seeding_enabled(self) -> bool:
        return self._baseline is not None

    # ------------------------------------------------------------------
    # Blob contract
    # ------------------------------------------------------------------
    async def get(self, namespace: Namespace) -> Optional[str]:
        """Return the stored blob, seeding a never-populated data namespace first."""
        namespace = Namespace(namespace)
        blob = await self._read(namespace)
        if blob is None and self._should_seed(namespace):
            async with self.locked(namespace):
                blob = await self._read(namespace)
                if blob is None:
                    blob = await self._seed_one(namespace)
        return blob

    async def set(self, namespace: Namespace, blob: str) -> None:
        namespace = Namespace(namespace)
        if not isinstance(blob, str):
            raise LocalStorageError(
                f"Blob for '{namespace.value}' must be text, got {type(blob).__name__}",
                namespace=namespace.value,
            )
        await self._run(namespace, self._substrate.set, namespace.value, blob)
        logger.debug(f"OfflineStore: wrote {len(blob)} chars to '{namespace.value}'")

    async def delete(self, namespace: Namespace) -> None:
        namespace = Namespace(namespace)
        await self._run(namespace, self._substrate.delete, namespace.value)

    async def clear(self) -> None:
        """Remove every namespace. Data namespaces re-seed on next access."""
        await self._run(None, self._substrate.clear)
        logger.info("OfflineStore cleared")

    async def seed(self) -> List[Namespace]:
        """Seed all empty data namespaces now; returns those written."""
        if self._baseline is None:
            return []
        seeded = []
        for namespace in SEEDED_NAMESPACES:
            async with self.locked(namespace):
                if await self._read(namespace) is None:
                    await self._seed_one(namespace)
                    seeded.append(namespace)
        return seeded

    @asynccontextmanager
    async def locked(self, namespace: Namespace) -> AsyncIterator[None]:
        """
        Hold the namespace lock for a read-modify-write cycle.

        Re-entrant within one task, so a holder may call ``get`` (which can
        seed under the same lock) without deadlocking.
        """
        namespace = Namespace(namespace)
        task = asyncio.current_task()
        if task is not None and self._lock_owners.get(namespace) is task:
            yield
            return

        lock = self._locks.setdefault(namespace, asyncio.Lock())
        async with lock:
            self._lock_owners[namespace] = task
            try:
                yield
            finally:
                self._lock_owners[namespace] = None

    # ------------------------------------------------------------------
    # JSON helpers used by the repositories
    # ------------------------------------------------------------------
    async def get_json(self, namespace: Namespace, default: Any = None) -> Any:
        blob = await self.get(namespace)
        if blob is None:
            return default
        try:
            return json.loads(blob)
        except ValueError as e:
            raise LocalStorageError(
                f"Corrupt data in '{Namespace(namespace).value}': {e}",
                namespace=Namespace(namespace).value,
            ) from e

    async def set_json(self, namespace: Namespace, value: Any) -> None:
        try:
            blob = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise LocalStorageError(
                f"Value for '{Namespace(namespace).value}' is not serializable: {e}",
                namespace=Namespace(namespace).value,
            ) from e
        await self.set(namespace, blob)

    def close(self) -> None:
        close = getattr(self._substrate, "close", None)
        if callable(close):
            close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _should_seed(self, namespace: Namespace) -> bool:
        return self._baseline is not None and namespace in SEEDED_NAMESPACES

    async def _seed_one(self, namespace: Namespace) -> str:
        builders: Dict[Namespace, Callable[[], Any]] = {
            Namespace.PATIENTS: self._baseline.patients,
            Namespace.DIAGNOSES_BY_PATIENT: self._baseline.diagnoses_by_patient,
            Namespace.PROGRESS_BY_PATIENT: self._baseline.progress_by_patient,
        }
        blob = json.dumps(builders[namespace]())
        await self.set(namespace, blob)
        logger.info(f"OfflineStore: seeded '{namespace.value}' with baseline data")
        return blob

    async def _read(self, namespace: Namespace) -> Optional[str]:
        value = await self._run(namespace, self._substrate.get, namespace.value, _MISSING)
        return None if value is _MISSING else value

    async def _run(self, namespace: Optional[Namespace], fn: Callable[..., Any], *args) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except LocalStorageError:
            raise
        except Exception as e:
            name = namespace.value if namespace is not None else "*"
            logger.error(f"OfflineStore: substrate failure on '{name}': {e}")
            raise LocalStorageError(
                f"Local storage failure: {e}",
                namespace=name,
            ) from e
