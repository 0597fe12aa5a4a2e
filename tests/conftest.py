"""
Pytest Configuration and Fixtures

Shared fixtures for inference and persistence tests.
"""
import pytest
from pathlib import Path
import sys
from typing import Any, Dict

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from skinalyze.core.catalog import default_catalog
from skinalyze.core.inference import ResultNormalizer, SimulationConfig
from skinalyze.core.storage import BaselineDataset, OfflineStore


class MemorySubstrate:
    """In-memory stand-in for diskcache.Cache."""

    def __init__(self):
        self.data: Dict[str, Any] = {}
        self.writes = 0

    def get(self, key, default=None):
        return self.data.get(key, default)

    def set(self, key, value):
        self.writes += 1
        self.data[key] = value
        return True

    def delete(self, key):
        return self.data.pop(key, None) is not None

    def clear(self):
        count = len(self.data)
        self.data.clear()
        return count


class BrokenSubstrate(MemorySubstrate):
    """Substrate whose disk has gone away."""

    def get(self, key, default=None):
        raise OSError("disk I/O error")

    def set(self, key, value):
        raise OSError("disk I/O error")


@pytest.fixture
def memory_substrate() -> MemorySubstrate:
    return MemorySubstrate()


@pytest.fixture
def store(memory_substrate) -> OfflineStore:
    """Store that seeds the baseline dataset on first access."""
    return OfflineStore(
        substrate=memory_substrate,
        baseline=BaselineDataset(seed=7),
        seed_baseline=True,
    )


@pytest.fixture
def empty_store() -> OfflineStore:
    """Store with seeding disabled."""
    return OfflineStore(substrate=MemorySubstrate(), seed_baseline=False)


@pytest.fixture
def disk_store(tmp_path) -> OfflineStore:
    """Store on a real diskcache directory."""
    store = OfflineStore(directory=str(tmp_path / "cache"), seed_baseline=True)
    yield store
    store.close()


@pytest.fixture
def catalog():
    return default_catalog


@pytest.fixture
def normalizer(catalog) -> ResultNormalizer:
    return ResultNormalizer(catalog=catalog, top_k=3, confidence_threshold=0.60)


@pytest.fixture
def instant_simulation() -> SimulationConfig:
    """Simulation settings without emulated latency."""
    return SimulationConfig(delay_min_ms=0, delay_max_ms=0)


@pytest.fixture
def image_file(tmp_path) -> Path:
    """Small JPEG-named file on disk."""
    path = tmp_path / "lesion.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0" + b"\x00" * 2048)
    return path


@pytest.fixture
def broken_store() -> OfflineStore:
    """Store whose substrate fails every read and write."""
    return OfflineStore(substrate=BrokenSubstrate(), seed_baseline=False)
