"""
Lesion Class Catalog

Static registry of the seven lesion classes the classifier emits, with the
clinical metadata shown alongside a prediction. Populated once at import and
never mutated.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from skinalyze.config import settings


class RiskTier(str, Enum):
    """
    Coarse severity bucket attached to a class label.

    HIGH   – malignant; see a dermatologist within days
    MEDIUM – pre-cancerous; schedule a visit within weeks
    LOW    – benign; monitor for changes
    """
    LOW    = "Low"
    MEDIUM = "Medium"
    HIGH   = "High"


@dataclass(frozen=True)
class ClassLabel:
    """One classification class and its display / clinical metadata."""
    index: int
    name: str
    risk_tier: RiskTier
    description: str
    recommendation: str
    color_hint: str

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "name": self.name,
            "risk_tier": self.risk_tier.value,
            "description": self.description,
            "recommendation": self.recommendation,
            "color_hint": self.color_hint,
        }


@dataclass(frozen=True)
class ModelInfo:
    """Static description of the on-device classifier."""
    name: str = "MobileNetV2 Skin Classifier"
    version: str = "1.0"
    framework: str = "TensorFlow Lite"
    description: str = "Quantized MobileNetV2 model fine-tuned for skin lesion classification"
    input_width: int = 224
    input_height: int = 224
    input_channels: int = 3
    # (pixel - mean) / std maps uint8 [0, 255] to [-1, 1]
    normalization_mean: float = 127.5
    normalization_std: float = 127.5

    @property
    def input_shape(self) -> str:
        return f"{self.input_width}x{self.input_height}x{self.input_channels}"


MODEL_INFO = ModelInfo()


CLASS_LABELS: Tuple[ClassLabel, ...] = (
    ClassLabel(
        index=0,
        name="Melanoma",
        risk_tier=RiskTier.HIGH,
        description="Malignant tumor, requires immediate medical attention",
        recommendation="Urgent: Consult dermatologist within 24-48 hours",
        color_hint="#DC2626",
    ),
    ClassLabel(
        index=1,
        name="Basal Cell Carcinoma",
        risk_tier=RiskTier.HIGH,
        description="Most common skin cancer, slow-growing but needs treatment",
        recommendation="Schedule appointment with dermatologist within 1-2 weeks",
        color_hint="#EA580C",
    ),
    ClassLabel(
        index=2,
        name="Squamous Cell Carcinoma",
        risk_tier=RiskTier.HIGH,
        description="Second most common skin cancer, can spread if untreated",
        recommendation="Consult dermatologist within 1 week",
        color_hint="#DC2626",
    ),
    ClassLabel(
        index=3,
        name="Actinic Keratosis",
        risk_tier=RiskTier.MEDIUM,
        description="Pre-cancerous lesion, may develop into cancer",
        recommendation="Schedule dermatologist visit within 2-4 weeks",
        color_hint="#F59E0B",
    ),
    ClassLabel(
        index=4,
        name="Benign Keratosis",
        risk_tier=RiskTier.LOW,
        description="Non-cancerous growth, usually harmless",
        recommendation="Monitor for changes, routine check-up recommended",
        color_hint="#10B981",
    ),
    ClassLabel(
        index=5,
        name="Melanocytic Nevus",
        risk_tier=RiskTier.LOW,
        description="Common mole, typically benign",
        recommendation="Monitor for ABCDE changes, routine skin check",
        color_hint="#10B981",
    ),
    ClassLabel(
        index=6,
        name="Vascular Lesion",
        risk_tier=RiskTier.LOW,
        description="Blood vessel-related lesion, usually benign",
        recommendation="Monitor for changes, consult if growing or painful",
        color_hint="#3B82F6",
    ),
)


# Educational reference only; not used for scoring.
MELANOMA_ABCDE: Dict[str, str] = {
    "A": "Asymmetry - One half doesn't match the other",
    "B": "Border - Irregular, scalloped, or poorly defined edges",
    "C": "Color - Varies from one area to another; shades of tan, brown, black",
    "D": "Diameter - Larger than 6mm (pencil eraser size)",
    "E": "Evolving - Changes in size, shape, color, or symptoms",
}


class ClassCatalog:
    """
    Read-only lookup over a fixed set of class labels.

    Indices and names must be unique; names are matched case-insensitively.
    """

    def __init__(self, labels: Tuple[ClassLabel, ...] = CLASS_LABELS):
        self._by_index: Dict[int, ClassLabel] = {}
        self._by_name: Dict[str, ClassLabel] = {}

        for label in labels:
            key = label.name.strip().lower()
            if label.index < 0:
                raise ValueError(f"Class index must be >= 0, got {label.index}")
            if label.index in self._by_index:
                raise ValueError(f"Duplicate class index: {label.index}")
            if key in self._by_name:
                raise ValueError(f"Duplicate class name: {label.name}")
            self._by_index[label.index] = label
            self._by_name[key] = label

        self._labels: Tuple[ClassLabel, ...] = tuple(
            sorted(self._by_index.values(), key=lambda lbl: lbl.index)
        )

    def lookup_by_index(self, index: int) -> Optional[ClassLabel]:
        """Return the label for ``index`` or None if it is not a known class."""
        if isinstance(index, bool) or not isinstance(index, int):
            return None
        return self._by_index.get(index)

    def lookup_by_name(self, name: str) -> Optional[ClassLabel]:
        """Return the label whose name matches ``name`` ignoring case."""
        if not isinstance(name, str):
            return None
        return self._by_name.get(name.strip().lower())

    def names(self) -> List[str]:
        return [label.name for label in self._labels]

    @property
    def labels(self) -> Tuple[ClassLabel, ...]:
        return self._labels

    def __iter__(self) -> Iterator[ClassLabel]:
        return iter(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, str):
            return self.lookup_by_name(item) is not None
        if isinstance(item, int):
            return self.lookup_by_index(item) is not None
        return False


def is_confidence_acceptable(confidence: float, threshold: Optional[float] = None) -> bool:
    """True when a fractional confidence meets the configured minimum."""
    limit = settings.confidence_threshold if threshold is None else threshold
    return confidence >= limit


# Shared default instance
default_catalog = ClassCatalog()
