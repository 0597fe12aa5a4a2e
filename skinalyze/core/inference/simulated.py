"""
Simulated Inference Provider

Synthesizes plausible confidence distributions so the rest of the system can
be exercised without a trained model. One target class receives a confidence
from a high band (or an exact value); the residual mass is shared by the
other classes so the vector sums to 1.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from skinalyze.config import settings
from skinalyze.core.catalog import ClassCatalog, ClassLabel
from skinalyze.utils import get_logger, ValidationError
from .base import ImageRef, InferenceProvider
from .confidence import Confidence
from .normalizer import PredictionSet, RawScore, ResultNormalizer

logger = get_logger(__name__)

Target = Union[str, int, ClassLabel]


@dataclass
class SimulationConfig:
    """Configuration for synthetic predictions."""
    confidence_low: float = field(default_factory=lambda: settings.simulated_confidence_low)
    confidence_high: float = field(default_factory=lambda: settings.simulated_confidence_high)
    # Relative weights drawn for non-target classes before rescaling
    residual_low: float = 0.01
    residual_high: float = 0.20
    delay_min_ms: float = field(default_factory=lambda: settings.simulated_delay_min_ms)
    delay_max_ms: float = field(default_factory=lambda: settings.simulated_delay_max_ms)

    def __post_init__(self):
        if not 0.0 <= self.confidence_low <= self.confidence_high <= 1.0:
            raise ValueError(
                f"Invalid confidence band: [{self.confidence_low}, {self.confidence_high}]"
            )
        if not 0.0 < self.residual_low <= self.residual_high:
            raise ValueError(
                f"Invalid residual weight range: [{self.residual_low}, {self.residual_high}]"
            )
        if self.delay_min_ms < 0 or self.delay_max_ms < self.delay_min_ms:
            raise ValueError(
                f"Invalid delay window: [{self.delay_min_ms}, {self.delay_max_ms}] ms"
            )


# Named edge-case scenarios: (condition, exact confidence)
SCENARIOS: Dict[str, Tuple[str, float]] = {
    "high_risk_melanoma": ("Melanoma", 0.92),
    "uncertain_diagnosis": ("Melanocytic Nevus", 0.45),
    "benign_case": ("Benign Keratosis", 0.88),
    "medium_risk_case": ("Actinic Keratosis", 0.76),
}

# Band used when a condition is requested without an exact confidence
_CONDITION_BAND = (0.85, 0.95)


class SimulatedProvider(InferenceProvider):
    """
    Deterministic-contract simulator.

    Pass ``seed`` for reproducible output. The emulated latency is a
    scheduling artifact only.
    """

    model_type = "Simulated (Testing)"
    is_simulated = True

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        seed: Optional[int] = None,
        catalog: Optional[ClassCatalog] = None,
        normalizer: Optional[ResultNormalizer] = None,
        **kwargs,
    ):
        super().__init__(catalog=catalog, normalizer=normalizer, **kwargs)
        self.config = config or SimulationConfig()
        self._rng = np.random.default_rng(seed)

    async def _load(self) -> None:
        logger.info(
            f"SimulatedProvider ready: {len(self.catalog)} classes, "
            f"band=[{self.config.confidence_low}, {self.config.confidence_high}]"
        )

    async def classify(
        self,
        image_ref: ImageRef,
        target: Optional[Target] = None,
        confidence: Optional[object] = None,
    ) -> PredictionSet:
        """
        Produce a synthetic PredictionSet.

        Args:
            image_ref: Image locator (not read; kept for contract parity)
            target: Class name, index or label to place on top; random if None
            confidence: Exact confidence for the target in any accepted
                encoding; drawn from the configured band if None
        """
        self._check_ready()
        self._require_usable(image_ref)
        index = self._resolve_target(target) if target is not None else None
        exact = (
            Confidence.coerce(confidence).fraction if confidence is not None else None
        )

        started = time.perf_counter()
        raw = await self._infer(image_ref, target_index=index, exact=exact)
        return self._shape(raw, started)

    async def classify_for_condition(self, image_ref: ImageRef, condition: str) -> PredictionSet:
        """Target ``condition`` with a confidence in the 85-95% band."""
        self._check_ready()
        self._require_usable(image_ref)
        index = self._resolve_target(condition)
        started = time.perf_counter()
        raw = await self._infer(image_ref, target_index=index, band=_CONDITION_BAND)
        return self._shape(raw, started)

    async def run_scenario(self, name: str, image_ref: ImageRef = "mock_scenario.jpg") -> PredictionSet:
        if name not in SCENARIOS:
            raise ValidationError(
                f"Unknown scenario: {name}", field="scenario",
                details={"available": sorted(SCENARIOS)},
            )
        condition, confidence = SCENARIOS[name]
        return await self.classify(image_ref, target=condition, confidence=confidence)

    async def classify_batch(self, count: int = 5) -> List[PredictionSet]:
        """Generate ``count`` random predictions, one after another."""
        if count < 0:
            raise ValidationError(f"Batch count must be >= 0, got {count}", field="count")
        logger.info(f"SimulatedProvider: generating {count} mock predictions")
        return [await self.classify(f"mock_image_{i}.jpg") for i in range(count)]

    async def _infer(
        self,
        image_ref: ImageRef,
        target_index: Optional[int] = None,
        exact: Optional[float] = None,
        band: Optional[Tuple[float, float]] = None,
    ) -> List[RawScore]:
        logger.debug(f"SimulatedProvider: running mock inference for {image_ref}")
        await self._emulate_latency()
        return self._simulate(target_index, exact, band)

    def _simulate(
        self,
        target_index: Optional[int],
        exact: Optional[float],
        band: Optional[Tuple[float, float]] = None,
    ) -> List[RawScore]:
        labels = self.catalog.labels
        if not labels:
            return []

        if target_index is None:
            target_index = labels[int(self._rng.integers(len(labels)))].index

        others = [label.index for label in labels if label.index != target_index]
        if not others:
            return [RawScore(index=target_index, score=1.0)]

        if exact is not None:
            primary = exact
            residual = np.full(len(others), (1.0 - primary) / len(others))
        else:
            low, high = band or (self.config.confidence_low, self.config.confidence_high)
            primary = float(self._rng.uniform(low, high))
            weights = self._rng.uniform(
                self.config.residual_low, self.config.residual_high, len(others)
            )
            residual = weights / weights.sum() * (1.0 - primary)

        scores = [RawScore(index=target_index, score=float(primary))]
        scores.extend(
            RawScore(index=index, score=float(share))
            for index, share in zip(others, residual)
        )
        return scores

    def _resolve_target(self, target: Target) -> int:
        if isinstance(target, ClassLabel):
            label = self.catalog.lookup_by_index(target.index)
        elif isinstance(target, str):
            label = self.catalog.lookup_by_name(target)
        else:
            label = self.catalog.lookup_by_index(target)
        if label is None:
            raise ValidationError(f"Unknown condition: {target}", field="target")
        return label.index

    async def _emulate_latency(self) -> None:
        delay_ms = float(self._rng.uniform(self.config.delay_min_ms, self.config.delay_max_ms))
        await asyncio.sleep(delay_ms / 1000.0)
