"""
Result Normalizer

Turns raw ``{index, score}`` pairs from any provider into a canonical ranked
PredictionSet. Ranking is a total order: descending confidence, ties broken
by ascending class index. A malformed input yields an empty set carrying an
error annotation instead of raising, so a detector failure never crashes the
caller's flow.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
import numbers
from typing import Any, Dict, List, Optional, Tuple

from skinalyze.config import settings
from skinalyze.core.catalog import (
    ClassCatalog,
    RiskTier,
    default_catalog,
    is_confidence_acceptable,
)
from skinalyze.utils import get_logger, ValidationError
from .confidence import Confidence

logger = get_logger(__name__)

# Keys a raw pair may use for its score, in lookup order
_SCORE_KEYS = ("confidence", "raw_score", "rawScore", "score")


@dataclass(frozen=True)
class RawScore:
    """One raw classifier output before catalog mapping."""
    index: int
    score: Any


@dataclass(frozen=True)
class Prediction:
    """A single ranked class prediction with its catalog metadata."""
    class_index: int
    class_name: str
    confidence: float          # fraction in [0, 1]
    risk_tier: RiskTier
    description: str = ""
    recommendation: str = ""
    color_hint: str = ""

    @property
    def percentage(self) -> str:
        return f"{self.confidence * 100:.2f}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "class_index": self.class_index,
            "class_name": self.class_name,
            "confidence": self.confidence,
            "percentage": self.percentage,
            "risk_tier": self.risk_tier.value,
            "description": self.description,
            "recommendation": self.recommendation,
            "color_hint": self.color_hint,
        }


@dataclass
class PredictionSet:
    """Full ranked output of one classification call."""
    all_predictions: List[Prediction] = field(default_factory=list)
    top: Optional[Prediction] = None
    top_k: List[Prediction] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_simulated: bool = False
    error: Optional[str] = None
    model_type: str = ""
    inference_time_ms: float = 0.0
    confidence_threshold: float = field(default_factory=lambda: settings.confidence_threshold)

    @property
    def is_empty(self) -> bool:
        return not self.all_predictions

    @property
    def total_confidence(self) -> float:
        return sum(p.confidence for p in self.all_predictions)

    @property
    def is_confident(self) -> bool:
        """Top prediction meets the configured confidence threshold."""
        return self.top is not None and is_confidence_acceptable(
            self.top.confidence, self.confidence_threshold
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "top": self.top.to_dict() if self.top else None,
            "top_k": [p.to_dict() for p in self.top_k],
            "all_predictions": [p.to_dict() for p in self.all_predictions],
            "generated_at": self.generated_at.isoformat(),
            "is_simulated": self.is_simulated,
            "is_confident": self.is_confident,
            "error": self.error,
            "model_type": self.model_type,
            "inference_time_ms": round(self.inference_time_ms, 2),
        }


class ResultNormalizer:
    """
    Maps raw classifier pairs through the catalog and ranks them.

    Accepted pair shapes:
    - mappings with ``index`` and one of confidence / raw_score / rawScore / score
    - ``(index, score)`` tuples
    - RawScore instances

    Scores may be fractions, percentages or numeric strings; they are
    unified to fractions with the Confidence rule.
    """

    def __init__(
        self,
        catalog: Optional[ClassCatalog] = None,
        top_k: Optional[int] = None,
        confidence_threshold: Optional[float] = None,
    ):
        self.catalog = catalog or default_catalog
        self.top_k = top_k if top_k is not None else settings.top_k_results
        self.confidence_threshold = (
            confidence_threshold
            if confidence_threshold is not None
            else settings.confidence_threshold
        )
        if self.top_k < 0:
            raise ValueError(f"top_k must be >= 0, got {self.top_k}")

    def normalize(
        self,
        raw_pairs: Any,
        *,
        simulated: bool = False,
        model_type: str = "",
        inference_time_ms: float = 0.0,
    ) -> PredictionSet:
        """
        Build a ranked PredictionSet from raw pairs.

        Args:
            raw_pairs: Sequence of raw classifier outputs
            simulated: Whether the originating provider is a simulator
            model_type: Label of the originating provider
            inference_time_ms: Measured latency of the provider call

        Returns:
            PredictionSet; empty with ``error`` set if the input is malformed
        """
        try:
            pairs = self._parse(raw_pairs)
        except (ValidationError, ValueError, TypeError) as e:
            message = getattr(e, "message", None) or str(e)
            logger.error(f"Error formatting results: {message}")
            return self._empty(simulated, model_type, inference_time_ms, error=message)

        predictions: List[Prediction] = []
        seen = set()
        for index, confidence in pairs:
            label = self.catalog.lookup_by_index(index)
            if label is None:
                logger.warning(f"Unknown class index: {index} - dropping prediction")
                continue
            if index in seen:
                logger.warning(f"Duplicate class index: {index} - keeping first score")
                continue
            seen.add(index)
            predictions.append(Prediction(
                class_index=label.index,
                class_name=label.name,
                confidence=confidence.fraction,
                risk_tier=label.risk_tier,
                description=label.description,
                recommendation=label.recommendation,
                color_hint=label.color_hint,
            ))

        ranked = sorted(predictions, key=lambda p: (-p.confidence, p.class_index))

        return PredictionSet(
            all_predictions=ranked,
            top=ranked[0] if ranked else None,
            top_k=ranked[: self.top_k],
            is_simulated=simulated,
            model_type=model_type,
            inference_time_ms=inference_time_ms,
            confidence_threshold=self.confidence_threshold,
        )

    def _empty(
        self,
        simulated: bool,
        model_type: str,
        inference_time_ms: float,
        error: Optional[str] = None,
    ) -> PredictionSet:
        return PredictionSet(
            is_simulated=simulated,
            error=error,
            model_type=model_type,
            inference_time_ms=inference_time_ms,
            confidence_threshold=self.confidence_threshold,
        )

    def _parse(self, raw_pairs: Any) -> List[Tuple[int, Confidence]]:
        if isinstance(raw_pairs, (str, bytes, Mapping)) or not isinstance(raw_pairs, Sequence):
            raise ValueError("Invalid results format: expected a sequence of pairs")
        return [self._parse_pair(item) for item in raw_pairs]

    @staticmethod
    def _parse_pair(item: Any) -> Tuple[int, Confidence]:
        if isinstance(item, RawScore):
            index, score = item.index, item.score
        elif isinstance(item, Mapping):
            if "index" not in item:
                raise ValueError(f"Result entry has no 'index': {item!r}")
            key = next((k for k in _SCORE_KEYS if k in item), None)
            if key is None:
                raise ValueError(f"Result entry has no score: {item!r}")
            index, score = item["index"], item[key]
        elif isinstance(item, (tuple, list)) and len(item) == 2:
            index, score = item
        else:
            raise ValueError(f"Malformed result entry: {item!r}")

        if isinstance(index, bool) or not isinstance(index, numbers.Integral):
            raise ValueError(f"Class index must be an integer, got {index!r}")
        return int(index), Confidence.coerce(score)


_default_normalizer: Optional[ResultNormalizer] = None


def normalize(raw_pairs: Any, **kwargs: Any) -> PredictionSet:
    """Normalize with the catalog and settings defaults."""
    global _default_normalizer
    if _default_normalizer is None:
        _default_normalizer = ResultNormalizer()
    return _default_normalizer.normalize(raw_pairs, **kwargs)
