"""
Inference Provider Contract

Abstract base for classification back-ends. A provider owns no persistent
state beyond its loaded flag; every result goes through the ResultNormalizer
so all variants share one ranking policy.
"""
from __future__ import annotations

import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import unquote, urlparse

from skinalyze.config import settings
from skinalyze.core.catalog import ClassCatalog, MODEL_INFO, default_catalog
from skinalyze.utils import get_logger, InferenceError, NotInitializedError, ValidationError
from .normalizer import PredictionSet, ResultNormalizer

logger = get_logger(__name__)

ImageRef = Union[str, os.PathLike]


@dataclass(frozen=True)
class InitializationResult:
    """Outcome of ``initialize()``: ready, or failed with a reason."""
    ready: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"ready": self.ready, "reason": self.reason}


@dataclass(frozen=True)
class ImageValidation:
    """Advisory image check result."""
    valid: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "error": self.error}


@dataclass
class ModelDescription:
    """Runtime description of a provider and the model behind it."""
    name: str
    version: str
    framework: str
    model_type: str
    input_shape: str
    num_classes: int
    confidence_threshold: float
    is_loaded: bool
    class_labels: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "framework": self.framework,
            "model_type": self.model_type,
            "input_shape": self.input_shape,
            "num_classes": self.num_classes,
            "confidence_threshold": self.confidence_threshold,
            "is_loaded": self.is_loaded,
            "class_labels": self.class_labels,
        }


def resolve_image_path(image_ref: ImageRef) -> Path:
    """Turn a path or ``file://`` URI into a filesystem path."""
    text = os.fspath(image_ref)
    if text.startswith("file://"):
        return Path(unquote(urlparse(text).path))
    return Path(text)


class InferenceProvider(ABC):
    """
    Common contract for all inference back-ends.

    Lifecycle: ``initialize()`` -> ``classify()``* -> ``release()``.
    Providers are also async context managers for scoped use.
    """

    model_type: str = "unknown"
    is_simulated: bool = False

    def __init__(
        self,
        catalog: Optional[ClassCatalog] = None,
        normalizer: Optional[ResultNormalizer] = None,
        max_image_size_mb: Optional[float] = None,
        allowed_formats: Optional[Sequence[str]] = None,
    ):
        self.catalog = catalog or default_catalog
        self.normalizer = normalizer or ResultNormalizer(catalog=self.catalog)
        self.max_image_size_mb = max_image_size_mb or settings.max_image_size_mb
        self.allowed_formats = [
            fmt.lower().lstrip(".")
            for fmt in (allowed_formats or settings.allowed_image_formats)
        ]
        self._is_loaded = False
        self._classification_count = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def is_ready(self) -> bool:
        return self._is_loaded

    async def initialize(self) -> InitializationResult:
        """Load the provider. Calling again while ready is a no-op."""
        if self._is_loaded:
            logger.debug(f"{self.model_type}: already initialized")
            return InitializationResult(ready=True)

        try:
            await self._load()
        except InferenceError as e:
            logger.error(f"{self.model_type}: initialization failed: {e.message}")
            return InitializationResult(ready=False, reason=e.message)

        self._is_loaded = True
        logger.info(f"{self.model_type}: initialized")
        return InitializationResult(ready=True)

    async def release(self) -> None:
        """Tear down; ``classify`` requires re-initialization afterwards."""
        if not self._is_loaded:
            return
        try:
            await self._unload()
        finally:
            self._is_loaded = False
            logger.info(f"{self.model_type}: released")

    async def __aenter__(self) -> "InferenceProvider":
        result = await self.initialize()
        if not result.ready:
            raise InferenceError(
                f"Provider failed to initialize: {result.reason}",
                details={"model_type": self.model_type},
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.release()

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------
    async def classify(self, image_ref: ImageRef) -> PredictionSet:
        """
        Classify one image.

        Raises:
            NotInitializedError: called before a successful initialize()
            ValidationError: the reference is not a usable locator
            InferenceError: the underlying classifier failed
        """
        self._check_ready()
        self._require_usable(image_ref)
        started = time.perf_counter()
        raw = await self._infer(image_ref)
        return self._shape(raw, started)

    def _check_ready(self) -> None:
        if not self._is_loaded:
            logger.warning(f"{self.model_type}: classify called before initialize()")
            raise NotInitializedError(provider=self.model_type)

    def _shape(self, raw: Any, started: float) -> PredictionSet:
        elapsed_ms = (time.perf_counter() - started) * 1000
        result = self.normalizer.normalize(
            raw,
            simulated=self.is_simulated,
            model_type=self.model_type,
            inference_time_ms=elapsed_ms,
        )
        self._classification_count += 1
        logger.info(
            f"{self.model_type}: classification completed in {elapsed_ms:.0f}ms "
            f"(top={result.top.class_name if result.top else None})"
        )
        return result

    @staticmethod
    def _require_usable(image_ref: Any) -> None:
        if not isinstance(image_ref, (str, os.PathLike)) or not os.fspath(image_ref).strip():
            raise ValidationError("Invalid image path", field="image_ref")

    # ------------------------------------------------------------------
    # Validation / metadata
    # ------------------------------------------------------------------
    def validate_image(self, image_ref: Any) -> ImageValidation:
        """Advisory checks: locator, existence, size and file extension."""
        if not isinstance(image_ref, (str, os.PathLike)) or not os.fspath(image_ref).strip():
            return ImageValidation(valid=False, error="Invalid image path")

        path = resolve_image_path(image_ref)
        try:
            if not path.is_file():
                return ImageValidation(valid=False, error="Image file does not exist")
            size_mb = path.stat().st_size / (1024 * 1024)
        except OSError as e:
            return ImageValidation(valid=False, error=str(e))

        if size_mb > self.max_image_size_mb:
            return ImageValidation(
                valid=False,
                error=f"Image too large: {size_mb:.2f}MB (max: {self.max_image_size_mb}MB)",
            )

        extension = path.suffix.lower().lstrip(".")
        if extension not in self.allowed_formats:
            return ImageValidation(valid=False, error=f"Unsupported format: .{extension}")

        return ImageValidation(valid=True)

    def describe_model(self) -> ModelDescription:
        return ModelDescription(
            name=MODEL_INFO.name,
            version=MODEL_INFO.version,
            framework=MODEL_INFO.framework,
            model_type=self.model_type,
            input_shape=MODEL_INFO.input_shape,
            num_classes=len(self.catalog),
            confidence_threshold=self.normalizer.confidence_threshold,
            is_loaded=self._is_loaded,
            class_labels=self.catalog.names(),
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "model_type": self.model_type,
            "is_loaded": self._is_loaded,
            "classification_count": self._classification_count,
        }

    # ------------------------------------------------------------------
    # Variant hooks
    # ------------------------------------------------------------------
    @abstractmethod
    async def _load(self) -> None:
        """Prepare the back-end; raise InferenceError on failure."""

    async def _unload(self) -> None:
        return None

    @abstractmethod
    async def _infer(self, image_ref: ImageRef) -> Any:
        """Return raw ``{index, score}`` pairs for the image."""
