"""
Model-Backed Inference Provider

Delegates classification to an external native classifier and forwards its
``{index, label, confidence}`` output to the ResultNormalizer. Collaborator
failures surface as InferenceError and are never replaced by simulated output.
"""
from __future__ import annotations

import asyncio
import inspect
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Sequence, runtime_checkable

from skinalyze.config import settings
from skinalyze.core.catalog import ClassCatalog, MODEL_INFO
from skinalyze.utils import get_logger, InferenceError
from .base import ImageRef, InferenceProvider
from .normalizer import ResultNormalizer

logger = get_logger(__name__)


@dataclass(frozen=True)
class ClassifierRequest:
    """Request sent to the native classifier for one image."""
    image_path: str
    image_mean: float
    image_std: float
    num_results: int
    threshold: float

    def to_options(self) -> Dict[str, Any]:
        """Option dict in the native module's key convention."""
        return {
            "path": self.image_path,
            "imageMean": self.image_mean,
            "imageStd": self.image_std,
            "numResults": self.num_results,
            "threshold": self.threshold,
        }


@runtime_checkable
class NativeClassifier(Protocol):
    """Async request/response contract every native back-end is adapted to."""

    async def load(self, model_name: str, num_threads: int) -> None:
        ...

    async def run(self, request: ClassifierRequest) -> Sequence[Mapping[str, Any]]:
        ...

    async def close(self) -> None:
        ...


class CallbackClassifierBridge:
    """
    Adapts a callback-style native module to NativeClassifier.

    The module must expose ``load_model(options, callback)`` and
    ``run_model_on_image(options, callback)`` where ``callback(error, result)``
    may be invoked from any thread. ``close()`` is optional.
    """

    def __init__(self, module: Any):
        for name in ("load_model", "run_model_on_image"):
            if not callable(getattr(module, name, None)):
                raise TypeError(f"Native module is missing '{name}'")
        self._module = module

    async def load(self, model_name: str, num_threads: int) -> None:
        await self._call(
            self._module.load_model,
            {"model": model_name, "numThreads": num_threads},
        )

    async def run(self, request: ClassifierRequest) -> Sequence[Mapping[str, Any]]:
        return await self._call(self._module.run_model_on_image, request.to_options())

    async def close(self) -> None:
        close = getattr(self._module, "close", None)
        if callable(close):
            result = close()
            if inspect.isawaitable(result):
                await result

    @staticmethod
    async def _call(fn: Callable[..., Any], options: Dict[str, Any]) -> Any:
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def settle(error: Any, result: Any) -> None:
            if future.done():
                return
            if error:
                future.set_exception(InferenceError(str(error)))
            else:
                future.set_result(result)

        def callback(error: Any = None, result: Any = None) -> None:
            loop.call_soon_threadsafe(settle, error, result)

        fn(options, callback)
        return await future


class ModelBackedProvider(InferenceProvider):
    """
    Provider backed by an on-device classifier.

    The full distribution is requested (threshold 0, one result per class)
    so the ranked set sums to 1; the configured confidence threshold is
    applied by consumers through ``PredictionSet.is_confident``.
    """

    model_type = "TFLite Native"
    is_simulated = False

    def __init__(
        self,
        classifier: NativeClassifier,
        model_name: Optional[str] = None,
        num_threads: Optional[int] = None,
        catalog: Optional[ClassCatalog] = None,
        normalizer: Optional[ResultNormalizer] = None,
        **kwargs,
    ):
        super().__init__(catalog=catalog, normalizer=normalizer, **kwargs)
        if not isinstance(classifier, NativeClassifier):
            raise TypeError("classifier must implement load(), run() and close()")
        self._classifier = classifier
        self.model_name = model_name or settings.model_name
        self.num_threads = num_threads or settings.num_threads

    async def _load(self) -> None:
        logger.info(f"ModelBackedProvider: loading model '{self.model_name}'")
        try:
            await self._classifier.load(self.model_name, self.num_threads)
        except InferenceError as e:
            raise InferenceError(
                f"Failed to load model: {e.message}",
                details={"model_name": self.model_name},
            ) from e
        except Exception as e:
            raise InferenceError(
                f"Failed to load model: {e}",
                details={"model_name": self.model_name},
            ) from e

    async def _unload(self) -> None:
        try:
            await self._classifier.close()
        except Exception as e:
            logger.error(f"ModelBackedProvider: error during cleanup: {e}")

    async def _infer(self, image_ref: ImageRef) -> Sequence[Mapping[str, Any]]:
        request = ClassifierRequest(
            image_path=os.fspath(image_ref),
            image_mean=MODEL_INFO.normalization_mean,
            image_std=MODEL_INFO.normalization_std,
            num_results=len(self.catalog),
            threshold=0.0,
        )
        logger.debug(f"ModelBackedProvider: running inference on {request.image_path}")
        try:
            results = await self._classifier.run(request)
        except InferenceError as e:
            raise InferenceError(
                f"Inference failed: {e.message}",
                details={"image_path": request.image_path},
            ) from e
        except Exception as e:
            raise InferenceError(
                f"Inference failed: {e}",
                details={"image_path": request.image_path},
            ) from e

        if results is None:
            raise InferenceError(
                "Classifier returned no results",
                details={"image_path": request.image_path},
            )
        return results

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats.update({"model_name": self.model_name, "num_threads": self.num_threads})
        return stats
