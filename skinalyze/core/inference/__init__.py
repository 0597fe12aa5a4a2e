"""
Inference Module

Pluggable classification providers (simulated or model-backed) sharing one
result normalizer and one confidence unification rule.
"""
from .confidence import Confidence, normalize_percent
from .normalizer import Prediction, PredictionSet, RawScore, ResultNormalizer, normalize
from .base import (
    InferenceProvider,
    InitializationResult,
    ImageValidation,
    ModelDescription,
)
from .simulated import SimulatedProvider, SimulationConfig, SCENARIOS
from .model_backed import (
    ModelBackedProvider,
    NativeClassifier,
    ClassifierRequest,
    CallbackClassifierBridge,
)

__all__ = [
    "Confidence",
    "normalize_percent",
    "Prediction",
    "PredictionSet",
    "RawScore",
    "ResultNormalizer",
    "normalize",
    "InferenceProvider",
    "InitializationResult",
    "ImageValidation",
    "ModelDescription",
    "SimulatedProvider",
    "SimulationConfig",
    "SCENARIOS",
    "ModelBackedProvider",
    "NativeClassifier",
    "ClassifierRequest",
    "CallbackClassifierBridge",
]
