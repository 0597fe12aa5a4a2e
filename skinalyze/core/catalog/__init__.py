"""
Class Catalog Module

Static lesion class registry consumed by inference and persistence.
"""
from .labels import (
    ClassCatalog,
    ClassLabel,
    RiskTier,
    ModelInfo,
    MODEL_INFO,
    CLASS_LABELS,
    MELANOMA_ABCDE,
    default_catalog,
    is_confidence_acceptable,
)

__all__ = [
    "ClassCatalog",
    "ClassLabel",
    "RiskTier",
    "ModelInfo",
    "MODEL_INFO",
    "CLASS_LABELS",
    "MELANOMA_ABCDE",
    "default_catalog",
    "is_confidence_acceptable",
]
