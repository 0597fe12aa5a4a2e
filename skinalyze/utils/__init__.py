"""
Utilities Package - Logging and Exception Handling
"""
from .logging import get_logger, setup_logging
from .exceptions import (
    SkinalyzeError,
    ValidationError,
    NotInitializedError,
    InferenceError,
    RemoteUnavailableError,
    LocalStorageError,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "SkinalyzeError",
    "ValidationError",
    "NotInitializedError",
    "InferenceError",
    "RemoteUnavailableError",
    "LocalStorageError",
]
