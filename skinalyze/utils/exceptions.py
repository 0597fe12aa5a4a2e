"""
Custom Exception Hierarchy

Error taxonomy for the inference and persistence core. Every error carries a
stable code and structured details so callers can report it uniformly.
"""
from typing import Optional, Dict, Any


class SkinalyzeError(Exception):
    """Base exception for all Skinalyze core errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging or display."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class ValidationError(SkinalyzeError):
    """Malformed input rejected before any I/O is attempted."""

    def __init__(
        self,
        message: str,
        field: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"field": field, **(details or {})}
        )
        self.field = field


class NotInitializedError(SkinalyzeError):
    """Inference requested before the provider reported ready."""

    def __init__(
        self,
        message: str = "Model not initialized. Call initialize() first.",
        provider: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="NOT_INITIALIZED",
            details={"provider": provider, **(details or {})}
        )
        self.provider = provider


class InferenceError(SkinalyzeError):
    """Underlying classifier failure (load or run)."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="INFERENCE_ERROR",
            details=details
        )


class RemoteUnavailableError(SkinalyzeError):
    """Network failure, timeout or non-success response from the backend."""

    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="REMOTE_UNAVAILABLE",
            details={"operation": operation, "status_code": status_code, **(details or {})}
        )
        self.operation = operation
        self.status_code = status_code


class LocalStorageError(SkinalyzeError):
    """Durable storage failure; fatal for the call that hit it."""

    def __init__(
        self,
        message: str,
        namespace: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="LOCAL_STORAGE_ERROR",
            details={"namespace": namespace, **(details or {})}
        )
        self.namespace = namespace
