"""
Unit Tests for Utilities

Exception payloads, logging setup and settings.
"""
import logging

import pytest

from skinalyze.config import Settings
from skinalyze.utils import (
    InferenceError,
    LocalStorageError,
    NotInitializedError,
    RemoteUnavailableError,
    SkinalyzeError,
    ValidationError,
    get_logger,
    setup_logging,
)
from skinalyze.utils.logging import StructuredFormatter


class TestExceptions:
    """Tests for the error taxonomy."""

    @pytest.mark.parametrize("error, code", [
        (ValidationError("bad"), "VALIDATION_ERROR"),
        (NotInitializedError(), "NOT_INITIALIZED"),
        (InferenceError("boom"), "INFERENCE_ERROR"),
        (RemoteUnavailableError("down"), "REMOTE_UNAVAILABLE"),
        (LocalStorageError("full"), "LOCAL_STORAGE_ERROR"),
    ])
    def test_codes(self, error, code):
        assert isinstance(error, SkinalyzeError)
        assert error.code == code
        assert error.to_dict()["error"] == code

    def test_remote_details(self):
        error = RemoteUnavailableError("Backend returned HTTP 503", operation="get_patients",
                                       status_code=503)
        assert error.operation == "get_patients"
        assert error.status_code == 503

    def test_validation_field(self):
        assert ValidationError("Patient name is required", field="name").field == "name"


class TestLogging:
    """Tests for logging setup."""

    def test_setup_replaces_handlers(self, tmp_path):
        log_file = tmp_path / "skinalyze.log"
        setup_logging("DEBUG", str(log_file))
        setup_logging("DEBUG", str(log_file))
        package_logger = logging.getLogger("skinalyze")
        assert len(package_logger.handlers) == 2
        assert package_logger.level == logging.DEBUG

        get_logger("skinalyze.tests").info("written to file")
        for handler in package_logger.handlers:
            handler.flush()
        assert "written to file" in log_file.read_text()
        setup_logging("INFO")

    def test_formatter_without_color(self):
        record = logging.LogRecord("skinalyze.x", logging.WARNING, __file__, 1, "careful", None, None)
        line = StructuredFormatter(use_color=False).format(record)
        assert "WARNING" in line
        assert "[skinalyze.x] careful" in line
        assert "\033[" not in line


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.top_k_results == 3
        assert settings.max_offline_diagnoses == 50
        assert settings.allowed_image_formats == ["jpg", "jpeg", "png"]

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SKINALYZE_OFFLINE_MODE_ENABLED", "true")
        monkeypatch.setenv("SKINALYZE_CONFIDENCE_THRESHOLD", "0.75")
        settings = Settings(_env_file=None)
        assert settings.offline_mode_enabled is True
        assert settings.confidence_threshold == 0.75
