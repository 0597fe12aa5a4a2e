"""
Application Settings

Recognized options for the inference and persistence core. Values come from
``SKINALYZE_*`` environment variables or a local ``.env`` file.
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SKINALYZE_",
        env_file=".env",
        extra="ignore",
    )

    # Remote backend
    backend_url: str = "http://192.168.1.100:5000/api"
    request_timeout_seconds: float = Field(default=10.0, gt=0)

    # Inference output
    confidence_threshold: float = Field(default=0.60, ge=0.0, le=1.0)
    top_k_results: int = Field(default=3, ge=1)

    # Offline store
    offline_mode_enabled: bool = False
    offline_store_dir: str = ".skinalyze_cache"
    max_offline_diagnoses: int = Field(default=50, ge=1)
    seed_baseline: bool = True

    # Simulated provider
    simulated_delay_min_ms: float = Field(default=500.0, ge=0)
    simulated_delay_max_ms: float = Field(default=1000.0, ge=0)
    simulated_confidence_low: float = Field(default=0.70, ge=0.0, le=1.0)
    simulated_confidence_high: float = Field(default=0.95, ge=0.0, le=1.0)

    # Image validation
    max_image_size_mb: float = Field(default=10.0, gt=0)
    allowed_image_formats: List[str] = ["jpg", "jpeg", "png"]

    # Native classifier
    model_name: str = "skin_classifier"
    num_threads: int = Field(default=4, ge=1)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
