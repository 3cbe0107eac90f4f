"""
config.py

Centralized configuration management using pydantic-settings.
All modules must import settings from this file.
Direct os.getenv() calls are prohibited elsewhere.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings loaded from .env file."""

    # Upstream LibreLinkUp API
    linkup_default_region: str = "us"
    linkup_product: str = "llu.android"
    linkup_version: str = "4.12.0"
    linkup_max_terms_steps: int = 5

    # HTTP
    http_timeout_s: float = 15.0

    # External record store (repeat-trigger state)
    record_store_url: str = "https://store.zapier.com"

    # Measurement enrichment
    mmol_conversion_factor: float = 18.01559

    # Logging
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


settings = Settings()
