"""
==============================================================================
Application Settings Module
==============================================================================

Configuration management using Pydantic Settings.

This module implements the Singleton pattern to ensure a single global
configuration instance throughout the application lifecycle.

Features:
---------
- Environment variable loading with type validation
- .env file support for local development
- Computed properties for derived values (symbologies, decode area)

Configuration Priority (highest to lowest):
------------------------------------------
1. Environment variables
2. .env file
3. Default values

Scanner Tuning:
--------------
SCAN_ACCEPT_THRESHOLD and SCAN_MIN_CODE_LENGTH were chosen empirically
(3 consecutive identical reads, 8 characters). Change them only together
with field testing on real devices.

==============================================================================
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Module logger
logger = logging.getLogger(__name__)


SUPPORTED_SYMBOLOGIES = {"EAN13", "EAN8", "UPCA", "UPCE", "CODE128", "CODE39"}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_name: Display name for the application
        app_env: Environment mode (development/staging/production)
        debug: Enable debug mode for verbose logging
        host: Server bind address
        port: Server port number
        cors_origins: Allowed CORS origins (JSON array string)
        scan_accept_threshold: Consecutive identical reads required (live mode)
        scan_min_code_length: Shortest code accepted from the decoder
        scan_frequency: Live decode rate in frames per second
        scan_symbologies: Accepted symbologies (JSON array string)
        scan_area_*: Live decode region as fractions cut from each edge
        camera_index: Local camera device index
        camera_width: Preferred capture width
        camera_height: Preferred capture height
        max_upload_bytes: Largest accepted still-image upload
        product_api_base_url: Open Food Facts base URL
        product_api_timeout: Product lookup timeout in seconds

    Example:
        >>> settings = Settings()
        >>> print(settings.scan_accept_threshold)
        3
    """

    # =========================================================================
    # PYDANTIC SETTINGS CONFIGURATION
    # =========================================================================
    model_config = SettingsConfigDict(
        # Load from .env file if present
        env_file=".env",
        env_file_encoding="utf-8",
        # Environment variables are case-insensitive
        case_sensitive=False,
        # Ignore extra environment variables
        extra="ignore",
        # Validate default values
        validate_default=True,
    )

    # =========================================================================
    # SERVICE SETTINGS
    # =========================================================================
    app_name: str = "FoodScan API"
    app_env: str = Field(default="development", description="development, staging or production")
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    cors_origins: str = Field(default='["*"]', description="JSON array of allowed origins")

    # =========================================================================
    # SCANNER SETTINGS
    # =========================================================================
    scan_accept_threshold: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Consecutive identical reads required to accept a code"
    )

    scan_min_code_length: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Codes shorter than this are discarded by the decoder"
    )

    scan_frequency: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="Live decode rate in frames per second"
    )

    scan_symbologies: str = Field(
        default='["EAN13", "EAN8", "UPCA", "UPCE", "CODE128", "CODE39"]',
        description="Accepted symbologies as JSON array string"
    )

    scan_area_top: float = Field(default=0.2, ge=0, lt=1)
    scan_area_right: float = Field(default=0.1, ge=0, lt=1)
    scan_area_bottom: float = Field(default=0.2, ge=0, lt=1)
    scan_area_left: float = Field(default=0.1, ge=0, lt=1)

    # =========================================================================
    # CAMERA SETTINGS
    # =========================================================================
    camera_index: int = Field(
        default=0,
        ge=0,
        description="Local camera device index"
    )

    camera_width: int = Field(
        default=1280,
        ge=160,
        le=3840,
        description="Preferred capture width"
    )

    camera_height: int = Field(
        default=720,
        ge=120,
        le=2160,
        description="Preferred capture height"
    )

    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Largest accepted still-image upload in bytes"
    )

    # =========================================================================
    # PRODUCT LOOKUP SETTINGS
    # =========================================================================
    product_api_base_url: str = Field(
        default="https://world.openfoodfacts.org",
        description="Open Food Facts base URL"
    )

    product_api_timeout: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="Product lookup timeout in seconds"
    )

    # =========================================================================
    # VALIDATORS
    # =========================================================================
    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, value: str) -> str:
        """Normalize the environment name; unknown names fall back to development."""
        normalized = value.lower().strip()
        if normalized not in {"development", "staging", "production"}:
            logger.warning(f"Unknown environment '{value}', using 'development'")
            return "development"
        return normalized

    @field_validator("scan_symbologies")
    @classmethod
    def validate_symbologies(cls, value: str) -> str:
        """
        Validate the symbology list.

        Raises:
            ValueError: If the value is not a JSON list of known symbologies
        """
        try:
            names = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid symbology JSON: {value}") from e

        if not isinstance(names, list) or not names:
            raise ValueError("At least one symbology is required")

        unknown = {str(name).upper() for name in names} - SUPPORTED_SYMBOLOGIES
        if unknown:
            raise ValueError(
                f"Unsupported symbologies: {', '.join(sorted(unknown))}. "
                f"Supported: {', '.join(sorted(SUPPORTED_SYMBOLOGIES))}"
            )

        return value

    @model_validator(mode="after")
    def validate_scan_area(self) -> "Settings":
        """Ensure the decode area leaves a non-empty region."""
        if self.scan_area_top + self.scan_area_bottom >= 1:
            raise ValueError("scan_area_top + scan_area_bottom must be < 1")
        if self.scan_area_left + self.scan_area_right >= 1:
            raise ValueError("scan_area_left + scan_area_right must be < 1")
        return self

    # =========================================================================
    # COMPUTED PROPERTIES
    # =========================================================================
    @property
    def cors_origins_list(self) -> List[str]:
        """
        Parse CORS origins from JSON string to list.

        Returns:
            List of allowed origin strings
        """
        try:
            origins = json.loads(self.cors_origins)
            if isinstance(origins, list):
                return origins
            return ["*"]
        except json.JSONDecodeError:
            logger.warning(
                f"Invalid CORS origins JSON: {self.cors_origins}, "
                "defaulting to ['*']"
            )
            return ["*"]

    @property
    def symbologies_list(self) -> List[str]:
        """Accepted symbology names, upper-cased."""
        return [str(name).upper() for name in json.loads(self.scan_symbologies)]

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Settings(app_name={self.app_name!r}, "
            f"app_env={self.app_env!r}, "
            f"debug={self.debug})"
        )


# =============================================================================
# SINGLETON INSTANCE MANAGEMENT
# =============================================================================

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the global Settings instance (singleton pattern).

    Returns:
        Global Settings instance
    """
    settings = Settings()

    if settings.debug:
        logger.info(f"Configuration loaded: {settings}")

    return settings
