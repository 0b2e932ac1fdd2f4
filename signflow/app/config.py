"""
Centralized configuration management for the SignFlow service.

Pydantic v2 settings management to enforce strict validation and
fast-failure on invalid configuration. Every value can be supplied via
a ``SIGNFLOW_``-prefixed environment variable or a local ``.env`` file.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings parsed from the environment.

    Settings are immutable once loaded. Services receive the instance
    explicitly; nothing reads the environment after startup.
    """

    # ---------------------------------------------------------------------
    # Storage
    # ---------------------------------------------------------------------

    storage_dir: Annotated[
        Path,
        Field(
            default=Path("storage"),
            description="Directory holding generated and signed PDF blobs",
        ),
    ]

    # ---------------------------------------------------------------------
    # Input limits
    # ---------------------------------------------------------------------

    max_upload_size_mb: Annotated[
        int,
        Field(
            default=10,
            ge=1,
            le=100,
            description="Maximum accepted DOCX upload size",
        ),
    ]

    max_html_size_mb: Annotated[
        int,
        Field(
            default=10,
            ge=1,
            le=50,
            description="Maximum accepted HTML payload size",
        ),
    ]

    max_pdf_size_mb: Annotated[
        int,
        Field(
            default=25,
            ge=1,
            le=100,
            description="Maximum PDF size accepted for signing",
        ),
    ]

    # ---------------------------------------------------------------------
    # Rendering
    # ---------------------------------------------------------------------

    render_timeout_seconds: Annotated[
        float,
        Field(
            default=30.0,
            gt=0,
            le=300,
            description="Hard upper bound on a single headless render",
        ),
    ]

    # ---------------------------------------------------------------------
    # Signing metadata
    # ---------------------------------------------------------------------

    signed_title: Annotated[
        str,
        Field(
            default="Signed Document",
            min_length=1,
            description="Title written into a PDF once signatures are applied",
        ),
    ]

    signed_author: Annotated[
        str,
        Field(default="SignFlow User", min_length=1),
    ]

    signed_producer: Annotated[
        str,
        Field(default="SignFlow PDF Signer", min_length=1),
    ]

    # ---------------------------------------------------------------------
    # Sanitization
    # ---------------------------------------------------------------------

    strict_sanitization: Annotated[
        bool,
        Field(
            default=False,
            description=(
                "Reject HTML that needed stripping instead of silently "
                "sanitizing it, when a request does not choose explicitly"
            ),
        ),
    ]

    # ---------------------------------------------------------------------
    # HTTP surface
    # ---------------------------------------------------------------------

    host: Annotated[
        str,
        Field(default="127.0.0.1", description="Interface the HTTP server binds to"),
    ]

    port: Annotated[
        int,
        Field(default=8000, ge=1, le=65535),
    ]

    log_level: Annotated[
        str,
        Field(default="INFO"),
    ]

    cors_allow_origins: Annotated[
        List[str],
        Field(default_factory=list),
    ]

    model_config = SettingsConfigDict(
        env_prefix="SIGNFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unsupported log level '{v}'")
        return level

    # ---------------------------------------------------------------------
    # Derived limits
    # ---------------------------------------------------------------------

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def max_html_bytes(self) -> int:
        return self.max_html_size_mb * 1024 * 1024

    @property
    def max_pdf_bytes(self) -> int:
        return self.max_pdf_size_mb * 1024 * 1024


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Dependency injection provider for application settings.

    Cached so the environment is parsed once per process.
    """
    return Settings()
