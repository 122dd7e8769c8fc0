"""
PicStash Backend — Application Configuration
==============================================

What:  Centralized configuration management using Pydantic Settings.
Why:   Every knob of the upload handler (directory, size bounds, image bounds,
       naming policy, CORS answers) is read from the environment once and
       validated on startup.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by every module that needs configuration values. Services also
       accept a `Settings` instance so tests can build isolated configurations.

Conventions:
    Numeric bounds use -1 for "unlimited / disabled". A bound of 0 is treated
    the same way for sizes (the checks only fire for positive limits).
"""

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from picstash.exceptions import ConfigurationError


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes are grouped by concern for readability.
    """

    # ── Upload Directory ──────────────────────────────────────────────────
    # What: Where files are written, and the URL prefix they are served under
    # Both are required; an empty value fails every request with a 500
    upload_dir: str = Field(default="./uploads")
    upload_url: str = Field(default="/uploads")

    # What: Public URL of the upload handler itself
    # Used to build delete_url and download URLs; may carry its own query
    # string (e.g. "/api/files?album=42"), which is preserved
    handler_url: str = Field(default="/api/files")

    # ── Size Bounds (bytes) ───────────────────────────────────────────────
    file_max_size: int = Field(default=-1, ge=-1)
    file_min_size: int = Field(default=1, ge=-1)
    max_number_of_files: int = Field(default=-1, ge=-1)

    # What: Server-level limit on a single posted request
    max_request_size: int = Field(default=-1, ge=-1)

    # What: Remove files whose written size is smaller than the declared size
    discard_aborted_uploads: bool = Field(default=True)

    # ── Methods & CORS ────────────────────────────────────────────────────
    # What: How the client is told to delete files
    # POST → delete_url carries `_method=DELETE`; DELETE → real DELETE requests
    delete_type: str = Field(default="POST")

    allowed_http_methods: str = Field(default="DELETE,GET,HEAD,POST,PUT,OPTIONS,PATCH")
    access_control_allow_headers: str = Field(
        default="Content-Type,Content-Range,Content-Disposition,Content-Description"
    )
    access_control_allow_origin: str = Field(default="*")
    access_control_allow_credentials: bool = Field(default=False)

    # What: Origins accepted by the CORS middleware for simple requests
    cors_origins: str = Field(default="*")

    # ── File Types ────────────────────────────────────────────────────────
    accepted_files_pattern: str = Field(default=r".+$")
    inline_file_types_pattern: str = Field(default=r"\.(gif|jpe?g|png)$")

    # What: Reject anything Pillow cannot decode
    image_files_only: bool = Field(default=True)

    # ── Image Bounds (pixels) ─────────────────────────────────────────────
    image_min_width: int = Field(default=-1, ge=-1)
    image_min_height: int = Field(default=-1, ge=-1)
    image_max_width: int = Field(default=-1, ge=-1)
    image_max_height: int = Field(default=-1, ge=-1)

    # What: Box the width/height reported to the client are scaled into
    client_max_width: int = Field(default=100, ge=-1)
    client_max_height: int = Field(default=100, ge=-1)

    # What: Stored images larger than this box are shrunk after upload
    resize_max_width: int = Field(default=1000, ge=-1)
    resize_max_height: int = Field(default=1000, ge=-1)

    # What: Re-encode resized JPEGs with LANCZOS resampling at jpeg_quality
    high_quality_jpeg: bool = Field(default=True)
    jpeg_quality: int = Field(default=100)

    # ── Behaviour Switches ────────────────────────────────────────────────
    allow_downloading: bool = Field(default=False)
    generate_unique_name: bool = Field(default=False)

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("delete_type")
    @classmethod
    def validate_delete_type(cls, v: str) -> str:
        upper = v.upper()
        if upper not in {"DELETE", "POST"}:
            raise ValueError(f"Invalid delete_type '{v}'. Must be DELETE or POST")
        return upper

    @field_validator("jpeg_quality")
    @classmethod
    def validate_jpeg_quality(cls, v: int) -> int:
        """JPEG quality must be between 0 and 100, with 100 being the highest quality."""
        if v < 0 or v > 100:
            raise ValueError(f"jpeg_quality must be between 0 and 100, got {v}")
        return v

    @property
    def allowed_methods_list(self) -> List[str]:
        return [m.strip().upper() for m in self.allowed_http_methods.split(",") if m.strip()]

    @property
    def allowed_headers_list(self) -> List[str]:
        return [h.strip() for h in self.access_control_allow_headers.split(",") if h.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        """
        What: Splits comma-separated CORS origins into a list.
        Why property: CORS middleware expects a list, but env vars are strings.
        """
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def dimension_bounds_configured(self) -> bool:
        return any(
            bound > -1
            for bound in (
                self.image_min_width,
                self.image_min_height,
                self.image_max_width,
                self.image_max_height,
            )
        )

    @property
    def resize_configured(self) -> bool:
        return self.resize_max_width > -1 and self.resize_max_height > -1

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    def validate_required(self) -> None:
        """
        What:  Checks that the upload directory path and URL are configured.
        When:  Called during app startup (logged) and before every request (fatal).
        Raises: ConfigurationError naming the missing setting.
        """
        if not self.upload_dir or not self.upload_dir.strip():
            raise ConfigurationError(
                message="The uploads directory path cannot be empty.",
                setting="UPLOAD_DIR",
            )
        if not self.upload_url or not self.upload_url.strip():
            raise ConfigurationError(
                message="The uploads directory url cannot be empty.",
                setting="UPLOAD_URL",
            )


# Singleton instance, imported throughout the application
settings = Settings()
