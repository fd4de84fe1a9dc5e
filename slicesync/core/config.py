"""Configuration management for slicesync."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

logger = structlog.get_logger()


class DownloadConfig(BaseModel):
    """Download run configuration."""

    max_concurrency: int = Field(default=8, description="Files downloaded concurrently")
    request_timeout: float = Field(default=60.0, description="Slice request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")

    @field_validator("max_concurrency")
    @classmethod
    def validate_max_concurrency(cls, v: int) -> int:
        """Validate concurrency value."""
        if v < 1:
            raise ValueError("Max concurrency must be at least 1")
        return v

    @field_validator("request_timeout")
    @classmethod
    def validate_request_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class VerifyConfig(BaseModel):
    """Verification run configuration."""

    max_concurrency: int = Field(default=8, description="Files verified concurrently")

    @field_validator("max_concurrency")
    @classmethod
    def validate_max_concurrency(cls, v: int) -> int:
        """Validate concurrency value."""
        if v < 1:
            raise ValueError("Max concurrency must be at least 1")
        return v


class SigningConfig(BaseModel):
    """URL signing configuration."""

    base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the slice store"
    )
    token_expiry_buffer: float = Field(
        default=5.0,
        description="Seconds before expiry at which a cached token is refreshed"
    )
    token_lifetime: float = Field(
        default=3600.0,
        description="Lifetime in seconds of locally minted tokens"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate and normalize base URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid base URL: {v}")
        return v.rstrip("/")

    @field_validator("token_expiry_buffer")
    @classmethod
    def validate_token_expiry_buffer(cls, v: float) -> float:
        """Validate expiry buffer value."""
        if v < 0:
            raise ValueError("Token expiry buffer must be non-negative")
        return v

    @field_validator("token_lifetime")
    @classmethod
    def validate_token_lifetime(cls, v: float) -> float:
        """Validate token lifetime value."""
        if v <= 0:
            raise ValueError("Token lifetime must be positive")
        return v


class AppConfig(BaseModel):
    """Application configuration."""

    # Directory settings
    config_dir: Path = Field(
        default=Path.home() / ".config" / "slicesync",
        description="Configuration directory"
    )
    cache_dir: Path = Field(
        default=Path.home() / ".cache" / "slicesync",
        description="Manifest cache directory"
    )

    versions_url: str = Field(
        default="https://raw.githubusercontent.com/YoobieRE/manifest-versions/main/versions",
        description="Base URL of the manifest version catalog"
    )

    download: DownloadConfig = Field(default_factory=DownloadConfig)
    verify: VerifyConfig = Field(default_factory=VerifyConfig)
    signing: SigningConfig = Field(default_factory=SigningConfig)

    # Output settings
    output_format: str = Field(
        default="rich",
        description="Output format (rich, json, plain)"
    )
    log_level: str = Field(
        default="WARNING",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    def model_post_init(self, __context) -> None:
        """Ensure directories exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    @property
    def registry_file(self) -> Path:
        """Known install locations, keyed by product ID."""
        return self.config_dir / "installs.json"

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = Path.home() / ".config" / "slicesync" / "config.json"

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
            logger.debug("config_loaded", path=str(config_file))
            return cls(**data)

        # Return defaults
        return cls()

    @field_validator("versions_url")
    @classmethod
    def validate_versions_url(cls, v: str) -> str:
        """Validate and normalize version catalog URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid versions URL: {v}")
        return v.rstrip("/")

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format."""
        valid_formats = {"rich", "json", "plain"}
        if v not in valid_formats:
            raise ValueError(f"Invalid output format: {v}. Valid formats: {valid_formats}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v
