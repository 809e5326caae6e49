"""
Configuration management for ProvaFácil.

Uses Pydantic Settings for type-safe configuration loading from environment variables.
All configuration is validated at startup to fail fast on misconfiguration.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are validated at startup. Missing required fields
    will raise clear validation errors.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Vision LLM Configuration
    # ==========================================================================
    llm_api_key: str = Field(
        ...,
        description="API key for the OpenAI-compatible multimodal endpoint",
        min_length=10,
    )

    llm_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai",
        description="Base URL for the OpenAI-compatible API",
    )

    llm_model: str = Field(
        default="gemini-2.0-flash",
        description="Vision-capable model used to read answer sheets",
    )

    llm_temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Temperature for LLM generation (0.0 = deterministic)",
    )

    llm_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries for rate-limited or transient API failures",
    )

    # ==========================================================================
    # Image Processing Configuration
    # ==========================================================================
    max_image_size_mb: float = Field(
        default=10.0,
        ge=0.1,
        le=100.0,
        description="Maximum allowed image size in megabytes",
    )

    supported_image_extensions: tuple[str, ...] = Field(
        default=(".png", ".jpg", ".jpeg", ".webp", ".gif", ".pdf"),
        description="Accepted answer sheet file extensions",
    )

    pdf_render_dpi: int = Field(
        default=200,
        ge=72,
        le=600,
        description="Resolution used when rasterizing scanned PDF sheets",
    )

    # ==========================================================================
    # Storage and Output Configuration
    # ==========================================================================
    templates_file: Path = Field(
        default=Path("./data/templates.json"),
        description="JSON file holding the saved exam templates",
    )

    output_directory: Path = Field(
        default=Path("./output"),
        description="Directory for reports and audit records",
    )

    grading_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Worker threads used when grading a batch of sheets",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level for the provafacil logger",
    )

    @field_validator("llm_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base URL doesn't have trailing slash."""
        return v.rstrip("/")

    @field_validator("supported_image_extensions")
    @classmethod
    def normalize_extensions(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Lower-case extensions and make sure they start with a dot."""
        return tuple(ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in v)

    @field_validator("output_directory")
    @classmethod
    def validate_output_directory(cls, v: Path) -> Path:
        """Ensure output directory exists or can be created."""
        v.mkdir(parents=True, exist_ok=True)
        return v


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once.
    """
    return Settings()
