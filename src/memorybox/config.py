"""
Configuration management for Memorybox.

This module handles loading and validation of configuration settings
from environment variables and provides type-safe configuration objects.
"""

from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_CATEGORIES: List[str] = [
    "Beach",
    "Family",
    "Friends",
    "Travel",
    "Food",
    "Nature",
    "Party",
    "Pets",
    "Sports",
    "Other",
]


class Settings(BaseSettings):
    """Application configuration settings."""

    # Storage settings
    media_storage_path: Path = Field(
        default=Path("./data/media"), description="Path for uploaded media files"
    )
    database_path: Path = Field(
        default=Path("./data/memorybox.db"), description="SQLite database path"
    )

    # Upload limits
    max_image_size: int = Field(
        default=2 * 1024 * 1024, description="Maximum image size in bytes (2MB)"
    )
    max_video_size: int = Field(
        default=15 * 1024 * 1024, description="Maximum video size in bytes (15MB)"
    )

    # Enrichment timeouts
    hash_timeout_seconds: float = Field(
        default=10.0, description="Upper bound for perceptual hash computation"
    )
    vision_timeout_seconds: float = Field(
        default=30.0, description="Upper bound for a remote vision call"
    )

    # Server settings
    server_host: str = Field(default="0.0.0.0", description="Server host")
    server_port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Log level")
    debug: bool = Field(default=False, description="Debug mode")

    # Vision settings
    vision_provider: Literal["gemini", "openai", "local"] = Field(
        default="gemini",
        description="Default vision provider (gemini/openai/local)",
    )

    # Gemini settings
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API key")
    gemini_model: str = Field(
        default="gemini-2.0-flash", description="Gemini model name"
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini base URL",
    )

    # OpenAI settings
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI model name")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1", description="OpenAI base URL"
    )

    # Local vision model settings
    local_vision_enabled: bool = Field(
        default=False, description="Enable local vision model"
    )
    local_vision_model: str = Field(
        default="llava", description="Local vision model name"
    )
    local_vision_base_url: str = Field(
        default="http://localhost:11434", description="Local vision model base URL"
    )

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


def get_settings() -> Settings:
    """Get application settings instance."""
    return Settings()
