"""Configuration management for the report generator."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    env: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Inference backend (OpenAI-compatible endpoint, local Ollama by default)
    inference_base_url: str = "http://localhost:11434/v1"
    inference_api_key: str = "ollama"

    # Configuration files
    model_catalogue_path: str = "./config/models.yaml"
    domain_rules_path: str = "./config/domains.yaml"

    # Generation Settings
    max_retries: int = 2
    attempt_timeout_seconds: float = 120.0
    max_concurrent_domains: int = 4
    strict_validation: bool = False

    # Output
    output_dir: str = "."
    usage_log_path: Optional[str] = None  # JSON lines, one record per attempt
    cache_dir: Optional[str] = None  # Narrative cache, disabled when unset


# Global settings instance
settings = Settings()
