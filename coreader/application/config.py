"""Application configuration using Pydantic Settings."""

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "coreader"
    app_version: str = "0.1.0"
    debug: bool = False

    # Selects the limits overrides (development, testing or production)
    environment: Literal["development", "testing", "production"] = "development"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"

    # Storage: "local" keeps everything in memory, "dynamodb" uses AWS
    storage_backend: Literal["local", "dynamodb"] = "local"

    # AWS settings for the DynamoDB repositories
    aws_region: str = "us-west-2"
    documents_table_name: str = "CoreaderDocuments"
    sessions_table_name: str = "CoreaderSessions"
    profiles_table_name: str = "CoreaderProfiles"
    highlights_table_name: str = "CoreaderHighlights"
    comments_table_name: str = "CoreaderComments"
    progress_table_name: str = "CoreaderProgress"

    # Session lifecycle
    disconnect_grace_seconds: float = 0.0
    sweep_interval_seconds: float = 60.0
    outbound_queue_size: int = 1000

    # Progress write retries
    persistence_retry_attempts: int = 3
    persistence_retry_base_delay: float = 0.5

    # Optional scaling phase applied at startup (PHASE_1, PHASE_2, PHASE_3)
    scaling_phase: Optional[str] = None


# Create a singleton instance
settings = Settings()
