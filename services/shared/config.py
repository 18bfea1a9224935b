"""Shared configuration management for the invoice agent.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="invoice-agent",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Language model configuration
    completion_provider: Literal["openai", "ollama"] = Field(
        default="openai",
        description="Completion provider: openai (cloud API), ollama (self-hosted LLM)",
    )
    openai_api_key: str = Field(
        default="",
        description="OpenAI API key (use env var APP_OPENAI_API_KEY)",
    )
    openai_model: str = Field(
        default="gpt-4o",
        description="OpenAI chat model used for every agent operation",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="qwen2.5:7b",
        description="Ollama model to use for completions",
    )
    llm_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for a single completion request",
    )
    llm_max_attempts: int = Field(
        default=1,
        ge=1,
        description="Completion attempts per request (1 = no retry)",
    )

    # Datastore configuration
    datastore_backend: Literal["supabase", "memory"] = Field(
        default="supabase",
        description="Datastore: supabase (hosted Postgres), memory (local development)",
    )
    supabase_url: str = Field(
        default="",
        description="Supabase project URL (use env var APP_SUPABASE_URL)",
    )
    supabase_service_key: str = Field(
        default="",
        description="Supabase service role key (use env var APP_SUPABASE_SERVICE_KEY)",
    )

    # Payment gateway configuration
    stripe_secret_key: str = Field(
        default="",
        description="Stripe secret key (use env var APP_STRIPE_SECRET_KEY)",
    )

    # Browser automation configuration
    hyperbrowser_api_key: str = Field(
        default="",
        description="Hyperbrowser API key (use env var APP_HYPERBROWSER_API_KEY)",
    )
    browser_timeout_ms: int = Field(
        default=30000,
        gt=0,
        description="Default timeout for each browser step in milliseconds",
    )
    browser_max_messages: int = Field(
        default=5,
        ge=1,
        description="Maximum number of email messages opened per download run",
    )
    downloads_dir: str = Field(
        default="downloads",
        description="Local directory receiving attachments downloaded from email portals",
    )

    # Secrets at rest
    credentials_encryption_key: str = Field(
        default="",
        description="Fernet key encrypting account connection credentials",
    )

    # Anomaly detection policy
    anomaly_min_history: int = Field(
        default=5,
        ge=1,
        description="Invoices required before history comparison is attempted",
    )
    anomaly_history_window: int = Field(
        default=10,
        ge=1,
        description="Most recent invoices compared against a new invoice",
    )

    # Invoices
    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency applied when a document does not state one",
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Maximum accepted document size",
    )

    # Storage configuration (S3-compatible object storage)
    storage_enabled: bool = Field(
        default=False,
        description="Keep uploaded invoice documents in S3-compatible storage (MinIO)",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var APP_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var APP_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="invoice-documents",
        description="Bucket holding uploaded invoice documents",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
