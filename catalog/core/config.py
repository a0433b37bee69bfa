"""
Core configuration management with tier-based defaults.

This module provides centralized configuration for the dataset catalog
service. Values are read from environment variables with the APP_ prefix.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Union
from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeploymentTier(str, Enum):
    """Deployment tier levels."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DispatchMode(str, Enum):
    """Where metadata generation jobs run."""
    INLINE = "inline"
    CELERY = "celery"


class Settings(BaseSettings):
    """
    Application settings.

    Settings are loaded from environment variables with the APP_ prefix.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="APP_",
        case_sensitive=False,
        extra="ignore"
    )

    # ==========================================
    # Core Application Settings
    # ==========================================
    name: str = Field(default="Dataset Catalog", description="Application name")
    version: str = Field(default="0.1.0", description="Application version")
    env: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=True, description="Debug mode")
    host: str = Field(default="0.0.0.0", description="Host to bind")
    port: int = Field(default=8000, description="Port to bind")

    deployment_tier: DeploymentTier = Field(
        default=DeploymentTier.DEVELOPMENT,
        description="Deployment tier level"
    )

    # ==========================================
    # API Configuration
    # ==========================================
    api_v1_prefix: str = Field(default="/api/v1")
    cors_origins: List[str] = Field(default=["*"])

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_json_list(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse JSON strings into lists for environment variables."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
                return [parsed]
            except json.JSONDecodeError:
                if ',' in v:
                    return [item.strip() for item in v.split(',')]
                return [v.strip()]
        return v

    # ==========================================
    # Database Configuration
    # ==========================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./catalog.db",
        description="Database connection URL"
    )
    database_pool_size: int = Field(default=20)
    database_max_overflow: int = Field(default=30)
    database_echo: bool = Field(default=False)

    # ==========================================
    # Upload / Ingestion Configuration
    # ==========================================
    upload_dir: Path = Field(default=Path("uploads"), description="Managed upload directory")
    max_upload_size: int = Field(default=10 * 1024 * 1024, description="Maximum upload size in bytes")
    allowed_extensions: List[str] = Field(default=[".csv", ".xlsx", ".xls"])
    sample_rows: int = Field(default=100, description="Rows retained for preview and Excel sampling")
    max_distinct_samples: int = Field(default=10, description="Distinct values collected per column")
    stored_samples: int = Field(default=5, description="Sample values stored per column")
    csv_chunk_size: int = Field(default=1000, description="Rows per CSV parsing chunk")

    # ==========================================
    # Metadata Generation (AI collaborator)
    # ==========================================
    metadata_dispatch_mode: DispatchMode = Field(default=DispatchMode.INLINE)
    metadata_max_retries: int = Field(default=2, description="Retries after the first failed AI call")
    metadata_retry_delay: float = Field(default=5.0, description="Base delay between retries in seconds")
    ai_timeout_seconds: float = Field(default=60.0, description="Timeout for a single AI call")

    azure_openai_api_key: Optional[str] = Field(default=None)
    azure_openai_endpoint: Optional[str] = Field(default=None)
    azure_openai_api_version: str = Field(default="2024-08-01-preview")
    azure_openai_deployment: str = Field(default="gpt-4o-mini")

    # ==========================================
    # Celery Configuration
    # ==========================================
    celery_broker_url: str = Field(
        default="redis://localhost:6379/3",
        description="Celery broker URL (Redis)"
    )
    celery_result_backend: str = Field(
        default="redis://localhost:6379/4",
        description="Celery result backend URL"
    )
    celery_task_default_queue: str = Field(default="metadata")
    celery_task_time_limit: int = Field(
        default=300,
        description="Maximum time for task execution in seconds"
    )

    # ==========================================
    # Monitoring Configuration
    # ==========================================
    log_level: LogLevel = Field(default=LogLevel.INFO)
    log_format: str = Field(default="console")

    # ==========================================
    # Testing Configuration
    # ==========================================
    testing: bool = Field(default=False)

    @field_validator("deployment_tier", mode="before")
    def validate_deployment_tier(cls, v: str) -> str:
        """Validate and convert deployment tier string."""
        if isinstance(v, str):
            v = v.lower()
        if v not in [tier.value for tier in DeploymentTier]:
            raise ValueError(f"Invalid deployment tier: {v}")
        return v

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def normalize_extensions(cls, v: Union[str, List[str]]) -> List[str]:
        """Accept a comma separated list and normalize to lower-case dotted suffixes."""
        if isinstance(v, str):
            v = [item for item in v.split(',') if item.strip()]
        return [
            ext.strip().lower() if ext.strip().startswith('.') else f".{ext.strip().lower()}"
            for ext in v
        ]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.deployment_tier == DeploymentTier.PRODUCTION

    @property
    def docs_enabled(self) -> bool:
        """Check if API documentation should be enabled."""
        return self.deployment_tier != DeploymentTier.PRODUCTION

    @property
    def ai_configured(self) -> bool:
        """Check if the Azure OpenAI credentials are present."""
        return bool(self.azure_openai_api_key and self.azure_openai_endpoint)

    def get_database_url(self) -> str:
        """Get the async driver URL for the configured database."""
        url = self.database_url
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+psycopg://", 1)
        if url.startswith("sqlite://") and not url.startswith("sqlite+aiosqlite://"):
            return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()


# Export settings instance for easy import
settings = get_settings()
