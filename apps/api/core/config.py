"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the API, the Celery
worker and the analysis pipeline.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # DATABASE_URL wins when set (tests point it at SQLite).
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="workflow_coach")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=20)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")
    # Run tasks inline (local development without a broker).
    CELERY_TASK_ALWAYS_EAGER: bool = Field(default=False)

    # Coach analysis tuning
    COACH_ANALYSIS_STEP_INTERVAL: int = Field(default=5, ge=1)
    COACH_ANALYSIS_MAX_IDLE_S: int = Field(default=300, ge=1)  # 5 minutes
    COACH_INSIGHT_TTL_DAYS: int = Field(default=7, ge=1)
    COACH_STATS_WINDOW: int = Field(default=50, ge=1)
    COACH_PENDING_INSIGHTS_LIMIT: int = Field(default=5, ge=1, le=50)

    # Insight Augmentation Service
    # "azure" (Azure OpenAI via openai SDK), "anthropic", or "none"
    INSIGHT_AUGMENTATION_PROVIDER: str = Field(default="azure")
    AZURE_AI_ENDPOINT: Optional[str] = Field(default=None)
    AZURE_AI_KEY: Optional[str] = Field(default=None)
    AZURE_AI_DEPLOYMENT: str = Field(default="gpt-4o")
    AZURE_AI_API_VERSION: str = Field(default="2024-08-01-preview")
    ANTHROPIC_API_KEY: Optional[str] = Field(default=None)
    INSIGHT_AUGMENTATION_MODEL: str = Field(default="claude-3-5-sonnet-20241022")
    INSIGHT_AUGMENTATION_TIMEOUT_S: float = Field(default=15.0, gt=0)
    INSIGHT_AUGMENTATION_MAX_TOKENS: int = Field(default=800)
    INSIGHT_AUGMENTATION_TEMPERATURE: float = Field(default=0.7)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)


# Global settings instance
settings = Settings()
