"""
HeatAtlas Configuration Settings
Centralized settings management using Pydantic with environment variable support.
"""
from typing import Optional, List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from dotenv import load_dotenv

# Load .env from the repository root if present
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)


class Settings(BaseSettings):
    """HeatAtlas Application Settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "HeatAtlas API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Runtime environment")

    BACKEND_CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:5173"],
        description="Allowed CORS origins"
    )

    # Google Earth Engine
    GEE_SERVICE_ACCOUNT_KEY: str = Field(
        default="gee-service-account-key.json",
        description="Path to the Earth Engine service account key file"
    )
    GEE_PROJECT_ID: Optional[str] = Field(
        default=None,
        description="Cloud project id (defaults to the key file's project_id)"
    )
    GEE_INIT_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        description="Timeout for Earth Engine authentication/initialization"
    )

    # Narration providers
    GROQ_API_KEY: Optional[str] = Field(default=None, description="Groq API key")
    GROQ_MODEL: str = Field(default="llama-3.3-70b-versatile", description="Groq model")

    OPENROUTER_API_KEY: Optional[str] = Field(default=None, description="OpenRouter API key")
    OPENROUTER_URL: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenRouter API base URL"
    )
    OPENROUTER_MODEL: str = Field(default="microsoft/wizardlm-2-8x22b")

    OLLAMA_URL: str = Field(default="http://localhost:11434", description="Local Ollama server")
    OLLAMA_MODEL: str = Field(default="llama2:7b")
    OLLAMA_PROBE_TIMEOUT_SECONDS: float = Field(default=3.0)

    NARRATION_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Per-request timeout for narration providers"
    )
    NARRATION_MIN_INTERVAL_SECONDS: float = Field(
        default=2.0,
        description="Process-wide minimum spacing between narration requests"
    )
    NARRATION_TEMPERATURE: float = Field(default=0.3)
    NARRATION_MAX_ERRORS_PER_TYPE: int = Field(default=5)
    NARRATION_ERROR_COOLDOWN_SECONDS: float = Field(default=300.0)

    # Report artifacts
    REPORTS_DIR: str = Field(default="temp/reports", description="Root of report directories")
    REPORT_RETENTION_SECONDS: float = Field(
        default=3600.0,
        description="Reports are deleted this long after creation"
    )
    DOWNLOAD_MAX_ATTEMPTS: int = Field(default=3)
    DOWNLOAD_TIMEOUT_SECONDS: float = Field(default=60.0)
    DOWNLOAD_BACKOFF_SECONDS: float = Field(default=2.0)
    DOWNLOAD_MAX_BYTES: int = Field(default=100 * 1024 * 1024)

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            if v.startswith('['):
                import json
                return json.loads(v)
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator(
        "GEE_INIT_TIMEOUT_SECONDS",
        "NARRATION_TIMEOUT_SECONDS",
        "NARRATION_MIN_INTERVAL_SECONDS",
        "REPORT_RETENTION_SECONDS",
        "DOWNLOAD_TIMEOUT_SECONDS",
        "OLLAMA_PROBE_TIMEOUT_SECONDS",
    )
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("DOWNLOAD_MAX_ATTEMPTS", "NARRATION_MAX_ERRORS_PER_TYPE")
    @classmethod
    def validate_at_least_one(cls, v):
        if v < 1:
            raise ValueError("must be at least 1")
        return v


# Global settings instance
settings = Settings()
