"""
API Configuration Management

Centralized settings for the API process and the enrichment pipeline it
hosts, loaded from the environment and an optional ``.env`` file.

Design Considerations:
- Environment-specific configuration profiles
- Secrets held as SecretStr and only unwrapped when wiring clients
- Pipeline defaults come from ENRICHMENT_CONFIG; settings only override
"""

from enum import Enum
from typing import Dict, Any, Optional

from pydantic_settings import BaseSettings
from pydantic import Field, SecretStr, field_validator

from src.config.enrichment_config import ENRICHMENT_CONFIG

_LLM_DEFAULTS = ENRICHMENT_CONFIG["llm"]
_RATE_DEFAULTS = ENRICHMENT_CONFIG["rate_limit"]
_QUEUE_DEFAULTS = ENRICHMENT_CONFIG["queue"]


class EnvironmentType(str, Enum):
    """Valid environment types for configuration context."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class APISettings(BaseSettings):
    """
    API and enrichment settings with validation.

    Every field can be set through an environment variable of the same name.
    """
    # Environment Configuration
    ENVIRONMENT: EnvironmentType = Field(
        default=EnvironmentType.DEVELOPMENT,
        description="Runtime environment context"
    )
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FILE: Optional[str] = Field(default="logs/enrichment.log", description="Log file path")

    # API Settings
    API_TITLE: str = Field(default="Email Enrichment API", description="API title for documentation")
    API_DESCRIPTION: str = Field(
        default="AI enrichment of synced emails with live status updates",
        description="API description for documentation"
    )
    API_VERSION: str = Field(default="1.0.0", description="API version")

    # CORS Settings
    CORS_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed origins for CORS"
    )
    CORS_METHODS: str = Field(
        default="GET,POST,OPTIONS",
        description="Comma-separated list of allowed methods for CORS"
    )

    # Storage
    DATABASE_URL: str = Field(
        default="sqlite:///data/sentient_inbox.db",
        description="SQLAlchemy database URL"
    )

    # LLM provider
    LLM_PROVIDER: str = Field(default=_LLM_DEFAULTS["provider"], description="'anthropic' or 'groq'")
    ANTHROPIC_API_KEY: Optional[SecretStr] = Field(default=None, description="Anthropic API key")
    ANTHROPIC_MODEL: str = Field(default=_LLM_DEFAULTS["models"]["anthropic"], description="Anthropic model")
    GROQ_API_KEY: Optional[SecretStr] = Field(default=None, description="Groq API key")
    GROQ_MODEL: str = Field(default=_LLM_DEFAULTS["models"]["groq"], description="Groq model")
    LLM_MAX_TOKENS: int = Field(default=_LLM_DEFAULTS["max_tokens"], gt=0)
    LLM_TIMEOUT: float = Field(default=_LLM_DEFAULTS["timeout"], gt=0)
    LLM_MAX_RETRIES: int = Field(default=_LLM_DEFAULTS["max_retries"], ge=0)
    LLM_RETRY_BASE_DELAY: float = Field(default=_LLM_DEFAULTS["retry_base_delay"], ge=0)

    # Token budget
    RATE_LIMIT_TOKENS_PER_MINUTE: int = Field(default=_RATE_DEFAULTS["tokens_per_minute"], gt=0)
    RATE_LIMIT_SAFETY_BUFFER: float = Field(default=_RATE_DEFAULTS["safety_buffer"], ge=0, lt=1)

    # Queue pacing
    ENRICHMENT_BATCH_SIZE: int = Field(default=_QUEUE_DEFAULTS["batch_size"], ge=1)
    ENRICHMENT_API_CHUNK_SIZE: int = Field(default=_QUEUE_DEFAULTS["api_chunk_size"], ge=1)
    ENRICHMENT_INTER_CHUNK_DELAY: float = Field(default=_QUEUE_DEFAULTS["inter_chunk_delay"], ge=0)
    ENRICHMENT_INTER_BATCH_DELAY: float = Field(default=_QUEUE_DEFAULTS["inter_batch_delay"], ge=0)

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, value: str) -> list:
        """Parse comma-separated CORS origins into list."""
        if value == "*":
            return ["*"]
        return [origin.strip() for origin in value.split(",") if origin.strip()]

    @field_validator("CORS_METHODS")
    @classmethod
    def parse_cors_methods(cls, value: str) -> list:
        """Parse comma-separated CORS methods into list."""
        return [method.strip() for method in value.split(",") if method.strip()]

    @field_validator("LLM_PROVIDER")
    @classmethod
    def validate_provider(cls, value: str) -> str:
        provider = value.strip().lower()
        if provider not in ("anthropic", "groq"):
            raise ValueError("LLM_PROVIDER must be 'anthropic' or 'groq'")
        return provider

    def enrichment_config(self) -> Dict[str, Any]:
        """Overrides for ENRICHMENT_CONFIG built from these settings."""
        api_key = self.ANTHROPIC_API_KEY if self.LLM_PROVIDER == "anthropic" else self.GROQ_API_KEY
        return {
            "llm": {
                "provider": self.LLM_PROVIDER,
                "api_key": api_key.get_secret_value() if api_key else None,
                "models": {"anthropic": self.ANTHROPIC_MODEL, "groq": self.GROQ_MODEL},
                "max_tokens": self.LLM_MAX_TOKENS,
                "timeout": self.LLM_TIMEOUT,
                "max_retries": self.LLM_MAX_RETRIES,
                "retry_base_delay": self.LLM_RETRY_BASE_DELAY,
            },
            "rate_limit": {
                "tokens_per_minute": self.RATE_LIMIT_TOKENS_PER_MINUTE,
                "safety_buffer": self.RATE_LIMIT_SAFETY_BUFFER,
            },
            "queue": {
                "batch_size": self.ENRICHMENT_BATCH_SIZE,
                "api_chunk_size": self.ENRICHMENT_API_CHUNK_SIZE,
                "inter_chunk_delay": self.ENRICHMENT_INTER_CHUNK_DELAY,
                "inter_batch_delay": self.ENRICHMENT_INTER_BATCH_DELAY,
            },
        }

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore"
    }


def get_settings() -> APISettings:
    """
    Retrieve validated API settings.

    Raises:
        ValidationError: If configuration fails validation
    """
    return APISettings()
