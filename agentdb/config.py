"""
Application Configuration

Pydantic-based settings management using environment variables.
Supports nested configuration, validation, and caching.

Usage:
    from agentdb.config import get_settings

    settings = get_settings()
    print(settings.llm.timeout)
    print(settings.agent.read_only)
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Model provider configuration."""

    default_model_openai: str = Field(
        default="gpt-5-codex", description="Model used with the ChatGPT Responses backend"
    )
    default_model_anthropic: str = Field(
        default="claude-sonnet-4-20250514", description="Model used with the Anthropic Messages API"
    )
    openai_base_url: str = Field(
        default="https://chatgpt.com/backend-api",
        description="Base URL for the ChatGPT backend",
    )
    openai_responses_path: str = Field(
        default="/codex/responses",
        description="Path of the streaming Responses endpoint",
    )
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com",
        description="Base URL for the Anthropic API",
    )
    anthropic_version: str = Field(
        default="2023-06-01",
        description="Value of the anthropic-version header",
    )
    reasoning_effort: Literal["low", "medium", "high"] = Field(
        default="medium",
        description="Reasoning effort requested from Responses models",
    )
    max_tokens: int = Field(
        default=4096,
        gt=0,
        le=64000,
        description="Maximum tokens per model response",
    )
    timeout: int = Field(
        default=120,
        gt=0,
        description="Streaming timeout in seconds (no data for this long aborts the call)",
    )
    max_history: int = Field(
        default=20,
        gt=0,
        le=200,
        description="Maximum messages kept in conversation history",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )


class DatabaseSettings(BaseSettings):
    """Target database configuration."""

    url: str | None = Field(
        None,
        description="PostgreSQL connection URL of the database to converse with",
    )
    pool_size: int = Field(
        default=5,
        gt=0,
        le=20,
        description="Database connection pool size",
    )
    timeout: int = Field(
        default=30,
        gt=0,
        description="Driver command timeout in seconds",
    )
    connect_timeout: int = Field(
        default=10,
        gt=0,
        description="Connection establishment timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("url", mode="before")
    @classmethod
    def normalize_url(cls, v: str | None) -> str | None:
        """Treat empty strings as missing."""
        if v == "":
            return None
        return v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate supported database URL schemes."""
        if v is None:
            return v
        parsed = urlparse(v)
        scheme = parsed.scheme.split("+")[0].lower() if parsed.scheme else ""
        if scheme not in {"postgres", "postgresql"}:
            raise ValueError("DATABASE_URL must use the postgresql scheme.")
        if not parsed.hostname:
            raise ValueError("DATABASE_URL must include a host.")
        return v


class AgentSettings(BaseSettings):
    """Conversation turn behavior."""

    read_only: bool = Field(
        default=True,
        description="Block destructive statements unless explicitly disabled",
    )
    summary_max_rows: int = Field(
        default=20,
        gt=0,
        le=500,
        description="Rows sent back to the model when asking for a summary",
    )
    auto_correct: bool = Field(
        default=True,
        description="Run one automatic correction turn after a SQL error",
    )
    query_history_size: int = Field(
        default=50,
        gt=0,
        le=1000,
        description="Executed statements kept in the query history",
    )
    response_language: str = Field(
        default="English",
        description="Language the agent answers in",
    )

    model_config = SettingsConfigDict(
        env_prefix="AGENT_",
        env_file=".env",
        extra="ignore",
    )


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application log level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log timestamp format",
    )
    file: Path | None = Field(
        default=None,
        description="Optional log file path (None = stdout only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    def configure(self) -> None:
        """Configure Python logging with these settings."""
        handlers: list[logging.Handler] = [logging.StreamHandler()]

        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        logging.basicConfig(
            level=getattr(logging, self.level),
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,  # Override any existing configuration
        )


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    Settings are nested by domain (llm, database, agent, logging).

    Environment Variables:
        ENVIRONMENT: Deployment environment (development, production)
        API_HOST: API server host
        API_PORT: API server port
        LLM_*: Model provider configuration (see LLMSettings)
        DATABASE_*: Target database configuration (see DatabaseSettings)
        AGENT_*: Turn behavior (see AgentSettings)
        LOG_*: Logging configuration (see LoggingSettings)

    Example:
        >>> settings = get_settings()
        >>> settings.agent.read_only
        True
    """

    environment: Literal["development", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    app_name: str = Field(
        default="AgentDB",
        description="Application name",
    )
    api_host: str = Field(
        default="127.0.0.1",
        description="API server host",
    )
    api_port: int = Field(
        default=3001,
        gt=0,
        le=65535,
        description="API server port",
    )

    llm: LLMSettings = Field(default_factory=LLMSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def model_post_init(self, __context) -> None:
        """Log configuration on initialization."""
        logger = logging.getLogger(__name__)
        logger.info(
            f"Settings loaded for {self.app_name} ({self.environment})",
            extra={
                "environment": self.environment,
                "read_only": self.agent.read_only,
                "max_history": self.llm.max_history,
            },
        )


_DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"


def _apply_dotenv_precedence() -> None:
    env_source = os.getenv("AGENTDB_ENV_SOURCE", "dotenv").lower()
    if env_source not in {"dotenv", "envfile", "file"}:
        return
    if _DOTENV_PATH.exists():
        load_dotenv(_DOTENV_PATH, override=True)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses functools.lru_cache to ensure settings are loaded only once.

    Returns:
        Settings: Singleton settings instance
    """
    _apply_dotenv_precedence()
    return Settings()


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()
