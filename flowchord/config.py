"""Engine configuration using Pydantic Settings."""
from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    # Application
    app_name: str = "FlowChord"
    environment: str = "development"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./flowchord.db"
    db_echo: bool = False
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # "json" for production, "rich" for a dev console

    # Engine
    max_workflow_nodes: int = 100
    retry_strategy: str = "fixed"  # "fixed", "linear", "exponential"
    retry_base_delay: float = 0.0
    retry_max_delay: float = 30.0
    retry_jitter: bool = False

    # Background events
    max_events_per_execution: int = 1000
    event_ttl_seconds: int = 3600

    # LLM Providers (used when a node config omits credentials)
    openai_api_key: str = ""
    openai_base_url: str = ""
    gemini_api_key: str = ""
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_openai_model: str = "gpt-4o-mini"
    default_gemini_model: str = "gemini-2.0-flash"
    default_openrouter_model: str = "openai/gpt-4o-mini"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 1024

    # Email
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from: str = ""

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.database_url

    model_config = {"env_prefix": "", "case_sensitive": False}


@lru_cache
def get_settings() -> Settings:
    """Get cached engine settings."""
    return Settings()
