"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - dry_run defaults to True: live order placement is opt-in

Design Decisions:
    - Defaults provided for all non-secret settings: works out-of-the-box with SQLite
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

from tradepilot.core.domain_types import TradingMode


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = "sqlite+aiosqlite:///./tradepilot.db"

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosted Postgres URLs use postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 10
    database_max_overflow: int = 5

    # Anthropic
    anthropic_api_key: str = "sk-ant-placeholder"
    anthropic_max_retries: int = 3
    anthropic_timeout_seconds: int = 120
    anthropic_base_delay_ms: int = 1000
    anthropic_max_delay_ms: int = 60_000

    # Agent
    agent_model: str = "claude-sonnet-4-5"
    agent_max_tokens: int = 2048
    analysis_max_steps: int = 30
    validation_max_steps: int = 8
    execution_max_steps: int = 6
    correction_threshold: int = 3
    max_llm_calls: int = 13

    # Trading
    trading_mode: TradingMode = TradingMode.OPTIONS_INTRADAY
    dry_run: bool = True
    checklist_config_path: str | None = None
    tool_handlers: str | None = None  # "package.module:factory"
    max_daily_loss: float = 10_000.0

    # API
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
