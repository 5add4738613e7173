"""Settings via pydantic-settings with STEWARD_ env prefix.

DB connection fields use validation_alias to read from the same unprefixed
env vars (DB_PASSWORD, DB_PORT, etc.) that docker-compose uses, so a single
.env file drives both the container and the Python app.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STEWARD_", env_file=".env")

    # DB connection -- unprefixed aliases match docker-compose env vars
    db_host: str = Field("localhost", validation_alias="DB_HOST")
    db_port: int = Field(5432, validation_alias="DB_PORT")
    db_user: str = Field("steward", validation_alias="DB_USER")
    db_password: str = Field("steward_dev_password", validation_alias="DB_PASSWORD")
    db_name: str = Field("steward", validation_alias="DB_NAME")
    # Full SQLAlchemy URL; overrides the assembled postgres URL when set
    database_url: str = ""

    db_pool_size: int = 10
    db_max_overflow: int = 5
    create_schema: bool = True
    log_level: str = "info"

    # Runtime
    host: str = "0.0.0.0"
    port: int = 8000
    worker_enabled: bool = True
    poll_interval: float = 30.0

    # LLM
    anthropic_api_key: str = Field("", validation_alias="ANTHROPIC_API_KEY")
    # Dual auth: auth_token (Bearer) takes precedence over api_key (x-api-key)
    anthropic_auth_token: str = Field("", validation_alias="ANTHROPIC_AUTH_TOKEN")
    model: str = "claude-sonnet-4-5-20250514"
    background_model: str = Field(
        default="claude-sonnet-4-5-20250514",
        validation_alias="STEWARD_BACKGROUND_MODEL",
    )
    max_tokens: int = 4096
    api_base_url: str = "https://api.anthropic.com"
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds

    # Work sessions
    max_context_tokens: int = 8000
    max_response_tokens: int = 2000
    compact_after_messages: int = 50
    background_max_steps: int = 10
    foreground_max_steps: int = 5
    knowledge_context_limit: int = 20
    graph_context_nodes: int = 50
    briefing_transcript_chars: int = 2000
    lead_run_interval_hours: int = 24

    # Backoff after a failed background task
    backoff_base_seconds: float = 60.0
    backoff_max_seconds: float = 24 * 60 * 60.0
    backoff_jitter_ratio: float = 0.2

    # Research tools
    brave_search_api_key: str = Field("", validation_alias="BRAVE_SEARCH_API_KEY")
    web_search_daily_limit: int = 100  # Max web searches per day
    web_fetch_max_chars: int = 10000  # Default max chars for webFetch

    @model_validator(mode="after")
    def _validate_engine(self) -> "Settings":
        if self.backoff_base_seconds <= 0:
            raise ValueError("backoff_base_seconds must be > 0")
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError(
                f"backoff_max_seconds ({self.backoff_max_seconds}) must be >= "
                f"backoff_base_seconds ({self.backoff_base_seconds})"
            )
        if not 0.0 <= self.backoff_jitter_ratio <= 1.0:
            raise ValueError("backoff_jitter_ratio must be within [0, 1]")
        if self.background_max_steps < 1 or self.foreground_max_steps < 1:
            raise ValueError("max_steps settings must be >= 1")
        if self.compact_after_messages < 2:
            raise ValueError("compact_after_messages must be >= 2")
        return self

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"
