"""Application configuration via environment variables."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./payment_engine.db"
    log_level: str = "INFO"

    # Authorization protocol limits
    max_interaction_rounds: int = 10
    interaction_timeout_seconds: float = 600.0

    # Redirect callbacks: <callback_scheme>://...?<callback_token_param>=<token>
    callback_scheme: str = "payments"
    callback_token_param: str = "token"

    # Host rendering context; None means unknown (modal-standalone)
    inside_navigation: Optional[bool] = None

    api_event_wait_seconds: float = 5.0
    api_finished_log_limit: int = 1000  # Finished submissions kept viewable over HTTP

    mock_failure_rate: float = 0.0
    mock_latency_ms: int = 100  # Simulated gateway latency

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
