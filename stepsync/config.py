"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "stepsync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production
    host_domain: str = "http://localhost:8080"  # public base URL for 1self callbacks

    # --- Database ---
    database_url: str = "postgresql://localhost:5432/stepsync"
    database_pool_min: int = 2
    database_pool_max: int = 10

    # --- Google Fit OAuth ---
    google_client_id: str = ""
    google_client_secret: str = ""  # server-side only
    google_redirect_url: str = "http://localhost:8080/authRedirect"

    # --- 1self ---
    oneself_api_endpoint: str = "https://api.1self.co"
    oneself_app_id: str = ""
    oneself_app_secret: str = ""

    # --- Sync ---
    sync_config_path: str | None = None  # override bundled sync_config.yaml
    sync_max_concurrent: int = 5
    http_timeout_seconds: float = 30.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
