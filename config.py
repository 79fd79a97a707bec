"""Configuration management via pydantic-settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Firestore
    firestore_project_id: str | None = None
    firestore_api_key: str | None = None
    firestore_collection: str = "listings"
    firestore_order_field: str = "timestamp"
    firestore_base_url: str = "https://firestore.googleapis.com/v1"
    http_timeout_seconds: float = 30.0

    # Fetching
    fetch_timeout_seconds: float = 15.0
    max_fetch_attempts: int = 3
    retry_delay_seconds: float = 0.0

    # Listings
    page_size: int = 20
    recent_days: int = 7

    # Map
    debounce_ms: int = 300
    clustering_enabled: bool = True
    cluster_threshold: int = 50
    refetch_on_viewport: bool = False

    # Watch mode
    watch_interval_minutes: int = 15

    # Logging
    log_level: str = "INFO"
    log_dir: Path = Field(default=Path("./logs"))

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000

    @property
    def firestore_enabled(self) -> bool:
        return bool(self.firestore_project_id)


settings = Settings()
