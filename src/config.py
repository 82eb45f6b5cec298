"""Application configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Wellness Reconciler"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    timezone: str = "UTC"  # IANA name used for day bucketing

    # --- Storage ---
    data_dir: Path = Path("data")
    reconcile_config_path: Path | None = None  # defaults to the bundled YAML

    # --- Trackers ---
    health_export_path: Path | None = None
    wearable_export_path: Path | None = None  # relay export, same file format

    # --- Activity API ---
    activity_feed_url: str = ""
    activity_feed_token: str = ""  # bearer token, obtained outside this app
    athlete_id: str = ""

    # --- Athlete calibration ---
    ftp: float | None = None
    lthr: float | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def metrics_store_path(self) -> Path:
        return self.data_dir / "daily_metrics.json"

    @property
    def training_store_path(self) -> Path:
        return self.data_dir / "training_load.json"

    @property
    def legacy_store_path(self) -> Path:
        return self.data_dir / "legacy_store.json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
