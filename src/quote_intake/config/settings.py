from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application Configuration
    app_name: str = "Quote Intake Service"
    app_version: str = "0.1.0"
    debug: bool = False

    # API Configuration
    api_host: str = "127.0.0.1"
    api_port: int = 8010

    # Durable store (one slot holding the serialized intake)
    storage_dir: str = "storage"
    storage_key: str = "quote_intake_v3"
    legacy_storage_keys: List[str] = ["quote_intake_v2"]

    # File save/open
    file_access_enabled: bool = True
    workspace_dir: str = "intakes"

    # Autosave
    autosave_debounce_seconds: float = 0.15  # 150ms quiet period

    # VIN decoding (NHTSA vPIC)
    vin_decoder_url: str = "https://vpic.nhtsa.dot.gov/api/vehicles/DecodeVinValuesExtended"
    vin_decoder_timeout: float = 10.0

    # Logging Configuration
    log_level: str = "INFO"
    log_format: str = "console"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
