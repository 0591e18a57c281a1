"""
Configuration management using Pydantic settings.
Loads environment variables for the Vinoshipper API, retry policy, sync throttling and credential storage.
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Vinoshipper API Configuration
    vinoshipper_api_base_url: str = "https://www.vinoshipper.com/api"

    # Application Configuration
    app_environment: str = "development"
    log_level: str = "INFO"

    # Retry Configuration (defaults match RetryPresets.DEFAULT)
    max_retry_attempts: int = 3
    retry_initial_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 10.0
    retry_backoff_multiplier: float = 2.0
    retry_status_codes: List[int] = [429, 500, 502, 503, 504]

    # Sync Configuration
    sync_item_delay_seconds: float = 0.6  # Courtesy delay between items in a sync pass
    account_check_delay_seconds: float = 0.3  # Delay between accounts in a cross-account scan
    low_stock_threshold: int = 10

    # Credential Storage
    keyring_service: str = "vinesync"
    credential_fallback_path: str = ".vinesync/credentials.json"
    credential_encryption_key: Optional[str] = None  # 44-char Fernet key for the fallback file

    # Inventory Cache
    inventory_cache_dir: str = ".vinesync/cache"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
