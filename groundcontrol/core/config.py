"""Application configuration using Pydantic Settings"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid at startup"""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "sqlite:///./data/groundcontrol.db"

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # FCM Configuration
    GOOGLE_PROJECT_ID: Optional[str] = None  # Firebase project ID
    GOOGLE_KEY_FILE: Optional[str] = None  # Path to service account JSON

    # APNS Configuration
    APNS_KEY_FILE: Optional[str] = None  # Path to .p8 auth key file
    APNS_P8: Optional[str] = None  # Hex-encoded .p8 contents, alternative to APNS_KEY_FILE
    APNS_KEY_ID: Optional[str] = None  # 10-character key identifier
    APNS_TEAM_ID: Optional[str] = None  # 10-character team identifier
    APNS_TOPIC: Optional[str] = None  # App bundle ID
    APNS_USE_SANDBOX: bool = False

    # Delivery
    PUSH_REQUEST_TIMEOUT_SECONDS: float = 5.0
    PUSH_DISPATCH_CONCURRENCY: int = 50

    @field_validator('APNS_KEY_ID', 'APNS_TEAM_ID', mode='after')
    @classmethod
    def normalize_apple_identifier(cls, v: Optional[str]) -> Optional[str]:
        """Apple identifiers are case-insensitive; store them uppercased."""
        if v is not None:
            v = v.strip().upper()
        return v or None

    @field_validator('PUSH_REQUEST_TIMEOUT_SECONDS', mode='after')
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("PUSH_REQUEST_TIMEOUT_SECONDS must be positive")
        return v

    def missing_push_settings(self) -> List[str]:
        """
        List the push-related variables that are absent.

        Returns:
            Names of missing environment variables (empty when complete)
        """
        missing = []
        if not self.GOOGLE_PROJECT_ID:
            missing.append("GOOGLE_PROJECT_ID")
        if not self.GOOGLE_KEY_FILE:
            missing.append("GOOGLE_KEY_FILE")
        elif not Path(self.GOOGLE_KEY_FILE).exists():
            missing.append(f"GOOGLE_KEY_FILE ({self.GOOGLE_KEY_FILE} not found)")
        if not self.APNS_P8 and not self.APNS_KEY_FILE:
            missing.append("APNS_P8 or APNS_KEY_FILE")
        elif not self.APNS_P8 and not Path(self.APNS_KEY_FILE).exists():
            missing.append(f"APNS_KEY_FILE ({self.APNS_KEY_FILE} not found)")
        if not self.APNS_KEY_ID:
            missing.append("APNS_KEY_ID")
        if not self.APNS_TEAM_ID:
            missing.append("APNS_TEAM_ID")
        if not self.APNS_TOPIC:
            missing.append("APNS_TOPIC")
        return missing

    def require_push_config(self) -> None:
        """
        Fail fast when push delivery cannot be configured.

        Raises:
            ConfigurationError: listing every missing variable
        """
        missing = self.missing_push_settings()
        if missing:
            raise ConfigurationError(
                f"not all push settings are set: {', '.join(missing)}",
                missing=missing,
            )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, constructed once at startup."""
    return Settings()
