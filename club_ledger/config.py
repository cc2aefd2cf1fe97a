"""
Configuration Management Module

Centralized configuration using pydantic-settings. Every setting can be
overridden with a ``CLUB_``-prefixed environment variable or a ``.env`` file.
"""

from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .currency import Currency


OVERPAYMENT_POLICIES = ("absorb", "reject")


class ClubConfig(BaseSettings):
    """Club ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="CLUB_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    club_name: str = "Millionaires Club"

    # Storage: memory://, sqlite:///path.db or postgresql://...
    database_url: str = "sqlite:///club_ledger.db"

    # Ledger rules
    currency: str = "USD"
    overpayment_policy: str = "absorb"  # absorb or reject

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 4000
    cors_origins: List[str] = ["*"]

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None

    enable_audit_logging: bool = True

    @field_validator("currency")
    @classmethod
    def _known_currency(cls, value: str) -> str:
        return Currency.from_code(value).code

    @field_validator("overpayment_policy")
    @classmethod
    def _known_policy(cls, value: str) -> str:
        value = value.lower()
        if value not in OVERPAYMENT_POLICIES:
            raise ValueError(f"overpayment_policy must be one of {', '.join(OVERPAYMENT_POLICIES)}")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return value

    @property
    def club_currency(self) -> Currency:
        return Currency.from_code(self.currency)


config = ClubConfig()


def get_config() -> ClubConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> ClubConfig:
    """Reload configuration from environment"""
    global config
    config = ClubConfig()
    return config
