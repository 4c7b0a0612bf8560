"""
Configuration Management Module

Centralized, environment-driven configuration using pydantic-settings.
Every setting can be overridden with a LENDING_* environment variable or a
.env file.
"""

from decimal import Decimal
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LendingConfig(BaseSettings):
    """Lending core configuration"""

    model_config = SettingsConfigDict(
        env_prefix="LENDING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Database configuration
    database_url: str = "sqlite:///lending.db"  # or memory://

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules
    default_currency: str = "BRL"
    default_interest_rate: Decimal = Decimal("10")
    default_late_fee_rate: Decimal = Decimal("1")  # percent per day late
    risk_warning_days: int = 7
    risk_critical_days: int = 30
    cap_interest_payments: bool = True  # INTEREST payments limited to unpaid interest

    # Feature flags
    enable_audit_logging: bool = True

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return value

    @field_validator("risk_critical_days")
    @classmethod
    def _check_thresholds(cls, value: int, info) -> int:
        warning = info.data.get("risk_warning_days")
        if warning is not None and value < warning:
            raise ValueError("risk_critical_days must be >= risk_warning_days")
        return value


# Global configuration instance
config = LendingConfig()


def get_config() -> LendingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LendingConfig:
    """Reload configuration from environment"""
    global config
    config = LendingConfig()
    return config
