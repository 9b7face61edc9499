"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class BankConfig(BaseSettings):
    """BAC banking engine configuration"""

    model_config = SettingsConfigDict(
        env_prefix="BAC_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "bac_banking.db"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    # Business rules configuration
    currency: str = "BWP"
    savings_interest_rate: str = "0.025"
    savings_minimum_balance: str = "500.00"
    savings_interest_period_days: int = 30
    investment_interest_rate: str = "0.065"
    investment_minimum_balance: str = "500.00"
    investment_minimum_initial_deposit: str = "500.00"
    investment_interest_period_days: int = 90
    investment_notice_period_days: int = 30

    # Interest sweep configuration
    interest_sweep_interval_seconds: float = 86400.0  # Once per day
    interest_initial_delay_seconds: float = 0.0

    # Audit configuration
    audit_retention_days: int = 365
    system_actor_id: str = "SYSTEM"

    # Security configuration
    password_min_length: int = 8


# Global configuration instance
config = BankConfig()


def get_config() -> BankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankConfig:
    """Reload configuration from environment"""
    global config
    config = BankConfig()
    return config
