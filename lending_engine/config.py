"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional


class EngineConfig(BaseSettings):
    """Lending engine configuration"""

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Money and calendar conventions
    schedule_tolerance: str = "0.01"  # Max drift between schedule sum and total repayable
    days_in_year: int = 365

    # Allocation defaults
    default_allocation_order: str = "penalty,fee,interest,principal"

    # Business limits
    max_principal: str = "10000000.00"
    max_term_days: int = 7300  # 20 years
    max_annual_rate_percent: str = "50"
    allowed_payment_methods: str = "bank_transfer,cash,check,online,mobile_money"
    max_reference_length: int = 50

    # Batch processing
    sweep_max_workers: int = 4

    class Config:
        env_prefix = "LENDING_"
        env_file = ".env"
        case_sensitive = False

    @property
    def allocation_order(self) -> List[str]:
        """Default waterfall as a list of bucket names"""
        return [item.strip() for item in self.default_allocation_order.split(",") if item.strip()]

    @property
    def payment_methods(self) -> List[str]:
        """Accepted payment method names"""
        return [item.strip() for item in self.allowed_payment_methods.split(",") if item.strip()]


# Global configuration instance
config = EngineConfig()


def get_config() -> EngineConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> EngineConfig:
    """Reload configuration from environment"""
    global config
    config = EngineConfig()
    return config
