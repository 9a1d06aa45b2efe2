"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

import logging
from decimal import Context

from pydantic import field_validator
from pydantic_settings import BaseSettings

from .currency import ROUNDING_MODES, math_context
from .logging_config import setup_logging


class LoanScheduleConfig(BaseSettings):
    """Loan schedule engine configuration"""

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Decimal arithmetic
    decimal_precision: int = 12
    rounding_mode: str = "HALF_EVEN"

    # Calculation bounds
    emi_adjustment_max_iterations: int = 3
    holiday_max_search_days: int = 366

    @field_validator("rounding_mode")
    @classmethod
    def validate_rounding_mode(cls, value: str) -> str:
        if value.upper() not in ROUNDING_MODES:
            raise ValueError(f"Unknown rounding mode: {value}")
        return value.upper()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        if not isinstance(logging.getLevelName(value.upper()), int):
            raise ValueError(f"Unknown log level: {value}")
        return value.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, value: str) -> str:
        if value.lower() not in ("json", "text"):
            raise ValueError(f"Unknown log format: {value}")
        return value.lower()

    @field_validator("decimal_precision", "emi_adjustment_max_iterations", "holiday_max_search_days")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError(f"Value must be positive, got {value}")
        return value

    class Config:
        env_prefix = "LOAN_SCHEDULE_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LoanScheduleConfig()


def get_config() -> LoanScheduleConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LoanScheduleConfig:
    """Reload configuration from environment"""
    global config
    config = LoanScheduleConfig()
    return config


def default_math_context() -> Context:
    """Decimal context built from the configured precision and rounding mode"""
    current = get_config()
    return math_context(current.decimal_precision, current.rounding_mode)


def configure_logging(logger_name: str = "loan_schedule") -> logging.Logger:
    """Set up package logging with the configured level and format"""
    current = get_config()
    return setup_logging(current.log_level, logger_name, current.log_format)
