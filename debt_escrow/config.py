"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class EscrowConfig(BaseSettings):
    """Debt escrow ledger configuration"""
    
    # Storage configuration
    database_url: str = "sqlite:///debt_escrow.db"  # Default SQLite
    
    # Payment rules
    payment_window_seconds: int = 3 * 24 * 3600  # Tolerance after next_payment
    amount_precision: int = 8  # Decimal places kept on stored amounts
    
    # Identity service configuration
    identity_service_url: str = ""  # Empty = in-process registry
    identity_service_timeout: float = 2.0
    identity_service_api_key: str = ""
    
    # Admin endpoints (participant registration, deposits, consent)
    admin_api_key: str = ""  # Empty = admin endpoints open
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8095
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    class Config:
        env_prefix = "ESCROW_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = EscrowConfig()


def get_config() -> EscrowConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> EscrowConfig:
    """Reload configuration from environment"""
    global config
    config = EscrowConfig()
    return config
