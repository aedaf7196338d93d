"""
Configuration management for the rental pricing service.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = "development"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Frontend URL (for CORS)
    frontend_url: str = "http://localhost:8081"

    # Database (SQLite for development, PostgreSQL for production)
    database_url: str = "sqlite:///./rental_pricing.db"
    database_echo: bool = False

    # Authoritative pricing backend used by the client
    pricing_api_url: str = "http://localhost:8000"
    pricing_api_timeout: float = 10.0

    # Display currency for formatted breakdowns
    currency_symbol: str = "$"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
