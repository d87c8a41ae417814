"""
Configuration module using Pydantic for type validation and centralized settings management.
Implements a singleton pattern to ensure consistent configuration across the application.
"""

import secrets
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SUPPORTED_CURRENCIES = {"USD", "EUR", "GBP", "CHF", "CAD", "AUD"}


class DatabaseSettings(BaseSettings):
    """Database connection settings."""
    
    POSTGRES_SERVER: str = Field(
        default="localhost", 
        description="PostgreSQL server hostname"
    )
    POSTGRES_PORT: str = Field(
        default="5432", 
        description="PostgreSQL server port"
    )
    POSTGRES_USER: str = Field(
        default="postgres", 
        description="PostgreSQL username"
    )
    POSTGRES_PASSWORD: str = Field(
        default="postgres", 
        description="PostgreSQL password"
    )
    POSTGRES_DB: str = Field(
        default="goldsphere", 
        description="PostgreSQL database name"
    )
    POSTGRES_MIN_CONNECTIONS: int = Field(
        default=5, 
        description="Minimum PostgreSQL connections in pool"
    )
    POSTGRES_MAX_CONNECTIONS: int = Field(
        default=20, 
        description="Maximum PostgreSQL connections in pool"
    )
    POSTGRES_STATEMENT_TIMEOUT: int = Field(
        default=30000, 
        description="Statement timeout in ms"
    )
    
    # Explicit override; assembled from the parts above when empty
    POSTGRES_URI: Optional[str] = Field(default=None, validate_default=True)

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        case_sensitive=True,
        extra="allow"
    )

    @field_validator("POSTGRES_URI", mode="after")
    def assemble_postgres_uri(cls, v: Optional[str], info) -> Any:
        """Assembles PostgreSQL URI if not provided."""
        if isinstance(v, str) and v:
            return v
            
        values = info.data
        user = values.get("POSTGRES_USER", "")
        password = values.get("POSTGRES_PASSWORD", "")
        server = values.get("POSTGRES_SERVER", "localhost")
        port = values.get("POSTGRES_PORT", "5432")
        db = values.get("POSTGRES_DB", "")
        
        return f"postgresql+psycopg2://{user}:{password}@{server}:{port}/{db}"


class SecuritySettings(BaseSettings):
    """Security-related configuration settings."""
    
    SECRET_KEY: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        description="Secret key for JWT verification"
    )
    ALGORITHM: str = Field(
        default="HS256", 
        description="Algorithm used for JWT token encoding/decoding"
    )
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(
        default=30, 
        description="JWT access token expiry time in minutes"
    )
    CORS_ORIGINS: List[str] = Field(
        default=["*"], 
        description="List of origins for CORS"
    )
    
    model_config = SettingsConfigDict(
        env_prefix="SECURITY_",
        case_sensitive=True,
        extra="allow"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    def parse_cors_origins(cls, v: Any) -> List[str]:
        """Convert comma-separated string to list if needed."""
        if isinstance(v, str):
            if not v:
                return []
            return [origin.strip() for origin in v.split(",")]
        return v


class OrderSettings(BaseSettings):
    """Order pricing and lifecycle settings."""

    TAX_RATE: Decimal = Field(
        default=Decimal("0.0825"),
        ge=0,
        description="Tax rate applied to the order subtotal"
    )
    DEFAULT_CURRENCY: str = Field(
        default="CHF",
        description="Currency used when an order does not specify one"
    )
    CONFLICT_RETRIES: int = Field(
        default=1,
        ge=0,
        description="Automatic retries of an advance after a serialization conflict"
    )
    CONFLICT_RETRY_DELAY: float = Field(
        default=0.05,
        ge=0,
        description="Delay in seconds before retrying a conflicted advance"
    )

    model_config = SettingsConfigDict(
        env_prefix="ORDERS_",
        case_sensitive=True,
        extra="allow"
    )

    @field_validator("DEFAULT_CURRENCY")
    def validate_currency(cls, v: str) -> str:
        """Validates the default currency against the supported set."""
        code = v.upper()
        if code not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Currency must be one of {sorted(SUPPORTED_CURRENCIES)}")
        return code


class Settings(BaseSettings):
    """Main application settings that combine all setting categories."""
    
    APP_NAME: str = Field(
        default="GoldSphere Order Service", 
        description="Application name"
    )
    APP_VERSION: str = Field(
        default="0.1.0", 
        description="Application version"
    )
    DEBUG: bool = Field(
        default=False, 
        description="Enable debug mode"
    )
    ENV: str = Field(
        default="development", 
        description="Environment (development, staging, production, testing)"
    )
    API_PREFIX: str = Field(
        default="/api/v1", 
        description="API route prefix"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Root logging level"
    )
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=True,
        extra="allow"
    )

    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    orders: OrderSettings = Field(default_factory=OrderSettings)
    
    @field_validator("ENV")
    def validate_env(cls, v: str) -> str:
        """Validates environment value."""
        allowed = {"development", "staging", "production", "testing"}
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v.lower()

    @field_validator("LOG_LEVEL")
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


_settings_instance = None

def get_settings() -> Settings:
    """
    Returns singleton instance of application settings.
    Uses module-level variable for singleton pattern to avoid issues with circular imports.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings_instance
    _settings_instance = None
