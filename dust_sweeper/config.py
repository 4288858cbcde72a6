"""
Configuration Module for the Dust Sweeper

This module provides configuration management using Pydantic v2 BaseSettings.
All settings are loaded from environment variables (or a .env file) with
validation and type safety.

Usage:
    from dust_sweeper.config import get_settings
    settings = get_settings()
    print(settings.sweep.min_dust_value_sol)
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List, Optional

from pydantic import (
    AnyHttpUrl,
    Field,
    SecretStr,
    field_validator,
)
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .validators import validate_solana_address_safe


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

# System Program address, a valid placeholder when no fee account is configured
DEFAULT_FEE_ACCOUNT = "11111111111111111111111111111111"

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_JUPITER_API_URL = "https://api.jup.ag/swap/v1"
DEFAULT_TOKEN_LIST_URLS = [
    "https://token.jup.ag/strict",
    "https://token.jup.ag/all",
]


# =============================================================================
# ENUMS
# =============================================================================

class LogLevel(str, Enum):
    """Logging level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# =============================================================================
# BASE CONFIGURATION
# =============================================================================

class BaseConfig(BaseSettings):
    """Base configuration with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


# =============================================================================
# SOLANA RPC CONFIGURATION
# =============================================================================

class SolanaRPCSettings(BaseConfig):
    """Solana RPC connection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SOLANA_",
        env_file=".env",
        extra="ignore",
    )

    rpc_url: AnyHttpUrl = Field(
        default=DEFAULT_RPC_URL,
        description="RPC endpoint used for balances, broadcast and confirmation",
    )

    commitment: str = Field(
        default="confirmed",
        pattern="^(processed|confirmed|finalized)$",
        description="Commitment level for reads and confirmation",
    )

    timeout: int = Field(
        default=30,
        ge=5,
        le=120,
        description="RPC request timeout in seconds",
    )

    send_max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries the RPC node performs when forwarding a transaction",
    )


# =============================================================================
# JUPITER CONFIGURATION
# =============================================================================

class JupiterSettings(BaseConfig):
    """Jupiter aggregator API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="JUPITER_",
        env_file=".env",
        extra="ignore",
    )

    api_url: AnyHttpUrl = Field(
        default=DEFAULT_JUPITER_API_URL,
        description="Jupiter quote/swap API base URL",
    )

    api_key: Optional[SecretStr] = Field(
        default=None,
        description="Optional API key, sent as x-api-key",
    )

    token_list_urls: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_TOKEN_LIST_URLS),
        description="Token lists consulted for metadata, highest priority first",
    )

    slippage_bps: int = Field(
        default=50,
        ge=1,
        le=5000,
        description="Slippage tolerance in basis points",
    )

    platform_fee_bps: int = Field(
        default=100,
        ge=0,
        le=10000,
        description="Platform fee in basis points (100 = 1%)",
    )

    min_request_interval: float = Field(
        default=1.1,
        ge=0.0,
        le=60.0,
        description="Minimum seconds between Jupiter API calls",
    )

    timeout: int = Field(
        default=30,
        ge=5,
        le=120,
        description="API request timeout in seconds",
    )

    @field_validator("api_key", mode="before")
    @classmethod
    def empty_key_is_none(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v

    @field_validator("token_list_urls", mode="before")
    @classmethod
    def parse_urls(cls, v: Any) -> Any:
        """Parse comma-separated URLs from environment variable."""
        if isinstance(v, str):
            return [url.strip() for url in v.split(",") if url.strip()]
        return v


# =============================================================================
# SWEEP CONFIGURATION
# =============================================================================

class SweepSettings(BaseConfig):
    """Dust thresholds and fee collection."""

    model_config = SettingsConfigDict(
        env_prefix="SWEEP_",
        env_file=".env",
        extra="ignore",
    )

    fee_account: str = Field(
        default=DEFAULT_FEE_ACCOUNT,
        description="Wallet collecting the platform fee",
    )

    min_dust_value_sol: float = Field(
        default=0.002,
        ge=0.0,
        description="Assets quoted below this many SOL are not listed",
    )

    max_batch_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Advisory cap on assets per sweep",
    )

    @field_validator("fee_account", mode="before")
    @classmethod
    def fallback_fee_account(cls, v: Any) -> str:
        """Fall back to the placeholder when the configured account is unusable."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_FEE_ACCOUNT
        result = validate_solana_address_safe(v, "fee_account")
        if not result.is_valid:
            logger.warning(f"Invalid SWEEP_FEE_ACCOUNT ({result.error}), using default")
            return DEFAULT_FEE_ACCOUNT
        return result.value


# =============================================================================
# CACHE CONFIGURATION
# =============================================================================

class CacheSettings(BaseConfig):
    """Persistent quote and asset-list caches."""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        extra="ignore",
    )

    enabled: bool = Field(
        default=True,
        description="Persist caches to disk (memory only when disabled)",
    )

    directory: Path = Field(
        default=Path(".cache/dust_sweeper"),
        description="Directory holding the cache JSON files",
    )

    quote_ttl: float = Field(
        default=1800,
        gt=0,
        description="Quote cache time-to-live in seconds",
    )

    token_ttl: float = Field(
        default=1800,
        gt=0,
        description="Wallet asset-list cache time-to-live in seconds",
    )


# =============================================================================
# WALLET CONFIGURATION
# =============================================================================

class WalletSettings(BaseConfig):
    """Local keypair used by the command-line signer."""

    model_config = SettingsConfigDict(
        env_prefix="WALLET_",
        env_file=".env",
        extra="ignore",
    )

    private_key: Optional[SecretStr] = Field(
        default=None,
        description="Base58 encoded secret key",
    )


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

class LoggingSettings(BaseConfig):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )

    format: str = Field(
        default="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        description="Log message format",
    )

    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log date format",
    )

    file_enabled: bool = Field(
        default=False,
        description="Enable file logging",
    )

    file_path: Path = Field(
        default=Path("logs/dust_sweeper.log"),
        description="Log file path",
    )

    file_max_bytes: int = Field(
        default=10 * 1024 * 1024,  # 10 MB
        ge=1024,
        description="Max log file size in bytes",
    )

    file_backup_count: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Number of backup log files",
    )


# =============================================================================
# APPLICATION SETTINGS (MAIN)
# =============================================================================

class Settings(BaseConfig):
    """
    Main application settings aggregating all configuration sections.

    Usage:
        settings = Settings()
        # or
        settings = get_settings()
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(
        default="Dust Sweeper",
        description="Application name",
    )

    solana: SolanaRPCSettings = Field(default_factory=SolanaRPCSettings)
    jupiter: JupiterSettings = Field(default_factory=JupiterSettings)
    sweep: SweepSettings = Field(default_factory=SweepSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    wallet: WalletSettings = Field(default_factory=WalletSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def mask_secrets(self) -> dict[str, Any]:
        """
        Return settings dict with sensitive values masked.
        Safe for logging and debugging.
        """
        def mask_value(v: Any) -> Any:
            if isinstance(v, SecretStr):
                secret = v.get_secret_value()
                if len(secret) > 8:
                    return f"{secret[:4]}...{secret[-4:]}"
                return "***"
            elif isinstance(v, dict):
                return {k: mask_value(val) for k, val in v.items()}
            elif isinstance(v, (list, tuple)):
                return type(v)(mask_value(item) for item in v)
            return v

        return mask_value(self.model_dump())


# =============================================================================
# SINGLETON & CACHING
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Clear settings cache and reload from environment."""
    get_settings.cache_clear()
    return get_settings()


__all__ = [
    "Settings",
    "SolanaRPCSettings",
    "JupiterSettings",
    "SweepSettings",
    "CacheSettings",
    "WalletSettings",
    "LoggingSettings",
    "LogLevel",
    "DEFAULT_FEE_ACCOUNT",
    "get_settings",
    "reload_settings",
]
