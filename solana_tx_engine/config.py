"""
Configuration Module for the Solana transaction engine

This module provides configuration management using Pydantic v2 BaseSettings.
All settings are loaded from environment variables with validation and type safety.

Usage:
    from solana_tx_engine.config import get_settings
    print(get_settings().submission.mode)
"""

from __future__ import annotations

import sys
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List, Optional

from pydantic import (
    AnyHttpUrl,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


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


class Cluster(str, Enum):
    """Solana cluster names, as used by the explorer."""
    MAINNET = "mainnet-beta"
    DEVNET = "devnet"
    TESTNET = "testnet"


class BroadcastMode(str, Enum):
    """How signed transactions are pushed to the network."""
    SINGLE_SHOT = "single_shot"
    SPAM = "spam"
    RELAY = "relay"


def _split_csv(v: Any) -> List[str]:
    if v is None:
        return []
    if isinstance(v, (list, tuple, set)):
        return [str(item).strip() for item in v if str(item).strip()]
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return []


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

    cluster: Cluster = Field(
        default=Cluster.MAINNET,
        description="Cluster name used for explorer links",
    )

    rpc_url: AnyHttpUrl = Field(
        default="https://api.mainnet-beta.solana.com",
        description="Primary RPC endpoint URL (reads, status polls, simulation)",
    )

    send_endpoint: Optional[AnyHttpUrl] = Field(
        default=None,
        description="Dedicated endpoint for sendTransaction (defaults to rpc_url)",
    )

    commitment: str = Field(
        default="confirmed",
        pattern="^(processed|confirmed|finalized)$",
        description="Commitment used for blockhash and account reads",
    )

    timeout: int = Field(
        default=30,
        ge=5,
        le=120,
        description="RPC request timeout in seconds",
    )

    @field_validator("send_endpoint", mode="before")
    @classmethod
    def validate_url(cls, v: Any) -> Any:
        """Treat an empty string as unset."""
        if v is None or v == "":
            return None
        return v


# =============================================================================
# SUBMISSION CONFIGURATION
# =============================================================================

class SubmissionSettings(BaseConfig):
    """Broadcast and confirmation behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="SUBMIT_",
        env_file=".env",
        extra="ignore",
    )

    mode: BroadcastMode = Field(
        default=BroadcastMode.SINGLE_SHOT,
        description="single_shot, spam or relay",
    )

    precheck_in_spam: bool = Field(
        default=False,
        description="Simulate before entering the resend loop",
    )

    poll_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Status queries per resend in spam mode",
    )

    poll_interval: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=10.0,
        description="Seconds between status queries (None = 0.2 for finalized, 0.4 otherwise)",
    )

    relay_poll_interval: float = Field(
        default=0.5,
        ge=0.0,
        le=10.0,
        description="Seconds between resends in relay mode",
    )

    skip_preflight: bool = Field(
        default=False,
        description="Skip preflight on single-shot sends",
    )

    max_retries: Optional[int] = Field(
        default=None,
        ge=0,
        le=100,
        description="Node-side rebroadcast count for single-shot sends (None = node default)",
    )

    preflight_commitment: str = Field(
        default="processed",
        pattern="^(processed|confirmed|finalized)$",
        description="Preflight commitment for single-shot sends",
    )

    read_only: bool = Field(
        default=False,
        description="Never send; every submission is simulated instead",
    )


# =============================================================================
# RELAY CONFIGURATION
# =============================================================================

class RelaySettings(BaseConfig):
    """Out-of-band relay (block engine) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        extra="ignore",
    )

    url: AnyHttpUrl = Field(
        default="https://mainnet.block-engine.jito.wtf",
        description="Relay base URL",
    )

    api_key: Optional[str] = Field(
        default=None,
        description="Bearer token for the relay, if it requires one",
    )

    tip_lamports: int = Field(
        default=0,
        ge=0,
        le=1_000_000_000,
        description="Tip transferred to the relay tip account",
    )

    priority_fee_micro_lamports: Optional[int] = Field(
        default=None,
        ge=0,
        description="Compute unit price added to relay transactions",
    )

    timeout: int = Field(
        default=10,
        ge=1,
        le=120,
        description="Relay HTTP timeout in seconds",
    )


# =============================================================================
# PROGRAM CONFIGURATION
# =============================================================================

class ProgramSettings(BaseConfig):
    """On-chain programs whose errors are decoded and lookup tables to load."""

    model_config = SettingsConfigDict(
        env_prefix="PROGRAM_",
        env_file=".env",
        extra="ignore",
    )

    program_ids: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        description="Program ids whose custom errors are decoded from logs",
    )

    lookup_tables: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        description="Address lookup table accounts loaded at startup",
    )

    @field_validator("program_ids", "lookup_tables", mode="before")
    @classmethod
    def parse_addresses(cls, v: Any) -> List[str]:
        """Parse comma-separated addresses."""
        return _split_csv(v)


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
        default=Path("logs/tx_engine.log"),
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
    Engine settings aggregating all configuration sections.

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
        default="solana-tx-engine",
        description="Application name",
    )

    solana: SolanaRPCSettings = Field(default_factory=SolanaRPCSettings)
    submission: SubmissionSettings = Field(default_factory=SubmissionSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)
    programs: ProgramSettings = Field(default_factory=ProgramSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="after")
    def validate_relay_mode(self) -> "Settings":
        """Relay mode needs a tip, the relay drops untipped transactions."""
        if self.submission.mode == BroadcastMode.RELAY and self.relay.tip_lamports <= 0:
            raise ValueError("relay.tip_lamports must be > 0 when submission.mode is 'relay'")
        return self

    @property
    def send_url(self) -> str:
        """Endpoint used for sendTransaction."""
        return str(self.solana.send_endpoint or self.solana.rpc_url)

    def to_safe_dict(self) -> dict[str, Any]:
        """Export settings without any secret values."""
        def remove_secrets(d: dict) -> dict:
            result = {}
            for k, v in d.items():
                if isinstance(v, dict):
                    result[k] = remove_secrets(v)
                elif "key" in k.lower() and v:
                    result[k] = "[REDACTED]"
                else:
                    result[k] = v
            return result

        return remove_secrets(self.model_dump(mode="json"))


# =============================================================================
# SINGLETON & CACHING
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Cached settings singleton
    """
    return Settings()


def reload_settings() -> Settings:
    """
    Clear settings cache and reload from environment.

    Returns:
        Settings: Fresh settings instance
    """
    get_settings.cache_clear()
    return get_settings()


# =============================================================================
# CLI UTILITIES
# =============================================================================

def print_settings_summary() -> None:
    """Print a summary of current settings."""
    settings = get_settings()
    data = settings.to_safe_dict()

    print("=" * 60)
    print(f"  {settings.app_name}")
    print(f"  Mode: {settings.submission.mode.value}")
    print("=" * 60)

    sections = [
        ("Solana RPC", "solana"),
        ("Submission", "submission"),
        ("Relay", "relay"),
        ("Programs", "programs"),
        ("Logging", "logging"),
    ]

    for title, key in sections:
        print(f"\n{title}:")
        print("-" * 40)
        for k, v in data.get(key, {}).items():
            if isinstance(v, list):
                v = v[:3]
            print(f"  {k}: {v}")


def validate_settings() -> tuple[bool, list[str]]:
    """
    Validate all settings and return status with any errors.

    Returns:
        Tuple of (is_valid, error_messages)
    """
    errors = []

    try:
        settings = Settings()

        if settings.submission.read_only and settings.submission.mode == BroadcastMode.RELAY:
            errors.append("Relay mode has no effect on a read-only engine")

        if settings.submission.mode == BroadcastMode.SPAM and settings.submission.poll_interval == 0:
            errors.append("poll_interval of 0 in spam mode hammers the RPC node")

    except Exception as e:
        errors.append(f"Settings validation failed: {str(e)}")

    return len(errors) == 0, errors


def generate_env_template() -> str:
    """Generate a .env template with all available settings."""
    return """# =============================================================================
# solana-tx-engine configuration
# =============================================================================

# -----------------------------------------------------------------------------
# Solana RPC
# -----------------------------------------------------------------------------
SOLANA_CLUSTER=mainnet-beta
SOLANA_RPC_URL=https://api.mainnet-beta.solana.com
# SOLANA_SEND_ENDPOINT=
SOLANA_COMMITMENT=confirmed
SOLANA_TIMEOUT=30

# -----------------------------------------------------------------------------
# Submission
# -----------------------------------------------------------------------------
SUBMIT_MODE=single_shot
SUBMIT_PRECHECK_IN_SPAM=false
SUBMIT_POLL_ATTEMPTS=5
# SUBMIT_POLL_INTERVAL=0.4
SUBMIT_RELAY_POLL_INTERVAL=0.5
SUBMIT_SKIP_PREFLIGHT=false
# SUBMIT_MAX_RETRIES=3
SUBMIT_PREFLIGHT_COMMITMENT=processed
SUBMIT_READ_ONLY=false

# -----------------------------------------------------------------------------
# Relay
# -----------------------------------------------------------------------------
RELAY_URL=https://mainnet.block-engine.jito.wtf
# RELAY_API_KEY=
RELAY_TIP_LAMPORTS=0
# RELAY_PRIORITY_FEE_MICRO_LAMPORTS=10000
RELAY_TIMEOUT=10

# -----------------------------------------------------------------------------
# Programs
# -----------------------------------------------------------------------------
PROGRAM_PROGRAM_IDS=
PROGRAM_LOOKUP_TABLES=

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
LOG_LEVEL=INFO
LOG_FILE_ENABLED=false
LOG_FILE_PATH=logs/tx_engine.log
"""


__all__ = [
    "Settings",
    "SolanaRPCSettings",
    "SubmissionSettings",
    "RelaySettings",
    "ProgramSettings",
    "LoggingSettings",
    "LogLevel",
    "Cluster",
    "BroadcastMode",
    "get_settings",
    "reload_settings",
    "validate_settings",
    "print_settings_summary",
    "generate_env_template",
]


# =============================================================================
# CLI ENTRYPOINT
# =============================================================================

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Configuration management CLI")
    parser.add_argument("--show", action="store_true", help="Show current settings")
    parser.add_argument("--validate", action="store_true", help="Validate settings")
    parser.add_argument("--generate-env", action="store_true", help="Generate .env template")

    args = parser.parse_args()

    if args.generate_env:
        print(generate_env_template())
    elif args.validate:
        is_valid, errors = validate_settings()
        if is_valid:
            print("[PASS] Settings validation passed")
        else:
            print("[FAIL] Settings validation failed:")
            for error in errors:
                print(f"  - {error}")
            sys.exit(1)
    elif args.show:
        print_settings_summary()
    else:
        parser.print_help()
