"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup; a malformed value fails fast with a clear error message.

Usage:
    from agent_escrow.config import get_settings
    settings = get_settings()
    print(settings.rpc_url)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for Agent Escrow."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Chain (Base Sepolia by default) ---
    rpc_url: str = "https://sepolia.base.org"
    chain_id: int = 84532
    private_key: str = ""
    rpc_timeout_seconds: int = 120

    # --- Contracts ---
    escrow_address: str = ""
    score_address: str = ""
    resolver_address: str = ""
    token_address: str = ""

    # --- Gas ---
    gas_strategy: Literal["self-funded", "erc20", "auto"] = "auto"
    min_gas_balance_wei: int = 10**16  # 0.01 of the native asset

    # --- Marketplace API ---
    api_base_url: str = "https://abbababa.com"
    api_key: str = ""
    api_timeout_seconds: float = 30.0

    # --- Webhooks ---
    webhook_path: str = "/webhook"
    webhook_signing_secret: str = ""
    webhook_signature_header: str = "X-Abbababa-Signature"
    webhook_tolerance_seconds: int = 300

    # --- Purchase polling ---
    poll_interval_seconds: float = 5.0
    poll_statuses: str = "escrowed,pending"
    poll_limit: int = 50

    # --- MCP ---
    mcp_transport: str = "streamable-http"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def poll_status_list(self) -> list[str]:
        """Parse comma-separated poll statuses into an ordered list."""
        if not self.poll_statuses:
            return []
        return [s.strip() for s in self.poll_statuses.split(",") if s.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
