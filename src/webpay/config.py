"""Application configuration using pydantic-settings.

Controls the Solana network the wallet is expected to use, how deep links
are addressed, and where security events are forwarded.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_NETWORK = "mainnet-beta"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug logging")

    # ======================
    # Solana
    # ======================
    solana_network: str = Field(
        default=DEFAULT_NETWORK, description="Cluster the wallet should be connected to"
    )
    solana_rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com", description="Solana RPC URL"
    )
    explorer_host: str = Field(
        default="explorer.solana.com", description="Block explorer host for tx links"
    )

    # ======================
    # Phantom deep links
    # ======================
    phantom_use_universal_links: bool = Field(
        default=False, description="Use https://phantom.app/ul/ instead of phantom://"
    )
    app_url: str = Field(
        default="http://localhost:5173", description="Dapp URL shown to the wallet on connect"
    )

    # ======================
    # Pending transaction
    # ======================
    pending_tx_ttl_seconds: int = Field(
        default=900, description="Age after which a pending transaction is abandoned"
    )
    session_storage_dir: str = Field(
        default="./data/sessions", description="Directory for file-backed session storage"
    )

    # ======================
    # Security monitor
    # ======================
    audit_endpoint_url: Optional[str] = Field(
        default="/api/security/suspicious-activity",
        description="Audit sink for suspicious activity (None = disabled)",
    )
    audit_base_url: str = Field(
        default="http://localhost:8000", description="Base URL for relative audit endpoints"
    )
    audit_timeout: float = Field(default=5.0, description="Audit POST timeout in seconds")
    monitor_capacity: int = Field(default=50, description="Suspicious activity buffer size")
    user_agent: str = Field(default="webpay-deeplink", description="Origin context user agent")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_mainnet(self) -> bool:
        """Check if the configured cluster is the default production network."""
        return self.solana_network == DEFAULT_NETWORK

    @property
    def audit_url(self) -> Optional[str]:
        """Absolute audit endpoint URL, or None when forwarding is disabled."""
        if not self.audit_endpoint_url:
            return None
        if "://" in self.audit_endpoint_url:
            return self.audit_endpoint_url
        return self.audit_base_url.rstrip("/") + "/" + self.audit_endpoint_url.lstrip("/")

    def get_safe_dict(self) -> dict:
        """Return settings dict for diagnostics."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "solana": {
                "network": self.solana_network,
                "rpc": self.solana_rpc_url,
                "explorer": self.explorer_host,
            },
            "deeplink": {
                "universal_links": self.phantom_use_universal_links,
                "app_url": self.app_url,
            },
            "pending": {
                "ttl_seconds": self.pending_tx_ttl_seconds,
                "storage_dir": self.session_storage_dir,
            },
            "monitor": {
                "audit_url": self.audit_url or "(disabled)",
                "capacity": self.monitor_capacity,
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
