"""Application configuration using pydantic-settings.

All services are built from one Settings instance at startup. Secrets
(service wallet key, Twilio and Telegram credentials) are read-only
after initialization.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=3000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    dry_run: bool = Field(
        default=True, description="Use simulated chain executor and quote provider"
    )

    # ======================
    # Chains
    # ======================
    home_chain: str = Field(default="sepolia", description="Chain hosting TXTC and the vouchers")
    sepolia_rpc_url: str = Field(default="https://1rpc.io/sepolia", description="Sepolia RPC URL")
    ethereum_rpc_url: str = Field(default="", description="Ethereum mainnet RPC URL")
    polygon_rpc_url: str = Field(default="https://polygon-rpc.com", description="Polygon RPC URL")
    arbitrum_rpc_url: str = Field(default="https://arb1.arbitrum.io/rpc", description="Arbitrum RPC URL")
    optimism_rpc_url: str = Field(default="https://mainnet.optimism.io", description="Optimism RPC URL")
    base_rpc_url: str = Field(default="https://mainnet.base.org", description="Base RPC URL")
    avalanche_rpc_url: str = Field(
        default="https://api.avax.network/ext/bc/C/rpc", description="Avalanche RPC URL"
    )
    bsc_rpc_url: str = Field(default="https://bsc-dataseed.binance.org", description="BSC RPC URL")
    alchemy_api_key: str = Field(default="", description="Alchemy key for the mainnet RPC")

    # ======================
    # Service wallet
    # ======================
    private_key: Optional[str] = Field(
        default=None, description="Service wallet key (mints, burns, bridges)"
    )

    # ======================
    # Contracts (home chain)
    # ======================
    token_contract: str = Field(
        default="0x0F0E4A3F59C3B8794A9044a0dC0155fB3C3fA223", description="TXTC token"
    )
    voucher_manager_contract: str = Field(
        default="0x74B02854a16cf33416541625C100beC97cC94F01", description="Voucher manager"
    )
    entry_point_contract: str = Field(
        default="0x0084FA06Fa317D4311d865f35d62dCBcb0517355",
        description="Entry point (redeem with fee split, token swaps)",
    )
    uniswap_pool_contract: str = Field(
        default="0xfdbf742dfc37b7ed1da429d3d7add78d99026c23", description="TXTC/WETH pool"
    )
    explorer_url: str = Field(default="https://sepolia.etherscan.io", description="Block explorer")

    # ======================
    # LI.FI aggregator
    # ======================
    lifi_api_url: str = Field(default="https://li.quest/v1", description="LI.FI API URL")
    lifi_api_key: str = Field(default="", description="LI.FI API key")
    lifi_integrator: str = Field(default="TextToChain", description="LI.FI integrator name")
    default_slippage: Decimal = Field(
        default=Decimal("0.005"), description="Default slippage tolerance (0.5%)"
    )
    quote_ttl_seconds: int = Field(default=30, description="Quote validity window")

    # ======================
    # Fast settlement channel (Yellow batch service)
    # ======================
    fast_channel_url: str = Field(
        default="http://localhost:8083", description="Fast channel base URL (empty = disabled)"
    )
    fast_channel_timeout: float = Field(default=10.0, description="Fast channel request timeout")

    # ======================
    # Timeouts
    # ======================
    rpc_timeout: float = Field(default=30.0, description="Single JSON-RPC call timeout")
    chain_confirmation_timeout: float = Field(
        default=120.0, description="Max wait for a transaction receipt"
    )
    chain_poll_interval: float = Field(default=2.0, description="Receipt polling interval")
    quote_timeout: float = Field(default=30.0, description="Aggregator request timeout")

    # ======================
    # Notifications
    # ======================
    twilio_account_sid: str = Field(default="", description="Twilio account SID")
    twilio_auth_token: str = Field(default="", description="Twilio auth token")
    twilio_phone_number: str = Field(default="", description="Twilio sender number")
    telegram_bot_token: str = Field(default="", description="Telegram bot token from BotFather")
    notification_timeout: float = Field(default=10.0, description="Notification send timeout")

    # ======================
    # Orchestrator
    # ======================
    transfer_history_limit: int = Field(
        default=1000, description="Terminal transfer records kept for status lookups"
    )

    # ======================
    # Dry run
    # ======================
    simulated_vouchers: str = Field(
        default="ABC123:100,DEMO50:50",
        description="Comma-separated CODE:FACE_VALUE pairs for the simulated executor",
    )
    gas_reserve_percent: Decimal = Field(
        default=Decimal("10"), description="Share of a voucher swapped to ETH for gas"
    )
    simulated_eth_per_txtc: Decimal = Field(
        default=Decimal("0.0001"), description="Simulated pool price"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_wallet(self) -> bool:
        """Check if the service wallet key is configured."""
        return bool(self.private_key)

    @property
    def has_sms(self) -> bool:
        """Check if Twilio credentials are complete."""
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number)

    @property
    def voucher_face_values(self) -> dict[str, Decimal]:
        """Parse the simulated voucher table."""
        vouchers = {}
        for entry in self.simulated_vouchers.split(","):
            if ":" not in entry:
                continue
            code, value = entry.split(":", 1)
            vouchers[code.strip().upper()] = Decimal(value.strip())
        return vouchers

    def get_rpc_url(self, chain_id: int) -> str:
        """Get RPC URL for a chain ID."""
        mainnet = self.ethereum_rpc_url or (
            f"https://eth-mainnet.g.alchemy.com/v2/{self.alchemy_api_key or 'demo'}"
        )
        rpc_map = {
            1: mainnet,
            10: self.optimism_rpc_url,
            56: self.bsc_rpc_url,
            137: self.polygon_rpc_url,
            8453: self.base_rpc_url,
            42161: self.arbitrum_rpc_url,
            43114: self.avalanche_rpc_url,
            11155111: self.sepolia_rpc_url,
        }
        return rpc_map.get(chain_id) or f"https://1rpc.io/{chain_id}"

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "home_chain": self.home_chain,
            "wallet_configured": self.has_wallet,
            "contracts": {
                "token": self.token_contract,
                "voucher_manager": self.voucher_manager_contract,
                "entry_point": self.entry_point_contract,
            },
            "lifi": {
                "url": self.lifi_api_url,
                "api_key": "***" if self.lifi_api_key else "(not set)",
                "slippage": str(self.default_slippage),
                "quote_ttl_seconds": self.quote_ttl_seconds,
            },
            "fast_channel": self.fast_channel_url or "(disabled)",
            "notifications": {
                "sms": "configured" if self.has_sms else "(not set)",
                "telegram": "***" if self.telegram_bot_token else "(not set)",
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
