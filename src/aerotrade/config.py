"""Application configuration using pydantic-settings.

Holds the Telegram token, database URL, HD wallet mnemonic, payment provider
credentials and the withdrawal policy constants.
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
    # Telegram
    # ======================
    telegram_bot_token: str = Field(default="", description="Telegram bot token from BotFather")
    bot_username: str = Field(default="", description="Bot username used in referral links")
    business_name: str = Field(default="Aerosoft Trade", description="Name shown to users")
    support_handle: str = Field(default="@AerosoftSupport", description="Support contact")

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/aerotrade.db",
        description="Database connection URL",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug mode")

    # ======================
    # Admin
    # ======================
    admin_key: str = Field(default="", description="Shared secret for the admin stats endpoint")
    deposit_webhook_secret: Optional[str] = Field(
        default=None, description="HMAC secret for deposit notifications"
    )

    # ======================
    # HD Wallet
    # ======================
    wallet_mnemonic: Optional[str] = Field(
        default=None, description="BIP39 master mnemonic for deposit address derivation"
    )

    # ======================
    # Payments
    # ======================
    payment_provider: str = Field(default="dryrun", description="Payment gateway (dryrun, flutterwave)")
    flw_secret_key: str = Field(default="", description="Flutterwave secret key")
    flw_base_url: str = Field(
        default="https://api.flutterwave.com/v3", description="Flutterwave API base URL"
    )

    # ======================
    # Rates
    # ======================
    coingecko_url: str = Field(
        default="https://api.coingecko.com/api/v3", description="CoinGecko API base URL"
    )
    rate_cache_seconds: float = Field(default=60.0, description="Rate cache lifetime")

    # ======================
    # Withdrawal policy
    # ======================
    kyc_threshold: Decimal = Field(
        default=Decimal("100000"), description="Withdrawals above this need KYC (NGN)"
    )
    default_daily_limit: Decimal = Field(
        default=Decimal("500000"), description="Daily withdrawal limit for new accounts (NGN)"
    )
    min_withdrawal: Decimal = Field(
        default=Decimal("500"), description="Minimum net bank withdrawal (NGN)"
    )
    withdrawal_fee_rate: Decimal = Field(default=Decimal("0.015"), description="Bank withdrawal fee (1.5%)")
    withdrawal_min_fee: Decimal = Field(default=Decimal("50"), description="Minimum bank withdrawal fee (NGN)")
    swap_fee_rate: Decimal = Field(default=Decimal("0.005"), description="Swap fee (0.5%)")
    withdrawal_retry_on_failure: bool = Field(
        default=False,
        description="Keep a failed bank withdrawal at confirmation so the user can retry",
    )

    # ======================
    # Referrals
    # ======================
    referrer_bonus: Decimal = Field(default=Decimal("100"), description="NGN paid to the referrer")
    referee_bonus: Decimal = Field(default=Decimal("500"), description="NGN paid to the new user")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_wallet(self) -> bool:
        """Check if a master mnemonic is configured."""
        return bool(self.wallet_mnemonic and len(self.wallet_mnemonic.split()) >= 12)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "telegram_bot_token": "***" if self.telegram_bot_token else "(not set)",
            "wallet_configured": self.has_wallet,
            "payment_provider": self.payment_provider,
            "flutterwave_key": "***" if self.flw_secret_key else "(not set)",
            "policy": {
                "kyc_threshold": str(self.kyc_threshold),
                "default_daily_limit": str(self.default_daily_limit),
                "min_withdrawal": str(self.min_withdrawal),
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
