"""Supported assets and their display configuration.

The fiat wallet (NGN) and four crypto assets: BTC, ETH, SOL and USDT (ERC-20).
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Optional


class Asset(str, Enum):
    """Asset symbols held in balances."""

    NGN = "NGN"
    BTC = "BTC"
    ETH = "ETH"
    SOL = "SOL"
    USDT = "USDT"


FIAT = Asset.NGN
CRYPTO_ASSETS: tuple[Asset, ...] = (Asset.BTC, Asset.ETH, Asset.SOL, Asset.USDT)


@dataclass(frozen=True)
class AssetConfig:
    """Display and deposit information for an asset."""

    symbol: str
    name: str
    emoji: str
    decimals: int
    network: str
    min_deposit: str
    confirmations: str
    note: str
    explorer_url: Optional[str] = None
    coingecko_id: Optional[str] = None

    def explorer_link(self, address: str) -> Optional[str]:
        """Explorer URL for an address."""
        if not self.explorer_url:
            return None
        return self.explorer_url.format(address=address)


ASSETS: dict[Asset, AssetConfig] = {
    Asset.NGN: AssetConfig(
        symbol="NGN",
        name="Naira",
        emoji="💰",
        decimals=2,
        network="Bank transfer",
        min_deposit="₦100",
        confirmations="manual",
        note="Send proof of payment to support after transfer",
    ),
    Asset.BTC: AssetConfig(
        symbol="BTC",
        name="Bitcoin",
        emoji="₿",
        decimals=8,
        network="Bitcoin (BTC)",
        min_deposit="0.0001 BTC",
        confirmations="3 confirmations",
        note="Send only BTC to this address. Do not send other cryptocurrencies.",
        explorer_url="https://blockstream.info/address/{address}",
        coingecko_id="bitcoin",
    ),
    Asset.ETH: AssetConfig(
        symbol="ETH",
        name="Ethereum",
        emoji="💵",
        decimals=8,
        network="Ethereum (ERC20)",
        min_deposit="0.01 ETH",
        confirmations="12 confirmations",
        note="Send only ETH to this address",
        explorer_url="https://etherscan.io/address/{address}",
        coingecko_id="ethereum",
    ),
    Asset.SOL: AssetConfig(
        symbol="SOL",
        name="Solana",
        emoji="🟣",
        decimals=8,
        network="Solana",
        min_deposit="0.1 SOL",
        confirmations="1 confirmation",
        note="Send only SOL to this address",
        explorer_url="https://solscan.io/account/{address}",
        coingecko_id="solana",
    ),
    Asset.USDT: AssetConfig(
        symbol="USDT",
        name="Tether",
        emoji="🌐",
        decimals=2,
        network="ERC20 (Ethereum)",
        min_deposit="10 USDT",
        confirmations="12 confirmations",
        note="Send only USDT (ERC20) to this address",
        explorer_url="https://etherscan.io/address/{address}",
        coingecko_id="tether",
    ),
}


def parse_asset(value: str) -> Asset:
    """Parse an asset symbol (case-insensitive).

    Raises:
        ValueError: If the symbol is not supported
    """
    try:
        return Asset(value.strip().upper())
    except ValueError:
        raise ValueError(f"Unsupported asset: {value}")


def format_amount(amount: Decimal, asset: Asset) -> str:
    """Format an amount with the asset's display precision and thousands separators."""
    decimals = ASSETS[asset].decimals
    quantum = Decimal(1).scaleb(-decimals)
    return f"{Decimal(amount).quantize(quantum, rounding=ROUND_DOWN):,.{decimals}f}"


def format_naira(amount: Decimal) -> str:
    """Format an NGN amount, e.g. ₦10,000.00."""
    return f"₦{format_amount(amount, Asset.NGN)}"


LEDGER_PLACES = 18  # scale of the Numeric(36, 18) amount columns


def ledger_quantize(amount: Decimal) -> Decimal:
    """Round down to the scale amounts are stored at. Display rounding happens in format_amount."""
    return Decimal(amount).quantize(Decimal(1).scaleb(-LEDGER_PLACES), rounding=ROUND_DOWN)
