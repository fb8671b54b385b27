"""HD Wallet module for deterministic deposit address derivation.

Supports:
- BTC: BIP84 (Native SegWit, bc1q...)
- ETH: BIP44 (0x...)
- USDT (ERC-20): BIP44 on its own account branch (0x...)
- SOL: SLIP-10 ed25519 (base58)
"""

from aerotrade.hdwallet.base import AddressInfo, HDWalletProvider
from aerotrade.hdwallet.deriver import AddressDeriver, normalize_address, user_index
from aerotrade.hdwallet.factory import (
    WALLET_CLASSES,
    create_wallets,
    generate_mnemonic,
    get_supported_assets,
    load_master_mnemonic,
)

__all__ = [
    "AddressDeriver",
    "AddressInfo",
    "HDWalletProvider",
    "WALLET_CLASSES",
    "create_wallets",
    "generate_mnemonic",
    "get_supported_assets",
    "load_master_mnemonic",
    "normalize_address",
    "user_index",
]
