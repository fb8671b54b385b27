"""HD Wallet base interface.

Each implementation derives receiving addresses for one asset from the BIP39
master seed using a fixed BIP32/BIP44/BIP84 branch. Branches never overlap
between assets, so two assets of the same user can't share an address.

Security: derived private keys are never stored. Only public addresses leave
this module.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AddressInfo:
    """Information about a derived address."""

    address: str
    asset: str
    derivation_path: str
    index: int
    change: int = 0  # 0 = receiving, 1 = change
    script_type: Optional[str] = None  # p2wpkh, eth_address, etc.


class HDWalletProvider(ABC):
    """Abstract base class for HD wallet providers.

    Usage:
        wallet = BTCHDWallet(seed=seed_bytes)
        addr = wallet.derive_address(index=0)
    """

    def __init__(self, seed: bytes):
        """Initialize HD wallet with the BIP39 seed.

        Args:
            seed: 64-byte seed generated from the master mnemonic
        """
        if not seed:
            raise ValueError("HD wallet seed is empty")
        self._seed = seed
        self._coin_ctx = self._create_coin_context(seed)

    @abstractmethod
    def _create_coin_context(self, seed: bytes):
        """Build the bip_utils context at the coin level (m/purpose'/coin')."""
        pass

    @property
    @abstractmethod
    def asset(self) -> str:
        """Asset symbol (BTC, ETH, etc.)."""
        pass

    @property
    @abstractmethod
    def coin_type(self) -> int:
        """SLIP-44 coin type number."""
        pass

    @property
    @abstractmethod
    def purpose(self) -> int:
        """BIP purpose number (44, 84)."""
        pass

    @property
    def account(self) -> int:
        """BIP44 account used for this asset's branch."""
        return 0

    @abstractmethod
    def derive_address(self, index: int, change: int = 0) -> AddressInfo:
        """Derive an address at the given index.

        Args:
            index: Child index (0 <= index < 2**31)
            change: 0 for receiving addresses, 1 for change addresses

        Returns:
            AddressInfo with the derived address and metadata
        """
        pass

    def derive_receiving_address(self, index: int) -> AddressInfo:
        """Derive a receiving address (change=0)."""
        return self.derive_address(index, change=0)

    def get_derivation_path(self, index: int, change: int = 0) -> str:
        """Get the full derivation path for an index.

        Default format: m/purpose'/coin_type'/account'/change/index
        """
        return f"m/{self.purpose}'/{self.coin_type}'/{self.account}'/{change}/{index}"

    @staticmethod
    def _check_index(index: int) -> None:
        if index < 0 or index >= 2**31:
            raise ValueError(f"Derivation index out of range: {index}")
