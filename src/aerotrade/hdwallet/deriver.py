"""Deterministic per-user deposit addresses.

The deriver turns (user_id, asset) into an address with a pure function of the
master seed, and keeps the reverse map (address -> owner) used to route
inbound deposits. The reverse map only knows addresses that were derived
forward in this process; `warm()` re-derives stored accounts at startup.
"""

import hashlib
import logging
from typing import Iterable, Optional, Union

from bip_utils import Bip39SeedGenerator

from aerotrade.assets import Asset, parse_asset
from aerotrade.errors import AddressCollisionError
from aerotrade.hdwallet.base import AddressInfo, HDWalletProvider
from aerotrade.hdwallet.factory import create_wallets

logger = logging.getLogger(__name__)

INDEX_MASK = 0x7FFFFFFF  # largest non-hardened BIP32 index


def user_index(user_id: int) -> int:
    """Map a user id to a 31-bit derivation index (first 4 bytes of SHA-256)."""
    digest = hashlib.sha256(str(user_id).encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") & INDEX_MASK


def normalize_address(address: str) -> str:
    """Canonical form used as reverse-map key.

    EVM hex and bech32 addresses are case-insensitive; base58 is not.
    """
    address = address.strip()
    lowered = address.lower()
    if lowered.startswith("0x") or lowered.startswith("bc1"):
        return lowered
    return address


class AddressDeriver:
    """Derives and resolves deposit addresses for all supported assets.

    Usage:
        deriver = AddressDeriver(mnemonic)
        info = deriver.derive(user_id, Asset.BTC)
        owner = deriver.resolve(info.address)  # (user_id, Asset.BTC)
    """

    def __init__(self, mnemonic: str, passphrase: str = ""):
        seed = Bip39SeedGenerator(mnemonic).Generate(passphrase)
        self._wallets: dict[Asset, HDWalletProvider] = create_wallets(seed)
        self._forward: dict[tuple[int, Asset], AddressInfo] = {}
        self._reverse: dict[str, tuple[int, Asset]] = {}

    @property
    def assets(self) -> list[Asset]:
        return list(self._wallets.keys())

    def derive(self, user_id: int, asset: Union[Asset, str]) -> AddressInfo:
        """Derive the deposit address of a user for one asset.

        Raises:
            ValueError: If the asset has no deposit address (e.g. NGN)
            AddressCollisionError: If the address already belongs to another owner
        """
        asset = parse_asset(asset)
        wallet = self._wallets.get(asset)
        if wallet is None:
            raise ValueError(f"No deposit address for asset: {asset.value}")

        key = (user_id, asset)
        cached = self._forward.get(key)
        if cached is not None:
            return cached

        info = wallet.derive_receiving_address(user_index(user_id))
        reverse_key = normalize_address(info.address)
        owner = self._reverse.get(reverse_key)
        if owner is not None and owner != key:
            logger.error(
                f"Address collision: {info.address} derived for user {user_id} "
                f"{asset.value} is already owned by user {owner[0]} {owner[1].value}"
            )
            raise AddressCollisionError(
                f"Deposit address for {asset.value} collides with another account"
            )

        self._reverse[reverse_key] = key
        self._forward[key] = info
        return info

    def derive_all(self, user_id: int) -> dict[Asset, AddressInfo]:
        """Derive every supported asset's address for a user."""
        return {asset: self.derive(user_id, asset) for asset in self._wallets}

    def resolve(self, address: str) -> Optional[tuple[int, Asset]]:
        """Find the owner of a previously derived address."""
        if not address:
            return None
        return self._reverse.get(normalize_address(address))

    def warm(self, user_ids: Iterable[int]) -> int:
        """Re-derive addresses for known users so deposits resolve after a restart.

        Returns:
            Number of users whose addresses were derived
        """
        count = 0
        for user_id in user_ids:
            try:
                self.derive_all(user_id)
                count += 1
            except AddressCollisionError as e:
                logger.error(f"Skipping user {user_id} during warm-up: {e}")
        logger.info(f"Derived deposit addresses for {count} users")
        return count
