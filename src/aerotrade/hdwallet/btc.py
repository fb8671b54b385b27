"""BTC HD Wallet implementation using BIP84 (Native SegWit).

Derivation path: m/84'/0'/0'/change/index
Address format: bech32 (bc1q...)
"""

from bip_utils import Bip44Changes, Bip84, Bip84Coins

from aerotrade.hdwallet.base import AddressInfo, HDWalletProvider


class BTCHDWallet(HDWalletProvider):
    """Bitcoin HD Wallet using BIP84 (Native SegWit).

    Example:
        wallet = BTCHDWallet(seed=seed_bytes)
        addr = wallet.derive_address(index=0)
        # AddressInfo(address="bc1q...", ...)
    """

    def _create_coin_context(self, seed: bytes):
        return Bip84.FromSeed(seed, Bip84Coins.BITCOIN).Purpose().Coin()

    @property
    def asset(self) -> str:
        return "BTC"

    @property
    def coin_type(self) -> int:
        return 0

    @property
    def purpose(self) -> int:
        return 84  # BIP84 for native SegWit

    def derive_address(self, index: int, change: int = 0) -> AddressInfo:
        """Derive a bech32 address at the given index."""
        self._check_index(index)
        chain = Bip44Changes.CHAIN_INT if change else Bip44Changes.CHAIN_EXT
        child = self._coin_ctx.Account(self.account).Change(chain).AddressIndex(index)

        return AddressInfo(
            address=child.PublicKey().ToAddress(),
            asset=self.asset,
            derivation_path=self.get_derivation_path(index, change),
            index=index,
            change=change,
            script_type="p2wpkh",
        )
