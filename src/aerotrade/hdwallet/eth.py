"""ETH, USDT (ERC-20) and SOL HD Wallet implementations.

ETH:  m/44'/60'/0'/0/index   (0x... checksum address)
USDT: m/44'/60'/1'/0/index   (0x... on its own account branch)
SOL:  m/44'/501'/index'/0'   (base58, SLIP-10 ed25519, all levels hardened)
"""

from bip_utils import Bip44, Bip44Changes, Bip44Coins

from aerotrade.hdwallet.base import AddressInfo, HDWalletProvider


class ETHHDWallet(HDWalletProvider):
    """Ethereum HD Wallet using BIP44.

    Example:
        wallet = ETHHDWallet(seed=seed_bytes)
        addr = wallet.derive_address(index=0)
        # AddressInfo(address="0x...", ...)
    """

    def _create_coin_context(self, seed: bytes):
        return Bip44.FromSeed(seed, Bip44Coins.ETHEREUM).Purpose().Coin()

    @property
    def asset(self) -> str:
        return "ETH"

    @property
    def coin_type(self) -> int:
        return 60  # ETH coin type for all EVM chains

    @property
    def purpose(self) -> int:
        return 44

    def derive_address(self, index: int, change: int = 0) -> AddressInfo:
        """Derive a checksum ETH address at the given index."""
        self._check_index(index)
        chain = Bip44Changes.CHAIN_INT if change else Bip44Changes.CHAIN_EXT
        child = self._coin_ctx.Account(self.account).Change(chain).AddressIndex(index)

        return AddressInfo(
            address=child.PublicKey().ToAddress(),
            asset=self.asset,
            derivation_path=self.get_derivation_path(index, change),
            index=index,
            change=change,
            script_type="eth_address",
        )


class USDTHDWallet(ETHHDWallet):
    """USDT (ERC-20) deposit addresses.

    Same EVM address format as ETH, but on account 1 so a user's USDT address
    differs from their ETH address.
    """

    @property
    def asset(self) -> str:
        return "USDT"

    @property
    def account(self) -> int:
        return 1


class SOLHDWallet(HDWalletProvider):
    """Solana HD Wallet (Phantom-style path).

    ed25519 only supports hardened derivation, so the per-user index sits at
    the account level: m/44'/501'/index'/0'.
    """

    def _create_coin_context(self, seed: bytes):
        return Bip44.FromSeed(seed, Bip44Coins.SOLANA).Purpose().Coin()

    @property
    def asset(self) -> str:
        return "SOL"

    @property
    def coin_type(self) -> int:
        return 501

    @property
    def purpose(self) -> int:
        return 44

    def get_derivation_path(self, index: int, change: int = 0) -> str:
        return f"m/{self.purpose}'/{self.coin_type}'/{index}'/{change}'"

    def derive_address(self, index: int, change: int = 0) -> AddressInfo:
        """Derive a base58 SOL address at the given index."""
        self._check_index(index)
        chain = Bip44Changes.CHAIN_INT if change else Bip44Changes.CHAIN_EXT
        child = self._coin_ctx.Account(index).Change(chain)

        return AddressInfo(
            address=child.PublicKey().ToAddress(),
            asset=self.asset,
            derivation_path=self.get_derivation_path(index, change),
            index=index,
            change=change,
            script_type="sol_address",
        )
