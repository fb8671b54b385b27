"""HD Wallet factory for creating wallet instances.

Maps each supported crypto asset to its wallet class and loads the master
mnemonic from configuration.
"""

import logging

from bip_utils import Bip39MnemonicGenerator, Bip39MnemonicValidator, Bip39WordsNum

from aerotrade.assets import Asset
from aerotrade.config import Settings
from aerotrade.hdwallet.base import HDWalletProvider
from aerotrade.hdwallet.btc import BTCHDWallet
from aerotrade.hdwallet.eth import ETHHDWallet, SOLHDWallet, USDTHDWallet

logger = logging.getLogger(__name__)

# Asset to wallet class mapping
WALLET_CLASSES: dict[Asset, type[HDWalletProvider]] = {
    Asset.BTC: BTCHDWallet,
    Asset.ETH: ETHHDWallet,
    Asset.USDT: USDTHDWallet,
    Asset.SOL: SOLHDWallet,
}


def get_supported_assets() -> list[Asset]:
    """Get list of assets that have deposit addresses."""
    return list(WALLET_CLASSES.keys())


def create_wallets(seed: bytes) -> dict[Asset, HDWalletProvider]:
    """Create one wallet instance per supported asset from the seed."""
    return {asset: wallet_class(seed) for asset, wallet_class in WALLET_CLASSES.items()}


def generate_mnemonic() -> str:
    """Generate a fresh 24-word BIP39 mnemonic."""
    return str(Bip39MnemonicGenerator().FromWordsNumber(Bip39WordsNum.WORDS_NUM_24))


def load_master_mnemonic(settings: Settings) -> str:
    """Return the configured master mnemonic, generating one if absent.

    A generated mnemonic only lives for this process. Addresses handed out
    with it can't be re-derived after a restart, so the operator is warned to
    persist it as WALLET_MNEMONIC.

    Raises:
        ValueError: If the configured mnemonic fails BIP39 validation
    """
    mnemonic = (settings.wallet_mnemonic or "").strip()
    if mnemonic:
        if not Bip39MnemonicValidator().IsValid(mnemonic):
            raise ValueError("WALLET_MNEMONIC is not a valid BIP39 mnemonic")
        return mnemonic

    mnemonic = generate_mnemonic()
    logger.warning(
        "WALLET_MNEMONIC not set - generated a new master mnemonic for this run. "
        "Set WALLET_MNEMONIC to keep deposit addresses stable across restarts."
    )
    return mnemonic
