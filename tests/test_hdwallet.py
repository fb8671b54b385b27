"""Tests for deposit address derivation and reverse lookup."""

import pytest
from bip_utils import Bip39SeedGenerator

from aerotrade.assets import CRYPTO_ASSETS, Asset
from aerotrade.config import Settings
from aerotrade.errors import AddressCollisionError
from aerotrade.hdwallet import (
    AddressDeriver,
    create_wallets,
    generate_mnemonic,
    load_master_mnemonic,
    normalize_address,
    user_index,
)
from aerotrade.hdwallet import deriver as deriver_module

from conftest import TEST_MNEMONIC

BASE58_ALPHABET = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


class TestWallets:
    """Known BIP84 / BIP44 vectors for the test mnemonic."""

    def setup_method(self):
        seed = Bip39SeedGenerator(TEST_MNEMONIC).Generate()
        self.wallets = create_wallets(seed)

    def test_btc_bip84_vector(self):
        info = self.wallets[Asset.BTC].derive_receiving_address(0)
        assert info.address == "bc1qcr8te4kr609gcawutmrza0j4xv80jy8z306fyu"
        assert info.derivation_path == "m/84'/0'/0'/0/0"

    def test_eth_bip44_vector(self):
        info = self.wallets[Asset.ETH].derive_receiving_address(0)
        assert info.address.lower() == "0x9858effd232b4033e47d90003d41ec34ecaeda94"
        assert info.derivation_path == "m/44'/60'/0'/0/0"

    def test_usdt_uses_its_own_account(self):
        eth = self.wallets[Asset.ETH].derive_receiving_address(0)
        usdt = self.wallets[Asset.USDT].derive_receiving_address(0)
        assert usdt.derivation_path == "m/44'/60'/1'/0/0"
        assert usdt.address != eth.address

    def test_sol_path_is_hardened(self):
        info = self.wallets[Asset.SOL].derive_receiving_address(3)
        assert info.derivation_path == "m/44'/501'/3'/0'"
        assert 32 <= len(info.address) <= 44
        assert set(info.address) <= BASE58_ALPHABET

    def test_index_out_of_range(self):
        with pytest.raises(ValueError):
            self.wallets[Asset.BTC].derive_receiving_address(2**31)
        with pytest.raises(ValueError):
            self.wallets[Asset.BTC].derive_receiving_address(-1)


class TestAddressDeriver:
    """Tests for per-user derivation."""

    def test_derivation_is_deterministic(self, deriver: AddressDeriver):
        other = AddressDeriver(TEST_MNEMONIC)
        for asset in CRYPTO_ASSETS:
            first = deriver.derive(1001, asset)
            again = deriver.derive(1001, asset)
            fresh = other.derive(1001, asset)
            assert first.address == again.address == fresh.address

    def test_addresses_distinct_across_assets(self, deriver: AddressDeriver):
        addresses = [info.address for info in deriver.derive_all(1001).values()]
        assert len(addresses) == len(CRYPTO_ASSETS)
        assert len(set(addresses)) == len(addresses)

    def test_different_users_get_different_addresses(self, deriver: AddressDeriver):
        assert deriver.derive(1, Asset.BTC).address != deriver.derive(2, Asset.BTC).address

    def test_address_formats(self, deriver: AddressDeriver):
        assert deriver.derive(7, Asset.BTC).address.startswith("bc1q")
        eth = deriver.derive(7, Asset.ETH).address
        assert eth.startswith("0x") and len(eth) == 42
        assert deriver.derive(7, Asset.USDT).address.startswith("0x")

    def test_index_comes_from_user_id(self, deriver: AddressDeriver):
        info = deriver.derive(555, "btc")
        assert info.index == user_index(555)
        assert info.derivation_path == f"m/84'/0'/0'/0/{user_index(555)}"

    def test_ngn_has_no_address(self, deriver: AddressDeriver):
        with pytest.raises(ValueError):
            deriver.derive(1, Asset.NGN)

    def test_resolve_after_derive(self, deriver: AddressDeriver):
        info = deriver.derive(31337, Asset.ETH)
        assert deriver.resolve(info.address) == (31337, Asset.ETH)
        # EVM addresses resolve regardless of checksum casing
        assert deriver.resolve(info.address.upper().replace("0X", "0x")) == (31337, Asset.ETH)

    def test_resolve_unknown_address(self, deriver: AddressDeriver):
        assert deriver.resolve("bc1qnotissuedbythisprocess") is None
        assert deriver.resolve("") is None

    def test_warm_populates_reverse_map(self):
        source = AddressDeriver(TEST_MNEMONIC)
        address = source.derive(99, Asset.SOL).address

        restarted = AddressDeriver(TEST_MNEMONIC)
        assert restarted.resolve(address) is None
        assert restarted.warm([99, 100]) == 2
        assert restarted.resolve(address) == (99, Asset.SOL)

    def test_collision_is_detected(self, monkeypatch):
        monkeypatch.setattr(deriver_module, "user_index", lambda user_id: 7)
        deriver = AddressDeriver(TEST_MNEMONIC)

        owner = deriver.derive(1, Asset.BTC)
        with pytest.raises(AddressCollisionError):
            deriver.derive(2, Asset.BTC)
        # The first owner keeps the address
        assert deriver.resolve(owner.address) == (1, Asset.BTC)

    def test_warm_skips_colliding_users(self, monkeypatch):
        monkeypatch.setattr(deriver_module, "user_index", lambda user_id: 7)
        deriver = AddressDeriver(TEST_MNEMONIC)
        assert deriver.warm([1, 2]) == 1


class TestHelpers:
    def test_user_index_is_31_bit(self):
        for user_id in (0, 1, 123456789, 2**40):
            assert 0 <= user_index(user_id) < 2**31

    def test_normalize_address(self):
        assert normalize_address(" 0xABCDEF ") == "0xabcdef"
        assert normalize_address("BC1QXYZ") == "bc1qxyz"
        # base58 is case-sensitive
        assert normalize_address("HAgk14Jp") == "HAgk14Jp"

    def test_load_configured_mnemonic(self):
        settings = Settings(_env_file=None, wallet_mnemonic=TEST_MNEMONIC)
        assert load_master_mnemonic(settings) == TEST_MNEMONIC

    def test_invalid_mnemonic_rejected(self):
        settings = Settings(_env_file=None, wallet_mnemonic="abandon " * 11 + "abandon")
        with pytest.raises(ValueError):
            load_master_mnemonic(settings)

    def test_generated_mnemonic_when_unset(self):
        settings = Settings(_env_file=None, wallet_mnemonic=None)
        assert len(load_master_mnemonic(settings).split()) == 24
        assert generate_mnemonic() != generate_mnemonic()
