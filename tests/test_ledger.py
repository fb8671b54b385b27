"""Tests for the ledger module."""

import json
from datetime import date, timedelta
from decimal import Decimal

import pytest

from aerotrade.assets import FIAT, Asset
from aerotrade.errors import InsufficientBalance, ValidationError
from aerotrade.hdwallet import AddressDeriver
from aerotrade.ledger import LedgerRepository, TransactionKind, TransactionStatus


class TestAccountOperations:
    """Tests for account operations."""

    @pytest.mark.asyncio
    async def test_create_account(self, ledger_repo: LedgerRepository):
        account, created = await ledger_repo.get_or_create_account(
            telegram_id=123456789, username="testuser", first_name="Test"
        )

        assert created is True
        assert account.id is not None
        assert account.telegram_id == 123456789
        assert account.referral_code.startswith("AERO")
        assert len(account.referral_code) == 10
        assert account.daily_withdrawal_limit == Decimal("500000")
        assert account.kyc_verified is False

    @pytest.mark.asyncio
    async def test_get_existing_account(self, ledger_repo: LedgerRepository):
        first, _ = await ledger_repo.get_or_create_account(telegram_id=111111)
        second, created = await ledger_repo.get_or_create_account(telegram_id=111111, username="renamed")

        assert created is False
        assert first.id == second.id
        assert second.username == "renamed"

    @pytest.mark.asyncio
    async def test_lookup_by_referral_code_is_case_insensitive(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=222)
        found = await ledger_repo.get_account_by_referral_code(account.referral_code.lower())
        assert found is not None and found.id == account.id


class TestBalanceOperations:
    """Tests for balance operations."""

    @pytest.mark.asyncio
    async def test_credit_and_debit(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=333333)

        await ledger_repo.credit_balance(account.id, Asset.ETH, Decimal("2.0"))
        balance = await ledger_repo.debit_balance(account.id, Asset.ETH, Decimal("0.5"))

        assert balance.amount == Decimal("1.5")
        assert await ledger_repo.get_balance_amount(account.id, "eth") == Decimal("1.5")

    @pytest.mark.asyncio
    async def test_missing_balance_is_zero(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=1)
        assert await ledger_repo.get_balance_amount(account.id, Asset.SOL) == Decimal("0")
        balances = await ledger_repo.get_all_balances(account.id)
        assert set(balances) == {a.value for a in Asset}

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=444444)
        await ledger_repo.credit_balance(account.id, Asset.BTC, Decimal("0.1"))

        with pytest.raises(InsufficientBalance) as exc_info:
            await ledger_repo.debit_balance(account.id, Asset.BTC, Decimal("1.0"))

        assert exc_info.value.available == Decimal("0.1")
        assert isinstance(exc_info.value, ValueError)
        assert await ledger_repo.get_balance_amount(account.id, Asset.BTC) == Decimal("0.1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    async def test_non_positive_amounts_rejected(self, ledger_repo: LedgerRepository, amount):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=5)
        with pytest.raises(ValidationError):
            await ledger_repo.credit_balance(account.id, FIAT, amount)
        with pytest.raises(ValidationError):
            await ledger_repo.debit_balance(account.id, FIAT, amount)

    @pytest.mark.asyncio
    async def test_transfer_internal_insufficient_leaves_both_untouched(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=6)
        await ledger_repo.credit_balance(account.id, Asset.SOL, Decimal("1"))

        with pytest.raises(InsufficientBalance):
            await ledger_repo.transfer_internal(account.id, Asset.SOL, Asset.ETH, Decimal("2"), Decimal("0.1"))

        assert await ledger_repo.get_balance_amount(account.id, Asset.SOL) == Decimal("1")
        assert await ledger_repo.get_balance_amount(account.id, Asset.ETH) == Decimal("0")

    @pytest.mark.asyncio
    async def test_transfer_into_same_asset_rejected(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=7)
        with pytest.raises(ValidationError):
            await ledger_repo.transfer_internal(account.id, FIAT, FIAT, Decimal("1"), Decimal("1"))


class TestSaleAndSwap:
    """Compound mutations."""

    @pytest.mark.asyncio
    async def test_crypto_sale_example(self, ledger_repo: LedgerRepository):
        """0.01 BTC at 50,000,000 NGN credits 500,000 NGN and empties BTC."""
        account, _ = await ledger_repo.get_or_create_account(telegram_id=8)
        await ledger_repo.credit_balance(account.id, Asset.BTC, Decimal("0.01"))

        record = await ledger_repo.execute_crypto_sale(
            account.id, Asset.BTC, Decimal("0.01"), Decimal("500000"), Decimal("50000000")
        )

        assert await ledger_repo.get_balance_amount(account.id, Asset.BTC) == Decimal("0")
        assert await ledger_repo.get_balance_amount(account.id, FIAT) == Decimal("500000")
        assert record.kind == TransactionKind.CRYPTO_SALE
        assert record.counter_asset == "NGN"
        assert json.loads(record.details) == {"rate": "50000000"}

    @pytest.mark.asyncio
    async def test_swap_writes_one_record(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=9)
        await ledger_repo.credit_balance(account.id, Asset.ETH, Decimal("1"))

        await ledger_repo.execute_swap(
            account.id, Asset.ETH, Asset.USDT, Decimal("1"), Decimal("1990"), Decimal("0.005")
        )

        records = await ledger_repo.get_transactions(account.id, kind=TransactionKind.SWAP)
        assert len(records) == 1
        assert records[0].counter_amount == Decimal("1990")
        assert records[0].fee_amount == Decimal("0.005")
        assert await ledger_repo.get_balance_amount(account.id, Asset.USDT) == Decimal("1990")


class TestWithdrawalSaga:
    """reserve -> commit / compensate."""

    @pytest.mark.asyncio
    async def test_reserve_then_commit(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=10)
        await ledger_repo.credit_balance(account.id, FIAT, Decimal("20000"))

        reservation = await ledger_repo.reserve_withdrawal(
            account, Decimal("10000"), Decimal("150"), "AEROREF1"
        )
        assert reservation.net_amount == Decimal("9850")
        assert await ledger_repo.get_balance_amount(account.id, FIAT) == Decimal("10000")
        assert account.daily_withdrawn == Decimal("10000")
        assert account.last_withdrawal_date == date.today()

        record = await ledger_repo.get_transaction(reservation.transaction_id)
        assert record.status == TransactionStatus.RESERVED

        await ledger_repo.commit_withdrawal(reservation, "flw-1")
        found = await ledger_repo.get_withdrawal_by_transfer_id("flw-1")
        assert found.id == reservation.transaction_id
        assert found.status == TransactionStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_compensate_restores_exact_state(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=11)
        await ledger_repo.credit_balance(account.id, FIAT, Decimal("50000"))
        yesterday = date.today() - timedelta(days=1)
        account.daily_withdrawn = Decimal("7000")
        account.last_withdrawal_date = yesterday
        account.total_withdrawn = Decimal("7000")

        reservation = await ledger_repo.reserve_withdrawal(
            account, Decimal("10000"), Decimal("150"), "AEROREF2"
        )
        # A new day resets the counter before adding the withdrawal
        assert account.daily_withdrawn == Decimal("10000")

        await ledger_repo.compensate_withdrawal(reservation, "provider down")

        assert await ledger_repo.get_balance_amount(account.id, FIAT) == Decimal("50000")
        assert account.daily_withdrawn == Decimal("7000")
        assert account.last_withdrawal_date == yesterday
        assert account.total_withdrawn == Decimal("7000")

        record = await ledger_repo.get_transaction(reservation.transaction_id)
        assert record.status == TransactionStatus.FAILED
        reversals = await ledger_repo.get_transactions(account.id, kind=TransactionKind.WITHDRAWAL_REVERSAL)
        assert len(reversals) == 1
        assert reversals[0].reference == "AEROREF2"

    @pytest.mark.asyncio
    async def test_reserve_insufficient(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=12)
        await ledger_repo.credit_balance(account.id, FIAT, Decimal("100"))

        with pytest.raises(InsufficientBalance):
            await ledger_repo.reserve_withdrawal(account, Decimal("1000"), Decimal("50"), "AEROREF3")


class TestDepositsAndAddresses:
    @pytest.mark.asyncio
    async def test_credit_deposit(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=13)

        record = await ledger_repo.credit_deposit(
            account, Asset.SOL, Decimal("2.5"), "txhash-1", network="solana", address="SoLAddr"
        )

        assert record.kind == TransactionKind.DEPOSIT
        assert account.total_deposited == Decimal("2.5")
        assert await ledger_repo.get_balance_amount(account.id, Asset.SOL) == Decimal("2.5")
        assert (await ledger_repo.get_deposit_by_tx_hash(Asset.SOL, "txhash-1")).id == record.id
        assert await ledger_repo.get_deposit_by_tx_hash(Asset.ETH, "txhash-1") is None

    @pytest.mark.asyncio
    async def test_deposit_address_stored_once(self, ledger_repo: LedgerRepository, deriver: AddressDeriver):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=14)
        info = deriver.derive(14, Asset.BTC)

        first = await ledger_repo.get_or_create_deposit_address(account.id, info)
        second = await ledger_repo.get_or_create_deposit_address(account.id, info)

        assert first.id == second.id
        assert first.address == info.address
        assert first.derivation_index == info.index


class TestBankAndReferrals:
    @pytest.mark.asyncio
    async def test_save_bank_replaces_previous(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=15)
        first = await ledger_repo.save_bank_account(account.id, "058", "GTBank", "0123456789", "JOHN DOE")
        second = await ledger_repo.save_bank_account(account.id, "044", "Access Bank", "9876543210", "JOHN DOE")

        assert first.id == second.id
        bank = await ledger_repo.get_bank_account(account.id)
        assert bank.bank_code == "044"
        assert await ledger_repo.delete_bank_account(account.id) is True
        assert await ledger_repo.get_bank_account(account.id) is None
        assert await ledger_repo.delete_bank_account(account.id) is False

    @pytest.mark.asyncio
    async def test_referral_pays_both_sides_once(self, ledger_repo: LedgerRepository):
        referrer, _ = await ledger_repo.get_or_create_account(telegram_id=16)
        newcomer, _ = await ledger_repo.get_or_create_account(telegram_id=17)

        applied = await ledger_repo.apply_referral(newcomer, referrer, Decimal("100"), Decimal("500"))
        again = await ledger_repo.apply_referral(newcomer, referrer, Decimal("100"), Decimal("500"))

        assert applied is True
        assert again is False
        assert await ledger_repo.get_balance_amount(referrer.id, FIAT) == Decimal("100")
        assert await ledger_repo.get_balance_amount(newcomer.id, FIAT) == Decimal("500")
        assert referrer.referral_rewards == Decimal("100")
        assert [a.id for a in await ledger_repo.get_referrals(referrer.id)] == [newcomer.id]

    @pytest.mark.asyncio
    async def test_self_referral_rejected(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=18)
        assert await ledger_repo.apply_referral(account, account, Decimal("100"), Decimal("500")) is False

    @pytest.mark.asyncio
    async def test_stats(self, ledger_repo: LedgerRepository):
        account, _ = await ledger_repo.get_or_create_account(telegram_id=19)
        await ledger_repo.credit_balance(account.id, FIAT, Decimal("1000"))
        await ledger_repo.credit_deposit(account, Asset.BTC, Decimal("0.5"), "tx-stats")

        stats = await ledger_repo.get_stats()

        assert stats["accounts"] == 1
        assert stats["balances"]["NGN"] == Decimal("1000")
        assert stats["balances"]["BTC"] == Decimal("0.5")
        assert stats["transactions"] == {"deposit": 1}
