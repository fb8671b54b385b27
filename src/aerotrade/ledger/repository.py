"""Repository for ledger operations.

All methods run inside the caller's session; nothing is committed here. A
compound mutation (swap, crypto sale, withdrawal reservation) either
completes entirely or raises before the session commits, and the
`Database.session()` context manager rolls it back.
"""

import json
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from aerotrade.assets import FIAT, Asset
from aerotrade.errors import InsufficientBalance, ValidationError
from aerotrade.hdwallet.base import AddressInfo
from aerotrade.ledger.models import (
    Account,
    Balance,
    BankAccount,
    DepositAddress,
    Transaction,
    TransactionKind,
    TransactionStatus,
)

logger = logging.getLogger(__name__)

REFERRAL_PREFIX = "AERO"
REFERRAL_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class WithdrawalReservation:
    """Snapshot taken when NGN is debited for a bank transfer.

    Holds everything needed to put the account back exactly as it was if the
    transfer fails.
    """

    account_id: int
    transaction_id: int
    reference: str
    amount: Decimal
    fee: Decimal
    net_amount: Decimal
    prev_daily_withdrawn: Decimal
    prev_last_withdrawal_date: Optional[date]
    prev_total_withdrawn: Decimal


def generate_referral_code() -> str:
    """Generate a referral code like AERO7K2QXA."""
    suffix = "".join(secrets.choice(REFERRAL_ALPHABET) for _ in range(6))
    return f"{REFERRAL_PREFIX}{suffix}"


def _asset_key(asset) -> str:
    if isinstance(asset, Asset):
        return asset.value
    return str(asset).upper()


class LedgerRepository:
    """Repository for all ledger-related database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Account operations
    async def get_account(self, telegram_id: int) -> Optional[Account]:
        """Get account by Telegram ID."""
        stmt = select(Account).where(Account.telegram_id == telegram_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_account_by_id(self, account_id: int) -> Optional[Account]:
        stmt = select(Account).where(Account.id == account_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_account_by_referral_code(self, code: str) -> Optional[Account]:
        stmt = select(Account).where(Account.referral_code == code.strip().upper())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_account(
        self,
        telegram_id: int,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
        daily_limit: Decimal = Decimal("500000"),
    ) -> Account:
        """Create a new account with a unique referral code."""
        code = generate_referral_code()
        while await self.get_account_by_referral_code(code) is not None:
            code = generate_referral_code()

        account = Account(
            telegram_id=telegram_id,
            username=username,
            first_name=first_name,
            kyc_verified=False,
            daily_withdrawal_limit=daily_limit,
            daily_withdrawn=Decimal("0"),
            total_withdrawn=Decimal("0"),
            total_deposited=Decimal("0"),
            referral_code=code,
            referral_rewards=Decimal("0"),
        )
        self.session.add(account)
        await self.session.flush()
        logger.info(f"Created account {account.id} for telegram user {telegram_id}")
        return account

    async def get_or_create_account(
        self,
        telegram_id: int,
        username: Optional[str] = None,
        first_name: Optional[str] = None,
        daily_limit: Decimal = Decimal("500000"),
    ) -> tuple[Account, bool]:
        """Get existing account or create a new one.

        Returns:
            (account, created)
        """
        account = await self.get_account(telegram_id)
        if account is not None:
            if username and account.username != username:
                account.username = username
            return account, False
        account = await self.create_account(telegram_id, username, first_name, daily_limit)
        return account, True

    async def get_all_telegram_ids(self) -> list[int]:
        result = await self.session.execute(select(Account.telegram_id))
        return list(result.scalars().all())

    # Referral operations
    async def apply_referral(
        self,
        account: Account,
        referrer: Account,
        referrer_bonus: Decimal,
        referee_bonus: Decimal,
    ) -> bool:
        """Link a new account to its referrer and pay both bonuses in NGN.

        Returns:
            False if the account was already referred or refers itself
        """
        if account.referred_by_id is not None or referrer.id == account.id:
            return False

        account.referred_by_id = referrer.id

        await self.credit_balance(referrer.id, FIAT, referrer_bonus)
        referrer.referral_rewards += referrer_bonus
        await self.append_transaction(
            referrer.id,
            TransactionKind.REFERRAL_BONUS,
            FIAT,
            referrer_bonus,
            details=json.dumps({"referred_account": account.id}),
        )

        await self.credit_balance(account.id, FIAT, referee_bonus)
        await self.append_transaction(
            account.id,
            TransactionKind.REFERRAL_BONUS,
            FIAT,
            referee_bonus,
            details=json.dumps({"referrer_account": referrer.id}),
        )
        await self.session.flush()
        logger.info(f"Account {account.id} referred by account {referrer.id}")
        return True

    async def get_referrals(self, account_id: int) -> list[Account]:
        """Accounts that signed up with this account's referral code."""
        stmt = (
            select(Account)
            .where(Account.referred_by_id == account_id)
            .order_by(Account.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Balance operations
    async def get_balance(self, account_id: int, asset) -> Optional[Balance]:
        """Get account balance for a specific asset."""
        stmt = select(Balance).where(
            Balance.account_id == account_id, Balance.asset == _asset_key(asset)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_balance_amount(self, account_id: int, asset) -> Decimal:
        balance = await self.get_balance(account_id, asset)
        if balance is None:
            return Decimal("0")
        return Decimal(balance.amount)

    async def get_all_balances(self, account_id: int) -> dict[str, Decimal]:
        """Get all balances for an account, keyed by asset symbol."""
        stmt = select(Balance).where(Balance.account_id == account_id).order_by(Balance.asset)
        result = await self.session.execute(stmt)
        balances = {a.value: Decimal("0") for a in Asset}
        for balance in result.scalars().all():
            balances[balance.asset] = Decimal(balance.amount)
        return balances

    async def get_or_create_balance(self, account_id: int, asset) -> Balance:
        """Get or create a balance record for account/asset."""
        balance = await self.get_balance(account_id, asset)
        if balance is None:
            balance = Balance(account_id=account_id, asset=_asset_key(asset), amount=Decimal("0"))
            self.session.add(balance)
            await self.session.flush()
        return balance

    async def credit_balance(self, account_id: int, asset, amount: Decimal) -> Balance:
        """Add amount to account balance."""
        if amount <= 0:
            raise ValidationError(f"Credit amount must be positive, got {amount}")
        balance = await self.get_or_create_balance(account_id, asset)
        balance.amount = Decimal(balance.amount) + amount
        await self.session.flush()
        return balance

    async def debit_balance(self, account_id: int, asset, amount: Decimal) -> Balance:
        """Subtract amount from account balance.

        Raises:
            InsufficientBalance: If the balance is lower than amount
        """
        if amount <= 0:
            raise ValidationError(f"Debit amount must be positive, got {amount}")
        balance = await self.get_or_create_balance(account_id, asset)
        available = Decimal(balance.amount)
        if available < amount:
            raise InsufficientBalance(_asset_key(asset), available, amount)
        balance.amount = available - amount
        await self.session.flush()
        return balance

    async def transfer_internal(
        self,
        account_id: int,
        from_asset,
        to_asset,
        debit_amount: Decimal,
        credit_amount: Decimal,
    ) -> tuple[Balance, Balance]:
        """Debit one asset and credit another as a single mutation.

        The debit is checked first, so an insufficient balance leaves both
        assets untouched.
        """
        if _asset_key(from_asset) == _asset_key(to_asset):
            raise ValidationError("Cannot transfer an asset into itself")
        debited = await self.debit_balance(account_id, from_asset, debit_amount)
        credited = await self.credit_balance(account_id, to_asset, credit_amount)
        return debited, credited

    # Transaction log
    async def append_transaction(
        self,
        account_id: int,
        kind: TransactionKind,
        asset,
        amount: Decimal,
        counter_asset=None,
        counter_amount: Optional[Decimal] = None,
        fee_amount: Decimal = Decimal("0"),
        reference: Optional[str] = None,
        external_id: Optional[str] = None,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        network: Optional[str] = None,
        details: Optional[str] = None,
    ) -> Transaction:
        """Append an audit record."""
        record = Transaction(
            account_id=account_id,
            kind=kind,
            asset=_asset_key(asset),
            amount=amount,
            counter_asset=_asset_key(counter_asset) if counter_asset is not None else None,
            counter_amount=counter_amount,
            fee_amount=fee_amount,
            reference=reference,
            external_id=external_id,
            status=status,
            network=network,
            details=details,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        stmt = select(Transaction).where(Transaction.id == transaction_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_transactions(
        self, account_id: int, kind: Optional[TransactionKind] = None, limit: int = 20
    ) -> list[Transaction]:
        """Get transaction history for an account, newest first."""
        stmt = select(Transaction).where(Transaction.account_id == account_id)
        if kind is not None:
            stmt = stmt.where(Transaction.kind == kind)
        stmt = stmt.order_by(Transaction.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_withdrawal_by_transfer_id(self, transfer_id: str) -> Optional[Transaction]:
        stmt = select(Transaction).where(
            Transaction.kind == TransactionKind.WITHDRAWAL,
            Transaction.external_id == str(transfer_id),
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def update_transaction_status(
        self,
        record: Transaction,
        status: TransactionStatus,
        external_id: Optional[str] = None,
    ) -> Transaction:
        """Refine status (and external id) of an existing record."""
        record.status = status
        if external_id:
            record.external_id = external_id
        await self.session.flush()
        return record

    # Swap and crypto sale
    async def execute_swap(
        self,
        account_id: int,
        from_asset: Asset,
        to_asset: Asset,
        amount: Decimal,
        received: Decimal,
        fee: Decimal,
    ) -> Transaction:
        """Debit `amount` of from_asset, credit `received` of to_asset."""
        await self.transfer_internal(account_id, from_asset, to_asset, amount, received)
        return await self.append_transaction(
            account_id,
            TransactionKind.SWAP,
            from_asset,
            amount,
            counter_asset=to_asset,
            counter_amount=received,
            fee_amount=fee,
        )

    async def execute_crypto_sale(
        self,
        account_id: int,
        asset: Asset,
        amount: Decimal,
        ngn_amount: Decimal,
        rate: Decimal,
    ) -> Transaction:
        """Debit a crypto asset and credit its NGN value."""
        await self.transfer_internal(account_id, asset, FIAT, amount, ngn_amount)
        return await self.append_transaction(
            account_id,
            TransactionKind.CRYPTO_SALE,
            asset,
            amount,
            counter_asset=FIAT,
            counter_amount=ngn_amount,
            details=json.dumps({"rate": str(rate)}),
        )

    # Withdrawal saga
    async def reserve_withdrawal(
        self,
        account: Account,
        amount: Decimal,
        fee: Decimal,
        reference: str,
        today: Optional[date] = None,
        bank: Optional[BankAccount] = None,
    ) -> WithdrawalReservation:
        """Debit NGN for a bank transfer and bump the withdrawal counters.

        Raises:
            InsufficientBalance: If the NGN balance is lower than amount
        """
        today = today or date.today()
        snapshot = dict(
            prev_daily_withdrawn=Decimal(account.daily_withdrawn or 0),
            prev_last_withdrawal_date=account.last_withdrawal_date,
            prev_total_withdrawn=Decimal(account.total_withdrawn or 0),
        )

        await self.debit_balance(account.id, FIAT, amount)

        daily = snapshot["prev_daily_withdrawn"]
        if account.last_withdrawal_date != today:
            daily = Decimal("0")
        account.daily_withdrawn = daily + amount
        account.last_withdrawal_date = today
        account.total_withdrawn = snapshot["prev_total_withdrawn"] + amount

        details = None
        if bank is not None:
            details = json.dumps({
                "bank_name": bank.bank_name,
                "bank_code": bank.bank_code,
                "account_number": bank.account_number,
                "account_name": bank.account_name,
            })
        record = await self.append_transaction(
            account.id,
            TransactionKind.WITHDRAWAL,
            FIAT,
            amount,
            fee_amount=fee,
            reference=reference,
            status=TransactionStatus.RESERVED,
            network="bank_transfer",
            details=details,
        )
        logger.info(f"Reserved withdrawal {reference}: {amount} NGN from account {account.id}")

        return WithdrawalReservation(
            account_id=account.id,
            transaction_id=record.id,
            reference=reference,
            amount=amount,
            fee=fee,
            net_amount=amount - fee,
            **snapshot,
        )

    async def commit_withdrawal(
        self, reservation: WithdrawalReservation, transfer_id: str
    ) -> Transaction:
        """Mark a reserved withdrawal as accepted by the payment provider."""
        record = await self.get_transaction(reservation.transaction_id)
        if record is None:
            raise ValueError(f"Withdrawal record {reservation.transaction_id} not found")
        await self.update_transaction_status(
            record, TransactionStatus.PROCESSING, external_id=str(transfer_id)
        )
        logger.info(f"Committed withdrawal {reservation.reference} as transfer {transfer_id}")
        return record

    async def compensate_withdrawal(
        self, reservation: WithdrawalReservation, error: str
    ) -> Transaction:
        """Undo a reservation after the transfer failed.

        Credits the amount back, restores the withdrawal counters to their
        pre-reserve values, marks the withdrawal record failed and appends a
        reversal record.
        """
        account = await self.get_account_by_id(reservation.account_id)
        if account is None:
            raise ValueError(f"Account {reservation.account_id} not found")

        await self.credit_balance(account.id, FIAT, reservation.amount)
        account.daily_withdrawn = reservation.prev_daily_withdrawn
        account.last_withdrawal_date = reservation.prev_last_withdrawal_date
        account.total_withdrawn = reservation.prev_total_withdrawn

        record = await self.get_transaction(reservation.transaction_id)
        if record is not None:
            await self.update_transaction_status(record, TransactionStatus.FAILED)

        reversal = await self.append_transaction(
            account.id,
            TransactionKind.WITHDRAWAL_REVERSAL,
            FIAT,
            reservation.amount,
            reference=reservation.reference,
            network="bank_transfer",
            details=json.dumps({"error": error}),
        )
        logger.warning(f"Compensated withdrawal {reservation.reference}: {error}")
        return reversal

    # Deposit operations
    async def get_deposit_by_tx_hash(self, asset, tx_hash: str) -> Optional[Transaction]:
        """Get deposit record by transaction hash (idempotency check)."""
        stmt = select(Transaction).where(
            Transaction.kind == TransactionKind.DEPOSIT,
            Transaction.asset == _asset_key(asset),
            Transaction.external_id == tx_hash,
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def credit_deposit(
        self,
        account: Account,
        asset: Asset,
        amount: Decimal,
        tx_hash: str,
        network: Optional[str] = None,
        address: Optional[str] = None,
    ) -> Transaction:
        """Credit an inbound deposit and record it."""
        await self.credit_balance(account.id, asset, amount)
        account.total_deposited = Decimal(account.total_deposited or 0) + amount
        return await self.append_transaction(
            account.id,
            TransactionKind.DEPOSIT,
            asset,
            amount,
            external_id=tx_hash,
            network=network,
            details=json.dumps({"address": address}) if address else None,
        )

    # Deposit address operations
    async def get_deposit_address(self, account_id: int, asset) -> Optional[DepositAddress]:
        """Get deposit address for account/asset."""
        stmt = select(DepositAddress).where(
            DepositAddress.account_id == account_id,
            DepositAddress.asset == _asset_key(asset),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_deposit_address(
        self, account_id: int, info: AddressInfo
    ) -> DepositAddress:
        """Store a derived address the first time it is handed out.

        An existing record is returned untouched.
        """
        addr = await self.get_deposit_address(account_id, info.asset)
        if addr is None:
            addr = DepositAddress(
                account_id=account_id,
                asset=info.asset,
                address=info.address,
                derivation_path=info.derivation_path,
                derivation_index=info.index,
            )
            self.session.add(addr)
            await self.session.flush()
        elif addr.address != info.address:
            logger.error(
                f"Stored {info.asset} address for account {account_id} differs from "
                f"derived address {info.address}"
            )
        return addr

    # Bank account operations
    async def get_bank_account(self, account_id: int) -> Optional[BankAccount]:
        stmt = select(BankAccount).where(BankAccount.account_id == account_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def save_bank_account(
        self,
        account_id: int,
        bank_code: str,
        bank_name: str,
        account_number: str,
        account_name: str,
        verified: bool = True,
    ) -> BankAccount:
        """Save the bank account, replacing any previous one."""
        bank = await self.get_bank_account(account_id)
        if bank is None:
            bank = BankAccount(account_id=account_id)
            self.session.add(bank)
        bank.bank_code = bank_code
        bank.bank_name = bank_name
        bank.account_number = account_number
        bank.account_name = account_name
        bank.verified = verified
        await self.session.flush()
        return bank

    async def delete_bank_account(self, account_id: int) -> bool:
        bank = await self.get_bank_account(account_id)
        if bank is None:
            return False
        await self.session.delete(bank)
        await self.session.flush()
        return True

    # Admin operations
    async def get_account_count(self) -> int:
        """Get total account count."""
        result = await self.session.execute(select(func.count(Account.id)))
        return result.scalar() or 0

    async def get_total_balance_by_asset(self, asset) -> Decimal:
        """Get total balance across all accounts for an asset."""
        stmt = select(func.sum(Balance.amount)).where(Balance.asset == _asset_key(asset))
        result = await self.session.execute(stmt)
        return Decimal(result.scalar() or 0)

    async def get_stats(self) -> dict:
        """Aggregate figures for the admin endpoint."""
        totals = {}
        for asset in Asset:
            totals[asset.value] = await self.get_total_balance_by_asset(asset)

        result = await self.session.execute(select(func.sum(Account.total_withdrawn)))
        total_withdrawn = Decimal(result.scalar() or 0)

        result = await self.session.execute(
            select(func.count(Account.id)).where(Account.kyc_verified.is_(True))
        )
        kyc_verified = result.scalar() or 0

        result = await self.session.execute(select(func.count(BankAccount.id)))
        bank_accounts = result.scalar() or 0

        result = await self.session.execute(
            select(Transaction.kind, func.count(Transaction.id)).group_by(Transaction.kind)
        )
        transactions = {str(kind): count for kind, count in result.all()}

        return {
            "accounts": await self.get_account_count(),
            "kyc_verified": kyc_verified,
            "bank_accounts": bank_accounts,
            "balances": totals,
            "total_withdrawn": total_withdrawn,
            "transactions": transactions,
        }
