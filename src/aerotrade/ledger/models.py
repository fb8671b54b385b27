"""SQLAlchemy models for the ledger."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TransactionKind(str, Enum):
    """Kind of an audit-trail record."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    WITHDRAWAL_REVERSAL = "withdrawal_reversal"
    SWAP = "swap"
    CRYPTO_SALE = "crypto_sale"
    REFERRAL_BONUS = "referral_bonus"


class TransactionStatus(str, Enum):
    """Status of a transaction record."""

    COMPLETED = "completed"
    RESERVED = "reserved"        # Funds debited, bank transfer not yet accepted
    PROCESSING = "processing"    # Accepted by the payment provider
    FAILED = "failed"            # Provider rejected; funds returned


class Account(Base):
    """User account linked to Telegram."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    telegram_id: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False, index=True)
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Withdrawal policy
    kyc_verified: Mapped[bool] = mapped_column(default=False)
    daily_withdrawal_limit: Mapped[Decimal] = mapped_column(
        Numeric(36, 18), default=Decimal("500000")
    )
    daily_withdrawn: Mapped[Decimal] = mapped_column(Numeric(36, 18), default=Decimal("0"))
    last_withdrawal_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Cumulative totals (NGN for withdrawals, asset units summed for deposits)
    total_withdrawn: Mapped[Decimal] = mapped_column(Numeric(36, 18), default=Decimal("0"))
    total_deposited: Mapped[Decimal] = mapped_column(Numeric(36, 18), default=Decimal("0"))

    # Referrals
    referral_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    referred_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id"), nullable=True
    )
    referral_rewards: Mapped[Decimal] = mapped_column(Numeric(36, 18), default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    balances: Mapped[list["Balance"]] = relationship(back_populates="account", lazy="selectin")
    bank_account: Mapped[Optional["BankAccount"]] = relationship(
        back_populates="account", lazy="selectin", uselist=False
    )
    deposit_addresses: Mapped[list["DepositAddress"]] = relationship(
        back_populates="account", lazy="selectin"
    )

    @property
    def display_name(self) -> str:
        if self.username:
            return f"@{self.username}"
        return self.first_name or str(self.telegram_id)


class Balance(Base):
    """Account balance for one asset. NGN is the fiat wallet."""

    __tablename__ = "balances"
    __table_args__ = (Index("ix_balances_account_asset", "account_id", "asset", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    asset: Mapped[str] = mapped_column(String(20), nullable=False)  # NGN, BTC, ETH, SOL, USDT
    amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), default=Decimal("0"))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    account: Mapped["Account"] = relationship(back_populates="balances")


class BankAccount(Base):
    """Verified bank account used for NGN withdrawals (one per account)."""

    __tablename__ = "bank_accounts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), unique=True, nullable=False
    )
    bank_code: Mapped[str] = mapped_column(String(20), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_number: Mapped[str] = mapped_column(String(20), nullable=False)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    verified: Mapped[bool] = mapped_column(default=False)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    account: Mapped["Account"] = relationship(back_populates="bank_account")


class DepositAddress(Base):
    """Derived deposit address per account per asset.

    Written once when first shown to the user and never modified.
    """

    __tablename__ = "deposit_addresses"
    __table_args__ = (
        Index("ix_deposit_addresses_account_asset", "account_id", "asset", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    asset: Mapped[str] = mapped_column(String(20), nullable=False)
    address: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    # HD wallet derivation info
    derivation_path: Mapped[str] = mapped_column(String(100), nullable=False)
    derivation_index: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    account: Mapped["Account"] = relationship(back_populates="deposit_addresses")


class Transaction(Base):
    """Append-only audit record of a balance mutation.

    Only `status` and `external_id` are refined after insert.
    """

    __tablename__ = "transactions"
    __table_args__ = (Index("ix_transactions_asset_external", "asset", "external_id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False, index=True)
    kind: Mapped[TransactionKind] = mapped_column(String(30), nullable=False)
    asset: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), nullable=False)
    counter_asset: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    counter_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(36, 18), nullable=True)
    fee_amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), default=Decimal("0"))
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[TransactionStatus] = mapped_column(
        String(20), default=TransactionStatus.COMPLETED, nullable=False
    )
    network: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
