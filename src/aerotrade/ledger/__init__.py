"""Ledger: balances, audit trail and the withdrawal saga."""

from aerotrade.ledger.database import Database
from aerotrade.ledger.models import (
    Account,
    Balance,
    BankAccount,
    Base,
    DepositAddress,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from aerotrade.ledger.repository import LedgerRepository, WithdrawalReservation

__all__ = [
    "Account",
    "Balance",
    "BankAccount",
    "Base",
    "Database",
    "DepositAddress",
    "LedgerRepository",
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
    "WithdrawalReservation",
]
