"""Withdrawal policy: KYC threshold, daily limit and bank withdrawal fees.

The guard is advisory at amount entry and must be consulted again right
before the NGN is reserved, because the daily counter may have moved in
between.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from aerotrade.config import Settings
from aerotrade.errors import PolicyDenied
from aerotrade.ledger.models import Account

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicyDecision:
    """Result of a withdrawal policy check."""

    allowed: bool
    reason: Optional[str] = None
    remaining: Optional[Decimal] = None
    limit: Optional[Decimal] = None


class PolicyGuard:
    """Enforces withdrawal limits for NGN bank transfers."""

    def __init__(
        self,
        kyc_threshold: Decimal = Decimal("100000"),
        min_withdrawal: Decimal = Decimal("500"),
        fee_rate: Decimal = Decimal("0.015"),
        min_fee: Decimal = Decimal("50"),
    ):
        self.kyc_threshold = Decimal(kyc_threshold)
        self.min_withdrawal = Decimal(min_withdrawal)
        self.fee_rate = Decimal(fee_rate)
        self.min_fee = Decimal(min_fee)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PolicyGuard":
        return cls(
            kyc_threshold=settings.kyc_threshold,
            min_withdrawal=settings.min_withdrawal,
            fee_rate=settings.withdrawal_fee_rate,
            min_fee=settings.withdrawal_min_fee,
        )

    @staticmethod
    def withdrawn_today(account: Account, today: Optional[date] = None) -> Decimal:
        """Daily counter as of `today`; a counter from an earlier day counts as zero."""
        today = today or date.today()
        if account.last_withdrawal_date != today:
            return Decimal("0")
        return Decimal(account.daily_withdrawn or 0)

    def remaining_today(self, account: Account, today: Optional[date] = None) -> Decimal:
        limit = Decimal(account.daily_withdrawal_limit)
        return max(Decimal("0"), limit - self.withdrawn_today(account, today))

    def check_withdrawal(
        self, account: Account, amount: Decimal, today: Optional[date] = None
    ) -> PolicyDecision:
        """Check a gross NGN withdrawal amount against KYC and daily limits."""
        limit = Decimal(account.daily_withdrawal_limit)
        used = self.withdrawn_today(account, today)
        remaining = max(Decimal("0"), limit - used)

        if amount > self.kyc_threshold and not account.kyc_verified:
            return PolicyDecision(
                allowed=False,
                reason=(
                    f"KYC verification is required for withdrawals above "
                    f"₦{self.kyc_threshold:,.2f}"
                ),
                remaining=remaining,
                limit=limit,
            )

        if used + amount > limit:
            return PolicyDecision(
                allowed=False,
                reason="Daily withdrawal limit exceeded.",
                remaining=remaining,
                limit=limit,
            )

        return PolicyDecision(allowed=True, remaining=remaining - amount, limit=limit)

    def enforce(self, account: Account, amount: Decimal, today: Optional[date] = None) -> PolicyDecision:
        """Like check_withdrawal, but raises on denial.

        Raises:
            PolicyDenied: With the reason and remaining headroom
        """
        decision = self.check_withdrawal(account, amount, today)
        if not decision.allowed:
            logger.info(f"Withdrawal of {amount} denied for account {account.id}: {decision.reason}")
            raise PolicyDenied(decision.reason, decision.remaining)
        return decision

    def withdrawal_fee(self, amount: Decimal) -> tuple[Decimal, Decimal]:
        """Fee and net amount for a bank withdrawal: fee = max(rate * amount, min_fee)."""
        fee = max(amount * self.fee_rate, self.min_fee)
        return fee, amount - fee

    def min_gross_amount(self) -> Decimal:
        """Smallest amount whose net clears the floor at the minimum fee."""
        return self.min_withdrawal + self.min_fee
