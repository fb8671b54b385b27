"""Error taxonomy shared by the ledger, policy guard, gateway and engine.

Every error here is user-facing and non-fatal: the conversation engine turns
it into a reply and keeps the process running.
"""

from decimal import Decimal
from typing import Optional


class AeroTradeError(Exception):
    """Base class for all domain errors."""

    pass


class ValidationError(AeroTradeError, ValueError):
    """Malformed user input (amount, account number, account name)."""

    pass


class InsufficientBalance(AeroTradeError, ValueError):
    """A debit would take a balance below zero."""

    def __init__(self, asset: str, available: Decimal, requested: Decimal):
        self.asset = asset
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient balance: have {available} {asset}, need {requested}"
        )


class PolicyDenied(AeroTradeError):
    """Withdrawal refused by KYC or daily-limit policy."""

    def __init__(self, reason: str, remaining: Optional[Decimal] = None):
        self.reason = reason
        self.remaining = remaining
        super().__init__(reason)


class GatewayError(AeroTradeError):
    """Payment provider reported a failure, timed out or was unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class SessionExpired(AeroTradeError):
    """The account behind a pending flow no longer exists."""

    pass


class AddressResolutionFailure(AeroTradeError):
    """A deposit arrived for an address this process never derived."""

    pass


class AddressCollisionError(AeroTradeError):
    """Two different owners derived the same deposit address."""

    pass
