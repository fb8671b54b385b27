"""Payment gateway base interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class Bank:
    """Bank in the provider's directory."""

    name: str
    code: str


@dataclass(frozen=True)
class Recipient:
    """Destination of an NGN bank transfer."""

    account_number: str
    bank_code: str
    account_name: str
    bank_name: Optional[str] = None


@dataclass(frozen=True)
class AccountVerification:
    """Account holder name returned by the provider's resolve endpoint."""

    account_number: str
    bank_code: str
    account_name: str


@dataclass(frozen=True)
class TransferResult:
    """Transfer accepted by the provider."""

    transfer_id: str
    reference: str
    status: str = "NEW"


@dataclass(frozen=True)
class TransferStatus:
    """Status record of a transfer."""

    transfer_id: str
    amount: Decimal
    status: str  # NEW, PENDING, SUCCESSFUL, FAILED
    reference: Optional[str] = None
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    full_name: Optional[str] = None
    created_at: Optional[str] = None
    complete_message: Optional[str] = None

    @property
    def is_successful(self) -> bool:
        return self.status.upper() == "SUCCESSFUL"

    @property
    def is_failed(self) -> bool:
        return self.status.upper() == "FAILED"


# Used whenever the provider's bank directory can't be fetched
FALLBACK_BANKS: tuple[Bank, ...] = (
    Bank(name="Access Bank", code="044"),
    Bank(name="First Bank of Nigeria", code="011"),
    Bank(name="Guaranty Trust Bank", code="058"),
    Bank(name="United Bank for Africa", code="033"),
    Bank(name="Zenith Bank", code="057"),
    Bank(name="Stanbic IBTC Bank", code="221"),
    Bank(name="Fidelity Bank", code="070"),
    Bank(name="Union Bank of Nigeria", code="032"),
    Bank(name="Polaris Bank", code="076"),
    Bank(name="Wema Bank", code="035"),
)


class PaymentGateway(ABC):
    """Abstract base class for NGN payout providers.

    verify_account and transfer raise GatewayError on any failure (HTTP
    error, provider rejection, timeout). check_status returns None instead,
    and list_banks degrades to FALLBACK_BANKS.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        raise NotImplementedError()

    @abstractmethod
    async def verify_account(self, account_number: str, bank_code: str) -> AccountVerification:
        """Resolve the account holder's name.

        Raises:
            GatewayError: If the account can't be resolved
        """
        raise NotImplementedError()

    @abstractmethod
    async def transfer(
        self, amount: Decimal, recipient: Recipient, reference: str, narration: str = ""
    ) -> TransferResult:
        """Send NGN to a bank account.

        Raises:
            GatewayError: If the provider did not accept the transfer
        """
        raise NotImplementedError()

    @abstractmethod
    async def check_status(self, transfer_id: str) -> Optional[TransferStatus]:
        """Fetch the status of a transfer, or None if unavailable."""
        raise NotImplementedError()

    @abstractmethod
    async def list_banks(self) -> list[Bank]:
        """List supported banks."""
        raise NotImplementedError()

    @abstractmethod
    async def validate_config(self) -> bool:
        """Validate provider configuration.

        Returns:
            True if configuration is valid
        """
        raise NotImplementedError()
