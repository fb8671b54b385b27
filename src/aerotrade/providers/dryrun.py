"""Dry-run payment gateway for development and tests (no real money moves)."""

import itertools
import logging
from decimal import Decimal
from typing import Optional

from aerotrade.errors import GatewayError
from aerotrade.providers.base import (
    FALLBACK_BANKS,
    AccountVerification,
    Bank,
    PaymentGateway,
    Recipient,
    TransferResult,
    TransferStatus,
)

logger = logging.getLogger(__name__)


class DryRunGateway(PaymentGateway):
    """Simulated gateway.

    Account names come from `accounts` ((account_number, bank_code) -> name);
    unknown accounts resolve to "Test User <last 4 digits>". Transfers succeed
    unless `fail_transfers` is set, and are kept in memory for status checks.
    """

    def __init__(
        self,
        accounts: Optional[dict[tuple[str, str], str]] = None,
        fail_verification: bool = False,
        fail_transfers: bool = False,
    ):
        self.accounts = dict(accounts or {})
        self.fail_verification = fail_verification
        self.fail_transfers = fail_transfers
        self.transfers: dict[str, TransferStatus] = {}
        self._ids = itertools.count(1)

    @property
    def name(self) -> str:
        return "dryrun"

    async def verify_account(self, account_number: str, bank_code: str) -> AccountVerification:
        if self.fail_verification:
            raise GatewayError("Could not verify account")
        name = self.accounts.get((account_number, bank_code))
        if name is None:
            name = f"Test User {account_number[-4:]}"
        return AccountVerification(
            account_number=account_number, bank_code=bank_code, account_name=name
        )

    async def transfer(
        self, amount: Decimal, recipient: Recipient, reference: str, narration: str = ""
    ) -> TransferResult:
        if self.fail_transfers:
            logger.info(f"[dryrun] Rejecting transfer {reference}")
            raise GatewayError("Transfer failed: insufficient provider balance")

        transfer_id = f"dry-{next(self._ids)}"
        self.transfers[transfer_id] = TransferStatus(
            transfer_id=transfer_id,
            amount=amount,
            status="SUCCESSFUL",
            reference=reference,
            bank_name=recipient.bank_name,
            account_number=recipient.account_number,
            full_name=recipient.account_name,
            complete_message="Simulated transfer",
        )
        logger.info(f"[dryrun] Transfer {reference}: {amount} NGN to {recipient.account_number}")
        return TransferResult(transfer_id=transfer_id, reference=reference, status="NEW")

    async def check_status(self, transfer_id: str) -> Optional[TransferStatus]:
        return self.transfers.get(transfer_id)

    async def list_banks(self) -> list[Bank]:
        return list(FALLBACK_BANKS)

    async def validate_config(self) -> bool:
        """Always valid for dry-run."""
        return True
