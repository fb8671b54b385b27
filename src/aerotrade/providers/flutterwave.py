"""Flutterwave payout provider.

API docs: https://developer.flutterwave.com/reference
"""

import logging
from decimal import Decimal
from typing import Optional

import httpx

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

FLUTTERWAVE_API_V3 = "https://api.flutterwave.com/v3"

# Request timeouts (seconds)
VERIFY_TIMEOUT = 10.0
TRANSFER_TIMEOUT = 15.0
STATUS_TIMEOUT = 10.0
BANKS_TIMEOUT = 10.0


class FlutterwaveGateway(PaymentGateway):
    """NGN bank transfers through Flutterwave."""

    def __init__(
        self,
        secret_key: str,
        base_url: str = FLUTTERWAVE_API_V3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Flutterwave gateway.

        Args:
            secret_key: Flutterwave secret key (FLWSECK-...)
            base_url: API base URL
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    @property
    def name(self) -> str:
        return "flutterwave"

    def _get_headers(self) -> dict:
        """Get API headers with authorization."""
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    @staticmethod
    def _error_message(response: httpx.Response, default: str) -> str:
        try:
            return response.json().get("message") or default
        except ValueError:
            return default

    async def verify_account(self, account_number: str, bank_code: str) -> AccountVerification:
        """Resolve the account name for an account number at a bank."""
        try:
            async with self._client(VERIFY_TIMEOUT) as client:
                response = await client.post(
                    f"{self.base_url}/accounts/resolve",
                    headers=self._get_headers(),
                    json={"account_number": account_number, "account_bank": bank_code},
                )
        except httpx.TimeoutException:
            logger.warning(f"Flutterwave account resolve timed out for bank {bank_code}")
            raise GatewayError("Bank verification timed out. Please try again.")
        except httpx.HTTPError as e:
            logger.error(f"Flutterwave account resolve error: {e}")
            raise GatewayError("Could not reach the bank verification service.")

        if response.status_code != 200:
            message = self._error_message(response, "Could not verify account")
            logger.warning(f"Flutterwave resolve failed: {response.status_code} - {message}")
            raise GatewayError(message, status_code=response.status_code)

        data = response.json()
        account_name = (data.get("data") or {}).get("account_name")
        if data.get("status") != "success" or not account_name:
            raise GatewayError(data.get("message") or "Could not verify account")

        return AccountVerification(
            account_number=account_number,
            bank_code=bank_code,
            account_name=account_name,
        )

    async def transfer(
        self, amount: Decimal, recipient: Recipient, reference: str, narration: str = ""
    ) -> TransferResult:
        """Initiate an NGN transfer."""
        payload = {
            "account_bank": recipient.bank_code,
            "account_number": recipient.account_number,
            "amount": float(amount),
            "narration": narration or "Withdrawal",
            "currency": "NGN",
            "reference": reference,
            "beneficiary_name": recipient.account_name,
        }

        try:
            async with self._client(TRANSFER_TIMEOUT) as client:
                response = await client.post(
                    f"{self.base_url}/transfers",
                    headers=self._get_headers(),
                    json=payload,
                )
        except httpx.TimeoutException:
            logger.warning(f"Flutterwave transfer {reference} timed out")
            raise GatewayError("The transfer request timed out.")
        except httpx.HTTPError as e:
            logger.error(f"Flutterwave transfer {reference} error: {e}")
            raise GatewayError("Could not reach the payment provider.")

        if response.status_code not in (200, 201):
            message = self._error_message(response, "Transfer failed")
            logger.warning(f"Flutterwave transfer {reference} rejected: {response.status_code} - {message}")
            raise GatewayError(message, status_code=response.status_code)

        data = response.json()
        transfer = data.get("data") or {}
        if data.get("status") != "success" or transfer.get("id") is None:
            raise GatewayError(data.get("message") or "Transfer failed")

        logger.info(f"Flutterwave transfer {reference} accepted as {transfer['id']}")
        return TransferResult(
            transfer_id=str(transfer["id"]),
            reference=transfer.get("reference") or reference,
            status=transfer.get("status") or "NEW",
        )

    async def check_status(self, transfer_id: str) -> Optional[TransferStatus]:
        """Get a transfer's current status. Returns None on any failure."""
        try:
            async with self._client(STATUS_TIMEOUT) as client:
                response = await client.get(
                    f"{self.base_url}/transfers/{transfer_id}",
                    headers=self._get_headers(),
                )

            if response.status_code != 200:
                logger.warning(f"Flutterwave status error: {response.status_code} - {response.text}")
                return None

            data = response.json()
            if data.get("status") != "success" or not data.get("data"):
                return None

            transfer = data["data"]
            return TransferStatus(
                transfer_id=str(transfer.get("id", transfer_id)),
                amount=Decimal(str(transfer.get("amount", 0))),
                status=transfer.get("status", "UNKNOWN"),
                reference=transfer.get("reference"),
                bank_name=transfer.get("bank_name"),
                account_number=transfer.get("account_number"),
                full_name=transfer.get("full_name"),
                created_at=transfer.get("created_at"),
                complete_message=transfer.get("complete_message"),
            )

        except (httpx.HTTPError, ValueError, ArithmeticError) as e:
            logger.error(f"Flutterwave status check error: {e}")
            return None

    async def list_banks(self) -> list[Bank]:
        """Get Nigerian banks, falling back to a fixed list."""
        try:
            async with self._client(BANKS_TIMEOUT) as client:
                response = await client.get(
                    f"{self.base_url}/banks/NG",
                    headers=self._get_headers(),
                )

            if response.status_code != 200:
                logger.warning(f"Flutterwave banks error: {response.status_code}")
                return list(FALLBACK_BANKS)

            data = response.json()
            banks = [
                Bank(name=item["name"], code=str(item["code"]))
                for item in data.get("data") or []
                if item.get("name") and item.get("code")
            ]
            if not banks:
                return list(FALLBACK_BANKS)
            return sorted(banks, key=lambda b: b.name)

        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error(f"Flutterwave banks error: {e}")
            return list(FALLBACK_BANKS)

    async def validate_config(self) -> bool:
        """Check that a secret key is set."""
        return bool(self.secret_key)
