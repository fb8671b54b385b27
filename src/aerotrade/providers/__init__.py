"""External collaborators: payment gateway and exchange rates."""

from aerotrade.providers.base import (
    FALLBACK_BANKS,
    AccountVerification,
    Bank,
    PaymentGateway,
    Recipient,
    TransferResult,
    TransferStatus,
)
from aerotrade.providers.dryrun import DryRunGateway
from aerotrade.providers.factory import create_gateway
from aerotrade.providers.flutterwave import FlutterwaveGateway
from aerotrade.providers.rates import AssetRate, RateProvider, RateSnapshot

__all__ = [
    "FALLBACK_BANKS",
    "AccountVerification",
    "AssetRate",
    "Bank",
    "DryRunGateway",
    "FlutterwaveGateway",
    "PaymentGateway",
    "RateProvider",
    "RateSnapshot",
    "Recipient",
    "TransferResult",
    "TransferStatus",
    "create_gateway",
]
