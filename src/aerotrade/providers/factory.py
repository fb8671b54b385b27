"""Payment gateway factory."""

import logging

from aerotrade.config import Settings
from aerotrade.providers.base import PaymentGateway
from aerotrade.providers.dryrun import DryRunGateway
from aerotrade.providers.flutterwave import FlutterwaveGateway

logger = logging.getLogger(__name__)


def create_gateway(settings: Settings) -> PaymentGateway:
    """Create the payment gateway selected by PAYMENT_PROVIDER.

    - dryrun (default): simulated transfers
    - flutterwave: Flutterwave v3 API (needs FLW_SECRET_KEY)
    """
    provider_name = settings.payment_provider.lower()

    if provider_name == "flutterwave":
        if not settings.flw_secret_key:
            logger.warning("PAYMENT_PROVIDER=flutterwave but FLW_SECRET_KEY is not set")
        return FlutterwaveGateway(
            secret_key=settings.flw_secret_key,
            base_url=settings.flw_base_url,
        )

    if provider_name != "dryrun":
        logger.warning(f"Unknown payment provider '{provider_name}', using dryrun")
    return DryRunGateway()
